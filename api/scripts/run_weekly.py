import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from rounds_match.services.errors import InvalidConfigurationError, RunInProgressError
from rounds_match.services.matching_config import load_matching_config
from rounds_match.services.runner import TRIGGER_MANUAL, TRIGGER_SCHEDULED, trigger_matching_run
from rounds_match.services.state_machine import RUN_FAILED


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the weekly group matching")
    parser.add_argument("--batch-id", type=str, default="")
    parser.add_argument("--manual", action="store_true", help="record the run as a manual trigger")
    parser.add_argument("--week-start", type=date.fromisoformat, default=None, help="override week start (YYYY-MM-DD)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    try:
        config = load_matching_config()
    except InvalidConfigurationError as exc:
        print(f"Invalid matching configuration: {exc}", file=sys.stderr)
        return 2

    try:
        out = trigger_matching_run(
            trigger=TRIGGER_MANUAL if args.manual else TRIGGER_SCHEDULED,
            batch_id=args.batch_id or None,
            config=config,
            week_start_override=args.week_start,
        )
    except RunInProgressError as exc:
        print(f"Skipped: {exc}", file=sys.stderr)
        return 3

    print(json.dumps(out, indent=2, default=str))
    return 1 if out["status"] == RUN_FAILED else 0


if __name__ == "__main__":
    sys.exit(main())
