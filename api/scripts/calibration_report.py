import argparse
import json
import sys
from datetime import date, datetime, timezone
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from rounds_match import repo
from rounds_match.config import MATCH_TIMEZONE
from rounds_match.database import SessionLocal
from rounds_match.services.calibration import compute_calibration_report
from rounds_match.services.history import cooldown_window_start, get_week_start_date
from rounds_match.services.matching_config import load_matching_config
from rounds_match.services.profiles import SqlProfileSnapshotSource


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate pair-score calibration report for a week")
    parser.add_argument("--week-start", type=date.fromisoformat, default=None)
    args = parser.parse_args()

    config = load_matching_config()
    now = datetime.now(timezone.utc)
    week_start = args.week_start or get_week_start_date(now, MATCH_TIMEZONE)

    with SessionLocal() as db:
        profiles = SqlProfileSnapshotSource(db).fetch_profiles()
        active_ids = repo.fetch_active_member_ids(db, now)
        history = repo.fetch_history_entries(db, cooldown_window_start(week_start, config.cooldown_weeks), week_start)

    report = compute_calibration_report(
        profiles,
        active_member_ids=active_ids,
        history=history,
        week_start_date=week_start,
        config=config,
    )
    print(json.dumps(report, indent=2))


if __name__ == "__main__":
    main()
