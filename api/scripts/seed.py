import argparse
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from rounds_match.database import Base, SessionLocal, engine
from rounds_match import models  # noqa: F401
from rounds_match.services.seeding import CITIES, seed_demo_profiles


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed demo member profiles")
    parser.add_argument("--n-profiles", type=int, default=100)
    parser.add_argument("--reset", action="store_true")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--cities", type=str, default=",".join(CITIES))
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine)
    cities = [c.strip() for c in args.cities.split(",") if c.strip()]
    with SessionLocal() as db:
        summary = seed_demo_profiles(db, n_profiles=args.n_profiles, reset=args.reset, seed=args.seed, cities=cities)

    print("Seed completed")
    for k, v in summary.items():
        print(f"- {k}: {v}")


if __name__ == "__main__":
    main()
