import random
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, insert

from ..models import Profile as ProfileRow

SEED_ID_PREFIX = "seed-"

CITIES = ["Boston", "Chicago", "New York", "San Francisco", "Seattle"]
SPECIALTIES = ["cardiology", "dermatology", "emergency medicine", "internal medicine", "pediatrics", "psychiatry", "surgery"]
CAREER_STAGES = ["student", "resident", "fellow", "attending"]
INTERESTS = ["running", "hiking", "cooking", "wine", "board games", "cycling", "live music", "yoga", "books", "travel", "climbing", "film"]
SOCIAL = ["small groups", "quiet venues", "late nights", "brunch", "outdoors", "coffee"]
AVAILABILITY = ["weekday evenings", "weekend mornings", "weekend afternoons", "weekend evenings"]
INSTITUTIONS = ["General Hospital", "University Medical Center", "Children's Hospital", "Memorial", "Veterans Affairs"]
GENDER_OPTIONS = ["man", "woman", "nonbinary"]


def _sample(rng: random.Random, options: list[str], lo: int, hi: int) -> list[str]:
    return sorted(rng.sample(options, rng.randint(lo, hi)))


def _stage_for_age(rng: random.Random, age: int) -> str:
    if age < 27:
        return rng.choice(["student", "resident"])
    if age < 33:
        return rng.choice(["resident", "fellow"])
    return rng.choice(["fellow", "attending"])


def generate_demo_profile(rng: random.Random, index: int, cities: list[str]) -> dict[str, Any]:
    age = rng.randint(24, 58)
    gender = rng.choices(GENDER_OPTIONS, weights=[0.47, 0.47, 0.06], k=1)[0]
    return {
        "id": f"{SEED_ID_PREFIX}{index:06d}",
        "city": rng.choice(cities),
        "specialty": rng.choice(SPECIALTIES),
        "career_stage": _stage_for_age(rng, age),
        "age": age,
        "gender": gender,
        "gender_preference": rng.choices(["mixed", "same-gender-only", None], weights=[0.7, 0.1, 0.2], k=1)[0],
        "interests": _sample(rng, INTERESTS, 2, 6),
        "social_preferences": _sample(rng, SOCIAL, 1, 3),
        "availability": _sample(rng, AVAILABILITY, 1, 3),
        "institutions": _sample(rng, INSTITUTIONS, 1, 2),
        # A minority fail eligibility so readiness reports have something to show.
        "is_verified": rng.random() > 0.05,
        "is_subscribed": rng.random() > 0.1,
        "onboarding_complete": rng.random() > 0.05,
        "updated_at": datetime.now(timezone.utc),
    }


def seed_demo_profiles(
    db,
    n_profiles: int = 100,
    reset: bool = False,
    seed: int = 42,
    cities: list[str] | None = None,
) -> dict[str, Any]:
    rng = random.Random(seed)
    table = ProfileRow.__table__
    cities = cities or CITIES

    removed = 0
    if reset:
        res = db.execute(delete(table).where(table.c.id.like(f"{SEED_ID_PREFIX}%")))
        removed = int(res.rowcount or 0)

    rows = [generate_demo_profile(rng, i + 1, cities) for i in range(n_profiles)]
    if rows:
        db.execute(insert(table), rows)
    db.commit()

    by_city: dict[str, int] = {}
    for row in rows:
        by_city[row["city"]] = by_city.get(row["city"], 0) + 1
    return {"profiles_created": len(rows), "profiles_removed": removed, "by_city": dict(sorted(by_city.items()))}
