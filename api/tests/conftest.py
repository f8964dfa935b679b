import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date

import pytest
from sqlalchemy import create_engine, insert
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rounds_match import models
from rounds_match.database import Base
from rounds_match.services.matching_config import MatchingConfig
from rounds_match.services.profiles import EligibleMember, Profile, normalize_locality


def make_profile(member_id: str, **overrides) -> Profile:
    values = {
        "city": "boston",
        "specialty": "cardiology",
        "career_stage": "resident",
        "age": 30,
        "interests": frozenset({"running", "wine"}),
        "social_preferences": frozenset({"small groups"}),
        "availability": frozenset({"weekend mornings"}),
        "institutions": frozenset({"general hospital"}),
        "verified": True,
        "subscribed": True,
        "onboarding_complete": True,
    }
    values.update(overrides)
    return Profile(id=member_id, **values)


def make_member(member_id: str, **overrides) -> EligibleMember:
    profile = make_profile(member_id, **overrides)
    return EligibleMember(profile=profile, eligible=True, locality=normalize_locality(profile.city))


def profile_row(member_id: str, **overrides) -> dict:
    row = {
        "id": member_id,
        "city": "Boston",
        "specialty": "cardiology",
        "career_stage": "resident",
        "age": 30,
        "gender": None,
        "gender_preference": None,
        "interests": ["running", "wine"],
        "social_preferences": ["small groups"],
        "availability": ["weekend mornings"],
        "institutions": ["general hospital"],
        "is_verified": True,
        "is_subscribed": True,
        "onboarding_complete": True,
    }
    row.update(overrides)
    return row


@pytest.fixture
def config() -> MatchingConfig:
    return MatchingConfig()


@pytest.fixture
def week() -> date:
    return date(2026, 3, 2)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    yield factory
    engine.dispose()


@pytest.fixture
def insert_profiles(session_factory):
    def _insert(rows: list[dict]) -> None:
        with session_factory() as db:
            db.execute(insert(models.Profile.__table__), rows)
            db.commit()

    return _insert
