from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ..models import Profile as ProfileRow
from .errors import SnapshotUnavailableError

PROFILE_SCHEMA_VERSION = 1
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Profile:
    id: str
    city: str | None = None
    specialty: str | None = None
    career_stage: str | None = None
    age: int | None = None
    gender: str | None = None
    gender_preference: str | None = None
    interests: frozenset[str] = frozenset()
    social_preferences: frozenset[str] = frozenset()
    availability: frozenset[str] = frozenset()
    institutions: frozenset[str] = frozenset()
    verified: bool = False
    subscribed: bool = False
    onboarding_complete: bool = False


@dataclass(frozen=True)
class EligibleMember:
    profile: Profile
    eligible: bool
    locality: str

    @property
    def id(self) -> str:
        return self.profile.id


class ProfileSnapshotSource(Protocol):
    def fetch_profiles(self) -> list[Profile]: ...


def normalize_locality(value: Any) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split()).lower()


def _normalize_label(value: Any) -> str | None:
    if value is None:
        return None
    v = str(value).strip().lower()
    return v or None


def _parse_set(values: Any) -> frozenset[str]:
    if isinstance(values, str):
        try:
            values = json.loads(values)
        except json.JSONDecodeError:
            values = [values]
    if not isinstance(values, (list, tuple, set, frozenset)):
        return frozenset()
    out: set[str] = set()
    for item in values:
        v = _normalize_label(item)
        if v:
            out.add(v)
    return frozenset(out)


def _parse_age(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        age = int(value)
    except (TypeError, ValueError):
        return None
    return age if age > 0 else None


def profile_from_row(row: dict[str, Any]) -> Profile:
    raw_id = str(row.get("id") or "").strip()
    if not raw_id:
        raise ValueError("Profile row is missing an id")
    return Profile(
        id=raw_id,
        city=normalize_locality(row.get("city")) or None,
        specialty=_normalize_label(row.get("specialty")),
        career_stage=_normalize_label(row.get("career_stage")),
        age=_parse_age(row.get("age")),
        gender=_normalize_label(row.get("gender")),
        gender_preference=_normalize_label(row.get("gender_preference")),
        interests=_parse_set(row.get("interests")),
        social_preferences=_parse_set(row.get("social_preferences")),
        availability=_parse_set(row.get("availability")),
        institutions=_parse_set(row.get("institutions")),
        verified=bool(row.get("is_verified", row.get("verified", False))),
        subscribed=bool(row.get("is_subscribed", row.get("subscribed", False))),
        onboarding_complete=bool(row.get("onboarding_complete", False)),
    )


class SqlProfileSnapshotSource:
    def __init__(self, db) -> None:
        self._db = db

    def fetch_profiles(self) -> list[Profile]:
        try:
            rows = self._db.execute(select(ProfileRow.__table__).order_by(ProfileRow.id)).mappings().all()
        except SQLAlchemyError as exc:
            raise SnapshotUnavailableError(f"Profile snapshot could not be read: {exc}") from exc

        profiles: list[Profile] = []
        for row in rows:
            try:
                profiles.append(profile_from_row(dict(row)))
            except ValueError:
                logger.warning("[matching] skipping profile row without id")
        return profiles


class StaticProfileSnapshotSource:
    def __init__(self, profiles: list[Profile]) -> None:
        self._profiles = list(profiles)

    def fetch_profiles(self) -> list[Profile]:
        return list(self._profiles)
