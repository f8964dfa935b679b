from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any

from .matching_config import DimensionWeights, MatchingConfig
from .profiles import EligibleMember, Profile, normalize_locality

NEUTRAL_SUBSCORE = 0.5
DIMENSIONS = ("specialty", "interests", "social", "availability", "locality", "lifestyle")


@dataclass(frozen=True)
class PairScore:
    member_a: str
    member_b: str
    score: float
    breakdown: dict[str, float]

    @property
    def key(self) -> tuple[str, str]:
        return (self.member_a, self.member_b)


def canonical_pair(member_a: str, member_b: str) -> tuple[str, str]:
    return (member_a, member_b) if member_a <= member_b else (member_b, member_a)


def _jaccard(a: frozenset[str], b: frozenset[str]) -> float:
    if not a and not b:
        return 1.0
    # One-sided empty means the attribute is missing, not that nothing overlaps.
    if not a or not b:
        return NEUTRAL_SUBSCORE
    return len(a & b) / len(a | b)


def _exact(a: str | None, b: str | None) -> float:
    if not a or not b:
        return NEUTRAL_SUBSCORE
    return 1.0 if a == b else 0.0


def _same_locality(a: str | None, b: str | None) -> float:
    return _exact(normalize_locality(a), normalize_locality(b))


def _age_proximity(a: int | None, b: int | None, max_gap: float) -> float | None:
    if a is None or b is None:
        return None
    return max(0.0, 1.0 - abs(a - b) / max_gap)


def _lifestyle(u: Profile, v: Profile, max_gap: float) -> float:
    parts: list[float] = []
    age = _age_proximity(u.age, v.age, max_gap)
    if age is not None:
        parts.append(age)
    if u.career_stage and v.career_stage:
        parts.append(1.0 if u.career_stage == v.career_stage else 0.0)
    if u.institutions or v.institutions:
        parts.append(_jaccard(u.institutions, v.institutions))
    if not parts:
        return NEUTRAL_SUBSCORE
    return sum(parts) / len(parts)


def dimension_scores(u: Profile, v: Profile, age_max_gap: float = 15.0) -> dict[str, float]:
    return {
        "specialty": _exact(u.specialty, v.specialty),
        "interests": _jaccard(u.interests, v.interests),
        "social": _jaccard(u.social_preferences, v.social_preferences),
        "availability": _jaccard(u.availability, v.availability),
        "locality": _same_locality(u.city, v.city),
        "lifestyle": _lifestyle(u, v, age_max_gap),
    }


def weighted_total(breakdown: dict[str, float], weights: DimensionWeights) -> float:
    w = weights.as_dict()
    total = sum(w[dim] * breakdown[dim] for dim in DIMENSIONS)
    return max(0.0, min(1.0, total))


def score_pair(a: EligibleMember | Profile, b: EligibleMember | Profile, config: MatchingConfig) -> PairScore:
    u = a.profile if isinstance(a, EligibleMember) else a
    v = b.profile if isinstance(b, EligibleMember) else b
    if u.id == v.id:
        raise ValueError(f"Cannot score member {u.id} against itself")
    if v.id < u.id:
        u, v = v, u

    breakdown = dimension_scores(u, v, config.age_max_gap)
    total = weighted_total(breakdown, config.weights)
    return PairScore(
        member_a=u.id,
        member_b=v.id,
        score=round(total, 6),
        breakdown={dim: round(value, 6) for dim, value in breakdown.items()},
    )


def gender_compatible(u: Profile, v: Profile) -> bool:
    if not u.gender or not v.gender or u.gender == v.gender:
        return True
    return "same-gender-only" not in {u.gender_preference, v.gender_preference}


def describe_compatibility(score: float) -> dict[str, Any]:
    percentage = int(round(max(0.0, min(1.0, score)) * 100))
    if percentage >= 90:
        level, description = "excellent", "Excellent match, tons in common"
    elif percentage >= 80:
        level, description = "great", "Great match, strong compatibility"
    elif percentage >= 70:
        level, description = "good", "Good match, several shared interests"
    elif percentage >= 60:
        level, description = "decent", "Decent match, some common ground"
    else:
        level, description = "moderate", "Moderate match, room to explore differences"
    return {"percentage": percentage, "level": level, "description": description}


def gender_balanced(profiles: list[Profile]) -> bool:
    """Group-level gender rules for a candidate group.

    ``same-gender-only`` forbids two known genders in the group. When every
    gender is known, ``mixed`` needs at least two genders, and a two-gender
    group of 4 must split 2/2 (of 3, 2/1). Unknown genders skip the
    composition rules.
    """
    prefs = {p.gender_preference for p in profiles}
    known = {p.gender for p in profiles if p.gender}
    if "same-gender-only" in prefs and len(known) > 1:
        return False
    if any(not p.gender for p in profiles):
        return True

    counts = Counter(p.gender for p in profiles)
    if "mixed" in prefs and len(counts) < 2:
        return False
    if len(profiles) == 4 and len(counts) == 2:
        return all(c == 2 for c in counts.values())
    if len(profiles) == 3 and len(counts) == 2:
        return sorted(counts.values()) == [1, 2]
    return True
