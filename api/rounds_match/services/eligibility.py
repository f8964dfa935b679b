from __future__ import annotations

from collections.abc import Iterable

from .profiles import EligibleMember, Profile, normalize_locality


def _failed_rules(profile: Profile, active_member_ids: set[str] | frozenset[str]) -> list[str]:
    failed: list[str] = []
    if not profile.verified:
        failed.append("not_verified")
    if not profile.subscribed:
        failed.append("not_subscribed")
    if not profile.onboarding_complete:
        failed.append("onboarding_incomplete")
    if profile.id in active_member_ids:
        failed.append("in_active_group")
    return failed


def is_eligible(profile: Profile, active_member_ids: set[str] | frozenset[str] = frozenset()) -> bool:
    return not _failed_rules(profile, active_member_ids)


def unique_profiles(profiles: Iterable[Profile]) -> list[Profile]:
    # Snapshot may contain the same profile twice; the first wins.
    seen: set[str] = set()
    out: list[Profile] = []
    for profile in profiles:
        if profile.id in seen:
            continue
        seen.add(profile.id)
        out.append(profile)
    return sorted(out, key=lambda p: p.id)


def filter_eligible(
    profiles: Iterable[Profile],
    active_member_ids: Iterable[str] = (),
) -> list[EligibleMember]:
    active = frozenset(active_member_ids)
    out: list[EligibleMember] = []
    for profile in unique_profiles(profiles):
        if _failed_rules(profile, active):
            continue
        out.append(EligibleMember(profile=profile, eligible=True, locality=normalize_locality(profile.city)))
    return out


def eligibility_breakdown(
    profiles: Iterable[Profile],
    active_member_ids: Iterable[str] = (),
) -> dict[str, int]:
    active = frozenset(active_member_ids)
    counts = {
        "total_profiles": 0,
        "not_verified": 0,
        "not_subscribed": 0,
        "onboarding_incomplete": 0,
        "in_active_group": 0,
        "eligible": 0,
    }
    for profile in unique_profiles(profiles):
        counts["total_profiles"] += 1
        failed = _failed_rules(profile, active)
        for rule in failed:
            counts[rule] += 1
        if not failed:
            counts["eligible"] += 1
    return counts


def bucket_by_locality(members: Iterable[EligibleMember]) -> dict[str, list[EligibleMember]]:
    buckets: dict[str, list[EligibleMember]] = {}
    for member in members:
        buckets.setdefault(member.locality, []).append(member)
    for locality in buckets:
        buckets[locality].sort(key=lambda m: m.id)
    return dict(sorted(buckets.items()))
