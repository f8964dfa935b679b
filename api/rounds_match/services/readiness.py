from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .eligibility import bucket_by_locality, eligibility_breakdown, filter_eligible
from .matching_config import MatchingConfig
from .profiles import Profile


def readiness_summary(
    profiles: Iterable[Profile],
    active_member_ids: Iterable[str],
    config: MatchingConfig,
) -> dict[str, Any]:
    """Pool sizes per locality without running formation."""
    profiles = list(profiles)
    active = set(active_member_ids)
    eligible = filter_eligible(profiles, active)
    buckets = bucket_by_locality(eligible)
    localities = [
        {
            "locality": locality,
            "pool_size": len(members),
            "meets_minimum": bool(locality) and len(members) >= config.min_group_size,
        }
        for locality, members in buckets.items()
    ]
    return {
        "eligible_count": len(eligible),
        "min_group_size": config.min_group_size,
        "localities": localities,
        "ready_locality_count": sum(1 for loc in localities if loc["meets_minimum"]),
        "eligibility_debug": eligibility_breakdown(profiles, active),
    }
