from datetime import date
from typing import Any

from .eligibility import bucket_by_locality, filter_eligible
from .formation import score_bucket
from .history import HistoryGuard, MatchHistoryEntry
from .matching_config import MatchingConfig
from .profiles import Profile


def _percentile(values: list[float], p: float) -> float | None:
    if not values:
        return None
    vals = sorted(values)
    if len(vals) == 1:
        return round(vals[0], 6)
    pos = (len(vals) - 1) * p
    lo = int(pos)
    hi = min(lo + 1, len(vals) - 1)
    frac = pos - lo
    v = vals[lo] * (1 - frac) + vals[hi] * frac
    return round(v, 6)


def percentile_summary(values: list[float]) -> dict[str, float | None]:
    return {
        "p10": _percentile(values, 0.10),
        "p25": _percentile(values, 0.25),
        "p50": _percentile(values, 0.50),
        "p75": _percentile(values, 0.75),
        "p90": _percentile(values, 0.90),
    }


def compute_calibration_report(
    profiles: list[Profile],
    *,
    active_member_ids: set[str],
    history: list[MatchHistoryEntry],
    week_start_date: date,
    config: MatchingConfig,
) -> dict[str, Any]:
    eligible = filter_eligible(profiles, active_member_ids)
    guard = HistoryGuard(history, week_start_date, config.cooldown_weeks)

    all_scores: list[float] = []
    best_by_member: dict[str, float] = {}
    blocked_total = 0
    localities: list[dict[str, Any]] = []
    for locality, members in bucket_by_locality(eligible).items():
        scores, blocked = score_bucket(members, guard, config)
        blocked_total += len(blocked)
        values = [p.score for p in scores.values()]
        all_scores.extend(values)
        for p in scores.values():
            best_by_member[p.member_a] = max(best_by_member.get(p.member_a, 0.0), p.score)
            best_by_member[p.member_b] = max(best_by_member.get(p.member_b, 0.0), p.score)
        localities.append(
            {
                "locality": locality,
                "pool_size": len(members),
                "pair_count": len(values),
                "blocked_pair_count": len(blocked),
                "percentiles": percentile_summary(values),
            }
        )

    above = sum(1 for s in all_scores if s >= config.acceptance_threshold)
    return {
        "week_start_date": str(week_start_date),
        "eligible_count": len(eligible),
        "acceptance_threshold": config.acceptance_threshold,
        "pair_score_distribution": {
            "count": len(all_scores),
            "above_threshold": above,
            "above_threshold_rate": round(above / len(all_scores), 6) if all_scores else 0.0,
            "percentiles": percentile_summary(all_scores),
        },
        "per_member_best_distribution": {
            "count": len(best_by_member),
            "percentiles": percentile_summary(list(best_by_member.values())),
        },
        "blocked_pair_count": blocked_total,
        "localities": localities,
    }
