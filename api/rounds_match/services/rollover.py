from __future__ import annotations

from collections.abc import Iterable

from .errors import RolloverMismatchError
from .formation import BucketResult, Group


def collect_rollover(results: Iterable[BucketResult]) -> list[str]:
    out: set[str] = set()
    for result in results:
        out.update(result.unplaced)
    return sorted(out)


def collect_groups(results: Iterable[BucketResult]) -> list[Group]:
    groups: list[Group] = []
    for result in results:
        groups.extend(result.groups)
    return groups


def verify_rollover_completeness(eligible_ids: Iterable[str], groups: list[Group], rollover: list[str]) -> None:
    eligible = sorted(eligible_ids)
    placed = [m for g in groups for m in g.member_ids]
    if len(placed) != len(set(placed)):
        raise RolloverMismatchError("A member was placed in more than one group")
    if set(placed) & set(rollover):
        raise RolloverMismatchError("A member is both grouped and rolled over")
    if sorted(placed + list(rollover)) != eligible:
        raise RolloverMismatchError(
            f"Rollover accounting mismatch: eligible={len(eligible)} grouped={len(placed)} rollover={len(rollover)}"
        )
