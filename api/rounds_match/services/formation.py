from __future__ import annotations

import logging
import time
import uuid
from collections import deque
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from .errors import RunTimeoutError
from .history import HistoryGuard
from .matching_config import MatchingConfig
from .profiles import EligibleMember, Profile
from .scoring import PairScore, canonical_pair, gender_balanced, gender_compatible, score_pair
from .state_machine import BUCKET_PENDING, transition_bucket

logger = logging.getLogger(__name__)

GROUP_ID_NAMESPACE = uuid.UUID("6f0c7c1e-3d5a-4b8e-9a61-2f4d8e0b5c37")


@dataclass(frozen=True)
class Group:
    id: str
    locality: str
    member_ids: tuple[str, ...]
    mean_score: float
    week: date

    def pairs(self) -> list[tuple[str, str]]:
        ids = self.member_ids
        return [canonical_pair(ids[i], ids[j]) for i in range(len(ids)) for j in range(i + 1, len(ids))]


@dataclass
class BucketResult:
    locality: str
    state: str
    member_count: int
    groups: list[Group] = field(default_factory=list)
    unplaced: list[str] = field(default_factory=list)
    pair_count: int = 0
    blocked_pair_count: int = 0

    def summary(self) -> dict[str, Any]:
        return {
            "locality": self.locality,
            "state": self.state,
            "member_count": self.member_count,
            "group_count": len(self.groups),
            "grouped_member_count": sum(len(g.member_ids) for g in self.groups),
            "rollover_count": len(self.unplaced),
            "pair_count": self.pair_count,
            "blocked_pair_count": self.blocked_pair_count,
        }


def build_group_id(week: date, locality: str, member_ids: tuple[str, ...]) -> str:
    return str(uuid.uuid5(GROUP_ID_NAMESPACE, f"{week.isoformat()}|{locality}|{','.join(member_ids)}"))


def score_bucket(
    members: list[EligibleMember],
    guard: HistoryGuard,
    config: MatchingConfig,
) -> tuple[dict[tuple[str, str], PairScore], set[tuple[str, str]]]:
    """Score every pair in the bucket; blocked pairs get no score at all."""
    scores: dict[tuple[str, str], PairScore] = {}
    blocked: set[tuple[str, str]] = set()
    for i in range(len(members)):
        for j in range(i + 1, len(members)):
            u = members[i]
            v = members[j]
            key = canonical_pair(u.id, v.id)
            if guard.is_blocked(u.id, v.id):
                blocked.add(key)
                continue
            if config.respect_gender_preferences and not gender_compatible(u.profile, v.profile):
                blocked.add(key)
                continue
            scores[key] = score_pair(u, v, config)
    return scores, blocked


def _mean_with(candidate: str, group: list[str], scores: dict[tuple[str, str], PairScore]) -> float | None:
    total = 0.0
    for member in group:
        pair = scores.get(canonical_pair(candidate, member))
        if pair is None:
            return None
        total += pair.score
    return round(total / len(group), 6)


def group_mean_score(member_ids: list[str] | tuple[str, ...], scores: dict[tuple[str, str], PairScore]) -> float:
    values = [
        scores[canonical_pair(member_ids[i], member_ids[j])].score
        for i in range(len(member_ids))
        for j in range(i + 1, len(member_ids))
    ]
    if not values:
        return 0.0
    return round(sum(values) / len(values), 6)


def _best_attachment(
    candidate: str,
    groups: list[list[str]],
    scores: dict[tuple[str, str], PairScore],
    config: MatchingConfig,
    profiles: dict[str, Profile] | None = None,
) -> int | None:
    best_key: tuple[float, int, str] | None = None
    best_idx: int | None = None
    for idx, group in enumerate(groups):
        if len(group) >= config.max_group_size:
            continue
        mean = _mean_with(candidate, group, scores)
        if mean is None or mean < config.acceptance_threshold:
            continue
        if not _balanced(group + [candidate], profiles, config):
            continue
        # Higher mean, then smaller group, then smaller member id.
        key = (-mean, len(group), min(group))
        if best_key is None or key < best_key:
            best_key = key
            best_idx = idx
    return best_idx


def _balanced(member_ids: list[str], profiles: dict[str, Profile] | None, config: MatchingConfig) -> bool:
    # Composition is only judged once a group is big enough to be kept.
    if profiles is None or len(member_ids) < config.min_group_size:
        return True
    return gender_balanced([profiles[m] for m in member_ids])


def _next_seed(ordered: list[PairScore], placed: dict[str, int]) -> PairScore | None:
    for pair in ordered:
        if pair.member_a not in placed and pair.member_b not in placed:
            return pair
    return None


def greedy_partition(
    member_ids: list[str],
    scores: dict[tuple[str, str], PairScore],
    config: MatchingConfig,
    profiles: dict[str, Profile] | None = None,
) -> tuple[list[list[str]], list[str]]:
    """Greedy seed-and-attach clustering over one bucket.

    ``profiles`` enables the group-level gender rules; pass ``None`` to skip
    them. Returns the kept groups and the sorted unplaced member ids.
    """
    ordered = sorted(scores.values(), key=lambda p: (-p.score, p.member_a, p.member_b))
    best: dict[str, float] = {}
    for pair in ordered:
        best.setdefault(pair.member_a, pair.score)
        best.setdefault(pair.member_b, pair.score)

    groups: list[list[str]] = []
    placed: dict[str, int] = {}

    def open_group(pair: PairScore) -> None:
        groups.append([pair.member_a, pair.member_b])
        placed[pair.member_a] = len(groups) - 1
        placed[pair.member_b] = len(groups) - 1

    if ordered:
        open_group(ordered[0])

    queue = deque(sorted(member_ids, key=lambda m: (-best.get(m, -1.0), m)))
    while queue:
        member = queue.popleft()
        if member in placed:
            continue
        target = _best_attachment(member, groups, scores, config, profiles)
        if target is not None:
            groups[target].append(member)
            placed[member] = target
            continue
        others_unplaced = len(member_ids) - len(placed) - 1
        if others_unplaced >= config.min_group_size - 1:
            seed = _next_seed(ordered, placed)
            if seed is not None:
                open_group(seed)
                if member not in placed:
                    # The new group may suit this member; try it again.
                    queue.appendleft(member)

    kept = [g for g in groups if len(g) >= config.min_group_size and _balanced(g, profiles, config)]
    grouped = {m for g in kept for m in g}
    unplaced = sorted(m for m in member_ids if m not in grouped)
    return kept, unplaced


def form_bucket(
    locality: str,
    members: list[EligibleMember],
    guard: HistoryGuard,
    config: MatchingConfig,
    week: date,
) -> BucketResult:
    state = BUCKET_PENDING
    member_ids = sorted(m.id for m in members)

    if not locality or len(member_ids) < config.min_group_size:
        state = transition_bucket(state, "too_small")
        logger.info(
            "[formation] insufficient pool locality=%r members=%s min_group_size=%s",
            locality,
            len(member_ids),
            config.min_group_size,
        )
        return BucketResult(locality=locality, state=state, member_count=len(member_ids), unplaced=member_ids)

    state = transition_bucket(state, "start")
    ordered_members = sorted(members, key=lambda m: m.id)
    scores, blocked = score_bucket(ordered_members, guard, config)
    state = transition_bucket(state, "scored")

    profiles = {m.id: m.profile for m in ordered_members} if config.respect_gender_preferences else None
    partition, unplaced = greedy_partition(member_ids, scores, config, profiles)
    groups = []
    for ids in partition:
        member_tuple = tuple(ids)
        groups.append(
            Group(
                id=build_group_id(week, locality, member_tuple),
                locality=locality,
                member_ids=member_tuple,
                mean_score=group_mean_score(member_tuple, scores),
                week=week,
            )
        )
    state = transition_bucket(state, "formed")
    logger.info(
        "[formation] locality=%r members=%s pairs=%s blocked=%s groups=%s rollover=%s",
        locality,
        len(member_ids),
        len(scores),
        len(blocked),
        len(groups),
        len(unplaced),
    )
    return BucketResult(
        locality=locality,
        state=state,
        member_count=len(member_ids),
        groups=groups,
        unplaced=unplaced,
        pair_count=len(scores),
        blocked_pair_count=len(blocked),
    )


def form_all_buckets(
    buckets: dict[str, list[EligibleMember]],
    guard: HistoryGuard,
    config: MatchingConfig,
    week: date,
    deadline: float | None = None,
) -> list[BucketResult]:
    """Form every locality bucket concurrently; results come back in locality order.

    ``deadline`` is a ``time.monotonic()`` value. Raises ``RunTimeoutError``
    when it passes before every bucket has finished.
    """
    if not buckets:
        return []

    executor = ThreadPoolExecutor(max_workers=min(config.max_workers, len(buckets)), thread_name_prefix="bucket")
    try:
        futures = {
            locality: executor.submit(form_bucket, locality, members, guard, config, week)
            for locality, members in sorted(buckets.items())
        }
        timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
        done, not_done = wait(futures.values(), timeout=timeout, return_when=FIRST_EXCEPTION)
        if not_done:
            failed = [f for f in done if f.exception() is not None]
            if failed:
                raise failed[0].exception()
            raise RunTimeoutError(f"Group formation exceeded its time budget ({len(not_done)} buckets unfinished)")
        return [futures[locality].result() for locality in sorted(futures)]
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
