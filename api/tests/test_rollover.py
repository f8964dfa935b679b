from datetime import date

import pytest

from rounds_match.services.errors import RolloverMismatchError
from rounds_match.services.formation import BucketResult, Group
from rounds_match.services.rollover import collect_groups, collect_rollover, verify_rollover_completeness

WEEK = date(2026, 3, 23)


def _group(*ids: str) -> Group:
    return Group(id="-".join(ids), locality="boston", member_ids=ids, mean_score=0.8, week=WEEK)


def test_rollover_is_sorted_union_of_unplaced():
    results = [
        BucketResult(locality="boston", state="formed", member_count=4, groups=[_group("a", "b", "c")], unplaced=["z"]),
        BucketResult(locality="chicago", state="insufficient_pool", member_count=2, unplaced=["y", "b2"]),
    ]
    assert collect_rollover(results) == ["b2", "y", "z"]
    assert [g.id for g in collect_groups(results)] == ["a-b-c"]


def test_complete_accounting_passes():
    verify_rollover_completeness(["a", "b", "c", "z"], [_group("a", "b", "c")], ["z"])


def test_missing_member_is_detected():
    with pytest.raises(RolloverMismatchError):
        verify_rollover_completeness(["a", "b", "c", "z"], [_group("a", "b", "c")], [])


def test_member_in_two_places_is_detected():
    with pytest.raises(RolloverMismatchError):
        verify_rollover_completeness(["a", "b", "c"], [_group("a", "b", "c")], ["a"])
    with pytest.raises(RolloverMismatchError):
        verify_rollover_completeness(["a", "b", "c"], [_group("a", "b"), _group("b", "c")], [])
