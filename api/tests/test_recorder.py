from datetime import date, datetime, timedelta, timezone

import pytest

from rounds_match import repo
from rounds_match.services.errors import MatchingError
from rounds_match.services.formation import BucketResult, Group, build_group_id
from rounds_match.services.recorder import assemble_run_record, record_completed_run, record_failed_run
from rounds_match.services.state_machine import RUN_COMPLETED, RUN_FAILED, RUN_INSUFFICIENT_POOL

NOW = datetime(2026, 3, 25, 12, 0, tzinfo=timezone.utc)
WEEK = date(2026, 3, 23)


def _group(*ids: str) -> Group:
    return Group(id=build_group_id(WEEK, "boston", ids), locality="boston", member_ids=ids, mean_score=0.72, week=WEEK)


def _record(run_id: str, groups: list[Group], unplaced: list[str]):
    result = BucketResult(locality="boston", state="formed", member_count=4, groups=groups, unplaced=unplaced)
    return assemble_run_record(
        batch_id="weekly-2026-03-23",
        run_id=run_id,
        trigger="scheduled",
        week_start_date=WEEK,
        triggered_at=NOW,
        input_pool_size=5,
        eligible_count=len(unplaced) + sum(len(g.member_ids) for g in groups),
        results=[result],
        eligibility_debug={"total_profiles": 5, "eligible": 4},
        duration_ms=12,
    )


def _pending(db) -> str:
    run_id = repo.insert_pending_run(db, batch_id="weekly-2026-03-23", trigger="scheduled", week_start_date=WEEK, triggered_at=NOW)
    db.commit()
    return run_id


def test_assemble_run_record_derives_status():
    assert _record("r1", [_group("a", "b", "c")], ["d"]).status == RUN_COMPLETED
    assert _record("r1", [], ["a", "b"]).status == RUN_INSUFFICIENT_POOL


def test_record_completed_run_writes_everything(session_factory):
    with session_factory() as db:
        run_id = _pending(db)
        record = _record(run_id, [_group("a", "b", "c")], ["d"])
        record_completed_run(db, record, now=NOW, group_active_days=7)
        db.commit()

    with session_factory() as db:
        row = repo.get_run_by_batch(db, "weekly-2026-03-23")
        groups = repo.fetch_groups_for_run(db, run_id)
        history = repo.fetch_history_entries(db, WEEK, WEEK)
        active = repo.fetch_active_member_ids(db, NOW + timedelta(days=6))
        expired = repo.fetch_active_member_ids(db, NOW + timedelta(days=8))

    assert row["status"] == RUN_COMPLETED
    assert row["group_count"] == 1
    assert row["grouped_member_count"] == 3
    assert row["rollover_member_ids"] == ["d"]
    assert row["duration_ms"] == 12
    assert groups[0]["member_ids"] == ["a", "b", "c"]
    assert {(h.member_a, h.member_b) for h in history} == {("a", "b"), ("a", "c"), ("b", "c")}
    assert active == {"a", "b", "c"}
    assert expired == set()


def test_rollback_leaves_no_partial_results(session_factory):
    with session_factory() as db:
        run_id = _pending(db)
        record_completed_run(db, _record(run_id, [_group("a", "b", "c")], []), now=NOW, group_active_days=7)
        db.rollback()

    with session_factory() as db:
        assert repo.fetch_groups_for_run(db, run_id) == []
        assert repo.count_history_entries(db) == 0
        assert repo.get_run_by_batch(db, "weekly-2026-03-23")["status"] == "pending"


def test_record_completed_run_refuses_a_finished_run(session_factory):
    with session_factory() as db:
        run_id = _pending(db)
        record_failed_run(db, run_id=run_id, batch_id="weekly-2026-03-23", error="boom", now=NOW)
        db.commit()

        with pytest.raises(MatchingError):
            record_completed_run(db, _record(run_id, [], ["a"]), now=NOW, group_active_days=7)
        db.rollback()

    with session_factory() as db:
        row = repo.get_run_by_batch(db, "weekly-2026-03-23")
    assert row["status"] == RUN_FAILED
    assert row["error"] == "boom"


def test_latest_and_list_runs(session_factory):
    with session_factory() as db:
        first = _pending(db)
        record_failed_run(db, run_id=first, batch_id="weekly-2026-03-23", error="boom", now=NOW)
        second = repo.insert_pending_run(db, batch_id="manual-1", trigger="manual", week_start_date=WEEK, triggered_at=NOW + timedelta(minutes=5))
        db.commit()

        assert repo.get_latest_run(db)["id"] == second
        assert repo.get_active_run(db)["id"] == second
        assert [r["batch_id"] for r in repo.list_runs(db, limit=10)] == ["manual-1", "weekly-2026-03-23"]
