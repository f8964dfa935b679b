from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

import rounds_match.services.runner as runner
from conftest import profile_row
from rounds_match import models, repo
from rounds_match.services.errors import RunInProgressError, RunTimeoutError, SnapshotUnavailableError
from rounds_match.services.matching_config import MatchingConfig
from rounds_match.services.state_machine import RUN_COMPLETED, RUN_FAILED, RUN_INSUFFICIENT_POOL

NOW = datetime(2026, 3, 25, 12, 0, tzinfo=timezone.utc)
WEEK = date(2026, 3, 23)


def _count(session_factory, model) -> int:
    with session_factory() as db:
        return int(db.execute(select(func.count()).select_from(model.__table__)).scalar())


def _run(session_factory, **kwargs):
    kwargs.setdefault("trigger", runner.TRIGGER_SCHEDULED)
    kwargs.setdefault("now", NOW)
    kwargs.setdefault("config", MatchingConfig())
    return runner.trigger_matching_run(session_factory=session_factory, **kwargs)


class _BrokenSnapshot:
    def __init__(self, db):
        pass

    def fetch_profiles(self):
        raise SnapshotUnavailableError("profile service unreachable")


@pytest.fixture
def pool(insert_profiles):
    insert_profiles(
        [profile_row(m) for m in ("b1", "b2", "b3", "b4")]
        + [profile_row(m, city="Chicago") for m in ("c1", "c2")]
        + [profile_row("u1", is_verified=False)]
    )


def test_scheduled_run_records_groups_history_and_events(session_factory, pool):
    out = _run(session_factory)

    assert out["status"] == RUN_COMPLETED
    assert out["batch_id"] == "weekly-2026-03-23"
    assert out["week_start_date"] == "2026-03-23"
    assert out["input_pool_size"] == 7
    assert out["eligible_count"] == 6
    assert out["group_count"] == 1
    assert out["groups"][0]["member_ids"] == ["b1", "b2", "b3", "b4"]
    assert out["rollover_member_ids"] == ["c1", "c2"]
    assert out["replayed"] is False

    assert _count(session_factory, models.MatchGroup) == 1
    assert _count(session_factory, models.MatchGroupMember) == 4
    assert _count(session_factory, models.MatchHistory) == 6
    assert _count(session_factory, models.GroupEventOutbox) == 1

    with session_factory() as db:
        row = repo.get_run_by_batch(db, "weekly-2026-03-23")
    assert row["status"] == RUN_COMPLETED
    assert row["eligibility_debug"]["not_verified"] == 1
    assert row["rollover_member_ids"] == ["c1", "c2"]


def test_same_batch_id_replays_stored_record(session_factory, pool):
    first = _run(session_factory)
    second = _run(session_factory, now=NOW + timedelta(hours=1))

    assert second["replayed"] is True
    assert second["run_id"] == first["run_id"]
    assert second["groups"] == first["groups"]
    assert _count(session_factory, models.MatchingRun) == 1
    assert _count(session_factory, models.MatchHistory) == 6


def test_week_override_is_moved_back_to_monday(session_factory, pool):
    out = _run(session_factory, week_start_override=date(2026, 3, 25))
    assert out["week_start_date"] == "2026-03-23"
    assert out["batch_id"] == "weekly-2026-03-23"


def test_no_eligible_members_is_insufficient_pool(session_factory, insert_profiles):
    insert_profiles([profile_row("x", is_subscribed=False)])
    out = _run(session_factory)
    assert out["status"] == RUN_INSUFFICIENT_POOL
    assert out["eligible_count"] == 0
    assert out["groups"] == []


def test_pending_run_blocks_a_second_trigger(session_factory, pool):
    with session_factory() as db:
        repo.insert_pending_run(db, batch_id="manual-running", trigger="manual", week_start_date=WEEK, triggered_at=NOW)
        db.commit()

    with pytest.raises(RunInProgressError) as exc_info:
        _run(session_factory)

    assert exc_info.value.active_batch_id == "manual-running"
    assert _count(session_factory, models.MatchingRun) == 1


def test_in_process_lock_blocks_a_second_trigger(session_factory, pool):
    assert runner._run_lock.acquire(blocking=False)
    try:
        with pytest.raises(RunInProgressError):
            _run(session_factory)
    finally:
        runner._run_lock.release()
    assert _count(session_factory, models.MatchingRun) == 0


def test_snapshot_failure_records_failed_run(session_factory, pool):
    out = _run(session_factory, snapshot_source_factory=_BrokenSnapshot)

    assert out["status"] == RUN_FAILED
    assert "SnapshotUnavailableError" in out["error"]
    with session_factory() as db:
        row = repo.get_run_by_batch(db, out["batch_id"])
    assert row["status"] == RUN_FAILED
    assert row["finished_at"] is not None
    assert _count(session_factory, models.MatchGroup) == 0


def test_timeout_records_failed_run_and_persists_nothing_else(monkeypatch, session_factory, pool):
    def timed_out(*args, **kwargs):
        raise RunTimeoutError("Group formation exceeded its time budget")

    monkeypatch.setattr(runner, "form_all_buckets", timed_out)
    out = _run(session_factory)

    assert out["status"] == RUN_FAILED
    assert out["eligible_count"] == 6
    assert _count(session_factory, models.MatchGroup) == 0
    assert _count(session_factory, models.MatchHistory) == 0
    assert _count(session_factory, models.GroupEventOutbox) == 0


def test_failed_batch_can_be_retried(session_factory, pool):
    failed = _run(session_factory, snapshot_source_factory=_BrokenSnapshot)
    retried = _run(session_factory)

    assert failed["status"] == RUN_FAILED
    assert retried["status"] == RUN_COMPLETED
    assert retried["run_id"] == failed["run_id"]
    assert retried["attempts"] == 2
    assert _count(session_factory, models.MatchingRun) == 1


def test_grouped_members_are_not_regrouped_next_week(session_factory, pool):
    _run(session_factory)
    out = _run(session_factory, now=NOW + timedelta(days=7))

    assert out["batch_id"] == "weekly-2026-03-30"
    assert out["eligible_count"] == 6
    assert out["status"] == RUN_INSUFFICIENT_POOL
    assert sorted(out["rollover_member_ids"]) == ["b1", "b2", "b3", "b4", "c1", "c2"]


def test_members_in_active_group_are_not_eligible(session_factory, pool):
    _run(session_factory)
    out = _run(session_factory, trigger=runner.TRIGGER_MANUAL, now=NOW + timedelta(days=1))

    assert out["batch_id"].startswith("manual-")
    assert out["eligible_count"] == 2
    assert out["rollover_member_ids"] == ["c1", "c2"]


def test_unknown_trigger_is_rejected(session_factory):
    with pytest.raises(ValueError):
        _run(session_factory, trigger="hourly")
