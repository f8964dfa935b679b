from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy.exc import IntegrityError

from .. import repo
from ..config import GROUP_ACTIVE_DAYS, MATCH_TIMEZONE
from ..database import SessionLocal
from .eligibility import bucket_by_locality, eligibility_breakdown, filter_eligible
from .errors import RunInProgressError, RunTimeoutError
from .formation import form_all_buckets
from .history import HistoryGuard, cooldown_window_start, get_week_start_date, week_start_of
from .matching_config import MatchingConfig, load_matching_config
from .profiles import ProfileSnapshotSource, SqlProfileSnapshotSource
from .recorder import assemble_run_record, record_completed_run, record_failed_run
from .rollover import verify_rollover_completeness
from .state_machine import RUN_COMPLETED, RUN_FAILED, RUN_INSUFFICIENT_POOL

logger = logging.getLogger(__name__)

TRIGGER_SCHEDULED = "scheduled"
TRIGGER_MANUAL = "manual"
TRIGGERS = {TRIGGER_SCHEDULED, TRIGGER_MANUAL}

# In-process half of the single-active-run rule; the pending row covers other processes.
_run_lock = threading.Lock()


def default_batch_id(trigger: str, week_start_date: date) -> str:
    if trigger == TRIGGER_SCHEDULED:
        return f"weekly-{week_start_date.isoformat()}"
    return f"manual-{uuid.uuid4()}"


def describe_run(db, row: dict[str, Any], include_groups: bool = True) -> dict[str, Any]:
    out = {
        "batch_id": row["batch_id"],
        "run_id": row["id"],
        "trigger": row["trigger"],
        "status": row["status"],
        "week_start_date": str(row["week_start_date"]),
        "triggered_at": row["triggered_at"].isoformat() if row.get("triggered_at") else None,
        "finished_at": row["finished_at"].isoformat() if row.get("finished_at") else None,
        "input_pool_size": int(row.get("input_pool_size") or 0),
        "eligible_count": int(row.get("eligible_count") or 0),
        "group_count": int(row.get("group_count") or 0),
        "grouped_member_count": int(row.get("grouped_member_count") or 0),
        "rollover_count": len(row.get("rollover_member_ids") or []),
        "rollover_member_ids": list(row.get("rollover_member_ids") or []),
        "bucket_summaries": list(row.get("bucket_summaries") or []),
        "duration_ms": row.get("duration_ms"),
        "attempts": int(row.get("attempts") or 1),
        "error": row.get("error"),
    }
    if include_groups:
        out["groups"] = [
            {
                "group_id": g["id"],
                "locality": g["locality"],
                "member_ids": g["member_ids"],
                "mean_score": float(g["mean_score"]),
            }
            for g in repo.fetch_groups_for_run(db, row["id"])
        ]
    return out


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _check_deadline(deadline: float, stage: str) -> None:
    if time.monotonic() > deadline:
        raise RunTimeoutError(f"Matching run exceeded its time budget during {stage}")


def _claim_run(db, *, batch_id: str, trigger: str, week: date, now: datetime) -> tuple[str, int] | dict[str, Any]:
    existing = repo.get_run_by_batch(db, batch_id)
    if existing and existing["status"] in {RUN_COMPLETED, RUN_INSUFFICIENT_POOL}:
        logger.info("[matching] batch_id=%s already %s; returning stored record", batch_id, existing["status"])
        return {**describe_run(db, existing), "replayed": True}

    active = repo.get_active_run(db)
    if active:
        logger.warning(
            "[matching] skipped trigger=%s batch_id=%s: run %s is still pending",
            trigger,
            batch_id,
            active["batch_id"],
        )
        raise RunInProgressError(str(active["batch_id"]))

    try:
        if existing:
            repo.restart_failed_run(db, run_id=existing["id"], trigger=trigger, week_start_date=week, triggered_at=now)
            claimed = (str(existing["id"]), int(existing.get("attempts") or 1) + 1)
        else:
            claimed = (repo.insert_pending_run(db, batch_id=batch_id, trigger=trigger, week_start_date=week, triggered_at=now), 1)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("[matching] skipped trigger=%s batch_id=%s: lost race for the active-run marker", trigger, batch_id)
        raise RunInProgressError(None) from exc
    return claimed


def _execute_run(
    *,
    run_id: str,
    attempts: int,
    batch_id: str,
    trigger: str,
    week: date,
    now: datetime,
    config: MatchingConfig,
    session_factory: Callable[[], Any],
    snapshot_source_factory: Callable[[Any], ProfileSnapshotSource],
) -> dict[str, Any]:
    started = time.monotonic()
    deadline = started + config.run_timeout_seconds
    input_pool_size = 0
    eligible_count = 0

    with session_factory() as db:
        try:
            profiles = snapshot_source_factory(db).fetch_profiles()
            input_pool_size = len(profiles)
            active_ids = repo.fetch_active_member_ids(db, now)
            eligible = filter_eligible(profiles, active_ids)
            eligible_count = len(eligible)
            history = repo.fetch_history_entries(db, cooldown_window_start(week, config.cooldown_weeks), week)
            guard = HistoryGuard(history, week, config.cooldown_weeks)
            _check_deadline(deadline, "snapshot")

            results = form_all_buckets(bucket_by_locality(eligible), guard, config, week, deadline=deadline)
            record = assemble_run_record(
                batch_id=batch_id,
                run_id=run_id,
                trigger=trigger,
                week_start_date=week,
                triggered_at=now,
                input_pool_size=input_pool_size,
                eligible_count=eligible_count,
                results=results,
                eligibility_debug=eligibility_breakdown(profiles, active_ids),
                attempts=attempts,
            )
            verify_rollover_completeness([m.id for m in eligible], record.groups, record.rollover_member_ids)

            record.duration_ms = _elapsed_ms(started)
            record_completed_run(
                db,
                record,
                now=now,
                group_active_days=GROUP_ACTIVE_DAYS,
                finished_at=datetime.now(timezone.utc),
            )
            _check_deadline(deadline, "recording")
            db.commit()
        except Exception as exc:
            db.rollback()
            logger.exception("[matching] batch_id=%s failed: %s", batch_id, exc)
            error = f"{type(exc).__name__}: {exc}"
        else:
            logger.info(
                "[matching] batch_id=%s trigger=%s status=%s eligible=%s groups=%s rollover=%s duration_ms=%s",
                batch_id,
                trigger,
                record.status,
                eligible_count,
                len(record.groups),
                len(record.rollover_member_ids),
                record.duration_ms,
            )
            return {**record.as_dict(), "replayed": False}

    duration_ms = _elapsed_ms(started)
    with session_factory() as db:
        record_failed_run(
            db,
            run_id=run_id,
            batch_id=batch_id,
            error=error,
            now=datetime.now(timezone.utc),
            input_pool_size=input_pool_size,
            eligible_count=eligible_count,
            duration_ms=duration_ms,
        )
        db.commit()
    return {
        "batch_id": batch_id,
        "run_id": run_id,
        "trigger": trigger,
        "status": RUN_FAILED,
        "week_start_date": week.isoformat(),
        "triggered_at": now.isoformat(),
        "input_pool_size": input_pool_size,
        "eligible_count": eligible_count,
        "group_count": 0,
        "grouped_member_count": 0,
        "rollover_count": 0,
        "rollover_member_ids": [],
        "groups": [],
        "bucket_summaries": [],
        "duration_ms": duration_ms,
        "attempts": attempts,
        "error": error,
        "replayed": False,
    }


def trigger_matching_run(
    *,
    trigger: str,
    now: datetime | None = None,
    batch_id: str | None = None,
    config: MatchingConfig | None = None,
    week_start_override: date | None = None,
    session_factory: Callable[[], Any] | None = None,
    snapshot_source_factory: Callable[[Any], ProfileSnapshotSource] | None = None,
) -> dict[str, Any]:
    """Single entry point for scheduled and manual matching runs.

    Raises ``RunInProgressError`` when another run holds the active-run
    marker; no run record is written in that case. Every other failure is
    recorded as a ``failed`` run and reported in the returned summary.
    """
    if trigger not in TRIGGERS:
        raise ValueError(f"Unknown trigger: {trigger}")
    now = now or datetime.now(timezone.utc)
    config = config or load_matching_config()
    session_factory = session_factory or SessionLocal
    snapshot_source_factory = snapshot_source_factory or SqlProfileSnapshotSource
    if week_start_override is not None:
        week = week_start_of(week_start_override)
    else:
        week = get_week_start_date(now, MATCH_TIMEZONE)
    batch_id = (batch_id or "").strip() or default_batch_id(trigger, week)

    if not _run_lock.acquire(blocking=False):
        logger.warning("[matching] skipped trigger=%s batch_id=%s: a run is active in this process", trigger, batch_id)
        raise RunInProgressError(None)
    try:
        with session_factory() as db:
            claimed = _claim_run(db, batch_id=batch_id, trigger=trigger, week=week, now=now)
        if isinstance(claimed, dict):
            return claimed
        run_id, attempts = claimed
        logger.info("[matching] started batch_id=%s trigger=%s week=%s attempt=%s", batch_id, trigger, week, attempts)
        return _execute_run(
            run_id=run_id,
            attempts=attempts,
            batch_id=batch_id,
            trigger=trigger,
            week=week,
            now=now,
            config=config,
            session_factory=session_factory,
            snapshot_source_factory=snapshot_source_factory,
        )
    finally:
        _run_lock.release()
