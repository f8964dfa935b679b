from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from .. import repo
from .errors import MatchingError
from .events import log_group_formed_event
from .formation import BucketResult, Group
from .history import history_entries_for_group
from .rollover import collect_groups, collect_rollover
from .state_machine import RUN_FAILED, terminal_run_status

logger = logging.getLogger(__name__)


@dataclass
class RunRecord:
    batch_id: str
    run_id: str
    trigger: str
    week_start_date: date
    triggered_at: datetime
    status: str
    input_pool_size: int = 0
    eligible_count: int = 0
    groups: list[Group] = field(default_factory=list)
    rollover_member_ids: list[str] = field(default_factory=list)
    bucket_summaries: list[dict[str, Any]] = field(default_factory=list)
    eligibility_debug: dict[str, int] = field(default_factory=dict)
    duration_ms: int | None = None
    attempts: int = 1
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "run_id": self.run_id,
            "trigger": self.trigger,
            "status": self.status,
            "week_start_date": self.week_start_date.isoformat(),
            "triggered_at": self.triggered_at.isoformat(),
            "input_pool_size": self.input_pool_size,
            "eligible_count": self.eligible_count,
            "group_count": len(self.groups),
            "grouped_member_count": sum(len(g.member_ids) for g in self.groups),
            "rollover_count": len(self.rollover_member_ids),
            "rollover_member_ids": list(self.rollover_member_ids),
            "groups": [
                {
                    "group_id": g.id,
                    "locality": g.locality,
                    "member_ids": list(g.member_ids),
                    "mean_score": g.mean_score,
                }
                for g in self.groups
            ],
            "bucket_summaries": list(self.bucket_summaries),
            "duration_ms": self.duration_ms,
            "attempts": self.attempts,
            "error": self.error,
        }


def assemble_run_record(
    *,
    batch_id: str,
    run_id: str,
    trigger: str,
    week_start_date: date,
    triggered_at: datetime,
    input_pool_size: int,
    eligible_count: int,
    results: list[BucketResult],
    eligibility_debug: dict[str, int] | None = None,
    duration_ms: int | None = None,
    attempts: int = 1,
) -> RunRecord:
    groups = collect_groups(results)
    return RunRecord(
        batch_id=batch_id,
        run_id=run_id,
        trigger=trigger,
        week_start_date=week_start_date,
        triggered_at=triggered_at,
        status=terminal_run_status(eligible_count, len(groups)),
        input_pool_size=input_pool_size,
        eligible_count=eligible_count,
        groups=groups,
        rollover_member_ids=collect_rollover(results),
        bucket_summaries=[r.summary() for r in results],
        eligibility_debug=dict(eligibility_debug or {}),
        duration_ms=duration_ms,
        attempts=attempts,
    )


def record_completed_run(
    db,
    record: RunRecord,
    *,
    now: datetime,
    group_active_days: int,
    finished_at: datetime | None = None,
) -> None:
    """Write groups, history, outbox events and the terminal run row.

    Runs inside the caller's transaction; the caller commits or rolls back.
    """
    expires_at = now + timedelta(days=group_active_days)
    history_rows = 0
    for group in record.groups:
        repo.insert_group(db, run_id=record.run_id, group=group, created_at=now, expires_at=expires_at)
        history_rows += repo.append_history(db, history_entries_for_group(group.member_ids, group.week), group_id=group.id)
        log_group_formed_event(db, group, record.week_start_date, now)

    updated = repo.finalize_run(
        db,
        record.run_id,
        status=record.status,
        finished_at=finished_at or now,
        input_pool_size=record.input_pool_size,
        eligible_count=record.eligible_count,
        group_count=len(record.groups),
        grouped_member_count=sum(len(g.member_ids) for g in record.groups),
        rollover_member_ids=list(record.rollover_member_ids),
        bucket_summaries=list(record.bucket_summaries),
        eligibility_debug=dict(record.eligibility_debug),
        duration_ms=record.duration_ms,
        error=None,
    )
    if updated != 1:
        raise MatchingError(f"Run {record.batch_id} is no longer pending; refusing to record results")
    logger.info(
        "[recorder] batch_id=%s status=%s groups=%s history_rows=%s rollover=%s",
        record.batch_id,
        record.status,
        len(record.groups),
        history_rows,
        len(record.rollover_member_ids),
    )


def record_failed_run(
    db,
    *,
    run_id: str,
    batch_id: str,
    error: str,
    now: datetime,
    input_pool_size: int = 0,
    eligible_count: int = 0,
    duration_ms: int | None = None,
) -> None:
    repo.finalize_run(
        db,
        run_id,
        status=RUN_FAILED,
        finished_at=now,
        input_pool_size=input_pool_size,
        eligible_count=eligible_count,
        group_count=0,
        grouped_member_count=0,
        rollover_member_ids=[],
        bucket_summaries=[],
        duration_ms=duration_ms,
        error=error[:2000],
    )
    logger.info("[recorder] batch_id=%s status=%s error=%s", batch_id, RUN_FAILED, error)
