import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import func, insert, select, update

from .models import MatchGroup, MatchGroupMember, MatchHistory, MatchingRun
from .services.formation import Group
from .services.history import MatchHistoryEntry
from .services.state_machine import RUN_FAILED, RUN_PENDING

_runs = MatchingRun.__table__
_groups = MatchGroup.__table__
_members = MatchGroupMember.__table__
_history = MatchHistory.__table__


def get_run_by_batch(db, batch_id: str) -> dict[str, Any] | None:
    row = db.execute(select(_runs).where(_runs.c.batch_id == batch_id)).mappings().first()
    return dict(row) if row else None


def get_latest_run(db) -> dict[str, Any] | None:
    row = db.execute(select(_runs).order_by(_runs.c.triggered_at.desc(), _runs.c.id.desc()).limit(1)).mappings().first()
    return dict(row) if row else None


def get_active_run(db) -> dict[str, Any] | None:
    row = db.execute(select(_runs).where(_runs.c.status == RUN_PENDING).limit(1)).mappings().first()
    return dict(row) if row else None


def list_runs(db, limit: int = 20) -> list[dict[str, Any]]:
    rows = db.execute(select(_runs).order_by(_runs.c.triggered_at.desc(), _runs.c.id.desc()).limit(limit)).mappings().all()
    return [dict(r) for r in rows]


def insert_pending_run(db, *, batch_id: str, trigger: str, week_start_date: date, triggered_at: datetime) -> str:
    run_id = str(uuid.uuid4())
    db.execute(
        insert(_runs).values(
            id=run_id,
            batch_id=batch_id,
            trigger=trigger,
            status=RUN_PENDING,
            week_start_date=week_start_date,
            triggered_at=triggered_at,
            input_pool_size=0,
            eligible_count=0,
            group_count=0,
            grouped_member_count=0,
            rollover_member_ids=[],
            bucket_summaries=[],
            eligibility_debug={},
            attempts=1,
        )
    )
    return run_id


def restart_failed_run(db, *, run_id: str, trigger: str, week_start_date: date, triggered_at: datetime) -> int:
    res = db.execute(
        update(_runs)
        .where(_runs.c.id == run_id, _runs.c.status == RUN_FAILED)
        .values(
            status=RUN_PENDING,
            trigger=trigger,
            week_start_date=week_start_date,
            triggered_at=triggered_at,
            finished_at=None,
            error=None,
            attempts=_runs.c.attempts + 1,
        )
    )
    return int(res.rowcount or 0)


def finalize_run(db, run_id: str, **values: Any) -> int:
    res = db.execute(update(_runs).where(_runs.c.id == run_id, _runs.c.status == RUN_PENDING).values(**values))
    return int(res.rowcount or 0)


def fetch_active_member_ids(db, now: datetime) -> set[str]:
    rows = db.execute(
        select(_members.c.member_id)
        .select_from(_members.join(_groups, _groups.c.id == _members.c.group_id))
        .where(_groups.c.expires_at > now)
    ).all()
    return {str(r[0]) for r in rows}


def fetch_history_entries(db, since: date, until: date) -> list[MatchHistoryEntry]:
    rows = db.execute(
        select(_history.c.member_a, _history.c.member_b, _history.c.week_start_date).where(
            _history.c.week_start_date >= since,
            _history.c.week_start_date <= until,
        )
    ).mappings().all()
    return [MatchHistoryEntry(member_a=str(r["member_a"]), member_b=str(r["member_b"]), week=r["week_start_date"]) for r in rows]


def insert_group(db, *, run_id: str, group: Group, created_at: datetime, expires_at: datetime) -> None:
    db.execute(
        insert(_groups).values(
            id=group.id,
            run_id=run_id,
            locality=group.locality,
            week_start_date=group.week,
            mean_score=group.mean_score,
            member_count=len(group.member_ids),
            created_at=created_at,
            expires_at=expires_at,
        )
    )
    db.execute(
        insert(_members),
        [{"group_id": group.id, "member_id": member_id, "position": pos} for pos, member_id in enumerate(group.member_ids)],
    )


def append_history(db, entries: list[MatchHistoryEntry], group_id: str | None = None) -> int:
    if not entries:
        return 0
    db.execute(
        insert(_history),
        [
            {
                "id": str(uuid.uuid4()),
                "member_a": e.member_a,
                "member_b": e.member_b,
                "week_start_date": e.week,
                "group_id": group_id,
            }
            for e in entries
        ],
    )
    return len(entries)


def fetch_groups_for_run(db, run_id: str) -> list[dict[str, Any]]:
    groups = db.execute(
        select(_groups).where(_groups.c.run_id == run_id).order_by(_groups.c.locality, _groups.c.created_at, _groups.c.id)
    ).mappings().all()
    if not groups:
        return []
    member_rows = db.execute(
        select(_members)
        .where(_members.c.group_id.in_([g["id"] for g in groups]))
        .order_by(_members.c.group_id, _members.c.position)
    ).mappings().all()
    by_group: dict[str, list[str]] = {}
    for row in member_rows:
        by_group.setdefault(str(row["group_id"]), []).append(str(row["member_id"]))
    return [{**dict(g), "member_ids": by_group.get(str(g["id"]), [])} for g in groups]


def count_history_entries(db) -> int:
    return int(db.execute(select(func.count()).select_from(_history)).scalar() or 0)
