import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import insert, select, update

from ..models import GroupEventOutbox
from .formation import Group
from .scoring import describe_compatibility

GROUP_FORMED = "group_formed"


def group_formed_payload(group: Group) -> dict[str, Any]:
    return {
        "group_id": group.id,
        "member_ids": list(group.member_ids),
        "locality": group.locality,
        "week_start_date": group.week.isoformat(),
        "mean_score": group.mean_score,
        "compatibility": describe_compatibility(group.mean_score),
    }


def log_group_formed_event(db, group: Group, week_start_date: date, now: datetime) -> None:
    db.execute(
        insert(GroupEventOutbox.__table__).values(
            id=str(uuid.uuid4()),
            group_id=group.id,
            event_type=GROUP_FORMED,
            payload=group_formed_payload(group),
            week_start_date=week_start_date,
            created_at=now,
        )
    )


def fetch_undelivered_events(db, limit: int = 100) -> list[dict[str, Any]]:
    table = GroupEventOutbox.__table__
    rows = db.execute(
        select(table).where(table.c.delivered_at.is_(None)).order_by(table.c.created_at, table.c.id).limit(limit)
    ).mappings().all()
    return [dict(r) for r in rows]


def mark_event_delivered(db, event_id: str, now: datetime) -> int:
    table = GroupEventOutbox.__table__
    res = db.execute(update(table).where(table.c.id == event_id, table.c.delivered_at.is_(None)).values(delivered_at=now))
    return int(res.rowcount or 0)
