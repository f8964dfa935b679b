from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Body, Header, HTTPException, Query
from fastapi.encoders import jsonable_encoder

from .. import repo
from ..config import ADMIN_TOKEN, DEV_MODE, MATCH_TIMEZONE, RUN_HISTORY_LIMIT
from ..database import SessionLocal
from ..deps import validate_admin_token
from ..schemas import TriggerRunRequest
from ..services.calibration import compute_calibration_report
from ..services.errors import RunInProgressError, SnapshotUnavailableError
from ..services.history import cooldown_window_start, get_week_start_date
from ..services.matching_config import load_matching_config
from ..services.profiles import SqlProfileSnapshotSource
from ..services.readiness import readiness_summary
from ..services.runner import TRIGGER_MANUAL, describe_run, trigger_matching_run
from ._runs import conflict, run_response

router = APIRouter()


def _validate_admin_token(token: str | None) -> None:
    validate_admin_token(token, ADMIN_TOKEN, dev_mode=DEV_MODE)


def _json(data: Any) -> Any:
    return jsonable_encoder(data)


@router.post("/admin/matching/run")
def admin_run_matching(
    payload: TriggerRunRequest | None = Body(default=None),
    x_admin_token: str | None = Header(default=None),
):
    _validate_admin_token(x_admin_token)
    payload = payload or TriggerRunRequest()
    try:
        out = trigger_matching_run(
            trigger=TRIGGER_MANUAL,
            batch_id=payload.batch_id,
            week_start_override=payload.week_start_date,
            session_factory=SessionLocal,
        )
    except RunInProgressError as exc:
        raise conflict(exc)
    return run_response(out)


@router.get("/admin/matching/runs")
def admin_list_runs(
    limit: int = Query(default=RUN_HISTORY_LIMIT, ge=1, le=200),
    x_admin_token: str | None = Header(default=None),
) -> dict[str, Any]:
    _validate_admin_token(x_admin_token)
    with SessionLocal() as db:
        runs = [describe_run(db, row, include_groups=False) for row in repo.list_runs(db, limit=limit)]
    return _json({"runs": runs, "count": len(runs)})


@router.get("/admin/matching/runs/{batch_id}")
def admin_get_run(batch_id: str, x_admin_token: str | None = Header(default=None)) -> dict[str, Any]:
    _validate_admin_token(x_admin_token)
    with SessionLocal() as db:
        row = repo.get_run_by_batch(db, batch_id)
        if not row:
            raise HTTPException(status_code=404, detail="Run not found")
        return _json(describe_run(db, row))


@router.get("/admin/matching/readiness")
def admin_matching_readiness(x_admin_token: str | None = Header(default=None)) -> dict[str, Any]:
    _validate_admin_token(x_admin_token)
    config = load_matching_config()
    now = datetime.now(timezone.utc)
    with SessionLocal() as db:
        try:
            profiles = SqlProfileSnapshotSource(db).fetch_profiles()
        except SnapshotUnavailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc))
        active_ids = repo.fetch_active_member_ids(db, now)
        latest = repo.get_latest_run(db)

    out = readiness_summary(profiles, active_ids, config)
    out["week_start_date"] = str(get_week_start_date(now, MATCH_TIMEZONE))
    out["latest_run"] = (
        {
            "batch_id": latest["batch_id"],
            "status": latest["status"],
            "rollover_count": len(latest.get("rollover_member_ids") or []),
        }
        if latest
        else None
    )
    return _json(out)


@router.get("/admin/matching/calibration")
def admin_matching_calibration(x_admin_token: str | None = Header(default=None)) -> dict[str, Any]:
    _validate_admin_token(x_admin_token)
    config = load_matching_config()
    now = datetime.now(timezone.utc)
    week = get_week_start_date(now, MATCH_TIMEZONE)
    with SessionLocal() as db:
        try:
            profiles = SqlProfileSnapshotSource(db).fetch_profiles()
        except SnapshotUnavailableError as exc:
            raise HTTPException(status_code=503, detail=str(exc))
        active_ids = repo.fetch_active_member_ids(db, now)
        history = repo.fetch_history_entries(db, cooldown_window_start(week, config.cooldown_weeks), week)

    report = compute_calibration_report(
        profiles,
        active_member_ids=active_ids,
        history=history,
        week_start_date=week,
        config=config,
    )
    return _json(report)
