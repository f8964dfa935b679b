from fastapi import APIRouter, Header

from ..config import CRON_SECRET
from ..database import SessionLocal
from ..deps import validate_cron_secret
from ..services.errors import RunInProgressError
from ..services.runner import TRIGGER_SCHEDULED, trigger_matching_run
from ._runs import conflict, run_response

router = APIRouter()


@router.post("/cron/weekly-matching")
def cron_weekly_matching(authorization: str | None = Header(default=None)):
    validate_cron_secret(authorization, CRON_SECRET)
    try:
        out = trigger_matching_run(trigger=TRIGGER_SCHEDULED, session_factory=SessionLocal)
    except RunInProgressError as exc:
        raise conflict(exc)
    return run_response(out)
