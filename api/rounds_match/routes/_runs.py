from typing import Any

from fastapi import HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ..schemas import RunSummary
from ..services.errors import RunInProgressError
from ..services.state_machine import RUN_FAILED


def run_response(summary: dict[str, Any]) -> JSONResponse:
    body = jsonable_encoder(RunSummary(**summary))
    if summary.get("status") == RUN_FAILED:
        # Failure details stay in the logs and the stored run record.
        body.pop("error", None)
        return JSONResponse(status_code=503, content=body)
    return JSONResponse(status_code=200, content=body)


def conflict(exc: RunInProgressError) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={"message": "Matching run already in progress", "active_batch_id": exc.active_batch_id},
    )
