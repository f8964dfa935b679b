import logging
import time

from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from . import models  # noqa: F401  registers tables on Base.metadata
from .database import Base, SessionLocal, engine
from .routes import include_modular_routers
from .services.matching_config import load_matching_config

logger = logging.getLogger(__name__)

app = FastAPI(title="Rounds Match API")
include_modular_routers(app)


def wait_for_db(max_attempts: int = 20, delay_seconds: float = 1.5) -> None:
    last_err: Exception | None = None
    for _ in range(max_attempts):
        try:
            with SessionLocal() as db:
                db.execute(text("SELECT 1"))
                db.commit()
            return
        except OperationalError as exc:
            last_err = exc
            time.sleep(delay_seconds)
    if last_err:
        raise last_err


def create_tables() -> None:
    Base.metadata.create_all(bind=engine)


@app.on_event("startup")
def on_startup() -> None:
    # Invalid matching configuration must stop the service before any run.
    config = load_matching_config()
    wait_for_db()
    create_tables()
    logger.info(
        "[startup] matching config loaded min=%s max=%s threshold=%s cooldown_weeks=%s",
        config.min_group_size,
        config.max_group_size,
        config.acceptance_threshold,
        config.cooldown_weeks,
    )


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
