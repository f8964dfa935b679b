from datetime import date
from typing import Any

from pydantic import BaseModel, Field


class TriggerRunRequest(BaseModel):
    batch_id: str | None = Field(default=None, max_length=128)
    week_start_date: date | None = None


class GroupOut(BaseModel):
    group_id: str
    locality: str
    member_ids: list[str]
    mean_score: float


class RunSummary(BaseModel):
    batch_id: str
    run_id: str
    trigger: str
    status: str
    week_start_date: str
    triggered_at: str | None = None
    finished_at: str | None = None
    input_pool_size: int = 0
    eligible_count: int = 0
    group_count: int = 0
    grouped_member_count: int = 0
    rollover_count: int = 0
    rollover_member_ids: list[str] = Field(default_factory=list)
    groups: list[GroupOut] = Field(default_factory=list)
    bucket_summaries: list[dict[str, Any]] = Field(default_factory=list)
    duration_ms: int | None = None
    attempts: int = 1
    error: str | None = None
    replayed: bool = False
