from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ComplianceIssueOut(BaseModel):
    kind: Literal["overdue_open", "completed_late"]
    ship_id: str
    event_id: UUID
    event_type: str
    status: str
    due_at: datetime
    occurred_at: datetime
    overdue_days: float
    job_control_number: Optional[str] = None


class RecomputeRequest(BaseModel):
    ship_ids: Optional[list[str]] = None
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None


class RecomputeResult(BaseModel):
    window_start: datetime
    window_end: datetime
    formula_version: str
    ships_scored: int
    scores_written: int
    scores_unchanged: int = Field(..., description="Ships whose inputs were unchanged; no row written")
