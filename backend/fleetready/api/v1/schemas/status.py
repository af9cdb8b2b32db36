from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class ShipOut(BaseModel):
    ship_id: str
    name: Optional[str] = None
    ship_class: Optional[str] = None


class ScoreOut(BaseModel):
    score: float = Field(..., ge=0, le=100)
    readiness_band: Literal["ready", "degraded", "not_ready"]
    formula_version: str
    window_start: datetime
    window_end: datetime
    event_count: int
    components: dict
    computed_at: datetime


class ShipStatus(BaseModel):
    ship: ShipOut

    events_total: int
    open_events: int
    last_maintenance_at: Optional[datetime] = None
    last_event_type: Optional[str] = None
    quarantined_pending: int

    compliance: Optional[ScoreOut] = None
