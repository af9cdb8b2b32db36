from typing import Optional

from pydantic import BaseModel


class FleetShipRow(BaseModel):
    ship_id: str
    name: Optional[str] = None
    ship_class: Optional[str] = None
    score: Optional[float] = None
    readiness_band: Optional[str] = None
    open_events: int
    open_issues: int


class FleetSummary(BaseModel):
    ships: int
    scored_ships: int
    mean_score: Optional[float] = None
    bands: dict[str, int]
    open_issues: int
    pending_quarantine: int
    rows: list[FleetShipRow]
