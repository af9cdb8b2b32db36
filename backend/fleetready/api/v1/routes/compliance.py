from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from fleetready.api.v1.schemas.compliance import ComplianceIssueOut, RecomputeRequest, RecomputeResult
from fleetready.core.config import Settings
from fleetready.core.deps import get_db, get_settings, require_token
from fleetready.core.errors import PersistenceError
from fleetready.core.security import Principal
from fleetready.jobs.compliance.compute_compliance import compute_compliance, default_window, scored_event
from fleetready.jobs.ingest.normalizer import normalize_ship_id
from fleetready.models.maintenance_events import MaintenanceEvent
from fleetready.models.ships import Ship
from fleetready.scoring.v1.compliance import ComplianceIssue, find_issues

router = APIRouter(tags=["compliance"])
write_router = APIRouter(prefix="/v1", tags=["compliance"])


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def load_issues(
    db: Session,
    *,
    as_of: datetime,
    ship_id: Optional[str] = None,
    min_overdue_days: float = 0.0,
) -> list[tuple[ComplianceIssue, MaintenanceEvent]]:
    q = select(MaintenanceEvent).where(
        MaintenanceEvent.due_at.is_not(None),
        MaintenanceEvent.status != "cancelled",
    )
    if ship_id:
        q = q.where(MaintenanceEvent.ship_id == ship_id)
    events = {ev.event_key: ev for ev in db.execute(q).scalars()}

    issues = find_issues(
        (scored_event(ev) for ev in events.values()),
        as_of=as_of,
        min_overdue_days=min_overdue_days,
    )
    return [(issue, events[issue.event.event_key]) for issue in issues]


@router.get("/compliance/issues", response_model=list[ComplianceIssueOut])
def get_compliance_issues(
    ship_id: Optional[str] = Query(None, description="Limit to one hull identifier"),
    min_overdue_days: float = Query(0.0, ge=0),
    as_of: Optional[datetime] = Query(None, description="ISO datetime; default now (UTC)"),
    limit: int = Query(500, ge=1, le=5000),
    db: Session = Depends(get_db),
):
    as_of = as_utc(as_of) or datetime.now(timezone.utc)
    normalized = normalize_ship_id(ship_id) if ship_id else None

    out: list[ComplianceIssueOut] = []
    for issue, ev in load_issues(db, as_of=as_of, ship_id=normalized, min_overdue_days=min_overdue_days)[:limit]:
        out.append(
            ComplianceIssueOut(
                kind=issue.kind,
                ship_id=ev.ship_id,
                event_id=ev.id,
                event_type=ev.event_type,
                status=ev.status,
                due_at=ev.due_at,
                occurred_at=ev.occurred_at,
                overdue_days=issue.overdue_days,
                job_control_number=ev.job_control_number,
            )
        )
    return out


@write_router.post("/compliance/recompute", response_model=RecomputeResult)
def recompute_compliance(
    body: RecomputeRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    _principal: Principal = Depends(require_token),
):
    start, end = default_window(settings.score_window_days, datetime.now(timezone.utc))
    if body.window_end is not None:
        end = as_utc(body.window_end)
        start = end - timedelta(days=settings.score_window_days)
    if body.window_start is not None:
        start = as_utc(body.window_start)
    if end <= start:
        raise HTTPException(status_code=400, detail="window_end must be after window_start")

    ship_ids = None
    if body.ship_ids:
        ship_ids = [normalize_ship_id(s) for s in body.ship_ids]
        unknown = [s for s in ship_ids if db.get(Ship, s) is None]
        if unknown:
            raise HTTPException(status_code=404, detail=f"unknown ship(s): {', '.join(unknown)}")

    try:
        res = compute_compliance(db, window_start=start, window_end=end, params=settings.scoring, ship_ids=ship_ids)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return RecomputeResult(**res.__dict__)
