from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from fleetready.api.v1.schemas.status import ScoreOut, ShipOut, ShipStatus
from fleetready.core.deps import get_db
from fleetready.jobs.compliance.compute_compliance import latest_score
from fleetready.jobs.ingest.normalizer import normalize_ship_id
from fleetready.models.maintenance_events import MaintenanceEvent
from fleetready.models.quarantine import QuarantinedRecord
from fleetready.models.ships import Ship
from fleetready.scoring.v1.compliance import OPEN_STATUSES

router = APIRouter(tags=["status"])


def score_out(row) -> ScoreOut | None:
    if row is None:
        return None
    return ScoreOut(
        score=row.score,
        readiness_band=row.readiness_band,
        formula_version=row.formula_version,
        window_start=row.window_start,
        window_end=row.window_end,
        event_count=row.event_count,
        components=row.components or {},
        computed_at=row.computed_at,
    )


@router.get("/status", response_model=ShipStatus)
def get_status(
    ship_id: str = Query(..., min_length=1, description="Hull identifier, e.g. DDG-51"),
    db: Session = Depends(get_db),
):
    ship = db.get(Ship, normalize_ship_id(ship_id))
    if ship is None:
        raise HTTPException(status_code=404, detail=f"unknown ship {ship_id}")

    events_total, open_events = db.execute(
        select(
            func.count(MaintenanceEvent.id),
            func.sum(case((MaintenanceEvent.status.in_(OPEN_STATUSES), 1), else_=0)),
        ).where(MaintenanceEvent.ship_id == ship.ship_id)
    ).one()

    last = db.execute(
        select(MaintenanceEvent.occurred_at, MaintenanceEvent.event_type)
        .where(MaintenanceEvent.ship_id == ship.ship_id, MaintenanceEvent.status == "completed")
        .order_by(MaintenanceEvent.occurred_at.desc())
        .limit(1)
    ).first()

    pending = db.execute(
        select(func.count(QuarantinedRecord.id)).where(
            QuarantinedRecord.ship_id == ship.ship_id,
            QuarantinedRecord.status == "pending",
        )
    ).scalar_one()

    return ShipStatus(
        ship=ShipOut(ship_id=ship.ship_id, name=ship.name, ship_class=ship.ship_class),
        events_total=int(events_total or 0),
        open_events=int(open_events or 0),
        last_maintenance_at=last.occurred_at if last else None,
        last_event_type=last.event_type if last else None,
        quarantined_pending=int(pending or 0),
        compliance=score_out(latest_score(db, ship.ship_id)),
    )
