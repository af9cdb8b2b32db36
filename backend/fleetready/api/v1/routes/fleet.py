from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from fleetready.api.v1.routes.compliance import as_utc, load_issues
from fleetready.api.v1.schemas.fleet import FleetShipRow, FleetSummary
from fleetready.core.deps import get_db
from fleetready.models.compliance_scores import ComplianceScore
from fleetready.models.maintenance_events import MaintenanceEvent
from fleetready.models.quarantine import QuarantinedRecord
from fleetready.models.ships import Ship
from fleetready.scoring.v1.compliance import OPEN_STATUSES

router = APIRouter(tags=["fleet"])

BANDS = ("ready", "degraded", "not_ready")


@router.get("/fleet/summary", response_model=FleetSummary)
def get_fleet_summary(
    ship_class: Optional[str] = Query(None, description="Optional class filter, e.g. Arleigh Burke"),
    as_of: Optional[datetime] = Query(None, description="Reference time for open issues; default now"),
    db: Session = Depends(get_db),
):
    as_of = as_utc(as_of) or datetime.now(timezone.utc)

    q = select(Ship).order_by(Ship.ship_id)
    if ship_class:
        q = q.where(Ship.ship_class == ship_class)
    ships = list(db.execute(q).scalars())
    ship_ids = [s.ship_id for s in ships]

    # latest score row per ship
    latest_ids = (
        select(func.max(ComplianceScore.id).label("id"))
        .where(ComplianceScore.ship_id.in_(ship_ids))
        .group_by(ComplianceScore.ship_id)
        .subquery()
    )
    scores = {
        row.ship_id: row
        for row in db.execute(
            select(ComplianceScore).join(latest_ids, ComplianceScore.id == latest_ids.c.id)
        ).scalars()
    }

    open_counts = dict(
        db.execute(
            select(
                MaintenanceEvent.ship_id,
                func.sum(case((MaintenanceEvent.status.in_(OPEN_STATUSES), 1), else_=0)),
            )
            .where(MaintenanceEvent.ship_id.in_(ship_ids))
            .group_by(MaintenanceEvent.ship_id)
        ).all()
    )

    issue_counts: dict[str, int] = {}
    for _issue, ev in load_issues(db, as_of=as_of):
        issue_counts[ev.ship_id] = issue_counts.get(ev.ship_id, 0) + 1

    pending = db.execute(
        select(func.count(QuarantinedRecord.id)).where(
            QuarantinedRecord.status == "pending",
            QuarantinedRecord.ship_id.in_(ship_ids),
        )
    ).scalar_one()

    bands = {b: 0 for b in BANDS}
    bands["unscored"] = 0
    rows: list[FleetShipRow] = []
    for ship in ships:
        sc = scores.get(ship.ship_id)
        bands[sc.readiness_band if sc else "unscored"] += 1
        rows.append(
            FleetShipRow(
                ship_id=ship.ship_id,
                name=ship.name,
                ship_class=ship.ship_class,
                score=sc.score if sc else None,
                readiness_band=sc.readiness_band if sc else None,
                open_events=int(open_counts.get(ship.ship_id) or 0),
                open_issues=issue_counts.get(ship.ship_id, 0),
            )
        )

    scored = [r.score for r in rows if r.score is not None]
    return FleetSummary(
        ships=len(ships),
        scored_ships=len(scored),
        mean_score=round(sum(scored) / len(scored), 2) if scored else None,
        bands=bands,
        open_issues=sum(issue_counts.get(s, 0) for s in ship_ids),
        pending_quarantine=int(pending or 0),
        rows=rows,
    )
