from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from fleetready.api.v1.schemas.operations import QuarantineOut, QuarantineResolveIn
from fleetready.core.config import Settings
from fleetready.core.deps import get_db, get_settings, require_token
from fleetready.core.security import Principal
from fleetready.jobs.ingest.normalizer import normalize_ship_id
from fleetready.jobs.merge.engine import MergeEngine
from fleetready.jobs.merge.quarantine import (
    QuarantineAlreadyResolved,
    QuarantineNotFound,
    list_quarantine,
    resolve_quarantine,
)

router = APIRouter(prefix="/v1/quarantine", tags=["quarantine"])


def _out(row) -> QuarantineOut:
    return QuarantineOut(
        id=row.id,
        record_key=row.record_key,
        ship_id=row.ship_id,
        event_type=row.event_type,
        reason=row.reason,
        detail=row.detail or {},
        status=row.status,
        created_at=row.created_at,
        resolved_at=row.resolved_at,
    )


@router.get("", response_model=list[QuarantineOut])
def get_quarantine(
    status: Optional[str] = Query("pending", pattern="^(pending|discarded|split)$"),
    ship_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    rows = list_quarantine(db, status=status, ship_id=normalize_ship_id(ship_id) if ship_id else None)
    return [_out(r) for r in rows]


@router.post("/{quarantine_id}/resolve", response_model=QuarantineOut)
def post_resolve(
    quarantine_id: int,
    body: QuarantineResolveIn,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    _principal: Principal = Depends(require_token),
):
    engine = MergeEngine(tolerance=timedelta(hours=settings.dedup_tolerance_hours))
    try:
        row, _stats = resolve_quarantine(db, quarantine_id, body.action, engine)
    except QuarantineNotFound:
        raise HTTPException(status_code=404, detail=f"quarantine {quarantine_id} not found")
    except QuarantineAlreadyResolved as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _out(row)
