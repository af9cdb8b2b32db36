import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from fleetready.core.types import utcnow
from fleetready.jobs.merge.apply import MergeStats, apply_merge
from fleetready.jobs.merge.engine import MergeEngine
from fleetready.models.quarantine import QuarantinedRecord

logger = logging.getLogger(__name__)

RESOLUTIONS = ("discard", "split")


class QuarantineNotFound(LookupError):
    pass


class QuarantineAlreadyResolved(RuntimeError):
    pass


def list_quarantine(db: Session, *, status: Optional[str] = "pending", ship_id: Optional[str] = None):
    q = select(QuarantinedRecord).order_by(QuarantinedRecord.id)
    if status:
        q = q.where(QuarantinedRecord.status == status)
    if ship_id:
        q = q.where(QuarantinedRecord.ship_id == ship_id)
    return list(db.execute(q).scalars())


def resolve_quarantine(db: Session, quarantine_id: int, action: str, engine: MergeEngine) -> tuple[QuarantinedRecord, MergeStats]:
    """
    discard: the record stays out of every merge.
    split:   the record becomes its own event, never clustered with others.
    """
    if action not in RESOLUTIONS:
        raise ValueError(f"action must be one of {RESOLUTIONS}")

    row = db.get(QuarantinedRecord, quarantine_id)
    if row is None:
        raise QuarantineNotFound(quarantine_id)
    if row.status != "pending":
        raise QuarantineAlreadyResolved(f"quarantine {quarantine_id} already {row.status}")

    row.status = "discarded" if action == "discard" else "split"
    row.resolved_at = utcnow()
    db.flush()

    try:
        stats = apply_merge(db, [(row.ship_id, row.event_type)], engine)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Quarantine %d resolved as %s (record %s)", quarantine_id, row.status, row.record_key[:12])
    return row, stats
