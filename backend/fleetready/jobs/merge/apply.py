"""
Apply the merge engine to the canonical store, one identity group at a time.

For each (ship_id, event_type) touched by a batch, all active vendor records of
the group are re-merged and the maintenance_events rows reconciled to the
result. The ship row is locked for the duration so two batches can't interleave
on the same identity group. Re-running over unchanged records is a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from fleetready.core.types import utcnow
from fleetready.jobs.ingest.types import CanonicalRecord
from fleetready.jobs.merge.engine import MergedEvent, MergeEngine, MergeResult
from fleetready.models.maintenance_events import EventSource, MaintenanceEvent
from fleetready.models.quarantine import QuarantinedRecord
from fleetready.models.ships import Ship
from fleetready.models.vendor_records import VendorRecord

logger = logging.getLogger(__name__)

EXCLUDED_QUARANTINE_STATUSES = ("pending", "discarded")


@dataclass
class MergeStats:
    groups: int = 0
    events_created: int = 0
    events_updated: int = 0
    events_deleted: int = 0
    conflicts: int = 0
    quarantined: int = 0

    def as_dict(self) -> dict:
        return dict(self.__dict__)


def lock_ship(db: Session, ship_id: str) -> None:
    db.execute(select(Ship.ship_id).where(Ship.ship_id == ship_id).with_for_update()).first()


def load_group_records(db: Session, ship_id: str, event_type: str) -> list[CanonicalRecord]:
    rows = db.execute(
        select(VendorRecord.id, VendorRecord.record_key, VendorRecord.canonical)
        .where(
            VendorRecord.ship_id == ship_id,
            VendorRecord.event_type == event_type,
            VendorRecord.canonical.is_not(None),
        )
        .order_by(VendorRecord.id)
    ).all()
    if not rows:
        return []

    keys = [r.record_key for r in rows]
    q_status = dict(
        db.execute(
            select(QuarantinedRecord.record_key, QuarantinedRecord.status).where(
                QuarantinedRecord.record_key.in_(keys)
            )
        ).all()
    )

    out: list[CanonicalRecord] = []
    for r in rows:
        status = q_status.get(r.record_key)
        if status in EXCLUDED_QUARANTINE_STATUSES:
            continue
        rec = CanonicalRecord.from_json(r.canonical)
        out.append(rec.stored(record_key=r.record_key, ingest_seq=int(r.id), standalone=status == "split"))
    return out


def _merge_stable(engine: MergeEngine, records: list[CanonicalRecord]) -> MergeResult:
    """
    Merge, then re-merge without the records routed to quarantine so the
    clustering matches what later runs (which exclude them) will see.
    """
    first = engine.merge(records)
    if not first.quarantined:
        return first
    dropped = {q.record_key for q in first.quarantined}
    second = engine.merge([r for r in records if r.record_key not in dropped])
    second.quarantined = first.quarantined + second.quarantined
    return second


def _event_values(ev: MergedEvent) -> dict:
    return {
        "ship_id": ev.ship_id,
        "event_type": ev.event_type,
        "occurred_at": ev.occurred_at,
        "reported_at": ev.reported_at,
        "due_at": ev.due_at,
        "status": ev.status,
        "job_control_number": ev.job_control_number,
        "part_refs": list(ev.part_refs),
        "sources": list(ev.sources),
        "source_count": len(ev.sources),
        "conflicts": [c.to_json() for c in ev.conflicts],
    }


def _sync_links(db: Session, event: MaintenanceEvent, record_keys: Iterable[str]) -> None:
    wanted = set(record_keys)
    have = set(
        db.execute(select(EventSource.record_key).where(EventSource.event_id == event.id)).scalars()
    )
    stale = have - wanted
    if stale:
        db.execute(
            delete(EventSource).where(EventSource.event_id == event.id, EventSource.record_key.in_(stale))
        )
    for key in sorted(wanted - have):
        db.add(EventSource(event_id=event.id, record_key=key))


def merge_group(db: Session, engine: MergeEngine, ship_id: str, event_type: str, stats: MergeStats) -> None:
    lock_ship(db, ship_id)
    records = load_group_records(db, ship_id, event_type)
    result = _merge_stable(engine, records)

    existing = {
        e.event_key: e
        for e in db.execute(
            select(MaintenanceEvent).where(
                MaintenanceEvent.ship_id == ship_id,
                MaintenanceEvent.event_type == event_type,
            )
        ).scalars()
    }

    now = utcnow()
    desired_keys = set()
    for merged in result.events:
        desired_keys.add(merged.event_key)
        values = _event_values(merged)
        event = existing.get(merged.event_key)
        if event is None:
            event = MaintenanceEvent(event_key=merged.event_key, created_at=now, updated_at=now, **values)
            db.add(event)
            db.flush()
            stats.events_created += 1
        else:
            changed = {k: v for k, v in values.items() if getattr(event, k) != v}
            if changed:
                for k, v in changed.items():
                    setattr(event, k, v)
                event.updated_at = now
                stats.events_updated += 1
        _sync_links(db, event, merged.record_keys)
        stats.conflicts += len(merged.conflicts)

    for key, event in existing.items():
        if key in desired_keys:
            continue
        logger.info("Removing event %s ship=%s type=%s: absorbed by re-merge", key[:12], ship_id, event_type)
        db.execute(delete(EventSource).where(EventSource.event_id == event.id))
        db.delete(event)
        stats.events_deleted += 1

    for decision in result.quarantined:
        already = db.execute(
            select(QuarantinedRecord.id).where(QuarantinedRecord.record_key == decision.record_key)
        ).first()
        if already:
            continue
        db.add(
            QuarantinedRecord(
                record_key=decision.record_key,
                ship_id=decision.ship_id,
                event_type=decision.event_type,
                reason=decision.reason,
                detail=decision.detail,
                status="pending",
                created_at=now,
            )
        )
        stats.quarantined += 1

    db.flush()


def apply_merge(db: Session, groups: Iterable[tuple[str, str]], engine: MergeEngine) -> MergeStats:
    """Re-merge the given identity groups inside the caller's transaction."""
    stats = MergeStats()
    for ship_id, event_type in sorted(set(groups)):
        merge_group(db, engine, ship_id, event_type, stats)
        stats.groups += 1
    logger.info("Merge applied: %s", stats.as_dict())
    return stats
