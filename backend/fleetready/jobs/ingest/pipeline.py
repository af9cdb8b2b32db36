"""
Batch ingestion: payloads -> vendor records -> canonical records -> merged events.

One batch is one transaction. Record-level problems (FormatError,
SchemaMismatchError) are logged and kept on the vendor record; they never fail
the batch. Storage failures roll the whole batch back and surface as
PersistenceError so the scheduler can retry.
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fleetready.core.config import Settings
from fleetready.core.errors import FormatError, PersistenceError
from fleetready.core.types import utcnow
from fleetready.jobs.ingest.loader import existing_record_keys, load_vendor_records
from fleetready.jobs.ingest.normalizer import normalize_many
from fleetready.jobs.ingest.registry import split_payload
from fleetready.jobs.ingest.types import CanonicalRecord, RawRecord, SourcePayload
from fleetready.jobs.ingest.utils.record_key import make_record_key
from fleetready.jobs.merge.apply import apply_merge
from fleetready.jobs.merge.engine import MergeEngine, count_out_of_order
from fleetready.models.ships import Ship

logger = logging.getLogger(__name__)


def split_payloads(payloads: Iterable[SourcePayload]) -> tuple[list[RawRecord], int]:
    """Split whole payloads into raw records. Unsplittable payloads are logged and counted."""
    raws: list[RawRecord] = []
    failed = 0
    for p in payloads:
        try:
            parts = split_payload(p.body, p.format_tag, records_path=p.records_path)
        except FormatError as e:
            failed += 1
            logger.error("Payload from %s (%s) unparseable as %s: %s", p.source, p.origin or "-", p.format_tag, e)
            continue
        for part in parts:
            raws.append(
                RawRecord(
                    source=p.source,
                    format_tag=p.format_tag,
                    payload=part,
                    record_key=make_record_key(p.source, p.format_tag, part),
                )
            )
        logger.info("Split %s (%s) into %d record(s)", p.origin or p.source, p.format_tag, len(parts))
    return raws, failed


def upsert_ships(db: Session, records: Iterable[CanonicalRecord]) -> int:
    """Create unseen ships; refresh name/class from later records. Ship ids never change."""
    created = 0
    seen: dict[str, Ship] = {}
    now = utcnow()
    for rec in records:
        ship = seen.get(rec.ship_id) or db.get(Ship, rec.ship_id)
        if ship is None:
            ship = Ship(ship_id=rec.ship_id, name=rec.ship_name, ship_class=rec.ship_class, created_at=now, updated_at=now)
            db.add(ship)
            created += 1
        else:
            changed = False
            if rec.ship_name and rec.ship_name != ship.name:
                ship.name = rec.ship_name
                changed = True
            if rec.ship_class and rec.ship_class != ship.ship_class:
                ship.ship_class = rec.ship_class
                changed = True
            if changed:
                ship.updated_at = now
        seen[rec.ship_id] = ship
    db.flush()
    return created


def ingest_payloads(
    db: Session,
    payloads: list[SourcePayload],
    run_id: uuid.UUID,
    settings: Settings,
) -> dict:
    """Run one atomic batch. Returns metrics for job_runs.meta."""
    raws, payloads_failed = split_payloads(payloads)

    try:
        already = existing_record_keys(db, {r.record_key for r in raws})
        fresh: list[RawRecord] = []
        seen_keys: set[str] = set()
        for r in raws:
            if r.record_key in already or r.record_key in seen_keys:
                continue
            seen_keys.add(r.record_key)
            fresh.append(r)

        outcomes = normalize_many(
            [(r.payload, r.format_tag, r.source) for r in fresh],
            vendor_tz=settings.vendor_timezone,
            workers=settings.normalize_workers,
        )

        rejected = {"FormatError": 0, "SchemaMismatchError": 0}
        for raw, outcome in zip(fresh, outcomes):
            if not isinstance(outcome, CanonicalRecord):
                rejected[type(outcome).__name__] += 1
                logger.warning(
                    "Skipping record %s from %s: %s: %s",
                    raw.record_key[:12],
                    raw.source,
                    type(outcome).__name__,
                    outcome,
                )

        load_stats = load_vendor_records(db, list(zip(fresh, outcomes)), run_id)
        seq_by_key = load_stats["seq_by_key"]

        accepted = [
            outcome.stored(record_key=raw.record_key, ingest_seq=seq_by_key[raw.record_key])
            for raw, outcome in zip(fresh, outcomes)
            if isinstance(outcome, CanonicalRecord) and raw.record_key in seq_by_key
        ]

        out_of_order = count_out_of_order(accepted)
        if out_of_order:
            logger.warning("%d record(s) arrived out of timestamp order within their feed", out_of_order)

        ships_created = upsert_ships(db, accepted)

        engine = MergeEngine(tolerance=timedelta(hours=settings.dedup_tolerance_hours))
        merge_stats = apply_merge(db, {(r.ship_id, r.event_type) for r in accepted}, engine)

        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Batch %s rolled back: %r", run_id, e)
        raise PersistenceError(f"batch {run_id} not stored: {e}") from e

    return {
        "payloads": len(payloads),
        "payloads_failed": payloads_failed,
        "records_total": len(raws),
        "records_duplicate": len(raws) - len(fresh) + load_stats["skipped"],
        "records_inserted": load_stats["inserted"],
        "records_accepted": len(accepted),
        "records_format_error": rejected["FormatError"],
        "records_schema_mismatch": rejected["SchemaMismatchError"],
        "out_of_order": out_of_order,
        "ships_created": ships_created,
        "affected_ships": sorted({r.ship_id for r in accepted}),
        **{f"merge_{k}": v for k, v in merge_stats.as_dict().items()},
    }
