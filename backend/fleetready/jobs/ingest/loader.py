import uuid
from typing import Iterable, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from fleetready.core.db import dialect_insert
from fleetready.core.errors import FormatError, SchemaMismatchError
from fleetready.jobs.ingest.types import CanonicalRecord, RawRecord
from fleetready.models.vendor_records import VendorRecord

Outcome = Union[CanonicalRecord, FormatError, SchemaMismatchError]


def existing_record_keys(db: Session, keys: Iterable[str]) -> set[str]:
    keys = list(keys)
    found: set[str] = set()
    # keep IN lists bounded
    for i in range(0, len(keys), 500):
        chunk = keys[i : i + 500]
        found.update(
            db.execute(select(VendorRecord.record_key).where(VendorRecord.record_key.in_(chunk))).scalars()
        )
    return found


def load_vendor_records(
    db: Session,
    items: list[tuple[RawRecord, Outcome]],
    run_id: uuid.UUID,
) -> dict:
    """
    Insert vendor records idempotently (UNIQUE on record_key). Each row carries its
    normalization outcome: the canonical snapshot, or the error that rejected it.
    Does not commit; the caller owns the batch transaction.
    """
    inserted: list[str] = []
    skipped = 0

    for raw, outcome in items:
        values = {
            "record_key": raw.record_key,
            "source": raw.source,
            "format_tag": raw.format_tag,
            "payload": raw.payload,
            "run_id": run_id,
        }
        if isinstance(outcome, CanonicalRecord):
            values.update(
                canonical=outcome.to_json(),
                ship_id=outcome.ship_id,
                event_type=outcome.event_type,
                occurred_at=outcome.occurred_at,
            )
        else:
            values.update(error_kind=type(outcome).__name__, error=str(outcome))

        stmt = (
            dialect_insert(db, VendorRecord)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["record_key"])
        )
        res = db.execute(stmt)
        if res.rowcount == 1:
            inserted.append(raw.record_key)
        else:
            skipped += 1

    seq_by_key: dict[str, int] = {}
    for i in range(0, len(inserted), 500):
        chunk = inserted[i : i + 500]
        seq_by_key.update(
            db.execute(
                select(VendorRecord.record_key, VendorRecord.id).where(VendorRecord.record_key.in_(chunk))
            ).all()
        )

    return {"inserted": len(inserted), "skipped": skipped, "seq_by_key": seq_by_key}
