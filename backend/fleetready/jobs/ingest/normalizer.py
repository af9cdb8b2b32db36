"""
Record normalizer: one raw vendor record + format tag -> CanonicalRecord.

Pure and deterministic. The same (payload, format_tag, source, vendor_tz) always
produces the same canonical record, which is what makes re-ingestion idempotent.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, Optional, Union

from fleetready.core.errors import FormatError, SchemaMismatchError
from fleetready.jobs.ingest.registry import get_format
from fleetready.jobs.ingest.types import CanonicalRecord
from fleetready.jobs.ingest.utils.time import parse_vendor_timestamp

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("ship_id", "event_type", "occurred_at")

# canonical field -> vendor spellings (after key folding)
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "ship_id": ("ship_id", "hull_number", "hull_no", "hull", "vessel_id", "uic", "ship"),
    "ship_name": ("ship_name", "vessel_name", "name"),
    "ship_class": ("ship_class", "class", "vessel_class", "hull_class"),
    "event_type": ("event_type", "maintenance_type", "job_type", "work_type", "type", "activity"),
    "occurred_at": (
        "occurred_at",
        "completed_at",
        "completion_date",
        "date_completed",
        "event_date",
        "timestamp",
        "date",
    ),
    "reported_at": ("reported_at", "opened_at", "date_reported", "reported", "start_date"),
    "due_at": ("due_at", "due_date", "date_due", "scheduled_date", "required_by"),
    "status": ("status", "job_status", "state"),
    "job_control_number": ("job_control_number", "jcn", "job_control_no"),
    "part_refs": ("part_refs", "parts", "part_numbers", "part_number", "nsn", "niin"),
    "source_record_id": ("source_record_id", "work_order", "wo_number", "record_id", "id"),
}

EVENT_TYPE_SYNONYMS: dict[str, str] = {
    "eng_overhaul": "engine_overhaul",
    "main_engine_overhaul": "engine_overhaul",
    "overhaul_engine": "engine_overhaul",
    "hull_insp": "hull_inspection",
    "inspection_hull": "hull_inspection",
    "pm": "preventive_maintenance",
    "pms": "preventive_maintenance",
    "cm": "corrective_maintenance",
    "casrep": "casualty_repair",
}

STATUS_SYNONYMS: dict[str, str] = {
    "complete": "completed",
    "completed": "completed",
    "closed": "completed",
    "done": "completed",
    "c": "completed",
    "open": "open",
    "in_progress": "open",
    "pending": "open",
    "o": "open",
    "deferred": "deferred",
    "postponed": "deferred",
    "cancelled": "cancelled",
    "canceled": "cancelled",
    "void": "cancelled",
}

_NON_ALNUM = re.compile(r"[^0-9a-z]+")
_PART_SPLIT = re.compile(r"[;,|]")


def fold_key(key: str) -> str:
    return _NON_ALNUM.sub("_", str(key).strip().lower()).strip("_")


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def map_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Pick canonical fields out of a vendor field dict; first matching alias wins."""
    folded: dict[str, Any] = {}
    for k, v in fields.items():
        folded.setdefault(fold_key(k), v)

    out: dict[str, Any] = {}
    for canonical, aliases in FIELD_ALIASES.items():
        for alias in aliases:
            if alias in folded and not _blank(folded[alias]):
                out[canonical] = folded[alias]
                break
    return out


def normalize_event_type(value: Any) -> str:
    folded = fold_key(value)
    return EVENT_TYPE_SYNONYMS.get(folded, folded)


def normalize_ship_id(value: Any) -> str:
    return re.sub(r"\s+", "", str(value)).upper()


def normalize_status(value: Any) -> str:
    if _blank(value):
        return "completed"
    status = STATUS_SYNONYMS.get(fold_key(value))
    if status is None:
        raise FormatError(f"Unknown status value: {value!r}")
    return status


def normalize_parts(value: Any) -> tuple[str, ...]:
    if _blank(value):
        return ()
    items = value if isinstance(value, (list, tuple)) else _PART_SPLIT.split(str(value))
    parts = {str(p).strip().upper() for p in items if not _blank(p)}
    return tuple(sorted(parts))


def _text(value: Any) -> Optional[str]:
    if _blank(value):
        return None
    return str(value).strip()


def normalize(
    payload: str,
    format_tag: str,
    *,
    source: str,
    vendor_tz: str = "UTC",
) -> CanonicalRecord:
    """
    Raises:
      FormatError: payload unparseable in format_tag, or a value is malformed
      SchemaMismatchError: a required canonical field is missing
    """
    handler = get_format(format_tag)
    try:
        fields = handler.parse(payload)
    except FormatError as e:
        e.format_tag = format_tag
        raise

    mapped = map_fields(fields)
    missing = [f for f in REQUIRED_FIELDS if f not in mapped]
    if missing:
        raise SchemaMismatchError(missing, format_tag=format_tag)

    ship_id = normalize_ship_id(mapped["ship_id"])
    event_type = normalize_event_type(mapped["event_type"])
    if not ship_id or not event_type:
        raise SchemaMismatchError(
            [f for f, v in (("ship_id", ship_id), ("event_type", event_type)) if not v],
            format_tag=format_tag,
        )

    jcn = _text(mapped.get("job_control_number"))

    return CanonicalRecord(
        source=source,
        ship_id=ship_id,
        event_type=event_type,
        occurred_at=parse_vendor_timestamp(mapped["occurred_at"], vendor_tz),
        ship_name=_text(mapped.get("ship_name")),
        ship_class=_text(mapped.get("ship_class")),
        reported_at=parse_vendor_timestamp(mapped.get("reported_at"), vendor_tz),
        due_at=parse_vendor_timestamp(mapped.get("due_at"), vendor_tz),
        status=normalize_status(mapped.get("status")),
        job_control_number=jcn.upper() if jcn else None,
        part_refs=normalize_parts(mapped.get("part_refs")),
        source_record_id=_text(mapped.get("source_record_id")),
    )


NormalizeOutcome = Union[CanonicalRecord, FormatError, SchemaMismatchError]


def normalize_many(
    items: Iterable[tuple[str, str, str]],
    *,
    vendor_tz: str = "UTC",
    workers: int = 1,
) -> list[NormalizeOutcome]:
    """
    Normalize (payload, format_tag, source) triples independently.
    Failures are returned in place, not raised, so one bad record can't sink a batch.
    Output order matches input order.
    """

    def _one(item: tuple[str, str, str]) -> NormalizeOutcome:
        payload, format_tag, source = item
        try:
            return normalize(payload, format_tag, source=source, vendor_tz=vendor_tz)
        except (FormatError, SchemaMismatchError) as e:
            return e

    items = list(items)
    if workers <= 1 or len(items) < 2:
        return [_one(i) for i in items]

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="normalize") as pool:
        return list(pool.map(_one, items))
