from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from fleetready.jobs.ingest.utils.time import from_iso

STATUSES = ("completed", "open", "deferred", "cancelled")


@dataclass(frozen=True)
class SourcePayload:
    source: str                      # feed name, e.g. "vendor_a_sftp"
    format_tag: str                  # csv / tsv / psv / xml / json / yaml
    body: str                        # whole file or response body
    origin: Optional[str] = None     # path or URL, for logging
    records_path: Optional[str] = None  # dotted path to the record list (json/yaml)


@dataclass(frozen=True)
class RawRecord:
    source: str
    format_tag: str
    payload: str                     # one self-describing record
    record_key: str


@dataclass(frozen=True)
class CanonicalRecord:
    source: str
    ship_id: str                     # hull identifier, e.g. "DDG-51"
    event_type: str                  # snake_case, e.g. "engine_overhaul"
    occurred_at: datetime            # UTC; completion (or report, if open)

    ship_name: Optional[str] = None
    ship_class: Optional[str] = None
    reported_at: Optional[datetime] = None
    due_at: Optional[datetime] = None
    status: str = "completed"
    job_control_number: Optional[str] = None
    part_refs: tuple[str, ...] = ()
    source_record_id: Optional[str] = None

    # set once the record is stored; not part of normalization output
    record_key: Optional[str] = None
    ingest_seq: Optional[int] = None
    standalone: bool = False

    def to_json(self) -> dict:
        return {
            "source": self.source,
            "ship_id": self.ship_id,
            "event_type": self.event_type,
            "occurred_at": self.occurred_at.isoformat(),
            "ship_name": self.ship_name,
            "ship_class": self.ship_class,
            "reported_at": self.reported_at.isoformat() if self.reported_at else None,
            "due_at": self.due_at.isoformat() if self.due_at else None,
            "status": self.status,
            "job_control_number": self.job_control_number,
            "part_refs": list(self.part_refs),
            "source_record_id": self.source_record_id,
        }

    @classmethod
    def from_json(cls, doc: dict) -> "CanonicalRecord":
        return cls(
            source=doc["source"],
            ship_id=doc["ship_id"],
            event_type=doc["event_type"],
            occurred_at=from_iso(doc["occurred_at"]),
            ship_name=doc.get("ship_name"),
            ship_class=doc.get("ship_class"),
            reported_at=from_iso(doc.get("reported_at")),
            due_at=from_iso(doc.get("due_at")),
            status=doc.get("status") or "completed",
            job_control_number=doc.get("job_control_number"),
            part_refs=tuple(doc.get("part_refs") or ()),
            source_record_id=doc.get("source_record_id"),
        )

    def stored(self, *, record_key: str, ingest_seq: int, standalone: bool = False) -> "CanonicalRecord":
        return replace(self, record_key=record_key, ingest_seq=ingest_seq, standalone=standalone)
