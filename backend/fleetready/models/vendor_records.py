from sqlalchemy import Column, Text, Uuid

from fleetready.core.db import Base
from fleetready.core.types import JsonDoc, SeqId, UtcDateTime, utcnow


class VendorRecord(Base):
    """Raw record as received, plus the normalization outcome. Insert-only."""

    __tablename__ = "vendor_records"

    # ingest sequence; higher means more recently ingested
    id = Column(SeqId, primary_key=True, autoincrement=True)
    record_key = Column(Text, nullable=False, unique=True)

    source = Column(Text, nullable=False, index=True)
    format_tag = Column(Text, nullable=False)
    payload = Column(Text, nullable=False)

    run_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    ingested_at = Column(UtcDateTime, default=utcnow, nullable=False)

    canonical = Column(JsonDoc, nullable=True)
    error_kind = Column(Text, nullable=True)
    error = Column(Text, nullable=True)

    ship_id = Column(Text, nullable=True, index=True)
    event_type = Column(Text, nullable=True, index=True)
    occurred_at = Column(UtcDateTime, nullable=True)
