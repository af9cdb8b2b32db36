import uuid

from sqlalchemy import Column, ForeignKey, Integer, Text, Uuid, UniqueConstraint

from fleetready.core.db import Base
from fleetready.core.types import JsonDoc, UtcDateTime, utcnow


class MaintenanceEvent(Base):
    __tablename__ = "maintenance_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_key = Column(Text, nullable=False, unique=True)

    ship_id = Column(Text, ForeignKey("ships.ship_id"), nullable=False, index=True)
    event_type = Column(Text, nullable=False, index=True)

    occurred_at = Column(UtcDateTime, nullable=False, index=True)
    reported_at = Column(UtcDateTime, nullable=True)
    due_at = Column(UtcDateTime, nullable=True, index=True)
    status = Column(Text, nullable=False, default="completed")

    job_control_number = Column(Text, nullable=True, index=True)
    part_refs = Column(JsonDoc, nullable=False, default=list)

    sources = Column(JsonDoc, nullable=False, default=list)
    source_count = Column(Integer, nullable=False, default=1)
    conflicts = Column(JsonDoc, nullable=False, default=list)

    created_at = Column(UtcDateTime, default=utcnow, nullable=False)
    updated_at = Column(UtcDateTime, default=utcnow, nullable=False)


class EventSource(Base):
    __tablename__ = "maintenance_event_sources"
    __table_args__ = (UniqueConstraint("event_id", "record_key"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("maintenance_events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    record_key = Column(Text, ForeignKey("vendor_records.record_key"), nullable=False, index=True)
