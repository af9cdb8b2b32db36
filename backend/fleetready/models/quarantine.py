from sqlalchemy import Column, Integer, Text

from fleetready.core.db import Base
from fleetready.core.types import JsonDoc, UtcDateTime, utcnow


class QuarantinedRecord(Base):
    __tablename__ = "quarantined_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    record_key = Column(Text, nullable=False, unique=True)

    ship_id = Column(Text, nullable=False, index=True)
    event_type = Column(Text, nullable=False)
    reason = Column(Text, nullable=False)
    detail = Column(JsonDoc, nullable=False, default=dict)

    status = Column(Text, nullable=False, default="pending", index=True)  # pending / discarded / split
    created_at = Column(UtcDateTime, default=utcnow, nullable=False)
    resolved_at = Column(UtcDateTime, nullable=True)
