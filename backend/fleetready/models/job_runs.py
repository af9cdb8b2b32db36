import uuid

from sqlalchemy import Column, Text, Uuid

from fleetready.core.db import Base
from fleetready.core.types import JsonDoc, UtcDateTime, utcnow


class JobRun(Base):
    __tablename__ = "job_runs"

    run_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    job_name = Column(Text, nullable=False, index=True)
    started_at = Column(UtcDateTime, default=utcnow, nullable=False)
    ended_at = Column(UtcDateTime, nullable=True)
    status = Column(Text, nullable=False, default="running")
    meta = Column(JsonDoc, nullable=False, default=dict)
