from sqlalchemy import Column, Float, ForeignKey, Integer, Text

from fleetready.core.db import Base
from fleetready.core.types import JsonDoc, SeqId, UtcDateTime, utcnow


class ComplianceScore(Base):
    """
    Append-only. A recompute with different inputs adds a row that supersedes the
    previous one for the same (ship, window, formula_version).
    """

    __tablename__ = "compliance_scores"

    id = Column(SeqId, primary_key=True, autoincrement=True)
    ship_id = Column(Text, ForeignKey("ships.ship_id"), nullable=False, index=True)

    window_start = Column(UtcDateTime, nullable=False)
    window_end = Column(UtcDateTime, nullable=False)
    formula_version = Column(Text, nullable=False)
    inputs_hash = Column(Text, nullable=False)

    score = Column(Float, nullable=False)
    readiness_band = Column(Text, nullable=False)
    event_count = Column(Integer, nullable=False)
    components = Column(JsonDoc, nullable=False, default=dict)
    params = Column(JsonDoc, nullable=False, default=dict)

    supersedes_id = Column(SeqId, ForeignKey("compliance_scores.id"), nullable=True)
    computed_at = Column(UtcDateTime, default=utcnow, nullable=False)
