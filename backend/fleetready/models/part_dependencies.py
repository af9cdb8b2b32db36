from sqlalchemy import CheckConstraint, Column, Text

from fleetready.core.db import Base
from fleetready.core.types import UtcDateTime, utcnow


class PartDependency(Base):
    """Directed edge: part_number requires depends_on. The graph is kept acyclic."""

    __tablename__ = "part_dependencies"
    __table_args__ = (CheckConstraint("part_number <> depends_on", name="ck_part_dep_not_self"),)

    part_number = Column(Text, primary_key=True)
    depends_on = Column(Text, primary_key=True, index=True)

    created_at = Column(UtcDateTime, default=utcnow, nullable=False)
