from sqlalchemy import Column, Text

from fleetready.core.db import Base
from fleetready.core.types import UtcDateTime, utcnow


class Ship(Base):
    __tablename__ = "ships"

    ship_id = Column(Text, primary_key=True)  # hull identifier, never reassigned
    name = Column(Text, nullable=True)
    ship_class = Column(Text, nullable=True, index=True)

    created_at = Column(UtcDateTime, default=utcnow, nullable=False)
    updated_at = Column(UtcDateTime, default=utcnow, nullable=False)
