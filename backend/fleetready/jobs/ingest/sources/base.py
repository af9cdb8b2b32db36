import uuid
from abc import ABC, abstractmethod

from sqlalchemy.orm import Session

from fleetready.core.config import Settings
from fleetready.jobs.ingest.pipeline import ingest_payloads
from fleetready.jobs.ingest.types import SourcePayload


class BaseSource(ABC):
    name = "base"

    @abstractmethod
    def fetch(self, **kwargs) -> list[SourcePayload]:
        """
        Pull raw payloads from the feed. Must not touch the database.
        """
        raise NotImplementedError

    def ingest(self, db: Session, run_id: uuid.UUID, settings: Settings, **kwargs) -> dict:
        """fetch -> normalize -> merge -> load, as one batch. Returns metrics for job_runs.meta."""
        payloads = self.fetch(**kwargs)
        result = ingest_payloads(db, payloads, run_id, settings)
        return {"source": self.name, **result}
