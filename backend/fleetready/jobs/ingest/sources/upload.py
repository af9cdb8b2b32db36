from fleetready.jobs.ingest.sources.base import BaseSource
from fleetready.jobs.ingest.types import SourcePayload


class UploadSource(BaseSource):
    """Manual upload channel: payloads handed over by the API."""

    name = "upload"

    def __init__(self, payloads: list[SourcePayload]):
        self.payloads = payloads

    def fetch(self) -> list[SourcePayload]:
        return list(self.payloads)
