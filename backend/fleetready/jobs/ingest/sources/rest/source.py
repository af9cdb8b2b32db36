import logging
import threading
import time
from typing import Callable, Optional

import httpx

from fleetready.core.secrets import SecretStore
from fleetready.jobs.ingest.registry import get_format
from fleetready.jobs.ingest.sources.base import BaseSource
from fleetready.jobs.ingest.types import SourcePayload

from .config import EndpointConfig
from .http import HttpPolicy, get_with_retry, make_client

logger = logging.getLogger(__name__)


class RestSource(BaseSource):
    """
    Vendor REST feeds (API key or bearer token). One GET per endpoint per run.
    Clients are cached per endpoint and dropped when the endpoint's secret rotates.
    """

    name = "rest"

    def __init__(
        self,
        endpoints: dict[str, EndpointConfig],
        secrets: SecretStore,
        policy: Optional[HttpPolicy] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.endpoints = endpoints
        self.secrets = secrets
        self.policy = policy or HttpPolicy()
        self.transport = transport
        self.sleep = sleep
        self._clients: dict[str, httpx.Client] = {}
        self._lock = threading.Lock()

        for ep in endpoints.values():
            get_format(ep.format_tag)
            if ep.secret:
                secrets.subscribe(ep.secret, self._on_rotation)

        logger.info(
            "REST source configured endpoints=%s retries=%d connect=%.1fs read=%.1fs",
            sorted(endpoints),
            self.policy.retries,
            self.policy.connect_timeout,
            self.policy.read_timeout,
        )

    def _on_rotation(self, key: str, _value: Optional[str]) -> None:
        with self._lock:
            for name, ep in self.endpoints.items():
                if ep.secret == key and name in self._clients:
                    logger.info("Credential %s rotated; rebuilding client for %s", key, name)
                    self._clients.pop(name).close()

    def client_for(self, ep: EndpointConfig) -> httpx.Client:
        with self._lock:
            client = self._clients.get(ep.name)
            if client is None:
                credential = self.secrets.get(ep.secret) if ep.secret else None
                client = make_client(ep, credential, self.policy, transport=self.transport)
                self._clients[ep.name] = client
            return client

    def fetch(self, endpoint_names: Optional[list[str]] = None) -> list[SourcePayload]:
        names = endpoint_names or sorted(self.endpoints)
        payloads: list[SourcePayload] = []
        for name in names:
            ep = self.endpoints.get(name)
            if ep is None:
                raise KeyError(f"unknown REST endpoint: {name}")
            body = get_with_retry(self.policy, self.client_for(ep), ep.url, ep.params, sleep=self.sleep)
            logger.info("Fetched %s (%d bytes) from %s", name, len(body), ep.url)
            payloads.append(
                SourcePayload(
                    source=ep.name,
                    format_tag=ep.format_tag,
                    body=body,
                    origin=ep.url,
                    records_path=ep.records_path,
                )
            )
        return payloads

    def close(self) -> None:
        with self._lock:
            for client in self._clients.values():
                client.close()
            self._clients.clear()
