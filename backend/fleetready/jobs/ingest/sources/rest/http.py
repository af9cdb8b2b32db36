import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from fleetready.core.config import Settings
from fleetready.core.log import mask_secret

from .config import EndpointConfig

logger = logging.getLogger(__name__)

RETRY_STATUSES = {429, 502, 503, 504, 520, 522, 524}


@dataclass(frozen=True)
class HttpPolicy:
    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    retries: int = 4
    backoff_base: float = 1.5

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpPolicy":
        return cls(
            connect_timeout=settings.http_connect_timeout,
            read_timeout=settings.http_read_timeout,
            retries=settings.http_retries,
            backoff_base=settings.http_backoff_base,
        )


def auth_headers(endpoint: EndpointConfig, credential: Optional[str]) -> dict[str, str]:
    if endpoint.auth == "none":
        return {}
    if not credential:
        raise RuntimeError(f"endpoint {endpoint.name}: secret {endpoint.secret} not set")
    if endpoint.auth == "api_key":
        return {endpoint.header: credential}
    return {"Authorization": f"Bearer {credential}"}


def _request_logger(endpoint: EndpointConfig):
    def log_request(request: httpx.Request) -> None:
        logger.debug("HTTP %s %s", request.method, request.url)
        if "authorization" in request.headers:
            logger.debug("HTTP Authorization: %s", mask_secret(request.headers.get("authorization")))
        if endpoint.auth == "api_key" and endpoint.header in request.headers:
            logger.debug("HTTP %s: %s", endpoint.header, mask_secret(request.headers.get(endpoint.header)))

    return log_request


def make_client(
    endpoint: EndpointConfig,
    credential: Optional[str],
    policy: HttpPolicy,
    *,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    timeout = httpx.Timeout(
        connect=policy.connect_timeout,
        read=policy.read_timeout,
        write=policy.read_timeout,
        pool=policy.connect_timeout,
    )
    return httpx.Client(
        auth=None,
        timeout=timeout,
        headers={"Accept": "application/json, application/xml, text/csv, */*", **auth_headers(endpoint, credential)},
        event_hooks={"request": [_request_logger(endpoint)]},
        transport=transport,
    )


def sleep_backoff(policy: HttpPolicy, *, attempt: int, url: str, sleep: Callable[[float], None] = time.sleep) -> None:
    sleep_s = policy.backoff_base * (2 ** (attempt - 1))
    sleep_s += random.uniform(0, 0.5)
    logger.info("Sleeping %.2fs before retrying %s", sleep_s, url)
    sleep(sleep_s)


def get_with_retry(
    policy: HttpPolicy,
    client: httpx.Client,
    url: str,
    params: Optional[dict] = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    last_err: Exception | None = None

    for attempt in range(1, policy.retries + 1):
        t0 = time.perf_counter()
        try:
            r = client.get(url, params=params)
            elapsed = time.perf_counter() - t0

            if r.status_code in RETRY_STATUSES:
                logger.warning(
                    "Retryable HTTP %d (attempt %d/%d) GET %s after %.2fs body_snippet=%r",
                    r.status_code,
                    attempt,
                    policy.retries,
                    url,
                    elapsed,
                    (r.text or "")[:300],
                )
                raise httpx.HTTPStatusError("Retryable status", request=r.request, response=r)

            logger.debug("GET %s completed in %.2fs status=%d", url, elapsed, r.status_code)
            r.raise_for_status()
            return r.text

        except (httpx.ReadTimeout, httpx.ConnectTimeout, httpx.ConnectError) as e:
            last_err = e
            logger.warning(
                "%s (attempt %d/%d) GET %s after %.2fs",
                e.__class__.__name__,
                attempt,
                policy.retries,
                url,
                time.perf_counter() - t0,
            )

        except httpx.HTTPStatusError as e:
            last_err = e
            status = e.response.status_code if e.response is not None else None
            if status not in RETRY_STATUSES:
                logger.error(
                    "Non-retryable HTTP %s GET %s body_snippet=%r",
                    status,
                    url,
                    (e.response.text or "")[:300] if e.response is not None else None,
                )
                raise

        if attempt < policy.retries:
            sleep_backoff(policy, attempt=attempt, url=url, sleep=sleep)

    raise last_err  # type: ignore
