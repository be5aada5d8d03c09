from __future__ import annotations

import logging
from typing import Any

import httpx
from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

from moviematch.core.config import settings
from moviematch.utils.redaction import redact_secrets

logger = logging.getLogger("moviematch.ingestion.http")


class ExternalAPIError(Exception):
    pass


class RateLimitedError(ExternalAPIError):
    """Raised for HTTP 429 so the retry policy can tell it apart from other failures."""

    def __init__(self, url: str, retry_after: str | None = None) -> None:
        self.url = url
        self.retry_after = retry_after
        super().__init__(f"Rate limited by {redact_secrets(url)} (retry after: {retry_after or 'unspecified'})")


def build_timeout() -> httpx.Timeout:
    """Connect/read timeouts applied to every outbound call."""
    return httpx.Timeout(settings.http_read_timeout_seconds, connect=settings.http_connect_timeout_seconds)


def build_client(*, headers: dict[str, str] | None = None, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=build_timeout(),
        headers={"accept": "application/json", **(headers or {})},
        transport=transport,
    )


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
    max_attempts: int | None = None,
    initial_backoff: float | None = None,
) -> httpx.Response:
    """Send a request, retrying only when the upstream answers 429.

    Any other status is returned to the caller untouched; transport errors
    propagate immediately.
    """
    attempts = max_attempts or settings.rate_limit_max_attempts
    backoff = settings.rate_limit_initial_backoff_seconds if initial_backoff is None else initial_backoff
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=backoff, max=settings.rate_limit_max_backoff_seconds),
        retry=retry_if_exception_type(RateLimitedError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            response = await client.request(method, url, headers=headers, params=params)
            if response.status_code == 429:
                raise RateLimitedError(url, response.headers.get("Retry-After"))
            return response
    raise ExternalAPIError("Unreachable")


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
) -> Any:
    """GET a JSON document, folding every failure mode into ExternalAPIError."""
    try:
        response = await request_with_retry(client, "GET", url, headers=headers, params=params)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise ExternalAPIError(f"{exc.response.status_code} from {redact_secrets(url)}") from exc
    except httpx.HTTPError as exc:
        raise ExternalAPIError(f"Request to {redact_secrets(url)} failed: {exc!r}") from exc
    try:
        return response.json()
    except ValueError as exc:
        raise ExternalAPIError(f"Malformed JSON from {redact_secrets(url)}") from exc
