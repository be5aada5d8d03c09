"""Client for the external recommendation microservice.

The service answers ``GET /recommend?title=...`` with either
``{"error": "..."}`` when it does not know the title or
``{"recommendations": [...]}``. The error envelope is the only "not found"
signal; everything else that goes wrong is a transport failure.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from moviematch.core.config import settings
from moviematch.core.errors import QueryValidationError
from moviematch.ingestion.base import BasicRecommendation
from moviematch.ingestion.http import ExternalAPIError, request_with_retry
from moviematch.ingestion.observability import CircuitOpenError, UpstreamMonitor
from moviematch.utils.redaction import redact_secrets
from moviematch.utils.values import non_empty_string, number_or_none

logger = logging.getLogger("moviematch.ingestion.recommender")


class RecommendationNotFoundError(Exception):
    """The recommender reported that it does not recognize the title."""

    def __init__(self, title: str, message: str) -> None:
        self.title = title
        self.message = message
        super().__init__(f"Movie not found: {message}")


class RecommenderTransportError(Exception):
    """The recommender could not be reached or answered with something unusable."""


def _has_error_envelope(response: httpx.Response) -> bool:
    try:
        payload = response.json()
    except ValueError:
        return False
    return isinstance(payload, dict) and "error" in payload


def parse_recommendation(item: Any) -> BasicRecommendation | None:
    if not isinstance(item, dict):
        return None
    title = non_empty_string(item.get("title"))
    if title is None:
        return None
    return BasicRecommendation(
        title=title,
        overview=item.get("overview") if isinstance(item.get("overview"), str) else None,
        popularity=number_or_none(item.get("popularity")),
        similarity=number_or_none(item.get("similarity")),
        vote_average=number_or_none(item.get("vote_average")),
    )


class RecommendationFetcher:
    source_name = "recommender"

    def __init__(self, client: httpx.AsyncClient, monitor: UpstreamMonitor, *, base_url: str | None = None) -> None:
        self._client = client
        self._monitor = monitor
        self.base_url = (base_url or settings.recommender_base_url).rstrip("/")

    @property
    def recommend_url(self) -> str:
        return f"{self.base_url}/recommend"

    async def fetch(self, title: str) -> list[BasicRecommendation]:
        """Return the recommender's candidates for ``title``.

        Raises RecommendationNotFoundError for the error envelope and
        RecommenderTransportError for anything else, with the original
        exception chained as ``__cause__``.
        """
        cleaned = title.strip() if isinstance(title, str) else ""
        if not cleaned:
            raise QueryValidationError("A movie title is required")

        async def _call() -> httpx.Response:
            response = await request_with_retry(self._client, "GET", self.recommend_url, params={"title": cleaned})
            if response.status_code >= 500 and not _has_error_envelope(response):
                raise ExternalAPIError(f"Recommendation service responded with status {response.status_code}")
            return response

        try:
            response = await self._monitor.track(self.source_name, "recommend", _call, context={"title": cleaned})
        except CircuitOpenError as exc:
            raise RecommenderTransportError(f"Recommendation service temporarily unavailable: {exc}") from exc
        except ExternalAPIError as exc:
            raise RecommenderTransportError(redact_secrets(str(exc))) from exc
        except httpx.HTTPError as exc:
            raise RecommenderTransportError(
                f"Failed to connect to recommendation service: {redact_secrets(str(exc)) or exc.__class__.__name__}"
            ) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise RecommenderTransportError(
                f"Recommendation service returned malformed JSON (status {response.status_code})"
            ) from exc

        if isinstance(payload, dict) and "error" in payload:
            message = str(payload.get("error") or "unknown title")
            logger.info("Recommender does not know %r: %s", cleaned, message)
            raise RecommendationNotFoundError(cleaned, message)

        if response.is_error:
            raise RecommenderTransportError(f"Recommendation service responded with status {response.status_code}")
        if not isinstance(payload, dict):
            raise RecommenderTransportError("Recommendation service response was not a JSON object")

        raw_items = payload.get("recommendations") or []
        if not isinstance(raw_items, list):
            raise RecommenderTransportError("Recommendation service returned a non-list 'recommendations' field")

        recommendations: list[BasicRecommendation] = []
        for item in raw_items:
            parsed = parse_recommendation(item)
            if parsed is None:
                logger.warning("Skipping malformed recommendation entry for %r: %r", cleaned, item)
                continue
            recommendations.append(parsed)
        return recommendations
