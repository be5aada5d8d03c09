"""Streaming-availability provider connector.

Covers the three provider calls the service makes: the genre list that
seeds the genre cache, the filtered movie search, and the per-title lookup
used to enrich recommendations. Lookups never raise; everything else raises
ExternalAPIError.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from moviematch.core.config import settings
from moviematch.ingestion.base import EMPTY_AVAILABILITY, GenreEntry, StreamingAvailability
from moviematch.ingestion.http import ExternalAPIError, fetch_json
from moviematch.ingestion.observability import CircuitOpenError, UpstreamMonitor
from moviematch.utils.redaction import redact_secrets
from moviematch.utils.values import (
    dedupe,
    first_or_none,
    non_empty_string,
    normalize_title,
    positive_int_or_none,
    string_or_none,
)

logger = logging.getLogger("moviematch.ingestion.streaming")

SEARCH_PATH = "/shows/search/title"
GENRES_PATH = "/genres"


def _dicts_only(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class PosterUrls(_Lenient):
    original: str | None = None

    @field_validator("original", mode="before")
    @classmethod
    def _string(cls, value: Any) -> str | None:
        return string_or_none(value)


class ServiceRef(_Lenient):
    name: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, value: Any) -> str | None:
        return non_empty_string(value)


class StreamingOption(_Lenient):
    service: ServiceRef | None = None

    @field_validator("service", mode="before")
    @classmethod
    def _service(cls, value: Any) -> dict[str, Any] | None:
        return value if isinstance(value, dict) else None


class GenrePayload(_Lenient):
    id: str | None = None
    name: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, value: Any) -> str | None:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return non_empty_string(value)

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, value: Any) -> str | None:
        return non_empty_string(value)


class ShowPayload(_Lenient):
    """One search result; every field the service reads is optional."""

    title: str | None = None
    poster_urls: PosterUrls | None = Field(default=None, alias="posterURLs")
    streaming_options: dict[str, list[StreamingOption]] = Field(default_factory=dict, alias="streamingOptions")
    year: int | None = None
    imdb_id: str | None = Field(default=None, alias="imdbId")
    genres: list[GenrePayload] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def _title(cls, value: Any) -> str | None:
        return string_or_none(value)

    @field_validator("poster_urls", mode="before")
    @classmethod
    def _posters(cls, value: Any) -> dict[str, Any] | None:
        return value if isinstance(value, dict) else None

    @field_validator("streaming_options", mode="before")
    @classmethod
    def _options(cls, value: Any) -> dict[str, list[dict[str, Any]]]:
        if not isinstance(value, dict):
            return {}
        return {region: _dicts_only(options) for region, options in value.items() if isinstance(region, str)}

    @field_validator("year", mode="before")
    @classmethod
    def _year(cls, value: Any) -> int | None:
        return positive_int_or_none(value)

    @field_validator("imdb_id", mode="before")
    @classmethod
    def _imdb_id(cls, value: Any) -> str | None:
        return non_empty_string(value)

    @field_validator("genres", mode="before")
    @classmethod
    def _genres(cls, value: Any) -> list[dict[str, Any]]:
        return _dicts_only(value)

    def platforms(self, country: str) -> tuple[str, ...]:
        options = self.streaming_options.get(country, [])
        return dedupe(option.service.name for option in options if option.service and option.service.name)

    def to_availability(self, country: str) -> StreamingAvailability:
        return StreamingAvailability(
            poster_url=self.poster_urls.original if self.poster_urls else None,
            platforms=self.platforms(country),
            release_year=self.year,
            external_id=self.imdb_id,
            genres=tuple(genre.name for genre in self.genres if genre.name),
        )


class SearchEnvelope(_Lenient):
    results: list[ShowPayload] = Field(default_factory=list)

    @field_validator("results", mode="before")
    @classmethod
    def _results(cls, value: Any) -> list[dict[str, Any]]:
        return _dicts_only(value)


def pick_result(results: Sequence[ShowPayload], title: str, year: int | None = None) -> ShowPayload | None:
    """Prefer an exact (normalized) title match, then fall back to the first result."""
    wanted = normalize_title(title)
    for show in results:
        if show.title is None or normalize_title(show.title) != wanted:
            continue
        if year is None or show.year == year:
            return show
    return first_or_none(results)


def parse_availability(payload: Any, title: str, *, year: int | None = None, country: str = "us") -> StreamingAvailability:
    """Turn a search response into availability data; raises ValidationError on non-object bodies."""
    envelope = SearchEnvelope.model_validate(payload)
    show = pick_result(envelope.results, title, year)
    if show is None:
        return EMPTY_AVAILABILITY
    return show.to_availability(country)


class StreamingAvailabilityConnector:
    source_name = "streaming"

    def __init__(
        self,
        client: httpx.AsyncClient,
        monitor: UpstreamMonitor,
        *,
        api_key: str | None = None,
        api_host: str | None = None,
        base_url: str | None = None,
        country: str | None = None,
    ) -> None:
        self._client = client
        self._monitor = monitor
        self.api_key = api_key or settings.rapidapi_key
        self.api_host = api_host or settings.rapidapi_host
        self.base_url = (base_url or settings.rapidapi_base_url).rstrip("/")
        self.country = country or settings.streaming_country

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def lookup_available(self) -> bool:
        """False while unconfigured or while recent lookups have tripped their breaker."""
        return self.enabled and not self._monitor.is_open(self.source_name, "lookup")

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise ExternalAPIError("Streaming provider credentials missing; set RAPIDAPI_KEY")
        return {"X-RapidAPI-Key": self.api_key, "X-RapidAPI-Host": self.api_host}

    async def _get(
        self,
        operation: str,
        path: str,
        params: dict[str, Any],
        *,
        context: dict[str, Any],
        gated: bool = True,
    ) -> Any:
        headers = self._headers()
        url = f"{self.base_url}{path}"
        return await self._monitor.track(
            self.source_name,
            operation,
            lambda: fetch_json(self._client, url, headers=headers, params=params),
            context=context,
            gated=gated,
        )

    async def fetch_genres(self) -> list[GenreEntry]:
        """Return every provider genre; raises ExternalAPIError on any failure."""
        try:
            payload = await self._get("genres", GENRES_PATH, {"output_language": "en"}, context={})
        except CircuitOpenError as exc:
            raise ExternalAPIError(str(exc)) from exc
        if not isinstance(payload, list):
            raise ExternalAPIError("Genre list response was not a JSON array")
        entries: list[GenreEntry] = []
        for item in _dicts_only(payload):
            genre = GenrePayload.model_validate(item)
            if genre.id and genre.name:
                entries.append(GenreEntry(id=genre.id, name=genre.name))
        return entries

    async def search_movies(self, params: dict[str, str]) -> Any:
        """Run a filtered provider search and return the raw JSON payload."""
        try:
            return await self._get("search", SEARCH_PATH, params, context={"params": params})
        except CircuitOpenError as exc:
            raise ExternalAPIError(str(exc)) from exc

    async def lookup(self, title: str, *, year: int | None = None) -> StreamingAvailability:
        """Best-effort streaming data for a title; failures degrade to the empty value."""
        if not self.enabled or not title.strip():
            return EMPTY_AVAILABILITY
        params = {"title": title, "country": self.country, "show_type": "movie"}
        try:
            payload = await self._get("lookup", SEARCH_PATH, params, context={"title": title}, gated=False)
            return parse_availability(payload, title, year=year, country=self.country)
        except (ExternalAPIError, ValidationError) as exc:
            logger.warning("Streaming lookup for %r failed: %s", title, redact_secrets(str(exc)))
        except Exception:
            logger.exception("Unexpected error during streaming lookup for %r", title)
        return EMPTY_AVAILABILITY
