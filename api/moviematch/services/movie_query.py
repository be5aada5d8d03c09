"""Genre/platform movie search against the streaming provider.

Invariants:
- Validation happens before any network call.
- A query is never sent without at least one resolved genre id, since the
  provider would otherwise return unfiltered results.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

from moviematch.core.config import settings
from moviematch.core.errors import QueryValidationError
from moviematch.ingestion.streaming import StreamingAvailabilityConnector
from moviematch.services.genre_cache import GenreCache

logger = logging.getLogger("moviematch.services.movie_query")

FIXED_PARAMS: dict[str, str] = {
    "series_granularity": "show",
    "show_type": "movie",
    "output_language": "en",
}


def _clean(values: Sequence[str] | None) -> list[str]:
    if not values:
        return []
    return [value.strip() for value in values if isinstance(value, str) and value.strip()]


@dataclass(frozen=True, slots=True)
class ProviderQuery:
    title: str
    genre_ids: tuple[str, ...]
    platforms: tuple[str, ...]
    country: str

    def params(self) -> dict[str, str]:
        return {
            "title": self.title,
            "country": self.country,
            **FIXED_PARAMS,
            "genres": ",".join(self.genre_ids),
            "catalogs": ",".join(self.platforms),
        }


class MovieQueryBuilder:
    def __init__(self, genre_cache: GenreCache, *, country: str | None = None) -> None:
        self._genre_cache = genre_cache
        self.country = country or settings.streaming_country

    def build(
        self,
        genres: Sequence[str] | None,
        platforms: Sequence[str] | None,
        *,
        title: str | None = None,
    ) -> ProviderQuery:
        genre_names = _clean(genres)
        if not genre_names:
            raise QueryValidationError("Genres list cannot be null or empty")
        platform_names = _clean(platforms)
        if not platform_names:
            raise QueryValidationError("Platforms list cannot be null or empty")

        genre_ids = self._genre_cache.resolve_all(genre_names)
        logger.info("Converted genre names %s to ids %s", genre_names, genre_ids)
        if not genre_ids:
            raise QueryValidationError("No valid genres recognized for the given genre names")

        return ProviderQuery(
            title=(title or "").strip() or settings.movie_search_title,
            genre_ids=tuple(genre_ids),
            platforms=tuple(platform.lower() for platform in platform_names),
            country=self.country,
        )


class MovieSearchService:
    """Build a provider query from user input and run it."""

    def __init__(self, builder: MovieQueryBuilder, connector: StreamingAvailabilityConnector) -> None:
        self._builder = builder
        self._connector = connector

    async def search(
        self,
        genres: Sequence[str] | None,
        platforms: Sequence[str] | None,
        *,
        title: str | None = None,
    ) -> Any:
        query = self._builder.build(genres, platforms, title=title)
        payload = await self._connector.search_movies(query.params())
        logger.info("Movie search returned %s", "no results" if not payload else "results")
        return payload
