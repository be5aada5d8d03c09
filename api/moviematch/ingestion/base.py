"""Normalized records produced by the upstream clients."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class GenreEntry:
    """Provider genre as returned by the genre list endpoint."""
    id: str
    name: str


@dataclass(frozen=True, slots=True)
class BasicRecommendation:
    """Recommendation row from the recommender before enrichment."""
    title: str
    overview: str | None = None
    popularity: float | None = None
    similarity: float | None = None
    vote_average: float | None = None


@dataclass(frozen=True, slots=True)
class StreamingAvailability:
    """Streaming metadata for one title; the default instance means "nothing known"."""
    poster_url: str | None = None
    platforms: tuple[str, ...] = ()
    release_year: int | None = None
    external_id: str | None = None
    genres: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return self == EMPTY_AVAILABILITY


EMPTY_AVAILABILITY = StreamingAvailability()


@dataclass(frozen=True, slots=True)
class EnrichedRecommendation:
    title: str
    overview: str | None = None
    popularity: float | None = None
    similarity: float | None = None
    vote_average: float | None = None
    streaming: StreamingAvailability = field(default=EMPTY_AVAILABILITY)

    @classmethod
    def combine(
        cls, basic: BasicRecommendation, streaming: StreamingAvailability = EMPTY_AVAILABILITY
    ) -> EnrichedRecommendation:
        return cls(
            title=basic.title,
            overview=basic.overview,
            popularity=basic.popularity,
            similarity=basic.similarity,
            vote_average=basic.vote_average,
            streaming=streaming,
        )
