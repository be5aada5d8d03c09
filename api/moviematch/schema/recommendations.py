"""Recommendation response schemas."""

from __future__ import annotations

from pydantic import BaseModel

from moviematch.ingestion.base import BasicRecommendation, EnrichedRecommendation


class RecommendationRead(BaseModel):
    title: str
    overview: str | None = None
    popularity: float | None = None
    similarity: float | None = None
    vote_average: float | None = None

    @classmethod
    def from_basic(cls, item: BasicRecommendation) -> RecommendationRead:
        return cls(
            title=item.title,
            overview=item.overview,
            popularity=item.popularity,
            similarity=item.similarity,
            vote_average=item.vote_average,
        )


class EnrichedRecommendationRead(RecommendationRead):
    """Recommendation plus streaming data; streaming fields are empty when lookup failed."""
    poster_url: str | None = None
    streaming_platforms: list[str] = []
    release_year: int | None = None
    imdb_id: str | None = None
    genres: list[str] = []

    @classmethod
    def from_enriched(cls, item: EnrichedRecommendation) -> EnrichedRecommendationRead:
        streaming = item.streaming
        return cls(
            title=item.title,
            overview=item.overview,
            popularity=item.popularity,
            similarity=item.similarity,
            vote_average=item.vote_average,
            poster_url=streaming.poster_url,
            streaming_platforms=list(streaming.platforms),
            release_year=streaming.release_year,
            imdb_id=streaming.external_id,
            genres=list(streaming.genres),
        )


class RecommendationList(BaseModel):
    title: str
    recommendations: list[RecommendationRead]


class EnrichedRecommendationList(BaseModel):
    title: str
    recommendations: list[EnrichedRecommendationRead]
