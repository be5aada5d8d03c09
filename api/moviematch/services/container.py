"""Wiring for the long-lived service objects shared by every request."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from moviematch.ingestion.http import build_client
from moviematch.ingestion.observability import UpstreamMonitor
from moviematch.ingestion.recommender import RecommendationFetcher
from moviematch.ingestion.streaming import StreamingAvailabilityConnector
from moviematch.services.enrichment import EnrichmentOrchestrator, RecommendationService
from moviematch.services.genre_cache import GenreCache
from moviematch.services.movie_query import MovieQueryBuilder, MovieSearchService
from moviematch.services.preferences import PreferenceService, PreferenceStore, build_preference_store

logger = logging.getLogger("moviematch.services.container")


@dataclass
class ServiceContainer:
    monitor: UpstreamMonitor
    genre_cache: GenreCache
    streaming: StreamingAvailabilityConnector
    recommender: RecommendationFetcher
    query_builder: MovieQueryBuilder
    movie_search: MovieSearchService
    orchestrator: EnrichmentOrchestrator
    recommendations: RecommendationService
    preferences: PreferenceService
    preference_store: PreferenceStore
    clients: list[httpx.AsyncClient] = field(default_factory=list)

    async def aclose(self) -> None:
        for client in self.clients:
            await client.aclose()
        await self.preference_store.close()


def build_services(
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    preference_store: PreferenceStore | None = None,
    monitor: UpstreamMonitor | None = None,
) -> ServiceContainer:
    """Create every shared component; ``transport`` lets tests stub the network."""
    monitor = monitor or UpstreamMonitor()
    provider_client = build_client(transport=transport)
    recommender_client = build_client(transport=transport)

    streaming = StreamingAvailabilityConnector(provider_client, monitor)
    recommender = RecommendationFetcher(recommender_client, monitor)
    genre_cache = GenreCache(streaming.fetch_genres)
    query_builder = MovieQueryBuilder(genre_cache, country=streaming.country)
    orchestrator = EnrichmentOrchestrator(streaming)
    store = preference_store or build_preference_store()

    if not streaming.enabled:
        logger.warning("RAPIDAPI_KEY is not set; genre search is unavailable and recommendations will not be enriched")

    return ServiceContainer(
        monitor=monitor,
        genre_cache=genre_cache,
        streaming=streaming,
        recommender=recommender,
        query_builder=query_builder,
        movie_search=MovieSearchService(query_builder, streaming),
        orchestrator=orchestrator,
        recommendations=RecommendationService(recommender, orchestrator),
        preferences=PreferenceService(store),
        preference_store=store,
        clients=[provider_client, recommender_client],
    )
