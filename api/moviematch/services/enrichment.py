"""Attach streaming availability to recommender output.

Invariants:
- Output has the same length and order as the input.
- A failing, hanging, or misbehaving lookup only empties its own record.
- No lookups are attempted while the client reports lookups unavailable.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, Sequence

from moviematch.core.config import settings
from moviematch.ingestion.base import (
    EMPTY_AVAILABILITY,
    BasicRecommendation,
    EnrichedRecommendation,
    StreamingAvailability,
)
from moviematch.ingestion.recommender import RecommendationFetcher

logger = logging.getLogger("moviematch.services.enrichment")


class AvailabilityLookup(Protocol):
    def lookup_available(self) -> bool:
        ...

    async def lookup(self, title: str, *, year: int | None = None) -> StreamingAvailability:
        ...


class EnrichmentOrchestrator:
    def __init__(
        self,
        lookup_client: AvailabilityLookup,
        *,
        max_concurrency: int | None = None,
        task_timeout: float | None = None,
    ) -> None:
        self._lookup_client = lookup_client
        self.max_concurrency = max(1, max_concurrency or settings.enrichment_max_concurrency)
        self.task_timeout = task_timeout if task_timeout is not None else settings.enrichment_task_timeout_seconds

    async def _lookup(self, semaphore: asyncio.Semaphore, basic: BasicRecommendation) -> StreamingAvailability:
        async with semaphore:
            try:
                streaming = await asyncio.wait_for(self._lookup_client.lookup(basic.title), timeout=self.task_timeout)
            except asyncio.TimeoutError:
                logger.warning("Streaming lookup for %r timed out after %.1fs", basic.title, self.task_timeout)
                return EMPTY_AVAILABILITY
            except Exception:
                logger.exception("Failed to enrich recommendation for %r", basic.title)
                return EMPTY_AVAILABILITY
        if not isinstance(streaming, StreamingAvailability):
            logger.warning("Streaming lookup for %r returned %r; using empty data", basic.title, streaming)
            return EMPTY_AVAILABILITY
        return streaming

    async def enrich(self, basics: Sequence[BasicRecommendation]) -> list[EnrichedRecommendation]:
        items = list(basics)
        if not items:
            return []
        if not self._lookup_client.lookup_available():
            logger.info("Streaming lookups unavailable; returning %d recommendations without streaming data", len(items))
            return [EnrichedRecommendation.combine(basic) for basic in items]
        semaphore = asyncio.Semaphore(self.max_concurrency)
        results = await asyncio.gather(*(self._lookup(semaphore, basic) for basic in items))
        degraded = sum(1 for streaming in results if streaming.is_empty)
        if degraded:
            logger.info("Enriched %d recommendations, %d without streaming data", len(items), degraded)
        return [EnrichedRecommendation.combine(basic, streaming) for basic, streaming in zip(items, results)]


class RecommendationService:
    def __init__(self, fetcher: RecommendationFetcher, orchestrator: EnrichmentOrchestrator) -> None:
        self._fetcher = fetcher
        self._orchestrator = orchestrator

    async def recommend(self, title: str) -> list[BasicRecommendation]:
        return await self._fetcher.fetch(title)

    async def recommend_enriched(self, title: str) -> list[EnrichedRecommendation]:
        basics = await self._fetcher.fetch(title)
        return await self._orchestrator.enrich(basics)
