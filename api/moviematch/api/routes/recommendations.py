from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from moviematch.api.deps import get_recommendation_service
from moviematch.core.errors import QueryValidationError
from moviematch.ingestion.recommender import RecommendationNotFoundError, RecommenderTransportError
from moviematch.schema.recommendations import (
    EnrichedRecommendationList,
    EnrichedRecommendationRead,
    RecommendationList,
    RecommendationRead,
)
from moviematch.services.enrichment import RecommendationService

logger = logging.getLogger("moviematch.api.recommendations")

router = APIRouter()


def _to_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, QueryValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, RecommendationNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    logger.error("Recommendation request failed: %s (cause: %r)", exc, exc.__cause__)
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))


@router.get("", response_model=RecommendationList)
async def get_recommendations(
    title: str = Query(..., min_length=1),
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationList:
    try:
        items = await service.recommend(title)
    except (QueryValidationError, RecommendationNotFoundError, RecommenderTransportError) as exc:
        raise _to_http_error(exc) from exc
    return RecommendationList(title=title.strip(), recommendations=[RecommendationRead.from_basic(item) for item in items])


@router.get("/enhanced", response_model=EnrichedRecommendationList)
async def get_enhanced_recommendations(
    title: str = Query(..., min_length=1),
    service: RecommendationService = Depends(get_recommendation_service),
) -> EnrichedRecommendationList:
    try:
        items = await service.recommend_enriched(title)
    except (QueryValidationError, RecommendationNotFoundError, RecommenderTransportError) as exc:
        raise _to_http_error(exc) from exc
    return EnrichedRecommendationList(
        title=title.strip(),
        recommendations=[EnrichedRecommendationRead.from_enriched(item) for item in items],
    )
