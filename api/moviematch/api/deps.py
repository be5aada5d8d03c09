from fastapi import Depends, HTTPException, Request, status

from moviematch.services.container import ServiceContainer
from moviematch.services.enrichment import RecommendationService
from moviematch.services.genre_cache import GenreCache
from moviematch.services.movie_query import MovieSearchService
from moviematch.services.preferences import PreferenceService


def get_services(request: Request) -> ServiceContainer:
    services: ServiceContainer | None = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service is starting up")
    return services


def get_genre_cache(services: ServiceContainer = Depends(get_services)) -> GenreCache:
    return services.genre_cache


def get_movie_search(services: ServiceContainer = Depends(get_services)) -> MovieSearchService:
    return services.movie_search


def get_recommendation_service(services: ServiceContainer = Depends(get_services)) -> RecommendationService:
    return services.recommendations


def get_preference_service(services: ServiceContainer = Depends(get_services)) -> PreferenceService:
    return services.preferences
