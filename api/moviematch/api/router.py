"""API router composition for all route groups."""

from fastapi import APIRouter

from .routes import genres, movies, preferences, recommendations

api_router = APIRouter()
api_router.include_router(movies.router, prefix="/movies", tags=["movies"])
api_router.include_router(recommendations.router, prefix="/recommendations", tags=["recommendations"])
api_router.include_router(genres.router, prefix="/genres", tags=["genres"])
api_router.include_router(preferences.router, prefix="/preferences", tags=["preferences"])
