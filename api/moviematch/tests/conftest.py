"""Shared pytest fixtures: fast settings, a fake upstream, and an API client."""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from moviematch.core.config import settings
from moviematch.ingestion.observability import UpstreamMonitor
from moviematch.main import app
from moviematch.services.container import ServiceContainer, build_services
from moviematch.services.preferences import InMemoryPreferenceStore

Handler = Callable[[httpx.Request], httpx.Response]

DEFAULT_GENRES = [
    {"id": "action", "name": "Action"},
    {"id": "comedy", "name": "Comedy"},
    {"id": "drama", "name": "Drama"},
    {"id": "scifi", "name": "Science Fiction"},
]


class FakeUpstream:
    """Routes MockTransport requests to the recommender or the streaming provider.

    Any path can be overridden with a handler; every request is recorded.
    """

    def __init__(self) -> None:
        self.genres: Any = list(DEFAULT_GENRES)
        self.recommendations: dict[str, Any] = {}
        self.shows: dict[str, Any] = {}
        self.search_payload: Any = {"shows": [{"title": "Inception"}]}
        self.overrides: dict[str, Handler] = {}
        self.requests: list[httpx.Request] = []

    def calls(self, path: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.overrides:
            return self.overrides[path](request)
        if path == "/recommend":
            title = request.url.params.get("title", "")
            if title.casefold() not in self.recommendations:
                return httpx.Response(404, json={"error": "Movie not found in dataset"})
            return httpx.Response(200, json={"recommendations": self.recommendations[title.casefold()]})
        if path == "/genres":
            return httpx.Response(200, json=self.genres)
        if path == "/shows/search/title":
            if "genres" in request.url.params:
                return httpx.Response(200, json=self.search_payload)
            title = request.url.params.get("title", "")
            return httpx.Response(200, json={"results": self.shows.get(title.casefold(), [])})
        return httpx.Response(404, json={"message": "unknown route"})


@pytest.fixture(autouse=True)
def _fast_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "rapidapi_key", "test-key")
    monkeypatch.setattr(settings, "rate_limit_initial_backoff_seconds", 0.0)
    monkeypatch.setattr(settings, "genre_refresh_initial_backoff_seconds", 0.0)
    monkeypatch.setattr(settings, "enrichment_task_timeout_seconds", 2.0)
    monkeypatch.setattr(settings, "health_allowlist", [])
    monkeypatch.setattr(settings, "preference_store_url", None)


@pytest.fixture()
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture()
def transport(upstream: FakeUpstream) -> httpx.MockTransport:
    return httpx.MockTransport(upstream)


@pytest_asyncio.fixture()
async def services(transport: httpx.MockTransport) -> ServiceContainer:
    container = build_services(
        transport=transport,
        preference_store=InMemoryPreferenceStore(),
        monitor=UpstreamMonitor(failure_threshold=50, cooldown_seconds=0.01, max_cooldown_seconds=0.02),
    )
    try:
        yield container
    finally:
        await container.aclose()


@pytest_asyncio.fixture()
async def client(services: ServiceContainer) -> AsyncClient:
    app.state.services = services
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as async_client:
        yield async_client
    app.state.services = None
