"""Streaming provider connector tests: credentials, lookups, and lenient parsing."""

from __future__ import annotations

import httpx
import pytest

from moviematch.core.config import settings
from moviematch.ingestion.base import EMPTY_AVAILABILITY, BasicRecommendation
from moviematch.ingestion.http import ExternalAPIError, build_client
from moviematch.ingestion.observability import UpstreamMonitor
from moviematch.ingestion.streaming import StreamingAvailabilityConnector, parse_availability
from moviematch.services.enrichment import EnrichmentOrchestrator

FULL_SHOW = {
    "title": "Inception",
    "posterURLs": {"original": "https://img.test/inception.jpg"},
    "streamingOptions": {
        "us": [
            {"service": {"id": "netflix", "name": "Netflix"}},
            {"service": {"id": "prime", "name": "Prime Video"}},
            {"service": {"id": "netflix", "name": "Netflix"}},
        ],
        "gb": [{"service": {"name": "Sky"}}],
    },
    "year": 2010,
    "imdbId": "tt1375666",
    "genres": [{"id": "action", "name": "Action"}, {"id": "scifi", "name": "Science Fiction"}],
}


def _connector(handler, *, api_key: str | None = "test-key", monitor: UpstreamMonitor | None = None):
    client = build_client(transport=httpx.MockTransport(handler))
    return StreamingAvailabilityConnector(
        client,
        monitor or UpstreamMonitor(),
        api_key=api_key,
        base_url="https://provider.test",
        country="us",
    )


def test_headers_require_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "rapidapi_key", None)
    connector = _connector(lambda request: httpx.Response(200), api_key=None)

    assert connector.enabled is False
    with pytest.raises(ExternalAPIError, match="RAPIDAPI_KEY"):
        connector._headers()


def test_headers_carry_rapidapi_credentials() -> None:
    connector = _connector(lambda request: httpx.Response(200))

    headers = connector._headers()

    assert headers["X-RapidAPI-Key"] == "test-key"
    assert headers["X-RapidAPI-Host"] == settings.rapidapi_host


@pytest.mark.asyncio
async def test_lookup_without_key_makes_no_request(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "rapidapi_key", None)
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, json={"results": [FULL_SHOW]})

    result = await _connector(handler, api_key=None).lookup("Inception")

    assert result is EMPTY_AVAILABILITY
    assert calls == 0


@pytest.mark.asyncio
async def test_lookup_parses_full_result() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/shows/search/title"
        assert request.url.params["title"] == "Inception"
        assert request.url.params["country"] == "us"
        assert request.url.params["show_type"] == "movie"
        assert request.headers["X-RapidAPI-Key"] == "test-key"
        return httpx.Response(200, json={"results": [FULL_SHOW]})

    result = await _connector(handler).lookup("Inception")

    assert result.poster_url == "https://img.test/inception.jpg"
    assert result.platforms == ("Netflix", "Prime Video")
    assert result.release_year == 2010
    assert result.external_id == "tt1375666"
    assert result.genres == ("Action", "Science Fiction")


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{"results": []}, {}, {"results": None}, {"results": ["junk"]}])
async def test_lookup_with_no_usable_results_is_empty(body) -> None:
    result = await _connector(lambda request: httpx.Response(200, json=body)).lookup("Inception")

    assert result.is_empty


@pytest.mark.asyncio
async def test_lookup_network_failure_degrades_to_empty() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    assert await _connector(handler).lookup("Inception") is EMPTY_AVAILABILITY


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 500])
async def test_lookup_error_status_degrades_to_empty(status: int) -> None:
    result = await _connector(lambda request: httpx.Response(status, json={"message": "nope"})).lookup("Inception")

    assert result is EMPTY_AVAILABILITY


@pytest.mark.asyncio
async def test_lookup_non_object_body_degrades_to_empty() -> None:
    result = await _connector(lambda request: httpx.Response(200, json=["Inception"])).lookup("Inception")

    assert result is EMPTY_AVAILABILITY


@pytest.mark.asyncio
async def test_failed_lookups_mark_lookups_unavailable_without_blocking_other_calls() -> None:
    monitor = UpstreamMonitor(failure_threshold=1, cooldown_seconds=60, max_cooldown_seconds=60)
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if request.url.path == "/genres":
            return httpx.Response(200, json=[{"id": "action", "name": "Action"}])
        return httpx.Response(500)

    connector = _connector(handler, monitor=monitor)
    assert connector.lookup_available() is True
    assert await connector.lookup("Inception") is EMPTY_AVAILABILITY
    assert connector.lookup_available() is False

    # Lookups are never rejected outright; callers consult lookup_available first.
    assert await connector.lookup("Inception") is EMPTY_AVAILABILITY
    genres = await connector.fetch_genres()

    assert [genre.id for genre in genres] == ["action"]
    assert paths == ["/shows/search/title", "/shows/search/title", "/genres"]


@pytest.mark.asyncio
async def test_lookup_outage_leaves_genres_search_and_healthy_records_intact() -> None:
    """Three failing titles in one batch must not break the rest of the provider surface."""
    lookups: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/genres":
            return httpx.Response(200, json=[{"id": "action", "name": "Action"}])
        if "genres" in request.url.params:
            return httpx.Response(200, json={"shows": [FULL_SHOW], "hasMore": False})
        title = request.url.params["title"]
        lookups.append(title)
        if title in {"A", "B", "C"}:
            return httpx.Response(500, json={"message": "boom"})
        return httpx.Response(200, json={"results": [{**FULL_SHOW, "title": title}]})

    connector = _connector(handler)
    orchestrator = EnrichmentOrchestrator(connector, max_concurrency=1, task_timeout=1)

    enriched = await orchestrator.enrich(
        [BasicRecommendation(title=title, popularity=1.0) for title in ("A", "B", "C", "D")]
    )

    assert [item.title for item in enriched] == ["A", "B", "C", "D"]
    assert [item.streaming.is_empty for item in enriched] == [True, True, True, False]
    assert enriched[3].streaming.platforms == ("Netflix", "Prime Video")

    genres = await connector.fetch_genres()
    payload = await connector.search_movies({"country": "us", "genres": "action", "show_type": "movie"})

    assert [genre.name for genre in genres] == ["Action"]
    assert payload["shows"][0]["title"] == "Inception"

    # The healthy lookup closed the breaker again; a batch of only failures trips it.
    assert connector.lookup_available() is True
    await orchestrator.enrich([BasicRecommendation(title=title, popularity=1.0) for title in ("A", "B", "C")])
    assert connector.lookup_available() is False
    assert (await connector.search_movies({"country": "us", "genres": "action"}))["hasMore"] is False
    assert len(await connector.fetch_genres()) == 1

    lookups.clear()
    later = await orchestrator.enrich([BasicRecommendation(title="D", popularity=1.0)])

    assert later[0].streaming is EMPTY_AVAILABILITY
    assert lookups == []


@pytest.mark.asyncio
async def test_lookup_blank_title_is_empty_without_call() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, json={"results": [FULL_SHOW]})

    assert await _connector(handler).lookup("   ") is EMPTY_AVAILABILITY
    assert calls == 0


def test_parse_availability_tolerates_wrong_types() -> None:
    payload = {
        "results": [
            {
                "title": "Inception",
                "posterURLs": {"original": 42},
                "streamingOptions": {"us": [{"service": "netflix"}, "junk", {"service": {"name": ""}}]},
                "year": 0,
                "imdbId": 1375666,
                "genres": ["Action", {"name": "Drama"}],
            }
        ]
    }

    result = parse_availability(payload, "Inception")

    assert result.poster_url is None
    assert result.platforms == ()
    assert result.release_year is None
    assert result.external_id is None
    assert result.genres == ("Drama",)


def test_parse_availability_ignores_other_countries() -> None:
    result = parse_availability({"results": [FULL_SHOW]}, "Inception", country="gb")

    assert result.platforms == ("Sky",)


def test_parse_availability_prefers_exact_title_match() -> None:
    payload = {
        "results": [
            {"title": "Inception: The Cobol Job", "year": 2010},
            {"title": "inception", "year": 2010, "imdbId": "tt1375666"},
        ]
    }

    assert parse_availability(payload, "Inception").external_id == "tt1375666"


def test_parse_availability_uses_year_to_break_ties() -> None:
    payload = {
        "results": [
            {"title": "Dune", "year": 1984, "imdbId": "tt0087182"},
            {"title": "Dune", "year": 2021, "imdbId": "tt1160419"},
        ]
    }

    assert parse_availability(payload, "Dune", year=2021).external_id == "tt1160419"
    assert parse_availability(payload, "Dune").external_id == "tt0087182"


def test_parse_availability_falls_back_to_first_result() -> None:
    payload = {"results": [{"title": "Something Else", "year": 1999}]}

    assert parse_availability(payload, "Inception").release_year == 1999


@pytest.mark.asyncio
async def test_fetch_genres_maps_entries() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/genres"
        assert request.url.params["output_language"] == "en"
        return httpx.Response(200, json=[{"id": "action", "name": "Action"}, {"id": 18, "name": "Drama"}, {"name": "NoId"}, "junk"])

    entries = await _connector(handler).fetch_genres()

    assert [(entry.id, entry.name) for entry in entries] == [("action", "Action"), ("18", "Drama")]


@pytest.mark.asyncio
async def test_fetch_genres_rejects_non_list_payload() -> None:
    with pytest.raises(ExternalAPIError, match="not a JSON array"):
        await _connector(lambda request: httpx.Response(200, json={"genres": []})).fetch_genres()


@pytest.mark.asyncio
async def test_fetch_genres_without_key_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "rapidapi_key", None)

    with pytest.raises(ExternalAPIError):
        await _connector(lambda request: httpx.Response(200, json=[]), api_key=None).fetch_genres()


@pytest.mark.asyncio
async def test_search_movies_surfaces_failures() -> None:
    with pytest.raises(ExternalAPIError, match="500"):
        await _connector(lambda request: httpx.Response(500)).search_movies({"title": "inception"})
