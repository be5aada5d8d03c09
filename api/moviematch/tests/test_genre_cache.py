from __future__ import annotations

import asyncio

import pytest

from moviematch.ingestion.base import GenreEntry
from moviematch.ingestion.http import ExternalAPIError
from moviematch.services.genre_cache import GenreCache


def _loader(entries: list[GenreEntry]):
    async def _load() -> list[GenreEntry]:
        return list(entries)

    return _load


@pytest.mark.asyncio
async def test_refresh_populates_cache_with_lowercase_keys() -> None:
    cache = GenreCache(_loader([GenreEntry("action", "Action"), GenreEntry("scifi", "Science Fiction")]))

    size = await cache.refresh()

    assert size == 2
    assert cache.generation == 1
    assert dict(cache.entries()) == {"action": "action", "science fiction": "scifi"}
    assert cache.lookup("  ACTION ") == "action"
    assert cache.lookup("Western") is None
    assert cache.status()["refreshed_at"] is not None


@pytest.mark.asyncio
async def test_refresh_failure_keeps_previous_contents() -> None:
    calls = 0

    async def _flaky() -> list[GenreEntry]:
        nonlocal calls
        calls += 1
        if calls > 1:
            raise ExternalAPIError("503 from https://provider/genres?key=secret")
        return [GenreEntry("drama", "Drama")]

    cache = GenreCache(_flaky)
    await cache.refresh()

    with pytest.raises(ExternalAPIError):
        await cache.refresh()

    assert cache.lookup("drama") == "drama"
    assert cache.generation == 1
    assert cache.last_error is not None
    assert "secret" not in cache.last_error


@pytest.mark.asyncio
async def test_successful_refresh_clears_last_error() -> None:
    fail = True

    async def _load() -> list[GenreEntry]:
        if fail:
            raise ExternalAPIError("boom")
        return [GenreEntry("comedy", "Comedy")]

    cache = GenreCache(_load)
    with pytest.raises(ExternalAPIError):
        await cache.refresh()
    assert len(cache) == 0
    assert cache.status()["last_error"] == "boom"

    fail = False
    await cache.refresh()
    assert cache.last_error is None
    assert len(cache) == 1


def test_install_replaces_entries_wholesale() -> None:
    cache = GenreCache(_loader([]))
    cache.install([GenreEntry("action", "Action"), GenreEntry("drama", "Drama")])
    cache.install([GenreEntry("horror", "Horror")])

    assert dict(cache.entries()) == {"horror": "horror"}
    assert cache.generation == 2


def test_resolve_all_drops_unknown_names_and_keeps_order() -> None:
    cache = GenreCache(_loader([]))
    cache.install([GenreEntry("1", "Action"), GenreEntry("2", "Drama"), GenreEntry("3", "Comedy")])

    assert cache.resolve_all(["comedy", "Unknown", "ACTION", ""]) == ["3", "1"]


@pytest.mark.asyncio
async def test_readers_see_whole_snapshots_during_refresh() -> None:
    """Every read during concurrent refreshes sees one generation's complete mapping."""
    generations = {
        n: [GenreEntry(f"{name}-{n}", name) for name in ("Action", "Drama", "Comedy", "Horror")] for n in range(1, 21)
    }
    counter = 0

    async def _load() -> list[GenreEntry]:
        nonlocal counter
        counter += 1
        current = counter
        await asyncio.sleep(0)
        return generations[current]

    cache = GenreCache(_load)
    await cache.refresh()
    observed: list[set[str]] = []

    async def _reader() -> None:
        for _ in range(200):
            snapshot = cache.entries()
            observed.append({value.rsplit("-", 1)[1] for value in snapshot.values()})
            await asyncio.sleep(0)

    await asyncio.gather(_reader(), _reader(), *(cache.refresh() for _ in range(19)))

    assert cache.generation == 20
    assert all(len(suffixes) == 1 for suffixes in observed)


@pytest.mark.asyncio
async def test_concurrent_refreshes_are_serialized() -> None:
    active = 0
    peak = 0

    async def _load() -> list[GenreEntry]:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return [GenreEntry("action", "Action")]

    cache = GenreCache(_load)
    await asyncio.gather(*(cache.refresh() for _ in range(5)))

    assert peak == 1
    assert cache.generation == 5
