"""Health reporting for the API process.

Everyone gets the overall status. Callers on the health allowlist also get
genre cache state and per-operation upstream breaker state.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Any, Iterable

from fastapi import APIRouter, Request

from moviematch.core.config import settings
from moviematch.services.container import ServiceContainer

router = APIRouter()

REPEATED_FAILURES = 2

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


@dataclass(frozen=True)
class HealthAllowlist:
    networks: tuple[IPNetwork, ...]
    hostnames: frozenset[str]

    @classmethod
    def from_entries(cls, entries: Iterable[str]) -> HealthAllowlist:
        networks: list[IPNetwork] = []
        hostnames: set[str] = set()
        for entry in entries:
            entry = entry.strip()
            if not entry:
                continue
            try:
                networks.append(ipaddress.ip_network(entry, strict=False))
            except ValueError:
                hostnames.add(entry.casefold())
        return cls(networks=tuple(networks), hostnames=frozenset(hostnames))

    def _matches(self, value: str) -> bool:
        try:
            address = ipaddress.ip_address(value)
        except ValueError:
            return value.casefold() in self.hostnames
        return any(address in network for network in self.networks)

    def permits(self, request: Request) -> bool:
        """True when the peer address or the requested hostname is listed."""
        candidates = [request.client.host if request.client else None, request.url.hostname]
        return any(self._matches(candidate) for candidate in candidates if candidate)


def _breaker_state(circuit: dict[str, Any]) -> str:
    if circuit["cooldown_remaining"] > 0:
        return "open"
    if circuit["consecutive_failures"] >= REPEATED_FAILURES:
        return "failing"
    return "ok"


def summarize_upstreams(snapshot: dict[str, dict[str, Any]]) -> dict[str, Any]:
    """Label each ``source.operation`` breaker and list the ones that need attention."""
    upstreams: dict[str, Any] = {}
    issues: list[dict[str, Any]] = []
    for name, entry in sorted(snapshot.items()):
        state = _breaker_state(entry["circuit"])
        upstreams[name] = {"state": state, "circuit": entry["circuit"], "stats": entry["stats"]}
        if state != "ok":
            issues.append({"upstream": name, "state": state, "last_error": entry["stats"]["last_error"]})
    return {"upstreams": upstreams, "issues": issues}


def genre_cache_failed(cache_status: dict[str, Any]) -> bool:
    """An empty cache is only a problem once a refresh has actually failed."""
    return not cache_status["size"] and bool(cache_status["last_error"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    services: ServiceContainer | None = getattr(request.app.state, "services", None)
    if services is None:
        return {"status": "starting"}

    cache_status = services.genre_cache.status()
    telemetry = summarize_upstreams(await services.monitor.snapshot())
    status = "degraded" if genre_cache_failed(cache_status) or telemetry["issues"] else "ok"
    if not HealthAllowlist.from_entries(settings.health_allowlist).permits(request):
        return {"status": status}
    return {
        "status": status,
        "genre_cache": cache_status,
        "streaming_lookups": services.streaming.lookup_available(),
        **telemetry,
    }
