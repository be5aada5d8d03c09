"""Per-operation circuit breakers and call statistics for upstream services.

Breakers are keyed by ``(source, operation)``: failing best-effort lookups
never block the genre list or the movie search against the same provider.

A call can also be made ungated. It is counted and can trip its breaker but
is never rejected, so one batch of lookups always runs to completion while
the next batch sees the open circuit through ``is_open``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from moviematch.utils.redaction import redact_secrets

logger = logging.getLogger("moviematch.ingestion.observability")

T = TypeVar("T")
Clock = Callable[[], float]
BreakerKey = tuple[str, str]


class CircuitOpenError(Exception):
    """A gated call was rejected because its breaker is cooling down."""

    def __init__(self, source: str, operation: str, remaining: float) -> None:
        self.source = source
        self.operation = operation
        self.remaining = remaining
        super().__init__(f"{source} {operation} circuit open for {remaining:.2f}s")


@dataclass
class CircuitBreaker:
    """Trips after ``threshold`` consecutive failures; each trip doubles the next cooldown."""

    threshold: int
    cooldown_seconds: float
    max_cooldown_seconds: float
    clock: Clock = time.monotonic
    consecutive_failures: int = 0
    trips: int = 0
    open_until: float = 0.0
    next_cooldown: float = field(init=False)

    def __post_init__(self) -> None:
        self.next_cooldown = self.cooldown_seconds

    def cooldown_remaining(self) -> float:
        return max(0.0, self.open_until - self.clock())

    @property
    def is_open(self) -> bool:
        return self.cooldown_remaining() > 0

    def record_success(self) -> None:
        self.consecutive_failures = 0
        self.open_until = 0.0
        self.next_cooldown = self.cooldown_seconds

    def record_failure(self) -> None:
        # The first failure after a cooldown has elapsed trips again immediately.
        self.consecutive_failures += 1
        if self.consecutive_failures < self.threshold or self.is_open:
            return
        self.open_until = self.clock() + self.next_cooldown
        self.trips += 1
        self.next_cooldown = min(self.next_cooldown * 2, self.max_cooldown_seconds)

    def as_dict(self) -> dict[str, Any]:
        return {
            "consecutive_failures": self.consecutive_failures,
            "cooldown_remaining": round(self.cooldown_remaining(), 3),
            "next_cooldown": self.next_cooldown,
            "trips": self.trips,
        }


@dataclass
class CallStats:
    calls: int = 0
    succeeded: int = 0
    failed: int = 0
    rejected: int = 0
    last_latency_ms: float | None = None
    last_error: str | None = None


class UpstreamMonitor:
    def __init__(
        self,
        *,
        failure_threshold: int = 3,
        cooldown_seconds: float = 15.0,
        max_cooldown_seconds: float = 300.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._cooldown_seconds = cooldown_seconds
        self._max_cooldown_seconds = max_cooldown_seconds
        self._clock = clock
        self._breakers: dict[BreakerKey, CircuitBreaker] = {}
        self._stats: dict[BreakerKey, CallStats] = {}
        self._lock = asyncio.Lock()

    def _entry(self, key: BreakerKey) -> tuple[CircuitBreaker, CallStats]:
        if key not in self._breakers:
            self._breakers[key] = CircuitBreaker(
                threshold=self._failure_threshold,
                cooldown_seconds=self._cooldown_seconds,
                max_cooldown_seconds=self._max_cooldown_seconds,
                clock=self._clock,
            )
            self._stats[key] = CallStats()
        return self._breakers[key], self._stats[key]

    def is_open(self, source: str, operation: str) -> bool:
        breaker = self._breakers.get((source, operation))
        return breaker is not None and breaker.is_open

    async def track(
        self,
        source: str,
        operation: str,
        func: Callable[[], Awaitable[T]],
        *,
        context: dict[str, Any] | None = None,
        gated: bool = True,
    ) -> T:
        """Run ``func`` as one call of ``source``/``operation``.

        Gated calls raise CircuitOpenError without calling ``func`` while the
        breaker is open. Exceptions from ``func`` are recorded and re-raised.
        """
        key = (source, operation)
        async with self._lock:
            breaker, stats = self._entry(key)
            if gated and breaker.is_open:
                stats.rejected += 1
                remaining = breaker.cooldown_remaining()
                self._emit(logging.WARNING, "upstream_circuit_open", key, context, cooldown_remaining=round(remaining, 2))
                raise CircuitOpenError(source, operation, remaining)
            stats.calls += 1

        started = self._clock()
        try:
            result = await func()
        except Exception as exc:
            error = redact_secrets(str(exc) or exc.__class__.__name__)
            latency_ms = (self._clock() - started) * 1000
            async with self._lock:
                stats.failed += 1
                stats.last_latency_ms = latency_ms
                stats.last_error = error
                breaker.record_failure()
                circuit = breaker.as_dict()
            self._emit(
                logging.WARNING,
                "upstream_failure",
                key,
                context,
                error=error,
                latency_ms=round(latency_ms, 2),
                circuit=circuit,
            )
            raise

        latency_ms = (self._clock() - started) * 1000
        async with self._lock:
            stats.succeeded += 1
            stats.last_latency_ms = latency_ms
            stats.last_error = None
            breaker.record_success()
        self._emit(logging.DEBUG, "upstream_success", key, context, latency_ms=round(latency_ms, 2))
        return result

    def _emit(self, level: int, event: str, key: BreakerKey, context: dict[str, Any] | None, **fields: Any) -> None:
        if not logger.isEnabledFor(level):
            return
        payload = {"event": event, "source": key[0], "operation": key[1], "context": context or {}, **fields}
        logger.log(level, json.dumps(payload, default=str))

    async def snapshot(self) -> dict[str, dict[str, Any]]:
        """Breaker and stats per ``"source.operation"`` name."""
        async with self._lock:
            return {
                f"{source}.{operation}": {
                    "source": source,
                    "operation": operation,
                    "circuit": self._breakers[(source, operation)].as_dict(),
                    "stats": asdict(self._stats[(source, operation)]),
                }
                for source, operation in self._breakers
            }
