"""Per-cluster availability probe.

Each cluster gets at most one probe in flight; concurrent callers share its
result.  Results are cached for a short TTL.  Failures of any kind,
including a probe that outlives its timeout, come back as an unavailable
status rather than an exception.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from pydantic import BaseModel

from mqpanel.events import ListenerRegistry

log = logging.getLogger(__name__)


class ProbeOutcome(BaseModel):
    successful: bool
    message: str | None = None


class TargetStatus(BaseModel):
    target_id: str
    is_available: bool
    last_checked: float
    error: str | None = None
    response_time_ms: int | None = None


class AvailabilityResult(BaseModel):
    available: bool
    status: TargetStatus
    error: str | None = None


Probe = Callable[[str], Awaitable[ProbeOutcome]]


def _result(status: TargetStatus) -> AvailabilityResult:
    return AvailabilityResult(
        available=status.is_available, status=status, error=status.error
    )


class AvailabilityProbe:
    def __init__(
        self,
        probe: Probe,
        ttl: float = 30.0,
        timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl = ttl
        self.timeout = timeout
        self._probe_fn = probe
        self._clock = clock
        self._statuses: dict[str, TargetStatus] = {}
        self._in_flight: dict[str, asyncio.Task[TargetStatus]] = {}
        # Per-target generation; a probe only records its result if no newer
        # probe, invalidation or unavailability report happened meanwhile.
        self._generations: dict[str, int] = {}
        self._degraded = ListenerRegistry("availability degraded")

    def add_listener(self, listener: Callable[[TargetStatus], None]) -> Callable[[], None]:
        """Be told whenever a cluster is found unavailable."""
        return self._degraded.add(listener)

    async def check(self, target_id: str) -> AvailabilityResult:
        cached = self.get_cached(target_id)
        if cached is not None:
            return _result(cached)

        task = self._in_flight.get(target_id)
        if task is None:
            task = asyncio.create_task(self._probe(target_id, self._bump(target_id)))
            self._in_flight[target_id] = task
        # Shield so one cancelled caller doesn't cancel the shared probe
        status = await asyncio.shield(task)
        return _result(status)

    async def check_many(self, target_ids: list[str]) -> dict[str, AvailabilityResult]:
        results = await asyncio.gather(*(self.check(t) for t in target_ids))
        return dict(zip(target_ids, results))

    def get_cached(self, target_id: str) -> TargetStatus | None:
        status = self._statuses.get(target_id)
        if status is not None and self._fresh(status):
            return status
        return None

    def all_cached(self) -> list[TargetStatus]:
        return [s for s in self._statuses.values() if self._fresh(s)]

    def invalidate(self, target_id: str | None = None) -> None:
        targets = [target_id] if target_id is not None else list(
            set(self._statuses) | set(self._in_flight)
        )
        for t in targets:
            self._statuses.pop(t, None)
            # A probe still running for t is now stale; let the next check
            # start a new one.
            self._in_flight.pop(t, None)
            self._bump(t)

    def mark_unavailable(self, target_id: str, status_code: int) -> None:
        """Record an unavailability seen by a regular API call (502/503/504)."""
        self._bump(target_id)
        status = TargetStatus(
            target_id=target_id,
            is_available=False,
            last_checked=self._clock(),
            error=f"HTTP {status_code}: Cluster unavailable",
        )
        self._statuses[target_id] = status
        self._degraded.emit(status)

    def summary(self) -> dict[str, float | int]:
        statuses = self.all_cached()
        up = [s for s in statuses if s.is_available]
        times = [s.response_time_ms or 0 for s in up]
        return {
            "total": len(statuses),
            "available": len(up),
            "unavailable": len(statuses) - len(up),
            "average_response_time_ms": sum(times) / len(times) if times else 0,
        }

    def start_monitoring(
        self, target_ids: list[str], interval: float = 60.0
    ) -> Callable[[], None]:
        """Re-check *target_ids* every *interval* seconds; returns a stop handle."""

        async def _loop() -> None:
            while True:
                try:
                    await self.check_many(target_ids)
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    log.warning("Periodic availability check failed: %s", e)
                await asyncio.sleep(interval)

        task = asyncio.create_task(_loop())
        return task.cancel

    # ---- Internals -------------------------------------------------------

    def _fresh(self, status: TargetStatus) -> bool:
        return self._clock() - status.last_checked < self.ttl

    def _bump(self, target_id: str) -> int:
        generation = self._generations.get(target_id, 0) + 1
        self._generations[target_id] = generation
        return generation

    async def _probe(self, target_id: str, generation: int) -> TargetStatus:
        start = time.monotonic()
        try:
            outcome = await asyncio.wait_for(self._probe_fn(target_id), timeout=self.timeout)
            status = TargetStatus(
                target_id=target_id,
                is_available=outcome.successful,
                last_checked=self._clock(),
                response_time_ms=round((time.monotonic() - start) * 1000),
                error=None if outcome.successful else (outcome.message or "Connectivity check failed"),
            )
        except asyncio.TimeoutError:
            status = TargetStatus(
                target_id=target_id,
                is_available=False,
                last_checked=self._clock(),
                error="timeout",
            )
        except Exception as e:
            status = TargetStatus(
                target_id=target_id,
                is_available=False,
                last_checked=self._clock(),
                error=str(e) or "Connectivity check failed",
            )
        finally:
            if self._in_flight.get(target_id) is asyncio.current_task():
                del self._in_flight[target_id]

        if self._generations.get(target_id) != generation:
            log.debug("Discarding superseded probe result for %s", target_id)
            return status

        self._statuses[target_id] = status
        if not status.is_available:
            log.warning("Cluster %s unavailable: %s", target_id, status.error)
            self._degraded.emit(status)
        return status
