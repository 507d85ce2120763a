from __future__ import annotations

import copy
import json
import logging
import time
from typing import Any, Callable

from pydantic import BaseModel

log = logging.getLogger(__name__)

Clock = Callable[[], float]


def cache_key(
    target_id: str, resource_type: str, params: dict[str, Any] | None = None
) -> str:
    """Canonical fingerprint for a cacheable request.

    Parameter order never matters: ``{"a": 1, "b": 2}`` and
    ``{"b": 2, "a": 1}`` produce the same key.
    """
    return json.dumps(
        [target_id, resource_type, params or {}],
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )


class CacheEntry(BaseModel):
    """Typed snapshot for a single cache key."""

    value: Any = None
    target_id: str
    resource_type: str
    inserted_at: float
    expires_at: float


class CacheStats(BaseModel):
    size: int
    max_size: int
    valid_entries: int
    expired_entries: int


class ResourceCache:
    """In-memory response cache for a single-worker async app.

    Entries expire after their own TTL and the store never holds more than
    ``max_size`` entries.  Overflow evicts the oldest *inserted* entry,
    regardless of how recently it was read.
    """

    def __init__(
        self,
        default_ttl: float = 300.0,
        max_size: int = 100,
        clock: Clock = time.time,
    ) -> None:
        self.default_ttl = default_ttl
        self.max_size = max(1, max_size)
        self._clock = clock
        # dict preserves insertion order, which is the eviction order
        self._store: dict[str, CacheEntry] = {}

    def get(
        self,
        target_id: str,
        resource_type: str,
        params: dict[str, Any] | None = None,
    ) -> Any | None:
        key = cache_key(target_id, resource_type, params)
        entry = self._store.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._store[key]
            return None
        return copy.deepcopy(entry.value)

    def set(
        self,
        target_id: str,
        resource_type: str,
        value: Any,
        params: dict[str, Any] | None = None,
        ttl: float | None = None,
    ) -> None:
        key = cache_key(target_id, resource_type, params)
        now = self._clock()
        # Re-setting a key counts as a fresh insertion
        self._store.pop(key, None)
        self._purge_expired(now)
        while len(self._store) >= self.max_size:
            oldest = next(iter(self._store))
            del self._store[oldest]
            log.debug("Evicted %s (cache full at %d)", oldest, self.max_size)
        self._store[key] = CacheEntry(
            value=copy.deepcopy(value),
            target_id=target_id,
            resource_type=resource_type,
            inserted_at=now,
            expires_at=now + (ttl if ttl is not None else self.default_ttl),
        )

    def invalidate(self, target_id: str, resource_type: str | None = None) -> None:
        stale = [
            key
            for key, entry in self._store.items()
            if entry.target_id == target_id
            and (resource_type is None or entry.resource_type == resource_type)
        ]
        for key in stale:
            del self._store[key]

    def clear(self) -> None:
        self._store.clear()

    def stats(self) -> CacheStats:
        now = self._clock()
        valid = sum(1 for e in self._store.values() if now < e.expires_at)
        return CacheStats(
            size=len(self._store),
            max_size=self.max_size,
            valid_entries=valid,
            expired_entries=len(self._store) - valid,
        )

    def __len__(self) -> int:
        return len(self._store)

    def _purge_expired(self, now: float) -> None:
        for key in [k for k, e in self._store.items() if now >= e.expires_at]:
            del self._store[key]


# Per-resource TTL (seconds) and capacity.  Connections and channels churn
# quickly; bindings rarely change.
DEFAULT_CACHE_POLICY: dict[str, tuple[float, int]] = {
    "connections": (30.0, 50),
    "channels": (30.0, 50),
    "exchanges": (300.0, 50),
    "queues": (60.0, 50),
    "bindings": (600.0, 100),
}


class CacheRegistry:
    """One ``ResourceCache`` per resource type."""

    def __init__(
        self,
        policy: dict[str, tuple[float, int]] | None = None,
        clock: Clock = time.time,
    ) -> None:
        self._caches = {
            name: ResourceCache(default_ttl=ttl, max_size=size, clock=clock)
            for name, (ttl, size) in (policy or DEFAULT_CACHE_POLICY).items()
        }

    def get(self, resource_type: str) -> ResourceCache:
        try:
            return self._caches[resource_type]
        except KeyError:
            raise KeyError(f"No cache configured for {resource_type!r}") from None

    def names(self) -> list[str]:
        return list(self._caches)

    def invalidate_target(self, target_id: str) -> None:
        for c in self._caches.values():
            c.invalidate(target_id)

    def clear(self) -> None:
        for c in self._caches.values():
            c.clear()

    def stats(self) -> dict[str, dict[str, int]]:
        """Return {name: stats} plus a ``total`` aggregate."""
        per_cache = {name: c.stats() for name, c in self._caches.items()}
        out = {name: s.model_dump() for name, s in per_cache.items()}
        out["total"] = {
            field: sum(getattr(s, field) for s in per_cache.values())
            for field in CacheStats.model_fields
        }
        return out
