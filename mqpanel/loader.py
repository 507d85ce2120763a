"""Cache-first resource loading for one cluster at a time.

Reads go cache -> availability probe -> gateway, and successful responses
are written back.  Writes go straight to the gateway and then drop every
cached listing the write could have changed.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from mqpanel.availability import AvailabilityProbe
from mqpanel.cache import CacheRegistry
from mqpanel.errors import ClusterUnavailable
from mqpanel.gateway import RequestGateway
from mqpanel.services import resources

log = logging.getLogger(__name__)


class ResourceLoader:
    def __init__(
        self,
        caches: CacheRegistry,
        gateway: RequestGateway,
        probe: AvailabilityProbe | None = None,
    ) -> None:
        self.caches = caches
        self._gateway = gateway
        self._probe = probe

    # ---- Reads -----------------------------------------------------------

    async def load(
        self,
        cluster_id: str,
        resource_type: str,
        params: dict[str, Any] | None = None,
        *,
        force: bool = False,
        check_availability: bool = True,
    ) -> Any:
        """Return a page of *resource_type* for *cluster_id*."""
        return await self._cached(
            cluster_id,
            resource_type,
            params or {},
            lambda: resources.fetch_list(self._gateway, cluster_id, resource_type, params),
            force=force,
            check_availability=check_availability,
        )

    async def load_bindings(
        self,
        cluster_id: str,
        owner: str,
        vhost: str,
        name: str,
        *,
        force: bool = False,
        check_availability: bool = True,
    ) -> Any:
        return await self._cached(
            cluster_id,
            "bindings",
            {"owner": owner, "vhost": vhost, "name": name},
            lambda: resources.fetch_bindings(self._gateway, cluster_id, owner, vhost, name),
            force=force,
            check_availability=check_availability,
        )

    async def refresh(
        self, cluster_id: str, resource_type: str, params: dict[str, Any] | None = None
    ) -> Any:
        return await self.load(cluster_id, resource_type, params, force=True)

    def invalidate(self, cluster_id: str, resource_type: str | None = None) -> None:
        if resource_type is None:
            self.caches.invalidate_target(cluster_id)
        else:
            self.caches.get(resource_type).invalidate(cluster_id, resource_type)

    async def _cached(
        self,
        cluster_id: str,
        resource_type: str,
        params: dict[str, Any],
        fetch: Callable[[], Awaitable[Any]],
        *,
        force: bool,
        check_availability: bool,
    ) -> Any:
        cache = self.caches.get(resource_type)
        if force:
            cache.invalidate(cluster_id, resource_type)
        else:
            cached = cache.get(cluster_id, resource_type, params)
            if cached is not None:
                return cached

        if check_availability and self._probe is not None:
            result = await self._probe.check(cluster_id)
            if not result.available:
                raise ClusterUnavailable(
                    503,
                    f"Cluster {cluster_id} is unavailable: {result.error}",
                    error="Cluster Unavailable",
                    details={"cluster_id": cluster_id},
                )

        try:
            data = await fetch()
        except ClusterUnavailable as e:
            if self._probe is not None:
                self._probe.mark_unavailable(cluster_id, e.status)
            raise

        cache.set(cluster_id, resource_type, data, params)
        log.debug("Loaded %s for %s", resource_type, cluster_id)
        return data

    # ---- Writes ----------------------------------------------------------

    def _after_write(self, cluster_id: str, *resource_types: str) -> None:
        for rt in resource_types:
            self.caches.get(rt).invalidate(cluster_id, rt)

    async def create_exchange(self, cluster_id: str, body: dict) -> Any:
        result = await resources.create_exchange(self._gateway, cluster_id, body)
        self._after_write(cluster_id, "exchanges")
        return result

    async def delete_exchange(self, cluster_id: str, vhost: str, name: str) -> Any:
        result = await resources.delete_exchange(self._gateway, cluster_id, vhost, name)
        self._after_write(cluster_id, "exchanges", "bindings")
        return result

    async def create_queue(self, cluster_id: str, body: dict) -> Any:
        result = await resources.create_queue(self._gateway, cluster_id, body)
        self._after_write(cluster_id, "queues")
        return result

    async def delete_queue(self, cluster_id: str, vhost: str, name: str) -> Any:
        result = await resources.delete_queue(self._gateway, cluster_id, vhost, name)
        self._after_write(cluster_id, "queues", "bindings")
        return result

    async def purge_queue(self, cluster_id: str, vhost: str, name: str) -> Any:
        result = await resources.purge_queue(self._gateway, cluster_id, vhost, name)
        self._after_write(cluster_id, "queues")
        return result

    async def create_binding(
        self,
        cluster_id: str,
        vhost: str,
        source: str,
        destination: str,
        *,
        destination_type: str = "q",
        body: dict | None = None,
    ) -> Any:
        result = await resources.create_binding(
            self._gateway,
            cluster_id,
            vhost,
            source,
            destination,
            destination_type=destination_type,
            body=body,
        )
        self._after_write(cluster_id, "bindings")
        return result
