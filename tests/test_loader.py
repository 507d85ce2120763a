"""Tests for cache-first loading and write-driven invalidation."""

from unittest.mock import AsyncMock

import httpx
import pytest

from conftest import make_token, mock_client
from mqpanel.availability import AvailabilityProbe, ProbeOutcome
from mqpanel.cache import CacheRegistry
from mqpanel.credentials import TokenPair
from mqpanel.errors import AuthorizationDenied, ClusterUnavailable, ServerError
from mqpanel.gateway import RequestGateway
from mqpanel.loader import ResourceLoader


class FakeAdminApi:
    """Minimal stand-in for the admin API's resource endpoints."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.status = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status != 200:
            return httpx.Response(self.status, json={"message": "nope", "error": "Err"})
        if request.method == "GET":
            return httpx.Response(
                200, json={"items": [{"path": request.url.path}], "n": len(self.requests)}
            )
        return httpx.Response(200, json={"ok": True})

    def paths(self, method: str = "GET") -> list[str]:
        return [r.url.path for r in self.requests if r.method == method]


@pytest.fixture
def api():
    return FakeAdminApi()


@pytest.fixture
def probe_fn():
    return AsyncMock(return_value=ProbeOutcome(successful=True))


@pytest.fixture
def loader(api, probe_fn, make_monitor, store, clock):
    store.set_tokens(TokenPair(access_token=make_token(clock() + 3600), refresh_token="r1"))
    gateway = RequestGateway(mock_client(api), make_monitor())
    probe = AvailabilityProbe(probe_fn, clock=clock)
    return ResourceLoader(CacheRegistry(clock=clock), gateway, probe)


class TestLoad:
    @pytest.mark.asyncio
    async def test_second_load_served_from_cache(self, loader, api):
        first = await loader.load("c1", "queues", {"page": 1, "pageSize": 50})
        second = await loader.load("c1", "queues", {"pageSize": 50, "page": 1})

        assert first == second
        assert api.paths() == ["/api/rabbitmq/c1/resources/queues"]

    @pytest.mark.asyncio
    async def test_params_are_forwarded(self, loader, api):
        await loader.load("c1", "exchanges", {"page": 2})
        assert api.requests[0].url.params["page"] == "2"

    @pytest.mark.asyncio
    async def test_force_bypasses_cache(self, loader, api):
        await loader.load("c1", "queues")
        await loader.refresh("c1", "queues")
        assert len(api.paths()) == 2

    @pytest.mark.asyncio
    async def test_cache_expires(self, loader, api, clock):
        await loader.load("c1", "connections")
        clock.advance(31)
        await loader.load("c1", "connections")
        assert len(api.paths()) == 2

    @pytest.mark.asyncio
    async def test_unavailable_cluster_fails_fast(self, loader, api, probe_fn):
        probe_fn.return_value = ProbeOutcome(successful=False, message="broker down")

        with pytest.raises(ClusterUnavailable) as exc_info:
            await loader.load("c1", "queues")

        assert "broker down" in exc_info.value.message
        assert exc_info.value.retryable
        assert api.requests == []

    @pytest.mark.asyncio
    async def test_skip_availability_check(self, loader, api, probe_fn):
        await loader.load("c1", "queues", check_availability=False)
        probe_fn.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_503_marks_cluster_unavailable(self, loader, api):
        api.status = 503

        with pytest.raises(ClusterUnavailable):
            await loader.load("c1", "queues")

        cached = loader._probe.get_cached("c1")
        assert cached.is_available is False
        assert cached.error == "HTTP 503: Cluster unavailable"

    @pytest.mark.asyncio
    async def test_errors_are_not_cached(self, loader, api):
        api.status = 403
        with pytest.raises(AuthorizationDenied):
            await loader.load("c1", "queues")

        api.status = 200
        await loader.load("c1", "queues")
        assert len(api.paths()) == 2

    @pytest.mark.asyncio
    async def test_bindings_use_encoded_vhost(self, loader, api):
        await loader.load_bindings("c1", "queues", "/", "orders")
        await loader.load_bindings("c1", "queues", "/", "orders")

        assert len(api.requests) == 1
        assert api.requests[0].url.raw_path == b"/api/rabbitmq/c1/resources/queues/%2F/orders/bindings"


class TestWrites:
    @pytest.mark.asyncio
    async def test_create_queue_invalidates_queues_only(self, loader, api):
        await loader.load("c1", "queues")
        await loader.load("c1", "exchanges")
        await loader.load("c2", "queues")

        await loader.create_queue("c1", {"name": "orders", "vhost": "/"})
        await loader.load("c1", "queues")
        await loader.load("c1", "exchanges")
        await loader.load("c2", "queues")

        assert api.paths("GET").count("/api/rabbitmq/c1/resources/queues") == 2
        assert api.paths("GET").count("/api/rabbitmq/c1/resources/exchanges") == 1
        assert api.paths("GET").count("/api/rabbitmq/c2/resources/queues") == 1
        assert api.paths("PUT") == ["/api/rabbitmq/c1/resources/queues"]

    @pytest.mark.asyncio
    async def test_delete_exchange_drops_bindings(self, loader, api):
        await loader.load_bindings("c1", "exchanges", "/", "events")
        await loader.delete_exchange("c1", "/", "events")
        await loader.load_bindings("c1", "exchanges", "/", "events")

        assert len([p for p in api.paths() if p.endswith("/bindings")]) == 2

    @pytest.mark.asyncio
    async def test_failed_write_keeps_cache(self, loader, api):
        await loader.load("c1", "queues")
        api.status = 500
        with pytest.raises(ServerError):
            await loader.purge_queue("c1", "/", "orders")

        api.status = 200
        await loader.load("c1", "queues")
        assert api.paths().count("/api/rabbitmq/c1/resources/queues") == 1

    @pytest.mark.asyncio
    async def test_create_binding_path(self, loader, api):
        await loader.create_binding("c1", "/", "events", "orders", body={"routingKey": "o.*"})

        assert api.requests[0].url.raw_path == (
            b"/api/rabbitmq/c1/resources/bindings/%2F/e/events/q/orders"
        )
