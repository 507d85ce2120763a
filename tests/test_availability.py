"""Tests for the per-cluster availability probe."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from mqpanel.availability import AvailabilityProbe, ProbeOutcome


def ok_probe() -> AsyncMock:
    return AsyncMock(return_value=ProbeOutcome(successful=True, message="ok"))


class TestCheck:
    @pytest.mark.asyncio
    async def test_concurrent_checks_share_one_probe(self, clock):
        gate = asyncio.Event()
        calls = []

        async def probe_fn(target_id):
            calls.append(target_id)
            await gate.wait()
            return ProbeOutcome(successful=True)

        probe = AvailabilityProbe(probe_fn, clock=clock)

        first = asyncio.create_task(probe.check("cluster-1"))
        second = asyncio.create_task(probe.check("cluster-1"))
        await asyncio.sleep(0)
        gate.set()
        a, b = await asyncio.gather(first, second)

        assert calls == ["cluster-1"]
        assert a.available and b.available
        assert a.status == b.status
        assert a.status.response_time_ms is not None

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self, clock):
        async def hangs(target_id):
            await asyncio.sleep(10)
            return ProbeOutcome(successful=True)

        probe = AvailabilityProbe(hangs, timeout=0.01, clock=clock)

        result = await probe.check("cluster-1")

        assert not result.available
        assert result.error == "timeout"
        assert probe.get_cached("cluster-1").error == "timeout"

    @pytest.mark.asyncio
    async def test_probe_exception_is_captured(self, clock):
        probe = AvailabilityProbe(
            AsyncMock(side_effect=ConnectionError("connection refused")), clock=clock
        )

        result = await probe.check("cluster-1")

        assert not result.available
        assert result.error == "connection refused"

    @pytest.mark.asyncio
    async def test_unsuccessful_outcome_keeps_message(self, clock):
        probe = AvailabilityProbe(
            AsyncMock(return_value=ProbeOutcome(successful=False, message="401 from broker")),
            clock=clock,
        )

        result = await probe.check("cluster-1")

        assert not result.available
        assert result.status.error == "401 from broker"

    @pytest.mark.asyncio
    async def test_cached_within_ttl(self, clock):
        probe_fn = ok_probe()
        probe = AvailabilityProbe(probe_fn, ttl=30, clock=clock)

        await probe.check("cluster-1")
        clock.advance(29)
        await probe.check("cluster-1")
        assert probe_fn.await_count == 1

        clock.advance(2)
        assert probe.get_cached("cluster-1") is None
        await probe.check("cluster-1")
        assert probe_fn.await_count == 2

    @pytest.mark.asyncio
    async def test_targets_are_independent(self, clock):
        probe_fn = ok_probe()
        probe = AvailabilityProbe(probe_fn, clock=clock)

        results = await probe.check_many(["c1", "c2"])

        assert set(results) == {"c1", "c2"}
        assert probe_fn.await_count == 2


class TestCacheControl:
    @pytest.mark.asyncio
    async def test_get_cached_never_probes(self, clock):
        probe_fn = ok_probe()
        probe = AvailabilityProbe(probe_fn, clock=clock)

        assert probe.get_cached("cluster-1") is None
        probe_fn.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalidate_forces_reprobe(self, clock):
        probe_fn = ok_probe()
        probe = AvailabilityProbe(probe_fn, clock=clock)

        await probe.check("c1")
        await probe.check("c2")
        probe.invalidate("c1")
        await probe.check("c1")
        await probe.check("c2")
        assert probe_fn.await_count == 3

        probe.invalidate()
        assert probe.all_cached() == []

    @pytest.mark.asyncio
    async def test_result_of_invalidated_probe_is_not_stored(self, clock):
        gate = asyncio.Event()

        async def probe_fn(target_id):
            await gate.wait()
            return ProbeOutcome(successful=True)

        probe = AvailabilityProbe(probe_fn, clock=clock)
        pending = asyncio.create_task(probe.check("c1"))
        await asyncio.sleep(0)

        probe.mark_unavailable("c1", 503)
        gate.set()
        late = await pending

        # The waiting caller still gets its answer...
        assert late.available
        # ...but the fresher report wins in the cache
        assert probe.get_cached("c1").is_available is False
        assert probe.get_cached("c1").error == "HTTP 503: Cluster unavailable"

    @pytest.mark.asyncio
    async def test_degradation_listener(self, clock):
        probe = AvailabilityProbe(AsyncMock(side_effect=OSError("down")), clock=clock)
        seen = []
        probe.add_listener(seen.append)

        await probe.check("c1")
        probe.mark_unavailable("c2", 502)

        assert [s.target_id for s in seen] == ["c1", "c2"]

    @pytest.mark.asyncio
    async def test_no_degradation_notice_for_invalidated_check(self, clock):
        gate = asyncio.Event()

        async def probe_fn(target_id):
            await gate.wait()
            raise OSError("down")

        probe = AvailabilityProbe(probe_fn, clock=clock)
        seen = []
        probe.add_listener(seen.append)

        pending = asyncio.create_task(probe.check("c1"))
        await asyncio.sleep(0)
        probe.invalidate("c1")
        gate.set()
        result = await pending

        assert not result.available
        assert seen == []
        assert probe.get_cached("c1") is None

    @pytest.mark.asyncio
    async def test_summary(self, clock):
        async def probe_fn(target_id):
            return ProbeOutcome(successful=target_id != "down")

        probe = AvailabilityProbe(probe_fn, clock=clock)
        await probe.check_many(["up1", "up2", "down"])

        summary = probe.summary()

        assert summary["total"] == 3
        assert summary["available"] == 2
        assert summary["unavailable"] == 1
        assert summary["average_response_time_ms"] >= 0


class TestMonitoring:
    @pytest.mark.asyncio
    async def test_periodic_checks(self, clock):
        probe_fn = ok_probe()
        probe = AvailabilityProbe(probe_fn, ttl=0, clock=clock)

        stop = probe.start_monitoring(["c1"], interval=0.01)
        await asyncio.sleep(0.05)
        stop()

        assert probe_fn.await_count >= 2
