"""Tests for single-POP latency probing."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from popcall.models import ProbeResult, ProbeTarget
from popcall.prober import ProbeRunner, _ProbeAttempt


def make_runner(handler, timeout_ms: int = 1500) -> ProbeRunner:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ProbeRunner(timeout_ms=timeout_ms, client=client)


class TestProbe:
    @pytest.mark.asyncio
    async def test_success_reports_positive_latency(self):
        runner = make_runner(lambda request: httpx.Response(200, content=b"GIF89a"))

        result = await runner.probe(ProbeTarget("BE", "https://pop-be.example.com/ping.gif"))

        assert result.name == "BE"
        assert result.latency_ms >= 1
        assert result.is_reachable

    @pytest.mark.asyncio
    async def test_adds_cache_busting_parameter(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        runner = make_runner(handler)
        await runner.probe(ProbeTarget("NL", "https://pop-nl.example.com/ping.gif?size=1"))

        assert len(seen) == 1
        params = seen[0].url.params
        assert params["size"] == "1"
        assert params["_"].isdigit()

    @pytest.mark.asyncio
    async def test_error_status_is_unreachable(self):
        runner = make_runner(lambda request: httpx.Response(404))

        result = await runner.probe(ProbeTarget("US", "https://pop-us.example.com/ping.gif"))

        assert result == ProbeResult("US", -1)

    @pytest.mark.asyncio
    async def test_transport_error_is_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        runner = make_runner(handler)
        result = await runner.probe(ProbeTarget("SG", "https://pop-sg.example.com/ping.gif"))

        assert result == ProbeResult("SG", -1)

    @pytest.mark.asyncio
    async def test_timeout_is_unreachable(self):
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200)

        runner = make_runner(handler, timeout_ms=50)
        loop = asyncio.get_running_loop()
        started = loop.time()

        result = await runner.probe(ProbeTarget("AU", "https://pop-au.example.com/ping.gif"))

        assert result == ProbeResult("AU", -1)
        assert loop.time() - started < 2

    @pytest.mark.asyncio
    async def test_sink_receives_single_result_on_timeout(self):
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.3)
            return httpx.Response(200)

        received: list[ProbeResult] = []
        runner = make_runner(handler, timeout_ms=20)

        result = await runner.probe(ProbeTarget("JP", "https://pop-jp.example.com/"), sink=received.append)
        # Give a late completion the chance to (wrongly) report.
        await asyncio.sleep(0.4)

        assert received == [result]
        assert result.latency_ms == -1

    @pytest.mark.asyncio
    async def test_owned_client_closed_by_context_manager(self):
        async with ProbeRunner() as runner:
            client = runner._get_client()
        assert client.is_closed


class TestProbeAttempt:
    @pytest.mark.asyncio
    async def test_late_completion_after_timeout_is_dropped(self):
        received: list[ProbeResult] = []
        attempt = _ProbeAttempt(ProbeTarget("BE", "https://x"), received.append)

        assert attempt.resolve(-1) is True
        assert attempt.resolve(42) is False

        assert await attempt.wait() == ProbeResult("BE", -1)
        assert received == [ProbeResult("BE", -1)]

    @pytest.mark.asyncio
    async def test_timeout_after_completion_is_dropped(self):
        received: list[ProbeResult] = []
        attempt = _ProbeAttempt(ProbeTarget("BE", "https://x"), received.append)

        attempt.resolve(30)
        attempt.resolve(-1)

        assert await attempt.wait() == ProbeResult("BE", 30)
        assert received == [ProbeResult("BE", 30)]
