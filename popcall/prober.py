"""Latency probing for a single POP.

A probe is one lightweight GET against the POP's probe endpoint, timed
with time.perf_counter().  Three outcomes race each other:

  completion  -> ProbeResult(name, elapsed_ms)
  error       -> ProbeResult(name, -1)
  timeout     -> ProbeResult(name, -1)

Whichever fires first resolves the invocation; the others are dropped.

Public API:
    ProbeRunner.probe  -- probe one target and return its ProbeResult
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

import httpx

from popcall.config import DEFAULT_PROBE_TIMEOUT_MS, UNREACHABLE_LATENCY, USER_AGENT
from popcall.models import ProbeResult, ProbeTarget

logger = logging.getLogger(__name__)

# Receives every ProbeResult exactly once.
ResultSink = Callable[[ProbeResult], None]


class _ProbeAttempt:
    """One probe invocation with an at-most-once resolution guard."""

    def __init__(self, target: ProbeTarget, sink: Optional[ResultSink]) -> None:
        self.target = target
        self._sink = sink
        self._outcome: asyncio.Future[ProbeResult] = asyncio.get_running_loop().create_future()

    @property
    def resolved(self) -> bool:
        return self._outcome.done()

    def resolve(self, latency_ms: int) -> bool:
        """Record the outcome.  Returns False if the attempt was already resolved."""
        if self._outcome.done():
            logger.debug("Dropping late outcome for %s (%d)", self.target.name, latency_ms)
            return False
        result = ProbeResult(name=self.target.name, latency_ms=latency_ms)
        self._outcome.set_result(result)
        logger.debug("[probe] %s replied in %d", result.name, result.latency_ms)
        if self._sink is not None:
            self._sink(result)
        return True

    async def wait(self) -> ProbeResult:
        return await self._outcome


class ProbeRunner:
    """Issues timed probes against POP endpoints.

    Parameters
    ----------
    timeout_ms:
        Time after which an unanswered probe is reported unreachable.
    client:
        Optional ``httpx.AsyncClient``.  When omitted the runner creates
        one lazily and closes it in :meth:`aclose`.
    """

    def __init__(
        self,
        timeout_ms: int = DEFAULT_PROBE_TIMEOUT_MS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.timeout_ms = timeout_ms
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> ProbeRunner:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                http2=True,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            )
        return self._client

    async def probe(
        self,
        target: ProbeTarget,
        sink: Optional[ResultSink] = None,
    ) -> ProbeResult:
        """Probe *target* once and return its result.

        Never raises for network problems: transport errors, HTTP error
        statuses and timeouts all yield a latency of -1.  If *sink* is
        given it receives the same result exactly once.
        """
        loop = asyncio.get_running_loop()
        attempt = _ProbeAttempt(target, sink)

        fetch = asyncio.ensure_future(self._fetch(target))
        fetch.add_done_callback(lambda task: self._on_fetch_done(attempt, task))
        timer = loop.call_later(self.timeout_ms / 1000.0, self._on_timeout, attempt)

        try:
            return await attempt.wait()
        finally:
            timer.cancel()
            if not fetch.done():
                fetch.cancel()

    async def _fetch(self, target: ProbeTarget) -> int:
        """GET the endpoint with a cache-busting parameter; return elapsed ms."""
        client = self._get_client()
        url = httpx.URL(target.endpoint).copy_merge_params({"_": str(int(time.time() * 1000))})
        t0 = time.perf_counter()
        response = await client.get(url, headers={"Cache-Control": "no-cache"})
        response.raise_for_status()
        elapsed_ms = (time.perf_counter() - t0) * 1000.0
        return max(int(round(elapsed_ms)), 1)

    def _on_fetch_done(self, attempt: _ProbeAttempt, task: asyncio.Future[int]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug("Probe to %s failed: %s", attempt.target.endpoint, exc)
            attempt.resolve(UNREACHABLE_LATENCY)
            return
        attempt.resolve(task.result())

    def _on_timeout(self, attempt: _ProbeAttempt) -> None:
        if not attempt.resolved:
            logger.debug(
                "Probe to %s timed out after %dms", attempt.target.endpoint, self.timeout_ms,
            )
        attempt.resolve(UNREACHABLE_LATENCY)
