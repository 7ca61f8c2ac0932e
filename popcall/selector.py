"""Concurrent POP probing and best-POP selection."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Iterable

from popcall.config import DEFAULT_PROBE_TIMEOUT_MS, FALLBACK_POP, UNREACHABLE_LATENCY
from popcall.models import ProbeResult, ProbeTarget
from popcall.prober import ProbeRunner

logger = logging.getLogger(__name__)


class ResultStore:
    """Append-only, ordered collection of probe results.

    Duplicates are kept.  A lock guards append and snapshot so the store
    can also be fed from worker threads.
    """

    def __init__(self) -> None:
        self._results: list[ProbeResult] = []
        self._lock = threading.Lock()

    def append(self, result: ProbeResult) -> None:
        with self._lock:
            self._results.append(result)

    def snapshot(self) -> list[ProbeResult]:
        with self._lock:
            return list(self._results)

    def clear(self) -> None:
        with self._lock:
            self._results.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)


def select_best(results: Iterable[ProbeResult], fallback_pop: str = FALLBACK_POP) -> ProbeResult:
    """Return the result with the smallest positive latency.

    Non-positive latencies are ignored.  Ties keep the first one seen.
    When nothing usable is present the fallback POP is returned with a
    latency of -1.
    """
    best: ProbeResult | None = None
    for result in results:
        if result.latency_ms > 0 and (best is None or result.latency_ms < best.latency_ms):
            best = result
    if best is None:
        return ProbeResult(name=fallback_pop, latency_ms=UNREACHABLE_LATENCY)
    return best


class PopSelector:
    """Runs one probe per candidate POP and picks the fastest.

    Each selector owns its :class:`ResultStore`, so independent selection
    runs never see each other's results.
    """

    def __init__(
        self,
        runner: ProbeRunner | None = None,
        store: ResultStore | None = None,
        fallback_pop: str = FALLBACK_POP,
        timeout_ms: int = DEFAULT_PROBE_TIMEOUT_MS,
    ) -> None:
        self.runner = runner or ProbeRunner(timeout_ms=timeout_ms)
        self.store = store if store is not None else ResultStore()
        self.fallback_pop = fallback_pop
        self._pending: set[asyncio.Task[ProbeResult]] = set()

    @property
    def results(self) -> list[ProbeResult]:
        return self.store.snapshot()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def start_probing(self, targets: Iterable[ProbeTarget]) -> list[asyncio.Task[ProbeResult]]:
        """Fire one probe per target on the running loop without waiting.

        Results are recorded into the store as each probe completes.
        Raises ``RuntimeError`` when no event loop is running.
        """
        loop = asyncio.get_running_loop()
        tasks = []
        for target in targets:
            task = loop.create_task(self.runner.probe(target, sink=self.record_result))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            tasks.append(task)
        logger.debug("Started %d probes", len(tasks))
        return tasks

    async def wait(self) -> None:
        """Wait until every outstanding probe has reported."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def aclose(self) -> None:
        """Cancel outstanding probes and release the runner."""
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self.runner.aclose()

    async def probe_all(self, targets: Iterable[ProbeTarget]) -> list[ProbeResult]:
        """Probe every target concurrently and return results in target order."""
        tasks = self.start_probing(targets)
        if not tasks:
            return []
        return list(await asyncio.gather(*tasks))

    def record_result(self, result: ProbeResult) -> None:
        self.store.append(result)

    def get_best_pop(self) -> ProbeResult:
        """Best POP over whatever results have arrived so far.

        Does not wait for outstanding probes.
        """
        best = select_best(self.store.snapshot(), self.fallback_pop)
        if not best.is_reachable:
            logger.info(
                "No reachable POP among %d results, falling back to %s",
                len(self.store),
                best.name,
            )
        return best
