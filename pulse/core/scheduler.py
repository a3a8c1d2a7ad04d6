"""
Pipeline Timers

PeriodicTask is the repeating-task primitive both pipeline timers run on:
one asyncio task per timer, sleeping `intervalMs` between ticks.

Architecture Invariants:
- A tick is awaited to completion before the next sleep starts; ticks of one
  timer never overlap
- A failing tick is logged and the timer keeps running
- stop() cancels and awaits the task; no timer outlives its owner

FlushScheduler drives PacketDataService.flush() every 50 ms.
StatsReconciler polls the authoritative statistics source every 1000 ms and
hands successful results to an apply callback. Scheduled and manual polls
share one lock, so at most one query is outstanding.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, Union

from sdk.logging import getLogger

from .contract import FLUSH_INTERVAL_MS, STATS_INTERVAL_MS
from .events import nowMillis
from .statistics import AuthoritativeCounts
from .statsSource import StatisticsSource, StatsSourceError


TickCallable = Callable[[], Union[None, Awaitable[Any]]]


class PeriodicTask:
    """Non-overlapping repeating task with clean cancellation."""

    def __init__(self, name: str, tick: TickCallable, intervalMs: int, runImmediately: bool = False):
        if intervalMs <= 0:
            raise ValueError(f"{name} interval must be > 0 ms, got {intervalMs}")
        self.name = name
        self.intervalMs = intervalMs
        self.runImmediately = runImmediately
        self.ticks = 0
        self.failures = 0
        self._tick = tick
        self._task: Optional[asyncio.Task] = None
        self.log = getLogger()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)
        self.log.debug(f"{self.name} started", intervalMs=self.intervalMs)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self.log.debug(f"{self.name} stopped", ticks=self.ticks)

    async def _run(self) -> None:
        if self.runImmediately:
            await self._runTick()
        while True:
            await asyncio.sleep(self.intervalMs / 1000.0)
            await self._runTick()

    async def _runTick(self) -> None:
        self.ticks += 1
        try:
            result = self._tick()
            if asyncio.iscoroutine(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failures += 1
            self.log.error(f"{self.name} tick failed: {e}", exc_info=True)


class FlushScheduler:
    """Commits accumulation-side state into visible state on a fixed tick."""

    def __init__(self, flush: Callable[[], Any], intervalMs: int = FLUSH_INTERVAL_MS):
        self._timer = PeriodicTask('FlushScheduler', flush, intervalMs)

    @property
    def intervalMs(self) -> int:
        return self._timer.intervalMs

    @property
    def running(self) -> bool:
        return self._timer.running

    @property
    def ticks(self) -> int:
        return self._timer.ticks

    def start(self) -> None:
        self._timer.start()

    async def stop(self) -> None:
        await self._timer.stop()


class StatsReconciler:
    """
    Periodically overwrites the authoritative statistics group.

    Failures keep the last applied values; the next tick retries.
    invalidate() discards the result of any poll already in flight, so a
    reply fetched before a local reset is never applied after it.
    """

    def __init__(self, source: StatisticsSource,
                 apply: Callable[[AuthoritativeCounts], None],
                 intervalMs: int = STATS_INTERVAL_MS,
                 clock: Callable[[], int] = nowMillis):
        self.source = source
        self._apply = apply
        self._clock = clock
        self._lock = asyncio.Lock()
        self._generation = 0
        self._timer = PeriodicTask('StatsReconciler', self.pollNow, intervalMs, runImmediately=True)

        self.polls = 0
        self.pollFailures = 0
        self.lastError: Optional[str] = None
        self.lastSuccessMillis: Optional[int] = None
        self.log = getLogger()

    @property
    def intervalMs(self) -> int:
        return self._timer.intervalMs

    @property
    def running(self) -> bool:
        return self._timer.running

    def start(self) -> None:
        self._timer.start()

    async def stop(self) -> None:
        await self._timer.stop()

    def invalidate(self) -> None:
        self._generation += 1

    async def pollNow(self) -> bool:
        """
        Query the source once and apply the result.

        Returns:
            True if fresh values were applied
        """
        async with self._lock:
            generation = self._generation
            self.polls += 1
            try:
                counts = await self.source.getStatistics()
            except StatsSourceError as e:
                self._recordFailure(str(e))
                self.log.warning(f"Statistics poll failed: {e}", failures=self.pollFailures)
                return False
            except Exception as e:
                self._recordFailure(str(e))
                self.log.error(f"Statistics poll error: {e}", exc_info=True)
                return False

            if generation != self._generation:
                self.log.debug("Discarding statistics fetched before reset")
                return False

            self._apply(counts)
            self.lastError = None
            self.lastSuccessMillis = self._clock()
            return True

    def _recordFailure(self, message: str) -> None:
        self.pollFailures += 1
        self.lastError = message

    def status(self) -> dict:
        return {
            'running': self.running,
            'intervalMs': self.intervalMs,
            'polls': self.polls,
            'pollFailures': self.pollFailures,
            'lastError': self.lastError,
            'lastSuccessMillis': self.lastSuccessMillis,
        }
