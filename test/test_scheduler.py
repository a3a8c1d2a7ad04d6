"""
Pipeline Timer Tests

- PeriodicTask ticks never overlap and a failing tick does not stop the timer
- stop() cancels cleanly
- StatsReconciler applies successes, keeps last values on failure, and
  serialises scheduled and manual polls
"""

import asyncio
import pytest
from pathlib import Path

# Add parent to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from pulse.core.scheduler import PeriodicTask, FlushScheduler, StatsReconciler
from pulse.core.statistics import AuthoritativeCounts
from pulse.core.statsSource import StatisticsSource, StatsSourceError


class FakeSource(StatisticsSource):
    """Scripted statistics source. Each entry is an AuthoritativeCounts or an exception."""

    def __init__(self, script=None, delay=0.0):
        self.script = list(script or [])
        self.delay = delay
        self.calls = 0
        self.active = 0
        self.maxActive = 0
        self.resets = 0

    async def getStatistics(self):
        self.calls += 1
        self.active += 1
        self.maxActive = max(self.maxActive, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            result = self.script.pop(0) if self.script else AuthoritativeCounts(totalReceived=self.calls)
            if isinstance(result, Exception):
                raise result
            return result
        finally:
            self.active -= 1

    async def resetCounters(self):
        self.resets += 1


class TestPeriodicTask:

    @pytest.mark.asyncio
    async def test_ticks_and_stops(self):
        ticks = []
        task = PeriodicTask('test', lambda: ticks.append(1), intervalMs=5)
        task.start()
        await asyncio.sleep(0.06)
        await task.stop()

        count = len(ticks)
        assert count >= 2
        assert not task.running
        await asyncio.sleep(0.03)
        assert len(ticks) == count

    @pytest.mark.asyncio
    async def test_no_overlap(self):
        state = {'active': 0, 'max': 0, 'ticks': 0}

        async def slowTick():
            state['active'] += 1
            state['max'] = max(state['max'], state['active'])
            await asyncio.sleep(0.02)
            state['active'] -= 1
            state['ticks'] += 1

        task = PeriodicTask('slow', slowTick, intervalMs=1)
        task.start()
        await asyncio.sleep(0.1)
        await task.stop()

        assert state['ticks'] >= 2
        assert state['max'] == 1

    @pytest.mark.asyncio
    async def test_failing_tick_keeps_running(self):
        calls = []

        def tick():
            calls.append(1)
            raise RuntimeError('boom')

        task = PeriodicTask('failing', tick, intervalMs=5)
        task.start()
        await asyncio.sleep(0.05)
        assert task.running
        await task.stop()

        assert len(calls) >= 2
        assert task.failures == len(calls)

    @pytest.mark.asyncio
    async def test_run_immediately(self):
        calls = []
        task = PeriodicTask('eager', lambda: calls.append(1), intervalMs=10_000, runImmediately=True)
        task.start()
        await asyncio.sleep(0.01)
        await task.stop()
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        task = PeriodicTask('idle', lambda: None, intervalMs=5)
        await task.stop()
        assert not task.running

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            PeriodicTask('bad', lambda: None, intervalMs=0)


class TestFlushScheduler:

    @pytest.mark.asyncio
    async def test_calls_flush(self):
        flushes = []
        scheduler = FlushScheduler(lambda: flushes.append(1), intervalMs=5)
        scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert scheduler.intervalMs == 5
        assert len(flushes) >= 2
        assert scheduler.ticks == len(flushes)
        assert not scheduler.running


class TestStatsReconciler:

    @pytest.mark.asyncio
    async def test_poll_now_applies(self):
        applied = []
        reconciler = StatsReconciler(FakeSource([AuthoritativeCounts(totalReceived=5)]),
                                     applied.append, clock=lambda: 1234)

        assert await reconciler.pollNow() is True
        assert applied == [AuthoritativeCounts(totalReceived=5)]
        assert reconciler.lastSuccessMillis == 1234
        assert reconciler.lastError is None

    @pytest.mark.asyncio
    async def test_failure_keeps_last_values(self):
        applied = []
        source = FakeSource([AuthoritativeCounts(totalReceived=1), StatsSourceError('down'), RuntimeError('bug')])
        reconciler = StatsReconciler(source, applied.append, clock=lambda: 1)

        assert await reconciler.pollNow() is True
        assert await reconciler.pollNow() is False
        assert reconciler.lastError == 'down'
        assert await reconciler.pollNow() is False
        assert reconciler.lastError == 'bug'

        assert applied == [AuthoritativeCounts(totalReceived=1)]
        assert reconciler.pollFailures == 2
        assert reconciler.polls == 3

    @pytest.mark.asyncio
    async def test_polls_immediately_then_on_schedule(self):
        applied = []
        reconciler = StatsReconciler(FakeSource(), applied.append, intervalMs=10)
        reconciler.start()
        await asyncio.sleep(0.005)
        assert len(applied) == 1

        await asyncio.sleep(0.05)
        await reconciler.stop()
        assert len(applied) >= 3
        assert not reconciler.running

    @pytest.mark.asyncio
    async def test_failures_retried_on_next_tick(self):
        applied = []
        source = FakeSource([StatsSourceError('a'), StatsSourceError('b'), AuthoritativeCounts(totalSent=9)])
        reconciler = StatsReconciler(source, applied.append, intervalMs=5)
        reconciler.start()
        await asyncio.sleep(0.06)
        await reconciler.stop()

        assert AuthoritativeCounts(totalSent=9) in applied
        assert reconciler.pollFailures == 2

    @pytest.mark.asyncio
    async def test_polls_never_overlap(self):
        source = FakeSource(delay=0.02)
        reconciler = StatsReconciler(source, lambda counts: None, intervalMs=1)
        reconciler.start()
        await asyncio.gather(reconciler.pollNow(), reconciler.pollNow(), reconciler.pollNow())
        await reconciler.stop()

        assert source.calls >= 3
        assert source.maxActive == 1

    @pytest.mark.asyncio
    async def test_invalidate_discards_in_flight_result(self):
        applied = []
        source = FakeSource([AuthoritativeCounts(totalReceived=100)], delay=0.02)
        reconciler = StatsReconciler(source, applied.append)

        poll = asyncio.create_task(reconciler.pollNow())
        await asyncio.sleep(0.005)
        reconciler.invalidate()

        assert await poll is False
        assert applied == []
        assert await reconciler.pollNow() is True
        assert len(applied) == 1

    @pytest.mark.asyncio
    async def test_status(self):
        reconciler = StatsReconciler(FakeSource([StatsSourceError('x')]), lambda counts: None, intervalMs=250)
        await reconciler.pollNow()
        status = reconciler.status()
        assert status['intervalMs'] == 250
        assert status['pollFailures'] == 1
        assert status['lastError'] == 'x'
        assert status['lastSuccessMillis'] is None
