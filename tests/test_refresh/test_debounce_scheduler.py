"""
Debounce Scheduler Tests.

Bursts of submits collapse into one callback with the merged updates.
"""

import asyncio

import pytest

from adaptrisk.refresh.debounce import DebounceScheduler
from adaptrisk.refresh.schemas import SignalUpdate, change_fraction, merge_updates


class Recorder:
    def __init__(self, fail: bool = False):
        self.calls: list[list[SignalUpdate]] = []
        self.fail = fail

    async def __call__(self, updates):
        self.calls.append(updates)
        if self.fail:
            raise RuntimeError("refresh exploded")
        return len(updates)


def _update(signal_id: str, old: float, new: float) -> SignalUpdate:
    return SignalUpdate.from_values(signal_id, old, new)


class TestMergeUpdates:

    def test_repeated_signal_collapses(self):
        merged = merge_updates([_update("fx", 100, 105), _update("oil", 50, 55), _update("fx", 105, 120)])
        assert [u.signal_id for u in merged] == ["fx", "oil"]
        assert merged[0].old_value == 100
        assert merged[0].new_value == 120
        assert merged[0].change_percent == pytest.approx(0.2)

    def test_change_fraction_from_zero(self):
        assert change_fraction(0.0, 5.0) == 1.0
        assert change_fraction(0.0, 0.0) == 0.0
        assert change_fraction(-10.0, -5.0) == pytest.approx(0.5)


class TestDebounceScheduler:

    @pytest.mark.asyncio
    async def test_burst_fires_once(self):
        recorder = Recorder()
        scheduler = DebounceScheduler(0.05, recorder)

        scheduler.submit([_update("fx", 100, 101)])
        await asyncio.sleep(0.01)
        scheduler.submit([_update("fx", 101, 103)])
        scheduler.submit([_update("oil", 50, 60)])
        assert scheduler.is_scheduled
        assert len(scheduler.pending) == 3

        await asyncio.sleep(0.2)
        await scheduler.drain()

        assert len(recorder.calls) == 1
        fired = recorder.calls[0]
        assert {u.signal_id for u in fired} == {"fx", "oil"}
        fx = next(u for u in fired if u.signal_id == "fx")
        assert (fx.old_value, fx.new_value) == (100, 103)
        assert not scheduler.is_scheduled
        assert scheduler.pending == []

    @pytest.mark.asyncio
    async def test_cancel_drops_pending(self):
        recorder = Recorder()
        scheduler = DebounceScheduler(0.05, recorder)

        scheduler.submit([_update("fx", 1, 2)])
        dropped = scheduler.cancel()
        await asyncio.sleep(0.1)

        assert len(dropped) == 1
        assert recorder.calls == []

    @pytest.mark.asyncio
    async def test_flush_runs_immediately(self):
        recorder = Recorder()
        scheduler = DebounceScheduler(60.0, recorder)

        scheduler.submit([_update("fx", 1, 2)])
        result = await scheduler.flush()

        assert result == 1
        assert len(recorder.calls) == 1
        assert not scheduler.is_scheduled

    @pytest.mark.asyncio
    async def test_flush_with_nothing_pending(self):
        recorder = Recorder()
        assert await DebounceScheduler(60.0, recorder).flush() is None
        assert recorder.calls == []

    @pytest.mark.asyncio
    async def test_failing_callback_keeps_scheduler_usable(self):
        recorder = Recorder(fail=True)
        scheduler = DebounceScheduler(0.01, recorder)

        scheduler.submit([_update("fx", 1, 2)])
        await asyncio.sleep(0.05)
        await scheduler.drain()

        scheduler.submit([_update("fx", 2, 3)])
        await asyncio.sleep(0.05)
        await scheduler.drain()

        assert len(recorder.calls) == 2
