"""Tests for the single-shot wake timer."""

import asyncio

import pytest

from ember.cron.timer import MAX_DELAY_MS, WakeTimer

from tests.conftest import T0


class _Recorder:
    def __init__(self) -> None:
        self.calls = 0
        self.event = asyncio.Event()

    async def __call__(self) -> None:
        self.calls += 1
        self.event.set()


class TestWakeTimer:
    async def test_none_leaves_timer_idle(self):
        timer = WakeTimer(_Recorder())
        timer.arm(None, T0)
        assert timer.armed is False
        assert timer.wake_at_ms is None

    async def test_fires_after_delay(self):
        recorder = _Recorder()
        timer = WakeTimer(recorder)

        timer.arm(T0 + 10, T0)
        assert timer.armed is True
        assert timer.wake_at_ms == T0 + 10

        await asyncio.wait_for(recorder.event.wait(), timeout=2)
        await timer.drain()
        assert recorder.calls == 1
        assert timer.armed is False

    async def test_past_deadline_fires_immediately(self):
        recorder = _Recorder()
        timer = WakeTimer(recorder)

        timer.arm(T0 - 60_000, T0)

        await asyncio.wait_for(recorder.event.wait(), timeout=2)
        assert recorder.calls == 1

    async def test_rearm_replaces_pending_wake(self):
        recorder = _Recorder()
        timer = WakeTimer(recorder)

        timer.arm(T0 + 60_000, T0)
        timer.arm(T0 + 10, T0)
        assert timer.wake_at_ms == T0 + 10

        await asyncio.wait_for(recorder.event.wait(), timeout=2)
        await asyncio.sleep(0.05)
        assert recorder.calls == 1
        assert timer.armed is False

    async def test_cancel(self):
        recorder = _Recorder()
        timer = WakeTimer(recorder)

        timer.arm(T0 + 10, T0)
        timer.cancel()
        await asyncio.sleep(0.05)

        assert recorder.calls == 0
        assert timer.armed is False

    async def test_delay_is_clamped(self):
        timer = WakeTimer(_Recorder())
        loop = asyncio.get_running_loop()

        timer.arm(T0 + 365 * 24 * 3_600_000, T0)
        try:
            assert timer._handle is not None
            delay = timer._handle.when() - loop.time()
            assert delay <= MAX_DELAY_MS / 1000
            assert delay > MAX_DELAY_MS / 1000 - 5
            # The real deadline is still reported
            assert timer.wake_at_ms == T0 + 365 * 24 * 3_600_000
        finally:
            timer.cancel()

    async def test_drain_waits_for_running_wake(self):
        finished = asyncio.Event()

        async def slow() -> None:
            await asyncio.sleep(0.05)
            finished.set()

        timer = WakeTimer(slow)
        timer.arm(T0, T0)
        await asyncio.sleep(0.01)

        await timer.drain()
        assert finished.is_set()

    async def test_failed_wake_is_logged(self, caplog):
        async def broken() -> None:
            raise RuntimeError("wake exploded")

        timer = WakeTimer(broken)
        timer.arm(T0, T0)
        await asyncio.sleep(0.05)

        assert "cron_wake_failed" in caplog.text

    def test_arm_requires_running_loop(self):
        timer = WakeTimer(_Recorder())
        with pytest.raises(RuntimeError):
            timer.arm(T0 + 10, T0)
