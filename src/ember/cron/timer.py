"""Single one-shot wake timer on the asyncio event loop."""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

logger = logging.getLogger(__name__)

# Largest delay the timer is armed for (2**31-1 ms, ~24.8 days). A wake that
# fires early simply finds nothing due and re-arms.
MAX_DELAY_MS = 2**31 - 1


class WakeTimer:
    """At most one pending wake-up; arming replaces the previous one.

    When the deadline passes, ``on_wake`` is started as a task. Tasks that are
    still in flight can be awaited with ``drain`` and are never cancelled by
    the timer itself.
    """

    def __init__(self, on_wake: Callable[[], Coroutine[Any, Any, Any]]) -> None:
        self._on_wake = on_wake
        self._handle: asyncio.TimerHandle | None = None
        self._wake_at_ms: int | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def armed(self) -> bool:
        return self._handle is not None

    @property
    def wake_at_ms(self) -> int | None:
        """Deadline of the pending wake-up, if armed."""
        return self._wake_at_ms

    def arm(self, wake_at_ms: int | None, now_ms: int) -> None:
        """Cancel any pending wake-up and schedule one at ``wake_at_ms``.

        ``None`` leaves the timer idle. Must be called from a running loop.
        """
        self.cancel()
        if wake_at_ms is None:
            return

        delay_ms = min(max(0, wake_at_ms - now_ms), MAX_DELAY_MS)
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay_ms / 1000, self._fire)
        self._wake_at_ms = wake_at_ms
        logger.debug(
            "cron_timer_armed",
            extra={"cron.wake_at_ms": wake_at_ms, "cron.delay_ms": delay_ms},
        )

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._wake_at_ms = None

    async def drain(self) -> None:
        """Wait for in-flight wake tasks to finish.

        The calling task is excluded so a wake task can drain safely.
        """
        pending = self._tasks - {asyncio.current_task()}
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def _fire(self) -> None:
        self._handle = None
        self._wake_at_ms = None
        task = asyncio.create_task(self._on_wake(), name="cron_wake")
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and (exc := task.exception()):
            logger.error(
                "cron_wake_failed",
                extra={"error.message": str(exc)},
                exc_info=exc,
            )
