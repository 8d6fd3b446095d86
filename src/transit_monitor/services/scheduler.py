"""Fixed-rate periodic task running on the asyncio event loop.

A PeriodicTask owns one ticker coroutine and one stop event (the
cancellation token). It guarantees that:

- ticks of the same task never overlap; an overrunning tick delays the next one,
- an exception raised by a tick is logged and never ends the schedule,
- ``stop()`` lets an in-flight tick finish for a bounded time, then cancels it,
- the task counts as running until its ticker has exited, so ``start()``
  during a drain is refused.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from transit_monitor.exceptions import SchedulerShutdownError

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run an async callable every ``interval`` seconds until stopped."""

    def __init__(self, name: str, tick: Callable[[], Awaitable[Any]]):
        """Initialize the task.

        Args:
            name: Name used for the asyncio task and in log messages.
            tick: Coroutine function invoked once per tick.
        """
        self.name = name
        self._tick = tick
        self._task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval: float, initial_delay: float = 0.0) -> bool:
        """Schedule the ticker on the running event loop.

        Args:
            interval: Seconds between the start of consecutive ticks.
            initial_delay: Seconds to wait before the first tick.

        Returns:
            True if a schedule was created, False if one was already active.

        Raises:
            ValueError: If interval is not positive or initial_delay is negative.
        """
        if interval <= 0:
            raise ValueError("Interval must be positive")
        if initial_delay < 0:
            raise ValueError("Initial delay must not be negative")

        if self.is_running:
            logger.warning(f"{self.name} is already running")
            return False

        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        self._task = self._loop.create_task(
            self._run(interval, initial_delay, self._stop_event), name=self.name
        )
        return True

    async def _run(self, interval: float, initial_delay: float, stop_event: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        next_run = loop.time() + initial_delay

        while not stop_event.is_set():
            delay = next_run - loop.time()
            if delay > 0:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=delay)
                    break
                except TimeoutError:
                    pass

            await self._run_tick()

            # fixed rate; after an overrun, run again right away instead of catching up
            next_run = max(next_run + interval, loop.time())

    async def _run_tick(self) -> None:
        try:
            await self._tick()
        except Exception:
            logger.exception(f"Tick of {self.name} failed")

    async def stop(self, timeout: float = 5.0) -> bool:
        """Stop the schedule, draining the in-flight tick for up to ``timeout`` seconds.

        Returns:
            True if a schedule was stopped, False if none was active.

        Raises:
            SchedulerShutdownError: If the caller was cancelled while waiting
                for the drain; the ticker is force-cancelled first.
        """
        task = self._task
        if task is None or task.done():
            logger.info(f"{self.name} is not running")
            return False

        # the task stays referenced until it exits; is_running covers the drain
        if self._stop_event is not None:
            self._stop_event.set()

        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except TimeoutError:
            logger.warning(f"{self.name} did not stop within {timeout:.1f}s, cancelling")
            task.cancel()
            done, _ = await asyncio.wait({task}, timeout=timeout)
            if not done:
                logger.error(f"{self.name} ignored cancellation")
        except asyncio.CancelledError as e:
            task.cancel()
            raise SchedulerShutdownError(f"{self.name} shutdown interrupted") from e

        return True

    def stop_threadsafe(self, timeout: float = 5.0) -> bool:
        """Stop the schedule from a thread other than the event loop's.

        Blocks the calling thread until ``stop()`` completes on the loop.

        Raises:
            RuntimeError: If called from the event loop thread itself.
        """
        loop = self._loop
        if loop is None or loop.is_closed() or not self.is_running:
            logger.info(f"{self.name} is not running")
            return False

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            raise RuntimeError("Use 'await stop()' from the event loop thread")

        future = asyncio.run_coroutine_threadsafe(self.stop(timeout), loop)
        # drain plus forced cancellation, each bounded by timeout
        return future.result(timeout=2 * timeout + 1)
