"""
Monitoring - Periodic Tasks.

Each poll loop (health checks, metrics collection, throughput) runs as
its own PeriodicTask so a slow tick of one never delays another.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, List, Optional


logger = logging.getLogger(__name__)


class PeriodicTask:
    """
    Runs an async callable on a fixed interval as a background task.

    A failing tick is logged and the loop carries on.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        interval: float,
        run_immediately: bool = True,
    ):
        """Initialize task."""
        self._name = name
        self._func = func
        self._interval = interval
        self._run_immediately = run_immediately
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._ticks = 0
        self._failures = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def ticks(self) -> int:
        return self._ticks

    @property
    def failures(self) -> int:
        return self._failures

    async def start(self) -> None:
        """Start the loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"[{self._name}] Periodic task started (every {self._interval}s)")

    async def stop(self) -> None:
        """Stop the loop."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info(f"[{self._name}] Periodic task stopped")

    async def run_once(self) -> None:
        """Execute one tick; errors are logged, not raised."""
        try:
            await self._func()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._failures += 1
            logger.error(f"[{self._name}] Tick failed: {e}")
        finally:
            self._ticks += 1

    async def _run(self) -> None:
        """Main run loop."""
        if not self._run_immediately:
            await asyncio.sleep(self._interval)

        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                break

            await asyncio.sleep(self._interval)

    def to_dict(self) -> dict:
        return {
            "name": self._name,
            "interval": self._interval,
            "running": self._running,
            "ticks": self._ticks,
            "failures": self._failures,
        }


async def start_all(tasks: Iterable[PeriodicTask]) -> None:
    """Start several tasks."""
    for task in tasks:
        await task.start()


async def stop_all(tasks: Iterable[PeriodicTask]) -> List[str]:
    """Stop several tasks; returns their names."""
    stopped = []
    for task in tasks:
        await task.stop()
        stopped.append(task.name)
    return stopped
