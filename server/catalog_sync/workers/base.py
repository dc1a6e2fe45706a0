"""Base worker class for background tasks."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)


class BaseWorker(ABC):
    """
    Abstract base class for background workers.

    The loop waits ``seconds_until_next_run()`` and then calls ``process()``.
    By default that is a fixed interval; scheduled workers override it.
    Exceptions from ``process()`` are logged and never end the loop.
    """

    def __init__(self, name: str, interval_seconds: int = 60):
        """
        Initialize the worker.

        Args:
            name: Worker name for logging
            interval_seconds: How often to run the task
        """
        self.name = name
        self.interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @abstractmethod
    async def process(self) -> None:
        """Process one iteration of the background task."""
        pass

    def seconds_until_next_run(self) -> float:
        """Delay before the next iteration."""
        return self.interval_seconds

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the worker."""
        if self._running:
            logger.warning(f"{self.name} worker is already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"{self.name} worker started")

    async def stop(self) -> None:
        """Stop the worker gracefully."""
        if not self._running:
            logger.warning(f"{self.name} worker is not running")
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        logger.info(f"{self.name} worker stopped")

    async def _run(self) -> None:
        """Main worker loop."""
        logger.info(f"{self.name} worker loop started")

        while self._running:
            try:
                delay = self.seconds_until_next_run()
                logger.debug(
                    f"{self.name} worker sleeping until next run",
                    extra={"worker": self.name, "delay_seconds": round(delay, 1)}
                )
                if delay > 0:
                    await asyncio.sleep(delay)

                start_time = time.perf_counter()
                await self.process()

                logger.info(
                    f"{self.name} worker iteration completed",
                    extra={
                        "duration_seconds": round(time.perf_counter() - start_time, 3),
                        "worker": self.name,
                    }
                )

            except asyncio.CancelledError:
                logger.info(f"{self.name} worker loop cancelled")
                break
            except Exception as e:
                logger.error(
                    f"{self.name} worker error: {str(e)}",
                    exc_info=True,
                    extra={"worker": self.name}
                )
