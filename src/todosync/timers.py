from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from .logging_config import get_logger

logger = get_logger(__name__)


# PUBLIC_INTERFACE
class ScheduledTask:
    """
    A cancellable callback run on the event loop after ``delay`` seconds, and
    then every ``interval`` seconds when an interval is given.

    Must be created while an event loop is running.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], Awaitable[object]],
        *,
        interval: Optional[float] = None,
        name: str = "scheduled-task",
    ) -> None:
        self.delay = max(delay, 0.0)
        self.interval = interval
        self.name = name
        self._callback = callback
        self._in_callback = False
        self._stopped = False
        self._task: asyncio.Task = asyncio.get_running_loop().create_task(self._run(), name=name)

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        while not self._stopped:
            self._in_callback = True
            try:
                await self._callback()
            except Exception:
                # Keep a periodic timer alive across a failing callback.
                logger.exception("Scheduled task %s failed", self.name)
            finally:
                self._in_callback = False
            if self.interval is None or self._stopped:
                return
            await asyncio.sleep(self.interval)

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        """
        Stop the timer. A callback that is already running is allowed to finish;
        only the waiting and any further repeats are cancelled.
        """
        self._stopped = True
        if self._in_callback:
            return
        self._task.cancel()

