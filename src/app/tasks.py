from __future__ import annotations

"""Background interval tasks run on the application event loop."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass
class PeriodicTask:
    """Run an action every ``interval`` seconds until stopped.

    Exceptions from the action are logged and the loop keeps going; actions that
    must stop the process do so through the supervisor.
    """
    name: str
    interval: float
    action: Callable[[], Awaitable[Any] | Any]
    run_immediately: bool = False
    _task: asyncio.Task | None = field(default=None, init=False, repr=False)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        if not self.run_immediately:
            await asyncio.sleep(self.interval)
        while True:
            try:
                outcome = self.action()
                if asyncio.iscoroutine(outcome):
                    await outcome
            except Exception:
                logger.exception("periodic_task_failed", extra={"task": self.name})
            await asyncio.sleep(self.interval)
