"""Supervised fire-and-forget tasks.

Delivery attempts and best-effort startup chores run as detached tasks. The
only observer of their outcome is the log: a failure never propagates to the
code that spawned the task.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable

LOGGER = logging.getLogger(__name__)


class Supervisor:
    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Awaitable, name: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda done: self._finished(done, name))
        return task

    def _finished(self, task: asyncio.Task, name: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            LOGGER.debug("Task %s was cancelled", name)
            return
        error = task.exception()
        if error is not None:
            LOGGER.error("Task %s failed", name, exc_info=error)

    async def wait_idle(self) -> None:
        """Wait until every spawned task (including ones spawned meanwhile) is done."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
            # Let done-callbacks run so the task set is up to date.
            await asyncio.sleep(0)
