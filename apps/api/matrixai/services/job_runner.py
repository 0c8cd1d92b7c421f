"""Supervised pool for background job routines."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
import logging
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundJobRunner:
    """Owns every scheduled job task until it finishes.

    Tasks are strongly referenced so the event loop cannot drop them, and any
    exception escaping a routine is logged when the task completes.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    def schedule(self, routine: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(routine, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("runner.task_cancelled task=%s", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error("runner.task_crashed task=%s", task.get_name(), exc_info=exc)

    async def drain(self) -> None:
        """Wait until every scheduled routine, including ones scheduled meanwhile, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel outstanding routines; their jobs stay non-terminal until the next startup sweep."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
