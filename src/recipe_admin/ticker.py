"""
Single-slot background task runner for generation jobs.

Only one poll or simulation loop may drive the job at a time. Starting a new
loop cancels the previous one before the new task is created, and each task is
tagged with the token of the job it belongs to so callers can drop results
from a superseded job.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Coroutine, Optional

logger = logging.getLogger(__name__)


class JobTicker:
    def __init__(self) -> None:
        self._task: Optional[asyncio.Task] = None
        self._owner: Optional[str] = None

    @property
    def owner(self) -> Optional[str]:
        """Token of the job whose loop is currently running, if any."""
        return self._owner if self.is_running else None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, owner: str, loop: Coroutine) -> asyncio.Task:
        """
        Replace any running loop with `loop`, tagged with `owner`.

        Must be called from inside a running event loop.
        """
        self.cancel()
        task = asyncio.get_running_loop().create_task(loop, name=f"job-ticker-{owner}")
        task.add_done_callback(self._on_done)
        self._task = task
        self._owner = owner
        return task

    def cancel(self) -> None:
        """Cancel the running loop, if any. Safe to call repeatedly."""
        task, self._task, self._owner = self._task, None, None
        if task is not None and not task.done():
            logger.debug(f"Cancelling {task.get_name()}")
            task.cancel()

    async def join(self) -> None:
        """Wait for the current loop to finish or be cancelled."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    def _on_done(self, task: asyncio.Task) -> None:
        if task is self._task:
            self._task = None
            self._owner = None
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"{task.get_name()} crashed: {task.exception()!r}")
