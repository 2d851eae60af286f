# triage/dispatch.py
"""
Fire-and-forget task spawning.

spawn() schedules a blocking callable on a worker thread via a detached
asyncio task and returns immediately. Callers never await the result; any
exception is routed to the error sink. Strong references are kept only so
the event loop does not garbage-collect pending tasks.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Set

from . import error_sink
from .pipeline import PipelineError
from .runtime import get_logger

logger = get_logger("dispatch")


class BackgroundDispatcher:
    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()
        self.completed = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, context: str, fn: Callable[..., Any], *args: Any) -> None:
        """Must be called from inside the running event loop (e.g. an async route)."""
        task = asyncio.get_running_loop().create_task(asyncio.to_thread(fn, *args), name=context)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._finished(context, t))

    def _finished(self, context: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self.failed += 1
            logger.warning("Background task %s was cancelled before completion", context)
            return
        err = task.exception()
        if err is None:
            self.completed += 1
            return
        self.failed += 1
        extra: Dict[str, Any] = {}
        if isinstance(err, PipelineError):
            extra = err.run.summary()
        error_sink.report(context, err, **extra)

    async def drain(self, timeout: float = 30.0) -> int:
        """Wait (bounded) for outstanding tasks; returns how many were still running at the deadline."""
        if not self._tasks:
            return 0
        logger.info("Draining %d background task(s)...", len(self._tasks))
        _, still_running = await asyncio.wait(set(self._tasks), timeout=timeout)
        if still_running:
            logger.warning("%d background task(s) abandoned at shutdown", len(still_running))
        return len(still_running)

    def stats(self) -> Dict[str, int]:
        return {"pending": self.pending, "completed": self.completed, "failed": self.failed}
