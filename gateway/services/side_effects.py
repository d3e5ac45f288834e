"""
gateway/services/side_effects.py

Runs fire-and-forget persistence and mirroring coroutines as asyncio tasks.
Callers never await durability; failures are logged and swallowed.
"""

import asyncio
from typing import Any, Coroutine

import structlog

logger = structlog.get_logger(__name__)


class SideEffects:
    """Tracks background tasks so they are not garbage collected mid-flight."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task:
        """Schedule coro on the running loop and return immediately."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def drain(self) -> None:
        """Wait for every task spawned so far (and any they spawn)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "side_effect_failed",
                task=task.get_name(),
                error=str(exc),
            )
