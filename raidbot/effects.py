"""Fire-and-forget side effects with a single error sink."""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine

import structlog

from .errors import ExternalReferenceStale

logger = structlog.get_logger()


class SideEffects:
    """Run chat platform calls in the background.

    State has always been persisted before an effect is spawned, so a failing
    effect is only logged.  Stale references are expected (someone deleted a
    channel by hand) and logged as warnings; anything else is an error.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        if isinstance(exc, ExternalReferenceStale):
            logger.warning("side_effect.stale", effect=task.get_name(), error=str(exc))
        else:
            logger.error(
                "side_effect.failed",
                effect=task.get_name(),
                error=str(exc),
                exc_info=exc,
            )

    async def drain(self) -> None:
        """Wait until every spawned effect, including nested ones, finished."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
