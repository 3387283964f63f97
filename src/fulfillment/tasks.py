"""
Fire-and-forget chat work that must not hold up an order transition.

Deleting a ticket channel after its grace delay, granting the client role,
posting a notification: the engine submits these here and moves on. A
failure is logged with the task's name and goes no further.

Example:
    >>> tasks = BackgroundTaskManager()
    >>> tasks.submit(chat.delete_channel(channel_id), delay=5.0, name="delete-ticket")
    >>> await tasks.await_all(timeout=5.0)
"""

import asyncio
import contextlib
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


async def _delayed(seconds: float, coro: Coroutine[Any, Any, Any]) -> Any:
    try:
        await asyncio.sleep(seconds)
    except asyncio.CancelledError:
        # never started, so close it to avoid a "never awaited" warning
        coro.close()
        raise
    return await coro


class BackgroundTaskManager:
    def __init__(self) -> None:
        self._running: set[asyncio.Task[Any]] = set()

    def submit(
        self,
        coro: Coroutine[Any, Any, Any],
        *,
        delay: float = 0.0,
        name: str | None = None,
    ) -> asyncio.Task[Any]:
        task = asyncio.create_task(_delayed(delay, coro) if delay > 0 else coro, name=name)
        self._running.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task[Any]) -> None:
        self._running.discard(task)
        if not task.cancelled() and (error := task.exception()) is not None:
            logger.error("Background task %s failed: %s", task.get_name(), error, exc_info=error)

    @property
    def pending_count(self) -> int:
        return len(self._running)

    @property
    def has_pending(self) -> bool:
        return bool(self._running)

    async def await_all(self, timeout: float | None = None) -> int:
        """
        Wait for everything submitted so far; whatever is still running when
        ``timeout`` expires is cancelled. Returns how many tasks were waited on.
        """
        waiting = list(self._running)
        if not waiting:
            return 0
        _, late = await asyncio.wait(waiting, timeout=timeout)
        if late:
            logger.warning(
                "Cancelling %d background task(s) still running after %ss",
                len(late),
                timeout,
                extra={"remaining_tasks": len(late)},
            )
            for task in late:
                task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await asyncio.gather(*late, return_exceptions=True)
        return len(waiting)

    def cancel_all(self) -> int:
        running = list(self._running)
        for task in running:
            task.cancel()
        return len(running)

    def __repr__(self) -> str:
        return f"<BackgroundTaskManager pending={self.pending_count}>"


__all__ = ["BackgroundTaskManager"]
