"""
Cancellable idle timers keyed by order.

The engine arms a payment timer when an order enters PendingPayment and a
review timer when it enters DeliveredPendingReview, and cancels them on the
way out. A timer that fires anyway re-checks the order under its lock, so a
late firing is a no-op.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from fulfillment.observability import ATTR_ORDER_ID, ATTR_TIMER_NAME, Tracer, create_tracer

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[Any]]
TimerKey = tuple[int, str]


class TimerRegistry:
    """
    Process-wide registry of idle timers.

    At most one timer exists per (order id, timer name); scheduling again
    replaces the previous one. A firing timer is removed from the registry
    before its callback runs, so the callback may cancel timers for the same
    order without cancelling itself.

    Example:
        >>> timers = TimerRegistry()
        >>> timers.schedule(445, "payment", 60.0, lambda: engine.expire_payment(445))
        >>> timers.cancel(445, "payment")
        True
    """

    def __init__(
        self,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._timers: dict[TimerKey, asyncio.Task[Any]] = {}

    def schedule(
        self,
        order_id: int,
        name: str,
        delay: float,
        callback: TimerCallback,
    ) -> asyncio.Task[Any]:
        key = (order_id, name)
        self.cancel(order_id, name)
        task = asyncio.create_task(
            self._run(key, delay, callback),
            name=f"timer-{name}-{order_id}",
        )
        self._timers[key] = task
        logger.debug(
            "Scheduled %s timer for order %s in %.1fs",
            name,
            order_id,
            delay,
            extra={"order_id": order_id, "timer": name},
        )
        return task

    async def _run(self, key: TimerKey, delay: float, callback: TimerCallback) -> None:
        await asyncio.sleep(delay)
        if self._timers.get(key) is asyncio.current_task():
            del self._timers[key]

        order_id, name = key
        with self._tracer.span(
            "fulfillment.timer.fire",
            {ATTR_ORDER_ID: order_id, ATTR_TIMER_NAME: name},
        ):
            try:
                await callback()
            except Exception:
                logger.exception(
                    "%s timer for order %s failed",
                    name,
                    order_id,
                    extra={"order_id": order_id, "timer": name},
                )

    def cancel(self, order_id: int, name: str) -> bool:
        """Cancel one timer. Returns False if it was not armed."""
        task = self._timers.pop((order_id, name), None)
        if task is None or task.done():
            return False
        if task is not asyncio.current_task():
            task.cancel()
        logger.debug(
            "Cancelled %s timer for order %s",
            name,
            order_id,
            extra={"order_id": order_id, "timer": name},
        )
        return True

    def cancel_order(self, order_id: int) -> int:
        """Cancel every timer of an order; returns how many were armed."""
        names = [name for (oid, name) in self._timers if oid == order_id]
        return sum(1 for name in names if self.cancel(order_id, name))

    def is_scheduled(self, order_id: int, name: str) -> bool:
        task = self._timers.get((order_id, name))
        return task is not None and not task.done()

    @property
    def pending_count(self) -> int:
        return sum(1 for task in self._timers.values() if not task.done())

    async def shutdown(self) -> int:
        """Cancel all timers and wait for them to finish."""
        tasks = list(self._timers.values())
        self._timers.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return len(tasks)


__all__ = ["TimerCallback", "TimerRegistry"]
