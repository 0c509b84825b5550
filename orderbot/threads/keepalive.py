"""Periodic heartbeats that stop Discord from auto-archiving active threads."""

from __future__ import annotations

import asyncio
import logging

from ..messaging.base import MessagingPlatform, PlatformError, Thread

logger = logging.getLogger(__name__)

HEARTBEAT_CONTENT = "⏳"


class KeepAlive:
    """Scheduled heartbeat task owned by one order thread."""

    def __init__(
        self,
        scheduler: "KeepAliveScheduler",
        thread: Thread,
        order_id: str,
    ) -> None:
        self.thread = thread
        self.order_id = order_id
        self.heartbeats = 0
        self._scheduler = scheduler
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self._task = asyncio.create_task(
            self._run(), name=f"keepalive-{self.order_id}"
        )

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _beat(self) -> bool:
        """Send and delete one heartbeat; ``False`` when the task should end."""

        platform = self._scheduler.platform
        current = await platform.get_thread(self.thread.id)
        if current is None or current.is_terminal:
            logger.info("Thread for order %s is closed; stopping keep-alive", self.order_id)
            return False
        self.thread = current
        message = await platform.send_message(self.thread.id, content=HEARTBEAT_CONTENT)
        self.heartbeats += 1
        try:
            await platform.delete_message(self.thread.id, message.id)
        except PlatformError as exc:
            logger.debug("Could not delete heartbeat in %s: %s", self.thread.id, exc)
        return True

    async def _run(self) -> None:
        try:
            while True:
                await asyncio.sleep(self._scheduler.interval)
                try:
                    alive = await self._beat()
                except PlatformError as exc:
                    logger.warning("Keep-alive for order %s failed: %s", self.order_id, exc)
                    alive = False
                if not alive:
                    break
        finally:
            self._scheduler._discard(self)


class KeepAliveScheduler:
    """Registry of heartbeat tasks, at most one per order."""

    def __init__(self, platform: MessagingPlatform, interval: float = 60.0) -> None:
        self.platform = platform
        self.interval = interval
        self._timers: dict[str, KeepAlive] = {}

    def start(self, thread: Thread, order_id: str) -> KeepAlive:
        """Replace any existing heartbeat for ``order_id``. Needs a running loop."""

        self.stop(order_id)
        keepalive = KeepAlive(self, thread, order_id)
        self._timers[order_id] = keepalive
        keepalive.start()
        logger.debug("Keep-alive started for order %s (thread %s)", order_id, thread.id)
        return keepalive

    def stop(self, order_id: str) -> None:
        keepalive = self._timers.pop(order_id, None)
        if keepalive is not None:
            keepalive.cancel()
            logger.debug("Keep-alive stopped for order %s", order_id)

    def stop_all(self) -> None:
        for order_id in list(self._timers):
            self.stop(order_id)

    def get(self, order_id: str) -> KeepAlive | None:
        return self._timers.get(order_id)

    def is_active(self, order_id: str) -> bool:
        keepalive = self._timers.get(order_id)
        return keepalive is not None and keepalive.running

    def __len__(self) -> int:
        return len(self._timers)

    def _discard(self, keepalive: KeepAlive) -> None:
        # A replacement may already own the slot.
        if self._timers.get(keepalive.order_id) is keepalive:
            del self._timers[keepalive.order_id]
