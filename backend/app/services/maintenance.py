from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable, Optional

from app.services.rooms import RoomRegistry

logger = logging.getLogger(__name__)

KEEPALIVE_INTERVAL = 14.0
EVICTION_INTERVAL = 2 * 3600.0
ROOM_TTL = 24 * 3600.0


class MaintenanceScheduler:
    """Keepalive pings and stale-room eviction over one registry.

    Both sweeps are plain methods so they can be run synchronously; ``start``
    wraps each in its own periodic asyncio task.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        keepalive_interval: float = KEEPALIVE_INTERVAL,
        eviction_interval: float = EVICTION_INTERVAL,
        room_ttl: float = ROOM_TTL,
    ) -> None:
        self.registry = registry
        self.keepalive_interval = keepalive_interval
        self.eviction_interval = eviction_interval
        self.room_ttl = room_ttl
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def keepalive_sweep(self) -> None:
        for room in self.registry.rooms():
            try:
                room.ping_all()
            except Exception:
                logger.error("Keepalive failed for room %s", room.id, exc_info=True)

    def eviction_sweep(self) -> list[str]:
        now = self.registry.clock()
        expired: list[str] = []
        for room in self.registry.rooms():
            try:
                if now - room.last_modified > self.room_ttl:
                    room.close()
                    expired.append(room.id)
            except Exception:
                logger.error("Eviction check failed for room %s", room.id, exc_info=True)
        for room_id in expired:
            self.registry.evict(room_id)
        if expired:
            logger.info("Eviction sweep removed %d room(s)", len(expired))
        return expired

    def run_now(self) -> list[str]:
        self.keepalive_sweep()
        return self.eviction_sweep()

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._every(self.keepalive_interval, self.keepalive_sweep)),
            asyncio.create_task(self._every(self.eviction_interval, self.eviction_sweep)),
        ]
        logger.info(
            "Maintenance started (keepalive every %ss, eviction every %ss, ttl %ss)",
            self.keepalive_interval,
            self.eviction_interval,
            self.room_ttl,
        )

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if tasks:
            logger.info("Maintenance stopped")

    @staticmethod
    async def _every(interval: float, action: Callable[[], Optional[object]]) -> None:
        while True:
            await asyncio.sleep(interval)
            action()
