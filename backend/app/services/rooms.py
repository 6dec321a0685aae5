from __future__ import annotations

import hmac
import itertools
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

from app.services.events import Listener

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]


class RoomStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    INVALID_INPUT = "invalid_input"


@dataclass(frozen=True)
class RoomResult(Generic[T]):
    status: RoomStatus
    value: Optional[T] = None

    @property
    def ok(self) -> bool:
        return self.status is RoomStatus.OK


def _ok(value: Any = None) -> RoomResult:
    return RoomResult(RoomStatus.OK, value)


def _fail(status: RoomStatus) -> RoomResult:
    return RoomResult(status)


class IdGenerator:
    """Monotonic ``U<n>`` ids shared by rooms and listeners of one registry."""

    def __init__(self, offset: int = 10000) -> None:
        self._counter = itertools.count(offset + 1)

    def __call__(self) -> str:
        return f"U{next(self._counter)}"


class Room:
    def __init__(
        self,
        room_id: str,
        password: str,
        next_id: Callable[[], str],
        clock: Clock = time.time,
    ) -> None:
        self.id = room_id
        self._password = password
        self._next_id = next_id
        self._clock = clock
        self._config: Dict[str, Any] = {}
        self._listeners: Dict[str, Listener] = {}
        self.last_modified = clock()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def listener_ids(self) -> list[str]:
        return list(self._listeners)

    def check_password(self, candidate: str) -> bool:
        return hmac.compare_digest(candidate.encode("utf-8"), self._password.encode("utf-8"))

    def set_config(self, config: Dict[str, Any]) -> None:
        self._config = config
        self.last_modified = self._clock()

    def get_config(self) -> Dict[str, Any]:
        return self._config

    def subscribe(self) -> Listener:
        listener_id = self._next_id()
        stale = self._listeners.pop(listener_id, None)
        if stale is not None:
            stale.close()

        def on_close(closed_id: str) -> None:
            # a replaced listener must not remove its successor
            if self._listeners.get(closed_id) is listener:
                logger.debug("Removing listener %s from room %s", closed_id, self.id)
                self.unregister_listener(closed_id)

        listener = Listener(listener_id, on_close)
        self._listeners[listener_id] = listener
        logger.debug("Listener %s subscribed to room %s", listener_id, self.id)
        return listener.open()

    def unregister_listener(self, listener_id: str) -> None:
        self._listeners.pop(listener_id, None)

    def broadcast(self, event: Optional[str], data: str) -> None:
        for listener in list(self._listeners.values()):
            try:
                listener.push(event, data)
            except Exception as exc:
                logger.debug("Dropping event for listener %s in room %s: %s", listener.id, self.id, exc)

    def ping_all(self) -> None:
        for listener in list(self._listeners.values()):
            try:
                listener.ping_keepalive()
            except Exception as exc:
                logger.debug("Keepalive failed for listener %s in room %s: %s", listener.id, self.id, exc)

    def close(self) -> None:
        for listener in list(self._listeners.values()):
            try:
                listener.close()
            except Exception as exc:
                logger.debug("Failed to close listener %s in room %s: %s", listener.id, self.id, exc)
        self._listeners.clear()


class RoomRegistry:
    """Live rooms of one server process, keyed by room id."""

    def __init__(self, clock: Clock = time.time, id_offset: int = 10000) -> None:
        self.clock = clock
        self._next_id = IdGenerator(id_offset)
        self._rooms: Dict[str, Room] = {}

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def create_room(self, password: str) -> Room:
        room = Room(self._next_id(), password, self._next_id, clock=self.clock)
        self._rooms[room.id] = room
        logger.info("Created room %s (%d live)", room.id, len(self._rooms))
        return room

    def get_room(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def rooms(self) -> list[Room]:
        return list(self._rooms.values())

    def evict(self, room_id: str) -> bool:
        room = self._rooms.get(room_id)
        if room is None:
            return False
        room.close()
        del self._rooms[room_id]
        logger.info("Evicted room %s (%d live)", room_id, len(self._rooms))
        return True

    def snapshot_info(self) -> Dict[str, int]:
        return {"roomCount": len(self._rooms)}


def is_valid_room_id(room_id: Optional[str]) -> bool:
    return bool(room_id) and "/" not in room_id


class RoomService:
    """Room operations for the boundary layer.

    Every method returns a :class:`RoomResult`; lookup and authorization
    failures are reported through its status rather than raised.
    """

    def __init__(self, registry: RoomRegistry):
        self.registry = registry

    def create_room(self, password: Optional[str]) -> RoomResult[str]:
        if not password:
            return _fail(RoomStatus.INVALID_INPUT)
        return _ok(self.registry.create_room(password).id)

    def get_config(self, room_id: Optional[str]) -> RoomResult[Dict[str, Any]]:
        if not is_valid_room_id(room_id):
            return _fail(RoomStatus.INVALID_INPUT)
        room = self.registry.get_room(room_id)
        if room is None:
            return _fail(RoomStatus.NOT_FOUND)
        return _ok(room.get_config())

    def set_config(
        self, room_id: Optional[str], password: Optional[str], config: Optional[Dict[str, Any]]
    ) -> RoomResult[None]:
        if not password or config is None:
            return _fail(RoomStatus.INVALID_INPUT)
        result = self._authorize(room_id, password)
        if not result.ok:
            return result
        result.value.set_config(config)
        return _ok()

    def broadcast(
        self, room_id: Optional[str], password: Optional[str], event: Optional[str], data: str = ""
    ) -> RoomResult[None]:
        if not password:
            return _fail(RoomStatus.INVALID_INPUT)
        result = self._authorize(room_id, password)
        if not result.ok:
            return result
        result.value.broadcast(event, data)
        return _ok()

    def subscribe(self, room_id: Optional[str]) -> RoomResult[Listener]:
        if not is_valid_room_id(room_id):
            return _fail(RoomStatus.INVALID_INPUT)
        room = self.registry.get_room(room_id)
        if room is None:
            return _fail(RoomStatus.NOT_FOUND)
        return _ok(room.subscribe())

    def info(self) -> RoomResult[Dict[str, int]]:
        return _ok(self.registry.snapshot_info())

    def _authorize(self, room_id: Optional[str], password: str) -> RoomResult[Room]:
        if not is_valid_room_id(room_id):
            return _fail(RoomStatus.NOT_FOUND)
        room = self.registry.get_room(room_id)
        if room is None:
            return _fail(RoomStatus.NOT_FOUND)
        if not room.check_password(password):
            logger.info("Rejected admin request for room %s: wrong password", room_id)
            return _fail(RoomStatus.FORBIDDEN)
        return _ok(room)
