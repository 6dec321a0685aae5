from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Callable, Optional

logger = logging.getLogger(__name__)

CONNECTED_FRAME = ":connected\r\n\r\n"
KEEPALIVE_FRAME = ":ping\r\n\r\n"

_END_OF_STREAM = None


class DeliveryFailure(Exception):
    """A frame could not be written to a single listener."""


class ListenerClosedError(DeliveryFailure):
    def __init__(self, listener_id: str) -> None:
        super().__init__(f"listener {listener_id} is closed")
        self.listener_id = listener_id


def encode_event(event: Optional[str], data: str) -> str:
    """Render one SSE event frame with CRLF line endings.

    The ``event:`` line is only written for a non-empty name. Each line of
    ``data`` becomes its own ``data:`` line with trailing whitespace removed.
    """
    parts = []
    if event:
        parts.append(f"event: {event}\r\n")
    for line in data.split("\n"):
        parts.append(f"data: {line.rstrip()}\r\n")
    parts.append("\r\n")
    return "".join(parts)


class Listener:
    """One subscriber's open SSE stream inside a room.

    Frames are queued on an unbounded ``asyncio.Queue`` and drained by
    :meth:`stream`, which the HTTP layer hands to a ``StreamingResponse``.
    """

    def __init__(self, listener_id: str, on_close: Callable[[str], None]) -> None:
        self.id = listener_id
        self._on_close: Optional[Callable[[str], None]] = on_close
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue()
        self._opened = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self) -> "Listener":
        if not self._opened:
            self._opened = True
            self._send_raw(CONNECTED_FRAME)
        return self

    def push(self, event: Optional[str], data: str) -> None:
        self._send_raw(encode_event(event, data))

    def ping_keepalive(self) -> None:
        self._send_raw(KEEPALIVE_FRAME)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_END_OF_STREAM)

    async def stream(self) -> AsyncIterator[str]:
        try:
            while True:
                frame = await self._queue.get()
                if frame is _END_OF_STREAM:
                    break
                yield frame
        finally:
            self.close()
            self._notify_closed()

    def _send_raw(self, frame: str) -> None:
        if self._closed:
            raise ListenerClosedError(self.id)
        self._queue.put_nowait(frame)

    def _notify_closed(self) -> None:
        callback, self._on_close = self._on_close, None
        if callback is not None:
            logger.debug("Listener %s disconnected", self.id)
            callback(self.id)
