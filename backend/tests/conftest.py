from __future__ import annotations

import pytest

from app.services.events import Listener
from app.services.rooms import RoomRegistry, RoomService


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def queued_frames(listener: Listener) -> list[str]:
    """Pop every frame currently waiting on the listener's queue."""
    frames = []
    while not listener._queue.empty():
        frame = listener._queue.get_nowait()
        if frame is not None:
            frames.append(frame)
    return frames


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock: FakeClock) -> RoomRegistry:
    return RoomRegistry(clock=clock)


@pytest.fixture
def service(registry: RoomRegistry) -> RoomService:
    return RoomService(registry)
