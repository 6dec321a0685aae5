import asyncio

import pytest

from app.services.events import CONNECTED_FRAME, KEEPALIVE_FRAME
from app.services.rooms import Room, RoomStatus
from conftest import queued_frames


def test_room_ids_are_unique_and_path_safe(registry):
    ids = [registry.create_room("pw").id for _ in range(5)]

    assert ids[0] == "U10001"
    assert len(set(ids)) == 5
    assert all("/" not in room_id for room_id in ids)


def test_listener_ids_never_collide_with_room_ids(registry):
    room = registry.create_room("pw")
    listener = room.subscribe()
    other = registry.create_room("pw")

    assert len({room.id, listener.id, other.id}) == 3


@pytest.mark.parametrize("password", ["secret", "p@ss wörd", "x"])
def test_check_password_exact_match(registry, password):
    room = registry.get_room(registry.create_room(password).id)

    assert room.check_password(password)
    assert not room.check_password(password + " ")
    assert not room.check_password(password.upper())
    assert not room.check_password("")


def test_config_last_write_wins(registry, clock):
    room = registry.create_room("pw")
    created = room.last_modified
    assert room.get_config() == {}

    clock.advance(5)
    room.set_config({"title": "first", "nested": {"a": 1}})
    clock.advance(5)
    room.set_config({"title": "second"})

    assert room.get_config() == {"title": "second"}
    assert room.last_modified == created + 10


def test_activity_does_not_refresh_last_modified(registry, clock):
    room = registry.create_room("pw")
    created = room.last_modified

    clock.advance(60)
    room.subscribe()
    room.broadcast("chat", "hello")
    room.ping_all()

    assert room.last_modified == created


def test_each_subscriber_is_primed_before_broadcasts(registry):
    room = registry.create_room("pw")
    listeners = [room.subscribe() for _ in range(3)]

    room.broadcast("chat", "a\nb")

    assert room.listener_count == 3
    for listener in listeners:
        frames = queued_frames(listener)
        assert frames == [CONNECTED_FRAME, "event: chat\r\ndata: a\r\ndata: b\r\n\r\n"]
        assert frames.count(CONNECTED_FRAME) == 1


def test_broadcasts_arrive_in_call_order(registry):
    room = registry.create_room("pw")
    listener = room.subscribe()

    for n in range(3):
        room.broadcast("tick", str(n))

    assert queued_frames(listener)[1:] == [f"event: tick\r\ndata: {n}\r\n\r\n" for n in range(3)]


def test_dead_listener_does_not_stop_fan_out(registry):
    room = registry.create_room("pw")
    first, dead, last = room.subscribe(), room.subscribe(), room.subscribe()
    dead.close()

    room.broadcast("chat", "still here")
    room.ping_all()

    assert queued_frames(first)[1:] == ["event: chat\r\ndata: still here\r\n\r\n", KEEPALIVE_FRAME]
    assert queued_frames(last)[1:] == ["event: chat\r\ndata: still here\r\n\r\n", KEEPALIVE_FRAME]


def test_unexpected_listener_error_is_isolated(registry, monkeypatch):
    room = registry.create_room("pw")
    broken, healthy = room.subscribe(), room.subscribe()

    def explode(*args):
        raise RuntimeError("transport gone")

    monkeypatch.setattr(broken, "push", explode)
    monkeypatch.setattr(broken, "close", explode)

    room.broadcast(None, "payload")
    room.close()

    assert queued_frames(healthy) == [CONNECTED_FRAME, "data: payload\r\n\r\n"]
    assert healthy.closed


async def test_disconnected_listener_is_gone_before_next_broadcast(registry, monkeypatch):
    room = registry.create_room("pw")
    leaving, staying = room.subscribe(), room.subscribe()

    async def consume():
        async for _ in leaving.stream():
            pass

    task = asyncio.create_task(consume())
    for _ in range(5):
        await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    attempts = []
    monkeypatch.setattr(leaving, "push", lambda *args: attempts.append(args))
    room.broadcast("chat", "after")

    assert room.listener_ids() == [staying.id]
    assert attempts == []


async def test_subscribe_replaces_listener_with_reused_id(clock):
    room = Room("R1", "pw", next_id=lambda: "U1", clock=clock)
    stale = room.subscribe()
    fresh = room.subscribe()

    assert stale.closed
    assert not fresh.closed
    assert room.listener_ids() == ["U1"]

    frames = [frame async for frame in stale.stream()]

    assert frames == [CONNECTED_FRAME]
    assert room.listener_ids() == ["U1"]
    assert room.listener_count == 1


def test_close_shuts_every_listener(registry):
    room = registry.create_room("pw")
    listeners = [room.subscribe() for _ in range(2)]

    room.close()

    assert all(listener.closed for listener in listeners)
    assert room.listener_count == 0
    room.broadcast("chat", "nobody")


def test_snapshot_info_counts_rooms_only(registry):
    assert registry.snapshot_info() == {"roomCount": 0}
    room = registry.create_room("a")
    registry.create_room("b")
    room.subscribe()
    room.subscribe()

    assert registry.snapshot_info() == {"roomCount": 2}
    assert len(registry) == 2
    assert room.id in registry


def test_service_rejects_empty_password(service):
    result = service.create_room("")

    assert result.status is RoomStatus.INVALID_INPUT
    assert service.create_room(None).status is RoomStatus.INVALID_INPUT
    assert service.info().value == {"roomCount": 0}


@pytest.mark.parametrize("room_id", ["", None, "U10001/x", "/"])
def test_service_rejects_malformed_room_ids(service, room_id):
    service.create_room("pw")

    assert service.get_config(room_id).status is RoomStatus.INVALID_INPUT
    assert service.subscribe(room_id).status is RoomStatus.INVALID_INPUT
    assert service.broadcast(room_id, "pw", "chat").status is RoomStatus.NOT_FOUND


def test_service_unknown_room(service):
    assert service.get_config("U999").status is RoomStatus.NOT_FOUND
    assert service.set_config("U999", "pw", {}).status is RoomStatus.NOT_FOUND
    assert service.broadcast("U999", "pw", "chat", "x").status is RoomStatus.NOT_FOUND
    assert service.subscribe("U999").status is RoomStatus.NOT_FOUND


def test_service_config_requires_password_and_document(service):
    room_id = service.create_room("pw").value

    assert service.set_config(room_id, "", {"a": 1}).status is RoomStatus.INVALID_INPUT
    assert service.set_config(room_id, "pw", None).status is RoomStatus.INVALID_INPUT
    assert service.set_config(room_id, "nope", {"a": 1}).status is RoomStatus.FORBIDDEN
    assert service.set_config(room_id, "pw", {}).ok
    assert service.set_config(room_id, "pw", {"a": 1}).ok
    assert service.get_config(room_id).value == {"a": 1}


def test_broadcast_to_empty_room_succeeds(service):
    room_id = service.create_room("pw").value

    assert service.broadcast(room_id, "pw", "chat", "into the void").ok


def test_secret_chat_scenario(service):
    room_id = service.create_room("secret").value
    listener = service.subscribe(room_id).value

    assert queued_frames(listener) == [CONNECTED_FRAME]

    assert service.broadcast(room_id, "secret", "chat", "hello").ok
    assert queued_frames(listener) == ["event: chat\r\ndata: hello\r\n\r\n"]

    rejected = service.broadcast(room_id, "wrong", "chat", "intruder")
    assert rejected.status is RoomStatus.FORBIDDEN
    assert not rejected.ok
    assert queued_frames(listener) == []
