from __future__ import annotations

from fastapi import Request

from app.services.rooms import RoomRegistry, RoomService


def get_registry(request: Request) -> RoomRegistry:
    return request.app.state.registry


def get_room_service(request: Request) -> RoomService:
    return RoomService(get_registry(request))
