from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel


class CreateRoomRequest(BaseModel):
    pwd: Optional[str] = None


class ConfigUpdateRequest(BaseModel):
    pwd: Optional[str] = None
    config: Optional[Dict[str, Any]] = None


class EventRequest(BaseModel):
    pwd: Optional[str] = None
    event: Optional[str] = None
    data: Optional[str] = None


class CreateRoomResponse(BaseModel):
    roomId: str


class RoomInfo(BaseModel):
    roomCount: int


class Envelope(BaseModel):
    code: int
    data: Any = None
