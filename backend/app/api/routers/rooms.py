from __future__ import annotations

from typing import Any, Optional, Type, TypeVar

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ValidationError

from app.api.deps import get_room_service
from app.schemas.rooms import (
    ConfigUpdateRequest,
    CreateRoomRequest,
    CreateRoomResponse,
    Envelope,
    EventRequest,
    RoomInfo,
)
from app.services.rooms import RoomResult, RoomService, RoomStatus

router = APIRouter(prefix="/api", tags=["rooms"])

ModelT = TypeVar("ModelT", bound=BaseModel)

_MESSAGES = {
    200: "Ok",
    400: "Bad Request",
    404: "Not Found",
    409: "Conflict",
}

_STATUS_CODES = {
    RoomStatus.OK: 200,
    RoomStatus.INVALID_INPUT: 400,
    # wrong password is reported exactly like a missing room
    RoomStatus.NOT_FOUND: 404,
    RoomStatus.FORBIDDEN: 404,
}

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def respond(code: int = 200, message: Optional[str] = None) -> JSONResponse:
    if message is None:
        message = _MESSAGES.get(code, "")
    return JSONResponse(Envelope(code=code, data=message).model_dump())


def respond_json(data: Any) -> JSONResponse:
    return JSONResponse(Envelope(code=200, data=data).model_dump())


def respond_result(result: RoomResult) -> JSONResponse:
    return respond(_STATUS_CODES[result.status])


async def _parse_body(request: Request, model: Type[ModelT]) -> Optional[ModelT]:
    try:
        payload = await request.json()
        return model.model_validate(payload)
    except (ValueError, ValidationError):
        return None


@router.post("/createRoom")
async def create_room(request: Request, service: RoomService = Depends(get_room_service)):
    params = await _parse_body(request, CreateRoomRequest)
    if params is None:
        return respond(400)
    result = service.create_room(params.pwd)
    if not result.ok:
        return respond_result(result)
    return respond_json(CreateRoomResponse(roomId=result.value).model_dump())


@router.post("/config/{room_id:path}")
async def update_config(room_id: str, request: Request, service: RoomService = Depends(get_room_service)):
    params = await _parse_body(request, ConfigUpdateRequest)
    if params is None:
        return respond(400)
    return respond_result(service.set_config(room_id, params.pwd, params.config))


@router.post("/event/{room_id:path}")
async def emit_event(room_id: str, request: Request, service: RoomService = Depends(get_room_service)):
    params = await _parse_body(request, EventRequest)
    if params is None or not params.event:
        return respond(400)
    return respond_result(service.broadcast(room_id, params.pwd, params.event, params.data or ""))


@router.get("/config/{room_id:path}")
async def room_config(room_id: str, service: RoomService = Depends(get_room_service)):
    result = service.get_config(room_id)
    if not result.ok:
        return respond_result(result)
    return respond_json(result.value)


@router.get("/listen/{room_id:path}")
async def listen(room_id: str, service: RoomService = Depends(get_room_service)):
    result = service.subscribe(room_id)
    if not result.ok:
        return respond_result(result)
    return StreamingResponse(result.value.stream(), media_type="text/event-stream", headers=STREAM_HEADERS)


@router.get("/__info__")
async def info(service: RoomService = Depends(get_room_service)):
    return respond_json(RoomInfo(**service.info().value).model_dump())
