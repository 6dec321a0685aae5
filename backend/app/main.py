from __future__ import annotations

import os
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.api.routers import rooms
from app.api.routers.rooms import respond
from app.core.config import Settings, settings
from app.core.logging_config import get_logger, setup_logging
from app.services.maintenance import MaintenanceScheduler
from app.services.rooms import RoomRegistry

logger = get_logger(__name__)


def create_app(config: Optional[Settings] = None, registry: Optional[RoomRegistry] = None) -> FastAPI:
    if config is None:
        config = settings
    if registry is None:
        registry = RoomRegistry(id_offset=config.room_id_offset)
    scheduler = MaintenanceScheduler(
        registry,
        keepalive_interval=config.keepalive_interval,
        eviction_interval=config.eviction_interval,
        room_ttl=config.room_ttl,
    )

    app = FastAPI(title=config.app_name)
    app.state.registry = registry
    app.state.scheduler = scheduler

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def on_startup() -> None:
        scheduler.start()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await scheduler.stop()
        for room in registry.rooms():
            room.close()

    async def not_found(request: Request, exc: Exception):
        return respond(404)

    app.add_exception_handler(404, not_found)
    app.add_exception_handler(405, not_found)

    @app.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(rooms.router)

    if os.path.isdir(config.static_dir):
        app.mount("/", StaticFiles(directory=config.static_dir, html=True), name="static")
    else:
        logger.info("Static directory %r not found, serving API only", config.static_dir)

    return app


app = create_app()


def serve() -> None:
    setup_logging(log_level=settings.log_level, log_file=settings.log_file)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
