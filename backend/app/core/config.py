from __future__ import annotations

import os
from functools import lru_cache


class Settings:
    """Application configuration exposed via lazy singleton."""

    def __init__(self) -> None:
        self.app_name = os.getenv("APP_NAME", "SSE Rooms")
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.log_file = os.getenv("LOG_FILE")
        self.static_dir = os.getenv("STATIC_DIR", "static")
        self.keepalive_interval = float(os.getenv("KEEPALIVE_INTERVAL_SECONDS", "14"))
        self.eviction_interval = float(os.getenv("EVICTION_INTERVAL_SECONDS", str(2 * 3600)))
        self.room_ttl = float(os.getenv("ROOM_TTL_SECONDS", str(24 * 3600)))
        self.room_id_offset = int(os.getenv("ROOM_ID_OFFSET", "10000"))
        self.host = os.getenv("HOST", "0.0.0.0")
        self.port = int(os.getenv("PORT", "8000"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
