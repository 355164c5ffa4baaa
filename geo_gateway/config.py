from __future__ import annotations

from functools import lru_cache
from typing import Dict, Optional

from pydantic import AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Gateway configuration (env-friendly, prefix ``GATEWAY_``).

    Tip: create a .env file and override settings there.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", env_prefix="GATEWAY_")

    app_name: str = "Geo Search Gateway"
    version: str = "0.1.0"

    # Photon root, with or without a trailing /api
    photon_base_url: Optional[AnyHttpUrl] = None

    user_agent: str = "geo-search-gateway/0.1.0"

    # Per upstream call, and for the whole request (all corridor sub-calls included)
    http_timeout_s: float = 10.0
    request_timeout_s: float = 30.0

    max_concurrency: int = 8
    default_limit: int = 20
    default_max_polyline_points: int = 200
    # Upper bound for a client-supplied maxPolylinePoints
    max_polyline_points_limit: int = 1000

    # Off: one failing corridor sub-call fails the whole request
    corridor_skip_failures: bool = False

    # Extra category -> "key:value" entries on top of the built-in table
    extra_categories: Dict[str, str] = {}

    host: str = "127.0.0.1"
    port: int = 8000

    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
