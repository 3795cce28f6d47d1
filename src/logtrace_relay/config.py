"""Environment-driven settings for the relay server."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional


_TRUTHY = {"1", "true", "yes", "y", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _parse_origins(raw: Optional[str]) -> list[str]:
    origins = [o.strip() for o in (raw or "").split(",") if o.strip()]
    if not origins or "*" in origins:
        return ["*"]
    return origins


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    outbox_size: int = 256
    enable_stream_list: bool = True
    # 0 keeps empty streams forever.
    empty_stream_ttl: int = 0
    env: str = "development"
    log_level: str = "INFO"
    log_to_file: bool = False
    # None means ./var/logs/relay.log under the working directory.
    log_file: Optional[str] = None
    log_max_bytes: int = 10 * 1024 * 1024
    log_backup_count: int = 5


def load_settings() -> Settings:
    """Build settings from the environment.

    `PORT` takes precedence over `LOGTRACE_PORT` so hosted platforms that
    inject `PORT` work without extra configuration.
    """
    port = _env_int("PORT", _env_int("LOGTRACE_PORT", 3000))
    return Settings(
        host=os.getenv("LOGTRACE_HOST", "0.0.0.0").strip() or "0.0.0.0",
        port=port,
        cors_origins=_parse_origins(os.getenv("LOGTRACE_CORS_ORIGINS", "*")),
        outbox_size=max(1, _env_int("LOGTRACE_OUTBOX_SIZE", 256)),
        enable_stream_list=_env_bool("LOGTRACE_ENABLE_STREAM_LIST", True),
        empty_stream_ttl=max(0, _env_int("LOGTRACE_EMPTY_STREAM_TTL", 0)),
        env=os.getenv("LOGTRACE_ENV", "development").strip() or "development",
        log_level=os.getenv("LOGTRACE_LOG_LEVEL", "INFO").strip() or "INFO",
        log_to_file=_env_bool("LOGTRACE_LOG_TO_FILE", False),
        log_file=os.getenv("LOGTRACE_LOG_FILE", "").strip() or None,
        log_max_bytes=max(1, _env_int("LOGTRACE_LOG_MAX_BYTES", 10 * 1024 * 1024)),
        log_backup_count=max(0, _env_int("LOGTRACE_LOG_BACKUP_COUNT", 5)),
    )
