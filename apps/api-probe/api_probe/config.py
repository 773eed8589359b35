"""Environment-backed settings for the probe service and CLI."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_TIMEOUT = 30.0
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8787
DEFAULT_DATABASE_URL = "sqlite:///qualixa-probe.db"
DEFAULT_JWT_AUDIENCE = "authenticated"
DEFAULT_LOG_LEVEL = "INFO"

BASE_URL_ENV = "QUALIXA_PROBE_BASE_URL"


def _float_env(name: str, default: float) -> float:
    try:
        value = os.getenv(name)
        return float(value) if value is not None else default
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    try:
        value = os.getenv(name)
        return int(value) if value is not None else default
    except ValueError:
        return default


def _list_env(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if value is None:
        return list(default)
    items = [item.strip() for item in value.split(",") if item.strip()]
    return items or list(default)


@dataclass
class ProbeSettings:
    """Runtime settings; construct through load_settings() to honour the environment."""

    timeout: float = DEFAULT_TIMEOUT
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    database_url: str = DEFAULT_DATABASE_URL
    jwt_secret: str = ""
    jwt_audience: str | None = DEFAULT_JWT_AUDIENCE
    jwt_algorithms: list[str] = field(default_factory=lambda: ["HS256"])
    log_level: str = DEFAULT_LOG_LEVEL


def load_settings() -> ProbeSettings:
    """Read settings from the environment at call time."""

    timeout = _float_env("QUALIXA_PROBE_TIMEOUT", DEFAULT_TIMEOUT)
    if timeout <= 0:
        timeout = DEFAULT_TIMEOUT
    audience = os.getenv("QUALIXA_JWT_AUDIENCE", DEFAULT_JWT_AUDIENCE).strip()
    return ProbeSettings(
        timeout=timeout,
        host=os.getenv("QUALIXA_HOST", DEFAULT_HOST),
        port=_int_env("QUALIXA_PORT", DEFAULT_PORT),
        database_url=os.getenv("QUALIXA_DATABASE_URL", DEFAULT_DATABASE_URL),
        jwt_secret=os.getenv("QUALIXA_JWT_SECRET", ""),
        jwt_audience=audience or None,
        jwt_algorithms=_list_env("QUALIXA_JWT_ALGORITHMS", ["HS256"]),
        log_level=os.getenv("QUALIXA_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
    )
