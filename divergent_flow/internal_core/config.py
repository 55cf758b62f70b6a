from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Literal, Optional

Environment = Literal["development", "staging", "production"]
CaptureStoreKind = Literal["memory", "redis"]

_ENVIRONMENT_ALIASES = {
    "dev": "development",
    "development": "development",
    "local": "development",
    "stage": "staging",
    "staging": "staging",
    "prod": "production",
    "production": "production",
}


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


def _getenv_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _getenv_list(name: str) -> tuple[str, ...]:
    raw = os.getenv(name) or ""
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _resolve_environment(raw: str) -> Environment:
    resolved = _ENVIRONMENT_ALIASES.get(raw.strip().lower())
    if resolved is None:
        raise ValueError(f"Unsupported DF_ENVIRONMENT: {raw!r}")
    return resolved  # type: ignore[return-value]


def _resolve_capture_store(raw: str) -> CaptureStoreKind:
    normalized = raw.strip().lower()
    if normalized not in {"memory", "redis"}:
        raise ValueError(f"Unsupported DF_CAPTURE_STORE: {raw!r}")
    return normalized  # type: ignore[return-value]


@dataclass(frozen=True)
class AppConfig:
    DF_ENVIRONMENT: Environment = "development"
    DF_LOG_LEVEL: str = "INFO"
    DF_CAPTURE_STORE: CaptureStoreKind = "memory"
    REDIS_URL: str = ""
    REDIS_TOKEN: str = ""
    CORS_ALLOWED_ORIGINS: tuple[str, ...] = field(default_factory=tuple)
    CORS_ALLOWED_ORIGIN_PATTERNS: tuple[str, ...] = field(default_factory=tuple)
    DF_REINFERENCE_ENABLED: bool = False
    DF_REINFERENCE_THRESHOLD: float = 95.0
    DF_REINFERENCE_INTERVAL_SECONDS: int = 60
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 5.0
    PROJECTION_TIMEOUT_SECONDS: float = 5.0

    @property
    def is_development(self) -> bool:
        return self.DF_ENVIRONMENT == "development"

    @property
    def redis_enabled(self) -> bool:
        return bool(self.REDIS_URL.strip())

    def redis_password(self) -> Optional[str]:
        token = self.REDIS_TOKEN.strip()
        return token or None


def load_config() -> AppConfig:
    capture_store = _resolve_capture_store(_getenv_str("DF_CAPTURE_STORE", "memory"))
    redis_url = _getenv_str("REDIS_URL", "").strip()
    if capture_store == "redis" and not redis_url:
        raise ValueError("DF_CAPTURE_STORE=redis requires REDIS_URL to be set.")

    return AppConfig(
        DF_ENVIRONMENT=_resolve_environment(_getenv_str("DF_ENVIRONMENT", "development")),
        DF_LOG_LEVEL=_getenv_str("DF_LOG_LEVEL", "INFO").strip().upper() or "INFO",
        DF_CAPTURE_STORE=capture_store,
        REDIS_URL=redis_url,
        REDIS_TOKEN=_getenv_str("REDIS_TOKEN", ""),
        CORS_ALLOWED_ORIGINS=_getenv_list("CORS_ALLOWED_ORIGINS"),
        CORS_ALLOWED_ORIGIN_PATTERNS=_getenv_list("CORS_ALLOWED_ORIGIN_PATTERNS"),
        DF_REINFERENCE_ENABLED=_getenv_bool("DF_REINFERENCE_ENABLED", False),
        DF_REINFERENCE_THRESHOLD=_getenv_float("DF_REINFERENCE_THRESHOLD", 95.0),
        DF_REINFERENCE_INTERVAL_SECONDS=_getenv_int("DF_REINFERENCE_INTERVAL_SECONDS", 60),
        REDIS_SOCKET_TIMEOUT_SECONDS=_getenv_float("REDIS_SOCKET_TIMEOUT_SECONDS", 5.0),
        PROJECTION_TIMEOUT_SECONDS=_getenv_float("DF_PROJECTION_TIMEOUT_SECONDS", 5.0),
    )
