from __future__ import annotations

import math
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_HOST_ENV = "HOST"
_PORT_ENV = "PORT"
_DATABASE_URL_ENV = "DATABASE_URL"
_CORS_ORIGIN_ENV = "CORS_ORIGIN"
_VAPID_PUBLIC_KEY_ENV = "VAPID_PUBLIC_KEY"
_VAPID_PRIVATE_KEY_ENV = "VAPID_PRIVATE_KEY"
_VAPID_SUBJECT_ENV = "VAPID_SUBJECT"
_COOLDOWN_ENV = "RAIN_COOLDOWN_MINUTES"
_TEMPERATURE_MIN_ENV = "RAIN_TEMPERATURE_MIN"
_TEMPERATURE_MAX_ENV = "RAIN_TEMPERATURE_MAX"
_HUMIDITY_MIN_ENV = "RAIN_HUMIDITY_MIN"
_HUMIDITY_MAX_ENV = "RAIN_HUMIDITY_MAX"
_SESSION_SCOPE_ENV = "SESSION_SCOPE"
_DEFAULT_DEVICE_ENV = "DEFAULT_DEVICE_ID"
_WORKER_COUNT_ENV = "NOTIFIER_WORKER_COUNT"
_STATS_WINDOW_ENV = "STATS_WINDOW_DAYS"
_FRONTEND_URL_ENV = "FRONTEND_URL"
_LOG_LEVEL_ENV = "LOG_LEVEL"

SESSION_SCOPES = ("global", "device")

# Smallest float above 80 %, so the inclusive humidity check behaves as `> 80`.
DEFAULT_HUMIDITY_MIN = math.nextafter(80.0, math.inf)


@dataclass(frozen=True)
class Settings:
    host: str
    port: int
    database_url: str
    cors_origin: str
    vapid_public_key: Optional[str]
    vapid_private_key: Optional[str]
    vapid_contact: str
    cooldown_minutes: float
    temperature_min: float
    temperature_max: float
    humidity_min: float
    humidity_max: float
    session_scope: str
    default_device_id: str
    notifier_workers: int
    stats_window_days: int
    frontend_url: str
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_float(name: str, default: float, minimum: Optional[float] = None) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    if not math.isfinite(parsed):
        return default
    if minimum is not None and parsed < minimum:
        return default
    return parsed


def _read_session_scope(default: str) -> str:
    candidate = _read_str_env(_SESSION_SCOPE_ENV, default).lower()
    return candidate if candidate in SESSION_SCOPES else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        host=_read_str_env(_HOST_ENV, "0.0.0.0"),
        port=_read_positive_int(_PORT_ENV, 4000),
        database_url=_read_str_env(_DATABASE_URL_ENV, "file:./tmp/readings.jsonl"),
        cors_origin=_read_str_env(_CORS_ORIGIN_ENV, "*"),
        vapid_public_key=_read_optional_env(_VAPID_PUBLIC_KEY_ENV, None),
        vapid_private_key=_read_optional_env(_VAPID_PRIVATE_KEY_ENV, None),
        vapid_contact=_read_str_env(_VAPID_SUBJECT_ENV, "mailto:admin@example.com"),
        cooldown_minutes=_read_float(_COOLDOWN_ENV, 30.0, minimum=0.0),
        temperature_min=_read_float(_TEMPERATURE_MIN_ENV, 24.0),
        temperature_max=_read_float(_TEMPERATURE_MAX_ENV, 30.0),
        humidity_min=_read_float(_HUMIDITY_MIN_ENV, DEFAULT_HUMIDITY_MIN),
        humidity_max=_read_float(_HUMIDITY_MAX_ENV, 100.0),
        session_scope=_read_session_scope("global"),
        default_device_id=_read_str_env(_DEFAULT_DEVICE_ENV, "ESP-01"),
        notifier_workers=_read_positive_int(_WORKER_COUNT_ENV, 4),
        stats_window_days=_read_positive_int(_STATS_WINDOW_ENV, 30),
        frontend_url=_read_str_env(_FRONTEND_URL_ENV, "https://rain-frontend.onrender.com"),
        log_level=_read_log_level("INFO"),
    )
