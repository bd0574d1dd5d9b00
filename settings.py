from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_COLLECTION_ENV = "SENSOR_COLLECTION"
_SEED_PATH_ENV = "SENSOR_STORE_SEED_PATH"
_VARIANT_ENV = "DASHBOARD_VARIANT"
_SKIN_ENV = "DASHBOARD_SKIN"
_TIMEZONE_ENV = "DASHBOARD_TIMEZONE"
_LATEST_LIMIT_ENV = "DASHBOARD_LATEST_LIMIT"
_KEEPALIVE_ENV = "STREAM_KEEPALIVE_SECONDS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

VARIANTS = ("water", "multichannel")
SKINS = ("plain", "themed", "sidebar")


@dataclass(frozen=True)
class Settings:
    collection: str
    seed_path: Optional[str]
    variant: str
    skin: str
    timezone: str
    latest_limit: int
    keepalive_seconds: float
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


def _read_choice_env(name: str, choices: tuple[str, ...], default: str) -> str:
    candidate = _read_str_env(name, default).lower()
    return candidate if candidate in choices else default


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


def _read_positive_float(name: str, default: float) -> float:
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
    return parsed if parsed > 0 else default


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
        collection=_read_str_env(_COLLECTION_ENV, "sensor"),
        seed_path=_read_optional_env(_SEED_PATH_ENV, "./tmp/sensor_store.json"),
        variant=_read_choice_env(_VARIANT_ENV, VARIANTS, "water"),
        skin=_read_choice_env(_SKIN_ENV, SKINS, "plain"),
        timezone=_read_str_env(_TIMEZONE_ENV, "UTC"),
        latest_limit=_read_positive_int(_LATEST_LIMIT_ENV, 10),
        keepalive_seconds=_read_positive_float(_KEEPALIVE_ENV, 15.0),
        log_level=_read_log_level("INFO"),
    )
