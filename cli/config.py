from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_POLL_INTERVAL = 10.0
DEFAULT_TIMEOUT = 30.0
DEFAULT_RANGE = "24h"

RANGES = ("24h", "7d", "30d", "custom")


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    poll_interval: float = DEFAULT_POLL_INTERVAL
    timeout: float = DEFAULT_TIMEOUT
    default_range: str = DEFAULT_RANGE


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    try:
        parsed = float(raw)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _normalize_url(url: str) -> str:
    url = url.strip().rstrip("/")
    if "://" not in url:
        url = f"http://{url}"
    return url


def load_config(
    base_url: Optional[str] = None,
    poll_interval: Optional[float] = None,
    timeout: Optional[float] = None,
) -> CLIConfig:
    """Explicit options win over ``API_BASE_URL``/``CLI_*`` variables."""
    default_range = (os.getenv("CLI_DEFAULT_RANGE") or "").strip().lower()
    return CLIConfig(
        base_url=_normalize_url(base_url or os.getenv("API_BASE_URL") or DEFAULT_BASE_URL),
        poll_interval=poll_interval or _env_float("CLI_POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
        timeout=timeout or _env_float("CLI_TIMEOUT", DEFAULT_TIMEOUT),
        default_range=default_range if default_range in RANGES else DEFAULT_RANGE,
    )
