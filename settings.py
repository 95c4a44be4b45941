from __future__ import annotations

import math
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_LATITUDE_ENV = "AQI_BRIDGE_LATITUDE"
_LONGITUDE_ENV = "AQI_BRIDGE_LONGITUDE"
_RADIUS_ENV = "AQI_BRIDGE_RADIUS_KM"
_DEBUG_ENV = "AQI_BRIDGE_DEBUG"
_POLL_INTERVAL_ENV = "AQI_BRIDGE_POLL_INTERVAL"
_BASE_URL_ENV = "AQI_BRIDGE_BASE_URL"
_VARIANT_ENV = "AQI_BRIDGE_VARIANT"
_HTTP_TIMEOUT_ENV = "AQI_BRIDGE_HTTP_TIMEOUT"
_POLLER_ENABLED_ENV = "AQI_BRIDGE_POLLER_ENABLED"
_LOG_LEVEL_ENV = "LOG_LEVEL"

DEFAULT_BASE_URL = "https://www.purpleair.com/data.json"
VARIANTS = ("realtime", "outdoor")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    latitude: float
    longitude: float
    radius_km: float
    debug: bool
    poll_interval: float
    base_url: str
    variant: str
    http_timeout: float
    poller_enabled: bool
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_float_env(
    name: str,
    default: float,
    minimum: Optional[float] = None,
    maximum: Optional[float] = None,
) -> float:
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
    if maximum is not None and parsed > maximum:
        return default
    return parsed


def _read_positive_float_env(name: str, default: float) -> float:
    parsed = _read_float_env(name, default)
    return parsed if parsed > 0 else default


def _read_bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUE_VALUES:
        return True
    if candidate in _FALSE_VALUES:
        return False
    return default


def _read_variant(default: str) -> str:
    candidate = _read_str_env(_VARIANT_ENV, default).lower()
    return candidate if candidate in VARIANTS else default


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
    # Defaults center the query on the Statue of Liberty.
    return Settings(
        latitude=_read_float_env(_LATITUDE_ENV, 40.689247, minimum=-90.0, maximum=90.0),
        longitude=_read_float_env(_LONGITUDE_ENV, -74.044502, minimum=-180.0, maximum=180.0),
        radius_km=_read_positive_float_env(_RADIUS_ENV, 10.0),
        debug=_read_bool_env(_DEBUG_ENV, False),
        poll_interval=_read_positive_float_env(_POLL_INTERVAL_ENV, 35.0),
        base_url=_read_str_env(_BASE_URL_ENV, DEFAULT_BASE_URL),
        variant=_read_variant("realtime"),
        http_timeout=_read_positive_float_env(_HTTP_TIMEOUT_ENV, 30.0),
        poller_enabled=_read_bool_env(_POLLER_ENABLED_ENV, True),
        log_level=_read_log_level("INFO"),
    )
