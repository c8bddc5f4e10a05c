"""
Meridian Weather Lab - Configuration
Central configuration for the monitored location, upstream APIs and storage.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_str(name: str, default: str = "") -> str:
    raw = str(os.environ.get(name, "")).strip()
    return raw or default


def _env_int(name: str, default: int) -> int:
    raw = str(os.environ.get(name, "")).strip()
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError:
        return int(default)


def _env_float(name: str, default: float) -> float:
    raw = str(os.environ.get(name, "")).strip()
    if not raw:
        return float(default)
    try:
        return float(raw)
    except ValueError:
        return float(default)


# ============================================================================
# LOCATION CONFIGURATION
# ============================================================================

@dataclass
class LocationConfig:
    """The single monitored point with its sensor and local timezone."""
    name: str
    latitude: float
    longitude: float
    timezone: str            # Display / sensor local zone, never the canonical clock
    sensor_id: str           # Narodmon sensor identifier


LOCATION = LocationConfig(
    name=_env_str("LOCATION_NAME", "Almaty"),
    latitude=_env_float("LOCATION_LAT", 43.23),
    longitude=_env_float("LOCATION_LON", 76.86),
    timezone=_env_str("LOCAL_TIMEZONE", "Asia/Almaty"),
    sensor_id=_env_str("NARODMON_SENSOR_ID", "37687"),
)

# ============================================================================
# API ENDPOINTS
# ============================================================================

# Narodmon citizen sensor network (ground truth)
NARODMON_URL = "https://narodmon.ru/api"
NARODMON_UUID = _env_str("NARODMON_UUID")
NARODMON_KEY = _env_str("NARODMON_KEY")

# Yandex Weather (provider A, epoch-indexed hours)
YANDEX_FORECAST_URL = "https://api.weather.yandex.ru/v2/forecast"
YANDEX_KEY = _env_str("YANDEX_KEY")

# Open-Meteo (provider B, local-string-indexed hours)
OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"
OPEN_METEO_MODEL = _env_str("OPEN_METEO_MODEL", "ecmwf_aifs025_single")
OPEN_METEO_TIMEZONE = _env_str("OPEN_METEO_TIMEZONE", LOCATION.timezone)

# ============================================================================
# HTTP CLIENT
# ============================================================================

HTTP_TIMEOUT_SECONDS = _env_float("HTTP_TIMEOUT_SECONDS", 15.0)
HTTP_MAX_RETRIES = _env_int("HTTP_MAX_RETRIES", 2)
HTTP_RETRY_BACKOFF_SECONDS = _env_float("HTTP_RETRY_BACKOFF_SECONDS", 0.5)
HTTP_RETRY_STATUSES = {429, 500, 502, 503, 504}

# ============================================================================
# PIPELINE CONFIGURATION
# ============================================================================

# Forecasts are stored against the hour they target, this far ahead of now
FORECAST_HORIZON_HOURS = 12

# A sensor sample older than this is treated as offline (0 disables the check)
SENSOR_MAX_AGE_MINUTES = _env_int("SENSOR_MAX_AGE_MINUTES", 90)

# Most recent actual readings inspected by the stale-repeat cleanup
CLEANUP_WINDOW = _env_int("CLEANUP_WINDOW", 12)

# Minute past the hour when the scheduler runs a collection cycle
COLLECTION_MINUTE = _env_int("COLLECTION_MINUTE", 5)

# Dashboard windows
CHART_HOURS = 24
ACCURACY_DAYS = 30

# ============================================================================
# DATABASE CONFIGURATION
# ============================================================================

DATABASE_PATH = _env_str("DATABASE_PATH", "meridian_weather.db")
RETENTION_DAYS = _env_int("RETENTION_DAYS", 30)

# ============================================================================
# SECURITY
# ============================================================================

# Shared secret expected in the ?uuid= query parameter
COLLECT_UUID = _env_str("COLLECT_UUID")

# ============================================================================
# RECORD FIELDS
# ============================================================================

ACTUAL_FIELD = "actual"
FORECAST_A_FIELD = "forecast_A"
FORECAST_B_FIELD = "forecast_B"
READING_FIELDS = (ACTUAL_FIELD, FORECAST_A_FIELD, FORECAST_B_FIELD)

# Human labels per forecast field
FORECAST_SOURCES = {
    FORECAST_A_FIELD: "Yandex",
    FORECAST_B_FIELD: "Open-Meteo",
}
