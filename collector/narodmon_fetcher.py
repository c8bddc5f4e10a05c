"""
Meridian Weather Lab - Narodmon Fetcher
Fetches the ground-truth reading of a single Narodmon sensor.

Response shape (sensorsValues):
    {"sensors": [{"id": 37687, "value": -3.4, "time": 1760680800, ...}]}
Error responses carry {"error": "...", "errno": N} instead.
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx

from config import LOCATION, NARODMON_KEY, NARODMON_URL, NARODMON_UUID, SENSOR_MAX_AGE_MINUTES
from collector.http_client import fetch_json
from core.errors import UpstreamFatal
from core.models import SensorSample

logger = logging.getLogger("narodmon_fetcher")

SOURCE = "narodmon"


async def fetch_sensor(client: httpx.AsyncClient, sensor_id: str = LOCATION.sensor_id) -> Any:
    """Fetch the raw sensorsValues payload."""
    params = {
        "cmd": "sensorsValues",
        "sensors": sensor_id,
        "uuid": NARODMON_UUID,
        "api_key": NARODMON_KEY,
    }
    return await fetch_json(client, NARODMON_URL, source=SOURCE, params=params)


def _parse_observed_at(raw: Any) -> Optional[datetime]:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(raw, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _parse_online_flag(raw: Any) -> Optional[bool]:
    if raw is None:
        return None
    if isinstance(raw, str):
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    return bool(raw)


def parse_sensor_payload(
    raw: Any,
    now: Optional[datetime] = None,
    max_age_minutes: int = SENSOR_MAX_AGE_MINUTES,
) -> SensorSample:
    """
    Turn a sensorsValues payload into a SensorSample.

    The device counts as offline when the payload says so explicitly
    ("online": 0 on the sensor or at top level) or, lacking a flag, when the
    reading is older than `max_age_minutes` (0 disables the age check).

    Raises:
        UpstreamFatal: If the payload carries no usable numeric value
    """
    if not isinstance(raw, dict):
        raise UpstreamFatal(SOURCE, "payload is not a JSON object")
    if raw.get("error"):
        raise UpstreamFatal(SOURCE, f"API error: {raw.get('error')}")

    sensors = raw.get("sensors")
    if not isinstance(sensors, list) or not sensors or not isinstance(sensors[0], dict):
        raise UpstreamFatal(SOURCE, "sensor data unavailable")
    entry = sensors[0]

    value = entry.get("value")
    try:
        value = float(value) if value is not None and not isinstance(value, bool) else None
    except (TypeError, ValueError):
        value = None
    if value is None or not math.isfinite(value):
        raise UpstreamFatal(SOURCE, f"unusable sensor value: {entry.get('value')!r}")

    observed_at = _parse_observed_at(entry.get("time"))

    online = _parse_online_flag(entry.get("online"))
    if online is None:
        online = _parse_online_flag(raw.get("online"))
    if online is None:
        online = True
        if max_age_minutes > 0 and observed_at is not None:
            now = now or datetime.now(timezone.utc)
            age = now - observed_at
            if age > timedelta(minutes=max_age_minutes):
                logger.warning("Sensor reading is %.0f min old, treating device as offline", age.total_seconds() / 60)
                online = False

    return SensorSample(
        value=value,
        online=online,
        observed_at=observed_at,
        sensor_id=str(entry.get("id", LOCATION.sensor_id)),
    )
