"""
Meridian Weather Lab - Forecast Aligner

Each provider encodes forecast time differently:

  Yandex (provider A)      runs of hourly entries stamped with epoch seconds
  Open-Meteo (provider B)  one flat hourly list keyed by local 'YYYY-MM-DDTHH:00'

Parsing and extraction fail closed: a missing or malformed path yields None,
never an exception. Matching is exact; a neighbouring hour is never returned.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional
from zoneinfo import ZoneInfoNotFoundError

from core.clock import epoch_seconds, local_hour_key

logger = logging.getLogger("alignment")


def _finite_or_none(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


# ============================================================================
# PROVIDER A - YANDEX (epoch-indexed)
# ============================================================================

@dataclass
class YandexHour:
    hour_ts: int
    temp: Optional[float]


@dataclass
class YandexRun:
    """One forecast day ('forecasts[i]') with its hourly entries in order."""
    date: Optional[str]
    hours: List[YandexHour] = field(default_factory=list)


@dataclass
class YandexPayload:
    runs: List[YandexRun] = field(default_factory=list)


def parse_yandex_payload(raw: Any) -> Optional[YandexPayload]:
    """Build a YandexPayload from the raw JSON body; None if it has no forecasts list."""
    if not isinstance(raw, dict):
        return None
    forecasts = raw.get("forecasts")
    if not isinstance(forecasts, list):
        return None

    runs = []
    for forecast in forecasts:
        if not isinstance(forecast, dict):
            continue
        hours = []
        for entry in forecast.get("hours") or []:
            if not isinstance(entry, dict):
                continue
            ts = entry.get("hour_ts")
            if isinstance(ts, bool) or not isinstance(ts, (int, float)):
                continue
            if isinstance(ts, float) and not ts.is_integer():
                continue
            hours.append(YandexHour(hour_ts=int(ts), temp=_finite_or_none(entry.get("temp"))))
        date = forecast.get("date")
        runs.append(YandexRun(date=date if isinstance(date, str) else None, hours=hours))
    return YandexPayload(runs=runs)


def align_provider_a(payload: Optional[YandexPayload], horizon: datetime) -> Optional[float]:
    """
    Forecast value for the horizon bucket from a Yandex payload.

    Runs are scanned in payload order and hours in run order; the first entry
    whose timestamp equals the bucket's epoch seconds wins.
    """
    if payload is None:
        return None
    target_ts = epoch_seconds(horizon)
    for run in payload.runs:
        for hour in run.hours:
            if hour.hour_ts == target_ts:
                logger.debug("Yandex match for %d in run %s: %s", target_ts, run.date, hour.temp)
                return hour.temp
    logger.debug("Yandex payload has no hour %d (runs: %s)", target_ts, [run.date for run in payload.runs])
    return None


def extract_forecast_a(raw: Any, horizon: datetime) -> Optional[float]:
    return align_provider_a(parse_yandex_payload(raw), horizon)


# ============================================================================
# PROVIDER B - OPEN-METEO (local-string-indexed)
# ============================================================================

@dataclass
class OpenMeteoPayload:
    timezone: Optional[str]
    times: List[str] = field(default_factory=list)
    temperatures: List[Optional[float]] = field(default_factory=list)


def parse_open_meteo_payload(raw: Any) -> Optional[OpenMeteoPayload]:
    """Build an OpenMeteoPayload from the raw JSON body; None without an hourly block."""
    if not isinstance(raw, dict):
        return None
    hourly = raw.get("hourly")
    if not isinstance(hourly, dict):
        return None
    times = hourly.get("time")
    temps = hourly.get("temperature_2m")
    if not isinstance(times, list) or not isinstance(temps, list):
        return None

    tz_name = raw.get("timezone")
    return OpenMeteoPayload(
        timezone=tz_name if isinstance(tz_name, str) else None,
        times=[t if isinstance(t, str) else "" for t in times],
        temperatures=[_finite_or_none(v) for v in temps],
    )


def align_provider_b(
    payload: Optional[OpenMeteoPayload],
    horizon: datetime,
    tz_name: str,
) -> Optional[float]:
    """
    Forecast value for the horizon bucket from an Open-Meteo payload.

    The bucket is rendered as a wall-clock hour string in `tz_name` and must
    equal an entry of `hourly.time` exactly.
    """
    if payload is None:
        return None
    if payload.timezone and payload.timezone != tz_name:
        # Keys would be rendered in a different zone; surfaces as a miss below
        logger.debug("Open-Meteo timezone %s differs from expected %s", payload.timezone, tz_name)

    try:
        key = local_hour_key(horizon, tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.warning("Cannot render hour key in %s: %s", tz_name, e)
        return None
    try:
        idx = payload.times.index(key)
    except ValueError:
        return None
    if idx >= len(payload.temperatures):
        return None
    return payload.temperatures[idx]


def extract_forecast_b(raw: Any, horizon: datetime, tz_name: str) -> Optional[float]:
    return align_provider_b(parse_open_meteo_payload(raw), horizon, tz_name)
