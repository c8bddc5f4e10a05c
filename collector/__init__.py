"""
Meridian Weather Lab - Collector Module
Concurrent fetch of the sensor reading and both forecast payloads.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional

import httpx

from config import FORECAST_A_FIELD, FORECAST_B_FIELD
from core.models import FetchOutcome
from .http_client import fetch_json, make_client
from .narodmon_fetcher import fetch_sensor, parse_sensor_payload
from .yandex_fetcher import fetch_provider_a
from .open_meteo_fetcher import fetch_provider_b

__all__ = [
    "fetch_json", "make_client",
    "fetch_sensor", "fetch_provider_a", "fetch_provider_b",
    "parse_sensor_payload",
    "collect_all_data",
    "SENSOR_KEY",
]

logger = logging.getLogger("collector")

SENSOR_KEY = "sensor"


async def _timed_fetch(
    source: str,
    fetcher: Callable[[httpx.AsyncClient], Awaitable],
    client: httpx.AsyncClient,
) -> FetchOutcome:
    """Run one fetcher and fold any exception into a failed outcome."""
    t0 = time.monotonic()
    try:
        payload = await fetcher(client)
    except Exception as e:
        elapsed_ms = round((time.monotonic() - t0) * 1000, 1)
        logger.warning("[%s] fetch failed after %.0f ms: %s", source, elapsed_ms, e)
        return FetchOutcome.failure(source, f"{type(e).__name__}: {e}", elapsed_ms, exc=e)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 1)
    return FetchOutcome.success(source, payload, elapsed_ms)


async def collect_all_data(client: Optional[httpx.AsyncClient] = None) -> Dict[str, FetchOutcome]:
    """
    Fetch the three upstreams concurrently.

    Each call fails independently; one failure never cancels or corrupts
    another.

    Args:
        client: Shared client (a temporary one is created when omitted)

    Returns:
        Outcome per source, keyed by SENSOR_KEY, FORECAST_A_FIELD, FORECAST_B_FIELD
    """
    if client is None:
        async with make_client() as owned:
            return await collect_all_data(owned)

    sensor, forecast_a, forecast_b = await asyncio.gather(
        _timed_fetch("narodmon", fetch_sensor, client),
        _timed_fetch("yandex", fetch_provider_a, client),
        _timed_fetch("open_meteo", fetch_provider_b, client),
    )
    return {
        SENSOR_KEY: sensor,
        FORECAST_A_FIELD: forecast_a,
        FORECAST_B_FIELD: forecast_b,
    }
