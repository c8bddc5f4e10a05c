"""
Meridian Weather Lab - Open-Meteo Fetcher (provider B)
Fetches the hourly temperature_2m curve rendered in a fixed named timezone.
"""

import logging
from typing import Any

import httpx

from config import LOCATION, OPEN_METEO_MODEL, OPEN_METEO_TIMEZONE, OPEN_METEO_URL
from collector.http_client import fetch_json

logger = logging.getLogger("open_meteo_fetcher")

SOURCE = "open_meteo"


async def fetch_provider_b(client: httpx.AsyncClient) -> Any:
    """Fetch the raw hourly payload for today and tomorrow."""
    params = {
        "latitude": LOCATION.latitude,
        "longitude": LOCATION.longitude,
        "hourly": "temperature_2m",
        "forecast_days": 2,
        # Explicit zone so hour keys match local_hour_key(..., OPEN_METEO_TIMEZONE)
        "timezone": OPEN_METEO_TIMEZONE,
    }
    if OPEN_METEO_MODEL:
        params["models"] = OPEN_METEO_MODEL
    logger.debug("Requesting Open-Meteo %s forecast in %s", OPEN_METEO_MODEL or "default", OPEN_METEO_TIMEZONE)
    return await fetch_json(client, OPEN_METEO_URL, source=SOURCE, params=params)
