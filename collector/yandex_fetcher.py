"""
Meridian Weather Lab - Yandex Weather Fetcher (provider A)
Fetches the v2 forecast; hours are stamped with epoch seconds ('hour_ts').
"""

import logging
from typing import Any

import httpx

from config import LOCATION, YANDEX_FORECAST_URL, YANDEX_KEY
from collector.http_client import fetch_json

logger = logging.getLogger("yandex_fetcher")

SOURCE = "yandex"


async def fetch_provider_a(client: httpx.AsyncClient) -> Any:
    """Fetch the raw forecast payload (today and tomorrow, hourly)."""
    params = {
        "lat": LOCATION.latitude,
        "lon": LOCATION.longitude,
        "limit": 2,
        "hours": "true",
    }
    headers = {"X-Yandex-Weather-Key": YANDEX_KEY}
    logger.debug("Requesting Yandex forecast for (%.2f, %.2f)", LOCATION.latitude, LOCATION.longitude)
    return await fetch_json(client, YANDEX_FORECAST_URL, source=SOURCE, params=params, headers=headers)
