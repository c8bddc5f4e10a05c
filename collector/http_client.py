"""
Meridian Weather Lab - HTTP helper
JSON GET with a per-call timeout and bounded exponential-backoff retry.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from config import (
    HTTP_MAX_RETRIES,
    HTTP_RETRY_BACKOFF_SECONDS,
    HTTP_RETRY_STATUSES,
    HTTP_TIMEOUT_SECONDS,
)

logger = logging.getLogger("http_client")


def make_client(timeout: float = HTTP_TIMEOUT_SECONDS) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout, follow_redirects=True)


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    source: str,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    max_retries: int = HTTP_MAX_RETRIES,
    backoff_seconds: float = HTTP_RETRY_BACKOFF_SECONDS,
) -> Any:
    """
    GET `url` and decode the JSON body.

    Transport errors (timeouts included), 429 and 5xx are retried up to
    `max_retries` times with delays of backoff, 2*backoff, 4*backoff...

    Raises:
        httpx.HTTPError: On the last failed attempt or any other HTTP error status
        ValueError: If the body is not valid JSON
    """
    last_error: Optional[Exception] = None

    for attempt in range(max_retries + 1):
        try:
            response = await client.get(url, params=params, headers=headers)
        except httpx.TransportError as e:
            last_error = e
        else:
            if response.status_code not in HTTP_RETRY_STATUSES:
                response.raise_for_status()
                return response.json()
            last_error = httpx.HTTPStatusError(
                f"HTTP {response.status_code} from {source}",
                request=response.request,
                response=response,
            )

        if attempt < max_retries:
            delay = backoff_seconds * (2 ** attempt)
            logger.warning(
                "[%s] attempt %d/%d failed (%s), retrying in %.1fs",
                source, attempt + 1, max_retries + 1, last_error, delay,
            )
            await asyncio.sleep(delay)

    raise last_error
