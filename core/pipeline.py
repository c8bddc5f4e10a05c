"""
Meridian Weather Lab - Ingestion Pipeline
One collection cycle: clock -> fetch -> quality guard / alignment -> store.

The sensor is the only fatal source: if it fails nothing is written. A
failing forecast provider only nulls its own field. Both store writes are
partial upserts on different buckets, so re-running a cycle converges to the
same records.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

import httpx

import database
from collector import SENSOR_KEY, collect_all_data, parse_sensor_payload
from config import ACTUAL_FIELD, FORECAST_A_FIELD, FORECAST_B_FIELD, OPEN_METEO_TIMEZONE
from core.alignment import extract_forecast_a, extract_forecast_b
from core.cleanup import retroactive_cleanup
from core.clock import UTC, current_bucket, horizon_bucket
from core.errors import UpstreamDegraded, UpstreamFatal
from core.models import CollectionResult, FetchOutcome
from core.qc import QualityControl

logger = logging.getLogger("pipeline")


def _resolve_forecast(
    field: str,
    outcome: FetchOutcome,
    extractor: Callable[[Any], Optional[float]],
) -> Tuple[Optional[float], Optional[str]]:
    """Aligned forecast value, or (None, reason) for a degraded provider."""
    try:
        if not outcome.ok:
            raise UpstreamDegraded(outcome.source, outcome.error or "fetch failed")
        value = extractor(outcome.payload)
        if value is None:
            raise UpstreamDegraded(outcome.source, "no forecast for target hour")
        return value, None
    except UpstreamDegraded as e:
        logger.warning("[%s] degraded forecast, storing null: %s", field, e)
        return None, e.reason


async def run_collection_cycle(
    now: Optional[datetime] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> CollectionResult:
    """
    Run one ingestion cycle.

    Args:
        now: Cycle instant (defaults to the current time)
        client: Shared HTTP client for the upstream calls

    Returns:
        CollectionResult describing what was stored

    Raises:
        UpstreamFatal: Sensor unavailable; nothing was written
        StorageError: The store rejected a read or write
    """
    now = now or datetime.now(UTC)
    bucket = current_bucket(now)
    target = horizon_bucket(bucket)
    logger.info("Collection cycle for %s (forecast target %s)", bucket.isoformat(), target.isoformat())

    outcomes = await collect_all_data(client)

    sensor_outcome = outcomes[SENSOR_KEY]
    if not sensor_outcome.ok:
        logger.error("Sensor fetch failed, aborting cycle: %s", sensor_outcome.error)
        raise UpstreamFatal(sensor_outcome.source, sensor_outcome.error or "fetch failed") from sensor_outcome.exc
    try:
        sample = parse_sensor_payload(sensor_outcome.payload, now=now)
    except UpstreamFatal as e:
        logger.error("Sensor payload unusable, aborting cycle: %s", e)
        raise

    forecast_errors: Dict[str, str] = {}
    forecast_a, error_a = _resolve_forecast(
        FORECAST_A_FIELD,
        outcomes[FORECAST_A_FIELD],
        lambda raw: extract_forecast_a(raw, target),
    )
    forecast_b, error_b = _resolve_forecast(
        FORECAST_B_FIELD,
        outcomes[FORECAST_B_FIELD],
        lambda raw: extract_forecast_b(raw, target, OPEN_METEO_TIMEZONE),
    )
    if error_a:
        forecast_errors[FORECAST_A_FIELD] = error_a
    if error_b:
        forecast_errors[FORECAST_B_FIELD] = error_b

    recent_actuals = await asyncio.to_thread(database.get_recent_actuals, QualityControl.STUCK_RUN_LENGTH - 1)
    verdict = QualityControl.classify_sample(sample, recent_actuals)

    cleaned_up = 0
    if verdict.run_cleanup:
        logger.warning("Sensor %s offline, running retroactive cleanup", sample.sensor_id)
        cleaned_up = await asyncio.to_thread(retroactive_cleanup)
    elif verdict.status == "STUCK":
        logger.warning("Sensor %s stuck at %.1f, skipping actual write", sample.sensor_id, sample.value)

    writes = [
        asyncio.to_thread(
            database.upsert_partial,
            target,
            {FORECAST_A_FIELD: forecast_a, FORECAST_B_FIELD: forecast_b},
        )
    ]
    if verdict.write_actual:
        writes.append(asyncio.to_thread(database.upsert_partial, bucket, {ACTUAL_FIELD: sample.value}))
    await asyncio.gather(*writes)

    result = CollectionResult(
        current_time=bucket,
        target_time=target,
        actual=sample.value,
        forecast_a=forecast_a,
        forecast_b=forecast_b,
        sensor_status=verdict.status,
        actual_written=verdict.write_actual,
        forecast_errors=forecast_errors,
        cleaned_up=cleaned_up,
        flags=list(verdict.flags),
    )
    logger.info(
        "Cycle done: actual=%s (%s) %s=%s %s=%s",
        sample.value, verdict.status, FORECAST_A_FIELD, forecast_a, FORECAST_B_FIELD, forecast_b,
    )
    return result
