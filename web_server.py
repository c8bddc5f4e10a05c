from __future__ import annotations

# Load environment variables FIRST (before any other imports)
from dotenv import load_dotenv
load_dotenv()

import asyncio
import hmac
import logging
from contextlib import asynccontextmanager, suppress
from typing import Dict, List, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import database
from collector.http_client import make_client
from config import ACCURACY_DAYS, CHART_HOURS, COLLECT_UUID, LOCATION
from core.accuracy import build_dashboard_summary
from core.clock import parse_cutoff
from core.errors import AuthError, MeridianError, MethodError, StorageError, UpstreamFatal, ValidationError
from core.pipeline import run_collection_cycle

# Silence verbose loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logger = logging.getLogger("web_server")

# Every verb is routed to the handlers so the secret is checked before the verb
ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]

RETENTION_INTERVAL_SECONDS = 6 * 3600

_http_client: Optional[httpx.AsyncClient] = None


async def retention_loop():
    """Purge records past the retention horizon a few times a day."""
    while True:
        try:
            await asyncio.to_thread(database.purge_expired)
        except StorageError as e:
            logger.error("Retention purge failed: %s", e)
        except Exception:
            logger.exception("Retention purge crashed")
        await asyncio.sleep(RETENTION_INTERVAL_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise the store once and share one httpx client for the process."""
    global _http_client
    database.init_database()
    _http_client = make_client()
    retention_task = asyncio.create_task(retention_loop())
    logger.info("Web server ready for %s", LOCATION.name)
    yield
    retention_task.cancel()
    with suppress(asyncio.CancelledError):
        await retention_task
    await _http_client.aclose()
    _http_client = None


app = FastAPI(
    title="Meridian Weather Lab",
    description="Hourly sensor vs. forecast reconciliation for a single location.",
    version="1.0.0",
    lifespan=lifespan,
)


# ============================================================================
# RESPONSE MODELS
# ============================================================================

class CollectResponse(BaseModel):
    success: bool
    actual: Optional[float]
    forecast_A: Optional[float]
    forecast_B: Optional[float]
    current_time: str
    target_time: str
    sensor_stuck: bool
    sensor_online: bool
    sensor_status: str
    actual_written: bool
    forecast_errors: Dict[str, str]
    cleaned_up: int
    flags: List[str]


class CleanupResponse(BaseModel):
    success: bool
    deletedCount: int
    message: str


class IndexInfo(BaseModel):
    name: str
    unique: bool
    origin: str


class CleanupIndexesResponse(BaseModel):
    success: bool
    message: str
    indexes: List[IndexInfo]


# ============================================================================
# REQUEST GUARDS & ERROR MAPPING
# ============================================================================

def _check_request(request: Request, uuid: Optional[str], method: str) -> None:
    """Reject before any work: secret first, then the verb."""
    if not COLLECT_UUID or not uuid:
        raise AuthError("Invalid UUID")
    # compare_digest rejects non-ASCII str, so compare the encoded bytes
    if not hmac.compare_digest(str(uuid).encode("utf-8"), COLLECT_UUID.encode("utf-8")):
        raise AuthError("Invalid UUID")
    if request.method != method:
        raise MethodError("Method not allowed")


@app.exception_handler(MeridianError)
async def meridian_error_handler(request: Request, exc: MeridianError):
    content = {"error": str(exc)}
    if isinstance(exc, ValidationError) and exc.details:
        content["details"] = exc.details
    elif isinstance(exc, UpstreamFatal):
        content = {"error": "Sensor data unavailable", "details": str(exc)}
    elif isinstance(exc, StorageError):
        content = {"error": "Storage error", "details": str(exc)}
    return JSONResponse(status_code=exc.status_code, content=content)


# ============================================================================
# ROUTES
# ============================================================================

@app.api_route("/collect", methods=ALL_METHODS, response_model=CollectResponse)
async def collect(request: Request, uuid: Optional[str] = None):
    """Run one ingestion cycle."""
    _check_request(request, uuid, "POST")
    try:
        result = await run_collection_cycle(client=_http_client)
    except MeridianError:
        raise
    except Exception as e:
        logger.exception("Collection cycle crashed")
        return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(e)})
    return result.to_dict()


@app.api_route("/cleanup", methods=ALL_METHODS, response_model=CleanupResponse)
async def cleanup(request: Request, uuid: Optional[str] = None, before: Optional[str] = None):
    """Delete records before a date, or every record when no date is given."""
    _check_request(request, uuid, "DELETE")

    cutoff = None
    if before is not None:
        try:
            cutoff = parse_cutoff(before)
        except ValueError as e:
            raise ValidationError("Invalid date format. Use YYYY-MM-DD or ISO 8601.", details=str(e)) from e

    deleted = await asyncio.to_thread(database.delete_range, cutoff)
    logger.info("Maintenance cleanup removed %d record(s) (before=%s)", deleted, before)
    return {
        "success": True,
        "deletedCount": deleted,
        "message": f"Deleted records before {before}" if before else "Deleted all records",
    }


@app.api_route("/cleanup-indexes", methods=ALL_METHODS, response_model=CleanupIndexesResponse)
async def cleanup_indexes(request: Request, uuid: Optional[str] = None):
    """Drop and recreate the readings table indexes."""
    _check_request(request, uuid, "POST")
    indexes = await asyncio.to_thread(database.rebuild_indexes)
    return {"success": True, "message": "Indexes rebuilt", "indexes": indexes}


@app.api_route("/api/dashboard", methods=ALL_METHODS)
async def dashboard_data(request: Request, uuid: Optional[str] = None):
    """Chart series for the last day, the current hour and 30-day accuracy."""
    _check_request(request, uuid, "GET")
    chart, current, accuracy = await asyncio.gather(
        asyncio.to_thread(database.get_temperature_data, CHART_HOURS),
        asyncio.to_thread(database.get_current_hour_data),
        asyncio.to_thread(database.get_accuracy_data, ACCURACY_DAYS),
    )
    summary = build_dashboard_summary(chart, current, accuracy, LOCATION.timezone)
    summary["location"] = {
        "name": LOCATION.name,
        "latitude": LOCATION.latitude,
        "longitude": LOCATION.longitude,
        "timezone": LOCATION.timezone,
    }
    return summary


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    uvicorn.run(app, host="0.0.0.0", port=8000)
