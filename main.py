# Meridian Weather Lab - Main Orchestrator
# Scheduler for hourly collection cycles and retention maintenance.

# Load environment variables FIRST (before any other imports)
from dotenv import load_dotenv
load_dotenv()

import asyncio
import logging
import os
import sys
import time

import schedule

import database
from config import ACCURACY_DAYS, COLLECTION_MINUTE, FORECAST_SOURCES, LOCATION
from core.accuracy import compute_mae
from core.errors import MeridianError
from core.pipeline import run_collection_cycle

logger = logging.getLogger("main")


def run_collection() -> bool:
    """Run one collection cycle synchronously; failures are logged, not raised."""
    try:
        result = asyncio.run(run_collection_cycle())
    except MeridianError as e:
        logger.error("Collection cycle failed: %s", e)
        return False
    except Exception:
        logger.exception("Collection cycle crashed")
        return False
    if result.forecast_errors:
        logger.warning("Degraded forecasts: %s", result.forecast_errors)
    return True


def run_retention() -> int:
    try:
        return database.purge_expired()
    except MeridianError as e:
        logger.error("Retention purge failed: %s", e)
        return 0
    except Exception:
        logger.exception("Retention purge crashed")
        return 0


def generate_report(days: int = ACCURACY_DAYS) -> str:
    """One-line-per-source MAE report over the accuracy window."""
    records = database.get_accuracy_data(days)
    lines = [f"Forecast accuracy, last {days} days ({len(records)} readings):"]
    for field, label in FORECAST_SOURCES.items():
        mae = compute_mae(records, field)
        lines.append(f"  {label:<12} " + (f"MAE {mae:.2f} C" if mae is not None else "not enough data"))
    return "\n".join(lines)


def main():
    """Main entry point with scheduler."""
    import argparse

    parser = argparse.ArgumentParser(description="Meridian Weather Lab collector")
    parser.add_argument("--once", action="store_true", help="Run a single collection cycle and exit")
    parser.add_argument("--report", action="store_true", help="Print the accuracy report and exit")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    level = logging.DEBUG if args.debug else os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    database.init_database()

    if args.report:
        print(generate_report())
        return
    if args.once:
        sys.exit(0 if run_collection() else 1)

    logger.info("Collector started for %s (%.2f, %.2f)", LOCATION.name, LOCATION.latitude, LOCATION.longitude)

    # Run initial collection
    run_collection()

    schedule.every().hour.at(f":{COLLECTION_MINUTE:02d}").do(run_collection)
    schedule.every().day.at("03:30").do(run_retention)
    logger.info("Collection scheduled hourly at :%02d, retention daily at 03:30", COLLECTION_MINUTE)

    # Main loop
    try:
        while True:
            schedule.run_pending()
            time.sleep(30)
    except KeyboardInterrupt:
        logger.info("Stopping collector")
        print(generate_report())


if __name__ == "__main__":
    main()
