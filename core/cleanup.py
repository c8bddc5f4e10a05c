"""
Meridian Weather Lab - Retroactive Cleanup
Removes stale repeats left behind by an unresponsive sensor.
"""

import logging

import database
from config import ACTUAL_FIELD, CLEANUP_WINDOW
from core.qc import QualityControl

logger = logging.getLogger("cleanup")


def retroactive_cleanup(window: int = CLEANUP_WINDOW) -> int:
    """
    Delete carried-over duplicate readings among the most recent actuals.

    The `window` most recent records with an actual value are re-sorted
    oldest to newest; within each run of identical consecutive values the
    first record is kept and the rest are deleted.

    Returns:
        Number of deleted records (0 is a normal outcome)
    """
    recent = database.query_recent(window, ACTUAL_FIELD)
    chronological = sorted(recent, key=lambda rec: rec["target_time"])

    stale_ids = QualityControl.find_stale_repeats(chronological)
    if not stale_ids:
        logger.info("Cleanup: no stale repeats in last %d readings", len(chronological))
        return 0

    deleted = database.delete_by_ids(stale_ids)
    logger.info("Cleanup: deleted %d stale repeat(s) out of %d readings", deleted, len(chronological))
    return deleted
