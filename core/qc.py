from typing import Any, Dict, List, Optional, Sequence
from dataclasses import dataclass, field

from config import ACTUAL_FIELD
from core.models import SensorSample


@dataclass
class SensorVerdict:
    status: str  # HEALTHY, STUCK, OFFLINE
    write_actual: bool
    run_cleanup: bool = False
    flags: List[str] = field(default_factory=list)


class QualityControl:
    """
    Quality Control (QC) rules for the ground-truth sensor.

    Health is derived every cycle from the incoming sample and the stored
    history; nothing about it is persisted. Only the write of the `actual`
    field depends on the verdict, forecasts are always processed.
    """

    # Identical values in a row (including the incoming one) that mean "frozen"
    STUCK_RUN_LENGTH = 3

    @staticmethod
    def classify_sample(sample: SensorSample, recent_actuals: Sequence[Optional[float]]) -> SensorVerdict:
        """
        Classify the incoming sample.

        Args:
            sample: Current sensor sample
            recent_actuals: Stored actual values, most recent first

        Returns:
            SensorVerdict deciding whether `actual` is written this cycle
        """
        if not sample.online:
            return SensorVerdict("OFFLINE", write_actual=False, run_cleanup=True, flags=["SENSOR_OFFLINE"])

        history = list(recent_actuals[: QualityControl.STUCK_RUN_LENGTH - 1])
        if len(history) < QualityControl.STUCK_RUN_LENGTH - 1:
            return SensorVerdict("HEALTHY", write_actual=True, flags=["LOW_HISTORY"])

        # Exact equality: a frozen device repeats the same float verbatim
        if sample.value is not None and all(v == sample.value for v in history):
            return SensorVerdict("STUCK", write_actual=False, flags=[f"REPEATED_{QualityControl.STUCK_RUN_LENGTH}X"])

        return SensorVerdict("HEALTHY", write_actual=True)

    @staticmethod
    def find_stale_repeats(records: Sequence[Dict[str, Any]], field_name: str = ACTUAL_FIELD) -> List[Any]:
        """
        Ids of stale repeats in a chronologically ordered window.

        Every maximal run of two or more consecutive records sharing the same
        value contributes all of its members except the first. A run that
        reaches the last record is closed like any other.
        """
        stale_ids: List[Any] = []
        run_start = 0
        for i in range(1, len(records) + 1):
            if i < len(records) and records[i].get(field_name) == records[run_start].get(field_name):
                continue
            # records[run_start:i] is one maximal run
            if i - run_start >= 2:
                stale_ids.extend(rec.get("id") for rec in records[run_start + 1:i])
            run_start = i
        return stale_ids
