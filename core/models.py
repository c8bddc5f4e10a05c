from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from config import ACTUAL_FIELD, FORECAST_A_FIELD, FORECAST_B_FIELD


@dataclass
class SensorSample:
    """
    One ground-truth reading as reported by the sensor network.
    Not persisted on its own; only `value` may end up in a record's `actual`.
    """
    value: Optional[float]
    online: bool = True
    observed_at: Optional[datetime] = None
    sensor_id: str = "UNKNOWN"


@dataclass
class FetchOutcome:
    """Result of one upstream call: a parsed payload or a failure reason."""
    source: str
    ok: bool
    payload: Any = None
    error: Optional[str] = None
    latency_ms: Optional[float] = None
    exc: Optional[BaseException] = field(default=None, repr=False, compare=False)

    @classmethod
    def success(cls, source: str, payload: Any, latency_ms: Optional[float] = None) -> "FetchOutcome":
        return cls(source=source, ok=True, payload=payload, latency_ms=latency_ms)

    @classmethod
    def failure(
        cls,
        source: str,
        error: str,
        latency_ms: Optional[float] = None,
        exc: Optional[BaseException] = None,
    ) -> "FetchOutcome":
        return cls(source=source, ok=False, error=error, latency_ms=latency_ms, exc=exc)


@dataclass
class CollectionResult:
    """Outcome of one ingestion cycle, as reported to the caller."""
    current_time: datetime
    target_time: datetime
    actual: Optional[float]
    forecast_a: Optional[float]
    forecast_b: Optional[float]
    sensor_status: str               # HEALTHY | STUCK | OFFLINE
    actual_written: bool
    forecast_errors: Dict[str, str] = field(default_factory=dict)
    cleaned_up: int = 0
    flags: List[str] = field(default_factory=list)

    @property
    def sensor_stuck(self) -> bool:
        return self.sensor_status == "STUCK"

    @property
    def sensor_online(self) -> bool:
        return self.sensor_status != "OFFLINE"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            ACTUAL_FIELD: self.actual,
            FORECAST_A_FIELD: self.forecast_a,
            FORECAST_B_FIELD: self.forecast_b,
            "current_time": self.current_time.isoformat(),
            "target_time": self.target_time.isoformat(),
            "sensor_stuck": self.sensor_stuck,
            "sensor_online": self.sensor_online,
            "sensor_status": self.sensor_status,
            "actual_written": self.actual_written,
            "forecast_errors": dict(self.forecast_errors),
            "cleaned_up": self.cleaned_up,
            "flags": list(self.flags),
        }
