"""
Meridian Weather Lab - Canonical Clock

Every reading is keyed by an hourly UTC bucket. Local-time views (the
Open-Meteo hour key, dashboard labels) are rendered here as explicit
conversions of a bucket and never feed back into the bucket itself.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from config import FORECAST_HORIZON_HOURS

UTC = timezone.utc


def current_bucket(now: Optional[datetime] = None) -> datetime:
    """
    Floor an instant to its canonical hourly bucket.

    Args:
        now: Instant to floor (defaults to the current time). Naive values
            are interpreted as UTC.

    Returns:
        Timezone-aware UTC datetime with minutes, seconds and microseconds zeroed
    """
    if now is None:
        now = datetime.now(UTC)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(UTC).replace(minute=0, second=0, microsecond=0)


def horizon_bucket(bucket: datetime, hours: int = FORECAST_HORIZON_HOURS) -> datetime:
    """The hour a forecast collected in `bucket` targets."""
    return bucket + timedelta(hours=hours)


def epoch_seconds(bucket: datetime) -> int:
    if bucket.tzinfo is None:
        bucket = bucket.replace(tzinfo=UTC)
    return int(bucket.timestamp())


def bucket_key(bucket: datetime) -> str:
    """Storage key for a bucket (ISO 8601, sorts chronologically)."""
    return current_bucket(bucket).isoformat()


def parse_bucket_key(key: str) -> datetime:
    return datetime.fromisoformat(key).astimezone(UTC)


def local_hour_key(bucket: datetime, tz_name: str) -> str:
    """Render a bucket as the 'YYYY-MM-DDTHH:00' wall-clock hour of a named zone."""
    local = bucket.astimezone(ZoneInfo(tz_name))
    return local.strftime("%Y-%m-%dT%H:00")


def format_display_time(bucket: datetime, tz_name: str) -> str:
    return bucket.astimezone(ZoneInfo(tz_name)).strftime("%H:%M")


def parse_cutoff(raw: str) -> datetime:
    """
    Parse a maintenance cutoff ('YYYY-MM-DD' or full ISO 8601).

    Date-only and naive values are taken as UTC.

    Raises:
        ValueError: If the string is not a recognisable date
    """
    text = str(raw or "").strip()
    if not text:
        raise ValueError("empty date")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)
