"""
Meridian Weather Lab - Accuracy & Interpolation

- MAE per forecast source over a trailing window
- Linear gap filling of a series for display
- Dashboard summary (chart series, current hour, 30-day accuracy)

All functions work on plain record dicts as returned by the database module.
"""

import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from config import ACTUAL_FIELD, FORECAST_SOURCES, READING_FIELDS
from core.clock import format_display_time, parse_bucket_key


def is_valid_value(value: Any) -> bool:
    """True for a finite number (None, NaN, inf and non-numbers are invalid)."""
    if value is None or isinstance(value, bool):
        return False
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def absolute_error(record: Dict[str, Any], forecast_field: str) -> Optional[float]:
    actual = record.get(ACTUAL_FIELD)
    forecast = record.get(forecast_field)
    if not (is_valid_value(actual) and is_valid_value(forecast)):
        return None
    return abs(float(forecast) - float(actual))


def compute_mae(records: Sequence[Dict[str, Any]], forecast_field: str) -> Optional[float]:
    """
    Mean absolute error of a forecast field against `actual`.

    Lower is better.

    Args:
        records: Reading records
        forecast_field: Field holding the forecast to score

    Returns:
        MAE over records where both values are valid, or None if there are none
    """
    errors = [e for e in (absolute_error(r, forecast_field) for r in records) if e is not None]
    if not errors:
        return None
    return sum(errors) / len(errors)


def interpolate_gaps(series: Sequence[Dict[str, Any]], field: str) -> List[Dict[str, Any]]:
    """
    Fill invalid values of `field` by linear interpolation between the
    nearest valid neighbours, weighted by position.

    Leading and trailing gaps are left as they are (no extrapolation).
    Returns a new list of copied records; the input is not modified.
    """
    result = [dict(record) for record in series]
    valid = [is_valid_value(record.get(field)) for record in result]

    for i in range(len(result)):
        if valid[i]:
            continue

        prev_idx = i - 1
        while prev_idx >= 0 and not valid[prev_idx]:
            prev_idx -= 1
        next_idx = i + 1
        while next_idx < len(result) and not valid[next_idx]:
            next_idx += 1

        if prev_idx < 0 or next_idx >= len(result):
            continue

        prev_value = float(result[prev_idx][field])
        next_value = float(result[next_idx][field])
        ratio = (i - prev_idx) / (next_idx - prev_idx)
        result[i][field] = prev_value + (next_value - prev_value) * ratio

    return result


def build_dashboard_summary(
    chart_records: Sequence[Dict[str, Any]],
    current_record: Optional[Dict[str, Any]],
    accuracy_records: Sequence[Dict[str, Any]],
    tz_name: str,
) -> Dict[str, Any]:
    """
    Assemble the dashboard data: gap-filled chart series, the current hour
    with per-source error, and MAE per source over the accuracy window.
    """
    labels = []
    for record in chart_records:
        target = record.get("target_time")
        if isinstance(target, str):
            target = parse_bucket_key(target)
        labels.append(format_display_time(target, tz_name) if isinstance(target, datetime) else None)

    series = {}
    has_data = {}
    for field in READING_FIELDS:
        filled = interpolate_gaps(chart_records, field)
        values = [r.get(field) if is_valid_value(r.get(field)) else None for r in filled]
        series[field] = values
        has_data[field] = any(v is not None for v in values)

    current = None
    if current_record:
        current = {
            "target_time": current_record.get("target_time"),
            ACTUAL_FIELD: current_record.get(ACTUAL_FIELD),
        }
        for forecast_field in FORECAST_SOURCES:
            current[forecast_field] = current_record.get(forecast_field)
            current[f"{forecast_field}_error"] = absolute_error(current_record, forecast_field)

    accuracy = {}
    for forecast_field, label in FORECAST_SOURCES.items():
        mae = compute_mae(accuracy_records, forecast_field)
        samples = sum(1 for r in accuracy_records if absolute_error(r, forecast_field) is not None)
        accuracy[forecast_field] = {"source": label, "mae": mae, "samples": samples}

    return {
        "labels": labels,
        "target_times": [r.get("target_time") for r in chart_records],
        "series": series,
        "has_data": has_data,
        "current": current,
        "accuracy": accuracy,
    }
