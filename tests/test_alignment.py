from datetime import datetime, timedelta, timezone
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.alignment import (
    align_provider_a,
    align_provider_b,
    extract_forecast_a,
    extract_forecast_b,
    parse_open_meteo_payload,
    parse_yandex_payload,
)

UTC = timezone.utc
HORIZON = datetime(2026, 10, 17, 19, 0, tzinfo=UTC)


def _ts(dt: datetime) -> int:
    return int(dt.timestamp())


def _yandex_payload(entries_by_run):
    return {
        "now": _ts(HORIZON) - 12 * 3600,
        "forecasts": [
            {
                "date": f"2026-10-{17 + i}",
                "hours": [{"hour": str(j), "hour_ts": ts, "temp": temp} for j, (ts, temp) in enumerate(entries)],
            }
            for i, entries in enumerate(entries_by_run)
        ],
    }


def _open_meteo_payload(tz_name, pairs):
    return {
        "latitude": 43.25,
        "longitude": 76.875,
        "timezone": tz_name,
        "hourly_units": {"time": "iso8601", "temperature_2m": "°C"},
        "hourly": {
            "time": [key for key, _ in pairs],
            "temperature_2m": [temp for _, temp in pairs],
        },
    }


# ---------------------------------------------------------------------------
# Provider A (epoch-indexed)
# ---------------------------------------------------------------------------

def test_provider_a_returns_exact_match():
    raw = _yandex_payload([
        [(_ts(HORIZON - timedelta(hours=1)), 5), (_ts(HORIZON), 7), (_ts(HORIZON + timedelta(hours=1)), 9)],
    ])

    assert extract_forecast_a(raw, HORIZON) == 7.0


def test_provider_a_first_run_in_payload_order_wins():
    raw = _yandex_payload([
        [(_ts(HORIZON), 3)],
        [(_ts(HORIZON), 4)],
    ])

    assert extract_forecast_a(raw, HORIZON) == 3.0


def test_provider_a_scans_later_runs():
    raw = _yandex_payload([
        [(_ts(HORIZON - timedelta(hours=5)), 1)],
        [(_ts(HORIZON), -2.5)],
    ])

    assert extract_forecast_a(raw, HORIZON) == -2.5


def test_provider_a_off_by_one_hour_yields_none():
    raw = _yandex_payload([
        [(_ts(HORIZON - timedelta(hours=1)), 5), (_ts(HORIZON + timedelta(hours=1)), 9)],
    ])

    assert extract_forecast_a(raw, HORIZON) is None


def test_provider_a_off_by_one_second_yields_none():
    raw = _yandex_payload([[(_ts(HORIZON) + 1, 5)]])

    assert extract_forecast_a(raw, HORIZON) is None


def test_provider_a_matched_entry_without_temp_yields_none():
    raw = {"forecasts": [{"hours": [{"hour_ts": _ts(HORIZON)}]}]}

    assert extract_forecast_a(raw, HORIZON) is None


def test_provider_a_fails_closed_on_malformed_payloads():
    for raw in (None, [], "oops", {}, {"forecasts": None}, {"forecasts": [None, {"hours": "x"}]}):
        assert extract_forecast_a(raw, HORIZON) is None


def test_parse_yandex_payload_skips_bad_entries():
    raw = {
        "forecasts": [
            {"date": "2026-10-17", "hours": [
                {"hour_ts": "1760727600", "temp": 1},
                {"hour_ts": True, "temp": 2},
                {"hour_ts": _ts(HORIZON), "temp": "6"},
            ]},
        ]
    }
    payload = parse_yandex_payload(raw)

    assert len(payload.runs) == 1
    assert payload.runs[0].date == "2026-10-17"
    assert [h.hour_ts for h in payload.runs[0].hours] == [_ts(HORIZON)]
    assert align_provider_a(payload, HORIZON) == 6.0


def test_align_provider_a_accepts_missing_payload():
    assert align_provider_a(None, HORIZON) is None


# ---------------------------------------------------------------------------
# Provider B (local-string-indexed)
# ---------------------------------------------------------------------------

def test_provider_b_returns_exact_local_hour_match():
    # 19:00 UTC == 04:00 next day in Tokyo
    raw = _open_meteo_payload("Asia/Tokyo", [
        ("2026-10-18T03:00", 10.0),
        ("2026-10-18T04:00", 11.5),
        ("2026-10-18T05:00", 12.0),
    ])

    assert extract_forecast_b(raw, HORIZON, "Asia/Tokyo") == 11.5


def test_provider_b_one_hour_zone_mismatch_yields_none():
    # Keys shifted by one hour, as if the provider applied a different UTC offset
    raw = _open_meteo_payload("Asia/Tokyo", [
        ("2026-10-18T03:00", 10.0),
        ("2026-10-18T05:00", 12.0),
    ])

    assert extract_forecast_b(raw, HORIZON, "Asia/Tokyo") is None


def test_provider_b_key_rendered_in_wrong_zone_does_not_match():
    raw = _open_meteo_payload("UTC", [("2026-10-17T19:00", 8.0)])

    assert extract_forecast_b(raw, HORIZON, "Asia/Tokyo") is None
    assert extract_forecast_b(raw, HORIZON, "UTC") == 8.0


def test_provider_b_null_temperature_and_short_arrays_yield_none():
    raw = {
        "timezone": "UTC",
        "hourly": {
            "time": ["2026-10-17T18:00", "2026-10-17T19:00", "2026-10-17T20:00"],
            "temperature_2m": [1.0, None],
        },
    }
    assert extract_forecast_b(raw, HORIZON, "UTC") is None

    raw["hourly"]["time"] = ["2026-10-17T18:00", "2026-10-17T20:00", "2026-10-17T19:00"]
    assert extract_forecast_b(raw, HORIZON, "UTC") is None


def test_provider_b_fails_closed_on_malformed_payloads():
    for raw in (None, {}, {"hourly": []}, {"hourly": {"time": "x", "temperature_2m": []}}):
        assert extract_forecast_b(raw, HORIZON, "UTC") is None


def test_provider_b_unknown_timezone_yields_none():
    payload = parse_open_meteo_payload(_open_meteo_payload("UTC", [("2026-10-17T19:00", 8.0)]))

    assert align_provider_b(payload, HORIZON, "Mars/Olympus_Mons") is None
