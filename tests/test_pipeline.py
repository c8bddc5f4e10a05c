import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
import sys

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import core.pipeline as pipeline
import database
from collector import SENSOR_KEY, collect_all_data
from core.errors import UpstreamFatal

UTC = timezone.utc
NOW = datetime(2026, 10, 17, 7, 23, tzinfo=UTC)
CURRENT = datetime(2026, 10, 17, 7, 0, tzinfo=UTC)
TARGET = datetime(2026, 10, 17, 19, 0, tzinfo=UTC)
# TARGET rendered in Asia/Tokyo (UTC+9, no DST)
TARGET_TOKYO_KEY = "2026-10-18T04:00"


@pytest.fixture(autouse=True)
def tokyo_provider_zone(monkeypatch):
    monkeypatch.setattr(pipeline, "OPEN_METEO_TIMEZONE", "Asia/Tokyo")


def sensor_body(value=13.5, online=None):
    sensor = {"id": 37687, "value": value, "time": int((NOW - timedelta(minutes=5)).timestamp())}
    if online is not None:
        sensor["online"] = online
    return {"sensors": [sensor]}


def yandex_body(temp=11.0, hour_ts=None):
    hour_ts = int(TARGET.timestamp()) if hour_ts is None else hour_ts
    return {
        "forecasts": [
            {"date": "2026-10-17", "hours": [
                {"hour": "18", "hour_ts": hour_ts - 3600, "temp": temp - 1},
                {"hour": "19", "hour_ts": hour_ts, "temp": temp},
            ]},
        ]
    }


def open_meteo_body(temp=12.0, key=TARGET_TOKYO_KEY):
    return {
        "timezone": "Asia/Tokyo",
        "hourly": {
            "time": ["2026-10-18T03:00", key],
            "temperature_2m": [temp - 1, temp],
        },
    }


def make_router(sensor=None, yandex=None, open_meteo=None):
    """MockTransport handler keyed by upstream host; a None body answers 404."""
    bodies = {
        "narodmon.ru": sensor,
        "api.weather.yandex.ru": yandex,
        "api.open-meteo.com": open_meteo,
    }
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.host)
        body = bodies[request.url.host]
        if body is None:
            return httpx.Response(404, json={"error": "not found"})
        return httpx.Response(200, json=body)

    handler.calls = calls
    return handler


def run_cycle(handler, now=NOW):
    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await pipeline.run_collection_cycle(now=now, client=client)

    return asyncio.run(_run())


def test_healthy_cycle_writes_actual_and_both_forecasts():
    handler = make_router(sensor_body(13.5), yandex_body(11.0), open_meteo_body(12.0))

    result = run_cycle(handler)

    assert sorted(handler.calls) == ["api.open-meteo.com", "api.weather.yandex.ru", "narodmon.ru"]
    assert result.current_time == CURRENT
    assert result.target_time == TARGET
    assert result.sensor_status == "HEALTHY"
    assert result.actual_written is True
    assert result.forecast_errors == {}

    current = database.get_record(CURRENT)
    assert current["actual"] == 13.5
    assert current["forecast_A"] is None

    target = database.get_record(TARGET)
    assert target["forecast_A"] == 11.0
    assert target["forecast_B"] == 12.0
    assert target["actual"] is None

    body = result.to_dict()
    assert body["success"] is True
    assert body["sensor_stuck"] is False
    assert body["sensor_online"] is True
    assert body["target_time"] == "2026-10-17T19:00:00+00:00"


def test_actual_lands_in_record_forecast_twelve_hours_earlier():
    # Forecast written 12 h ago for the current hour
    database.upsert_partial(CURRENT, {"forecast_A": 9.0, "forecast_B": 10.0})

    run_cycle(make_router(sensor_body(9.5), yandex_body(), open_meteo_body()))

    record = database.get_record(CURRENT)
    assert record["actual"] == 9.5
    assert record["forecast_A"] == 9.0
    assert record["forecast_B"] == 10.0


def test_sensor_failure_aborts_without_writes():
    with pytest.raises(UpstreamFatal):
        run_cycle(make_router(None, yandex_body(), open_meteo_body()))

    assert database.query_recent(10, None) == []


def test_unusable_sensor_value_aborts_without_writes():
    with pytest.raises(UpstreamFatal):
        run_cycle(make_router(sensor_body(value=None), yandex_body(), open_meteo_body()))

    assert database.query_recent(10, None) == []


def test_degraded_providers_store_null_but_keep_actual():
    handler = make_router(sensor_body(13.5), None, open_meteo_body(key="2026-10-18T05:00"))

    result = run_cycle(handler)

    assert result.forecast_a is None
    assert result.forecast_b is None
    assert set(result.forecast_errors) == {"forecast_A", "forecast_B"}
    assert database.get_record(CURRENT)["actual"] == 13.5
    target = database.get_record(TARGET)
    assert target is not None
    assert target["forecast_A"] is None and target["forecast_B"] is None


def test_one_provider_down_does_not_affect_the_other():
    result = run_cycle(make_router(sensor_body(), yandex_body(hour_ts=int(TARGET.timestamp()) + 7200), open_meteo_body(7.5)))

    assert result.forecast_a is None
    assert result.forecast_b == 7.5
    assert database.get_record(TARGET)["forecast_B"] == 7.5


def test_stuck_sensor_skips_actual_but_stores_forecasts():
    database.upsert_partial(CURRENT - timedelta(hours=2), {"actual": 10.0})
    database.upsert_partial(CURRENT - timedelta(hours=1), {"actual": 10.0})

    result = run_cycle(make_router(sensor_body(10.0), yandex_body(11.0), open_meteo_body(12.0)))

    assert result.sensor_status == "STUCK"
    assert result.to_dict()["sensor_stuck"] is True
    assert result.to_dict()["flags"] == ["REPEATED_3X"]
    assert result.actual_written is False
    assert result.actual == 10.0
    assert database.get_record(CURRENT) is None
    assert database.get_record(TARGET)["forecast_A"] == 11.0


def test_offline_sensor_triggers_cleanup():
    for offset, value in enumerate([10.0, 10.0, 12.0, 15.0, 15.0], start=-5):
        database.upsert_partial(CURRENT + timedelta(hours=offset), {"actual": value})

    result = run_cycle(make_router(sensor_body(15.0, online=0), yandex_body(), open_meteo_body()))

    assert result.sensor_status == "OFFLINE"
    assert result.to_dict()["sensor_online"] is False
    assert result.actual_written is False
    assert result.cleaned_up == 2
    remaining = sorted(database.query_recent(10, "actual"), key=lambda r: r["target_time"])
    assert [r["actual"] for r in remaining] == [10.0, 12.0, 15.0]
    assert database.get_record(TARGET)["forecast_A"] == 11.0


def test_rerunning_a_cycle_converges():
    handler = make_router(sensor_body(13.5), yandex_body(11.0), open_meteo_body(12.0))

    run_cycle(handler)
    run_cycle(handler)

    rows = database.query_recent(10, None)
    assert len(rows) == 2


def test_collect_all_data_failures_are_independent():
    handler = make_router(sensor_body(), None, open_meteo_body())

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await collect_all_data(client)

    outcomes = asyncio.run(_run())

    assert outcomes[SENSOR_KEY].ok is True
    assert outcomes["forecast_A"].ok is False
    assert "404" in outcomes["forecast_A"].error
    assert outcomes["forecast_B"].ok is True
    assert outcomes["forecast_B"].payload["timezone"] == "Asia/Tokyo"


def test_sensor_failure_keeps_underlying_cause():
    with pytest.raises(UpstreamFatal) as excinfo:
        run_cycle(make_router(None, yandex_body(), open_meteo_body()))

    assert excinfo.value.source == "narodmon"
    assert isinstance(excinfo.value.__cause__, httpx.HTTPStatusError)
    assert excinfo.value.__cause__.response.status_code == 404
