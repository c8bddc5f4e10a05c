import asyncio
import json
from pathlib import Path
import sys

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from collector.http_client import fetch_json

URL = "https://api.example.test/data"


class _Upstream:
    """Scripted upstream: pops one response (or exception) per request."""

    def __init__(self, *steps):
        self.steps = list(steps)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.steps.pop(0)
        if isinstance(step, Exception):
            raise step
        status, body = step
        if isinstance(body, (dict, list)):
            return httpx.Response(status, json=body)
        return httpx.Response(status, text=body)


def _fetch(upstream, **kwargs):
    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
            return await fetch_json(client, URL, source="test", backoff_seconds=0, **kwargs)

    return asyncio.run(_run())


def test_returns_decoded_json_and_passes_params_and_headers():
    upstream = _Upstream((200, {"ok": True}))

    body = _fetch(upstream, params={"lat": 43.23}, headers={"X-Key": "secret"})

    assert body == {"ok": True}
    assert upstream.requests[0].url.params["lat"] == "43.23"
    assert upstream.requests[0].headers["X-Key"] == "secret"


def test_retries_server_errors_then_succeeds():
    upstream = _Upstream((503, "busy"), (429, "slow down"), (200, {"temp": 5}))

    assert _fetch(upstream, max_retries=2) == {"temp": 5}
    assert len(upstream.requests) == 3


def test_gives_up_after_max_retries():
    upstream = _Upstream((500, "boom"), (502, "boom"))

    with pytest.raises(httpx.HTTPStatusError):
        _fetch(upstream, max_retries=1)
    assert len(upstream.requests) == 2


def test_client_errors_are_not_retried():
    upstream = _Upstream((404, "missing"), (200, {"never": "reached"}))

    with pytest.raises(httpx.HTTPStatusError):
        _fetch(upstream, max_retries=3)
    assert len(upstream.requests) == 1


def test_transport_errors_are_retried():
    upstream = _Upstream(httpx.ConnectError("refused"), (200, [1, 2]))

    assert _fetch(upstream, max_retries=1) == [1, 2]


def test_transport_error_on_last_attempt_propagates():
    upstream = _Upstream(httpx.ReadTimeout("slow"))

    with pytest.raises(httpx.TimeoutException):
        _fetch(upstream, max_retries=0)


def test_invalid_json_raises_value_error():
    upstream = _Upstream((200, "<html>not json</html>"))

    with pytest.raises(json.JSONDecodeError):
        _fetch(upstream, max_retries=0)
