# tests/conftest.py
from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from rainyday.server import create_app
from rainyday.utils import TTLCache
from rainyday.webcams import WebcamRelay
from rainyday.windy import WindyWebcamsClient

PARIS = (48.8566, 2.3522)


def webcam(webcam_id: int, lat: Optional[float], lon: Optional[float], title: str = "") -> Dict[str, Any]:
    rec: Dict[str, Any] = {"webcamId": webcam_id, "title": title or f"cam {webcam_id}"}
    if lat is not None and lon is not None:
        rec["location"] = {"latitude": lat, "longitude": lon, "city": "Paris", "country": "France"}
    return rec


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWindy:
    """Upstream stub: records every request and replies with a canned response."""

    def __init__(self, payload: Any = None, status_code: int = 200, text: Optional[str] = None):
        self.payload = {"total": 0, "webcams": []} if payload is None else payload
        self.status_code = status_code
        self.text = text
        self.requests: List[httpx.Request] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.text is not None:
            return httpx.Response(self.status_code, text=self.text)
        return httpx.Response(self.status_code, content=json.dumps(self.payload).encode(),
                              headers={"content-type": "application/json"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_windy() -> FakeWindy:
    return FakeWindy()


@pytest.fixture
def make_relay(clock) -> Callable[[FakeWindy], WebcamRelay]:
    def _make(upstream: FakeWindy, ttl_seconds: float = 300) -> WebcamRelay:
        client = WindyWebcamsClient(api_key="test-key", transport=upstream.transport())
        return WebcamRelay(cache=TTLCache(ttl_seconds, clock=clock), client=client)

    return _make


@pytest.fixture
def relay(make_relay, fake_windy) -> WebcamRelay:
    return make_relay(fake_windy)


@pytest_asyncio.fixture
async def app_client(relay):
    app = create_app(relay=relay)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
