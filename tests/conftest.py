"""
Global test configuration for adrotator.

Provides fake HTTP sessions, recording analytics and stepped timers so the
rotation runtime can be exercised without a network or real time.
"""

from __future__ import annotations

from typing import Any, Callable

import pytest
import requests

from adrotator.runtime.clock import SteppedMasterClock
from adrotator.runtime.timers import SteppedTimerService


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, *, invalid_json: bool = False) -> None:
        self.status_code = status_code
        self._payload = payload
        self._invalid_json = invalid_json

    def json(self) -> Any:
        if self._invalid_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


class FakeSession:
    """
    Stand-in for requests.Session.

    ``responses`` are consumed in order; each is a FakeResponse, an exception
    instance to raise, or a callable receiving the call kwargs. The last entry
    is reused once the list is exhausted.
    """

    def __init__(self, responses: list[Any]) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, Any]] = []
        self.posts: list[dict[str, Any]] = []
        self.closed = False

    def get(self, url: str, params: dict[str, Any] | None = None, timeout: float | None = None) -> FakeResponse:
        call = {"url": url, "params": params, "timeout": timeout}
        self.calls.append(call)
        item = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item(call)
        return item

    def post(self, url: str, json: Any = None, timeout: float | None = None) -> FakeResponse:
        self.posts.append({"url": url, "json": json, "timeout": timeout})
        return FakeResponse(200, {"ok": True})

    def close(self) -> None:
        self.closed = True


class RecordingAnalytics:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, str | None]] = []

    def impression(self, ad_id: str) -> None:
        self.events.append(("impression", ad_id, None))

    def click(self, ad_id: str, href: str | None = None) -> None:
        self.events.append(("click", ad_id, href))

    def close(self) -> None:
        return None

    def ids(self, event_type: str) -> list[str]:
        return [ad_id for kind, ad_id, _ in self.events if kind == event_type]


def make_ad(name: str, *, video: bool = False, **meta: Any) -> dict[str, Any]:
    """AdSource ad object named ``name``."""
    ad: dict[str, Any] = {
        "title": f"{name} promo",
        "imageSrc": f"/ads/{name}.jpg",
        "buttonLink": f"https://example.com/{name}",
        "meta": {"name": name, **meta},
    }
    if video:
        ad["videoSrc"] = f"/ads/{name}.mp4"
    return ad


@pytest.fixture
def ad_factory() -> Callable[..., dict[str, Any]]:
    return make_ad


@pytest.fixture
def session_factory() -> Callable[[list[Any]], FakeSession]:
    return FakeSession


@pytest.fixture
def ok_response() -> Callable[[Any], FakeResponse]:
    return lambda payload: FakeResponse(200, payload)


@pytest.fixture
def error_response() -> Callable[..., FakeResponse]:
    return lambda status=500, payload=None: FakeResponse(status, payload)


@pytest.fixture
def invalid_json_response() -> FakeResponse:
    return FakeResponse(200, invalid_json=True)


@pytest.fixture
def connection_error() -> requests.ConnectionError:
    return requests.ConnectionError("connection refused")


@pytest.fixture
def analytics() -> RecordingAnalytics:
    return RecordingAnalytics()


@pytest.fixture
def clock() -> SteppedMasterClock:
    return SteppedMasterClock()


@pytest.fixture
def timers(clock: SteppedMasterClock) -> SteppedTimerService:
    return SteppedTimerService(clock)
