from __future__ import annotations

import requests

from adrotator.runtime.analytics import HttpAnalytics, NullAnalytics


class FailingSession:
    def __init__(self) -> None:
        self.attempts = 0

    def post(self, url, json=None, timeout=None):
        self.attempts += 1
        raise requests.ConnectionError("analytics endpoint down")


def test_events_are_posted_as_json(session_factory):
    session = session_factory([None])
    analytics = HttpAnalytics("http://ads.local/api/v1/ad/event", session=session, timestamp_fn=lambda: 1_700_000_000_000)

    analytics.impression("promo")
    analytics.click("promo", "https://example.com")
    analytics.flush(timeout=2.0)
    analytics.close()

    assert [post["json"] for post in session.posts] == [
        {"type": "impression", "adId": "promo", "ts": 1_700_000_000_000},
        {"type": "click", "adId": "promo", "ts": 1_700_000_000_000, "href": "https://example.com"},
    ]
    assert all(post["url"] == "http://ads.local/api/v1/ad/event" for post in session.posts)


def test_delivery_failures_are_discarded():
    session = FailingSession()
    analytics = HttpAnalytics("http://ads.local/event", session=session)

    analytics.impression("promo")
    analytics.flush(timeout=2.0)
    analytics.close()

    assert session.attempts == 1


def test_events_after_close_are_dropped(session_factory):
    session = session_factory([None])
    analytics = HttpAnalytics("http://ads.local/event", session=session)
    analytics.close()

    analytics.impression("promo")
    analytics.flush(timeout=1.0)

    assert session.posts == []


def test_null_analytics_accepts_everything():
    sink = NullAnalytics()
    sink.impression("a")
    sink.click("a", None)
    sink.close()
