from __future__ import annotations

import pytest
import requests

from adrotator.infra.exceptions import FetchError, MalformedPayloadError
from adrotator.runtime.config import RotatorConfig
from adrotator.runtime.fetcher import AdFetcher


def _fetcher(session, **overrides):
    sleeps: list[float] = []
    config = RotatorConfig(api="http://ads.local/api/v1/ad", **overrides)
    return AdFetcher(config, session=session, sleep_fn=sleeps.append), sleeps


def test_successful_fetch_sends_count_and_timeout(session_factory, ok_response, ad_factory):
    session = session_factory([ok_response({"ok": True, "ads": [ad_factory("a"), ad_factory("b")]})])
    fetcher, sleeps = _fetcher(session, fetch_timeout=2_500)

    ads = fetcher.fetch_candidates()

    assert [ad.id for ad in ads] == ["a", "b"]
    assert session.calls == [
        {"url": "http://ads.local/api/v1/ad", "params": {"count": 1}, "timeout": 2.5}
    ]
    assert sleeps == []


def test_count_override(session_factory, ok_response, ad_factory):
    session = session_factory([ok_response([ad_factory("a")])])
    fetcher, _ = _fetcher(session, fetch_count=3)
    fetcher.fetch_candidates()
    fetcher.fetch_candidates(count=5)
    assert [call["params"]["count"] for call in session.calls] == [3, 5]


def test_server_error_exhausts_retries(session_factory, error_response):
    session = session_factory([error_response(500)])
    fetcher, sleeps = _fetcher(session, max_retries=2, retry_base_delay=300, backoff_factor=2.0)

    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch_candidates()

    assert len(session.calls) == 3
    assert excinfo.value.attempts == 3
    assert isinstance(excinfo.value.cause, requests.HTTPError)
    assert sleeps == pytest.approx([0.3, 0.6])


def test_recovers_after_transient_failures(session_factory, ok_response, error_response, connection_error, ad_factory):
    session = session_factory([connection_error, error_response(503), ok_response(ad_factory("late"))])
    fetcher, sleeps = _fetcher(session, max_retries=3)

    ad = fetcher.fetch_ad()

    assert ad.id == "late"
    assert len(session.calls) == 3
    assert len(sleeps) == 2


def test_invalid_json_counts_as_failed_attempt(session_factory, invalid_json_response):
    session = session_factory([invalid_json_response])
    fetcher, _ = _fetcher(session, max_retries=1)

    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch_candidates()

    assert excinfo.value.attempts == 2
    assert isinstance(excinfo.value.cause, MalformedPayloadError)


def test_payload_without_ads_is_malformed(session_factory, ok_response):
    session = session_factory([ok_response({"ok": True, "ads": []})])
    fetcher, _ = _fetcher(session, max_retries=0)

    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch_candidates()

    assert excinfo.value.attempts == 1
    assert isinstance(excinfo.value.cause, MalformedPayloadError)


def test_timeout_is_retried(session_factory):
    session = session_factory([requests.Timeout("read timed out")])
    fetcher, _ = _fetcher(session, max_retries=1)

    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch_candidates(timeout_ms=100)

    assert [call["timeout"] for call in session.calls] == [0.1, 0.1]
    assert isinstance(excinfo.value.cause, requests.Timeout)


def test_per_call_retry_override(session_factory, error_response):
    session = session_factory([error_response(404)])
    fetcher, _ = _fetcher(session, max_retries=5)

    with pytest.raises(FetchError):
        fetcher.fetch_candidates(max_retries=0)

    assert len(session.calls) == 1


def test_retry_delays_grow_exponentially():
    fetcher, _ = _fetcher(None, retry_base_delay=100, backoff_factor=3.0, max_retries=3)
    assert fetcher.retry_delays() == [100, 300, 900]
    assert fetcher.retry_delays(0) == []


def test_close_closes_session(session_factory, ok_response):
    session = session_factory([ok_response({})])
    fetcher, _ = _fetcher(session)
    fetcher.close()
    assert session.closed
