"""AdSource fetcher with per-attempt timeout and exponential backoff.

One fetch makes up to ``1 + max_retries`` HTTP GETs. Each attempt fails on a
network error or timeout, a non-2xx status, a body that is not JSON, or a
payload that does not yield a usable descriptor. Before retry ``k`` (0-based)
the fetcher sleeps ``retry_base_delay * backoff_factor ** k`` milliseconds.
When every attempt has failed a :class:`FetchError` carrying the last cause is
raised; the fetcher never mutates shared state.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import requests
from requests.adapters import HTTPAdapter

from adrotator.domain.descriptor import AdDescriptor, parse_payload
from adrotator.infra.exceptions import FetchError, MalformedPayloadError

from .config import RotatorConfig

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], None]


class AdFetcher:
    """HTTP client for the AdSource endpoint."""

    def __init__(
        self,
        config: RotatorConfig,
        *,
        session: requests.Session | None = None,
        sleep_fn: SleepFn = time.sleep,
    ) -> None:
        self._config = config
        self._session = session or self._create_session()
        self._sleep = sleep_fn

    @staticmethod
    def _create_session() -> requests.Session:
        """Create a requests session; retries are counted here, not by urllib3."""
        session = requests.Session()
        adapter = HTTPAdapter(max_retries=0)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({"Accept": "application/json"})
        return session

    @property
    def session(self) -> requests.Session:
        return self._session

    def retry_delays(self, max_retries: int | None = None) -> list[float]:
        """Backoff delays (ms) slept between attempts."""
        retries = self._config.max_retries if max_retries is None else max_retries
        base = self._config.retry_base_delay
        factor = self._config.backoff_factor
        return [base * factor**attempt for attempt in range(retries)]

    def fetch_candidates(
        self,
        timeout_ms: int | None = None,
        max_retries: int | None = None,
        *,
        count: int | None = None,
    ) -> list[AdDescriptor]:
        """
        Fetch one or more candidate ads.

        Args:
            timeout_ms: Per-attempt timeout, defaults to ``fetch_timeout``.
            max_retries: Retry ceiling, defaults to ``max_retries``.
            count: Number of ads to request, defaults to ``fetch_count``.

        Returns:
            Non-empty list of descriptors.

        Raises:
            FetchError: when every attempt failed.
        """
        timeout_ms = self._config.fetch_timeout if timeout_ms is None else timeout_ms
        delays = self.retry_delays(max_retries)
        params = {"count": count or self._config.fetch_count}

        last_error: BaseException | None = None
        attempts = 0
        for attempt in range(len(delays) + 1):
            attempts += 1
            try:
                return self._attempt(params, timeout_ms)
            except (requests.RequestException, MalformedPayloadError, ValueError) as e:
                last_error = e
                logger.debug(
                    "AdFetcher: attempt %d/%d failed: %s",
                    attempts, len(delays) + 1, e,
                )
            if attempt < len(delays):
                self._sleep(delays[attempt] / 1000.0)

        raise FetchError(
            f"Failed to fetch ad from {self._config.api} after {attempts} attempts: {last_error}",
            cause=last_error,
            attempts=attempts,
        )

    def fetch_ad(self, timeout_ms: int | None = None, max_retries: int | None = None) -> AdDescriptor:
        """Fetch a single ad (the first candidate returned)."""
        return self.fetch_candidates(timeout_ms, max_retries)[0]

    def close(self) -> None:
        self._session.close()

    def _attempt(self, params: dict[str, Any], timeout_ms: int) -> list[AdDescriptor]:
        response = self._session.get(
            self._config.api,
            params=params,
            timeout=timeout_ms / 1000.0,
        )
        if not 200 <= response.status_code < 300:
            raise requests.HTTPError(f"HTTP {response.status_code}", response=response)
        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedPayloadError(f"Invalid JSON from AdSource: {e}") from e
        return parse_payload(payload)
