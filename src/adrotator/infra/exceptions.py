"""
Custom exceptions for adrotator.

Nothing in this hierarchy is fatal to the hosting surface: fetch failures are
absorbed by the slot scheduler, render failures by the slot renderer, and a
missing slot set degrades to a no-op controller.
"""

from __future__ import annotations


class AdRotatorError(Exception):
    """Base exception for all adrotator errors."""

    pass


class FetchError(AdRotatorError):
    """Raised when an ad could not be fetched after all retries.

    ``cause`` holds the last underlying failure (network error, timeout,
    bad status or malformed payload) and ``attempts`` the number of HTTP
    requests that were made.
    """

    def __init__(self, message: str, *, cause: BaseException | None = None, attempts: int = 0):
        super().__init__(message)
        self.cause = cause
        self.attempts = attempts


class MalformedPayloadError(AdRotatorError):
    """Raised when an AdSource response cannot be converted to descriptors."""

    pass


class RenderError(AdRotatorError):
    """Raised when media could not be mounted into a slot."""

    pass


class ConfigError(AdRotatorError, ValueError):
    """Raised when rotator options are invalid."""

    pass


class HistoryStoreError(AdRotatorError):
    """Raised when the recent-history store cannot be read or written."""

    pass
