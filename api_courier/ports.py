"""Capabilities consumed by the request builder.

The signing algorithm and the admission policy live outside this package.
The builder only depends on the two protocols below. NullAuthenticator and
NullRateLimiter are used when nothing is supplied. IntervalRateLimiter is a
simple fixed-interval policy for callers that do not bring their own.
"""

from __future__ import annotations

import time
from threading import Lock
from typing import Protocol, runtime_checkable

from api_courier.models import ApplicationIdentity, CallerIdentity


@runtime_checkable
class Authenticator(Protocol):
    """Produces an Authorization header value for one request."""

    def sign(
        self,
        application: ApplicationIdentity | None,
        caller: CallerIdentity | None,
        uri: str,
        method: str,
        signing_application: ApplicationIdentity | None,
    ) -> str:
        ...


@runtime_checkable
class RateLimiter(Protocol):
    """Blocks until the caller may send the next request."""

    def wait_until_admitted(self) -> None:
        ...


class NullAuthenticator:
    """Signs nothing. The builder skips the Authorization header for it."""

    def sign(
        self,
        application: ApplicationIdentity | None,
        caller: CallerIdentity | None,
        uri: str,
        method: str,
        signing_application: ApplicationIdentity | None,
    ) -> str:
        return ""


class NullRateLimiter:
    """Admits every request immediately."""

    def wait_until_admitted(self) -> None:
        return None


class IntervalRateLimiter:
    """Enforces a minimum interval between admissions.

    Usage:
        limiter = IntervalRateLimiter(requests_per_second=2.0)
        limiter.wait_until_admitted()  # returns at most twice per second
    """

    def __init__(self, requests_per_second: float) -> None:
        if requests_per_second <= 0:
            raise ValueError(f"requests_per_second must be positive, got {requests_per_second}")
        self._min_interval = 1.0 / requests_per_second
        self._last_request_time: float = 0.0
        self._lock = Lock()

    @property
    def min_interval(self) -> float:
        return self._min_interval

    def wait_until_admitted(self) -> None:
        """Sleep if the previous admission was too recent."""
        with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_request_time
            if elapsed < self._min_interval:
                time.sleep(self._min_interval - elapsed)
            self._last_request_time = time.monotonic()
