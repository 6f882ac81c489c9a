"""Request Builder - Turns an endpoint and method into a ready-to-send request.

Applies, in order: target URL, timeout ceiling, compression and accept
negotiation, If-Modified-Since, Authorization + custom headers, User-Agent,
and finally rate-limit admission. Admission is always the last step so no
network I/O can start before it returns.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from email.utils import format_datetime

import httpx

from api_courier.models import ClientConfig, PreparedRequest
from api_courier.ports import Authenticator, NullAuthenticator, NullRateLimiter, RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_ACCEPT = "application/json"
ACCEPT_ENCODING = "gzip, deflate"
USER_AGENT_PREFIX = "api-courier - "


class RequestBuilderError(Exception):
    """Base class for request builder errors."""


class TransportConfigError(RequestBuilderError):
    """Raised when the base URL and endpoint cannot form a valid URL."""


class ConfigurationError(RequestBuilderError):
    """Raised when the configuration lacks something a request needs."""


def normalize_query(query: str | None) -> str | None:
    """Return query without a single leading '?', or None if it is blank."""
    if query is None or not query.strip():
        return None
    return query[1:] if query.startswith("?") else query


def sanitize_header_value(value: str) -> str:
    """Sanitize a header value to ensure it's ASCII-safe.

    HTTP headers must contain only ASCII characters per RFC 7230. A User-Agent
    override, a custom header or a signature may not be. Non-ASCII characters
    are replaced with '?' so the request can still be sent.
    """
    return value.encode("ascii", errors="replace").decode("ascii")


def _set_header(headers: dict[str, str], name: str, value: str) -> None:
    """Set a header, replacing any existing key that differs only in case."""
    lowered = name.lower()
    for key in [k for k in headers if k.lower() == lowered]:
        del headers[key]
    headers[name] = value


def format_http_date(value: datetime) -> str:
    """Format a datetime as an IMF-fixdate. Naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


class RequestBuilder:
    """Builds PreparedRequest objects from a ClientConfig.

    Usage:
        builder = RequestBuilder(config, authenticator=signer)
        request = builder.build("/Contacts", "GET", query="page=2")
    """

    def __init__(
        self,
        config: ClientConfig,
        authenticator: Authenticator | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self._config = config
        self._authenticator = authenticator or NullAuthenticator()
        self._rate_limiter = rate_limiter or NullRateLimiter()

    @property
    def config(self) -> ClientConfig:
        return self._config

    def build(
        self,
        endpoint: str,
        method: str,
        accept: str = DEFAULT_ACCEPT,
        query: str | None = None,
    ) -> PreparedRequest:
        """Build a request for endpoint.

        Args:
            endpoint: Path that replaces the base URL's path.
            method: HTTP method.
            accept: Value for the Accept header.
            query: Raw query string; replaces the base URL's query when non-blank.
                   The caller is responsible for encoding it.

        Returns:
            PreparedRequest ready for the transport.

        Raises:
            TransportConfigError: If the URL cannot be formed.
            ConfigurationError: If User-Agent falls back to the application key
                                and no application identity is configured.
        """
        method = method.upper()
        url = self._build_url(endpoint, query)

        headers: dict[str, str] = {
            "Accept-Encoding": ACCEPT_ENCODING,
            "Accept": accept,
        }

        if self._config.modified_since is not None:
            headers["If-Modified-Since"] = format_http_date(self._config.modified_since)

        # Authorization goes through the same merge as the custom headers and
        # is written last, so it wins on collision. The config map is untouched.
        merged = dict(self._config.headers)
        signature = self._authenticator.sign(
            self._config.application,
            self._config.caller,
            url,
            method,
            self._config.application,
        )
        if signature:
            _set_header(merged, "Authorization", signature)

        for name, value in merged.items():
            _set_header(headers, name, value)

        _set_header(headers, "User-Agent", self._user_agent())

        prepared = PreparedRequest(
            method=method,
            url=url,
            headers={name: sanitize_header_value(value) for name, value in headers.items()},
            timeout=self._config.timeout,
        )

        self._rate_limiter.wait_until_admitted()

        logger.debug("Prepared %s %s", method, url)
        return prepared

    def _build_url(self, endpoint: str, query: str | None) -> str:
        try:
            base = httpx.URL(self._config.base_url)
        except httpx.InvalidURL as e:
            raise TransportConfigError(f"Invalid base URL '{self._config.base_url}': {e}") from e

        if base.scheme not in ("http", "https") or not base.host:
            raise TransportConfigError(
                f"Base URL must be an absolute http(s) URL, got '{self._config.base_url}'"
            )

        path = endpoint if endpoint.startswith("/") else "/" + endpoint
        changes: dict[str, object] = {"path": path}

        raw_query = normalize_query(query)
        if raw_query is not None:
            try:
                changes["query"] = raw_query.encode("ascii")
            except UnicodeEncodeError as e:
                raise TransportConfigError(
                    f"Query must be ASCII (percent-encode it first): {query!r}"
                ) from e

        try:
            return str(base.copy_with(**changes))
        except (httpx.InvalidURL, TypeError, ValueError) as e:
            raise TransportConfigError(
                f"Cannot combine base URL '{self._config.base_url}' with endpoint '{endpoint}': {e}"
            ) from e

    def _user_agent(self) -> str:
        override = self._config.user_agent
        if override is not None and override.strip():
            return override
        if self._config.application is None:
            raise ConfigurationError(
                "No user_agent configured and no application identity to derive one from"
            )
        return USER_AGENT_PREFIX + self._config.application.key
