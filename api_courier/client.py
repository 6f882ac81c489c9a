"""ApiClient - Verb operations over the request builder and an httpx transport.

Every send returns a Delivered or Unreachable result. For get, get_raw,
post, put and delete a Delivered result is always returned to the caller as
a ResponseEnvelope, whatever its status code; callers inspect status_code
themselves. Unreachable results are logged and raised as ConnectivityError.

post_multipart is stricter: a non-2xx status raises ResponseStatusError.
Callers use it for best-effort attachment uploads and expect a fault on any
failure.

Redirects are followed by the client itself, so an injected httpx.Client
does not need follow_redirects. A response whose body cannot be decoded is
still Delivered, with its real status and an empty body. No call is retried.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx

from api_courier.diagnostics import DiagnosticsRecorder, LogSink
from api_courier.models import (
    CallerIdentity,
    ClientConfig,
    Delivered,
    PreparedRequest,
    ResponseEnvelope,
    SendResult,
    Unreachable,
)
from api_courier.multipart import encode_multipart
from api_courier.ports import Authenticator, IntervalRateLimiter, RateLimiter
from api_courier.request_builder import (
    DEFAULT_ACCEPT,
    RequestBuilder,
    normalize_query,
    sanitize_header_value,
)

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/xml"

# Request bodies with these media types are attached to diagnostics.
LOGGED_BODY_TYPES = frozenset({"application/xml", "application/json"})


class ClientError(Exception):
    """Base class for client errors."""


class ConnectivityError(ClientError):
    """Raised when no response was obtained (DNS, connection refused, timeout)."""

    def __init__(self, message: str, cause: Exception) -> None:
        super().__init__(message)
        self.cause = cause


class ResponseStatusError(ClientError):
    """Raised by post_multipart when the peer answers with a non-2xx status."""

    def __init__(self, message: str, envelope: ResponseEnvelope) -> None:
        super().__init__(message)
        self.envelope = envelope


def _media_type(content_type: str) -> str:
    return content_type.split(";", 1)[0].strip().lower()


def _request_path(endpoint: str, query: str | None) -> str:
    """Endpoint plus query as it appears in diagnostics."""
    raw_query = normalize_query(query)
    return endpoint if raw_query is None else f"{endpoint}?{raw_query}"


def _to_envelope(response: httpx.Response, decoded: bool = True) -> ResponseEnvelope:
    """Convert an httpx Response to a ResponseEnvelope.

    decoded=False is used when the body could not be decoded; status and
    headers are kept and the body is left empty.
    """
    headers: dict[str, list[str]] = {}
    for key, value in response.headers.multi_items():
        headers.setdefault(key.lower(), []).append(value)

    if not decoded:
        return ResponseEnvelope(status_code=response.status_code, headers=headers)

    return ResponseEnvelope(
        status_code=response.status_code,
        body=response.text,
        content=response.content,
        headers=headers,
    )


class ApiClient:
    """Client for one remote API and one caller session.

    Usage:
        with ApiClient(config, authenticator=signer) as client:
            response = client.get("/Contacts", "page=2")
            if response.status_code == 404:
                ...

    The client owns its httpx.Client unless one is passed in.
    """

    def __init__(
        self,
        config: ClientConfig,
        authenticator: Authenticator | None = None,
        rate_limiter: RateLimiter | None = None,
        sink: LogSink | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Client configuration. Owned by this client from now on.
            authenticator: Produces Authorization header values. None sends no
                           Authorization header.
            rate_limiter: Admission gate called before every request.
            sink: Destination for diagnostics records. Defaults to the
                  "api_courier.http" logger.
            http_client: Transport to use. Defaults to a new httpx.Client.
        """
        self._config = config
        self._builder = RequestBuilder(config, authenticator, rate_limiter)
        self._recorder = DiagnosticsRecorder(sink)
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client()

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        authenticator: Authenticator | None = None,
        rate_limiter: RateLimiter | None = None,
        sink: LogSink | None = None,
    ) -> "ApiClient":
        """Create a client, building a rate limiter from config.rate_limit if none is given."""
        if rate_limiter is None and config.rate_limit is not None:
            rate_limiter = IntervalRateLimiter(config.rate_limit.requests_per_second)
        return cls(config, authenticator=authenticator, rate_limiter=rate_limiter, sink=sink)

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http:
            self._http.close()

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def modified_since(self) -> datetime | None:
        return self._config.modified_since

    @modified_since.setter
    def modified_since(self, value: datetime | None) -> None:
        self._config.modified_since = value

    @property
    def user_agent(self) -> str | None:
        return self._config.user_agent

    @user_agent.setter
    def user_agent(self, value: str | None) -> None:
        self._config.user_agent = value

    @property
    def caller(self) -> CallerIdentity | None:
        return self._config.caller

    @caller.setter
    def caller(self, value: CallerIdentity | None) -> None:
        self._config.caller = value

    def add_header(self, name: str, value: str) -> None:
        """Add a header to every subsequent request. Last write wins."""
        self._config.headers[name] = value

    # -------------------------------------------------------------------------
    # Verb operations
    # -------------------------------------------------------------------------

    def get(self, endpoint: str, query: str | None = None) -> ResponseEnvelope:
        """GET endpoint accepting JSON.

        Raises:
            ConnectivityError: If no response was obtained.
        """
        return self.get_raw(endpoint, DEFAULT_ACCEPT, query)

    def get_raw(self, endpoint: str, mime_type: str, query: str | None = None) -> ResponseEnvelope:
        """GET endpoint with a caller-chosen Accept type (e.g. application/pdf).

        Raises:
            ConnectivityError: If no response was obtained.
        """
        start = self._recorder.now()
        request = self._builder.build(endpoint, "GET", accept=mime_type, query=query)
        return self._dispatch(request, _request_path(endpoint, query), None, None, start)

    def post(
        self,
        endpoint: str,
        data: str | bytes,
        content_type: str = DEFAULT_CONTENT_TYPE,
        query: str | None = None,
    ) -> ResponseEnvelope:
        """POST data to endpoint. str data is sent as UTF-8.

        Raises:
            ConnectivityError: If no response was obtained.
        """
        return self._write(endpoint, data, "POST", content_type, query)

    def put(
        self,
        endpoint: str,
        data: str | bytes,
        content_type: str = DEFAULT_CONTENT_TYPE,
        query: str | None = None,
    ) -> ResponseEnvelope:
        """PUT data to endpoint. str data is sent as UTF-8.

        Raises:
            ConnectivityError: If no response was obtained.
        """
        return self._write(endpoint, data, "PUT", content_type, query)

    def delete(self, endpoint: str) -> ResponseEnvelope:
        """DELETE endpoint.

        Raises:
            ConnectivityError: If no response was obtained.
        """
        start = self._recorder.now()
        request = self._builder.build(endpoint, "DELETE")
        return self._dispatch(request, endpoint, None, None, start)

    def post_multipart(
        self,
        endpoint: str,
        content_type: str,
        name: str,
        filename: str,
        payload: bytes,
    ) -> ResponseEnvelope:
        """POST payload as a single-part multipart/form-data upload.

        Unlike the other verbs, error statuses are raised.

        Raises:
            ConnectivityError: If no response was obtained.
            ResponseStatusError: If the peer answered with a non-2xx status.
        """
        start = self._recorder.now()
        request = self._builder.build(endpoint, "POST")

        multipart = encode_multipart(payload, content_type, name, filename)
        headers = dict(request.headers)
        headers["Content-Type"] = multipart.content_type
        headers["Content-Length"] = str(multipart.content_length)
        headers["Connection"] = "close"
        request = request.model_copy(update={"headers": headers})

        envelope = self._dispatch(request, endpoint, multipart.body, None, start)
        if not envelope.is_success:
            raise ResponseStatusError(
                f"Upload to {endpoint} failed with status {envelope.status_code}",
                envelope,
            )
        return envelope

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _write(
        self,
        endpoint: str,
        data: str | bytes,
        method: str,
        content_type: str,
        query: str | None,
    ) -> ResponseEnvelope:
        payload = data.encode("utf-8") if isinstance(data, str) else bytes(data)

        start = self._recorder.now()
        request = self._builder.build(endpoint, method, query=query)

        headers = dict(request.headers)
        headers["Content-Length"] = str(len(payload))
        headers["Content-Type"] = sanitize_header_value(content_type)
        request = request.model_copy(update={"headers": headers})

        # Binary payloads are never logged.
        request_body = None
        if _media_type(content_type) in LOGGED_BODY_TYPES:
            request_body = payload.decode("utf-8", errors="replace")

        return self._dispatch(request, _request_path(endpoint, query), payload, request_body, start)

    def _dispatch(
        self,
        request: PreparedRequest,
        path: str,
        content: bytes | None,
        request_body: str | None,
        start: float,
    ) -> ResponseEnvelope:
        """Send, record diagnostics, and unwrap the result."""
        result = self._send(request, content)

        if isinstance(result, Unreachable):
            self._recorder.record_failure(request.method, path, request_body, result.cause, start)
            raise ConnectivityError(
                f"{request.method} {request.url} got no response: {result.cause}",
                result.cause,
            ) from result.cause

        envelope = result.envelope
        self._recorder.record(
            request.method,
            path,
            request_body,
            envelope.status_code,
            envelope.body,
            start,
            self._recorder.now(),
        )
        return envelope

    def _send(self, request: PreparedRequest, content: bytes | None) -> SendResult:
        """Perform the transport call. Never raises for HTTP error statuses.

        Redirects are followed here, up to the transport's max_redirects. When
        the limit is reached the last redirect response is delivered as is.
        """
        http_request = self._http.build_request(
            method=request.method,
            url=request.url,
            headers=request.headers,
            content=content,
            timeout=request.timeout,
        )
        try:
            response = self._http.send(http_request, stream=True, follow_redirects=False)
            hops = 0
            while response.next_request is not None and hops < self._http.max_redirects:
                next_request = response.next_request
                response.close()
                response = self._http.send(next_request, stream=True, follow_redirects=False)
                hops += 1
        except httpx.TransportError as e:
            logger.debug("%s %s raised %s", request.method, request.url, type(e).__name__)
            return Unreachable(e)

        try:
            response.read()
        except httpx.DecodingError as e:
            # The peer answered; only its body is unusable.
            logger.warning(
                "%s %s returned %s with an undecodable body: %s",
                request.method,
                request.url,
                response.status_code,
                e,
            )
            return Delivered(_to_envelope(response, decoded=False))
        except httpx.TransportError as e:
            logger.debug("%s %s body read raised %s", request.method, request.url, type(e).__name__)
            return Unreachable(e)
        finally:
            response.close()

        return Delivered(_to_envelope(response))
