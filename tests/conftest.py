"""Pytest configuration and shared helpers for api-courier tests.

This file provides:
- RecordingSink: Captures diagnostics records instead of logging them
- make_config: ClientConfig with sensible test defaults
- make_client: fixture building ApiClients wired to httpx.MockTransport handlers
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterator

import httpx
import pytest

from api_courier.client import ApiClient
from api_courier.models import ApplicationIdentity, CallerIdentity, ClientConfig

BASE_URL = "https://api.example.com/api.xro/2.0"
CONSUMER_KEY = "consumer-key"


@dataclass
class SinkRecord:
    """One diagnostics record as seen by RecordingSink."""

    level: int
    message: str
    fields: dict[str, Any]
    exc_info: BaseException | None


class RecordingSink:
    """LogSink that stores records for assertions."""

    def __init__(self) -> None:
        self.records: list[SinkRecord] = []

    def __call__(
        self,
        level: int,
        message: str,
        args: tuple[Any, ...],
        fields: dict[str, Any],
        exc_info: BaseException | None,
    ) -> None:
        self.records.append(SinkRecord(level, message % args, dict(fields), exc_info))


def make_config(**overrides: Any) -> ClientConfig:
    """Create a ClientConfig for tests. Keyword arguments override defaults."""
    values: dict[str, Any] = {
        "base_url": BASE_URL,
        "application": ApplicationIdentity(key=CONSUMER_KEY),
        "caller": CallerIdentity(name="test-user"),
    }
    values.update(overrides)
    return ClientConfig(**values)


ClientFactory = Callable[..., ApiClient]


@pytest.fixture
def make_client() -> Iterator[ClientFactory]:
    """Factory for ApiClients whose transport calls handler for every request.

    Every httpx.Client created by the factory is closed on teardown.
    """
    http_clients: list[httpx.Client] = []

    def factory(
        handler: Callable[[httpx.Request], httpx.Response],
        config: ClientConfig | None = None,
        **kwargs: Any,
    ) -> ApiClient:
        http_client = httpx.Client(transport=httpx.MockTransport(handler))
        http_clients.append(http_client)
        return ApiClient(config or make_config(), http_client=http_client, **kwargs)

    yield factory

    for http_client in http_clients:
        http_client.close()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def sent() -> list[httpx.Request]:
    """List that capturing handlers append sent requests to."""
    return []


@pytest.fixture
def ok_handler(sent: list[httpx.Request]) -> Callable[[httpx.Request], httpx.Response]:
    """Handler that records each request and answers 200 with a JSON body."""

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request)
        return httpx.Response(200, text='{"ok":true}', headers={"Content-Type": "application/json"})

    return handler
