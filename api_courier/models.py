"""Internal data models for api-courier.

All models use Pydantic v2. The send result variants (Delivered/Unreachable)
are plain dataclasses because they carry live exception objects.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

# 5.5 minutes. Hard ceiling per call, not a retry budget.
DEFAULT_TIMEOUT = 330.0

DEPENDENCY_LABEL = "api-courier"


# =============================================================================
# Identities
# =============================================================================


class ApplicationIdentity(BaseModel):
    """The registered application (OAuth consumer) making calls."""

    model_config = ConfigDict(extra="forbid")

    key: str = Field(description="Application / consumer key")
    secret: str | None = Field(default=None, description="Consumer secret, if the signer needs one")

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("key must not be blank")
        return v


class CallerIdentity(BaseModel):
    """The user on whose behalf calls are made."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(description="Caller name or identifier")
    organisation_id: str | None = Field(default=None, description="Organisation the caller acts for")


# =============================================================================
# Client Configuration
# =============================================================================


class RateLimitConfig(BaseModel):
    """Rate limiting configuration."""

    model_config = ConfigDict(extra="forbid")

    requests_per_second: float = Field(gt=0, description="Maximum requests per second")


class ClientConfig(BaseModel):
    """Configuration owned by a single ApiClient.

    headers and modified_since may be changed between calls. Assignments are
    validated. Concurrent mutation is not supported.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    base_url: str = Field(description="Base endpoint URI; its path is replaced per call")
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Headers added to every request (supports ${ENV_VAR} substitution)",
    )
    user_agent: str | None = Field(default=None, description="User-Agent override")
    modified_since: datetime | None = Field(
        default=None, description="Sent as If-Modified-Since when set"
    )
    application: ApplicationIdentity | None = Field(default=None, description="Consumer identity")
    caller: CallerIdentity | None = Field(default=None, description="User identity")
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0, description="Per-call timeout in seconds")
    rate_limit: RateLimitConfig | None = Field(default=None, description="Rate limiting settings")


# =============================================================================
# Core HTTP Models
# =============================================================================


class PreparedRequest(BaseModel):
    """A request ready to send. Built fresh for every call and never reused.

    The body is not part of the prepared request; verb operations attach it
    at send time.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: str = Field(description="HTTP method (GET, POST, PUT, DELETE)")
    url: str = Field(description="Fully resolved target URL")
    headers: dict[str, str] = Field(default_factory=dict, description="Merged request headers")
    timeout: float = Field(default=DEFAULT_TIMEOUT, description="Timeout in seconds")

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


class ResponseEnvelope(BaseModel):
    """One HTTP response, normalized.

    Built the same way for 2xx and error statuses. Header keys are lowercase,
    values are tuples for repeated headers. The header mapping is read-only.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    status_code: int = Field(description="HTTP status code")
    body: str = Field(default="", description="Response body decoded as text")
    content: bytes = Field(default=b"", repr=False, description="Raw body bytes, for binary downloads")
    headers: Mapping[str, tuple[str, ...]] = Field(
        default_factory=dict,
        validate_default=True,
        description="Response headers (lowercase keys, tuple values)",
    )

    @field_validator("headers", mode="after")
    @classmethod
    def freeze_headers(cls, v: Mapping[str, tuple[str, ...]]) -> Mapping[str, tuple[str, ...]]:
        return MappingProxyType({key.lower(): tuple(values) for key, values in v.items()})

    @field_serializer("headers")
    def serialize_headers(self, v: Mapping[str, tuple[str, ...]]) -> dict[str, list[str]]:
        return {key: list(values) for key, values in v.items()}

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def header(self, name: str) -> str | None:
        """First value of a header, or None."""
        values = self.headers.get(name.lower())
        return values[0] if values else None


class CallTiming(BaseModel):
    """Timing and diagnostic data for one call. Lives only until it is logged."""

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    dependency: str = Field(default=DEPENDENCY_LABEL, description="Fixed dependency label")
    method: str = Field(description="HTTP method")
    path: str = Field(description="Endpoint plus query as requested")
    request_body: str | None = Field(default=None, description="Request body, text payloads only")
    status_code: int = Field(description="Response status, 0 if no response")
    response_body: str | None = Field(default=None, description="Response body")
    error: BaseException | None = Field(default=None, description="Failure cause")
    start: float = Field(description="Monotonic start tick (seconds)")
    finish: float = Field(description="Monotonic finish tick (seconds)")

    @property
    def elapsed_ms(self) -> float:
        return (self.finish - self.start) * 1000


# =============================================================================
# Send Result
# =============================================================================


@dataclass(frozen=True)
class Delivered:
    """The peer returned a response, whatever its status."""

    envelope: ResponseEnvelope


@dataclass(frozen=True)
class Unreachable:
    """No response was obtained (DNS, refused connection, timeout)."""

    cause: Exception


SendResult = Union[Delivered, Unreachable]
