"""Tests for Pydantic models.

Tests cover:
- ResponseEnvelope immutability and helpers
- Identity validation
- ClientConfig defaults, assignment validation, extra field rejection
- CallTiming elapsed time
"""

import pytest
from pydantic import ValidationError

from api_courier.models import (
    DEFAULT_TIMEOUT,
    ApplicationIdentity,
    CallTiming,
    ClientConfig,
    Delivered,
    PreparedRequest,
    ResponseEnvelope,
    Unreachable,
)


class TestResponseEnvelope:
    """Tests for ResponseEnvelope model."""

    def test_is_frozen(self) -> None:
        """Assigning to a field raises."""
        envelope = ResponseEnvelope(status_code=200, body="ok")
        with pytest.raises(ValidationError):
            envelope.status_code = 500

    def test_header_lookup_is_case_insensitive(self) -> None:
        """header() returns the first value for any casing of the name."""
        envelope = ResponseEnvelope(
            status_code=200,
            headers={"x-rate-limit-problem": ["minute", "day"]},
        )
        assert envelope.header("X-Rate-Limit-Problem") == "minute"
        assert envelope.header("missing") is None

    def test_headers_are_read_only(self) -> None:
        """Header values are tuples and the mapping rejects assignment."""
        envelope = ResponseEnvelope(status_code=200, headers={"X-A": ["one"]})

        assert envelope.headers["x-a"] == ("one",)
        with pytest.raises(AttributeError):
            envelope.headers["x-a"].append("tampered")
        with pytest.raises(TypeError):
            envelope.headers["x-b"] = ("new",)
        assert envelope.header("X-A") == "one"

    def test_caller_mapping_is_copied(self) -> None:
        """Changing the mapping passed in does not change the envelope."""
        source = {"x-a": ["one"]}
        envelope = ResponseEnvelope(status_code=200, headers=source)

        source["x-a"].append("two")
        source["x-b"] = ["three"]

        assert envelope.headers == {"x-a": ("one",)}

    def test_headers_dump_as_lists(self) -> None:
        """model_dump turns header tuples back into lists."""
        envelope = ResponseEnvelope(status_code=200, headers={"set-cookie": ("a=1", "b=2")})
        assert envelope.model_dump()["headers"] == {"set-cookie": ["a=1", "b=2"]}

    @pytest.mark.parametrize(
        "status,expected",
        [(200, True), (204, True), (299, True), (304, False), (404, False), (503, False)],
    )
    def test_is_success(self, status: int, expected: bool) -> None:
        """Only 2xx statuses count as success."""
        assert ResponseEnvelope(status_code=status).is_success is expected

    def test_send_results_wrap_outcomes(self) -> None:
        """Delivered and Unreachable hold what they were given."""
        envelope = ResponseEnvelope(status_code=404, body='{"error":"not found"}')
        cause = ConnectionError("refused")
        assert Delivered(envelope).envelope is envelope
        assert Unreachable(cause).cause is cause


class TestIdentities:
    """Tests for ApplicationIdentity and CallerIdentity models."""

    def test_blank_application_key_rejected(self) -> None:
        """A whitespace-only key fails validation."""
        with pytest.raises(ValidationError):
            ApplicationIdentity(key="  ")

    def test_secret_is_optional(self) -> None:
        """secret defaults to None."""
        assert ApplicationIdentity(key="abc").secret is None


class TestClientConfig:
    """Tests for ClientConfig model."""

    def test_defaults(self) -> None:
        """Only base_url is required."""
        config = ClientConfig(base_url="https://api.example.com")
        assert config.headers == {}
        assert config.timeout == DEFAULT_TIMEOUT
        assert config.modified_since is None
        assert config.application is None
        assert config.rate_limit is None

    def test_extra_fields_rejected(self) -> None:
        """Unknown fields fail validation."""
        with pytest.raises(ValidationError):
            ClientConfig(base_url="https://api.example.com", retries=3)

    def test_assignment_is_validated(self) -> None:
        """Assigning an invalid timeout raises."""
        config = ClientConfig(base_url="https://api.example.com")
        with pytest.raises(ValidationError):
            config.timeout = -1

    def test_modified_since_accepts_iso_string(self) -> None:
        """ISO 8601 strings are parsed into datetimes."""
        config = ClientConfig(base_url="https://api.example.com", modified_since="2024-01-02T03:04:05Z")
        assert config.modified_since is not None
        assert config.modified_since.year == 2024

    def test_rate_limit_must_be_positive(self) -> None:
        """requests_per_second of 0 is rejected."""
        with pytest.raises(ValidationError):
            ClientConfig(base_url="https://api.example.com", rate_limit={"requests_per_second": 0})


class TestPreparedRequest:
    """Tests for PreparedRequest model."""

    def test_header_lookup_is_case_insensitive(self) -> None:
        """header() ignores name casing and returns None when absent."""
        request = PreparedRequest(method="GET", url="https://api.example.com/", headers={"Accept": "text/xml"})
        assert request.header("accept") == "text/xml"
        assert request.header("Authorization") is None


class TestCallTiming:
    """Tests for CallTiming model."""

    def test_elapsed_ms(self) -> None:
        """elapsed_ms is finish minus start in milliseconds."""
        timing = CallTiming(method="GET", path="/Contacts", status_code=200, start=2.0, finish=2.0125)
        assert timing.elapsed_ms == pytest.approx(12.5)
        assert timing.dependency == "api-courier"

    def test_error_accepts_exceptions(self) -> None:
        """Any exception can be stored as the error."""
        error = TimeoutError("slow")
        timing = CallTiming(method="GET", path="/", status_code=0, error=error, start=0.0, finish=1.0)
        assert timing.error is error
