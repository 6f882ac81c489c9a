"""Diagnostics Recorder - One structured log entry per HTTP call.

Successful calls (any status the peer returned) are logged at DEBUG, calls
that got no response at ERROR with status 0. The destination is an injected
sink so the recorder can be tested without a logging backend.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Protocol

from api_courier.models import DEPENDENCY_LABEL, CallTiming

MESSAGE_TEMPLATE = "Dependency %s HTTP %s %s responded %s in %.4f ms"


class LogSink(Protocol):
    """Receives one structured record.

    Args:
        level: logging level (logging.DEBUG, logging.ERROR, ...).
        message: %-style template.
        args: Template arguments.
        fields: Structured context fields.
        exc_info: Exception to attach, if any.
    """

    def __call__(
        self,
        level: int,
        message: str,
        args: tuple[Any, ...],
        fields: dict[str, Any],
        exc_info: BaseException | None,
    ) -> None:
        ...


class LoggerSink:
    """Writes records to a stdlib logger, fields passed as `extra`."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("api_courier.http")

    def __call__(
        self,
        level: int,
        message: str,
        args: tuple[Any, ...],
        fields: dict[str, Any],
        exc_info: BaseException | None,
    ) -> None:
        self._logger.log(level, message, *args, extra=fields, exc_info=exc_info)


class DiagnosticsRecorder:
    """Builds CallTiming records and emits them to a sink.

    Usage:
        recorder = DiagnosticsRecorder()
        start = recorder.now()
        ...
        recorder.record("GET", "/Contacts", None, 200, body, start, recorder.now())
    """

    def __init__(
        self,
        sink: LogSink | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._sink = sink or LoggerSink()
        self._clock = clock

    def now(self) -> float:
        """Current monotonic tick in seconds."""
        return self._clock()

    def record(
        self,
        method: str,
        path: str,
        request_body: str | None,
        status_code: int,
        response_body: str | None,
        start: float,
        finish: float,
    ) -> CallTiming:
        """Record a call that got a response."""
        timing = CallTiming(
            method=method,
            path=path,
            request_body=request_body,
            status_code=status_code,
            response_body=response_body,
            start=start,
            finish=finish,
        )
        self._emit(logging.DEBUG, timing)
        return timing

    def record_failure(
        self,
        method: str,
        path: str,
        request_body: str | None,
        error: BaseException,
        start: float,
    ) -> CallTiming:
        """Record a call that got no response. Status is logged as 0."""
        timing = CallTiming(
            method=method,
            path=path,
            request_body=request_body,
            status_code=0,
            error=error,
            start=start,
            finish=self._clock(),
        )
        self._emit(logging.ERROR, timing)
        return timing

    def _emit(self, level: int, timing: CallTiming) -> None:
        fields: dict[str, Any] = {
            "dependency": timing.dependency,
            "request_method": timing.method,
            "request_path": timing.path,
            "status_code": timing.status_code,
            "elapsed_ms": timing.elapsed_ms,
        }
        if timing.request_body:
            fields["request_body"] = timing.request_body
        if timing.response_body:
            fields["response_body"] = timing.response_body
        if timing.error is not None:
            fields["error"] = timing.error

        args = (
            DEPENDENCY_LABEL,
            timing.method,
            timing.path,
            timing.status_code,
            timing.elapsed_ms,
        )
        self._sink(level, MESSAGE_TEMPLATE, args, fields, timing.error)
