from __future__ import annotations

from apiload.metrics.models import ErrorKind


class LoadGenError(Exception):
    """Base class for every error raised by apiload."""


class ConfigurationError(LoadGenError, ValueError):
    """Invalid scenario, override or catalog. Raised before any worker starts."""


class RequestError(LoadGenError):
    kind: ErrorKind = ErrorKind.TRANSPORT

    def __init__(self, message: str, response_time_ms: float = 0.0) -> None:
        super().__init__(message)
        self.message = message
        self.response_time_ms = response_time_ms


class TransportError(RequestError):
    kind = ErrorKind.TRANSPORT


class RequestTimeoutError(RequestError):
    kind = ErrorKind.TIMEOUT
