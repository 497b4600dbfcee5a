from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Mapping


class ErrorKind(str, Enum):
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    APPLICATION = "application"


@dataclass(frozen=True, slots=True)
class RequestOutcome:
    endpoint_key: str
    status_code: int | None
    response_time_ms: float
    byte_size: int
    error_kind: ErrorKind | None
    error_message: str | None
    timestamp_ms: float

    @property
    def is_error(self) -> bool:
        return self.error_kind is not None

    @property
    def has_response(self) -> bool:
        return self.status_code is not None


@dataclass(frozen=True, slots=True)
class ResponseTimeDistribution:
    count: int
    min: float
    max: float
    mean: float
    median: float
    p75: float
    p90: float
    p95: float
    p99: float
    p999: float


@dataclass(frozen=True, slots=True)
class TimeSeriesSample:
    """One 5 second bucket. ``offset_s`` is measured from the run start."""

    offset_s: float
    span_s: float
    requests: int
    responses: int
    errors: int
    avg_response_time_ms: float
    throughput: float
    error_rate: float


@dataclass(frozen=True, slots=True)
class EndpointStats:
    key: str
    name: str
    requests: int
    responses: int
    errors: int
    error_rate: float
    total_bytes: int
    bytes_per_second: float
    response_time: ResponseTimeDistribution
    status_codes: Mapping[int, int]
    time_series: tuple[TimeSeriesSample, ...]


@dataclass(frozen=True, slots=True)
class StatsSnapshot:
    duration_s: float
    total_requests: int
    total_responses: int
    total_errors: int
    total_bytes: int
    in_flight: int
    requests_per_second: float
    responses_per_second: float
    error_rate: float
    bytes_per_second: float
    peak_response_time_ms: float
    peak_throughput: float
    peak_error_rate: float
    response_time: ResponseTimeDistribution
    status_codes: Mapping[int, int]
    error_types: Mapping[str, int]
    error_kinds: Mapping[str, int]
    endpoints: tuple[EndpointStats, ...]
    time_series: tuple[TimeSeriesSample, ...]

    def error_types_by_frequency(self) -> list[tuple[str, int]]:
        return sorted(self.error_types.items(), key=lambda item: (-item[1], item[0]))

    def most_error_prone(self, limit: int = 5) -> list[EndpointStats]:
        failing = [ep for ep in self.endpoints if ep.errors > 0]
        failing.sort(key=lambda ep: (-ep.errors, -ep.error_rate, ep.key))
        return failing[:limit]

    def slowest_endpoints(self, limit: int = 5) -> list[EndpointStats]:
        answered = [ep for ep in self.endpoints if ep.response_time.count > 0]
        answered.sort(key=lambda ep: -ep.response_time.mean)
        return answered[:limit]

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        # JSON object keys must be strings
        data["status_codes"] = {str(code): count for code, count in self.status_codes.items()}
        for ep in data["endpoints"]:
            ep["status_codes"] = {str(code): count for code, count in ep["status_codes"].items()}
        return data
