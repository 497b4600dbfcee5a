from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Iterable

from apiload.metrics.models import (
    EndpointStats,
    RequestOutcome,
    StatsSnapshot,
    TimeSeriesSample,
)
from apiload.metrics.reservoir import LatencyReservoir

if TYPE_CHECKING:
    from apiload.config.models import EndpointDescriptor

logger = logging.getLogger(__name__)

BUCKET_WIDTH_MS = 5000.0
# floor for the span used to turn a bucket's count into a rate
MIN_BUCKET_SPAN_S = 1.0


@dataclass(slots=True)
class _Bucket:
    opened_at_ms: float
    closed_at_ms: float | None = None
    requests: int = 0
    responses: int = 0
    errors: int = 0
    mean_response_ms: float = 0.0

    def add(self, outcome: RequestOutcome) -> None:
        self.requests += 1
        if outcome.is_error:
            self.errors += 1
        if outcome.has_response:
            self.responses += 1
            self.mean_response_ms += (outcome.response_time_ms - self.mean_response_ms) / self.responses

    def span_s(self, now_ms: float) -> float:
        end = self.closed_at_ms if self.closed_at_ms is not None else now_ms
        return max(MIN_BUCKET_SPAN_S, (end - self.opened_at_ms) / 1000.0)

    def throughput(self, now_ms: float) -> float:
        return self.responses / self.span_s(now_ms)

    def error_rate(self) -> float:
        if not self.requests:
            return 0.0
        return self.errors / self.requests * 100.0

    def sample(self, started_ms: float, now_ms: float) -> TimeSeriesSample:
        return TimeSeriesSample(
            offset_s=(self.opened_at_ms - started_ms) / 1000.0,
            span_s=self.span_s(now_ms),
            requests=self.requests,
            responses=self.responses,
            errors=self.errors,
            avg_response_time_ms=self.mean_response_ms,
            throughput=self.throughput(now_ms),
            error_rate=self.error_rate(),
        )


@dataclass(slots=True)
class _Series:
    buckets: list[_Bucket] = field(default_factory=list)

    def add(self, outcome: RequestOutcome) -> _Bucket | None:
        """Add an outcome, returning the bucket it closed, if any."""
        ts = outcome.timestamp_ms
        current = self.buckets[-1] if self.buckets else None
        closed = None
        if current is None or ts - current.opened_at_ms > BUCKET_WIDTH_MS:
            if current is not None:
                current.closed_at_ms = ts
                closed = current
            current = _Bucket(opened_at_ms=ts)
            self.buckets.append(current)
        current.add(outcome)
        return closed

    def close(self, now_ms: float) -> _Bucket | None:
        if self.buckets and self.buckets[-1].closed_at_ms is None:
            self.buckets[-1].closed_at_ms = max(now_ms, self.buckets[-1].opened_at_ms)
            return self.buckets[-1]
        return None

    def samples(self, started_ms: float, now_ms: float) -> tuple[TimeSeriesSample, ...]:
        return tuple(bucket.sample(started_ms, now_ms) for bucket in self.buckets)


@dataclass(slots=True)
class _EndpointMetrics:
    key: str
    name: str
    latencies: LatencyReservoir
    requests: int = 0
    responses: int = 0
    errors: int = 0
    total_bytes: int = 0
    status_codes: Counter[int] = field(default_factory=Counter)
    series: _Series = field(default_factory=_Series)

    def stats(self, started_ms: float, now_ms: float, duration_s: float) -> EndpointStats:
        return EndpointStats(
            key=self.key,
            name=self.name,
            requests=self.requests,
            responses=self.responses,
            errors=self.errors,
            error_rate=_pct(self.errors, self.requests),
            total_bytes=self.total_bytes,
            bytes_per_second=_per_second(self.total_bytes, duration_s),
            response_time=self.latencies.distribution(),
            status_codes=dict(sorted(self.status_codes.items())),
            time_series=self.series.samples(started_ms, now_ms),
        )


class MetricsAggregator:
    """Concurrency-safe sink for request outcomes from every worker.

    A single lock guards all state. ``record_dispatch`` counts a request when
    it is sent; ``record_outcome`` folds in its result. ``snapshot`` is a pure
    read. After ``close`` the end time is frozen and late outcomes are dropped.
    """

    def __init__(
        self,
        endpoints: Iterable[EndpointDescriptor] = (),
        *,
        max_samples: int | None = 200_000,
        max_endpoint_samples: int | None = 50_000,
        seed: int | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        self._seed = seed
        self._max_endpoint_samples = max_endpoint_samples
        self._started_ms = self.now_ms()
        self._ended_ms: float | None = None

        self._endpoints: dict[str, _EndpointMetrics] = {}
        self._total_requests = 0
        self._completed = 0
        self._total_responses = 0
        self._total_errors = 0
        self._total_bytes = 0
        self._latencies = LatencyReservoir(max_samples, seed=seed)
        self._status_codes: Counter[int] = Counter()
        self._error_types: Counter[str] = Counter()
        self._error_kinds: Counter[str] = Counter()
        self._series = _Series()
        self._peak_response_time = 0.0
        self._peak_throughput = 0.0
        self._peak_error_rate = 0.0

        for endpoint in endpoints:
            self._endpoint(endpoint.key, endpoint.name)

    def now_ms(self) -> float:
        return self._clock() * 1000.0

    @property
    def started_ms(self) -> float:
        return self._started_ms

    @property
    def closed(self) -> bool:
        return self._ended_ms is not None

    def record_dispatch(self, endpoint_key: str) -> None:
        with self._lock:
            if self._ended_ms is not None:
                return
            self._total_requests += 1
            self._endpoint(endpoint_key).requests += 1

    def record_outcome(self, outcome: RequestOutcome) -> bool:
        with self._lock:
            if self._ended_ms is not None:
                logger.debug(f"Dropping late outcome for {outcome.endpoint_key} after close")
                return False
            ep = self._endpoint(outcome.endpoint_key)
            self._completed += 1
            if outcome.has_response:
                self._total_responses += 1
                self._total_bytes += outcome.byte_size
                self._latencies.add(outcome.response_time_ms)
                self._status_codes[outcome.status_code] += 1
                ep.responses += 1
                ep.total_bytes += outcome.byte_size
                ep.latencies.add(outcome.response_time_ms)
                ep.status_codes[outcome.status_code] += 1
                if outcome.response_time_ms > self._peak_response_time:
                    self._peak_response_time = outcome.response_time_ms
            if outcome.error_kind is not None:
                self._total_errors += 1
                self._error_types[outcome.error_message or outcome.error_kind.value] += 1
                self._error_kinds[outcome.error_kind.value] += 1
                ep.errors += 1
            ep.series.add(outcome)
            closed = self._series.add(outcome)
            if closed is not None:
                self._track_peaks(closed)
            return True

    def close(self) -> None:
        with self._lock:
            if self._ended_ms is not None:
                return
            self._ended_ms = self.now_ms()
            closed = self._series.close(self._ended_ms)
            if closed is not None:
                self._track_peaks(closed)
            for ep in self._endpoints.values():
                ep.series.close(self._ended_ms)
        logger.debug(f"Metrics aggregator closed after {self._total_requests} requests")

    def snapshot(self, now_ms: float | None = None) -> StatsSnapshot:
        with self._lock:
            if self._ended_ms is not None:
                now = self._ended_ms
            else:
                now = self.now_ms() if now_ms is None else now_ms
            duration_s = max(0.0, (now - self._started_ms) / 1000.0)
            return StatsSnapshot(
                duration_s=duration_s,
                total_requests=self._total_requests,
                total_responses=self._total_responses,
                total_errors=self._total_errors,
                total_bytes=self._total_bytes,
                in_flight=self._total_requests - self._completed,
                requests_per_second=_per_second(self._total_requests, duration_s),
                responses_per_second=_per_second(self._total_responses, duration_s),
                error_rate=_pct(self._total_errors, self._total_requests),
                bytes_per_second=_per_second(self._total_bytes, duration_s),
                peak_response_time_ms=self._peak_response_time,
                peak_throughput=self._peak_throughput,
                peak_error_rate=self._peak_error_rate,
                response_time=self._latencies.distribution(),
                status_codes=dict(sorted(self._status_codes.items())),
                error_types=dict(self._error_types),
                error_kinds=dict(self._error_kinds),
                endpoints=tuple(
                    ep.stats(self._started_ms, now, duration_s) for ep in self._endpoints.values()
                ),
                time_series=self._series.samples(self._started_ms, now),
            )

    def _endpoint(self, key: str, name: str = "") -> _EndpointMetrics:
        ep = self._endpoints.get(key)
        if ep is None:
            seed = None if self._seed is None else self._seed + len(self._endpoints) + 1
            ep = _EndpointMetrics(
                key=key,
                name=name or key,
                latencies=LatencyReservoir(self._max_endpoint_samples, seed=seed),
            )
            self._endpoints[key] = ep
        return ep

    def _track_peaks(self, bucket: _Bucket) -> None:
        # closed buckets have a fixed span, so now_ms is unused here
        throughput = bucket.throughput(bucket.opened_at_ms)
        if throughput > self._peak_throughput:
            self._peak_throughput = throughput
        error_rate = bucket.error_rate()
        if error_rate > self._peak_error_rate:
            self._peak_error_rate = error_rate


def _pct(part: int, whole: int) -> float:
    if not whole:
        return 0.0
    return part / whole * 100.0


def _per_second(count: float, duration_s: float) -> float:
    if duration_s <= 0:
        return 0.0
    return count / duration_s
