from __future__ import annotations

import random
import threading

import pytest

from apiload.config import EndpointDescriptor
from apiload.metrics import ErrorKind, MetricsAggregator, RequestOutcome

HEALTH = EndpointDescriptor("GET", "/health", 1, name="Health Check")
ORDERS = EndpointDescriptor("POST", "/orders", 1)


def _ok(key: str, ms: float, at: float, status: int = 200, size: int = 100) -> RequestOutcome:
    failed = status >= 400
    return RequestOutcome(
        endpoint_key=key,
        status_code=status,
        response_time_ms=ms,
        byte_size=size,
        error_kind=ErrorKind.APPLICATION if failed else None,
        error_message=f"HTTP {status}" if failed else None,
        timestamp_ms=at,
    )


def _failed(key: str, at: float, kind: ErrorKind = ErrorKind.TRANSPORT, message: str = "Connection error") -> RequestOutcome:
    return RequestOutcome(key, None, 30.0, 0, kind, message, at)


def _record(agg: MetricsAggregator, outcome: RequestOutcome) -> None:
    agg.record_dispatch(outcome.endpoint_key)
    agg.record_outcome(outcome)


def test_counters_and_histograms(clock) -> None:
    agg = MetricsAggregator([HEALTH, ORDERS], clock=clock)
    _record(agg, _ok(HEALTH.key, 10, 0))
    _record(agg, _ok(HEALTH.key, 30, 1))
    _record(agg, _ok(ORDERS.key, 50, 2, status=503, size=20))
    _record(agg, _failed(ORDERS.key, 3))
    _record(agg, _failed(ORDERS.key, 4, ErrorKind.TIMEOUT, "Request timeout"))
    clock.advance_ms(2000)

    snap = agg.snapshot()
    assert snap.duration_s == 2.0
    assert snap.total_requests == 5
    assert snap.total_responses == 3
    assert snap.total_errors == 3
    assert snap.total_bytes == 220
    assert snap.in_flight == 0
    assert snap.error_rate == pytest.approx(60.0)
    assert snap.requests_per_second == 2.5
    assert snap.status_codes == {200: 2, 503: 1}
    assert snap.error_types == {"HTTP 503": 1, "Connection error": 1, "Request timeout": 1}
    assert snap.error_kinds == {"application": 1, "transport": 1, "timeout": 1}
    assert snap.response_time.count == 3
    assert snap.response_time.mean == 30.0
    assert snap.peak_response_time_ms == 50.0

    health, orders = snap.endpoints
    assert (health.key, health.name) == ("GET /health", "Health Check")
    assert (health.requests, health.responses, health.errors) == (2, 2, 0)
    assert (orders.requests, orders.responses, orders.errors) == (3, 1, 3)
    assert orders.error_rate == 100.0
    assert orders.status_codes == {503: 1}
    assert snap.total_errors == sum(ep.errors for ep in snap.endpoints)


def test_endpoint_order_follows_catalog_then_first_sight(clock) -> None:
    agg = MetricsAggregator([ORDERS, HEALTH], clock=clock)
    _record(agg, _ok("GET /late", 5, 0))
    assert [ep.key for ep in agg.snapshot().endpoints] == ["POST /orders", "GET /health", "GET /late"]


def test_requests_in_flight_are_counted_before_they_resolve(clock) -> None:
    agg = MetricsAggregator([HEALTH], clock=clock)
    agg.record_dispatch(HEALTH.key)
    agg.record_dispatch(HEALTH.key)
    agg.record_outcome(_ok(HEALTH.key, 12, 0))
    snap = agg.snapshot()
    assert snap.total_requests == 2
    assert snap.total_responses == 1
    assert snap.in_flight == 1
    assert snap.total_requests >= snap.total_responses


def test_buckets_open_lazily_after_five_seconds(clock) -> None:
    agg = MetricsAggregator([HEALTH], clock=clock)
    for at, ms in ((0, 10), (1000, 20), (5000, 30)):
        _record(agg, _ok(HEALTH.key, ms, at))
    assert len(agg.snapshot(now_ms=5000).time_series) == 1

    _record(agg, _ok(HEALTH.key, 100, 5001))
    _record(agg, _failed(HEALTH.key, 7000))
    clock.advance_ms(8000)
    series = agg.snapshot().time_series
    assert len(series) == 2
    first, second = series
    assert first.offset_s == 0.0
    assert first.span_s == pytest.approx(5.001)
    assert (first.requests, first.responses, first.errors) == (3, 3, 0)
    assert first.avg_response_time_ms == pytest.approx(20.0)
    assert second.offset_s == pytest.approx(5.001)
    assert (second.requests, second.responses, second.errors) == (2, 1, 1)
    assert second.avg_response_time_ms == 100.0
    assert second.error_rate == 50.0

    endpoint_series = agg.snapshot().endpoints[0].time_series
    assert [s.requests for s in endpoint_series] == [3, 2]


def test_peaks_update_on_bucket_close(clock) -> None:
    agg = MetricsAggregator([HEALTH], clock=clock)
    for at in range(0, 5000, 100):
        _record(agg, _ok(HEALTH.key, 10, at))
    assert agg.snapshot().peak_throughput == 0.0

    _record(agg, _failed(HEALTH.key, 6000))
    snap = agg.snapshot()
    assert snap.peak_throughput == pytest.approx(50 / 6.0)
    assert snap.peak_error_rate == 0.0

    clock.advance_ms(9000)
    agg.close()
    snap = agg.snapshot()
    assert snap.peak_error_rate == 100.0
    assert snap.peak_throughput == pytest.approx(50 / 6.0)


def test_snapshot_is_repeatable_without_ingestion(clock) -> None:
    agg = MetricsAggregator([HEALTH, ORDERS], clock=clock)
    rng = random.Random(5)
    for i in range(500):
        clock.advance_ms(20)
        key = HEALTH.key if i % 3 else ORDERS.key
        _record(agg, _ok(key, rng.uniform(5, 500), clock.now * 1000, status=rng.choice([200, 200, 404])))
    assert agg.snapshot() == agg.snapshot()
    before = agg.snapshot(now_ms=20_000)
    assert agg.snapshot(now_ms=20_000) == before


def test_close_freezes_state_and_drops_late_outcomes(clock) -> None:
    agg = MetricsAggregator([HEALTH], clock=clock)
    _record(agg, _ok(HEALTH.key, 10, 0))
    clock.advance_ms(1500)
    agg.close()
    frozen = agg.snapshot()
    clock.advance_ms(10_000)
    agg.record_dispatch(HEALTH.key)
    assert agg.record_outcome(_ok(HEALTH.key, 10, 11_500)) is False
    assert agg.closed
    assert agg.snapshot() == frozen
    assert frozen.duration_s == 1.5


def test_concurrent_ingestion_loses_no_updates() -> None:
    agg = MetricsAggregator([HEALTH, ORDERS])
    per_thread = 2_000

    def hammer(worker: int) -> None:
        key = HEALTH.key if worker % 2 else ORDERS.key
        for i in range(per_thread):
            agg.record_dispatch(key)
            if i % 10 == 0:
                agg.record_outcome(_failed(key, agg.now_ms()))
            else:
                agg.record_outcome(_ok(key, 5.0, agg.now_ms()))

    threads = [threading.Thread(target=hammer, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    snap = agg.snapshot()
    assert snap.total_requests == 8 * per_thread
    assert snap.total_errors == 8 * per_thread // 10
    assert snap.total_errors == sum(ep.errors for ep in snap.endpoints)
    assert snap.response_time.count == snap.total_responses


def test_to_dict_is_json_ready(clock) -> None:
    agg = MetricsAggregator([HEALTH], clock=clock)
    _record(agg, _ok(HEALTH.key, 10, 0, status=201))
    data = agg.snapshot().to_dict()
    assert data["status_codes"] == {"201": 1}
    assert data["endpoints"][0]["status_codes"] == {"201": 1}
    assert data["response_time"]["median"] == 10.0


def test_rankings(clock) -> None:
    agg = MetricsAggregator([HEALTH, ORDERS], clock=clock)
    _record(agg, _ok(HEALTH.key, 900, 0))
    _record(agg, _ok(ORDERS.key, 20, 0, status=500))
    _record(agg, _ok(ORDERS.key, 20, 0, status=500))
    _record(agg, _failed(HEALTH.key, 0))
    snap = agg.snapshot()
    assert [ep.key for ep in snap.most_error_prone()] == [ORDERS.key, HEALTH.key]
    assert [ep.key for ep in snap.slowest_endpoints(1)] == [HEALTH.key]
    assert snap.error_types_by_frequency() == [("HTTP 500", 2), ("Connection error", 1)]
