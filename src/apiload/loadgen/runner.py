from __future__ import annotations

import asyncio
import logging
import random
import uuid
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Sequence

from apiload.config import EndpointCatalog, EndpointDescriptor, RunConfig, TargetConfig
from apiload.errors import ConfigurationError, RequestError, RequestTimeoutError, TransportError
from apiload.loadgen.auth import CredentialProvider, NoCredentials, auth_headers
from apiload.loadgen.client import HttpxTransport, Transport
from apiload.metrics import ErrorKind, MetricsAggregator, RequestOutcome, StatsSnapshot
from apiload.pacing import RampSchedule, WeightedSelector

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[StatsSnapshot], Awaitable[None]]


@dataclass(slots=True)
class WorkerState:
    worker_id: int
    started_at_ms: float
    last_dispatch_ms: float
    pacing_interval_ms: float = 0.0


def _new_run_id() -> str:
    return uuid.uuid4().hex


async def run_scenario(
    config: RunConfig,
    catalog: EndpointCatalog,
    credentials: CredentialProvider | None = None,
    progress: ProgressCallback | None = None,
    stop: asyncio.Event | None = None,
) -> StatsSnapshot:
    """Run ``config`` against its target over a pooled httpx transport."""
    endpoints = catalog.list_endpoints()
    async with HttpxTransport(max_connections=config.scenario.worker_count * 2) as transport:
        return await run_load_test(
            config,
            endpoints,
            transport,
            credentials=credentials,
            progress=progress,
            stop=stop,
        )


async def run_load_test(
    config: RunConfig,
    endpoints: Sequence[EndpointDescriptor],
    transport: Transport,
    *,
    credentials: CredentialProvider | None = None,
    progress: ProgressCallback | None = None,
    stop: asyncio.Event | None = None,
    aggregator: MetricsAggregator | None = None,
) -> StatsSnapshot:
    """Drive ``transport`` with the configured scenario and return the final snapshot.

    The run ends after ``scenario.duration_s`` or as soon as ``stop`` is set.
    Workers then get ``drain_timeout_s`` to finish their in-flight request;
    anything still outstanding is cancelled and never recorded.
    """
    if config.run_id is None:
        config = replace(config, run_id=_new_run_id())
    credentials = credentials or NoCredentials()
    active = _usable_endpoints(endpoints, credentials)
    selector = WeightedSelector(active)
    schedule = RampSchedule(config.per_worker_rate(), config.scenario.ramp_up_s)
    if aggregator is None:
        aggregator = MetricsAggregator(
            active,
            max_samples=config.max_latency_samples,
            max_endpoint_samples=config.max_endpoint_latency_samples,
            seed=config.seed,
        )
    stop_event = stop or asyncio.Event()
    scenario = config.scenario
    logger.info(
        f"Run {config.run_id}: {scenario.name} against {config.target.base_url} | "
        f"workers={scenario.worker_count} target_rate={scenario.target_rate} req/s "
        f"({config.rate_mode.value}) ramp_up={scenario.ramp_up_s}s duration={scenario.duration_s}s"
    )

    started_ms = aggregator.now_ms()
    worker_count = scenario.worker_count
    workers = [
        asyncio.create_task(
            _worker(
                WorkerState(
                    worker_id=i,
                    started_at_ms=started_ms,
                    # stagger phases across one steady interval
                    last_dispatch_ms=-(i / worker_count) * schedule.steady_interval_ms,
                ),
                selector=selector,
                schedule=schedule,
                transport=transport,
                target=config.target,
                credentials=credentials,
                aggregator=aggregator,
                stop=stop_event,
                rng=random.Random(config.seed * 1_000_003 + i),
            ),
            name=f"apiload-worker-{i}",
        )
        for i in range(worker_count)
    ]
    reporter = None
    if progress is not None:
        reporter = asyncio.create_task(
            _report_progress(aggregator, progress, stop_event, config.progress_interval_s)
        )
    try:
        if await _stopped_within(stop_event, scenario.duration_s):
            logger.info("Stop requested before the scheduled end of the run")
    finally:
        stop_event.set()
        await _drain(workers, config.drain_timeout_s)
        if reporter is not None:
            await asyncio.gather(reporter, return_exceptions=True)
        aggregator.close()

    snapshot = aggregator.snapshot()
    logger.info(
        f"Run {config.run_id} finished: requests={snapshot.total_requests} "
        f"responses={snapshot.total_responses} errors={snapshot.total_errors} "
        f"error_rate={snapshot.error_rate:.2f}% mean={snapshot.response_time.mean:.1f}ms "
        f"p95={snapshot.response_time.p95:.1f}ms"
    )
    return snapshot


async def dispatch_once(
    endpoint: EndpointDescriptor,
    transport: Transport,
    aggregator: MetricsAggregator,
    target: TargetConfig,
    credentials: CredentialProvider | None = None,
) -> RequestOutcome:
    """Send one request and record it. Failures become error outcomes; nothing is retried."""
    key = endpoint.key
    headers = {**target.headers, **auth_headers(endpoint, credentials or NoCredentials())}
    aggregator.record_dispatch(key)
    start_ms = aggregator.now_ms()
    try:
        response = await asyncio.wait_for(
            transport.send(endpoint.method, target.url_for(endpoint), headers, target.timeout_s * 1000.0),
            timeout=target.timeout_s,
        )
    except asyncio.TimeoutError:
        timeout = RequestTimeoutError("Request timeout", aggregator.now_ms() - start_ms)
        outcome = _error_outcome(key, timeout, aggregator.now_ms())
    except RequestError as exc:
        outcome = _error_outcome(key, exc, aggregator.now_ms())
    except Exception as exc:
        # any other failure still counts as one transport error
        logger.debug(f"Unexpected {type(exc).__name__} from transport for {key}", exc_info=exc)
        failure = TransportError(type(exc).__name__, aggregator.now_ms() - start_ms)
        outcome = _error_outcome(key, failure, aggregator.now_ms())
    else:
        failed = response.status_code >= 400
        outcome = RequestOutcome(
            endpoint_key=key,
            status_code=response.status_code,
            response_time_ms=response.response_time_ms,
            byte_size=response.byte_length,
            error_kind=ErrorKind.APPLICATION if failed else None,
            error_message=f"HTTP {response.status_code}" if failed else None,
            timestamp_ms=aggregator.now_ms(),
        )
    aggregator.record_outcome(outcome)
    return outcome


def format_progress(snapshot: StatsSnapshot, total_duration_s: float) -> str:
    remaining = max(0.0, total_duration_s - snapshot.duration_s)
    return (
        f"Progress: {snapshot.duration_s:.0f}s/{total_duration_s:.0f}s | "
        f"Requests: {snapshot.total_requests:,} | "
        f"Rate: {snapshot.responses_per_second:.1f} req/s | "
        f"Errors: {snapshot.error_rate:.2f}% | "
        f"Avg RT: {snapshot.response_time.mean:.0f}ms | "
        f"Remaining: {remaining:.0f}s"
    )


async def _worker(
    state: WorkerState,
    *,
    selector: WeightedSelector,
    schedule: RampSchedule,
    transport: Transport,
    target: TargetConfig,
    credentials: CredentialProvider,
    aggregator: MetricsAggregator,
    stop: asyncio.Event,
    rng: random.Random,
) -> None:
    logger.debug(f"Worker {state.worker_id} started")
    while not stop.is_set():
        due_ms = schedule.next_send_ms(state.last_dispatch_ms)
        state.pacing_interval_ms = due_ms - state.last_dispatch_ms
        delay_s = (state.started_at_ms + due_ms - aggregator.now_ms()) / 1000.0
        if delay_s > 0 and await _stopped_within(stop, delay_s):
            break
        # closed loop: the next due time counts from the actual dispatch
        state.last_dispatch_ms = aggregator.now_ms() - state.started_at_ms
        endpoint = selector.select(rng)
        await dispatch_once(endpoint, transport, aggregator, target, credentials)
    logger.debug(f"Worker {state.worker_id} stopped")


async def _report_progress(
    aggregator: MetricsAggregator,
    progress: ProgressCallback,
    stop: asyncio.Event,
    interval_s: float,
) -> None:
    while not await _stopped_within(stop, interval_s):
        await progress(aggregator.snapshot())


async def _drain(workers: list[asyncio.Task[None]], timeout_s: float) -> None:
    if not workers:
        return
    _, pending = await asyncio.wait(workers, timeout=timeout_s)
    if pending:
        logger.warning(
            f"Abandoning {len(pending)} in-flight request(s) after {timeout_s:.1f}s drain timeout"
        )
        for task in pending:
            task.cancel()
    results = await asyncio.gather(*workers, return_exceptions=True)
    for task, result in zip(workers, results):
        if isinstance(result, Exception):
            logger.error(f"{task.get_name()} failed", exc_info=result)


async def _stopped_within(stop: asyncio.Event, timeout_s: float) -> bool:
    """Wait up to ``timeout_s`` for ``stop``; True if it was set."""
    try:
        await asyncio.wait_for(stop.wait(), timeout=timeout_s)
    except asyncio.TimeoutError:
        return False
    return True


def _usable_endpoints(
    endpoints: Sequence[EndpointDescriptor],
    credentials: CredentialProvider,
) -> list[EndpointDescriptor]:
    if credentials.token() is not None:
        return list(endpoints)
    usable = [ep for ep in endpoints if not ep.requires_auth]
    skipped = len(endpoints) - len(usable)
    if skipped:
        logger.warning(f"No credentials supplied: skipping {skipped} endpoint(s) that require auth")
    if not usable:
        raise ConfigurationError("No endpoints left to exercise without credentials")
    return usable


def _error_outcome(key: str, error: RequestError, timestamp_ms: float) -> RequestOutcome:
    return RequestOutcome(
        endpoint_key=key,
        status_code=None,
        response_time_ms=error.response_time_ms,
        byte_size=0,
        error_kind=error.kind,
        error_message=error.message,
        timestamp_ms=timestamp_ms,
    )
