from __future__ import annotations

from apiload.metrics.aggregator import BUCKET_WIDTH_MS, MetricsAggregator
from apiload.metrics.models import (
    EndpointStats,
    ErrorKind,
    RequestOutcome,
    ResponseTimeDistribution,
    StatsSnapshot,
    TimeSeriesSample,
)
from apiload.metrics.reservoir import LatencyReservoir, percentile

__all__ = [
    "BUCKET_WIDTH_MS",
    "EndpointStats",
    "ErrorKind",
    "LatencyReservoir",
    "MetricsAggregator",
    "RequestOutcome",
    "ResponseTimeDistribution",
    "StatsSnapshot",
    "TimeSeriesSample",
    "percentile",
]
