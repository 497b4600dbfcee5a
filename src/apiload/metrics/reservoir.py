from __future__ import annotations

import math
from random import Random

import numpy as np

from apiload.metrics.models import ResponseTimeDistribution

EMPTY_DISTRIBUTION = ResponseTimeDistribution(
    count=0,
    min=0.0,
    max=0.0,
    mean=0.0,
    median=0.0,
    p75=0.0,
    p90=0.0,
    p95=0.0,
    p99=0.0,
    p999=0.0,
)


def percentile(sorted_values: np.ndarray | list[float], p: float) -> float:
    """Nearest-rank percentile: index ``ceil(p * n / 100) - 1`` clamped to the array.

    Always returns a member of ``sorted_values``, or 0.0 when it is empty.
    """
    n = len(sorted_values)
    if n == 0:
        return 0.0
    idx = math.ceil(p * n / 100) - 1
    idx = max(0, min(n - 1, idx))
    return float(sorted_values[idx])


class LatencyReservoir:
    """Response-time sample set with bounded memory.

    Keeps every sample until ``capacity`` is reached, then switches to uniform
    reservoir sampling (Algorithm R). Count, sum, min and max stay exact; the
    percentiles are computed over the retained sample, so beyond ``capacity``
    they are estimates whose error shrinks with the capacity. ``capacity=None``
    retains everything.
    """

    __slots__ = ("capacity", "count", "total", "minimum", "maximum", "_samples", "_rng")

    def __init__(self, capacity: int | None = None, seed: int | None = None) -> None:
        self.capacity = capacity
        self.count = 0
        self.total = 0.0
        self.minimum = math.inf
        self.maximum = 0.0
        self._samples: list[float] = []
        self._rng = Random(seed)

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value
        if value < self.minimum:
            self.minimum = value
        if value > self.maximum:
            self.maximum = value
        if self.capacity is None or len(self._samples) < self.capacity:
            self._samples.append(value)
            return
        slot = self._rng.randrange(self.count)
        if slot < self.capacity:
            self._samples[slot] = value

    @property
    def retained(self) -> int:
        return len(self._samples)

    def distribution(self) -> ResponseTimeDistribution:
        if self.count == 0:
            return EMPTY_DISTRIBUTION
        ordered = np.sort(np.asarray(self._samples, dtype=float))
        return ResponseTimeDistribution(
            count=self.count,
            min=self.minimum,
            max=self.maximum,
            mean=self.total / self.count,
            median=percentile(ordered, 50),
            p75=percentile(ordered, 75),
            p90=percentile(ordered, 90),
            p95=percentile(ordered, 95),
            p99=percentile(ordered, 99),
            p999=percentile(ordered, 99.9),
        )
