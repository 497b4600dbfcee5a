from __future__ import annotations

import math
import random
from bisect import bisect_left
from itertools import accumulate
from typing import Sequence

from apiload.config.models import EndpointDescriptor
from apiload.errors import ConfigurationError


class WeightedSelector:
    """Pick endpoints with probability ``weight / sum(weights)``.

    The cumulative table is built once and never mutated, so one selector can
    be shared by every worker as long as each passes its own ``rng``.
    """

    __slots__ = ("endpoints", "_cumulative", "_total")

    def __init__(self, endpoints: Sequence[EndpointDescriptor]) -> None:
        if not endpoints:
            raise ConfigurationError("Endpoint catalog is empty")
        for endpoint in endpoints:
            if not math.isfinite(endpoint.weight) or endpoint.weight <= 0:
                msg = f"Endpoint {endpoint.key} has invalid weight {endpoint.weight!r}"
                raise ConfigurationError(msg)
        self.endpoints: tuple[EndpointDescriptor, ...] = tuple(endpoints)
        self._cumulative: tuple[float, ...] = tuple(accumulate(ep.weight for ep in self.endpoints))
        self._total = self._cumulative[-1]

    @property
    def total_weight(self) -> float:
        return self._total

    def probability(self, index: int) -> float:
        return self.endpoints[index].weight / self._total

    def select(self, rng: random.Random | None = None) -> EndpointDescriptor:
        r = (rng or random).random() * self._total
        idx = bisect_left(self._cumulative, r)
        if idx >= len(self.endpoints):
            return self.endpoints[-1]
        return self.endpoints[idx]
