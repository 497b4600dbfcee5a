from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from apiload.errors import ConfigurationError


class RateMode(str, Enum):
    GLOBAL = "global"
    PER_WORKER = "per_worker"


@dataclass(frozen=True, slots=True)
class ScenarioProfile:
    name: str
    description: str
    duration_s: float
    worker_count: int
    target_rate: float
    ramp_up_s: float = 0.0

    def __post_init__(self) -> None:
        if not _finite(self.duration_s) or self.duration_s <= 0:
            raise ConfigurationError(f"duration must be positive, got {self.duration_s!r}")
        if isinstance(self.worker_count, bool) or not isinstance(self.worker_count, int):
            raise ConfigurationError(f"worker count must be an integer, got {self.worker_count!r}")
        if self.worker_count < 1:
            raise ConfigurationError(f"worker count must be at least 1, got {self.worker_count}")
        if not _finite(self.target_rate) or self.target_rate <= 0:
            raise ConfigurationError(f"target rate must be positive, got {self.target_rate!r}")
        if not _finite(self.ramp_up_s) or self.ramp_up_s < 0:
            raise ConfigurationError(f"ramp-up must be zero or positive, got {self.ramp_up_s!r}")


@dataclass(frozen=True, slots=True)
class EndpointDescriptor:
    method: str
    path: str
    weight: float
    requires_auth: bool = False
    name: str = ""

    @property
    def key(self) -> str:
        return f"{self.method.upper()} {self.path}"


@dataclass(frozen=True, slots=True)
class TargetConfig:
    base_url: str
    timeout_s: float = 30.0
    headers: Mapping[str, str] = field(
        default_factory=lambda: {
            "User-Agent": "apiload/0.1",
            "Accept": "application/json",
        }
    )

    def url_for(self, endpoint: EndpointDescriptor) -> str:
        return self.base_url.rstrip("/") + "/" + endpoint.path.lstrip("/")


@dataclass(frozen=True, slots=True)
class RunConfig:
    target: TargetConfig
    scenario: ScenarioProfile
    rate_mode: RateMode = RateMode.GLOBAL
    drain_timeout_s: float = 3.0
    progress_interval_s: float = 1.0
    seed: int = 7
    max_latency_samples: int | None = 200_000
    max_endpoint_latency_samples: int | None = 50_000
    run_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if not _finite(self.drain_timeout_s) or self.drain_timeout_s < 0:
            raise ConfigurationError(f"drain timeout must be zero or positive, got {self.drain_timeout_s!r}")
        if not _finite(self.progress_interval_s) or self.progress_interval_s <= 0:
            raise ConfigurationError(
                f"progress interval must be positive, got {self.progress_interval_s!r}"
            )
        if not _finite(self.target.timeout_s) or self.target.timeout_s <= 0:
            raise ConfigurationError(f"request timeout must be positive, got {self.target.timeout_s!r}")
        if isinstance(self.seed, bool) or not isinstance(self.seed, int):
            raise ConfigurationError(f"seed must be an integer, got {self.seed!r}")
        for cap in (self.max_latency_samples, self.max_endpoint_latency_samples):
            if cap is not None and cap < 1:
                raise ConfigurationError(f"latency sample cap must be at least 1, got {cap}")

    def per_worker_rate(self) -> float:
        if self.rate_mode is RateMode.PER_WORKER:
            return self.scenario.target_rate
        return self.scenario.target_rate / self.scenario.worker_count

    def to_metadata(self) -> Mapping[str, Any]:
        return {
            "run_id": self.run_id or "",
            "created_at": self.created_at.isoformat(),
            "rate_mode": self.rate_mode.value,
            "drain_timeout_s": self.drain_timeout_s,
            "seed": self.seed,
            "scenario": {
                "name": self.scenario.name,
                "description": self.scenario.description,
                "duration_s": self.scenario.duration_s,
                "worker_count": self.scenario.worker_count,
                "target_rate": self.scenario.target_rate,
                "ramp_up_s": self.scenario.ramp_up_s,
            },
            "target": {
                "base_url": self.target.base_url,
                "timeout_s": self.target.timeout_s,
                "headers": dict(self.target.headers),
            },
            "latency_sample_caps": {
                "global": self.max_latency_samples,
                "endpoint": self.max_endpoint_latency_samples,
            },
        }


def _finite(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)
