from __future__ import annotations

import math
from dataclasses import dataclass

from apiload.errors import ConfigurationError

# req/s floor used when the ramp puts the instantaneous rate at zero
MIN_RATE = 1e-3


@dataclass(frozen=True, slots=True)
class RampSchedule:
    """Linear ramp from zero to ``target_rate`` over ``ramp_up_s``, constant after.

    All times are milliseconds elapsed since the run started.
    """

    target_rate: float
    ramp_up_s: float = 0.0

    def __post_init__(self) -> None:
        if not math.isfinite(self.target_rate) or self.target_rate <= 0:
            raise ConfigurationError(f"target rate must be positive, got {self.target_rate!r}")
        if not math.isfinite(self.ramp_up_s) or self.ramp_up_s < 0:
            raise ConfigurationError(f"ramp-up must be zero or positive, got {self.ramp_up_s!r}")

    @property
    def ramp_ms(self) -> float:
        return self.ramp_up_s * 1000.0

    @property
    def steady_interval_ms(self) -> float:
        return 1000.0 / self.target_rate

    def rate_at(self, elapsed_ms: float) -> float:
        elapsed = max(0.0, elapsed_ms)
        if self.ramp_ms > 0 and elapsed < self.ramp_ms:
            return self.target_rate * elapsed / self.ramp_ms
        return self.target_rate

    def pacing_interval_ms(self, elapsed_ms: float) -> float:
        return 1000.0 / max(self.rate_at(elapsed_ms), MIN_RATE)

    def next_send_ms(self, last_dispatch_ms: float) -> float:
        """Earliest time ``t > last`` with ``t - last >= pacing_interval_ms(t)``.

        Inside the ramp the interval is ``1000 * T / (R * t)``, so the due time
        solves ``R*t**2 - R*last*t - 1000*T = 0``. Past the ramp it is simply
        ``last + 1000 / R``. Both branches meet at ``t = T``.
        """
        last = last_dispatch_ms
        steady = last + self.steady_interval_ms
        if self.ramp_ms <= 0:
            return steady
        ramp = self.ramp_ms
        due = (last + math.sqrt(last * last + 4000.0 * ramp / self.target_rate)) / 2.0
        if due <= ramp:
            return due
        return max(steady, ramp)
