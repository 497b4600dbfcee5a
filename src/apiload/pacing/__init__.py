from __future__ import annotations

from apiload.pacing.ramp import MIN_RATE, RampSchedule
from apiload.pacing.selector import WeightedSelector

__all__ = ["MIN_RATE", "RampSchedule", "WeightedSelector"]
