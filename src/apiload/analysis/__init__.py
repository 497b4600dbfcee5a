from __future__ import annotations

from apiload.analysis.findings import Finding, Severity, assess
from apiload.analysis.signals import (
    SignalWindow,
    latency_degradation_indicator,
    overload_indicator,
    time_series_frame,
)

__all__ = [
    "Finding",
    "Severity",
    "SignalWindow",
    "assess",
    "latency_degradation_indicator",
    "overload_indicator",
    "time_series_frame",
]
