from __future__ import annotations

from dataclasses import asdict, dataclass, fields

import pandas as pd

from apiload.metrics import StatsSnapshot, TimeSeriesSample

COLUMNS = [f.name for f in fields(TimeSeriesSample)]


@dataclass(frozen=True, slots=True)
class SignalWindow:
    start_s: float
    end_s: float
    label: str


def time_series_frame(snapshot: StatsSnapshot) -> pd.DataFrame:
    return pd.DataFrame([asdict(sample) for sample in snapshot.time_series], columns=COLUMNS)


def overload_indicator(frame: pd.DataFrame) -> list[SignalWindow]:
    """Buckets where throughput drops while the error rate climbs."""
    windows: list[SignalWindow] = []
    if frame.empty:
        return windows
    falling = frame["throughput"].diff() < 0
    errors = frame["error_rate"].diff() > 0
    for idx in frame.index[(falling & errors).fillna(False)]:
        windows.append(_window(frame, idx, "overload"))
    return windows


def latency_degradation_indicator(frame: pd.DataFrame, flat_pct: float = 0.05) -> list[SignalWindow]:
    """Buckets where mean latency rises at roughly constant throughput (queueing)."""
    windows: list[SignalWindow] = []
    if frame.empty:
        return windows
    rising = frame["avg_response_time_ms"].diff() > 0
    previous = frame["throughput"].shift(1)
    flat = (frame["throughput"] - previous).abs() <= previous * flat_pct
    for idx in frame.index[(rising & flat).fillna(False)]:
        windows.append(_window(frame, idx, "latency_degradation"))
    return windows


def _window(frame: pd.DataFrame, idx: int, label: str) -> SignalWindow:
    start = float(frame.loc[idx, "offset_s"])
    return SignalWindow(start, start + float(frame.loc[idx, "span_s"]), label)
