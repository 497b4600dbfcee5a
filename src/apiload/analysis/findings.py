from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from apiload.analysis.signals import latency_degradation_indicator, overload_indicator, time_series_frame
from apiload.metrics import StatsSnapshot


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True, slots=True)
class Finding:
    severity: Severity
    metric: str
    message: str


SLOW_ENDPOINT_MS = 1000.0
PEAK_RESPONSE_MS = 5000.0


def assess(snapshot: StatsSnapshot, expected_rate: float) -> list[Finding]:
    """Grade a finished run against fixed thresholds and its bucket-to-bucket trends.

    ``expected_rate`` is the aggregate request rate the run aimed for.
    """
    findings: list[Finding] = []
    if snapshot.total_requests == 0:
        findings.append(Finding(Severity.CRITICAL, "total_requests", "no requests were sent"))
        return findings

    if snapshot.error_rate > 5:
        findings.append(
            Finding(Severity.CRITICAL, "error_rate", f"error rate {snapshot.error_rate:.2f}% exceeds 5%")
        )
    elif snapshot.error_rate > 1:
        findings.append(
            Finding(Severity.WARNING, "error_rate", f"error rate {snapshot.error_rate:.2f}% exceeds 1%")
        )
    elif snapshot.total_errors == 0:
        findings.append(Finding(Severity.INFO, "error_rate", "no errors recorded"))

    rt = snapshot.response_time
    if rt.mean > 500:
        findings.append(Finding(Severity.CRITICAL, "mean_ms", f"mean response time {rt.mean:.0f}ms exceeds 500ms"))
    elif rt.mean > 200:
        findings.append(Finding(Severity.WARNING, "mean_ms", f"mean response time {rt.mean:.0f}ms exceeds 200ms"))
    if rt.p95 > 1000:
        findings.append(Finding(Severity.CRITICAL, "p95_ms", f"p95 {rt.p95:.0f}ms exceeds 1000ms"))
    elif rt.p95 > 500:
        findings.append(Finding(Severity.WARNING, "p95_ms", f"p95 {rt.p95:.0f}ms exceeds 500ms"))
    if rt.p99 > 2000:
        findings.append(Finding(Severity.WARNING, "p99_ms", f"p99 {rt.p99:.0f}ms exceeds 2000ms"))

    if expected_rate > 0:
        achieved = snapshot.requests_per_second
        if achieved < expected_rate * 0.8:
            findings.append(
                Finding(
                    Severity.WARNING,
                    "throughput",
                    f"achieved {achieved:.1f} req/s, below 80% of the {expected_rate:.1f} req/s target",
                )
            )
        elif achieved >= expected_rate * 0.95:
            findings.append(
                Finding(Severity.INFO, "throughput", f"achieved {achieved:.1f} req/s of {expected_rate:.1f} target")
            )

    if snapshot.peak_response_time_ms > PEAK_RESPONSE_MS:
        findings.append(
            Finding(
                Severity.WARNING,
                "peak_response_time_ms",
                f"peak response time {snapshot.peak_response_time_ms:.0f}ms exceeds {PEAK_RESPONSE_MS:.0f}ms",
            )
        )

    for ep in snapshot.slowest_endpoints(limit=len(snapshot.endpoints)):
        if ep.response_time.mean <= SLOW_ENDPOINT_MS:
            break
        findings.append(
            Finding(
                Severity.WARNING,
                f"endpoint:{ep.key}",
                f"{ep.key} averages {ep.response_time.mean:.0f}ms (p95 {ep.response_time.p95:.0f}ms)",
            )
        )
    for ep in snapshot.most_error_prone(limit=len(snapshot.endpoints)):
        if ep.error_rate > 5:
            findings.append(
                Finding(Severity.CRITICAL, f"endpoint:{ep.key}", f"{ep.key} fails {ep.error_rate:.1f}% of requests")
            )

    frame = time_series_frame(snapshot)
    for window in overload_indicator(frame):
        findings.append(
            Finding(
                Severity.WARNING,
                "overload",
                f"throughput fell while errors rose between {window.start_s:.0f}s and {window.end_s:.0f}s",
            )
        )
    for window in latency_degradation_indicator(frame):
        findings.append(
            Finding(
                Severity.WARNING,
                "latency_degradation",
                f"latency rose at steady throughput between {window.start_s:.0f}s and {window.end_s:.0f}s",
            )
        )
    return findings
