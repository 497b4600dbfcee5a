from __future__ import annotations

import logging
import sys

import pytest

from apiload.analysis import Finding, Severity
from apiload.cli import _build_parser, build_config, format_summary
from apiload.config import EndpointDescriptor, RateMode
from apiload.errors import ConfigurationError
from apiload.logging_config import setup_logging
from apiload.metrics import ErrorKind, MetricsAggregator, RequestOutcome


def _args(*argv: str):
    return _build_parser().parse_args(list(argv))


def test_cli_values_win_over_environment() -> None:
    env = {"scenario": "stress", "base_url": "http://env", "duration_s": 30.0, "worker_count": 8}
    config = build_config(_args("spike", "--target", "http://cli", "--workers", "3"), env)
    assert config.target.base_url == "http://cli"
    assert config.scenario.name == "Traffic Spike Test"
    assert config.scenario.worker_count == 3
    assert config.scenario.duration_s == 30.0


def test_environment_fills_missing_values() -> None:
    config = build_config(_args("--rate-mode", "per_worker"), {"base_url": "http://env", "target_rate": 4.0})
    assert config.scenario.name == "Baseline Load Test"
    assert config.scenario.target_rate == 4.0
    assert config.rate_mode is RateMode.PER_WORKER


def test_target_is_required() -> None:
    with pytest.raises(ConfigurationError, match="base URL"):
        build_config(_args("baseline"), {})


def test_summary_lists_findings_then_error_types(clock) -> None:
    endpoint = EndpointDescriptor("GET", "/health", 1)
    agg = MetricsAggregator([endpoint], clock=clock)
    for i, message in enumerate(["HTTP 503", "Request timeout", "HTTP 503", "HTTP 503"]):
        agg.record_dispatch(endpoint.key)
        kind = ErrorKind.APPLICATION if message.startswith("HTTP") else ErrorKind.TIMEOUT
        status = 503 if kind is ErrorKind.APPLICATION else None
        agg.record_outcome(RequestOutcome(endpoint.key, status, 10.0, 0, kind, message, i))
    finding = Finding(Severity.CRITICAL, "error_rate", "error rate 100.00% exceeds 5%")

    lines = format_summary(agg.snapshot(), [finding])
    assert lines == [
        "[CRITICAL] error_rate: error rate 100.00% exceeds 5%",
        "Top error types:",
        "  HTTP 503: 3 (75.0% of errors)",
        "  Request timeout: 1 (25.0% of errors)",
    ]
    assert format_summary(agg.snapshot(), [finding], top_errors=1)[-1].startswith("  HTTP 503")


def test_summary_without_errors(clock) -> None:
    assert format_summary(MetricsAggregator(clock=clock).snapshot(), []) == []


def test_setup_logging_writes_to_file(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    log_file = tmp_path / "run.log"
    logger = setup_logging("debug", log_file)
    try:
        logging.getLogger("apiload.loadgen.runner").info("run started")
        for handler in logger.handlers:
            handler.flush()
        assert logger.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
        assert "| INFO     | apiload.loadgen.runner" in log_file.read_text(encoding="utf-8")
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()


def test_setup_logging_rejects_unknown_level() -> None:
    with pytest.raises(ConfigurationError, match="log level"):
        setup_logging("chatty")
