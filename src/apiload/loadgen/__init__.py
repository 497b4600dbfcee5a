from __future__ import annotations

from apiload.loadgen.auth import CredentialProvider, NoCredentials, StaticToken
from apiload.loadgen.client import HttpxTransport, Transport, TransportResponse
from apiload.loadgen.runner import (
    ProgressCallback,
    WorkerState,
    dispatch_once,
    format_progress,
    run_load_test,
    run_scenario,
)

__all__ = [
    "CredentialProvider",
    "HttpxTransport",
    "NoCredentials",
    "ProgressCallback",
    "StaticToken",
    "Transport",
    "TransportResponse",
    "WorkerState",
    "dispatch_once",
    "format_progress",
    "run_load_test",
    "run_scenario",
]
