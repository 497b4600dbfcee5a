from __future__ import annotations

import os
from dataclasses import replace
from typing import Any, Mapping

from apiload.config.models import ScenarioProfile
from apiload.errors import ConfigurationError

SCENARIOS: Mapping[str, ScenarioProfile] = {
    "baseline": ScenarioProfile(
        name="Baseline Load Test",
        description="Normal production load simulation - typical user traffic patterns",
        duration_s=60,
        worker_count=50,
        target_rate=100,
        ramp_up_s=10,
    ),
    "spike": ScenarioProfile(
        name="Traffic Spike Test",
        description="Sudden traffic spike - resilience to sudden load increases",
        duration_s=120,
        worker_count=200,
        target_rate=500,
        ramp_up_s=5,
    ),
    "stress": ScenarioProfile(
        name="Stress Test",
        description="Maximum capacity testing - breaking points and system limits",
        duration_s=180,
        worker_count=500,
        target_rate=1000,
        ramp_up_s=15,
    ),
    "endurance": ScenarioProfile(
        name="Endurance Test",
        description="Long-running stability test over extended periods",
        duration_s=600,
        worker_count=100,
        target_rate=200,
        ramp_up_s=30,
    ),
    "soak": ScenarioProfile(
        name="Soak Test",
        description="Extended load for memory leak and resource exhaustion detection",
        duration_s=1800,
        worker_count=75,
        target_rate=150,
        ramp_up_s=60,
    ),
}

# environment variable -> (override key, parser)
_ENV_NUMERIC = {
    "APILOAD_DURATION": ("duration_s", float),
    "APILOAD_WORKERS": ("worker_count", int),
    "APILOAD_RATE": ("target_rate", float),
    "APILOAD_RAMP_UP": ("ramp_up_s", float),
}


def scenario_profile(
    name: str,
    duration_s: float | None = None,
    worker_count: int | None = None,
    target_rate: float | None = None,
    ramp_up_s: float | None = None,
) -> ScenarioProfile:
    try:
        base = SCENARIOS[name]
    except KeyError:
        known = ", ".join(sorted(SCENARIOS))
        msg = f"Unknown scenario {name!r} (expected one of: {known})"
        raise ConfigurationError(msg) from None
    overrides: dict[str, Any] = {
        key: value
        for key, value in (
            ("duration_s", duration_s),
            ("worker_count", worker_count),
            ("target_rate", target_rate),
            ("ramp_up_s", ramp_up_s),
        )
        if value is not None
    }
    # ScenarioProfile.__post_init__ validates the merged result
    return replace(base, **overrides)


def overrides_from_env(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Read scenario name, base URL and numeric overrides from the environment.

    Unset or empty variables are skipped. A value that does not parse as a
    number raises ConfigurationError.
    """
    env = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    if env.get("APILOAD_SCENARIO"):
        overrides["scenario"] = env["APILOAD_SCENARIO"]
    if env.get("APILOAD_BASE_URL"):
        overrides["base_url"] = env["APILOAD_BASE_URL"]
    for var, (key, parse) in _ENV_NUMERIC.items():
        raw = env.get(var)
        if not raw:
            continue
        try:
            overrides[key] = parse(raw)
        except ValueError:
            msg = f"{var} must be numeric, got {raw!r}"
            raise ConfigurationError(msg) from None
    return overrides
