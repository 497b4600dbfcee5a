from __future__ import annotations

from apiload.config.catalog import DEFAULT_ENDPOINTS, EndpointCatalog, StaticCatalog, load_catalog
from apiload.config.models import (
    EndpointDescriptor,
    RateMode,
    RunConfig,
    ScenarioProfile,
    TargetConfig,
)
from apiload.config.scenarios import SCENARIOS, overrides_from_env, scenario_profile

__all__ = [
    "DEFAULT_ENDPOINTS",
    "EndpointCatalog",
    "EndpointDescriptor",
    "RateMode",
    "RunConfig",
    "SCENARIOS",
    "ScenarioProfile",
    "StaticCatalog",
    "TargetConfig",
    "load_catalog",
    "overrides_from_env",
    "scenario_profile",
]
