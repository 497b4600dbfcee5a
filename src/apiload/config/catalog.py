from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, Sequence

from apiload.config.models import EndpointDescriptor
from apiload.errors import ConfigurationError


class EndpointCatalog(Protocol):
    def list_endpoints(self) -> Sequence[EndpointDescriptor]:
        ...


DEFAULT_ENDPOINTS: tuple[EndpointDescriptor, ...] = (
    EndpointDescriptor("GET", "/health", 15, name="Health Check"),
    EndpointDescriptor("GET", "/api/public/services", 20, name="Get Public Services"),
    EndpointDescriptor("GET", "/api/services", 12, name="Get Services"),
    EndpointDescriptor("GET", "/api/bookings", 10, requires_auth=True, name="Get User Bookings"),
    EndpointDescriptor(
        "GET", "/api/providers/bookings", 10, requires_auth=True, name="Get Provider Bookings"
    ),
    EndpointDescriptor(
        "GET", "/api/providers/profile", 8, requires_auth=True, name="Get Provider Profile"
    ),
    EndpointDescriptor("GET", "/api/earnings", 5, requires_auth=True, name="Get Earnings"),
    EndpointDescriptor(
        "GET", "/api/notifications", 12, requires_auth=True, name="Get Notifications"
    ),
)


@dataclass(frozen=True, slots=True)
class StaticCatalog:
    endpoints: tuple[EndpointDescriptor, ...] = DEFAULT_ENDPOINTS

    def list_endpoints(self) -> Sequence[EndpointDescriptor]:
        return self.endpoints


def load_catalog(path: str | Path) -> StaticCatalog:
    """Load a catalog from a JSON array of endpoint objects."""
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Cannot read endpoint catalog {path}: {exc}") from exc
    if not isinstance(raw, list):
        raise ConfigurationError(f"Endpoint catalog {path} must be a JSON array")
    return StaticCatalog(tuple(_coerce(item, idx) for idx, item in enumerate(raw)))


def _coerce(item: Any, idx: int) -> EndpointDescriptor:
    if not isinstance(item, dict):
        raise ConfigurationError(f"Catalog entry {idx} must be an object")
    try:
        return EndpointDescriptor(
            method=str(item.get("method", "GET")).upper(),
            path=str(item["path"]),
            weight=float(item["weight"]),
            requires_auth=bool(item.get("requires_auth", False)),
            name=str(item.get("name", "")),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Catalog entry {idx} is invalid: {exc}") from exc
