from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from apiload.config.models import EndpointDescriptor


class CredentialProvider(Protocol):
    def token(self) -> str | None:
        ...


@dataclass(frozen=True, slots=True)
class NoCredentials:
    def token(self) -> str | None:
        return None


@dataclass(frozen=True, slots=True)
class StaticToken:
    value: str

    def token(self) -> str | None:
        return self.value or None


def auth_headers(endpoint: EndpointDescriptor, credentials: CredentialProvider) -> dict[str, str]:
    if not endpoint.requires_auth:
        return {}
    token = credentials.token()
    if token is None:
        return {}
    return {"Authorization": f"Bearer {token}"}
