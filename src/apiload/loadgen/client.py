from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Mapping, Protocol

import httpx

from apiload.errors import RequestTimeoutError, TransportError


@dataclass(frozen=True, slots=True)
class TransportResponse:
    status_code: int
    response_time_ms: float
    byte_length: int


class Transport(Protocol):
    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        timeout_ms: float,
    ) -> TransportResponse:
        """Send one request. Raises TransportError or RequestTimeoutError on failure."""
        ...


class HttpxTransport:
    """Transport on a pooled, keep-alive ``httpx.AsyncClient``."""

    def __init__(
        self,
        max_connections: int = 100,
        keepalive_expiry_s: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        limits = httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_connections,
            keepalive_expiry=keepalive_expiry_s,
        )
        self._client = httpx.AsyncClient(limits=limits, transport=transport)

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        timeout_ms: float,
    ) -> TransportResponse:
        start = time.perf_counter()
        try:
            resp = await self._client.request(
                method,
                url,
                headers=dict(headers),
                timeout=timeout_ms / 1000.0,
            )
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError("Request timeout", _elapsed_ms(start)) from exc
        except httpx.ConnectError as exc:
            raise TransportError("Connection error", _elapsed_ms(start)) from exc
        except httpx.ReadError as exc:
            raise TransportError("Read error", _elapsed_ms(start)) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransportError(type(exc).__name__, _elapsed_ms(start)) from exc
        return TransportResponse(
            status_code=resp.status_code,
            response_time_ms=_elapsed_ms(start),
            byte_length=len(resp.content or b""),
        )


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0
