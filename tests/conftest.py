from __future__ import annotations

import asyncio
from typing import Mapping

import pytest

from apiload.errors import TransportError
from apiload.loadgen import TransportResponse


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0


class StubTransport:
    """Answers every request after ``delay_s``; fails every ``fail_every``-th call."""

    def __init__(
        self,
        delay_s: float = 0.005,
        status_code: int = 200,
        fail_every: int | None = None,
        byte_length: int = 128,
    ) -> None:
        self.delay_s = delay_s
        self.status_code = status_code
        self.fail_every = fail_every
        self.byte_length = byte_length
        self.calls = 0
        self.requests: list[tuple[str, str, dict[str, str]]] = []

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        timeout_ms: float,
    ) -> TransportResponse:
        self.calls += 1
        self.requests.append((method, url, dict(headers)))
        await asyncio.sleep(self.delay_s)
        if self.fail_every and self.calls % self.fail_every == 0:
            raise TransportError("Injected failure", self.delay_s * 1000.0)
        return TransportResponse(self.status_code, self.delay_s * 1000.0, self.byte_length)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_transport() -> type[StubTransport]:
    return StubTransport
