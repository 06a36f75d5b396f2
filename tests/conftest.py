from __future__ import annotations

import asyncio
from collections.abc import Callable

import httpx
import pytest

from walletcache import VirtualClock

from server.client import WalletAPIClient

BASE_URL = "https://wallet.test"


class FakeFetch:
    """Scripted fetch function.

    Returns (or raises) ``results`` in order and keeps repeating the last
    one. Set ``gate`` to hold every call until the event is set.
    """

    def __init__(self, *results: object) -> None:
        self.results = list(results)
        self.calls = 0
        self.gate: asyncio.Event | None = None

    async def __call__(self) -> object:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


class RecordingHandler:
    """httpx.MockTransport handler keyed by path, recording every request."""

    def __init__(self, routes: dict[str, Callable[[httpx.Request], httpx.Response]]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404)
        return route(request)

    def count(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path == path)


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


@pytest.fixture
def make_client():
    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> WalletAPIClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return WalletAPIClient(http, BASE_URL)

    return factory


def json_route(payload: object, status_code: int = 200):
    def route(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=payload)

    return route
