# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from collections import Counter
from typing import Callable, Dict, List, Optional

import httpx
import pytest

from linkembed.core.config import ServiceConfig
from linkembed.services.metadata_service import MetadataService
from linkembed.services.providers import UnknownMetadataProvider


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that returns immediately and records waits"""

    def __init__(self):
        self.waits: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


class RoutingHandler:
    """
    httpx.MockTransport handler dispatching on scheme, host and path.

    Route values are callables receiving the httpx.Request and returning an
    httpx.Response (or a coroutine resolving to one). Unknown URLs get 404.
    """

    def __init__(self, routes: Optional[Dict[str, Callable]] = None):
        self.routes: Dict[str, Callable] = dict(routes or {})
        self.calls: Counter = Counter()
        self.requests: List[httpx.Request] = []

    @staticmethod
    def key(request: httpx.Request) -> str:
        return f"{request.url.scheme}://{request.url.host}{request.url.path}"

    def __call__(self, request: httpx.Request):
        key = self.key(request)
        self.calls[key] += 1
        self.requests.append(request)
        route = self.routes.get(key)
        if route is None:
            return httpx.Response(404, text="not found")
        return route(request)

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())


def html_response(
    body: str, status_code: int = 200, headers: Optional[Dict[str, str]] = None
) -> Callable[[httpx.Request], httpx.Response]:
    all_headers = {"content-type": "text/html; charset=utf-8"}
    all_headers.update(headers or {})
    return lambda request: httpx.Response(
        status_code, headers=all_headers, content=body.encode("utf-8")
    )


def media_response(
    content_type: str, headers: Optional[Dict[str, str]] = None
) -> Callable[[httpx.Request], httpx.Response]:
    all_headers = {"content-type": content_type}
    all_headers.update(headers or {})
    return lambda request: httpx.Response(200, headers=all_headers, content=b"\x00\x01")


class ChunkedBody:
    """Async response body that counts how many chunks were pulled"""

    def __init__(self, chunks: List[bytes]):
        self.chunks = chunks
        self.served = 0

    async def __aiter__(self):
        for chunk in self.chunks:
            self.served += 1
            yield chunk


def streamed_response(
    content_type: str, body: ChunkedBody, sent: Optional[List[httpx.Response]] = None
) -> Callable[[httpx.Request], httpx.Response]:
    """Route answering with a chunked body; every response is kept in ``sent``"""

    def _respond(request: httpx.Request) -> httpx.Response:
        response = httpx.Response(
            200, headers={"content-type": content_type}, content=body
        )
        if sent is not None:
            sent.append(response)
        return response

    return _respond


def redirect_response(
    location: str, status_code: int = 301
) -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(status_code, headers={"location": location})


def status_response(status_code: int) -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(status_code)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_service(clock, sleeper):
    """
    Factory for services wired to a mock transport.

    Retries are disabled unless ``request_retry_count`` is passed, and the
    clock and sleep are the test fakes.
    """

    def _make(
        handler: RoutingHandler,
        providers=None,
        cache=None,
        **config_overrides,
    ) -> MetadataService:
        options = {"request_retry_count": 0}
        options.update(config_overrides)
        return MetadataService(
            providers=[UnknownMetadataProvider()] if providers is None else providers,
            cache=cache,
            config=ServiceConfig(**options),
            transport=httpx.MockTransport(handler),
            clock=clock,
            sleep=sleeper,
        )

    return _make
