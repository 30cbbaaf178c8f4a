"""Pytest fixtures: a scripted fake Akeneo server on top of httpx.MockTransport."""

import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

import httpx
import pytest

from catalog_connectors.akeneo import AkeneoClient
from catalog_connectors.runtime.events import use_emitter

ENDPOINT = "https://test-endpoint"
TOKEN_URL = f"{ENDPOINT}/api/oauth/v1/token"
REST = f"{ENDPOINT}/api/rest/v1"

FIXED_NOW = datetime(2020, 2, 21, 16, 46, 42, tzinfo=timezone.utc)

Reply = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


def json_response(status: int, body: Any = None, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
    if body is None:
        return httpx.Response(status, headers=headers)
    return httpx.Response(status, json=body, headers=headers)


def token_response(access_token: str = "test-access-token", expires_in: int = 3600) -> httpx.Response:
    return json_response(
        200,
        {"access_token": access_token, "refresh_token": "test-refresh-token", "expires_in": expires_in},
    )


class FakeAkeneo:
    """
    Scripted server. Each (method, url-without-query) key holds a FIFO of
    replies; the token endpoint hands out a fresh token per call by default.
    """

    def __init__(self) -> None:
        self.routes: Dict[tuple, List[Reply]] = {}
        self.requests: List[httpx.Request] = []
        self.token_calls = 0
        self.token_replies: List[Reply] = []

    def add(self, method: str, url: str, *replies: Reply) -> "FakeAkeneo":
        self.routes.setdefault((method.upper(), url), []).extend(replies)
        return self

    def calls(self, method: str, url: str) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method.upper() and str(r.url).split("?")[0] == url
        ]

    def _reply(self, reply: Reply, request: httpx.Request) -> httpx.Response:
        if isinstance(reply, Exception):
            raise reply
        if callable(reply) and not isinstance(reply, httpx.Response):
            return reply(request)
        # fresh copy: the same scripted reply may be served more than once
        return httpx.Response(reply.status_code, headers=reply.headers, content=reply.content)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url).split("?")[0]

        if request.method == "POST" and url == TOKEN_URL:
            self.token_calls += 1
            if self.token_replies:
                return self._reply(self.token_replies.pop(0), request)
            return token_response(f"token-{self.token_calls}")

        queue = self.routes.get((request.method, url))
        if not queue:
            return json_response(404, {"code": 404, "message": f"No route for {request.method} {url}"})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        return self._reply(reply, request)

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


class RecordingSleep:
    """Stands in for asyncio.sleep; records requested delays in seconds."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.calls)


@pytest.fixture
def config() -> Dict[str, Any]:
    return {
        "endpoint": ENDPOINT,
        "username": "test-username",
        "password": "test-password",
        "client_id": "test-client-id",
        "client_secret": "test-client-secret",
    }


@pytest.fixture
def server() -> FakeAkeneo:
    return FakeAkeneo()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_client(config, server, sleeper):
    def _make(**overrides: Any) -> AkeneoClient:
        cfg = {**config, **overrides}
        return AkeneoClient(cfg, http_client=server.http_client(), sleep=sleeper, clock=lambda: FIXED_NOW)

    return _make


@pytest.fixture
def captured_events():
    events: List[Any] = []
    with use_emitter(events.append):
        yield events


def body_of(request: httpx.Request) -> Any:
    return json.loads(request.content) if request.content else None
