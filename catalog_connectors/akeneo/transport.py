from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

import httpx

from .constants import DEFAULT_MAX_CONNECTIONS, DEFAULT_MAX_KEEPALIVE_CONNECTIONS
from .errors import AkeneoError, RateLimitError, error_class_for_status
from .redaction import mask_headers, mask_input, redact_text


# =========================================
# SECTION A — RESULT TYPES
# Why: the executor classifies failures on an explicit tag instead of
# poking at whatever exception object the HTTP library raised.
# =========================================
class FailureKind(str, Enum):
    CONNECTION = "connection"  # request never completed, no response
    STATUS = "status"  # response received with a non-2xx status
    UNEXPECTED = "unexpected"  # anything else (bad body, library bug, ...)


@dataclass(frozen=True)
class SentRequest:
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    params: Optional[Dict[str, Any]] = None
    json: Any = None

    def snapshot(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "method": self.method.lower(),
            "headers": mask_headers(self.headers),
            "params": mask_input(self.params),
            "data": mask_input(self.json),
        }


@dataclass(frozen=True)
class TransportResponse:
    status: int
    headers: Dict[str, str]
    content: bytes
    elapsed_ms: int = 0

    def json(self) -> Any:
        if not self.content:
            return None
        return json.loads(self.content)

    def body_for_snapshot(self) -> Any:
        try:
            return mask_input(self.json())
        except ValueError:
            return redact_text(self.content.decode("utf-8", errors="replace"))

    def snapshot(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "data": self.body_for_snapshot(),
            "headers": mask_headers(self.headers),
        }


@dataclass(frozen=True)
class TransportFailure:
    kind: FailureKind
    message: str
    request: SentRequest
    response: Optional[TransportResponse] = None
    code: Optional[str] = None
    cause: Optional[BaseException] = None

    @property
    def status(self) -> Optional[int]:
        return self.response.status if self.response is not None else None

    def snapshot(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "request": self.request.snapshot(),
            "response": self.response.snapshot() if self.response is not None else None,
        }

    def to_error(self, cls: Optional[type] = None, **extra: Any) -> AkeneoError:
        """
        Convert into the connector error taxonomy. Masking happens here, on a
        copy: the live request is never touched.
        """
        if cls is None:
            cls = AkeneoError if self.kind is FailureKind.UNEXPECTED else error_class_for_status(self.status)
        if issubclass(cls, RateLimitError):
            return cls(self.message, self.snapshot(), self.status, **extra)
        return cls(self.message, self.snapshot(), self.status)


TransportResult = Union[TransportResponse, TransportFailure]


# =========================================
# SECTION B — HTTPX ADAPTER
# =========================================
def build_async_client(timeout_s: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout_s),
        limits=httpx.Limits(
            max_connections=DEFAULT_MAX_CONNECTIONS,
            max_keepalive_connections=DEFAULT_MAX_KEEPALIVE_CONNECTIONS,
        ),
    )


def _clean_params(params: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    # None values are dropped; lists go out as repeated keys (httpx default)
    if not params:
        return None
    return {k: v for k, v in params.items() if v is not None}


class Transport:
    """
    Thin wrapper over httpx.AsyncClient returning a TransportResult.

    Only httpx transport-level exceptions are turned into CONNECTION failures.
    Anything else propagates to the caller, which tags it UNEXPECTED.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, *, timeout_s: float) -> None:
        self.timeout_s = timeout_s
        self._owns_client = client is None
        self._client = client or build_async_client(timeout_s)

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: Dict[str, str],
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
        timeout_s: Optional[float] = None,
    ) -> TransportResult:
        sent = SentRequest(method=method.upper(), url=url, headers=dict(headers), params=params, json=json_body)

        t0 = time.monotonic()
        try:
            resp = await self._client.request(
                sent.method,
                url,
                headers=headers,
                params=_clean_params(params),
                json=json_body,
                timeout=timeout_s if timeout_s is not None else self.timeout_s,
            )
        except httpx.TransportError as e:
            return TransportFailure(
                kind=FailureKind.CONNECTION,
                message=str(e) or type(e).__name__,
                request=sent,
                code=type(e).__name__,
                cause=e,
            )
        elapsed_ms = int((time.monotonic() - t0) * 1000)

        response = TransportResponse(
            status=resp.status_code,
            headers=dict(resp.headers),
            content=resp.content,
            elapsed_ms=elapsed_ms,
        )
        if resp.status_code >= 400:
            return TransportFailure(
                kind=FailureKind.STATUS,
                message=f"Request failed with status code {resp.status_code}",
                request=sent,
                response=response,
                code="ERR_BAD_RESPONSE" if resp.status_code >= 500 else "ERR_BAD_REQUEST",
            )
        return response
