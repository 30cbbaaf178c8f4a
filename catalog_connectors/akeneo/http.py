from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from .auth import TokenCache
from .backoff import calculate_delay, rate_limit_delay_ms
from .config import RetryPolicy
from .constants import REST_PATH, RETRYABLE_STATUS_CODES, TOO_MANY_REQUESTS
from .errors import AkeneoError, RateLimitError
from .events import error, info, warn
from .time_utils import ms_to_s
from .transport import FailureKind, SentRequest, Transport, TransportFailure, TransportResponse

Sleep = Callable[[float], Awaitable[None]]

# Caller headers may never override these (compared lower-cased)
_PROTECTED_HEADERS = frozenset({"authorization", "content-type"})


# =========================================
# SECTION A — REQUEST DESCRIPTOR
# =========================================
@dataclass(frozen=True)
class RequestDescriptor:
    """
    One logical API call. Either `path` (relative to the REST root) or an
    absolute `url` (used when following hypermedia links) must be set.
    """
    method: str = "GET"
    path: Optional[str] = None
    url: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    params: Optional[Dict[str, Any]] = None
    json: Any = None
    retry: Optional[RetryPolicy] = None
    stream: Optional[str] = None


def build_headers(access_token: str, extra: Optional[Dict[str, str]], *, has_body: bool) -> Dict[str, str]:
    headers: Dict[str, str] = {"Accept": "application/json"}
    for k, v in (extra or {}).items():
        key = str(k).lower()
        if key in _PROTECTED_HEADERS:
            continue
        # one entry per header name, whatever casing the caller used
        for existing in [h for h in headers if h.lower() == key]:
            del headers[existing]
        headers[k] = v
    headers["Authorization"] = f"Bearer {access_token}"
    if has_body:
        headers["Content-Type"] = "application/json"
    return headers


def is_retryable(failure: TransportFailure) -> bool:
    """
    UNEXPECTED and CONNECTION failures are always retryable; STATUS failures
    only for the transient 5xx set. 429 has its own path in the executor.
    """
    if failure.kind is not FailureKind.STATUS:
        return True
    return failure.status in RETRYABLE_STATUS_CODES


# =========================================
# SECTION B — EXECUTOR
# Why: one place owning auth headers, retries, 429 backoff and error
# conversion, so convenience methods stay one-liners.
# =========================================
class RequestExecutor:
    def __init__(
        self,
        *,
        endpoint: str,
        transport: Transport,
        tokens: TokenCache,
        retry: Optional[RetryPolicy] = None,
        timeout_s: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.endpoint = f"{endpoint.rstrip('/')}{REST_PATH}"
        self.retry = retry or RetryPolicy()
        self.timeout_s = timeout_s
        self._transport = transport
        self._tokens = tokens
        self._sleep = sleep
        self._rng = rng

    def resolve_url(self, request: RequestDescriptor) -> str:
        if request.url:
            return request.url
        if request.path is None:
            raise AkeneoError("Either `path` or `url` must be provided")
        return f"{self.endpoint}/{request.path.lstrip('/')}"

    def retry_policy(self, override: Optional[RetryPolicy] = None) -> RetryPolicy:
        return override or self.retry

    async def _attempt(self, request: RequestDescriptor, url: str) -> Any:
        grant = await self._tokens.get_token()
        headers = build_headers(grant.access_token, request.headers, has_body=request.json is not None)
        try:
            result = await self._transport.send(
                request.method,
                url,
                headers=headers,
                params=request.params,
                json_body=request.json,
                timeout_s=self.timeout_s,
            )
            if isinstance(result, TransportResponse):
                # truncated / non-JSON bodies are treated as transient
                return result, result.json()
            return result, None
        except Exception as e:
            sent = SentRequest(method=request.method.upper(), url=url, headers=headers, params=request.params, json=request.json)
            return (
                TransportFailure(
                    kind=FailureKind.UNEXPECTED,
                    message=str(e) or type(e).__name__,
                    request=sent,
                    code=type(e).__name__,
                    cause=e,
                ),
                None,
            )

    async def execute(self, request: RequestDescriptor) -> Any:
        policy = self.retry_policy(request.retry)
        url = self.resolve_url(request)
        method = request.method.upper()
        stream = request.stream

        retries = 0
        retries_429 = 0
        attempt = 0

        while True:
            info("http.request.start", stream=stream, method=method, url=url, attempt=attempt)
            result, data = await self._attempt(request, url)

            if isinstance(result, TransportResponse):
                info(
                    "http.request.ok",
                    stream=stream,
                    method=method,
                    url=url,
                    attempt=attempt,
                    status=result.status,
                    elapsed_ms=result.elapsed_ms,
                )
                return data

            failure = result
            attempt += 1

            if failure.kind is FailureKind.STATUS and failure.status == TOO_MANY_REQUESTS:
                delay_ms = rate_limit_delay_ms(failure.response.headers if failure.response else None)
                if retries_429 >= policy.max_429_retries:
                    error(
                        "http.request.error",
                        stream=stream,
                        method=method,
                        url=url,
                        status=failure.status,
                        retries_429=retries_429,
                    )
                    raise failure.to_error(RateLimitError, retry_after_ms=delay_ms) from failure.cause
                retries_429 += 1
                warn(
                    "http.rate_limited",
                    stream=stream,
                    method=method,
                    url=url,
                    attempt=retries_429,
                    max_429_retries=policy.max_429_retries,
                    sleep_ms=delay_ms,
                )
                await self._sleep(ms_to_s(delay_ms))
                continue

            if not is_retryable(failure) or retries >= policy.max_retries:
                error(
                    "http.request.error",
                    stream=stream,
                    method=method,
                    url=url,
                    kind=failure.kind.value,
                    status=failure.status,
                    code=failure.code,
                    retries=retries,
                )
                raise failure.to_error() from failure.cause

            retries += 1
            delay_ms = calculate_delay(retries, policy, self._rng)
            warn(
                "http.request.retry",
                stream=stream,
                method=method,
                url=url,
                kind=failure.kind.value,
                status=failure.status,
                attempt=retries,
                max_retries=policy.max_retries,
                sleep_ms=int(delay_ms),
            )
            await self._sleep(ms_to_s(delay_ms))
