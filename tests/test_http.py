import json

import httpx
import pytest

from catalog_connectors.akeneo.config import RetryPolicy
from catalog_connectors.akeneo.errors import (
    AkeneoError,
    ClientError,
    CredentialExchangeError,
    RateLimitError,
    ServerError,
    TransportError,
)
from catalog_connectors.akeneo.http import RequestDescriptor, build_headers, is_retryable
from catalog_connectors.akeneo.transport import FailureKind, SentRequest, TransportFailure, TransportResponse
from tests.conftest import REST, json_response

PRODUCTS = f"{REST}/products"


def _failure(kind, status=None):
    response = TransportResponse(status=status, headers={}, content=b"") if status is not None else None
    return TransportFailure(kind=kind, message="x", request=SentRequest(method="GET", url="u"), response=response)


# -----------------------------
# Classification
# -----------------------------
@pytest.mark.parametrize("status", [500, 501, 502, 503, 504])
def test_transient_statuses_are_retryable(status):
    assert is_retryable(_failure(FailureKind.STATUS, status))


@pytest.mark.parametrize("status", [400, 401, 403, 404, 409, 422, 505])
def test_other_statuses_are_terminal(status):
    assert not is_retryable(_failure(FailureKind.STATUS, status))


def test_connection_and_unexpected_failures_are_retryable():
    assert is_retryable(_failure(FailureKind.CONNECTION))
    assert is_retryable(_failure(FailureKind.UNEXPECTED))


def test_caller_headers_cannot_override_auth_or_content_type():
    headers = build_headers(
        "abc",
        {"authorization": "Bearer evil", "CONTENT-TYPE": "text/plain", "X-Custom": "1"},
        has_body=True,
    )

    assert headers == {
        "Accept": "application/json",
        "X-Custom": "1",
        "Authorization": "Bearer abc",
        "Content-Type": "application/json",
    }


def test_caller_accept_replaces_default_whatever_the_casing():
    headers = build_headers("abc", {"accept": "text/csv"}, has_body=False)

    assert headers == {"accept": "text/csv", "Authorization": "Bearer abc"}


@pytest.mark.asyncio
async def test_caller_accept_is_sent_once(make_client, server):
    server.add("GET", PRODUCTS, json_response(200, {"ok": 1}))

    async with make_client() as client:
        await client.request(path="/products", headers={"accept": "text/csv"})

    (req,) = server.calls("GET", PRODUCTS)
    assert req.headers.get_list("accept") == ["text/csv"]


# -----------------------------
# Execute: success path
# -----------------------------
@pytest.mark.asyncio
async def test_request_carries_bearer_token_and_query_params(make_client, server):
    server.add("GET", PRODUCTS, json_response(200, {"success": True}))

    async with make_client() as client:
        result = await client.request(
            "GET",
            path="/products",
            params={"limit": 10, "with_count": True, "attributes": ["a", "b"], "search": None},
            headers={"X-Trace": "t-1"},
        )

    assert result == {"success": True}
    (req,) = server.calls("GET", PRODUCTS)
    assert req.headers["Authorization"] == "Bearer token-1"
    assert req.headers["Accept"] == "application/json"
    assert req.headers["X-Trace"] == "t-1"
    assert req.url.params.get_list("attributes") == ["a", "b"]
    assert req.url.params["limit"] == "10"
    assert req.url.params["with_count"] == "true"
    assert "search" not in req.url.params


@pytest.mark.asyncio
async def test_empty_body_returns_none(make_client, server):
    server.add("DELETE", f"{PRODUCTS}/sku-1", httpx.Response(204))

    async with make_client() as client:
        assert await client.delete_product("sku-1") is None


@pytest.mark.asyncio
async def test_token_is_reused_across_requests(make_client, server):
    server.add("GET", PRODUCTS, json_response(200, {"ok": 1}))

    async with make_client() as client:
        await client.request(path="/products")
        await client.request(path="/products")

    assert server.token_calls == 1


# -----------------------------
# Execute: retries
# -----------------------------
@pytest.mark.asyncio
async def test_no_retries_by_default(make_client, server, sleeper):
    server.add("GET", PRODUCTS, json_response(500))

    async with make_client() as client:
        with pytest.raises(ServerError):
            await client.request(path="/products")

    assert len(server.calls("GET", PRODUCTS)) == 1
    assert sleeper.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("k", [1, 2, 4])
async def test_always_500_makes_k_plus_one_attempts(make_client, server, sleeper, k):
    server.add("GET", PRODUCTS, json_response(500, {"message": "down"}))

    async with make_client(retry={"max_retries": k, "delay_ms": 300}) as client:
        with pytest.raises(ServerError) as exc:
            await client.request(path="/products")

    assert len(server.calls("GET", PRODUCTS)) == k + 1
    assert exc.value.status == 500
    assert sleeper.calls == [0.3 * 2 ** i for i in range(k)]


@pytest.mark.asyncio
async def test_recovers_after_transient_failures(make_client, server, sleeper):
    server.add(
        "GET",
        PRODUCTS,
        json_response(500),
        json_response(503),
        json_response(200, {"success": True}),
    )

    async with make_client(retry={"max_retries": 2, "delay_ms": 300}) as client:
        result = await client.request(path="/products")

    assert result == {"success": True}
    assert sleeper.calls == [0.3, 0.6]


@pytest.mark.asyncio
async def test_only_retries_until_first_success(make_client, server, sleeper):
    server.add("GET", PRODUCTS, json_response(500), json_response(200, {"success": True}))

    async with make_client(retry={"max_retries": 4, "delay_ms": 300}) as client:
        assert await client.request(path="/products") == {"success": True}

    assert len(server.calls("GET", PRODUCTS)) == 2
    assert sleeper.calls == [0.3]


@pytest.mark.asyncio
async def test_400_is_never_retried(make_client, server, sleeper):
    server.add("GET", PRODUCTS, json_response(400, {"message": "bad"}), json_response(200, {}))

    async with make_client(retry={"max_retries": 4, "delay_ms": 300}) as client:
        with pytest.raises(ClientError) as exc:
            await client.request(path="/products")

    assert exc.value.status == 400
    assert len(server.calls("GET", PRODUCTS)) == 1
    assert sleeper.calls == []


@pytest.mark.asyncio
async def test_connection_errors_are_retried_then_surfaced(make_client, server, sleeper):
    server.add("GET", PRODUCTS, httpx.ConnectError("connection refused"))

    async with make_client(retry={"max_retries": 2, "delay_ms": 10}) as client:
        with pytest.raises(TransportError) as exc:
            await client.request(path="/products")

    assert exc.value.status is None
    assert exc.value.data["code"] == "ConnectError"
    assert isinstance(exc.value.__cause__, httpx.ConnectError)
    assert len(server.calls("GET", PRODUCTS)) == 3


@pytest.mark.asyncio
async def test_unexpected_failures_are_retried(make_client, server, sleeper):
    server.add(
        "GET",
        PRODUCTS,
        httpx.Response(200, content=b"{not json"),
        json_response(200, {"success": True}),
    )

    async with make_client(retry={"max_retries": 1, "delay_ms": 10}) as client:
        assert await client.request(path="/products") == {"success": True}

    assert len(server.calls("GET", PRODUCTS)) == 2


@pytest.mark.asyncio
async def test_unexpected_failure_surfaces_as_base_error(make_client, server):
    server.add("GET", PRODUCTS, httpx.Response(200, content=b"{not json"))

    async with make_client() as client:
        with pytest.raises(AkeneoError) as exc:
            await client.request(path="/products")

    assert type(exc.value) is AkeneoError
    assert isinstance(exc.value.__cause__, ValueError)


@pytest.mark.asyncio
async def test_request_level_policy_replaces_client_policy(make_client, server, sleeper):
    server.add(
        "GET",
        PRODUCTS,
        json_response(500),
        json_response(500),
        json_response(500),
        json_response(200, {"success": True}),
    )

    async with make_client(retry={"max_retries": 2, "delay_ms": 100, "max_429_retries": 0}) as client:
        result = await client.get_list_of_products(retry=RetryPolicy(max_retries=4, delay_ms=500))

    assert result == {"success": True}
    assert sleeper.calls == [0.5, 1.0, 2.0]
    assert sleeper.total >= 3.5


@pytest.mark.asyncio
async def test_token_refetched_on_every_attempt(make_client, server, sleeper):
    server.add("GET", PRODUCTS, json_response(502), json_response(200, {"ok": True}))

    async with make_client(retry={"max_retries": 1, "delay_ms": 1}) as client:
        await client.request(path="/products")
        client.auth.invalidate()
        await client.request(path="/products")

    auths = [r.headers["Authorization"] for r in server.calls("GET", PRODUCTS)]
    assert auths == ["Bearer token-1", "Bearer token-1", "Bearer token-2"]


@pytest.mark.asyncio
async def test_credential_failure_propagates_without_calling_api(make_client, server):
    server.token_replies.append(json_response(401, {"message": "nope"}))

    async with make_client(retry={"max_retries": 3}) as client:
        with pytest.raises(CredentialExchangeError):
            await client.request(path="/products")

    assert server.calls("GET", PRODUCTS) == []


# -----------------------------
# Execute: 429
# -----------------------------
@pytest.mark.asyncio
@pytest.mark.parametrize("seconds", [2, 3, 4])
async def test_429_waits_for_retry_after(make_client, server, sleeper, seconds):
    server.add(
        "GET",
        PRODUCTS,
        json_response(429, {}, {"Retry-After": str(seconds)}),
        json_response(200, {"success": 1}),
    )

    async with make_client(retry={"max_retries": 0, "delay_ms": 300, "max_429_retries": 4}) as client:
        assert await client.request(path="/products") == {"success": 1}

    assert sleeper.calls == [float(seconds)]


@pytest.mark.asyncio
async def test_429_without_retry_after_uses_default_delay(make_client, server, sleeper):
    server.add("GET", PRODUCTS, json_response(429, {}), json_response(200, {"success": 1}))

    async with make_client() as client:
        assert await client.request(path="/products") == {"success": 1}

    assert sleeper.calls == [5.0]


@pytest.mark.asyncio
async def test_429_ignores_exponential_and_jitter(make_client, server, sleeper):
    server.add(
        "GET",
        PRODUCTS,
        json_response(429, {}, {"Retry-After": "2"}),
        json_response(429, {}, {"Retry-After": "2"}),
        json_response(429, {}, {"Retry-After": "2"}),
        json_response(200, {"success": 1}),
    )

    async with make_client(retry={"max_retries": 0, "delay_ms": 300, "max_429_retries": 4, "jitter": True}) as client:
        assert await client.request(path="/products") == {"success": 1}

    assert sleeper.calls == [2.0, 2.0, 2.0]
    assert sleeper.total >= 6


@pytest.mark.asyncio
async def test_default_429_budget_is_five_retries(make_client, server, sleeper):
    server.add("GET", PRODUCTS, *([json_response(429, {}, {"Retry-After": "1"})] * 5), json_response(200, {"success": 1}))

    async with make_client() as client:
        assert await client.request(path="/products") == {"success": 1}

    assert len(server.calls("GET", PRODUCTS)) == 6
    assert sleeper.total >= 5


@pytest.mark.asyncio
async def test_four_429_retries_then_success(make_client, server, sleeper):
    throttled = json_response(429, {}, {"Retry-After": "2"})
    server.add("GET", PRODUCTS, throttled, throttled, throttled, throttled, json_response(200, {"ok": 1}))

    async with make_client(retry={"max_429_retries": 4}) as client:
        assert await client.request(path="/products") == {"ok": 1}

    assert len(server.calls("GET", PRODUCTS)) == 5
    assert sleeper.calls == [2.0, 2.0, 2.0, 2.0]
    assert sleeper.total >= 4 * 2


@pytest.mark.asyncio
async def test_fifth_429_exceeds_budget_of_four(make_client, server, sleeper):
    throttled = json_response(429, {}, {"Retry-After": "2"})
    server.add("GET", PRODUCTS, *([throttled] * 5), json_response(200, {"ok": 1}))

    async with make_client(retry={"max_429_retries": 4}) as client:
        with pytest.raises(RateLimitError) as exc:
            await client.request(path="/products")

    assert len(server.calls("GET", PRODUCTS)) == 5
    assert sleeper.total >= 8
    assert exc.value.retry_after_ms == 2000


@pytest.mark.asyncio
async def test_429_budget_exhausted_raises_rate_limit_error(make_client, server, sleeper):
    server.add("GET", PRODUCTS, json_response(429, {}, {"Retry-After": "1"}))

    async with make_client() as client:
        with pytest.raises(RateLimitError) as exc:
            await client.request(path="/products")

    assert len(server.calls("GET", PRODUCTS)) == 6
    assert exc.value.status == 429
    assert exc.value.retry_after_ms == 1000
    assert "Request failed with status code 429" in str(exc.value)


@pytest.mark.asyncio
async def test_429_budget_is_independent_of_max_retries(make_client, server, sleeper):
    server.add(
        "GET",
        PRODUCTS,
        json_response(500),
        json_response(429, {}, {"Retry-After": "1"}),
        json_response(500),
        json_response(429, {}, {"Retry-After": "1"}),
        json_response(200, {"ok": True}),
    )

    async with make_client(retry={"max_retries": 2, "delay_ms": 100, "max_429_retries": 2}) as client:
        assert await client.request(path="/products") == {"ok": True}

    assert sleeper.calls == [0.1, 1.0, 0.2, 1.0]


# -----------------------------
# Masking
# -----------------------------
@pytest.mark.asyncio
async def test_error_snapshot_masks_authorization(make_client, server):
    server.add("GET", PRODUCTS, json_response(500, {"success": False}))

    async with make_client() as client:
        with pytest.raises(ServerError) as exc:
            await client.request(path="/products")

    err = exc.value
    assert err.to_dict()["isAkeneoError"] is True
    assert err.data["code"] == "ERR_BAD_RESPONSE"
    assert err.data["request"]["url"] == PRODUCTS
    assert err.data["request"]["method"] == "get"
    assert err.data["request"]["headers"]["authorization"] == "********"
    assert err.data["response"]["status"] == 500
    assert err.data["response"]["data"] == {"success": False}
    assert "token-1" not in err.to_json()


@pytest.mark.asyncio
async def test_error_snapshot_masks_password_fields_in_body(make_client, server):
    server.add("POST", f"{REST}/users", json_response(422, {"message": "invalid"}))
    body = {"username": "bob", "password": "hunter2", "profile": {"api_key": "k-1"}}

    async with make_client() as client:
        with pytest.raises(ClientError) as exc:
            await client.request("POST", path="/users", json=body)

    serialized = exc.value.to_json()
    assert "hunter2" not in serialized
    assert "k-1" not in serialized
    assert json.loads(serialized)["data"]["request"]["data"] == {
        "username": "bob",
        "password": "********",
        "profile": {"api_key": "********"},
    }
    # the live request body is untouched
    assert body["password"] == "hunter2"


def test_descriptor_needs_path_or_url(make_client):
    client = make_client()

    with pytest.raises(AkeneoError):
        client.executor.resolve_url(RequestDescriptor())
    assert client.executor.resolve_url(RequestDescriptor(path="products")) == PRODUCTS
    assert client.executor.resolve_url(RequestDescriptor(url="https://x/y")) == "https://x/y"


@pytest.mark.asyncio
async def test_error_snapshot_masks_response_cookies(make_client, server):
    server.add(
        "GET",
        PRODUCTS,
        json_response(401, {"message": "expired"}, {"Set-Cookie": "session=SECRETSESSION", "X-Request-Id": "r-1"}),
    )

    async with make_client() as client:
        with pytest.raises(ClientError) as exc:
            await client.request(path="/products")

    headers = exc.value.data["response"]["headers"]
    assert headers["set-cookie"] == "********"
    assert headers["x-request-id"] == "r-1"
    assert "SECRETSESSION" not in exc.value.to_json()
