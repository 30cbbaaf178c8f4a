# catalog_connectors/akeneo/client.py
from __future__ import annotations

import asyncio
import random
from typing import Any, Dict, Optional, Union
from urllib.parse import quote

import httpx

from .auth import AuthApi, Grant, TokenCache
from .config import AkeneoConfig, RetryPolicy, load_config, load_retry_policy
from .http import RequestDescriptor, RequestExecutor, Sleep
from .paging import PagedResult, append_remaining_pages, follow_link
from .time_utils import Clock, utc_now
from .transport import Transport

RetryArg = Optional[Union[RetryPolicy, Dict[str, Any]]]
Params = Optional[Dict[str, Any]]


def _seg(value: str) -> str:
    return quote(str(value), safe="")


class AkeneoClient:
    """
    Async client for the Akeneo PIM REST API.

    Owns one TokenCache (shared by every request made through this instance)
    and one httpx.AsyncClient unless `http_client` is injected. Use as an
    async context manager or call `aclose()` when done.

    Every method accepts `params` (query string) and `retry` (per-request
    RetryPolicy, replacing the client default). List methods also accept
    `fetch_all=True` to follow `_links.next` until exhausted.
    """

    def __init__(
        self,
        config: Union[AkeneoConfig, Dict[str, Any]],
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = utc_now,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = load_config(config)
        self._transport = Transport(http_client, timeout_s=self.config.timeout_s)
        self.auth_api = AuthApi(self.config, self._transport, clock=clock)
        self.auth = TokenCache(
            self.auth_api,
            refresh_if_within_secs=self.config.refresh_if_within_secs,
            clock=clock,
        )
        self.executor = RequestExecutor(
            endpoint=self.config.endpoint,
            transport=self._transport,
            tokens=self.auth,
            retry=self.config.retry,
            timeout_s=self.config.timeout_s,
            sleep=sleep,
            rng=rng,
        )
        self.endpoint = self.executor.endpoint

    async def __aenter__(self) -> "AkeneoClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._transport.aclose()

    # -----------------------------
    # Core
    # -----------------------------
    async def request(
        self,
        method: str = "GET",
        *,
        path: Optional[str] = None,
        url: Optional[str] = None,
        params: Params = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        retry: RetryArg = None,
        stream: Optional[str] = None,
    ) -> Any:
        return await self.executor.execute(
            RequestDescriptor(
                method=method,
                path=path,
                url=url,
                headers=dict(headers or {}),
                params=params,
                json=json,
                retry=load_retry_policy(retry),
                stream=stream,
            )
        )

    async def get_client_grant(self) -> Grant:
        return await self.auth.get_token()

    async def test_connection(self) -> str:
        grant = await self.get_client_grant()
        return f"Akeneo OK ({self.config.endpoint}, token expires {grant.expires_at.isoformat()})"

    async def follow_link(self, url: str) -> PagedResult:
        return await follow_link(self.executor, url)

    async def append_remaining_pages(self, result: PagedResult) -> PagedResult:
        return await append_remaining_pages(self.executor, result)

    async def _list(
        self,
        path: str,
        *,
        stream: str,
        params: Params,
        retry: RetryArg,
        fetch_all: bool,
    ) -> PagedResult:
        result = await self.request("GET", path=path, params=params, retry=retry, stream=stream)
        result = result or {}
        if fetch_all:
            await append_remaining_pages(self.executor, result, stream=stream)
        return result

    # -----------------------------
    # Categories
    # -----------------------------
    async def get_list_of_categories(
        self, *, params: Params = None, retry: RetryArg = None, fetch_all: bool = False
    ) -> PagedResult:
        return await self._list("/categories", stream="categories", params=params, retry=retry, fetch_all=fetch_all)

    # -----------------------------
    # Products
    # -----------------------------
    async def get_list_of_products(
        self, *, params: Params = None, retry: RetryArg = None, fetch_all: bool = False
    ) -> PagedResult:
        return await self._list("/products", stream="products", params=params, retry=retry, fetch_all=fetch_all)

    async def get_product(self, code: str, *, params: Params = None, retry: RetryArg = None) -> Dict[str, Any]:
        return await self.request("GET", path=f"/products/{_seg(code)}", params=params, retry=retry, stream="products")

    async def delete_product(self, code: str, *, retry: RetryArg = None) -> None:
        await self.request("DELETE", path=f"/products/{_seg(code)}", retry=retry, stream="products")

    # -----------------------------
    # Product models
    # -----------------------------
    async def get_list_of_product_models(
        self, *, params: Params = None, retry: RetryArg = None, fetch_all: bool = False
    ) -> PagedResult:
        return await self._list(
            "/product-models", stream="product_models", params=params, retry=retry, fetch_all=fetch_all
        )

    async def get_product_model(self, code: str, *, params: Params = None, retry: RetryArg = None) -> Dict[str, Any]:
        return await self.request(
            "GET", path=f"/product-models/{_seg(code)}", params=params, retry=retry, stream="product_models"
        )

    async def delete_product_model(self, code: str, *, retry: RetryArg = None) -> None:
        await self.request("DELETE", path=f"/product-models/{_seg(code)}", retry=retry, stream="product_models")

    # -----------------------------
    # Families
    # -----------------------------
    async def get_list_of_families(
        self, *, params: Params = None, retry: RetryArg = None, fetch_all: bool = False
    ) -> PagedResult:
        return await self._list("/families", stream="families", params=params, retry=retry, fetch_all=fetch_all)

    async def get_family(self, code: str, *, params: Params = None, retry: RetryArg = None) -> Dict[str, Any]:
        return await self.request("GET", path=f"/families/{_seg(code)}", params=params, retry=retry, stream="families")

    async def get_list_of_family_variants(
        self, code: str, *, params: Params = None, retry: RetryArg = None, fetch_all: bool = False
    ) -> PagedResult:
        return await self._list(
            f"/families/{_seg(code)}/variants",
            stream="family_variants",
            params=params,
            retry=retry,
            fetch_all=fetch_all,
        )

    # -----------------------------
    # Attributes
    # -----------------------------
    async def get_list_of_attributes(
        self, *, params: Params = None, retry: RetryArg = None, fetch_all: bool = False
    ) -> PagedResult:
        return await self._list("/attributes", stream="attributes", params=params, retry=retry, fetch_all=fetch_all)

    async def get_list_of_attribute_options(
        self, attribute_code: str, *, params: Params = None, retry: RetryArg = None, fetch_all: bool = False
    ) -> PagedResult:
        return await self._list(
            f"/attributes/{_seg(attribute_code)}/options",
            stream="attribute_options",
            params=params,
            retry=retry,
            fetch_all=fetch_all,
        )

    # -----------------------------
    # Reference entities
    # -----------------------------
    async def get_list_of_reference_entities(
        self, *, params: Params = None, retry: RetryArg = None, fetch_all: bool = False
    ) -> PagedResult:
        return await self._list(
            "/reference-entities", stream="reference_entities", params=params, retry=retry, fetch_all=fetch_all
        )

    async def get_list_of_reference_entity_records(
        self, reference_entity_code: str, *, params: Params = None, retry: RetryArg = None, fetch_all: bool = False
    ) -> PagedResult:
        return await self._list(
            f"/reference-entities/{_seg(reference_entity_code)}/records",
            stream="reference_entity_records",
            params=params,
            retry=retry,
            fetch_all=fetch_all,
        )

    # -----------------------------
    # Assets
    # -----------------------------
    async def get_list_of_assets(
        self, asset_family_code: str, *, params: Params = None, retry: RetryArg = None, fetch_all: bool = False
    ) -> PagedResult:
        return await self._list(
            f"/asset-families/{_seg(asset_family_code)}/assets",
            stream="assets",
            params=params,
            retry=retry,
            fetch_all=fetch_all,
        )

    async def get_asset(
        self, asset_family_code: str, code: str, *, params: Params = None, retry: RetryArg = None
    ) -> Dict[str, Any]:
        return await self.request(
            "GET",
            path=f"/asset-families/{_seg(asset_family_code)}/assets/{_seg(code)}",
            params=params,
            retry=retry,
            stream="assets",
        )

    async def delete_asset(self, asset_family_code: str, code: str, *, retry: RetryArg = None) -> None:
        await self.request(
            "DELETE",
            path=f"/asset-families/{_seg(asset_family_code)}/assets/{_seg(code)}",
            retry=retry,
            stream="assets",
        )
