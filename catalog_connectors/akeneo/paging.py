from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List, Optional

from .events import info, records
from .http import RequestDescriptor, RequestExecutor

# NOTE:
# - List endpoints return a hypermedia envelope:
#     {"_links": {"self", "first", "previous", "next"}, "current_page", "items_count",
#      "_embedded": {"items": [...]}}
# - `append_remaining_pages` is the fetch_all behaviour: it mutates the first page.
# - `iter_items` streams items page by page without accumulating.

PagedResult = Dict[str, Any]


def next_href(result: Optional[PagedResult]) -> Optional[str]:
    if not isinstance(result, dict):
        return None
    links = result.get("_links") or {}
    nxt = links.get("next") if isinstance(links, dict) else None
    if isinstance(nxt, dict):
        href = nxt.get("href")
        return str(href) if href else None
    return None


def extract_items(result: Any) -> List[Any]:
    if not isinstance(result, dict):
        return []
    embedded = result.get("_embedded") or {}
    items = embedded.get("items") if isinstance(embedded, dict) else None
    return items if isinstance(items, list) else []


async def follow_link(executor: RequestExecutor, url: str, *, stream: Optional[str] = None) -> PagedResult:
    """Plain GET on an absolute link, through the same authenticated executor."""
    data = await executor.execute(RequestDescriptor(method="GET", url=url, stream=stream))
    return data or {}


async def append_remaining_pages(
    executor: RequestExecutor,
    result: PagedResult,
    *,
    stream: Optional[str] = None,
) -> PagedResult:
    """
    Follow `_links.next` until the server stops returning one, appending every
    page's items onto `result["_embedded"]["items"]` in order.

    Afterwards `_links` only keeps `first`: self/previous/next no longer
    describe the merged result. No page limit is applied here.
    """
    embedded = result.get("_embedded")
    if not isinstance(embedded, dict):
        embedded = result["_embedded"] = {}
    items = embedded.get("items")
    if not isinstance(items, list):
        items = embedded["items"] = []

    page = 1
    href = next_href(result)
    while href:
        page += 1
        info("paging.page.start", stream=stream, page=page, url=href)
        nxt = await follow_link(executor, href, stream=stream)
        items.extend(extract_items(nxt))
        href = next_href(nxt)

    links = result.get("_links") or {}
    result["_links"] = {"first": links["first"]} if isinstance(links, dict) and "first" in links else {}

    info("paging.done", stream=stream, pages=page, items=len(items))
    if stream:
        records(stream, len(items))
    return result


async def iter_items(
    executor: RequestExecutor,
    result: PagedResult,
    *,
    stream: Optional[str] = None,
) -> AsyncIterator[Any]:
    """Yield items of `result` and every following page, one page in memory at a time."""
    current: Optional[PagedResult] = result
    page = 1
    while current is not None:
        for item in extract_items(current):
            yield item
        href = next_href(current)
        if not href:
            return
        page += 1
        info("paging.page.start", stream=stream, page=page, url=href)
        current = await follow_link(executor, href, stream=stream)
