"""Concurrent per-item detail fetching over a shared work cursor."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from playwright.async_api import (
    BrowserContext,
    Error as PlaywrightError,
    Page,
    TimeoutError as PlaywrightTimeoutError,
)

from catalog_harvester import metrics
from catalog_harvester.config import Settings, settings as default_settings
from catalog_harvester.ingest.extraction import RawItem
from catalog_harvester.ingest.materializer import accept_cookies_if_present
from catalog_harvester.ingest.pacing import detail_item_delay_ms, install_request_pacing
from catalog_harvester.ingest.parsing import find_uuids, to_absolute_url
from catalog_harvester.ingest.selectors import DETAIL_ENDPOINT
from catalog_harvester.worker.cancellation import CancellationToken

logger = logging.getLogger(__name__)


@dataclass
class DetailResponse:
    """A captured detail response and the UUIDs found in its request body."""

    payload: Any
    request_uuids: List[str] = field(default_factory=list)


@dataclass
class FailedItem:
    """An item whose detail could not be fetched, with the reason."""

    item: RawItem
    reason: str

    def to_dict(self) -> Dict[str, Optional[str]]:
        return self.item.failure_summary()


@dataclass
class PoolProgress:
    processed: int
    success: int
    fail: int
    total: int
    worker: int

    @property
    def remaining(self) -> int:
        return self.total - self.processed


@dataclass
class PoolResult:
    """Detail payloads keyed by item uuid plus the items that failed."""

    results: Dict[str, Any] = field(default_factory=dict)
    failures: List[FailedItem] = field(default_factory=list)
    processed: int = 0
    success: int = 0
    fail: int = 0

    @property
    def failed_items(self) -> List[RawItem]:
        return [f.item for f in self.failures]


DetailFetcher = Callable[[Page, RawItem, str, int], Awaitable[Optional[DetailResponse]]]
ProgressCallback = Callable[[PoolProgress], None]


def _echoed_item_uuid(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    echoed = payload.get("menuItemUuid")
    if not echoed and isinstance(payload.get("data"), dict):
        echoed = payload["data"].get("menuItemUuid")
    return str(echoed) if echoed else None


def response_matches(item: RawItem, response: Optional[DetailResponse]) -> bool:
    """
    Whether a captured detail response belongs to ``item``.

    The request body naming the item is enough. Otherwise the payload must
    echo the item's uuid; a request that names other items and a payload
    that echoes nothing is treated as somebody else's response.
    """
    if response is None or response.payload is None:
        return False
    if not item.item_uuid:
        return True
    if item.item_uuid in response.request_uuids:
        return True

    echoed = _echoed_item_uuid(response.payload)
    if echoed:
        return echoed == item.item_uuid
    return not response.request_uuids


async def fetch_item_detail(
    page: Page,
    item: RawItem,
    base_url: str,
    timeout_ms: int,
) -> Optional[DetailResponse]:
    """
    Open an item's link and capture the detail response it triggers.

    Returns:
        DetailResponse, or None on timeout or an unreadable body
    """
    url = to_absolute_url(base_url, item.href or "")
    if not url:
        return None

    def _is_detail_response(response) -> bool:
        return response.request.method == "POST" and DETAIL_ENDPOINT in response.url

    try:
        async with page.expect_response(_is_detail_response, timeout=timeout_ms) as response_info:
            try:
                await page.goto(url, wait_until="domcontentloaded")
            except PlaywrightError as e:
                logger.debug(f"Item navigation error for {url}: {e}")
            await accept_cookies_if_present(page)
        response = await response_info.value
    except PlaywrightTimeoutError:
        logger.debug(f"No detail response for {item.item_uuid} within {timeout_ms}ms")
        return None
    except PlaywrightError as e:
        logger.debug(f"Detail capture failed for {item.item_uuid}: {e}")
        return None

    request_uuids = find_uuids(response.request.post_data)
    try:
        payload = await response.json()
    except (PlaywrightError, ValueError) as e:
        logger.debug(f"Detail body for {item.item_uuid} is not JSON: {e}")
        return None
    return DetailResponse(payload=payload, request_uuids=request_uuids)


class DetailFetchPool:
    """
    Pull-based worker pool for item details.

    Every worker owns its own page and claims the next index from one shared
    cursor, so slow pages never hold back fast ones. Per-item failures are
    recorded, never raised.
    """

    def __init__(
        self,
        fetcher: Optional[DetailFetcher] = None,
        settings: Optional[Settings] = None,
    ):
        self.fetcher = fetcher or fetch_item_detail
        self.settings = settings or default_settings

    async def _open_worker_page(self, context: BrowserContext, target_url: str) -> Page:
        page = await context.new_page()
        try:
            await page.goto(target_url, wait_until="domcontentloaded")
        except PlaywrightError as e:
            logger.debug(f"Worker landing navigation failed: {e}")
        await accept_cookies_if_present(page)
        await install_request_pacing(
            page,
            self.settings.worker_request_delay_min_ms,
            self.settings.worker_request_delay_jitter_ms,
        )
        return page

    async def fetch_all(
        self,
        context: BrowserContext,
        items: Sequence[RawItem],
        target_url: str,
        worker_count: Optional[int] = None,
        token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> PoolResult:
        """Fetch details for ``items`` with up to ``worker_count`` pages."""
        result = PoolResult()
        if not items:
            return result

        token = token or CancellationToken.never()
        worker_count = worker_count or self.settings.detail_workers
        batch = self.settings.progress_batch_size
        timeout_ms = self.settings.detail_response_timeout_ms
        total = len(items)
        cursor = 0

        def claim() -> Optional[int]:
            nonlocal cursor
            if token.cancelled or cursor >= total:
                return None
            index = cursor
            cursor += 1
            return index

        async def worker(worker_id: int) -> None:
            try:
                page = await self._open_worker_page(context, target_url)
            except Exception as e:
                logger.warning(f"Detail worker {worker_id} could not open a page: {e}")
                return

            try:
                while True:
                    index = claim()
                    if index is None:
                        break
                    if index > 0:
                        await page.wait_for_timeout(detail_item_delay_ms(index))

                    item = items[index]
                    try:
                        response = await self.fetcher(page, item, target_url, timeout_ms)
                        reason = None if response_matches(item, response) else (
                            "no_response" if response is None else "mismatch"
                        )
                    except Exception as e:
                        logger.warning(f"Detail fetch for {item.item_uuid} raised: {e}")
                        reason = "error"

                    result.processed += 1
                    if reason is None:
                        result.results[item.item_uuid] = response.payload
                        result.success += 1
                        metrics.detail_fetches_total.labels(outcome="success").inc()
                    else:
                        result.failures.append(FailedItem(item=item, reason=reason))
                        result.fail += 1
                        metrics.detail_fetches_total.labels(outcome=reason).inc()

                    if on_progress and (result.processed % batch == 0 or index == total - 1):
                        on_progress(PoolProgress(
                            processed=result.processed,
                            success=result.success,
                            fail=result.fail,
                            total=total,
                            worker=worker_id,
                        ))
            finally:
                try:
                    await page.close()
                except PlaywrightError as e:
                    logger.debug(f"Worker page close failed: {e}")

        count = max(1, min(worker_count, total))
        logger.info(f"Fetching details for {total} items with {count} workers")
        await asyncio.gather(*(worker(w) for w in range(count)))

        # Only reachable when every worker failed to open a page
        if cursor < total and not token.cancelled:
            logger.warning(f"No detail worker available for {total - cursor} items")
            for item in items[cursor:]:
                result.failures.append(FailedItem(item=item, reason="no_worker"))
                result.processed += 1
                result.fail += 1
                metrics.detail_fetches_total.labels(outcome="no_worker").inc()

        logger.info(f"Details fetched: {result.success} ok, {result.fail} failed")
        return result
