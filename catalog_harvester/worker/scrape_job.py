"""Runs one scrape job end to end and reports progress through the job store."""

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from catalog_harvester import metrics
from catalog_harvester.config import Settings, settings as default_settings
from catalog_harvester.ingest.browser import PageSessionController
from catalog_harvester.ingest.catalog import collect_categories, prepare_page
from catalog_harvester.ingest.debug_trace import DebugTrace
from catalog_harvester.ingest.detail_pool import DetailFetchPool
from catalog_harvester.ingest.discovery import discover_sections
from catalog_harvester.ingest.parsing import (
    find_store_uuid_deep,
    is_valid_target_url,
    parse_lat_lng_from_url,
    sanitize_store_url,
)
from catalog_harvester.ingest.retry import HarvestResult, RetryEngine
from catalog_harvester.logging_config import get_logger
from catalog_harvester.normalize.assembler import ScrapedMenu, build_scraped, normalize_menu
from catalog_harvester.worker.cancellation import CancellationToken
from catalog_harvester.worker.job_store import JobStatus, JobStore, job_store

logger = logging.getLogger(__name__)


class InvalidTargetError(Exception):
    """The submitted target URL is missing or unusable."""
    def __init__(self, url: Any, reason: str = "Provide 'url' in JSON body"):
        self.url = url
        self.reason = reason
        super().__init__(reason)


@dataclass
class ScrapeRequest:
    url: Any
    fast: bool = False
    max_items: Optional[int] = None
    timeout_ms: Optional[int] = None
    job_id: Optional[str] = None


@dataclass
class ScrapeOutcome:
    """Result of one job run, in whichever terminal state it ended."""

    job_id: str
    status: JobStatus
    trace: DebugTrace
    scraped: Optional[ScrapedMenu] = None
    store_uuid: Optional[str] = None
    total_items: int = 0
    failed_items: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None
    invalid_input: bool = False

    def to_response(self) -> Dict[str, Any]:
        if self.status == JobStatus.ERROR:
            return {"error": self.error, "debug": {"job_id": self.job_id, **self.trace.to_dict()}}

        scraped = self.scraped or ScrapedMenu()
        return {
            "raw": {
                "job_id": self.job_id,
                "scraped": scraped.model_dump(),
                "store_uuid": self.store_uuid,
                "total_items": self.total_items,
                "categories": len(scraped.categories),
                "failed_items": self.failed_items,
            },
            "normalized": normalize_menu(scraped).model_dump(),
            "debug": self.trace.to_dict(),
        }


class ScrapeJobRunner:
    """
    Orchestrates navigation, discovery, detail fetching and assembly.

    One runner drives one job at a time; the browser it launches is never
    shared with another job and is always closed when the run ends.
    """

    def __init__(
        self,
        store: Optional[JobStore] = None,
        controller: Optional[PageSessionController] = None,
        pool: Optional[DetailFetchPool] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or default_settings
        self.store = store if store is not None else job_store
        self.controller = controller or PageSessionController(self.settings)
        self.retry_engine = RetryEngine(pool or DetailFetchPool(settings=self.settings), self.store, self.settings)

    def _validate(self, request: ScrapeRequest) -> str:
        if not is_valid_target_url(request.url):
            raise InvalidTargetError(request.url)
        return request.url

    def _timeout_ms(self, request: ScrapeRequest) -> int:
        if isinstance(request.timeout_ms, (int, float)) and math.isfinite(request.timeout_ms):
            return max(self.settings.min_timeout_ms, int(request.timeout_ms))
        return self.settings.default_timeout_ms

    @staticmethod
    def _max_items(request: ScrapeRequest) -> Optional[int]:
        if isinstance(request.max_items, (int, float)) and math.isfinite(request.max_items):
            return max(1, int(request.max_items))
        return None

    async def run(self, request: ScrapeRequest) -> ScrapeOutcome:
        """
        Run a job to a terminal state.

        Never raises: fatal failures come back as an ``error`` outcome and the
        job record is marked accordingly.
        """
        started = time.monotonic()
        job_id = self.store.create(request.job_id)
        job_logger = get_logger(__name__, job_id=job_id)
        trace = DebugTrace(job_logger)
        token = CancellationToken(self.store, job_id)
        browser = None

        try:
            url = self._validate(request)
            timeout_ms = self._timeout_ms(request)
            max_items = self._max_items(request)
            latitude, longitude = parse_lat_lng_from_url(url)
            geolocation = (latitude, longitude) if latitude is not None and longitude is not None else None

            trace.step("parsed_url", latitude=latitude, longitude=longitude, fast=request.fast,
                       max_items=max_items, timeout_ms=timeout_ms)
            self.store.update(
                job_id,
                message="launching",
                stage="navigating",
                meta={"url": url, "fast": request.fast, "max_items": max_items, "timeout_ms": timeout_ms},
            )

            browser = await self.controller.launch()
            context = await self.controller.new_session(browser, geolocation)
            page = await self.controller.new_page(context)
            trace.step("context_ready")

            target_url = sanitize_store_url(url)
            retries = await self.controller.navigate(page, target_url, timeout_ms)
            trace.step("navigated", url=page.url, retries=retries)

            self.store.update(job_id, stage="scanning_categories", message="scanning_categories")
            prepared = await prepare_page(page, trace, self.settings)

            discovery = await discover_sections(page)
            trace.step("sections_found", sections=discovery.count, selector=discovery.sections.selector,
                       tier=discovery.sections.tier)
            self.store.update(
                job_id,
                stage="scanning_items",
                message="scanning_items",
                sections_total=discovery.count,
                sections_processed=0,
                items_discovered=0,
            )

            catalog = await collect_categories(
                page, discovery.sections, token, self.store, job_id, trace, self.settings
            )
            if token.cancelled:
                return self._finish_cancelled(job_id, trace, catalog.categories, prepared.store_name,
                                              catalog.store_uuid, [], stage="cancelled_during_scan")

            detail_items = catalog.detail_items
            if max_items is not None and len(detail_items) > max_items:
                trace.step("items_capped", discovered=len(detail_items), max_items=max_items)
                detail_items = detail_items[:max_items]

            metrics.items_discovered_total.inc(catalog.total_items)
            trace.step("items_collected", total_items=catalog.total_items, detail_items=len(detail_items))
            self.store.update(job_id, total=len(detail_items), stage="items_collected", message="items_collected")

            store_uuid = catalog.store_uuid
            trace.step("store_uuid_detected", store_uuid=store_uuid)

            harvest = await self.retry_engine.harvest(
                context, detail_items, target_url, self.settings.detail_workers, token, job_id, trace
            )

            if not store_uuid:
                store_uuid = find_store_uuid_deep(list(harvest.results.values()))
            for category in catalog.categories:
                for item in category.items:
                    if store_uuid:
                        item.store_uuid = store_uuid
                    item.detail_raw = harvest.results.get(item.item_uuid) if item.item_uuid else None

            failed_items = [f.to_dict() for f in harvest.failures]
            if harvest.cancelled:
                return self._finish_cancelled(job_id, trace, catalog.categories, prepared.store_name,
                                              store_uuid, failed_items, stage="cancelled", harvest=harvest)

            scraped = build_scraped(catalog.categories, prepared.store_name, store_uuid)
            total = len(detail_items)
            self.store.mark_completed(
                job_id,
                message="completed",
                stage="completed",
                processed=total,
                success=total - len(failed_items),
                fail=len(failed_items),
                total=total,
                failed_items=failed_items,
            )
            job_logger.info(
                f"Scrape completed: {len(scraped.categories)} categories, "
                f"{catalog.total_items} items, {len(failed_items)} failed"
            )
            return ScrapeOutcome(
                job_id=job_id,
                status=JobStatus.COMPLETED,
                trace=trace,
                scraped=scraped,
                store_uuid=store_uuid,
                total_items=catalog.total_items,
                failed_items=failed_items,
            )

        except InvalidTargetError as e:
            self.store.mark_error(job_id, "invalid_request", stage="error")
            return ScrapeOutcome(job_id=job_id, status=JobStatus.ERROR, trace=trace,
                                 error=str(e), invalid_input=True)

        except Exception as e:
            job_logger.error(f"Scrape failed: {e}", exc_info=True)
            trace.step("error", message=str(e))
            self.store.mark_error(job_id, str(e) or "scrape_failed", stage="error")
            return ScrapeOutcome(job_id=job_id, status=JobStatus.ERROR, trace=trace, error=str(e))

        finally:
            await self.controller.close(browser)
            metrics.scrape_job_duration_seconds.observe(time.monotonic() - started)

    def _finish_cancelled(self, job_id, trace, categories, store_name, store_uuid, failed_items, stage,
                          harvest: Optional[HarvestResult] = None):
        patch = {}
        if harvest is not None:
            patch = dict(processed=harvest.processed, success=harvest.success,
                         fail=harvest.fail, total=harvest.total)
        record = self.store.mark_cancelled(
            job_id,
            stage=stage,
            message="cancelled",
            failed_items=failed_items,
            **patch,
        )
        trace.step("cancelled", stage=stage, processed=record.processed if record else 0)
        scraped = build_scraped(categories, store_name, store_uuid)
        return ScrapeOutcome(
            job_id=job_id,
            status=JobStatus.CANCELLED,
            trace=trace,
            scraped=scraped,
            store_uuid=store_uuid,
            total_items=scraped.total_items,
            failed_items=failed_items,
        )
