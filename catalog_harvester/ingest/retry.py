"""Retry rounds for failed detail fetches."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from playwright.async_api import BrowserContext

from catalog_harvester import metrics
from catalog_harvester.config import Settings, settings as default_settings
from catalog_harvester.ingest.debug_trace import DebugTrace
from catalog_harvester.ingest.detail_pool import DetailFetchPool, FailedItem, PoolProgress, PoolResult
from catalog_harvester.ingest.extraction import RawItem
from catalog_harvester.worker.cancellation import CancellationToken
from catalog_harvester.worker.job_store import JobStore

logger = logging.getLogger(__name__)


@dataclass
class HarvestResult:
    """Accumulated detail payloads and the items that never succeeded."""

    results: Dict[str, Any] = field(default_factory=dict)
    failures: List[FailedItem] = field(default_factory=list)
    rounds: int = 0
    cancelled: bool = False
    # Counters of the most recent pool run (initial or retry round)
    processed: int = 0
    success: int = 0
    fail: int = 0
    total: int = 0

    @property
    def failed_items(self) -> List[RawItem]:
        return [f.item for f in self.failures]

    def record_run(self, run: PoolResult, total: int) -> None:
        self.processed = run.processed
        self.success = run.success
        self.fail = run.fail
        self.total = total


class RetryEngine:
    """
    Re-runs the detail pool over exactly the previous round's failures.

    Each round halves the worker count (never below one). Successes are
    merged into the accumulated results and never overwritten; the failed
    set is replaced by that round's failures.
    """

    def __init__(
        self,
        pool: DetailFetchPool,
        store: Optional[JobStore] = None,
        settings: Optional[Settings] = None,
    ):
        self.pool = pool
        self.store = store
        self.settings = settings or default_settings

    def _progress_reporter(self, job_id: Optional[str], stage: str, message: str, trace: DebugTrace):
        def report(progress: PoolProgress) -> None:
            trace.step(
                "details_progress",
                processed=progress.processed,
                success=progress.success,
                fail=progress.fail,
                remaining=progress.remaining,
                worker=progress.worker,
            )
            if self.store is not None and job_id:
                self.store.update(
                    job_id,
                    stage=stage,
                    message=message,
                    processed=progress.processed,
                    success=progress.success,
                    fail=progress.fail,
                    total=progress.total,
                )
        return report

    async def retry(
        self,
        context: BrowserContext,
        harvest: HarvestResult,
        target_url: str,
        worker_count: int,
        token: Optional[CancellationToken] = None,
        job_id: Optional[str] = None,
        trace: Optional[DebugTrace] = None,
    ) -> HarvestResult:
        """Run retry rounds until nothing fails, rounds run out, or the job is cancelled."""
        token = token or CancellationToken.never()
        trace = trace or DebugTrace()
        workers = worker_count

        for round_no in range(1, self.settings.retry_max_rounds + 1):
            if not harvest.failures:
                break
            if token.cancelled:
                harvest.cancelled = True
                break

            pending = harvest.failed_items
            workers = max(1, workers // 2)
            trace.step("details_retry_round", round=round_no, pending=len(pending), workers=workers)
            logger.info(f"Retry round {round_no}: {len(pending)} items, {workers} workers")
            metrics.retry_rounds_total.inc()

            if self.store is not None and job_id:
                self.store.update(
                    job_id,
                    stage="retrying_details",
                    message=f"retry_round_{round_no}",
                    retry_round=round_no,
                    retry_pending=len(pending),
                    processed=0,
                    success=0,
                    fail=0,
                    total=len(pending),
                )

            round_result = await self.pool.fetch_all(
                context,
                pending,
                target_url,
                workers,
                token,
                self._progress_reporter(job_id, "retrying_details", f"retry_round_{round_no}", trace),
            )
            for item_uuid, payload in round_result.results.items():
                harvest.results.setdefault(item_uuid, payload)

            # Items cancelled before being claimed stay failed
            handled = set(round_result.results) | {f.item.item_uuid for f in round_result.failures}
            unclaimed = [
                FailedItem(item=item, reason="cancelled")
                for item in pending
                if item.item_uuid not in handled
            ]
            harvest.failures = list(round_result.failures) + unclaimed
            harvest.rounds = round_no
            harvest.record_run(round_result, len(pending))

        if token.cancelled:
            harvest.cancelled = True
        return harvest

    async def harvest(
        self,
        context: BrowserContext,
        items: Sequence[RawItem],
        target_url: str,
        worker_count: Optional[int] = None,
        token: Optional[CancellationToken] = None,
        job_id: Optional[str] = None,
        trace: Optional[DebugTrace] = None,
    ) -> HarvestResult:
        """Initial detail run followed by retry rounds over what failed."""
        token = token or CancellationToken.never()
        trace = trace or DebugTrace()
        worker_count = worker_count or self.settings.detail_workers

        if self.store is not None and job_id:
            self.store.update(
                job_id, stage="fetching_details", message="fetching_details",
                processed=0, success=0, fail=0, total=len(items),
            )
        trace.step("starting_details_fetch", items=len(items), workers=worker_count)

        first = await self.pool.fetch_all(
            context,
            items,
            target_url,
            worker_count,
            token,
            self._progress_reporter(job_id, "fetching_details", "fetching_details", trace),
        )
        harvest = HarvestResult(results=dict(first.results), failures=list(first.failures))
        harvest.record_run(first, len(items))
        trace.step("details_fetched", attempted=first.processed, success=first.success, fail=first.fail)

        if token.cancelled:
            harvest.cancelled = True
            return harvest

        return await self.retry(context, harvest, target_url, worker_count, token, job_id, trace)
