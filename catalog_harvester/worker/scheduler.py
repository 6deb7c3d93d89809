"""APScheduler jobs for housekeeping."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from catalog_harvester.config import settings
from catalog_harvester.worker.job_store import InMemoryJobStore, job_store

logger = logging.getLogger(__name__)


def sweep_job_records(store: InMemoryJobStore = job_store) -> int:
    """Drop finished job records past their TTL."""
    removed = store.sweep_expired()
    if removed:
        logger.debug(f"Job sweep removed {removed} records, {len(store)} remain")
    return removed


def setup_scheduler(store: InMemoryJobStore = job_store) -> AsyncIOScheduler:
    """
    Setup and configure APScheduler.

    Returns:
        Configured scheduler instance (not started)
    """
    scheduler = AsyncIOScheduler()
    interval = max(1, int(settings.job_sweep_interval_seconds))

    scheduler.add_job(
        sweep_job_records,
        IntervalTrigger(seconds=interval),
        args=[store],
        id="job_record_sweep",
        name="Expire finished scrape job records",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    logger.info(
        "Scheduler configured: job record sweep every %d seconds (ttl %d seconds)",
        interval,
        store.ttl_seconds,
    )
    return scheduler
