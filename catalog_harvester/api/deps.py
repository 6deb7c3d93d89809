"""FastAPI dependencies."""

from catalog_harvester.export.base import ExportWriter
from catalog_harvester.export.json_writer import JsonFileExportWriter
from catalog_harvester.worker.job_store import JobStore, job_store
from catalog_harvester.worker.scrape_job import ScrapeJobRunner


def get_job_store() -> JobStore:
    """Dependency for the process-wide job store."""
    return job_store


def get_runner() -> ScrapeJobRunner:
    """A fresh runner per request; runners own their browser."""
    return ScrapeJobRunner(store=job_store)


def get_export_writer() -> ExportWriter:
    return JsonFileExportWriter()
