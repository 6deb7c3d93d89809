"""Scrape job submission, progress and cancellation endpoints."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from catalog_harvester.api.deps import get_job_store, get_runner
from catalog_harvester.worker.job_store import JobStatus, JobStore
from catalog_harvester.worker.scrape_job import ScrapeJobRunner, ScrapeRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/scrape", tags=["scrape"])


class ScrapeSubmitRequest(BaseModel):
    """Request model for a scrape job."""
    url: Optional[Any] = None
    fast: bool = False
    max_items: Optional[float] = None
    timeout_ms: Optional[float] = None
    job_id: Optional[str] = None


class ProgressActionRequest(BaseModel):
    """Request model for a progress action."""
    id: Optional[str] = None
    action: Optional[str] = None


@router.post("")
async def submit_scrape(
    request: ScrapeSubmitRequest,
    runner: ScrapeJobRunner = Depends(get_runner),
):
    """Run a scrape job and return the assembled catalog."""
    outcome = await runner.run(ScrapeRequest(
        url=request.url,
        fast=request.fast,
        max_items=request.max_items,
        timeout_ms=request.timeout_ms,
        job_id=request.job_id,
    ))

    if outcome.status == JobStatus.ERROR:
        status_code = 400 if outcome.invalid_input else 500
        return JSONResponse(status_code=status_code, content=outcome.to_response())
    return outcome.to_response()


@router.get("/progress")
async def get_progress(
    id: Optional[str] = Query(None),
    cleanup: bool = Query(False),
    store: JobStore = Depends(get_job_store),
):
    """Current job record; with ``cleanup`` a finished record is removed instead."""
    if not id:
        return JSONResponse(status_code=400, content={"error": "missing_id"})

    record = store.get(id)
    if record is None:
        return JSONResponse(status_code=404, content={"error": "not_found", "id": id})

    if cleanup and record.is_terminal:
        store.cleanup(id)
        logger.info(f"Cleaned up job {id}")
        return {"ok": True, "cleaned": True, "id": id}

    return record.to_dict()


@router.post("/progress")
async def progress_action(
    request: ProgressActionRequest,
    store: JobStore = Depends(get_job_store),
):
    """Apply an action to a job. Only ``cancel`` is supported."""
    if not request.id or not request.action:
        return JSONResponse(status_code=400, content={"error": "missing id or action"})
    if store.get(request.id) is None:
        return JSONResponse(status_code=404, content={"error": "not_found", "id": request.id})
    if request.action != "cancel":
        return JSONResponse(status_code=400, content={"error": "unsupported_action"})

    record = store.request_cancel(request.id)
    logger.info(f"Cancellation requested for job {request.id}")
    return {"ok": True, "id": request.id, "cancel_requested": record.cancel_requested}
