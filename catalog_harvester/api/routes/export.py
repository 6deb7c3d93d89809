"""Export endpoint for assembled catalogs."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from catalog_harvester.api.deps import get_export_writer
from catalog_harvester.export.base import ExportError, ExportWriter
from catalog_harvester.normalize.assembler import ScrapedMenu

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/export", tags=["export"])


class ExportRequest(BaseModel):
    """Request model for an export."""
    scraped: ScrapedMenu
    destination: Optional[str] = None


class ExportResponse(BaseModel):
    ok: bool = True
    location: str
    categories: int
    items: int
    modifier_groups: int


@router.post("", response_model=ExportResponse)
async def export_catalog(
    request: ExportRequest,
    writer: ExportWriter = Depends(get_export_writer),
):
    """Hand an assembled catalog to the configured export writer."""
    try:
        result = await writer.write(request.scraped, request.destination)
    except ExportError as e:
        logger.warning(f"Export rejected: {e}")
        raise HTTPException(status_code=400, detail=e.reason)

    return ExportResponse(
        location=result.location,
        categories=result.categories,
        items=result.items,
        modifier_groups=result.modifier_groups,
    )
