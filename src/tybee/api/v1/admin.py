"""Admin and maintenance endpoints.

Copy sync, cache control and catalog rebuilds. Rebuild endpoints can take
minutes on a cold BoardGameGeek cache; prefer ``/cache/refresh`` which
answers immediately and rebuilds in the background.
"""

from typing import Annotated

from fastapi import APIRouter, Query, status

from tybee.core.logging import get_logger
from tybee.dependencies import CopySyncDep, GameDataDep
from tybee.schemas.admin import (
    CatalogActionResponse,
    CopySyncResponse,
    EnrichMissingResponse,
    OutOfSyncItem,
    OutOfSyncResponse,
    SyncResultItem,
)
from tybee.schemas.common import ErrorResponse
from tybee.services.entries import CatalogEntry

logger = get_logger(__name__)

router = APIRouter()

SOURCE_ERROR_RESPONSES = {
    503: {"model": ErrorResponse, "description": "Inventory spreadsheet unavailable"},
}


def _catalog_response(message: str, entries: list[CatalogEntry]) -> CatalogActionResponse:
    return CatalogActionResponse(
        message=message,
        games=len(entries),
        enriched=sum(1 for e in entries if e.enriched),
    )


# =============================================================================
# Copy Inventory
# =============================================================================


@router.post(
    "/copies/sync",
    response_model=CopySyncResponse,
    status_code=status.HTTP_200_OK,
    summary="Sync physical copies with the spreadsheet",
    responses=SOURCE_ERROR_RESPONSES,
)
async def sync_copies(sync: CopySyncDep) -> CopySyncResponse:
    results = await sync.sync_copies()
    changed = sum(1 for r in results if r.copies_changed)
    return CopySyncResponse(
        message=f"Synced {len(results)} games, {changed} changed",
        results=[SyncResultItem(**r.to_dict()) for r in results],
        games_changed=changed,
    )


@router.get(
    "/copies/out-of-sync",
    response_model=OutOfSyncResponse,
    summary="Games whose copy count differs from the spreadsheet",
    responses=SOURCE_ERROR_RESPONSES,
)
async def out_of_sync(sync: CopySyncDep) -> OutOfSyncResponse:
    games = await sync.get_out_of_sync_games()
    return OutOfSyncResponse(
        count=len(games),
        games=[OutOfSyncItem(**g.to_dict()) for g in games],
    )


# =============================================================================
# Catalog Cache
# =============================================================================


@router.post(
    "/cache/invalidate",
    response_model=CatalogActionResponse,
    summary="Drop the cached catalog",
)
async def invalidate_cache(catalog: GameDataDep) -> CatalogActionResponse:
    await catalog.invalidate_cache()
    return CatalogActionResponse(message="Catalog cache cleared")


@router.post(
    "/cache/refresh",
    response_model=CatalogActionResponse,
    summary="Refresh the catalog in the background",
    responses=SOURCE_ERROR_RESPONSES,
)
async def refresh_cache(catalog: GameDataDep) -> CatalogActionResponse:
    entries = await catalog.refresh_catalog()
    return _catalog_response("Catalog refresh started", entries)


@router.post(
    "/enrich-missing",
    response_model=EnrichMissingResponse,
    summary="Retry metadata lookup for games without it",
)
async def enrich_missing(
    catalog: GameDataDep,
    max_games: Annotated[int, Query(ge=1, le=50)] = 10,
) -> EnrichMissingResponse:
    report = await catalog.enrich_missing(max_games)
    return EnrichMissingResponse(
        message=f"Enriched {report.enriched} of {report.attempted} games",
        enriched=report.enriched,
        attempted=report.attempted,
    )


@router.post(
    "/full-rebuild",
    response_model=CatalogActionResponse,
    summary="Clear every cache and rebuild the catalog now",
    responses=SOURCE_ERROR_RESPONSES,
)
async def full_rebuild(catalog: GameDataDep) -> CatalogActionResponse:
    logger.warning("admin_full_rebuild_requested")
    entries = await catalog.invalidate_and_rebuild()
    return _catalog_response("Catalog rebuilt", entries)


@router.post(
    "/full-resync",
    response_model=CatalogActionResponse,
    summary="Re-read the spreadsheet and rebuild in the background",
    responses=SOURCE_ERROR_RESPONSES,
)
async def full_resync(catalog: GameDataDep) -> CatalogActionResponse:
    entries = await catalog.full_resync()
    return _catalog_response("Full resync started", entries)
