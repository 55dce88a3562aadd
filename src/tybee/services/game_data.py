"""Game catalog service.

Builds the enriched catalog (spreadsheet rows + BoardGameGeek metadata +
copy availability) and serves it from a single staleness-tracked cache
entry.

Catalog cache states, for logical TTL ``catalog_cache_ttl``:
    empty  -> no entry, or older than 2 x TTL
    fresh  -> served as-is
    stale  -> served, and a background rebuild is queued

User-facing reads (``get_cached_only`` and everything built on it) never
build the catalog: they return what is cached, possibly nothing. Only the
admin and maintenance paths rebuild synchronously.

Concurrent rebuilds are not mutually exclusive. Background rebuilds are
coalesced by the task runner, but a synchronous admin rebuild may still
race one; the last write to the cache wins and the next rebuild converges.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tybee.config import Settings, get_settings
from tybee.repositories.game_copy import Availability, GameCopyRepository
from tybee.services.background import BackgroundTaskRunner
from tybee.services.bgg import BGGService
from tybee.services.cache import Cache, CacheService
from tybee.services.entries import (
    CatalogEntry,
    EnrichedGame,
    FallbackGame,
    entry_from_dict,
)
from tybee.services.filters import GameFilters, apply_filters
from tybee.services.sheets import CatalogRow, SheetsCatalogSource

logger = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]

REBUILD_TASK = "catalog-rebuild"


class CacheStatus(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    EMPTY = "empty"


@dataclass
class CatalogSnapshot:
    """Cached catalog plus how old it is."""

    entries: list[CatalogEntry] = field(default_factory=list)
    status: CacheStatus = CacheStatus.EMPTY
    version: str | None = None


@dataclass
class EnrichmentReport:
    """Outcome of a progressive enrichment pass."""

    enriched: int = 0
    attempted: int = 0


class GameDataService:
    """Maintains the enriched game catalog.

    Availability is read through short-lived sessions from
    ``session_factory`` because background rebuilds outlive the request
    that scheduled them.

    Usage:
        ```python
        service = GameDataService(cache, sheets, bgg, session_factory, runner)
        games = await service.get_filtered_games(GameFilters(players=4))
        ```
    """

    def __init__(
        self,
        cache: Cache,
        sheets: SheetsCatalogSource,
        bgg: BGGService,
        session_factory: async_sessionmaker[AsyncSession],
        runner: BackgroundTaskRunner,
        settings: Settings | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache = cache
        self.sheets = sheets
        self.bgg = bgg
        self.runner = runner
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._sleep = sleep
        self._clock = clock

    # -------------------------------------------------------------------------
    # Cached reads
    # -------------------------------------------------------------------------

    async def get_snapshot(self) -> CatalogSnapshot:
        """Read the cached catalog without ever rebuilding it."""
        result = await self.cache.get_with_metadata(CacheService.CATALOG_KEY)
        if not result.exists or result.data is None:
            return CatalogSnapshot()

        if not isinstance(result.data, list):
            logger.warning("catalog_cache_corrupt", error="payload is not a list")
            return CatalogSnapshot()

        try:
            entries = [entry_from_dict(item) for item in result.data]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("catalog_cache_corrupt", error=str(e))
            return CatalogSnapshot()

        status = CacheStatus.FRESH if result.fresh else CacheStatus.STALE
        return CatalogSnapshot(entries=entries, status=status, version=result.version)

    async def get_cached_only(self) -> list[CatalogEntry]:
        """Cached catalog regardless of staleness, empty when nothing is cached."""
        snapshot = await self.get_snapshot()
        if snapshot.status is CacheStatus.EMPTY:
            logger.warning("catalog_cache_empty")
        return snapshot.entries

    async def get_game_by_id(self, game_id: str) -> CatalogEntry | None:
        for entry in await self.get_cached_only():
            if entry.id == game_id:
                return entry
        return None

    async def get_filtered_games(self, filters: GameFilters) -> list[CatalogEntry]:
        return apply_filters(await self.get_cached_only(), filters)

    # -------------------------------------------------------------------------
    # Revalidation
    # -------------------------------------------------------------------------

    async def get_with_revalidation(self, force_refresh: bool = False) -> list[CatalogEntry]:
        """Stale-while-revalidate read for admin and maintenance paths.

        Fresh data is returned as-is. Stale data is returned and a
        background rebuild is queued. With nothing cached, or with
        ``force_refresh``, the catalog is rebuilt before returning.

        Raises:
            CatalogSourceError: If a synchronous rebuild cannot read the sheet
        """
        if force_refresh:
            return await self.build_catalog()

        snapshot = await self.get_snapshot()
        if snapshot.status is CacheStatus.FRESH:
            return snapshot.entries
        if snapshot.status is CacheStatus.STALE:
            self.schedule_rebuild()
            return snapshot.entries
        return await self.build_catalog()

    def schedule_rebuild(self) -> bool:
        """Queue a background catalog rebuild."""
        return self.runner.submit(REBUILD_TASK, self.build_catalog)

    async def refresh_catalog(self) -> list[CatalogEntry]:
        """Return cached data and rebuild in the background.

        With nothing cached the catalog is built synchronously instead.
        """
        snapshot = await self.get_snapshot()
        if snapshot.status is not CacheStatus.EMPTY:
            self.schedule_rebuild()
            logger.info("catalog_refresh_scheduled", cached=len(snapshot.entries))
            return snapshot.entries

        logger.info("catalog_refresh_building", reason="cache_empty")
        return await self.build_catalog()

    async def full_resync(self) -> list[CatalogEntry]:
        """Like ``refresh_catalog`` but re-reads the spreadsheet as well."""
        await self.sheets.invalidate_cache()
        return await self.refresh_catalog()

    async def invalidate_cache(self) -> None:
        """Drop the cached catalog; user reads return nothing until a rebuild."""
        await self.cache.delete(CacheService.CATALOG_KEY)
        logger.info("catalog_cache_invalidated")

    async def invalidate_and_rebuild(self) -> list[CatalogEntry]:
        """Drop the catalog and spreadsheet caches, then rebuild synchronously.

        Expensive: every game is looked up again (BoardGameGeek answers
        from its own cache where possible).

        Raises:
            CatalogSourceError: If the spreadsheet cannot be read
        """
        logger.info("catalog_force_rebuild_started")
        await self.cache.delete(CacheService.CATALOG_KEY)
        await self.sheets.invalidate_cache()
        return await self.build_catalog()

    force_clear_and_rebuild = invalidate_and_rebuild

    # -------------------------------------------------------------------------
    # Building
    # -------------------------------------------------------------------------

    async def build_catalog(self) -> list[CatalogEntry]:
        """Enrich every active spreadsheet game and cache the result.

        Games are enriched ``enrichment_batch_size`` at a time with a pause
        between batches. A game whose lookup fails becomes a fallback entry.

        Raises:
            CatalogSourceError: If the spreadsheet cannot be read
        """
        started = self._clock()
        rows = await self.sheets.get_active_games()
        logger.info("catalog_build_started", games=len(rows))

        entries = await self._enrich_in_batches(rows)

        version = f"v1-{int(self._clock() * 1000)}"
        await self.cache.put_with_metadata(
            CacheService.CATALOG_KEY,
            [entry.to_dict() for entry in entries],
            ttl_seconds=self._settings.catalog_cache_ttl,
            version=version,
        )

        logger.info(
            "catalog_build_completed",
            games=len(entries),
            enriched=sum(1 for e in entries if e.enriched),
            version=version,
            duration_seconds=round(self._clock() - started, 2),
        )
        return entries

    async def _enrich_in_batches(self, rows: list[CatalogRow]) -> list[CatalogEntry]:
        batch_size = self._settings.enrichment_batch_size
        batch_count = (len(rows) + batch_size - 1) // batch_size
        entries: list[CatalogEntry] = []

        for start in range(0, len(rows), batch_size):
            batch = rows[start : start + batch_size]
            logger.debug(
                "catalog_batch_started",
                batch=start // batch_size + 1,
                batches=batch_count,
                size=len(batch),
            )
            entries.extend(
                await asyncio.gather(*(self._enrich_or_fallback(row) for row in batch))
            )
            if start + batch_size < len(rows):
                await self._sleep(self._settings.enrichment_batch_delay)

        return entries

    async def _enrich_or_fallback(self, row: CatalogRow) -> CatalogEntry:
        try:
            return await self.enrich_one(row)
        except Exception as e:
            logger.warning("game_enrichment_failed", game_id=row.id, name=row.name, error=str(e))
            availability = await self._get_availability(row.id)
            return self._fallback(row, availability)

    async def enrich_one(self, row: CatalogRow) -> CatalogEntry:
        """Look up metadata and availability for one spreadsheet game.

        Returns:
            EnrichedGame when BoardGameGeek knows the game, else FallbackGame

        Raises:
            MetadataServiceError: If BoardGameGeek fails after retries
        """
        bgg_id = await self.bgg.resolve_bgg_id(row.name)
        metadata = await self.bgg.get_game_data(bgg_id) if bgg_id else None
        availability = await self._get_availability(row.id)

        if bgg_id is None or metadata is None:
            return self._fallback(row, availability)

        return EnrichedGame.build(
            row,
            bgg_id=bgg_id,
            metadata=metadata,
            total_copies=availability.total_copies,
            available_copies=availability.available_copies,
            placeholder_image=self._settings.placeholder_image,
            placeholder_thumbnail=self._settings.placeholder_thumbnail,
        )

    def _fallback(self, row: CatalogRow, availability: Availability) -> FallbackGame:
        return FallbackGame.build(
            row,
            total_copies=availability.total_copies,
            available_copies=availability.available_copies,
            placeholder_image=self._settings.placeholder_image,
            placeholder_thumbnail=self._settings.placeholder_thumbnail,
        )

    async def _get_availability(self, game_id: str) -> Availability:
        """Copy counts for a game; zeros if the database is unreachable."""
        try:
            async with self._session_factory() as session:
                return await GameCopyRepository(session).get_availability(game_id)
        except Exception as e:
            logger.warning("availability_lookup_failed", game_id=game_id, error=str(e))
            return Availability()

    # -------------------------------------------------------------------------
    # Progressive enrichment
    # -------------------------------------------------------------------------

    async def enrich_missing(self, max_count: int = 10) -> EnrichmentReport:
        """Retry metadata lookup for cached fallback entries, one at a time.

        Lookups are spaced ``progressive_enrichment_delay`` seconds apart.
        Entries that gain metadata replace their fallback in the cached
        list, which is written back once if anything changed.
        """
        entries = await self.get_cached_only()
        missing = [
            (index, entry)
            for index, entry in enumerate(entries)
            if isinstance(entry, FallbackGame)
        ]
        if not missing:
            logger.info("progressive_enrichment_nothing_to_do")
            return EnrichmentReport()

        targets = missing[: max(0, max_count)]
        logger.info(
            "progressive_enrichment_started",
            missing=len(missing),
            attempting=len(targets),
        )

        enriched = 0
        for position, (index, fallback) in enumerate(targets):
            if position:
                await self._sleep(self._settings.progressive_enrichment_delay)

            try:
                entry = await self.enrich_one(fallback.to_catalog_row())
            except Exception as e:
                logger.warning(
                    "progressive_enrichment_failed", game_id=fallback.id, error=str(e)
                )
                continue

            if entry.enriched:
                entries[index] = entry
                enriched += 1

        if enriched:
            await self.cache.put_with_metadata(
                CacheService.CATALOG_KEY,
                [entry.to_dict() for entry in entries],
                ttl_seconds=self._settings.catalog_cache_ttl,
                version=f"v1-{int(self._clock() * 1000)}",
            )

        logger.info(
            "progressive_enrichment_completed", enriched=enriched, attempted=len(targets)
        )
        return EnrichmentReport(enriched=enriched, attempted=len(targets))


# -----------------------------------------------------------------------------
# FastAPI Dependency Injection
# -----------------------------------------------------------------------------

_game_data_service: GameDataService | None = None


def set_game_data_service(service: GameDataService | None) -> None:
    """Set the global catalog service during app startup."""
    global _game_data_service
    _game_data_service = service


def get_game_data_service() -> GameDataService:
    """FastAPI dependency for GameDataService."""
    if _game_data_service is None:
        raise RuntimeError(
            "Game data service not initialized. Call set_game_data_service first."
        )
    return _game_data_service
