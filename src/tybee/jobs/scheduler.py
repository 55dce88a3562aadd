"""Periodic maintenance jobs.

Every ``copy_sync_interval_minutes`` the copy inventory is reconciled with
the spreadsheet and, if that worked, a background catalog rebuild is
queued so availability counts catch up. A failed run is logged; the next
interval runs as usual.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tybee.config import Settings
from tybee.core.logging import get_logger, log_context
from tybee.repositories.game_copy import GameCopyRepository
from tybee.services.copy_sync import CopySyncService
from tybee.services.game_data import GameDataService

logger = get_logger(__name__)

COPY_SYNC_JOB_ID = "copy_sync_job"


async def run_copy_sync_job(
    catalog: GameDataService,
    session_factory: async_sessionmaker[AsyncSession],
) -> bool:
    """Sync copies in a dedicated session, then queue a catalog rebuild.

    Returns:
        True if the sync committed
    """
    with log_context(job=COPY_SYNC_JOB_ID):
        try:
            async with session_factory() as session:
                service = CopySyncService(catalog.sheets, GameCopyRepository(session))
                results = await service.sync_copies()
                await session.commit()
        except Exception:
            logger.exception("scheduled_copy_sync_failed")
            return False

        logger.info(
            "scheduled_copy_sync_completed",
            games=len(results),
            changed=sum(1 for r in results if r.copies_changed),
        )
        catalog.schedule_rebuild()
    return True


def create_scheduler(
    settings: Settings,
    catalog: GameDataService,
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIOScheduler:
    """Build the scheduler with the copy sync job registered (not started)."""
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_copy_sync_job,
        IntervalTrigger(minutes=settings.copy_sync_interval_minutes),
        kwargs={"catalog": catalog, "session_factory": session_factory},
        id=COPY_SYNC_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    return scheduler
