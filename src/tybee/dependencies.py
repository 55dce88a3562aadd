"""Request-scoped dependencies for the v1 routers.

The catalog service is a process singleton created in the lifespan; copy
sync needs a database session, so it is built per request. Tests swap
either through ``app.dependency_overrides``.
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tybee.repositories.game_copy import GameCopyRepository
from tybee.services.copy_sync import CopySyncService
from tybee.services.game_data import GameDataService, get_game_data_service


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """One session per request: committed if the handler returns, rolled back if it raises."""
    from tybee.core.database import get_async_session

    async for session in get_async_session():
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        else:
            await session.commit()


DbSessionDep = Annotated[AsyncSession, Depends(get_db_session)]
GameDataDep = Annotated[GameDataService, Depends(get_game_data_service)]


def get_copy_sync_service(session: DbSessionDep, catalog: GameDataDep) -> CopySyncService:
    return CopySyncService(catalog.sheets, GameCopyRepository(session))


CopySyncDep = Annotated[CopySyncService, Depends(get_copy_sync_service)]
