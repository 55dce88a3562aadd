"""Shared persistence helpers for SQLAlchemy repositories.

Subclasses name their model through the generic parameter
(``class GameCopyRepository(BaseRepository[GameCopy])``) and work on the
session they are given; committing is left to the caller.
"""

from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tybee.models.base import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    model_class: type[ModelT]

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        for base in getattr(cls, "__orig_bases__", ()):
            args = getattr(base, "__args__", None)
            if args:
                cls.model_class = args[0]
                break

    async def count(self) -> int:
        return await self.session.scalar(
            select(func.count()).select_from(self.model_class)
        ) or 0

    async def create_many(self, rows: list[ModelT]) -> list[ModelT]:
        """Insert ``rows`` and refresh them so server defaults are loaded."""
        self.session.add_all(rows)
        await self.session.flush()
        for row in rows:
            await self.session.refresh(row)
        return rows

    async def delete_many(self, ids: list[UUID]) -> int:
        """Delete rows by primary key and return how many went."""
        if not ids:
            return 0
        result = await self.session.execute(
            delete(self.model_class).where(self.model_class.id.in_(ids))
        )
        await self.session.flush()
        return result.rowcount or 0
