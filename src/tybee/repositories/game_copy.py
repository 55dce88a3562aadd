"""GameCopyRepository for physical copy inventory.

All queries are scoped by the spreadsheet game id. Copy numbers are unique
per game at the database level, so concurrent inserts of the same number
fail instead of silently duplicating.
"""

from dataclasses import dataclass

from sqlalchemy import case, exists, func, select

from tybee.models.checkout import OPEN_STATUSES, Checkout
from tybee.models.game_copy import CopyCondition, CopyStatus, GameCopy
from tybee.repositories.base import BaseRepository


@dataclass(frozen=True)
class Availability:
    """Copy counts for one game."""

    total_copies: int = 0
    available_copies: int = 0


class GameCopyRepository(BaseRepository[GameCopy]):
    """Repository for GameCopy entities."""

    async def list_for_game(self, game_id: str) -> list[GameCopy]:
        """Get all copies of a game ordered by copy number."""
        result = await self.session.execute(
            select(GameCopy)
            .where(GameCopy.game_id == game_id)
            .order_by(GameCopy.copy_number)
        )
        return list(result.scalars().all())

    async def count_for_game(self, game_id: str) -> int:
        """Count every copy of a game regardless of status."""
        result = await self.session.execute(
            select(func.count(GameCopy.id)).where(GameCopy.game_id == game_id)
        )
        return result.scalar_one()

    async def get_availability(self, game_id: str) -> Availability:
        """Count total and currently available copies of a game."""
        result = await self.session.execute(
            select(
                func.count(GameCopy.id),
                func.count(
                    case((GameCopy.status == CopyStatus.AVAILABLE.value, 1))
                ),
            ).where(GameCopy.game_id == game_id)
        )
        total, available = result.one()
        return Availability(total_copies=total or 0, available_copies=available or 0)

    async def count_by_status(self, game_id: str) -> dict[str, int]:
        """Count copies of a game grouped by status.

        Returns:
            Mapping of every CopyStatus value to its count (zero if absent)
        """
        result = await self.session.execute(
            select(GameCopy.status, func.count(GameCopy.id))
            .where(GameCopy.game_id == game_id)
            .group_by(GameCopy.status)
        )
        counts = {status.value: 0 for status in CopyStatus}
        for status, count in result.all():
            counts[status] = count
        return counts

    async def get_max_copy_number(self, game_id: str) -> int:
        """Highest copy number in use for a game, 0 if it has none."""
        result = await self.session.execute(
            select(func.max(GameCopy.copy_number)).where(GameCopy.game_id == game_id)
        )
        return result.scalar_one_or_none() or 0

    async def add_copies(self, game_id: str, count: int) -> list[GameCopy]:
        """Create new available copies numbered after the current maximum.

        Args:
            game_id: Catalog game id
            count: Number of copies to add

        Returns:
            The created copies
        """
        if count <= 0:
            return []
        start = await self.get_max_copy_number(game_id)
        copies = [
            GameCopy(
                game_id=game_id,
                copy_number=start + offset,
                status=CopyStatus.AVAILABLE.value,
                condition=CopyCondition.EXCELLENT.value,
                total_checkouts=0,
            )
            for offset in range(1, count + 1)
        ]
        return await self.create_many(copies)

    async def delete_available_copies(self, game_id: str, max_to_remove: int) -> int:
        """Delete up to ``max_to_remove`` available copies of a game.

        Copies that are checked out, in maintenance or missing are never
        touched, nor is any copy with an open checkout whatever its status
        says. Highest copy numbers are removed first so the remaining
        numbering stays compact.

        Returns:
            Number of copies actually deleted
        """
        if max_to_remove <= 0:
            return 0
        result = await self.session.execute(
            select(GameCopy.id)
            .where(GameCopy.game_id == game_id)
            .where(GameCopy.status == CopyStatus.AVAILABLE.value)
            .where(
                ~exists().where(
                    Checkout.copy_id == GameCopy.id,
                    Checkout.status.in_(OPEN_STATUSES),
                )
            )
            .order_by(GameCopy.copy_number.desc())
            .limit(max_to_remove)
        )
        ids = list(result.scalars().all())
        return await self.delete_many(ids)
