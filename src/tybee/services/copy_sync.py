"""Copy sync service.

Keeps the number of physical copy rows per game equal to the "total
copies" declared in the inventory spreadsheet. New copies are appended
after the highest existing copy number; surplus copies are removed only if
they are sitting on the shelf.

The service flushes through its repository but never commits: the session
owner (request dependency or scheduled job) decides the transaction scope.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

import structlog

from tybee.repositories.game_copy import GameCopyRepository
from tybee.services.sheets import SheetsCatalogSource

logger = structlog.get_logger(__name__)


class SyncAction(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    UNCHANGED = "unchanged"


@dataclass
class SyncResult:
    """Outcome of reconciling one game.

    ``new_count`` is the real count after the sync. When fewer available
    copies exist than the surplus, it stays above the spreadsheet target and
    ``copies_changed`` reports what was actually removed.
    """

    game_id: str
    game_name: str
    previous_count: int
    new_count: int
    action: SyncAction
    copies_changed: int

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["action"] = self.action.value
        return data


@dataclass
class OutOfSyncGame:
    """A game whose database copy count differs from the spreadsheet."""

    game_id: str
    game_name: str
    sheets_count: int
    db_count: int
    difference: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class CopySyncService:
    """Reconciles spreadsheet copy counts with the copy inventory.

    Usage:
        ```python
        service = CopySyncService(sheets, GameCopyRepository(session))
        results = await service.sync_copies()
        await session.commit()
        ```
    """

    def __init__(self, sheets: SheetsCatalogSource, copy_repo: GameCopyRepository) -> None:
        self.sheets = sheets
        self.copy_repo = copy_repo

    async def sync_copies(self) -> list[SyncResult]:
        """Add or retire copies so each active game matches its target.

        Raises:
            CatalogSourceError: If the spreadsheet cannot be read
        """
        rows = await self.sheets.get_active_games()
        results: list[SyncResult] = []

        for row in rows:
            target = row.total_copies
            current = await self.copy_repo.count_for_game(row.id)
            difference = target - current

            if difference > 0:
                await self.copy_repo.add_copies(row.id, difference)
                result = SyncResult(
                    game_id=row.id,
                    game_name=row.name,
                    previous_count=current,
                    new_count=target,
                    action=SyncAction.ADDED,
                    copies_changed=difference,
                )
            elif difference < 0:
                removed = await self.copy_repo.delete_available_copies(
                    row.id, -difference
                )
                if removed < -difference:
                    logger.warning(
                        "copy_sync_partial_removal",
                        game_id=row.id,
                        requested=-difference,
                        removed=removed,
                    )
                result = SyncResult(
                    game_id=row.id,
                    game_name=row.name,
                    previous_count=current,
                    new_count=current - removed,
                    action=SyncAction.REMOVED,
                    copies_changed=removed,
                )
            else:
                result = SyncResult(
                    game_id=row.id,
                    game_name=row.name,
                    previous_count=current,
                    new_count=current,
                    action=SyncAction.UNCHANGED,
                    copies_changed=0,
                )

            if result.copies_changed:
                logger.info(
                    "copy_sync_result",
                    game_id=row.id,
                    action=result.action.value,
                    copies_changed=result.copies_changed,
                    new_count=result.new_count,
                )
            results.append(result)

        changed = sum(1 for r in results if r.copies_changed)
        logger.info("copy_sync_completed", games=len(results), changed=changed)
        return results

    async def get_out_of_sync_games(self) -> list[OutOfSyncGame]:
        """Report games whose copy count differs from the spreadsheet.

        Read-only; nothing is added or removed.
        """
        rows = await self.sheets.get_active_games()
        out_of_sync: list[OutOfSyncGame] = []

        for row in rows:
            db_count = await self.copy_repo.count_for_game(row.id)
            if db_count != row.total_copies:
                out_of_sync.append(
                    OutOfSyncGame(
                        game_id=row.id,
                        game_name=row.name,
                        sheets_count=row.total_copies,
                        db_count=db_count,
                        difference=row.total_copies - db_count,
                    )
                )

        return out_of_sync
