"""Tests for GameCopyRepository against SQLite."""

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tybee.models.game_copy import CopyStatus, GameCopy
from tybee.repositories.game_copy import Availability, GameCopyRepository


@pytest.fixture
def repo(db_session: AsyncSession) -> GameCopyRepository:
    return GameCopyRepository(db_session)


class TestAddCopies:
    @pytest.mark.asyncio
    async def test_numbers_continue_from_max(self, repo: GameCopyRepository) -> None:
        await repo.add_copies("catan", 2)
        created = await repo.add_copies("catan", 3)

        assert [c.copy_number for c in created] == [3, 4, 5]
        assert all(c.status == CopyStatus.AVAILABLE.value for c in created)
        assert await repo.get_max_copy_number("catan") == 5

    @pytest.mark.asyncio
    async def test_numbering_is_per_game(self, repo: GameCopyRepository) -> None:
        await repo.add_copies("catan", 2)
        created = await repo.add_copies("azul", 1)

        assert created[0].copy_number == 1

    @pytest.mark.asyncio
    async def test_zero_is_noop(self, repo: GameCopyRepository) -> None:
        assert await repo.add_copies("catan", 0) == []
        assert await repo.count() == 0

    @pytest.mark.asyncio
    async def test_duplicate_copy_number_rejected(
        self, repo: GameCopyRepository, db_session: AsyncSession
    ) -> None:
        await repo.add_copies("catan", 1)

        db_session.add(GameCopy(game_id="catan", copy_number=1))
        with pytest.raises(IntegrityError):
            await db_session.flush()


class TestCounts:
    @pytest.mark.asyncio
    async def test_availability_and_status_counts(
        self, repo: GameCopyRepository, db_session: AsyncSession
    ) -> None:
        copies = await repo.add_copies("catan", 4)
        copies[0].status = CopyStatus.CHECKED_OUT.value
        copies[1].status = CopyStatus.MAINTENANCE.value
        await db_session.flush()

        assert await repo.get_availability("catan") == Availability(
            total_copies=4, available_copies=2
        )
        assert await repo.count_by_status("catan") == {
            "available": 2,
            "checked_out": 1,
            "maintenance": 1,
            "missing": 0,
        }
        assert await repo.count_for_game("catan") == 4

    @pytest.mark.asyncio
    async def test_unknown_game(self, repo: GameCopyRepository) -> None:
        assert await repo.get_availability("nope") == Availability()
        assert await repo.get_max_copy_number("nope") == 0
        assert await repo.list_for_game("nope") == []


class TestDeleteAvailableCopies:
    @pytest.mark.asyncio
    async def test_highest_available_first(
        self, repo: GameCopyRepository, db_session: AsyncSession
    ) -> None:
        copies = await repo.add_copies("catan", 4)
        copies[3].status = CopyStatus.CHECKED_OUT.value
        await db_session.flush()

        removed = await repo.delete_available_copies("catan", 2)

        assert removed == 2
        remaining = await repo.list_for_game("catan")
        assert [(c.copy_number, c.status) for c in remaining] == [
            (1, "available"),
            (4, "checked_out"),
        ]

    @pytest.mark.asyncio
    async def test_never_more_than_available(
        self, repo: GameCopyRepository, db_session: AsyncSession
    ) -> None:
        copies = await repo.add_copies("catan", 2)
        copies[0].status = CopyStatus.MISSING.value
        await db_session.flush()

        assert await repo.delete_available_copies("catan", 5) == 1
        assert await repo.count_for_game("catan") == 1
