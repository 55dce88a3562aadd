"""Tests for checkout history against SQLite with foreign keys enforced."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tybee.core.exceptions import CopyNotAvailableError
from tybee.models.checkout import Checkout, CheckoutStatus
from tybee.models.game_copy import CopyStatus
from tybee.repositories.checkout import CheckoutRepository
from tybee.repositories.game_copy import Availability, GameCopyRepository

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def copies(db_session: AsyncSession) -> GameCopyRepository:
    return GameCopyRepository(db_session)


@pytest.fixture
def checkouts(db_session: AsyncSession) -> CheckoutRepository:
    return CheckoutRepository(db_session)


async def count_checkouts(session: AsyncSession) -> int:
    return await session.scalar(select(func.count()).select_from(Checkout)) or 0


class TestCheckOut:
    @pytest.mark.asyncio
    async def test_links_copy_to_open_checkout(
        self, copies: GameCopyRepository, checkouts: CheckoutRepository
    ) -> None:
        [copy] = await copies.add_copies("catan", 1)

        checkout = await checkouts.check_out(copy, "Ada", now=NOW)

        assert checkout.status == CheckoutStatus.ACTIVE.value
        assert copy.status == CopyStatus.CHECKED_OUT.value
        assert copy.current_checkout_id == checkout.id
        assert copy.last_checked_out == NOW
        assert copy.total_checkouts == 1
        assert await checkouts.get_open_for_copy(copy) is checkout
        assert await copies.get_availability("catan") == Availability(1, 0)

    @pytest.mark.asyncio
    async def test_unavailable_copy_rejected(
        self, copies: GameCopyRepository, checkouts: CheckoutRepository
    ) -> None:
        [copy] = await copies.add_copies("catan", 1)
        copy.status = CopyStatus.MAINTENANCE.value

        with pytest.raises(CopyNotAvailableError) as exc_info:
            await checkouts.check_out(copy, "Ada")

        assert exc_info.value.status_code == 409
        assert exc_info.value.details["status"] == "maintenance"


class TestCheckIn:
    @pytest.mark.asyncio
    async def test_returns_copy_and_keeps_history(
        self, copies: GameCopyRepository, checkouts: CheckoutRepository
    ) -> None:
        [copy] = await copies.add_copies("catan", 1)
        first = await checkouts.check_out(copy, "Ada", now=NOW)
        await checkouts.check_in(first, now=NOW + timedelta(days=2))
        second = await checkouts.check_out(copy, "Grace", now=NOW + timedelta(days=3))

        assert first.status == CheckoutStatus.RETURNED.value
        assert first.returned_at == NOW + timedelta(days=2)
        assert copy.current_checkout_id == second.id
        assert copy.total_checkouts == 2
        history = await checkouts.history_for_copy(copy)
        assert [c.customer_name for c in history] == ["Ada", "Grace"]

    @pytest.mark.asyncio
    async def test_closed_checkout_unchanged(
        self, copies: GameCopyRepository, checkouts: CheckoutRepository
    ) -> None:
        [copy] = await copies.add_copies("catan", 1)
        checkout = await checkouts.check_out(copy, "Ada", now=NOW)
        returned_at = NOW + timedelta(hours=1)
        await checkouts.check_in(checkout, now=returned_at)

        await checkouts.check_in(checkout, now=NOW + timedelta(days=9))

        assert checkout.returned_at == returned_at
        assert copy.is_available


class TestMarkOverdue:
    @pytest.mark.asyncio
    async def test_only_past_due_active_checkouts(
        self, copies: GameCopyRepository, checkouts: CheckoutRepository
    ) -> None:
        late, on_time, open_ended = await copies.add_copies("catan", 3)
        overdue = await checkouts.check_out(
            late,
            "Ada",
            expected_return_at=NOW - timedelta(days=1),
            now=NOW - timedelta(days=8),
        )
        await checkouts.check_out(on_time, "Grace", expected_return_at=NOW + timedelta(days=1))
        await checkouts.check_out(open_ended, "Linus")

        assert await checkouts.mark_overdue(now=NOW) == 1
        assert overdue.status == CheckoutStatus.OVERDUE.value
        assert await checkouts.mark_overdue(now=NOW) == 0


class TestCopyRemoval:
    @pytest.mark.asyncio
    async def test_deleting_copy_cascades_to_history(
        self,
        copies: GameCopyRepository,
        checkouts: CheckoutRepository,
        db_session: AsyncSession,
    ) -> None:
        [copy] = await copies.add_copies("catan", 1)
        checkout = await checkouts.check_out(copy, "Ada", now=NOW)
        await checkouts.check_in(checkout, now=NOW + timedelta(days=1))

        assert await copies.delete_available_copies("catan", 1) == 1

        assert await copies.count_for_game("catan") == 0
        assert await count_checkouts(db_session) == 0

    @pytest.mark.asyncio
    async def test_copy_with_open_checkout_never_removed(
        self,
        copies: GameCopyRepository,
        checkouts: CheckoutRepository,
        db_session: AsyncSession,
    ) -> None:
        rented, _ = await copies.add_copies("catan", 2)
        await checkouts.check_out(rented, "Ada", now=NOW)
        # Status edited by hand while the rental is still open
        rented.status = CopyStatus.AVAILABLE.value
        await db_session.flush()

        assert await copies.delete_available_copies("catan", 2) == 1

        [remaining] = await copies.list_for_game("catan")
        assert remaining.copy_number == rented.copy_number
        assert await count_checkouts(db_session) == 1
