"""CheckoutRepository: renting copies out and taking them back.

A checkout and the copy's status move together: checking out marks the
copy ``checked_out`` and links it to the open checkout; checking in
returns it to ``available``. History rows are never deleted here.
"""

from datetime import UTC, datetime

from sqlalchemy import select

from tybee.core.exceptions import CopyNotAvailableError
from tybee.models.checkout import OPEN_STATUSES, Checkout, CheckoutStatus
from tybee.models.game_copy import CopyStatus, GameCopy
from tybee.repositories.base import BaseRepository


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CheckoutRepository(BaseRepository[Checkout]):
    async def check_out(
        self,
        copy: GameCopy,
        customer_name: str,
        expected_return_at: datetime | None = None,
        now: datetime | None = None,
    ) -> Checkout:
        """Open a checkout for ``copy``.

        Raises:
            CopyNotAvailableError: If the copy is not on the shelf
        """
        if not copy.is_available:
            raise CopyNotAvailableError(copy.game_id, copy.copy_number, copy.status)

        now = now or _utcnow()
        checkout = Checkout(
            copy_id=copy.id,
            customer_name=customer_name,
            checked_out_at=now,
            expected_return_at=expected_return_at,
            status=CheckoutStatus.ACTIVE.value,
        )
        self.session.add(checkout)
        # Insert the checkout before the copy row points at it
        await self.session.flush()

        copy.status = CopyStatus.CHECKED_OUT.value
        copy.current_checkout_id = checkout.id
        copy.last_checked_out = now
        copy.total_checkouts += 1
        await self.session.flush()
        return checkout

    async def check_in(self, checkout: Checkout, now: datetime | None = None) -> Checkout:
        """Close ``checkout`` and put its copy back on the shelf.

        Closed checkouts are left as is.
        """
        if not checkout.is_open:
            return checkout

        checkout.status = CheckoutStatus.RETURNED.value
        checkout.returned_at = now or _utcnow()

        copy = await self.session.get(GameCopy, checkout.copy_id)
        if copy is not None and copy.current_checkout_id == checkout.id:
            copy.status = CopyStatus.AVAILABLE.value
            copy.current_checkout_id = None
        await self.session.flush()
        return checkout

    async def get_open_for_copy(self, copy: GameCopy) -> Checkout | None:
        result = await self.session.execute(
            select(Checkout)
            .where(Checkout.copy_id == copy.id)
            .where(Checkout.status.in_(OPEN_STATUSES))
        )
        return result.scalars().first()

    async def history_for_copy(self, copy: GameCopy) -> list[Checkout]:
        """Every checkout of a copy, oldest first."""
        result = await self.session.execute(
            select(Checkout)
            .where(Checkout.copy_id == copy.id)
            .order_by(Checkout.checked_out_at)
        )
        return list(result.scalars().all())

    async def mark_overdue(self, now: datetime | None = None) -> int:
        """Flag active checkouts past their due date as overdue.

        Returns:
            Number of checkouts newly flagged
        """
        now = now or _utcnow()
        result = await self.session.execute(
            select(Checkout)
            .where(Checkout.status == CheckoutStatus.ACTIVE.value)
            .where(Checkout.expected_return_at.is_not(None))
            .where(Checkout.expected_return_at < now)
        )
        overdue = list(result.scalars().all())
        for checkout in overdue:
            checkout.status = CheckoutStatus.OVERDUE.value
        await self.session.flush()
        return len(overdue)
