"""Checkout model - one rental of one physical copy.

Rows are kept after the copy comes back, so a copy's checkouts are its
rental history. Deleting a copy deletes its history with it.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from tybee.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class CheckoutStatus(str, Enum):
    ACTIVE = "active"
    RETURNED = "returned"
    OVERDUE = "overdue"


# Statuses where the copy is still out with a customer
OPEN_STATUSES = (CheckoutStatus.ACTIVE.value, CheckoutStatus.OVERDUE.value)


class Checkout(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A copy leaving the shelf with a customer.

    Attributes:
        copy_id: The rented GameCopy
        customer_name: Who has it
        checked_out_at: When it left
        expected_return_at: Due date, if one was agreed
        returned_at: Set when the copy is checked back in
        status: active, overdue or returned
    """

    __tablename__ = "checkouts"

    copy_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("game_copies.id", ondelete="CASCADE"), nullable=False
    )
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    checked_out_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    expected_return_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    returned_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CheckoutStatus.ACTIVE.value
    )

    __table_args__ = (
        Index("ix_checkouts_copy_id", "copy_id"),
        Index("ix_checkouts_status", "status"),
        Index("ix_checkouts_checked_out_at", "checked_out_at"),
    )

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def __repr__(self) -> str:
        return f"<Checkout(copy_id={self.copy_id}, status='{self.status}')>"
