"""GameCopy model - one physical, rentable box of a catalog game.

Games themselves live in the inventory spreadsheet and are mirrored
read-only; only the physical copies are owned by this database. The copy
sync job keeps the number of rows per game equal to the spreadsheet's
"total copies" column.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from tybee.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class CopyStatus(str, Enum):
    """Where a physical copy currently is."""

    AVAILABLE = "available"
    CHECKED_OUT = "checked_out"
    MAINTENANCE = "maintenance"
    MISSING = "missing"


class CopyCondition(str, Enum):
    """Physical condition of a copy."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class GameCopy(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A physical copy of a game.

    Attributes:
        game_id: Catalog game id from the inventory spreadsheet
        copy_number: Human-facing number, unique per game (1, 2, 3...)
        status: available, checked_out, maintenance or missing
        condition: excellent, good, fair or poor
        location: Shelf or storage location
        current_checkout_id: The open Checkout while the copy is out
        last_checked_out: When the copy last left the shelf
        total_checkouts: Lifetime checkout counter
        notes: Free-form staff notes
    """

    __tablename__ = "game_copies"

    game_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    copy_number: Mapped[int] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CopyStatus.AVAILABLE.value,
        index=True,
    )
    condition: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CopyCondition.EXCELLENT.value,
    )
    location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    current_checkout_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey(
            "checkouts.id",
            ondelete="SET NULL",
            # checkouts also points back here
            use_alter=True,
            name="fk_game_copies_current_checkout",
        ),
        nullable=True,
    )
    last_checked_out: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    total_checkouts: Mapped[int] = mapped_column(nullable=False, default=0)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    __table_args__ = (
        # Prevents duplicate copy numbers when two syncs race
        UniqueConstraint("game_id", "copy_number", name="uq_game_copies_game_copy"),
        Index("ix_game_copies_game_id_status", "game_id", "status"),
    )

    @property
    def is_available(self) -> bool:
        return self.status == CopyStatus.AVAILABLE.value

    def __repr__(self) -> str:
        return (
            f"<GameCopy(game_id='{self.game_id}', copy_number={self.copy_number}, "
            f"status='{self.status}')>"
        )
