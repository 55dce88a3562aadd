"""Declarative base and shared columns for the copy inventory tables.

Only physical copies are persisted; the game catalog itself is read from
the inventory spreadsheet, so the mixins here stay small.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column


class Base(DeclarativeBase):
    pass


class UUIDPrimaryKeyMixin:
    """Surrogate ``id`` column; copies are addressed by (game_id, copy_number)."""

    @declared_attr
    def id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(primary_key=True, default=uuid.uuid4)


class TimestampMixin:
    """Row bookkeeping in UTC.

    ``updated_at`` moves whenever staff change a copy's status or condition.
    """

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), server_default=func.now())

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
        )
