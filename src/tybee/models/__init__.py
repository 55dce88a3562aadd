"""Models package.

This module exports the Base class and all model classes.
"""

from tybee.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from tybee.models.checkout import Checkout, CheckoutStatus
from tybee.models.game_copy import CopyCondition, CopyStatus, GameCopy

__all__ = [
    # Base and Mixins
    "Base",
    "UUIDPrimaryKeyMixin",
    "TimestampMixin",
    # Inventory
    "GameCopy",
    "CopyStatus",
    "CopyCondition",
    # Rentals
    "Checkout",
    "CheckoutStatus",
]
