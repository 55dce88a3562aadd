"""Repositories over the copy inventory tables."""

from tybee.repositories.base import BaseRepository
from tybee.repositories.checkout import CheckoutRepository
from tybee.repositories.game_copy import Availability, GameCopyRepository

__all__ = [
    "BaseRepository",
    "Availability",
    "CheckoutRepository",
    "GameCopyRepository",
]
