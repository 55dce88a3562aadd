"""Catalog entries shown to users and scored by the recommender.

An entry is one spreadsheet game merged with live copy availability and,
when the BoardGameGeek lookup succeeded, its metadata. The two shapes are
separate classes:

- ``EnrichedGame``: metadata found, display fields prefer it over the
  spreadsheet values.
- ``FallbackGame``: spreadsheet data only, with placeholder artwork.

Both share the resolved display fields in ``CatalogEntry`` so filtering and
templating never need to know which one they hold. The whole list is
cached as one JSON document; ``kind`` in each dict selects the class on
the way back.
"""

import math
from dataclasses import dataclass, field
from typing import Any, ClassVar

from tybee.services.bgg import GameMetadata
from tybee.services.sheets import CatalogRow


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (2.5 -> 3)."""
    return math.floor(value + 0.5)


def format_player_range(min_players: int, max_players: int) -> str:
    if not min_players and not max_players:
        return "Unknown"
    if min_players == max_players:
        return f"{min_players} player{'' if min_players == 1 else 's'}"
    return f"{min_players}-{max_players} players"


def format_duration_range(min_minutes: int, max_minutes: int) -> str:
    if not min_minutes and not max_minutes:
        return "Unknown"
    if min_minutes == max_minutes:
        return f"{min_minutes} min"
    if not min_minutes:
        return f"~{max_minutes} min"
    if not max_minutes:
        return f"{min_minutes}+ min"
    return f"{min_minutes}-{max_minutes} min"


@dataclass(kw_only=True)
class CatalogEntry:
    """Fields common to every catalog entry.

    Attributes:
        id: Spreadsheet game id
        total_copies: Physical copies in the inventory database
        available_copies: Copies currently on the shelf
        complexity_level: BoardGameGeek weight, or the spreadsheet level
        rating: BoardGameGeek average rating, 0 when unknown
        min_players, max_players, min_play_time, max_play_time: Resolved
            numeric ranges behind ``player_range`` and ``duration_range``
    """

    kind: ClassVar[str]
    enriched: ClassVar[bool]

    id: str
    name: str
    total_copies: int = 0
    available_copies: int = 0
    is_active: bool = True
    display_image: str = ""
    display_thumbnail: str = ""
    player_range: str = "Unknown"
    duration_range: str = "Unknown"
    complexity_level: float = 0.0
    description: str = ""
    year_published: int | None = None
    publisher: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    mechanics: list[str] = field(default_factory=list)
    rating: float = 0.0
    min_players: int = 0
    max_players: int = 0
    min_play_time: int = 0
    max_play_time: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict for caching."""
        return {
            "kind": self.kind,
            "enriched": self.enriched,
            "id": self.id,
            "name": self.name,
            "total_copies": self.total_copies,
            "available_copies": self.available_copies,
            "is_active": self.is_active,
            "display_image": self.display_image,
            "display_thumbnail": self.display_thumbnail,
            "player_range": self.player_range,
            "duration_range": self.duration_range,
            "complexity_level": self.complexity_level,
            "description": self.description,
            "year_published": self.year_published,
            "publisher": list(self.publisher),
            "categories": list(self.categories),
            "mechanics": list(self.mechanics),
            "rating": self.rating,
            "min_players": self.min_players,
            "max_players": self.max_players,
            "min_play_time": self.min_play_time,
            "max_play_time": self.max_play_time,
        }

    @staticmethod
    def _common_from_dict(data: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": data["id"],
            "name": data["name"],
            "total_copies": data.get("total_copies", 0),
            "available_copies": data.get("available_copies", 0),
            "is_active": data.get("is_active", True),
            "display_image": data.get("display_image", ""),
            "display_thumbnail": data.get("display_thumbnail", ""),
            "player_range": data.get("player_range", "Unknown"),
            "duration_range": data.get("duration_range", "Unknown"),
            "complexity_level": data.get("complexity_level", 0.0),
            "description": data.get("description", ""),
            "year_published": data.get("year_published"),
            "publisher": data.get("publisher", []),
            "categories": data.get("categories", []),
            "mechanics": data.get("mechanics", []),
            "rating": data.get("rating", 0.0),
            "min_players": data.get("min_players", 0),
            "max_players": data.get("max_players", 0),
            "min_play_time": data.get("min_play_time", 0),
            "max_play_time": data.get("max_play_time", 0),
        }


@dataclass(kw_only=True)
class EnrichedGame(CatalogEntry):
    """Entry with BoardGameGeek metadata."""

    kind: ClassVar[str] = "enriched"
    enriched: ClassVar[bool] = True

    bgg_id: int
    metadata: GameMetadata

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["bgg_id"] = self.bgg_id
        data["metadata"] = self.metadata.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EnrichedGame":
        return cls(
            **cls._common_from_dict(data),
            bgg_id=data["bgg_id"],
            metadata=GameMetadata.from_dict(data["metadata"]),
        )

    @classmethod
    def build(
        cls,
        row: CatalogRow,
        bgg_id: int,
        metadata: GameMetadata,
        total_copies: int,
        available_copies: int,
        placeholder_image: str,
        placeholder_thumbnail: str,
    ) -> "EnrichedGame":
        """Merge a spreadsheet row with its metadata, metadata first."""
        min_players = metadata.min_players or row.min_players
        max_players = metadata.max_players or row.max_players
        min_play_time = metadata.min_play_time or row.min_duration
        max_play_time = metadata.max_play_time or row.max_duration
        return cls(
            id=row.id,
            name=row.name,
            total_copies=total_copies,
            available_copies=available_copies,
            is_active=row.is_active,
            display_image=metadata.image or placeholder_image,
            display_thumbnail=metadata.thumbnail or placeholder_thumbnail,
            player_range=format_player_range(min_players, max_players),
            duration_range=format_duration_range(min_play_time, max_play_time),
            complexity_level=metadata.complexity or float(row.complexity_level or 0),
            description=metadata.description or row.description or "",
            year_published=metadata.year_published or row.year or None,
            publisher=list(metadata.publishers)
            or ([row.publisher] if row.publisher else []),
            categories=list(metadata.categories),
            mechanics=list(metadata.mechanics),
            rating=metadata.rating or 0.0,
            min_players=min_players,
            max_players=max_players,
            min_play_time=min_play_time,
            max_play_time=max_play_time,
            bgg_id=bgg_id,
            metadata=metadata,
        )


@dataclass(kw_only=True)
class FallbackGame(CatalogEntry):
    """Entry built from the spreadsheet alone."""

    kind: ClassVar[str] = "fallback"
    enriched: ClassVar[bool] = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FallbackGame":
        return cls(**cls._common_from_dict(data))

    @classmethod
    def build(
        cls,
        row: CatalogRow,
        total_copies: int,
        available_copies: int,
        placeholder_image: str,
        placeholder_thumbnail: str,
    ) -> "FallbackGame":
        return cls(
            id=row.id,
            name=row.name,
            total_copies=total_copies,
            available_copies=available_copies,
            is_active=row.is_active,
            display_image=placeholder_image,
            display_thumbnail=placeholder_thumbnail,
            player_range=format_player_range(row.min_players, row.max_players),
            duration_range=format_duration_range(row.min_duration, row.max_duration),
            complexity_level=float(row.complexity_level or 0),
            description=row.description or "",
            year_published=row.year or None,
            publisher=[row.publisher] if row.publisher else [],
            min_players=row.min_players,
            max_players=row.max_players,
            min_play_time=row.min_duration,
            max_play_time=row.max_duration,
        )

    def to_catalog_row(self) -> CatalogRow:
        """Recover the spreadsheet values this entry was built from."""
        return CatalogRow(
            id=self.id,
            name=self.name,
            description=self.description or None,
            publisher=self.publisher[0] if self.publisher else None,
            year=self.year_published,
            min_players=self.min_players,
            max_players=self.max_players,
            min_duration=self.min_play_time,
            max_duration=self.max_play_time,
            complexity_level=int(self.complexity_level),
            is_active=self.is_active,
            total_copies=self.total_copies,
        )


ENTRY_TYPES: dict[str, type[CatalogEntry]] = {
    EnrichedGame.kind: EnrichedGame,
    FallbackGame.kind: FallbackGame,
}


def entry_from_dict(data: dict[str, Any]) -> CatalogEntry:
    """Decode a cached entry.

    Raises:
        KeyError, TypeError, ValueError: If the value is not a valid entry
    """
    if not isinstance(data, dict):
        raise TypeError(f"catalog entry must be an object, got {type(data).__name__}")
    entry_type = ENTRY_TYPES[data.get("kind", FallbackGame.kind)]
    return entry_type.from_dict(data)  # type: ignore[attr-defined]
