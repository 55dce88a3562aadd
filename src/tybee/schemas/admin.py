"""Admin and maintenance schemas."""

from pydantic import Field

from tybee.schemas.common import BaseSchema
from tybee.services.copy_sync import SyncAction


class SyncResultItem(BaseSchema):
    game_id: str
    game_name: str
    previous_count: int
    new_count: int
    action: SyncAction
    copies_changed: int


class CopySyncResponse(BaseSchema):
    """Per-game copy sync outcome."""

    success: bool = True
    message: str
    results: list[SyncResultItem]
    games_changed: int = Field(..., ge=0)


class OutOfSyncItem(BaseSchema):
    game_id: str
    game_name: str
    sheets_count: int
    db_count: int
    difference: int


class OutOfSyncResponse(BaseSchema):
    success: bool = True
    count: int = Field(..., ge=0)
    games: list[OutOfSyncItem]


class CatalogActionResponse(BaseSchema):
    """Result of a cache or rebuild action."""

    success: bool = True
    message: str
    games: int | None = Field(None, ge=0, description="Games in the catalog afterwards")
    enriched: int | None = Field(None, ge=0)


class EnrichMissingResponse(BaseSchema):
    success: bool = True
    message: str
    enriched: int = Field(..., ge=0)
    attempted: int = Field(..., ge=0)
