"""Catalog browse schemas."""

from pydantic import BaseModel, ConfigDict, Field

from tybee.services.entries import CatalogEntry, EnrichedGame
from tybee.services.game_data import CacheStatus


class GameResponse(BaseModel):
    """One catalog entry as shown in listings and detail pages."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Spreadsheet game id")
    name: str
    enriched: bool = Field(..., description="BoardGameGeek metadata present")
    bgg_id: int | None = Field(None, description="BoardGameGeek id")
    total_copies: int
    available_copies: int
    display_image: str
    display_thumbnail: str
    player_range: str = Field(..., json_schema_extra={"example": "3-4 players"})
    duration_range: str = Field(..., json_schema_extra={"example": "60-120 min"})
    complexity_level: float
    description: str
    year_published: int | None = None
    publisher: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    mechanics: list[str] = Field(default_factory=list)
    rating: float
    min_players: int
    max_players: int
    min_play_time: int
    max_play_time: int

    @classmethod
    def from_entry(cls, entry: CatalogEntry) -> "GameResponse":
        data = entry.to_dict()
        data["bgg_id"] = entry.bgg_id if isinstance(entry, EnrichedGame) else None
        return cls.model_validate(data)


class GameListResponse(BaseModel):
    """Filtered catalog listing.

    ``cache_status`` tells the client whether the list is current; when it
    is ``empty`` the catalog has not been built yet and ``message`` asks the
    user to try again shortly.
    """

    games: list[GameResponse]
    total: int = Field(..., ge=0)
    cache_status: CacheStatus
    message: str | None = None
