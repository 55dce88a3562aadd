"""Catalog browse endpoints.

Reads come straight from the cached catalog and never trigger a rebuild,
so they stay fast even while BoardGameGeek is slow or the cache is cold.
"""

from typing import Annotated

from fastapi import APIRouter, Query, status

from tybee.core.exceptions import GameNotFoundError
from tybee.core.logging import get_logger
from tybee.dependencies import GameDataDep
from tybee.schemas.common import ErrorResponse
from tybee.schemas.games import GameListResponse, GameResponse
from tybee.services.filters import GameFilters, apply_filters
from tybee.services.game_data import CacheStatus

logger = get_logger(__name__)

router = APIRouter()

EMPTY_CATALOG_MESSAGE = "The game catalog is loading, please try again in a few minutes."


@router.get(
    "",
    response_model=GameListResponse,
    status_code=status.HTTP_200_OK,
    summary="Browse games",
    description="List catalog games matching the given filters, available games first.",
)
async def list_games(
    catalog: GameDataDep,
    players: Annotated[int | None, Query(ge=1, le=20)] = None,
    min_duration: Annotated[int | None, Query(ge=0)] = None,
    max_duration: Annotated[int | None, Query(ge=0)] = None,
    complexity: Annotated[int | None, Query(ge=1, le=5)] = None,
    search: Annotated[str | None, Query(max_length=200)] = None,
    category: str | None = None,
    categories: Annotated[list[str] | None, Query()] = None,
    mechanic: str | None = None,
    mechanics: Annotated[list[str] | None, Query()] = None,
    min_rating: Annotated[float | None, Query(ge=0, le=10)] = None,
    year_range: Annotated[
        str | None, Query(pattern="^(2020s|2010s|2000s|classic|pre-2000)$")
    ] = None,
    available_only: bool = False,
) -> GameListResponse:
    filters = GameFilters(
        players=players,
        min_duration=min_duration,
        max_duration=max_duration,
        complexity=complexity,
        search=search,
        category=category,
        categories=categories or [],
        mechanic=mechanic,
        mechanics=mechanics or [],
        min_rating=min_rating,
        year_range=year_range,
        available_only=available_only,
    )
    snapshot = await catalog.get_snapshot()
    games = apply_filters(snapshot.entries, filters)

    logger.info(
        "list_games_request",
        cache_status=snapshot.status.value,
        total=len(snapshot.entries),
        matched=len(games),
    )

    return GameListResponse(
        games=[GameResponse.from_entry(game) for game in games],
        total=len(games),
        cache_status=snapshot.status,
        message=EMPTY_CATALOG_MESSAGE if snapshot.status is CacheStatus.EMPTY else None,
    )


@router.get(
    "/{game_id}",
    response_model=GameResponse,
    status_code=status.HTTP_200_OK,
    summary="Get game",
    responses={404: {"model": ErrorResponse, "description": "Game not found"}},
)
async def get_game(game_id: str, catalog: GameDataDep) -> GameResponse:
    game = await catalog.get_game_by_id(game_id)
    if game is None:
        raise GameNotFoundError(game_id=game_id)
    return GameResponse.from_entry(game)
