"""Recommendation quiz endpoints."""

from fastapi import APIRouter, status

from tybee.core.logging import get_logger
from tybee.dependencies import GameDataDep
from tybee.schemas.recommendations import (
    RecommendationItem,
    RecommendationRequest,
    RecommendationResponse,
    ThemeOption,
)
from tybee.services.recommendations import (
    THEME_OPTIONS,
    generate_recommendations,
    top_recommendations,
)

logger = get_logger(__name__)

router = APIRouter()


@router.get(
    "/themes",
    response_model=list[ThemeOption],
    summary="Quiz theme options",
)
async def list_themes() -> list[ThemeOption]:
    return [ThemeOption(**option) for option in THEME_OPTIONS]


@router.post(
    "",
    response_model=RecommendationResponse,
    status_code=status.HTTP_200_OK,
    summary="Recommend games",
    description="Score rentable games against the quiz answers and return the best three.",
)
async def recommend(
    request: RecommendationRequest, catalog: GameDataDep
) -> RecommendationResponse:
    entries = await catalog.get_cached_only()
    ranked = generate_recommendations(entries, request.to_preferences())

    logger.info(
        "recommendations_generated",
        players=request.players,
        candidates=len(entries),
        matches=len(ranked),
    )

    message = None
    if not ranked:
        message = "No available games match these answers. Try relaxing a preference."

    top = top_recommendations(ranked)
    return RecommendationResponse(
        recommendations=[RecommendationItem.from_recommendation(r) for r in top],
        total_matches=len(ranked),
        message=message,
    )
