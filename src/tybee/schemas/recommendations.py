"""Recommendation quiz schemas."""

from pydantic import Field

from tybee.schemas.common import BaseSchema
from tybee.schemas.games import GameResponse
from tybee.services.recommendations import (
    GameRecommendation,
    LearningTime,
    PlayDuration,
    RecommendationPreferences,
)


class RecommendationRequest(BaseSchema):
    """Quiz answers."""

    players: int = Field(..., ge=1, le=20, json_schema_extra={"example": 4})
    learning_time: LearningTime = Field(..., json_schema_extra={"example": "quick"})
    play_duration: PlayDuration = Field(..., json_schema_extra={"example": "medium"})
    strategy_preference: int = Field(
        3, ge=1, le=5, description="1 = mostly luck, 5 = pure strategy"
    )
    themes: list[str] = Field(default_factory=list, max_length=12)

    def to_preferences(self) -> RecommendationPreferences:
        return RecommendationPreferences(
            players=self.players,
            learning_time=self.learning_time,
            play_duration=self.play_duration,
            strategy_preference=self.strategy_preference,
            themes=list(self.themes),
        )


class MatchDetailsResponse(BaseSchema):
    players_match: bool
    duration_match: bool
    complexity_match: bool
    theme_match: bool


class RecommendationItem(BaseSchema):
    game: GameResponse
    score: int
    reasons: list[str]
    match_details: MatchDetailsResponse

    @classmethod
    def from_recommendation(cls, rec: GameRecommendation) -> "RecommendationItem":
        return cls(
            game=GameResponse.from_entry(rec.game),
            score=rec.score,
            reasons=rec.reasons,
            match_details=MatchDetailsResponse(**rec.match_details.to_dict()),
        )


class RecommendationResponse(BaseSchema):
    """Best matches plus how many games matched at all."""

    recommendations: list[RecommendationItem]
    total_matches: int = Field(..., ge=0)
    message: str | None = None


class ThemeOption(BaseSchema):
    value: str
    label: str
