"""Game recommendations from the quiz answers.

Scoring is additive over independent dimensions:

    players      40   hard gate, a miss scores 0 overall
    duration     25   graduated partial credit, 20 for "any"
    complexity   20   graduated partial credit
    strategy     10   10/7/4/0 by distance from the preferred level
    themes       15   or a flat 5 when no theme was chosen
    rating        5   >= 7.5 / 7.0 / 6.5 -> 5 / 3 / 1
    rank          5   <= 100 / 500 / 1000 -> 5 / 3 / 1

Only enriched games with a copy on the shelf are scored. Everything here
is pure: same entries and preferences, same ranking.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from tybee.services.entries import CatalogEntry, EnrichedGame, round_half_up

PLAYERS_POINTS = 40

THEME_OPTIONS: list[dict[str, str]] = [
    {"value": "strategy", "label": "Strategy & Tactics"},
    {"value": "adventure", "label": "Adventure & Exploration"},
    {"value": "fantasy", "label": "Fantasy & Magic"},
    {"value": "sci-fi", "label": "Science Fiction"},
    {"value": "economic", "label": "Economic & Trading"},
    {"value": "war", "label": "War & Military"},
    {"value": "city", "label": "City Building"},
    {"value": "card", "label": "Card Games"},
    {"value": "party", "label": "Party & Social"},
    {"value": "cooperative", "label": "Cooperative"},
    {"value": "abstract", "label": "Abstract Strategy"},
    {"value": "thematic", "label": "Story & Theme"},
]


class LearningTime(str, Enum):
    QUICK = "quick"
    MODERATE = "moderate"
    COMPLEX = "complex"


class PlayDuration(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"
    ANY = "any"


@dataclass
class RecommendationPreferences:
    """Quiz answers.

    ``strategy_preference`` runs from 1 (mostly luck) to 5 (pure strategy).
    """

    players: int
    learning_time: LearningTime
    play_duration: PlayDuration
    strategy_preference: int
    themes: list[str] = field(default_factory=list)


@dataclass
class MatchDetails:
    players_match: bool = False
    duration_match: bool = False
    complexity_match: bool = False
    theme_match: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {
            "players_match": self.players_match,
            "duration_match": self.duration_match,
            "complexity_match": self.complexity_match,
            "theme_match": self.theme_match,
        }


@dataclass
class GameRecommendation:
    game: EnrichedGame
    score: int
    reasons: list[str] = field(default_factory=list)
    match_details: MatchDetails = field(default_factory=MatchDetails)

    def to_dict(self) -> dict[str, Any]:
        return {
            "game": self.game.to_dict(),
            "score": self.score,
            "reasons": list(self.reasons),
            "match_details": self.match_details.to_dict(),
        }


def _average_play_time(game: EnrichedGame) -> float:
    meta = game.metadata
    return (meta.min_play_time + meta.max_play_time) / 2 or float(meta.playing_time)


def _score_duration(avg: float, wanted: PlayDuration) -> tuple[int, str | None]:
    if wanted is PlayDuration.SHORT:
        if avg <= 45:
            return 25, "Quick to play"
        if avg <= 60:
            return 15, None
    elif wanted is PlayDuration.MEDIUM:
        if 30 <= avg <= 90:
            return 25, "Perfect game length"
        if avg <= 120:
            return 15, None
    elif wanted is PlayDuration.LONG:
        if avg >= 90:
            return 25, "Epic gaming session"
        if avg >= 60:
            return 15, None
    elif wanted is PlayDuration.ANY:
        return 20, None
    return 0, None


def _score_complexity(complexity: float, wanted: LearningTime) -> tuple[int, str | None]:
    if wanted is LearningTime.QUICK:
        if complexity <= 2.0:
            return 20, "Easy to learn"
        if complexity <= 2.5:
            return 10, None
    elif wanted is LearningTime.MODERATE:
        if 1.5 <= complexity <= 3.0:
            return 20, "Moderate complexity"
        if complexity <= 3.5:
            return 10, None
    elif wanted is LearningTime.COMPLEX:
        if complexity >= 2.5:
            return 20, "Rich strategic depth"
        if complexity >= 2.0:
            return 10, None
    return 0, None


def strategy_level(complexity: float) -> int:
    """Map a 1.0-5.0 weight to a 1-5 strategy level."""
    return min(5, max(1, round_half_up(complexity)))


def _score_strategy(complexity: float, preference: int) -> int:
    diff = abs(strategy_level(complexity) - preference)
    return {0: 10, 1: 7, 2: 4}.get(diff, 0)


def _matching_themes(themes: list[str], categories: list[str]) -> list[str]:
    lowered = [c.lower() for c in categories]
    return [
        theme
        for theme in themes
        if any(theme.lower() in cat or cat in theme.lower() for cat in lowered)
    ]


def _first_tier(tiers: list[tuple[bool, int]]) -> int:
    for hit, points in tiers:
        if hit:
            return points
    return 0


def score_game(game: EnrichedGame, preferences: RecommendationPreferences) -> GameRecommendation:
    """Score one game; games outside the player range score exactly 0."""
    meta = game.metadata
    details = MatchDetails()

    if not meta.min_players <= preferences.players <= meta.max_players:
        return GameRecommendation(game=game, score=0, reasons=[], match_details=details)

    score = PLAYERS_POINTS
    reasons = [f"Perfect for {preferences.players} players"]
    details.players_match = True

    points, reason = _score_duration(_average_play_time(game), preferences.play_duration)
    score += points
    details.duration_match = points > 0
    if reason:
        reasons.append(reason)

    points, reason = _score_complexity(meta.complexity, preferences.learning_time)
    score += points
    details.complexity_match = points > 0
    if reason:
        reasons.append(reason)

    points = _score_strategy(meta.complexity, preferences.strategy_preference)
    score += points
    if points == 10:
        reasons.append("Perfect strategy level")

    if preferences.themes:
        matching = _matching_themes(preferences.themes, meta.categories)
        if matching:
            score += 15
            details.theme_match = True
            reasons.append(f"Matches your {matching[0]} preference")
    else:
        score += 5
        details.theme_match = True

    ranked = meta.rank > 0
    score += _first_tier(
        [(meta.rating >= 7.5, 5), (meta.rating >= 7.0, 3), (meta.rating >= 6.5, 1)],
    )
    score += _first_tier(
        [
            (ranked and meta.rank <= 100, 5),
            (ranked and meta.rank <= 500, 3),
            (ranked and meta.rank <= 1000, 1),
        ],
    )
    # One quality reason: popularity outranks rating
    if ranked and meta.rank <= 100:
        reasons.append("Top 100 game on BGG")
    elif meta.rating >= 7.5:
        reasons.append("Highly rated on BGG")

    return GameRecommendation(game=game, score=score, reasons=reasons, match_details=details)


def generate_recommendations(
    entries: list[CatalogEntry], preferences: RecommendationPreferences
) -> list[GameRecommendation]:
    """Score every rentable enriched game, best first.

    Returns the full ranking of games with a non-zero score; ties keep
    catalog order.
    """
    candidates = [
        entry
        for entry in entries
        if isinstance(entry, EnrichedGame) and entry.available_copies > 0
    ]
    scored = [score_game(game, preferences) for game in candidates]
    ranked = [rec for rec in scored if rec.score > 0]
    ranked.sort(key=lambda rec: rec.score, reverse=True)
    return ranked


def top_recommendations(
    ranked: list[GameRecommendation], limit: int = 3
) -> list[GameRecommendation]:
    """Head of a ranking from ``generate_recommendations`` for display."""
    return ranked[: max(0, limit)]
