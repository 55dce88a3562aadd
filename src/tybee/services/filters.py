"""Catalog filtering and ordering.

Every criterion is an independent predicate over one entry, so applying
several criteria at once gives the same result as applying them one after
another. Results are ordered so that games that can be rented right now
come first.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from tybee.services.entries import CatalogEntry, round_half_up

YEAR_RANGES: dict[str, Callable[[int], bool]] = {
    "2020s": lambda year: year >= 2020,
    "2010s": lambda year: 2010 <= year < 2020,
    "2000s": lambda year: 2000 <= year < 2010,
    "classic": lambda year: year < 2000,
    "pre-2000": lambda year: year < 2000,
}


@dataclass
class GameFilters:
    """Browse criteria. Unset fields do not filter."""

    players: int | None = None
    min_duration: int | None = None
    max_duration: int | None = None
    complexity: int | None = None
    search: str | None = None
    category: str | None = None
    categories: list[str] = field(default_factory=list)
    mechanic: str | None = None
    mechanics: list[str] = field(default_factory=list)
    min_rating: float | None = None
    year_range: str | None = None
    available_only: bool = False


def _contains_any(values: Iterable[str], term: str) -> bool:
    term = term.lower()
    return any(term in value.lower() for value in values)


def _predicates(filters: GameFilters) -> list[Callable[[CatalogEntry], bool]]:
    checks: list[Callable[[CatalogEntry], bool]] = []

    if filters.players is not None:
        players = filters.players
        checks.append(lambda e: e.min_players <= players <= e.max_players)

    if filters.min_duration is not None:
        min_duration = filters.min_duration
        checks.append(lambda e: e.max_play_time >= min_duration)

    if filters.max_duration is not None:
        max_duration = filters.max_duration
        checks.append(lambda e: e.min_play_time <= max_duration)

    if filters.complexity is not None:
        complexity = filters.complexity
        checks.append(lambda e: round_half_up(e.complexity_level) == complexity)

    if filters.search:
        term = filters.search.lower()
        checks.append(
            lambda e: term in e.name.lower()
            or term in e.description.lower()
            or _contains_any(e.categories, term)
            or _contains_any(e.publisher, term)
            or _contains_any(e.mechanics, term)
        )

    if filters.category:
        category = filters.category
        checks.append(lambda e: _contains_any(e.categories, category))

    if filters.categories:
        wanted_categories = list(filters.categories)
        checks.append(
            lambda e: any(_contains_any(e.categories, c) for c in wanted_categories)
        )

    if filters.mechanic:
        mechanic = filters.mechanic
        checks.append(lambda e: _contains_any(e.mechanics, mechanic))

    if filters.mechanics:
        wanted_mechanics = list(filters.mechanics)
        checks.append(
            lambda e: any(_contains_any(e.mechanics, m) for m in wanted_mechanics)
        )

    if filters.min_rating is not None:
        min_rating = filters.min_rating
        checks.append(lambda e: e.rating >= min_rating)

    if filters.year_range:
        in_range = YEAR_RANGES.get(filters.year_range, lambda year: True)
        checks.append(
            lambda e: e.year_published is not None and in_range(e.year_published)
        )

    if filters.available_only:
        checks.append(lambda e: e.available_copies > 0)

    return checks


def sort_key(entry: CatalogEntry) -> tuple[int, float, str]:
    """Most available copies first, then best rated, then by name."""
    return (-entry.available_copies, -entry.rating, entry.name.lower())


def apply_filters(
    entries: Iterable[CatalogEntry], filters: GameFilters | None = None
) -> list[CatalogEntry]:
    """Return the entries matching every criterion, sorted for display."""
    checks = _predicates(filters or GameFilters())
    matched = [entry for entry in entries if all(check(entry) for check in checks)]
    return sorted(matched, key=sort_key)
