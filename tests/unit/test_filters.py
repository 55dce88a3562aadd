"""Tests for catalog filtering and ordering."""

import pytest

from tests.mocks.catalog import make_enriched, make_fallback
from tybee.services.entries import CatalogEntry
from tybee.services.filters import GameFilters, apply_filters, sort_key


@pytest.fixture
def catalog() -> list[CatalogEntry]:
    return [
        make_enriched(
            "catan",
            "Catan",
            available=1,
            rating=7.1,
            complexity=2.3,
            year_published=1995,
        ),
        make_enriched(
            "azul",
            "Azul",
            available=2,
            bgg_id=230802,
            min_players=2,
            max_players=4,
            min_play_time=30,
            max_play_time=45,
            complexity=1.8,
            rating=7.8,
            year_published=2017,
            categories=["Abstract Strategy"],
            mechanics=["Tile Placement", "Pattern Building"],
            publishers=["Plan B Games"],
        ),
        make_enriched(
            "gloomhaven",
            "Gloomhaven",
            available=0,
            bgg_id=174430,
            min_players=1,
            max_players=4,
            min_play_time=60,
            max_play_time=120,
            complexity=3.9,
            rating=8.6,
            year_published=2017,
            categories=["Adventure", "Fantasy"],
            mechanics=["Cooperative Game", "Hand Management"],
            description="Vanquish monsters with strategic cardplay.",
        ),
        make_fallback(
            "mystery",
            "Mystery Game",
            available=1,
            min_players=2,
            max_players=6,
            min_duration=15,
            max_duration=30,
            complexity_level=1,
        ),
    ]


def ids(entries: list[CatalogEntry]) -> list[str]:
    return [e.id for e in entries]


class TestApplyFilters:
    def test_no_filters_sorts_everything(self, catalog: list[CatalogEntry]) -> None:
        assert ids(apply_filters(catalog)) == ["azul", "catan", "mystery", "gloomhaven"]

    def test_players_inclusive(self, catalog: list[CatalogEntry]) -> None:
        assert ids(apply_filters(catalog, GameFilters(players=1))) == ["gloomhaven"]
        assert ids(apply_filters(catalog, GameFilters(players=6))) == ["mystery"]
        assert set(ids(apply_filters(catalog, GameFilters(players=4)))) == {
            "catan",
            "azul",
            "gloomhaven",
            "mystery",
        }
        assert ids(apply_filters(catalog, GameFilters(players=5))) == ["mystery"]

    def test_duration_overlap(self, catalog: list[CatalogEntry]) -> None:
        short = apply_filters(catalog, GameFilters(max_duration=30))
        assert ids(short) == ["azul", "mystery"]

        long = apply_filters(catalog, GameFilters(min_duration=100))
        assert ids(long) == ["catan", "gloomhaven"]

    def test_complexity_rounds_half_up(self, catalog: list[CatalogEntry]) -> None:
        assert ids(apply_filters(catalog, GameFilters(complexity=2))) == ["azul", "catan"]
        assert ids(apply_filters(catalog, GameFilters(complexity=4))) == ["gloomhaven"]
        assert ids(apply_filters(catalog, GameFilters(complexity=1))) == ["mystery"]

    def test_complexity_exact_half(self) -> None:
        entry = make_enriched(complexity=2.5)
        assert apply_filters([entry], GameFilters(complexity=3)) == [entry]
        assert apply_filters([entry], GameFilters(complexity=2)) == []

    @pytest.mark.parametrize(
        ("term", "expected"),
        [
            ("GLOOM", ["gloomhaven"]),
            ("monsters", ["gloomhaven"]),
            ("abstract", ["azul"]),
            ("plan b", ["azul"]),
            ("cooperative", ["gloomhaven"]),
            ("zzz", []),
        ],
    )
    def test_search(self, catalog: list[CatalogEntry], term: str, expected: list[str]) -> None:
        assert ids(apply_filters(catalog, GameFilters(search=term))) == expected

    def test_category_and_mechanic(self, catalog: list[CatalogEntry]) -> None:
        assert ids(apply_filters(catalog, GameFilters(category="fantasy"))) == ["gloomhaven"]
        assert ids(apply_filters(catalog, GameFilters(mechanic="tile"))) == ["azul"]

    def test_any_of_lists(self, catalog: list[CatalogEntry]) -> None:
        by_category = apply_filters(
            catalog, GameFilters(categories=["Economic", "Adventure"])
        )
        assert ids(by_category) == ["catan", "gloomhaven"]

        by_mechanic = apply_filters(
            catalog, GameFilters(mechanics=["Pattern Building", "Hand Management"])
        )
        assert ids(by_mechanic) == ["azul", "gloomhaven"]

    def test_min_rating(self, catalog: list[CatalogEntry]) -> None:
        assert ids(apply_filters(catalog, GameFilters(min_rating=7.5))) == ["azul", "gloomhaven"]

    @pytest.mark.parametrize(
        ("year_range", "expected"),
        [
            ("2010s", ["azul", "gloomhaven"]),
            ("classic", ["catan"]),
            ("pre-2000", ["catan"]),
            ("2020s", []),
        ],
    )
    def test_year_range(
        self, catalog: list[CatalogEntry], year_range: str, expected: list[str]
    ) -> None:
        assert ids(apply_filters(catalog, GameFilters(year_range=year_range))) == expected

    def test_year_range_excludes_unknown_year(self, catalog: list[CatalogEntry]) -> None:
        assert "mystery" not in ids(apply_filters(catalog, GameFilters(year_range="2000s")))

    def test_available_only(self, catalog: list[CatalogEntry]) -> None:
        assert "gloomhaven" not in ids(apply_filters(catalog, GameFilters(available_only=True)))

    def test_combined_equals_sequential(self, catalog: list[CatalogEntry]) -> None:
        combined = apply_filters(
            catalog, GameFilters(players=4, min_rating=7.0, available_only=True)
        )

        sequential = apply_filters(catalog, GameFilters(players=4))
        sequential = apply_filters(sequential, GameFilters(min_rating=7.0))
        sequential = apply_filters(sequential, GameFilters(available_only=True))

        assert ids(combined) == ids(sequential) == ["azul", "catan"]

    def test_input_not_mutated(self, catalog: list[CatalogEntry]) -> None:
        before = ids(catalog)
        apply_filters(catalog, GameFilters(players=2))
        assert ids(catalog) == before


class TestSortKey:
    def test_availability_then_rating_then_name(self) -> None:
        entries = [
            make_enriched("b", "banana", available=1, rating=7.0),
            make_enriched("a", "Apple", available=1, rating=7.0),
            make_enriched("c", "Cherry", available=1, rating=8.0),
            make_enriched("d", "Date", available=3, rating=5.0),
        ]

        assert [e.id for e in sorted(entries, key=sort_key)] == ["d", "c", "a", "b"]
