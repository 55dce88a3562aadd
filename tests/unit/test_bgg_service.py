"""Tests for BGGService and its helpers.

HTTP calls are mocked by patching ``_get_client`` with a client whose
``get`` returns canned ``httpx.Response`` objects.
"""

import xml.etree.ElementTree as ET
from unittest.mock import AsyncMock, MagicMock, call, patch

import httpx
import pytest

from tests.mocks.bgg_responses import (
    CATAN_SEARCH_XML,
    CATAN_THING_XML,
    EMPTY_SEARCH_XML,
    EMPTY_THING_XML,
    MALFORMED_XML,
    UNRANKED_THING_XML,
)
from tests.mocks.fake_redis import FakeRedis
from tybee.config import Settings
from tybee.core.exceptions import MetadataRateLimitError, MetadataServiceError
from tybee.services.bgg import (
    BGGService,
    GameMetadata,
    RateLimiter,
    SearchCandidate,
    calculate_similarity,
    clean_description,
    find_best_match,
    normalize_game_name,
    parse_game_xml,
    parse_search_xml,
)
from tybee.services.cache import CacheService

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def bgg(cache: CacheService, test_settings: Settings, sleep: AsyncMock) -> BGGService:
    return BGGService(cache, settings=test_settings, sleep=sleep)


def mock_client(*responses: httpx.Response | Exception) -> MagicMock:
    """HTTP client whose ``get`` yields ``responses`` in order."""
    client = MagicMock()
    client.get = AsyncMock(side_effect=list(responses))
    return client


def xml_response(text: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, text=text)


# =============================================================================
# Name Matching Tests
# =============================================================================


class TestNormalizeGameName:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Ticket to Ride", "ticket to ride"),
            ("  CATAN: Seafarers!  ", "catan seafarers"),
            ("7 Wonders   Duel", "7 wonders duel"),
            ("Carcassonne (2nd ed.)", "carcassonne 2nd ed"),
        ],
    )
    def test_normalize(self, raw: str, expected: str) -> None:
        assert normalize_game_name(raw) == expected


class TestCalculateSimilarity:
    def test_identical_after_normalization(self) -> None:
        assert calculate_similarity("Catan!", "catan") == 1.0

    def test_partial(self) -> None:
        # "catan dice game" vs "catan dice": distance 5 over length 15
        assert calculate_similarity("Catan Dice Game", "Catan Dice") == pytest.approx(10 / 15)

    def test_symmetric(self) -> None:
        assert calculate_similarity("Azul", "Azure") == calculate_similarity("Azure", "Azul")

    def test_unrelated(self) -> None:
        assert calculate_similarity("Chess", "Pandemic") < 0.6


class TestFindBestMatch:
    @pytest.fixture
    def candidates(self) -> list[SearchCandidate]:
        return parse_search_xml(CATAN_SEARCH_XML)

    def test_exact_match_wins(self, candidates: list[SearchCandidate]) -> None:
        best = find_best_match(candidates, "Catan")
        assert best is not None
        assert best.id == 13

    def test_closest_base_game(self, candidates: list[SearchCandidate]) -> None:
        best = find_best_match(candidates, "Catan Dice")
        assert best is not None
        assert best.id == 27710

    def test_below_threshold(self, candidates: list[SearchCandidate]) -> None:
        assert find_best_match(candidates, "Twilight Imperium") is None

    def test_base_game_preferred_over_expansion(self) -> None:
        candidates = [
            SearchCandidate(id=1, name="Pandemic Legacy", type="boardgameexpansion"),
            SearchCandidate(id=2, name="Pandemic Legacies", type="boardgame"),
        ]
        best = find_best_match(candidates, "Pandemic Legacy!!")
        # Normalized exact match still wins regardless of type
        assert best is not None
        assert best.id == 1

        best = find_best_match(candidates, "Pandemic Legacy S")
        assert best is not None
        assert best.id == 2

    def test_empty(self) -> None:
        assert find_best_match([], "Catan") is None


# =============================================================================
# XML Parsing Tests
# =============================================================================


class TestParseSearchXml:
    def test_parses_items(self) -> None:
        results = parse_search_xml(CATAN_SEARCH_XML)

        assert [r.id for r in results] == [926, 13, 27710]
        assert results[0].type == "boardgameexpansion"
        assert results[1].name == "CATAN"
        assert results[1].year_published == 1995

    def test_empty(self) -> None:
        assert parse_search_xml(EMPTY_SEARCH_XML) == []

    def test_malformed_raises(self) -> None:
        with pytest.raises(ET.ParseError):
            parse_search_xml(MALFORMED_XML)


class TestParseGameXml:
    def test_full_item(self) -> None:
        metadata = parse_game_xml(CATAN_THING_XML)

        assert metadata is not None
        assert metadata.id == 13
        assert metadata.name == "CATAN"
        assert metadata.image == "https://cf.geekdo-images.com/catan.jpg"
        assert metadata.thumbnail == "https://cf.geekdo-images.com/catan_thumb.jpg"
        assert (metadata.min_players, metadata.max_players) == (3, 4)
        assert (metadata.min_play_time, metadata.max_play_time) == (60, 120)
        assert metadata.playing_time == 120
        assert metadata.complexity == pytest.approx(2.29)
        assert metadata.rating == pytest.approx(7.09)
        assert metadata.rank == 529
        assert metadata.year_published == 1995
        assert metadata.categories == ["Negotiation", "Economic"]
        assert metadata.mechanics == ["Dice Rolling", "Trading"]
        assert metadata.publishers == ["KOSMOS"]
        assert metadata.description == (
            "In CATAN, players try to be the dominant force on the island. Trade & build."
        )

    def test_not_ranked(self) -> None:
        metadata = parse_game_xml(UNRANKED_THING_XML)

        assert metadata is not None
        assert metadata.id == 999
        assert metadata.rank == 0
        assert metadata.rating == 0.0
        assert metadata.image == ""
        assert metadata.categories == []

    def test_no_item(self) -> None:
        assert parse_game_xml(EMPTY_THING_XML) is None

    def test_malformed_raises(self) -> None:
        with pytest.raises(ET.ParseError):
            parse_game_xml(MALFORMED_XML)


class TestCleanDescription:
    def test_strips_tags_and_entities(self) -> None:
        assert clean_description("<p>Build&nbsp;roads</p>\n\n<i>fast</i>") == "Build roads fast"

    def test_empty(self) -> None:
        assert clean_description("") == ""


class TestGameMetadataRoundTrip:
    def test_from_dict_defaults(self) -> None:
        metadata = GameMetadata.from_dict({"id": 5, "name": "Acquire"})

        assert metadata.min_players == 1
        assert metadata.rank == 0
        assert metadata.publishers == []


# =============================================================================
# Rate Limiter Tests
# =============================================================================


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_first_request_does_not_wait(self) -> None:
        sleep = AsyncMock()
        limiter = RateLimiter(2.0, clock=lambda: 100.0, sleep=sleep)

        await limiter.wait()

        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_waits_remaining_interval(self) -> None:
        now = [100.0]
        sleep = AsyncMock()
        limiter = RateLimiter(2.0, clock=lambda: now[0], sleep=sleep)

        await limiter.wait()
        now[0] = 100.5
        await limiter.wait()

        sleep.assert_awaited_once()
        assert sleep.await_args.args[0] == pytest.approx(1.5)

    @pytest.mark.asyncio
    async def test_no_wait_after_interval(self) -> None:
        now = [100.0]
        sleep = AsyncMock()
        limiter = RateLimiter(2.0, clock=lambda: now[0], sleep=sleep)

        await limiter.wait()
        now[0] = 103.0
        await limiter.wait()

        sleep.assert_not_awaited()


# =============================================================================
# BGGService Tests
# =============================================================================


class TestSearchGame:
    @pytest.mark.asyncio
    async def test_fetches_and_caches(self, bgg: BGGService, fake_redis: FakeRedis) -> None:
        client = mock_client(xml_response(CATAN_SEARCH_XML))

        with patch.object(bgg, "_get_client", AsyncMock(return_value=client)):
            results = await bgg.search_game("Catan")

        assert [r.id for r in results] == [926, 13, 27710]
        client.get.assert_awaited_once_with(
            "/search", params={"query": "Catan", "type": "boardgame"}
        )
        assert fake_redis.ttls["bgg:search:catan"] == 7 * 24 * 60 * 60

    @pytest.mark.asyncio
    async def test_cache_hit_skips_http(self, bgg: BGGService, cache: CacheService) -> None:
        await cache.put(
            "bgg:search:catan",
            [{"id": 13, "name": "CATAN", "type": "boardgame", "year_published": 1995}],
        )
        client = mock_client()

        with patch.object(bgg, "_get_client", AsyncMock(return_value=client)):
            results = await bgg.search_game("CATAN!")

        assert results == [SearchCandidate(id=13, name="CATAN", year_published=1995)]
        client.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_response_is_empty_and_not_cached(
        self, bgg: BGGService, fake_redis: FakeRedis
    ) -> None:
        client = mock_client(xml_response(MALFORMED_XML))

        with patch.object(bgg, "_get_client", AsyncMock(return_value=client)):
            results = await bgg.search_game("Catan")

        assert results == []
        assert fake_redis.raw("bgg:search:catan") is None


class TestGetGameData:
    @pytest.mark.asyncio
    async def test_fetches_and_caches(self, bgg: BGGService, fake_redis: FakeRedis) -> None:
        client = mock_client(xml_response(CATAN_THING_XML))

        with patch.object(bgg, "_get_client", AsyncMock(return_value=client)):
            metadata = await bgg.get_game_data(13)

        assert metadata is not None
        assert metadata.name == "CATAN"
        client.get.assert_awaited_once_with("/thing", params={"id": 13, "stats": 1})
        assert fake_redis.ttls["bgg:game:13"] == 24 * 60 * 60

    @pytest.mark.asyncio
    async def test_cache_hit(self, bgg: BGGService, cache: CacheService) -> None:
        await cache.put("bgg:game:13", GameMetadata(id=13, name="CATAN", rank=529).to_dict())
        client = mock_client()

        with patch.object(bgg, "_get_client", AsyncMock(return_value=client)):
            metadata = await bgg.get_game_data(13)

        assert metadata is not None
        assert metadata.rank == 529
        client.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_game(self, bgg: BGGService, fake_redis: FakeRedis) -> None:
        client = mock_client(xml_response(EMPTY_THING_XML))

        with patch.object(bgg, "_get_client", AsyncMock(return_value=client)):
            assert await bgg.get_game_data(404404) is None

        assert fake_redis.raw("bgg:game:404404") is None

    @pytest.mark.asyncio
    async def test_malformed_response(self, bgg: BGGService, fake_redis: FakeRedis) -> None:
        client = mock_client(xml_response(MALFORMED_XML))

        with patch.object(bgg, "_get_client", AsyncMock(return_value=client)):
            assert await bgg.get_game_data(13) is None

        assert fake_redis.raw("bgg:game:13") is None


class TestRetryPolicy:
    @pytest.mark.asyncio
    async def test_retries_rate_limit_with_backoff(
        self, bgg: BGGService, sleep: AsyncMock
    ) -> None:
        client = mock_client(
            xml_response("", 429),
            xml_response("", 202),
            xml_response(CATAN_THING_XML),
        )

        with patch.object(bgg, "_get_client", AsyncMock(return_value=client)):
            metadata = await bgg.get_game_data(13)

        assert metadata is not None
        assert client.get.await_count == 3
        assert sleep.await_args_list == [call(5.0), call(10.0)]

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise(self, bgg: BGGService, sleep: AsyncMock) -> None:
        client = mock_client(*(xml_response("", 429) for _ in range(4)))

        with patch.object(bgg, "_get_client", AsyncMock(return_value=client)):
            with pytest.raises(MetadataRateLimitError):
                await bgg.get_game_data(13)

        assert client.get.await_count == 4
        assert sleep.await_args_list == [call(5.0), call(10.0), call(20.0)]

    @pytest.mark.asyncio
    async def test_network_error_retried(self, bgg: BGGService, sleep: AsyncMock) -> None:
        client = mock_client(
            httpx.ConnectError("connection refused"),
            xml_response(CATAN_SEARCH_XML),
        )

        with patch.object(bgg, "_get_client", AsyncMock(return_value=client)):
            results = await bgg.search_game("Catan")

        assert len(results) == 3
        assert sleep.await_args_list == [call(5.0)]

    @pytest.mark.asyncio
    async def test_network_error_exhausted(self, bgg: BGGService) -> None:
        client = mock_client(*(httpx.ReadTimeout("timeout") for _ in range(4)))

        with patch.object(bgg, "_get_client", AsyncMock(return_value=client)):
            with pytest.raises(MetadataServiceError) as exc_info:
                await bgg.search_game("Catan")

        assert not isinstance(exc_info.value, MetadataRateLimitError)

    @pytest.mark.asyncio
    async def test_server_error_not_retried(self, bgg: BGGService, sleep: AsyncMock) -> None:
        client = mock_client(xml_response("oops", 500))

        with patch.object(bgg, "_get_client", AsyncMock(return_value=client)):
            with pytest.raises(MetadataServiceError):
                await bgg.get_game_data(13)

        assert client.get.await_count == 1
        sleep.assert_not_awaited()


class TestResolveBggId:
    @pytest.mark.asyncio
    async def test_resolves_best_match(self, bgg: BGGService) -> None:
        client = mock_client(xml_response(CATAN_SEARCH_XML))

        with patch.object(bgg, "_get_client", AsyncMock(return_value=client)):
            assert await bgg.resolve_bgg_id("Catan") == 13

    @pytest.mark.asyncio
    async def test_no_results(self, bgg: BGGService) -> None:
        client = mock_client(xml_response(EMPTY_SEARCH_XML))

        with patch.object(bgg, "_get_client", AsyncMock(return_value=client)):
            assert await bgg.resolve_bgg_id("Nonexistent Game") is None


class TestClientLifecycle:
    @pytest.mark.asyncio
    async def test_client_created_lazily_and_closed(self, bgg: BGGService) -> None:
        client = await bgg._get_client()

        assert str(client.base_url).startswith("https://boardgamegeek.com/xmlapi2")
        assert "Board Game Rental System" in client.headers["User-Agent"]
        assert await bgg._get_client() is client

        await bgg.close()
        assert client.is_closed
