"""BoardGameGeek XML API client.

Resolves spreadsheet game names to BoardGameGeek ids and fetches the rich
metadata (images, player counts, weight, categories, rating, rank) used to
enrich the catalog.

BoardGameGeek is shared, rate limited and sometimes slow to build
responses, so this client:
- spaces requests at least ``bgg_rate_limit_delay`` seconds apart,
- retries 429 (rate limited), 202 (still processing) and network errors
  with exponential backoff starting at ``bgg_retry_delay``,
- caches searches for 7 days and game details for 24 hours.

See: https://boardgamegeek.com/wiki/page/BGG_XML_API2
"""

import asyncio
import html
import re
import time
import xml.etree.ElementTree as ET
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog
from rapidfuzz.distance import Levenshtein

from tybee.config import Settings, get_settings
from tybee.core.exceptions import MetadataRateLimitError, MetadataServiceError
from tybee.services.cache import Cache, CacheService

logger = structlog.get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]

MIN_MATCH_SIMILARITY = 0.6
CANONICAL_TYPE = "boardgame"


# -----------------------------------------------------------------------------
# DTOs
# -----------------------------------------------------------------------------


@dataclass
class SearchCandidate:
    """One hit from the BoardGameGeek name search."""

    id: int
    name: str
    type: str = CANONICAL_TYPE
    year_published: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "year_published": self.year_published,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SearchCandidate":
        return cls(
            id=data["id"],
            name=data["name"],
            type=data.get("type", CANONICAL_TYPE),
            year_published=data.get("year_published"),
        )


@dataclass
class GameMetadata:
    """Game details from BoardGameGeek.

    ``complexity`` is the community weight (1.0-5.0), ``rating`` the
    average user rating (0-10) and ``rank`` the overall board game rank
    (0 when unranked).
    """

    id: int
    name: str
    image: str = ""
    thumbnail: str = ""
    min_players: int = 1
    max_players: int = 1
    playing_time: int = 0
    min_play_time: int = 0
    max_play_time: int = 0
    complexity: float = 0.0
    year_published: int = 0
    description: str = ""
    publishers: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    mechanics: list[str] = field(default_factory=list)
    rating: float = 0.0
    rank: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict for caching."""
        return {
            "id": self.id,
            "name": self.name,
            "image": self.image,
            "thumbnail": self.thumbnail,
            "min_players": self.min_players,
            "max_players": self.max_players,
            "playing_time": self.playing_time,
            "min_play_time": self.min_play_time,
            "max_play_time": self.max_play_time,
            "complexity": self.complexity,
            "year_published": self.year_published,
            "description": self.description,
            "publishers": self.publishers,
            "categories": self.categories,
            "mechanics": self.mechanics,
            "rating": self.rating,
            "rank": self.rank,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameMetadata":
        """Create from cached dict."""
        return cls(
            id=data["id"],
            name=data["name"],
            image=data.get("image", ""),
            thumbnail=data.get("thumbnail", ""),
            min_players=data.get("min_players", 1),
            max_players=data.get("max_players", 1),
            playing_time=data.get("playing_time", 0),
            min_play_time=data.get("min_play_time", 0),
            max_play_time=data.get("max_play_time", 0),
            complexity=data.get("complexity", 0.0),
            year_published=data.get("year_published", 0),
            description=data.get("description", ""),
            publishers=data.get("publishers", []),
            categories=data.get("categories", []),
            mechanics=data.get("mechanics", []),
            rating=data.get("rating", 0.0),
            rank=data.get("rank", 0),
        )


# -----------------------------------------------------------------------------
# Name matching
# -----------------------------------------------------------------------------


def normalize_game_name(name: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    name = re.sub(r"[^\w\s]", "", name.lower())
    return re.sub(r"\s+", " ", name).strip()


def calculate_similarity(first: str, second: str) -> float:
    """Levenshtein similarity of two names in [0, 1] after normalization."""
    s1 = normalize_game_name(first)
    s2 = normalize_game_name(second)
    if s1 == s2:
        return 1.0

    longer, shorter = (s1, s2) if len(s1) > len(s2) else (s2, s1)
    if not longer:
        return 1.0

    distance = Levenshtein.distance(longer, shorter)
    return (len(longer) - distance) / len(longer)


def find_best_match(
    candidates: list[SearchCandidate], original_name: str
) -> SearchCandidate | None:
    """Pick the candidate that best matches a spreadsheet name.

    An exact normalized match wins outright. Otherwise base games rank
    ahead of expansions, then by similarity; the winner must be more than
    60% similar.
    """
    if not candidates:
        return None

    normalized = normalize_game_name(original_name)
    for candidate in candidates:
        if normalize_game_name(candidate.name) == normalized:
            return candidate

    scored = sorted(
        ((calculate_similarity(c.name, original_name), c) for c in candidates),
        key=lambda pair: (pair[1].type != CANONICAL_TYPE, -pair[0]),
    )
    similarity, best = scored[0]
    return best if similarity > MIN_MATCH_SIMILARITY else None


# -----------------------------------------------------------------------------
# XML parsing
# -----------------------------------------------------------------------------


def _int_attr(element: ET.Element | None, default: int = 0) -> int:
    if element is None:
        return default
    try:
        return int(element.get("value", ""))
    except ValueError:
        return default


def _float_attr(element: ET.Element | None, default: float = 0.0) -> float:
    if element is None:
        return default
    try:
        return float(element.get("value", ""))
    except ValueError:
        return default


def clean_description(description: str) -> str:
    """Unescape entities, drop HTML tags and collapse whitespace."""
    text = html.unescape(description)
    text = re.sub(r"<[^>]*>", "", text)
    return re.sub(r"\s+", " ", text).strip()


def parse_search_xml(xml_text: str) -> list[SearchCandidate]:
    """Parse a ``/search`` response.

    Raises:
        ET.ParseError: If the document is not XML
    """
    root = ET.fromstring(xml_text)
    results: list[SearchCandidate] = []

    for item in root.iter("item"):
        try:
            bgg_id = int(item.get("id", "0"))
        except ValueError:
            continue
        name_el = item.find("name")
        name = name_el.get("value", "") if name_el is not None else ""
        if bgg_id <= 0 or not name:
            continue

        year = _int_attr(item.find("yearpublished"))
        results.append(
            SearchCandidate(
                id=bgg_id,
                name=name,
                type=item.get("type", CANONICAL_TYPE),
                year_published=year or None,
            )
        )

    return results


def parse_game_xml(xml_text: str) -> GameMetadata | None:
    """Parse a ``/thing?stats=1`` response.

    Returns:
        GameMetadata, or None when the document has no usable item

    Raises:
        ET.ParseError: If the document is not XML
    """
    root = ET.fromstring(xml_text)
    item = root.find("item")
    if item is None:
        return None

    try:
        bgg_id = int(item.get("id", "0"))
    except ValueError:
        return None

    name = ""
    for name_el in item.findall("name"):
        if name_el.get("type") == "primary":
            name = name_el.get("value", "")
            break
    if bgg_id <= 0 or not name:
        return None

    def links(link_type: str) -> list[str]:
        return [
            link.get("value", "")
            for link in item.findall("link")
            if link.get("type") == link_type and link.get("value")
        ]

    ratings = item.find("statistics/ratings")
    rating = 0.0
    complexity = 0.0
    rank = 0
    if ratings is not None:
        rating = _float_attr(ratings.find("average"))
        complexity = _float_attr(ratings.find("averageweight"))
        for rank_el in ratings.findall("ranks/rank"):
            if rank_el.get("name") == CANONICAL_TYPE:
                # "Not Ranked" parses to the default
                rank = _int_attr(rank_el)
                break

    return GameMetadata(
        id=bgg_id,
        name=name,
        image=(item.findtext("image") or "").strip(),
        thumbnail=(item.findtext("thumbnail") or "").strip(),
        min_players=_int_attr(item.find("minplayers"), 1),
        max_players=_int_attr(item.find("maxplayers"), 1),
        playing_time=_int_attr(item.find("playingtime")),
        min_play_time=_int_attr(item.find("minplaytime")),
        max_play_time=_int_attr(item.find("maxplaytime")),
        complexity=complexity,
        year_published=_int_attr(item.find("yearpublished")),
        description=clean_description(item.findtext("description") or ""),
        publishers=links("boardgamepublisher"),
        categories=links("boardgamecategory"),
        mechanics=links("boardgamemechanic"),
        rating=rating,
        rank=rank,
    )


# -----------------------------------------------------------------------------
# Rate limiting
# -----------------------------------------------------------------------------


class RateLimiter:
    """Enforces a minimum delay between consecutive requests.

    State lives on the instance so each client (and each test) gets its own
    clock. Concurrent callers queue on a lock and leave one interval apart.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_request: float | None = None
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        """Sleep until the next request is allowed, then claim the slot."""
        async with self._lock:
            if self._last_request is not None:
                elapsed = self._clock() - self._last_request
                remaining = self.min_interval - elapsed
                if remaining > 0:
                    logger.debug("bgg_rate_limit_wait", wait_seconds=round(remaining, 3))
                    await self._sleep(remaining)
            self._last_request = self._clock()


# -----------------------------------------------------------------------------
# BoardGameGeek Service
# -----------------------------------------------------------------------------


class BGGService:
    """Async client for the BoardGameGeek XML API 2.

    Usage:
        ```python
        bgg = BGGService(cache)
        bgg_id = await bgg.resolve_bgg_id("Ticket to Ride")
        metadata = await bgg.get_game_data(bgg_id) if bgg_id else None
        ```
    """

    RETRY_STATUSES = (202, 429)

    def __init__(
        self,
        cache: Cache,
        settings: Settings | None = None,
        rate_limiter: RateLimiter | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the service.

        Args:
            cache: Cache for search results and game details
            settings: Application settings override
            rate_limiter: Shared limiter, a private one is created if omitted
            sleep: Awaitable sleep used for retry backoff
        """
        self.cache = cache
        self._settings = settings or get_settings()
        self.rate_limiter = rate_limiter or RateLimiter(
            self._settings.bgg_rate_limit_delay, sleep=sleep
        )
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None

    @property
    def _user_agent(self) -> str:
        return f"{self._settings.app_name}/{self._settings.app_version} (Board Game Rental System)"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._settings.bgg_base_url,
                timeout=self._settings.bgg_timeout,
                headers={"User-Agent": self._user_agent},
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def search_game(self, name: str) -> list[SearchCandidate]:
        """Search BoardGameGeek for board games by name.

        Returns:
            Matching candidates, empty if the response could not be parsed

        Raises:
            MetadataServiceError: If BoardGameGeek is unreachable after retries
        """
        cache_key = CacheService.bgg_search_key(normalize_game_name(name))
        cached = await self.cache.get(cache_key)
        if cached is not None:
            logger.debug("bgg_search_cache_hit", cache_key=cache_key)
            return [SearchCandidate.from_dict(c) for c in cached]

        xml_text = await self._request("/search", {"query": name, "type": CANONICAL_TYPE})
        try:
            results = parse_search_xml(xml_text)
        except ET.ParseError as e:
            logger.warning("bgg_search_parse_failed", name=name, error=str(e))
            return []

        await self.cache.put(
            cache_key,
            [r.to_dict() for r in results],
            ttl_seconds=self._settings.bgg_search_cache_ttl,
        )
        return results

    async def get_game_data(self, bgg_id: int) -> GameMetadata | None:
        """Fetch game details with statistics.

        Returns:
            GameMetadata, or None if the game is unknown or unparseable

        Raises:
            MetadataServiceError: If BoardGameGeek is unreachable after retries
        """
        cache_key = CacheService.bgg_game_key(bgg_id)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            logger.debug("bgg_game_cache_hit", cache_key=cache_key)
            return GameMetadata.from_dict(cached)

        xml_text = await self._request("/thing", {"id": bgg_id, "stats": 1})
        try:
            metadata = parse_game_xml(xml_text)
        except ET.ParseError as e:
            logger.warning("bgg_game_parse_failed", bgg_id=bgg_id, error=str(e))
            return None

        if metadata is None:
            logger.info("bgg_game_not_found", bgg_id=bgg_id)
            return None

        await self.cache.put(
            cache_key,
            metadata.to_dict(),
            ttl_seconds=self._settings.bgg_game_cache_ttl,
        )
        return metadata

    async def resolve_bgg_id(self, game_name: str) -> int | None:
        """Resolve a spreadsheet game name to a BoardGameGeek id."""
        candidates = await self.search_game(game_name)
        best = find_best_match(candidates, game_name)
        if best is None:
            logger.info("bgg_no_match", name=game_name, candidates=len(candidates))
            return None
        return best.id

    async def _request(self, path: str, params: dict[str, Any]) -> str:
        """GET ``path`` honoring the rate limit and retry policy.

        Raises:
            MetadataRateLimitError: Still 429/202 after the last retry
            MetadataServiceError: Network failure after the last retry, or
                any other error status
        """
        client = await self._get_client()
        max_retries = self._settings.bgg_max_retries

        for attempt in range(max_retries + 1):
            backoff = self._settings.bgg_retry_delay * (2**attempt)
            await self.rate_limiter.wait()

            try:
                response = await client.get(path, params=params)
            except httpx.TransportError as e:
                if attempt < max_retries:
                    logger.warning(
                        "bgg_network_error_retrying",
                        path=path,
                        error=str(e),
                        attempt=attempt + 1,
                        retry_in=backoff,
                    )
                    await self._sleep(backoff)
                    continue
                logger.error("bgg_request_failed", path=path, error=str(e))
                raise MetadataServiceError(
                    f"BoardGameGeek request failed after {max_retries} retries",
                    details={"path": path, "error": str(e)},
                ) from e

            if response.status_code in self.RETRY_STATUSES:
                if attempt < max_retries:
                    logger.info(
                        "bgg_rate_limited",
                        path=path,
                        status_code=response.status_code,
                        attempt=attempt + 1,
                        retry_in=backoff,
                    )
                    await self._sleep(backoff)
                    continue
                logger.error(
                    "bgg_retries_exhausted", path=path, status_code=response.status_code
                )
                raise MetadataRateLimitError(
                    details={"path": path, "status_code": response.status_code}
                )

            if response.status_code >= 400:
                logger.error(
                    "bgg_request_failed", path=path, status_code=response.status_code
                )
                raise MetadataServiceError(
                    f"BoardGameGeek API error: {response.status_code}",
                    details={"path": path, "status_code": response.status_code},
                )

            return response.text

        # Unreachable: the last attempt either returns or raises
        raise MetadataServiceError(details={"path": path})
