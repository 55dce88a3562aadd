"""Google Sheets inventory source.

The spreadsheet is the master list of games the library owns: one row per
title with player counts, durations, complexity and how many physical
copies exist. The first row holds column headers; columns are matched by
header name (several spellings accepted) so staff can reorder or add
columns freely.

See: https://developers.google.com/sheets/api/reference/rest/v4/spreadsheets.values/get
"""

import json
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from tybee.config import Settings, get_settings
from tybee.core.exceptions import CatalogSourceError
from tybee.services.cache import Cache, CacheService

logger = structlog.get_logger(__name__)


# -----------------------------------------------------------------------------
# DTOs
# -----------------------------------------------------------------------------


@dataclass
class SheetsConfig:
    """Where to read the inventory from."""

    spreadsheet_id: str
    range: str
    api_key: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "SheetsConfig":
        return cls(
            spreadsheet_id=settings.google_sheets_spreadsheet_id,
            range=settings.google_sheets_range,
            api_key=settings.google_sheets_api_key.get_secret_value(),
        )


@dataclass
class CatalogRow:
    """One game as listed in the inventory spreadsheet."""

    id: str
    name: str
    description: str | None = None
    publisher: str | None = None
    year: int | None = None
    image_url: str | None = None
    min_players: int = 1
    max_players: int = 1
    min_duration: int = 0
    max_duration: int = 0
    complexity_level: int = 1
    strategy_luck_rating: int = 1
    themes: list[str] = field(default_factory=list)
    is_active: bool = True
    total_copies: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict for caching."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "publisher": self.publisher,
            "year": self.year,
            "image_url": self.image_url,
            "min_players": self.min_players,
            "max_players": self.max_players,
            "min_duration": self.min_duration,
            "max_duration": self.max_duration,
            "complexity_level": self.complexity_level,
            "strategy_luck_rating": self.strategy_luck_rating,
            "themes": self.themes,
            "is_active": self.is_active,
            "total_copies": self.total_copies,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CatalogRow":
        """Create from cached dict."""
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description"),
            publisher=data.get("publisher"),
            year=data.get("year"),
            image_url=data.get("image_url"),
            min_players=data.get("min_players", 1),
            max_players=data.get("max_players", 1),
            min_duration=data.get("min_duration", 0),
            max_duration=data.get("max_duration", 0),
            complexity_level=data.get("complexity_level", 1),
            strategy_luck_rating=data.get("strategy_luck_rating", 1),
            themes=data.get("themes", []),
            is_active=data.get("is_active", True),
            total_copies=data.get("total_copies", 0),
        )


# Header spellings accepted for each CatalogRow field
COLUMN_ALIASES: dict[str, str] = {
    "id": "id",
    "name": "name",
    "description": "description",
    "publisher": "publisher",
    "year": "year",
    "image_url": "image_url",
    "imageurl": "image_url",
    "min_players": "min_players",
    "minplayers": "min_players",
    "max_players": "max_players",
    "maxplayers": "max_players",
    "min_duration": "min_duration",
    "minduration": "min_duration",
    "max_duration": "max_duration",
    "maxduration": "max_duration",
    "complexity_level": "complexity_level",
    "complexitylevel": "complexity_level",
    "complexity": "complexity_level",
    "strategy_luck_rating": "strategy_luck_rating",
    "strategyluckrating": "strategy_luck_rating",
    "strategy_luck": "strategy_luck_rating",
    "themes": "themes",
    "is_active": "is_active",
    "isactive": "is_active",
    "active": "is_active",
    "total_copies": "total_copies",
    "totalcopies": "total_copies",
    "copies": "total_copies",
}

INACTIVE_VALUES = {"false", "0"}


def _parse_int(value: str, default: int | None) -> int | None:
    """Parse a spreadsheet cell leniently ("3", " 3 ", "3.0"), else default."""
    value = value.strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return int(float(value))
    except ValueError:
        return default


def _parse_themes(value: str) -> list[str]:
    """Themes are stored either as a JSON array or comma-separated text."""
    value = value.strip()
    if not value:
        return []
    if value.startswith("["):
        try:
            parsed = json.loads(value)
            if isinstance(parsed, list):
                return [str(theme).strip() for theme in parsed if str(theme).strip()]
        except json.JSONDecodeError:
            pass
    return [theme.strip() for theme in value.strip("[]").split(",") if theme.strip()]


def parse_rows(values: list[list[str]]) -> list[CatalogRow]:
    """Convert a Sheets ``values`` matrix (header row first) into CatalogRows."""
    if not values:
        return []

    headers = [COLUMN_ALIASES.get(str(h).strip().lower()) for h in values[0]]
    rows: list[CatalogRow] = []

    for index, raw_row in enumerate(values[1:], start=1):
        cells: dict[str, str] = {}
        for col, key in enumerate(headers):
            if key is not None:
                cells[key] = str(raw_row[col]) if col < len(raw_row) else ""

        min_players = _parse_int(cells.get("min_players", ""), 1) or 1
        min_duration = _parse_int(cells.get("min_duration", ""), 0) or 0

        rows.append(
            CatalogRow(
                id=cells.get("id", "").strip() or f"game-{index}",
                name=cells.get("name", "").strip() or "Unnamed Game",
                description=cells.get("description") or None,
                publisher=cells.get("publisher") or None,
                year=_parse_int(cells.get("year", ""), None),
                image_url=cells.get("image_url") or None,
                min_players=min_players,
                max_players=_parse_int(cells.get("max_players", ""), 0) or min_players,
                min_duration=min_duration,
                max_duration=_parse_int(cells.get("max_duration", ""), 0)
                or min_duration,
                complexity_level=_parse_int(cells.get("complexity_level", ""), 1) or 1,
                strategy_luck_rating=_parse_int(
                    cells.get("strategy_luck_rating", ""), 1
                )
                or 1,
                themes=_parse_themes(cells.get("themes", "")),
                is_active=cells.get("is_active", "").strip().lower()
                not in INACTIVE_VALUES,
                total_copies=max(0, _parse_int(cells.get("total_copies", ""), 0) or 0),
            )
        )

    return rows


# -----------------------------------------------------------------------------
# Sheets Service
# -----------------------------------------------------------------------------


class SheetsCatalogSource:
    """Async reader for the inventory spreadsheet.

    Parsed rows are cached for ``sheets_cache_ttl`` seconds under
    ``sheets:games`` so a catalog rebuild and a copy sync running close
    together only hit Google once.

    Usage:
        ```python
        source = SheetsCatalogSource(cache)
        rows = await source.get_games()
        ```
    """

    def __init__(
        self,
        cache: Cache,
        config: SheetsConfig | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the source.

        Args:
            cache: Cache for parsed rows
            config: Spreadsheet location, defaults to values from settings
            settings: Application settings override
        """
        self.cache = cache
        self._settings = settings or get_settings()
        self.config = config or SheetsConfig.from_settings(self._settings)
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._settings.google_sheets_base_url,
                timeout=self._settings.google_sheets_timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def get_games(self) -> list[CatalogRow]:
        """Return every row of the inventory spreadsheet.

        Raises:
            CatalogSourceError: If the spreadsheet cannot be read
        """
        cached = await self.cache.get(CacheService.SHEETS_KEY)
        if cached is not None:
            logger.debug("sheets_cache_hit", rows=len(cached))
            return [CatalogRow.from_dict(row) for row in cached]

        rows = await self._fetch_rows()
        await self.cache.put(
            CacheService.SHEETS_KEY,
            [row.to_dict() for row in rows],
            ttl_seconds=self._settings.sheets_cache_ttl,
        )
        logger.info("sheets_games_fetched", rows=len(rows))
        return rows

    async def get_active_games(self) -> list[CatalogRow]:
        """Rows whose active flag is set."""
        return [row for row in await self.get_games() if row.is_active]

    async def invalidate_cache(self) -> None:
        """Forget cached rows so the next read goes to Google."""
        await self.cache.delete(CacheService.SHEETS_KEY)

    async def _fetch_rows(self) -> list[CatalogRow]:
        if not self.config.api_key:
            raise CatalogSourceError(
                "API key is required for Google Sheets access",
                details={"setting": "GOOGLE_SHEETS_API_KEY"},
            )

        client = await self._get_client()
        path = f"/spreadsheets/{self.config.spreadsheet_id}/values/{self.config.range}"

        try:
            response = await client.get(path, params={"key": self.config.api_key})
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "sheets_fetch_failed",
                status_code=e.response.status_code,
                spreadsheet_id=self.config.spreadsheet_id,
            )
            raise CatalogSourceError(
                details={"status_code": e.response.status_code}
            ) from e
        except httpx.RequestError as e:
            logger.error("sheets_request_error", error=str(e))
            raise CatalogSourceError(details={"error": str(e)}) from e
        except ValueError as e:
            logger.error("sheets_invalid_json", error=str(e))
            raise CatalogSourceError(details={"error": "invalid JSON"}) from e

        return parse_rows(data.get("values") or [])
