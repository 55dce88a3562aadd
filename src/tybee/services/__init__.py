"""Services package for Tybee.

This module exports service classes for business logic.
"""

from tybee.services.background import BackgroundTaskRunner
from tybee.services.bgg import (
    BGGService,
    GameMetadata,
    RateLimiter,
    SearchCandidate,
    find_best_match,
)
from tybee.services.cache import (
    CacheResult,
    CacheService,
    NullCacheService,
    get_cache_service,
    set_redis_client,
)
from tybee.services.copy_sync import CopySyncService, OutOfSyncGame, SyncResult
from tybee.services.entries import CatalogEntry, EnrichedGame, FallbackGame
from tybee.services.filters import GameFilters, apply_filters
from tybee.services.game_data import (
    GameDataService,
    get_game_data_service,
    set_game_data_service,
)
from tybee.services.recommendations import (
    GameRecommendation,
    RecommendationPreferences,
    generate_recommendations,
)
from tybee.services.sheets import CatalogRow, SheetsCatalogSource

__all__ = [
    # Background
    "BackgroundTaskRunner",
    # BoardGameGeek
    "BGGService",
    "GameMetadata",
    "RateLimiter",
    "SearchCandidate",
    "find_best_match",
    # Cache
    "CacheResult",
    "CacheService",
    "NullCacheService",
    "get_cache_service",
    "set_redis_client",
    # Copy sync
    "CopySyncService",
    "OutOfSyncGame",
    "SyncResult",
    # Catalog
    "CatalogEntry",
    "EnrichedGame",
    "FallbackGame",
    "GameDataService",
    "GameFilters",
    "apply_filters",
    "get_game_data_service",
    "set_game_data_service",
    # Recommendations
    "GameRecommendation",
    "RecommendationPreferences",
    "generate_recommendations",
    # Google Sheets
    "CatalogRow",
    "SheetsCatalogSource",
]
