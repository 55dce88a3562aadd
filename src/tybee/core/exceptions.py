"""Errors that cross a service boundary and reach the API.

Each subclass fixes a stable ``code`` and the HTTP status it is served with;
the handler in ``tybee.main`` renders them as ``{"error": {...}}``. Cache
failures, a single game missing from BoardGameGeek and copies that cannot be
removed because they are checked out are not errors here: they are handled
where they occur.
"""

from typing import Any


class TybeeError(Exception):
    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        """Render the error envelope; empty ``details`` and a missing id are omitted."""
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if request_id:
            body["request_id"] = request_id
        if self.details:
            body["details"] = self.details
        return {"error": body}


class GameNotFoundError(TybeeError):
    """No catalog entry (enriched or fallback) carries this id."""

    code = "GAME_NOT_FOUND"
    message = "Game not found"
    status_code = 404

    def __init__(self, game_id: str | None = None) -> None:
        if game_id:
            super().__init__(f"Game {game_id} not found", details={"game_id": game_id})
        else:
            super().__init__()


class CopyNotAvailableError(TybeeError):
    """A copy that is checked out, in maintenance or missing cannot be rented."""

    code = "COPY_NOT_AVAILABLE"
    message = "Copy is not available"
    status_code = 409

    def __init__(self, game_id: str, copy_number: int, status: str) -> None:
        super().__init__(
            f"Copy {copy_number} of {game_id} is {status}",
            details={"game_id": game_id, "copy_number": copy_number, "status": status},
        )


class ExternalServiceError(TybeeError):
    code = "EXTERNAL_SERVICE_ERROR"
    message = "External service error"
    status_code = 502


class CatalogSourceError(ExternalServiceError):
    """The inventory spreadsheet could not be fetched or parsed."""

    code = "CATALOG_SOURCE_UNAVAILABLE"
    message = "Failed to fetch games from Google Sheets"
    status_code = 503


class MetadataServiceError(ExternalServiceError):
    """BoardGameGeek failed with a non-retryable status or ran out of retries."""

    code = "METADATA_SERVICE_ERROR"
    message = "Failed to fetch game metadata"


class MetadataRateLimitError(MetadataServiceError):
    """BoardGameGeek kept answering 429 or 202 through every retry."""

    code = "METADATA_RATE_LIMITED"
    message = "BoardGameGeek rate limit exceeded"
    status_code = 503
