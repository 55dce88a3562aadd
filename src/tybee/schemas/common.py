"""Schemas shared by every router: the error envelope and health payloads."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """Response and request models read straight off service dataclasses."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class ErrorDetail(BaseModel):
    """Body of the ``{"error": {...}}`` envelope returned for handled failures."""

    code: str = Field(..., description="Stable code, e.g. GAME_NOT_FOUND")
    message: str
    request_id: str | None = Field(None, description="Echo of X-Request-ID")
    details: dict[str, Any] | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "code": "CATALOG_SOURCE_UNAVAILABLE",
                "message": "Inventory spreadsheet is unavailable",
                "request_id": "6f1c2d0e",
                "details": {"status_code": 403},
            }
        }
    )


class ErrorResponse(BaseModel):
    error: ErrorDetail


class HealthCheckResponse(BaseModel):
    """Readiness probe result; ``checks`` maps database/redis to ok or error."""

    status: str = Field(..., pattern="^(ok|degraded|error)$")
    checks: dict[str, str] = Field(default_factory=dict)
