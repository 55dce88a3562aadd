"""Mounts the v1 routers; ``tybee.main`` includes this under ``/api/v1``."""

from fastapi import APIRouter

from tybee.api.v1.admin import router as admin_router
from tybee.api.v1.games import router as games_router
from tybee.api.v1.recommendations import router as recommendations_router

router = APIRouter()
router.include_router(games_router, prefix="/games", tags=["Games"])
router.include_router(
    recommendations_router, prefix="/recommendations", tags=["Recommendations"]
)
router.include_router(admin_router, prefix="/admin", tags=["Admin"])
