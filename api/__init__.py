"""
API Module
FastAPI routers for the MedCare Dose Engine
"""

from api.doses import router as doses_router
from api.adherence import router as adherence_router
from api.engine import router as engine_router

from api.deps import (
    get_db,
    get_current_user_id,
    services,
)


__all__ = [
    # Routers
    "doses_router",
    "adherence_router",
    "engine_router",
    # Dependencies
    "get_db",
    "get_current_user_id",
    "services",
]


def include_routers(app):
    """
    Include all API routers in the FastAPI app

    Usage:
        from api import include_routers
        include_routers(app)
    """
    from config import settings

    app.include_router(doses_router, prefix=settings.API_PREFIX)
    app.include_router(adherence_router, prefix=settings.API_PREFIX)
    app.include_router(engine_router, prefix=settings.API_PREFIX)
