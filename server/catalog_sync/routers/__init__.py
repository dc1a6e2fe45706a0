"""FastAPI routers package."""

from .metrics import router as metrics_router
from .tour_import import router as tour_import_router

__all__ = [
    "metrics_router",
    "tour_import_router",
]
