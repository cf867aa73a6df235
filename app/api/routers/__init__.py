"""
app/api/routers package marker.
"""

from app.api.routers.datasets import router as datasets_router
from app.api.routers.ingestion import router as ingestion_router
from app.api.routers.welcome import router as welcome_router

__all__ = [
    "datasets_router",
    "ingestion_router",
    "welcome_router",
]
