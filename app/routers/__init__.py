"""
API Routers
FastAPI route handlers
"""

from app.routers import (
    indexing,
    products,
    search,
)

__all__ = [
    "indexing",
    "products",
    "search",
]
