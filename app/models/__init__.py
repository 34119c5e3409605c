"""
SQLAlchemy 2.0 Models
"""

from app.models.base import Base  # noqa: F401
from app.models.embedding_index import IndexState, ProductEmbeddingIndex  # noqa: F401
from app.models.product import ComponentType, Product  # noqa: F401

__all__ = [
    "Base",
    "ComponentType",
    "IndexState",
    "Product",
    "ProductEmbeddingIndex",
]
