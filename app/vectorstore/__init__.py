"""
Embedding Store Abstraction
Interface and implementations for product embedding records
"""

from app.vectorstore.factory import get_embedding_store
from app.vectorstore.protocol import EmbeddingStoreProtocol, StoreHit
from app.vectorstore.schemas import EmbeddingRecord, EmbeddingType, StoreFilter

__all__ = [
    "EmbeddingRecord",
    "EmbeddingStoreProtocol",
    "EmbeddingType",
    "StoreFilter",
    "StoreHit",
    "get_embedding_store",
]
