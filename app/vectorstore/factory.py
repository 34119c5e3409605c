"""
Embedding Store Factory
Creates appropriate embedding store implementation based on configuration
"""

from app.core.config import settings
from app.core.logging import get_logger
from app.vectorstore.protocol import EmbeddingStoreProtocol

logger = get_logger(__name__)


def create_embedding_store() -> EmbeddingStoreProtocol:
    """
    Build the embedding store for ``settings.embedding_store_type``

    Raises:
        ValueError: If embedding_store_type is not supported
    """
    store_type = settings.embedding_store_type
    logger.info("embedding_store_factory", store_type=store_type)

    if store_type == "mock":
        from app.vectorstore.mock import InMemoryEmbeddingStore

        return InMemoryEmbeddingStore()

    if store_type == "typesense":
        from app.vectorstore.typesense import TypesenseEmbeddingStore

        return TypesenseEmbeddingStore()

    if store_type == "pgvector":
        from app.vectorstore.pgvector import PGVectorEmbeddingStore

        return PGVectorEmbeddingStore()

    raise ValueError(
        f"Unsupported embedding_store_type: {store_type}. Supported types: mock, typesense, pgvector"
    )


# Singleton instance for dependency injection
_embedding_store: EmbeddingStoreProtocol | None = None


def get_embedding_store() -> EmbeddingStoreProtocol:
    """
    Get singleton embedding store instance
    """
    global _embedding_store
    if _embedding_store is None:
        _embedding_store = create_embedding_store()
    return _embedding_store
