"""
Common FastAPI dependencies

Process-wide singletons (encoder, embedding store, indexer, index queue) and
per-request services built on top of them.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import async_session_maker, get_session
from app.encoder.factory import get_encoder
from app.encoder.protocol import EncoderProtocol
from app.queue.inmemory import AsyncioIndexQueue
from app.queue.protocol import IndexQueueProtocol
from app.services.indexer import ProductIndexer
from app.services.product_service import ProductService
from app.services.search_service import HybridSearchService
from app.vectorstore.factory import get_embedding_store
from app.vectorstore.protocol import EmbeddingStoreProtocol


_indexer: ProductIndexer | None = None
_index_queue: AsyncioIndexQueue | None = None


def get_encoder_dependency() -> EncoderProtocol:
    return get_encoder()


def get_store_dependency() -> EmbeddingStoreProtocol:
    return get_embedding_store()


def get_product_indexer() -> ProductIndexer:
    """Singleton indexer; background jobs open their own sessions."""
    global _indexer
    if _indexer is None:
        _indexer = ProductIndexer(
            encoder=get_encoder(),
            store=get_embedding_store(),
            session_maker=async_session_maker,
        )
    return _indexer


def get_index_queue() -> IndexQueueProtocol:
    """Singleton index queue; workers are started in the application lifespan."""
    global _index_queue
    if _index_queue is None:
        _index_queue = AsyncioIndexQueue(handler=get_product_indexer().handle_job)
    return _index_queue


def get_search_service(
    session: AsyncSession = Depends(get_session),
    encoder: EncoderProtocol = Depends(get_encoder_dependency),
    store: EmbeddingStoreProtocol = Depends(get_store_dependency),
) -> HybridSearchService:
    return HybridSearchService(session=session, encoder=encoder, store=store)


def get_product_service(
    session: AsyncSession = Depends(get_session),
    index_queue: IndexQueueProtocol = Depends(get_index_queue),
) -> ProductService:
    return ProductService(session=session, index_queue=index_queue)
