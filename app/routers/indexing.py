"""
Indexing API Routes

Operator endpoints: bulk and per-product re-index, manifest status and the
index queue's dead letters.
"""

from fastapi import APIRouter, Depends, Path, Query

from app.core.dependencies import get_index_queue, get_product_indexer
from app.queue.protocol import IndexQueueProtocol
from app.queue.schemas import IndexJob
from app.schemas.indexing import IndexResult, IndexStatusResponse, ReindexReport
from app.services.indexer import ProductIndexer

router = APIRouter(prefix="/indexing", tags=["indexing"])


@router.post(
    "/reindex",
    response_model=ReindexReport,
    summary="Re-index all (or only failed) products",
)
async def reindex(
    only_failed: bool = Query(False, description="Retry only products whose last indexing failed"),
    indexer: ProductIndexer = Depends(get_product_indexer),
) -> ReindexReport:
    """
    Synchronous sweep; per-product failures are counted in the report and
    never abort the sweep.
    """
    if only_failed:
        return await indexer.reindex_failed()
    return await indexer.reindex_all()


@router.post(
    "/products/{product_id}",
    response_model=IndexResult,
    summary="Re-index one product now",
)
async def reindex_product(
    product_id: str = Path(..., max_length=64),
    indexer: ProductIndexer = Depends(get_product_indexer),
) -> IndexResult:
    """
    Raises:
        ProductNotFoundError: unknown product (404)
        IndexingError: pipeline failed (502)
    """
    return await indexer.reindex_product(product_id)


@router.get(
    "/products/{product_id}",
    response_model=IndexStatusResponse,
    summary="Embedding state of a product",
)
async def index_status(
    product_id: str = Path(..., max_length=64),
    indexer: ProductIndexer = Depends(get_product_indexer),
) -> IndexStatusResponse:
    return await indexer.get_status(product_id)


@router.get(
    "/dead-letters",
    response_model=list[IndexJob],
    summary="Index jobs that exhausted their retries",
)
async def dead_letters(
    queue: IndexQueueProtocol = Depends(get_index_queue),
) -> list[IndexJob]:
    return queue.dead_letters()
