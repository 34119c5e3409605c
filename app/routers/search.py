"""
Product Search API Routes

GET  /search                      text query via query string
POST /search                      text and/or image query
GET  /search/similar/{product_id} products similar to an existing one
"""

from fastapi import APIRouter, Depends, Path, Query

from app.core.config import settings
from app.core.dependencies import get_search_service
from app.models.product import ComponentType
from app.schemas.search import (
    SearchFilters,
    SearchMode,
    SearchOptions,
    SearchRequest,
    SearchResponse,
)
from app.services.search_service import HybridSearchService

router = APIRouter(prefix="/search", tags=["search"])


@router.get(
    "",
    response_model=SearchResponse,
    summary="Search products by text",
)
async def search_products(
    q: str = Query(..., max_length=1000, description="Free-text query"),
    top_k: int = Query(default=settings.search_top_k, ge=1, description="Maximum results"),
    mode: SearchMode = Query(default=SearchMode.VECTOR),
    category_id: str | None = Query(default=None),
    component_type: ComponentType | None = Query(default=None),
    min_price: float | None = Query(default=None, ge=0),
    max_price: float | None = Query(default=None, ge=0),
    service: HybridSearchService = Depends(get_search_service),
) -> SearchResponse:
    """
    Text search over combined product embeddings.

    - **mode**: vector (default), keyword or hybrid (rank fusion of both)
    - results carry `degraded=true` when served by the name-match fallback
    """
    options = SearchOptions(
        top_k=top_k,
        mode=mode,
        filters=SearchFilters(
            category_id=category_id,
            component_type=component_type,
            min_price=min_price,
            max_price=max_price,
        ),
    )
    return await service.search(query_text=q, options=options)


@router.post(
    "",
    response_model=SearchResponse,
    summary="Search products by text and/or images",
)
async def search_products_multimodal(
    payload: SearchRequest,
    service: HybridSearchService = Depends(get_search_service),
) -> SearchResponse:
    """
    Multimodal search: `query`, `images` (http(s) URLs or base64 data URLs) or both.

    Images that cannot be fetched or decoded are skipped while the text or
    another image remains.
    """
    options = SearchOptions(top_k=payload.top_k, mode=payload.mode, filters=payload.filters)
    return await service.search(
        query_text=payload.query,
        query_images=payload.images,
        options=options,
    )


@router.get(
    "/similar/{product_id}",
    response_model=SearchResponse,
    summary="Products similar to a product",
)
async def similar_products(
    product_id: str = Path(..., max_length=64),
    top_k: int = Query(default=settings.search_top_k, ge=1),
    service: HybridSearchService = Depends(get_search_service),
) -> SearchResponse:
    return await service.find_similar(product_id, top_k=top_k)
