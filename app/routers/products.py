"""
Product API Routes

Catalogue CRUD; writes schedule background (de)indexing.
"""

from fastapi import APIRouter, Depends, Path, Query, Response, status

from app.core.dependencies import get_product_service
from app.schemas.product import (
    ProductCreate,
    ProductListResponse,
    ProductResponse,
    ProductUpdate,
)
from app.services.product_service import ProductService

router = APIRouter(prefix="/products", tags=["products"])


@router.post(
    "",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create product",
)
async def create_product(
    payload: ProductCreate,
    service: ProductService = Depends(get_product_service),
) -> ProductResponse:
    """
    Create a product and schedule its embedding.

    The response does not wait for indexing; check
    `GET /indexing/products/{id}` for the embedding state.
    """
    return await service.create_product(payload)


@router.get(
    "",
    response_model=ProductListResponse,
    summary="List products",
)
async def list_products(
    page: int = Query(1, ge=1, description="1-indexed page number"),
    page_size: int = Query(20, ge=1, le=100),
    service: ProductService = Depends(get_product_service),
) -> ProductListResponse:
    return await service.list_products(page=page, page_size=page_size)


@router.get(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Get product",
)
async def get_product(
    product_id: str = Path(..., max_length=64),
    service: ProductService = Depends(get_product_service),
) -> ProductResponse:
    return await service.get_product(product_id)


@router.put(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Update product",
)
async def update_product(
    payload: ProductUpdate,
    product_id: str = Path(..., max_length=64),
    service: ProductService = Depends(get_product_service),
) -> ProductResponse:
    """Partial update; any change re-embeds the product in the background."""
    return await service.update_product(product_id, payload)


@router.delete(
    "/{product_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete product",
)
async def delete_product(
    product_id: str = Path(..., max_length=64),
    service: ProductService = Depends(get_product_service),
) -> Response:
    await service.delete_product(product_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
