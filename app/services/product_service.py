"""
Product Service (Service Layer)

Catalogue writes plus the index hooks: every committed create/update schedules
an INDEX job, every delete a DEINDEX job. The write itself never fails because
scheduling failed; the manifest and re-index sweeps repair missed jobs.
"""

import math

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger, metrics_counter
from app.models.product import Product
from app.queue.protocol import IndexQueueProtocol
from app.queue.schemas import IndexJob
from app.repositories.product_repository import ProductRepository
from app.schemas.product import (
    ProductCreate,
    ProductListResponse,
    ProductResponse,
    ProductSnapshot,
    ProductUpdate,
)

logger = get_logger(__name__)


class ProductService:
    """
    Product CRUD with background (de)indexing
    - create/update -> INDEX job with a snapshot of the committed row
    - delete -> DEINDEX job
    """

    def __init__(self, *, session: AsyncSession, index_queue: IndexQueueProtocol | None = None):
        self.session = session
        self.repository = ProductRepository(session)
        self.index_queue = index_queue

    async def create_product(self, payload: ProductCreate) -> ProductResponse:
        data = payload.model_dump(exclude_none=True)
        product = Product(**data)

        product = await self.repository.create(product)
        await self.session.commit()

        logger.info("product_created", product_id=product.id, component_type=_component(product))
        self._schedule(IndexJob.index(ProductSnapshot.model_validate(product)))
        return ProductResponse.model_validate(product)

    async def get_product(self, product_id: str) -> ProductResponse:
        """
        Raises:
            ProductNotFoundError: unknown product
        """
        product = await self.repository.get_by_id_or_raise(product_id)
        return ProductResponse.model_validate(product)

    async def list_products(self, page: int = 1, page_size: int = 20) -> ProductListResponse:
        offset = (page - 1) * page_size
        products = await self.repository.list_page(limit=page_size, offset=offset)
        total = await self.repository.count()

        logger.debug(
            "products_listed",
            page=page,
            page_size=page_size,
            total=total,
            pages=math.ceil(total / page_size) if page_size else 0,
        )
        return ProductListResponse(
            items=[ProductResponse.model_validate(product) for product in products],
            total=total,
            page=page,
            page_size=page_size,
        )

    async def update_product(self, product_id: str, payload: ProductUpdate) -> ProductResponse:
        """
        Apply the fields present in ``payload`` and re-index the product.

        Raises:
            ProductNotFoundError: unknown product
        """
        product = await self.repository.get_by_id_or_raise(product_id)

        changes = payload.model_dump(exclude_unset=True)
        if changes.get("name") is None:
            changes.pop("name", None)
        if "image_urls" in changes:
            changes["image_urls"] = [
                item.strip() for item in changes["image_urls"] or [] if item and item.strip()
            ]
        for field, value in changes.items():
            setattr(product, field, value)

        product = await self.repository.update(product)
        await self.session.commit()

        logger.info("product_updated", product_id=product.id, fields=sorted(changes))
        self._schedule(IndexJob.index(ProductSnapshot.model_validate(product)))
        return ProductResponse.model_validate(product)

    async def delete_product(self, product_id: str) -> None:
        """
        Raises:
            ProductNotFoundError: unknown product
        """
        product = await self.repository.get_by_id_or_raise(product_id)
        await self.repository.delete(product)
        await self.session.commit()

        logger.info("product_deleted", product_id=product_id)
        self._schedule(IndexJob.deindex(product_id))

    def _schedule(self, job: IndexJob) -> None:
        if self.index_queue is None:
            logger.warning("index_job_not_scheduled", product_id=job.product_id, reason="no_queue")
            return

        try:
            self.index_queue.enqueue(job)
        except Exception as exc:  # noqa: BLE001 - the product write already succeeded
            metrics_counter("index_job_enqueue_failure", action=job.action.value)
            logger.error(
                "index_job_enqueue_failed",
                product_id=job.product_id,
                action=job.action.value,
                error=str(exc),
            )


def _component(product: Product) -> str | None:
    return product.component_type.value if product.component_type else None
