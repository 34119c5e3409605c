"""
Product Repository

Hydration by id, paging for re-index sweeps and the name search used when the
embedding store is down.
"""

from dataclasses import dataclass
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ProductNotFoundError
from app.models.product import ComponentType, Product
from app.repositories.base import BaseRepository


@dataclass(slots=True)
class ProductFilters:
    """Metadata filters applied to product queries."""

    category_id: str | None = None
    component_type: ComponentType | None = None
    min_price: float | None = None
    max_price: float | None = None

    def conditions(self) -> list:
        conditions = []
        if self.category_id:
            conditions.append(Product.category_id == self.category_id)
        if self.component_type:
            conditions.append(Product.component_type == self.component_type)
        if self.min_price is not None:
            conditions.append(Product.price >= self.min_price)
        if self.max_price is not None:
            conditions.append(Product.price <= self.max_price)
        return conditions

    def matches(self, product: Product) -> bool:
        if self.category_id and product.category_id != self.category_id:
            return False
        if self.component_type and product.component_type != self.component_type:
            return False
        if self.min_price is not None and product.price < self.min_price:
            return False
        if self.max_price is not None and product.price > self.max_price:
            return False
        return True


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class ProductRepository(BaseRepository[Product]):
    def __init__(self, session: AsyncSession):
        super().__init__(Product, session)

    async def get_by_id_or_raise(self, id: str) -> Product:
        product = await self.get_by_id(id)
        if product is None:
            raise ProductNotFoundError(id)
        return product

    async def list_page(self, limit: int, offset: int = 0) -> Sequence[Product]:
        """Stable page ordering (created_at, id) so sweeps visit each product once."""

        stmt = (
            select(Product)
            .order_by(Product.created_at, Product.id)
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def search_by_name(
        self,
        query: str,
        *,
        limit: int,
        filters: ProductFilters | None = None,
        exclude_id: str | None = None,
    ) -> Sequence[Product]:
        """Case-insensitive substring match on the product name, newest first."""

        pattern = f"%{_escape_like(query.strip())}%"
        conditions = [Product.name.ilike(pattern, escape="\\")]
        if filters is not None:
            conditions.extend(filters.conditions())
        if exclude_id is not None:
            conditions.append(Product.id != exclude_id)

        stmt = (
            select(Product)
            .where(*conditions)
            .order_by(Product.created_at.desc(), Product.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()
