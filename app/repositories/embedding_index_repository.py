"""
Embedding manifest repository (state transitions of ProductEmbeddingIndex)
"""

from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.embedding_index import IndexState, ProductEmbeddingIndex


class EmbeddingIndexRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, product_id: str) -> ProductEmbeddingIndex | None:
        stmt = select(ProductEmbeddingIndex).where(ProductEmbeddingIndex.product_id == product_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _get_or_create(self, product_id: str) -> ProductEmbeddingIndex:
        entry = await self.get(product_id)
        if entry is None:
            entry = ProductEmbeddingIndex(
                product_id=product_id,
                state=IndexState.NOT_INDEXED,
                record_ids=[],
                attempts=0,
            )
            self.session.add(entry)
        return entry

    async def mark_indexing(self, product_id: str) -> ProductEmbeddingIndex:
        entry = await self._get_or_create(product_id)
        entry.state = IndexState.INDEXING
        entry.attempts = (entry.attempts or 0) + 1
        await self.session.flush()
        return entry

    async def mark_indexed(
        self,
        product_id: str,
        record_ids: list[str],
        embedding_method: str,
    ) -> ProductEmbeddingIndex:
        entry = await self._get_or_create(product_id)
        entry.state = IndexState.INDEXED
        entry.record_ids = list(record_ids)
        entry.embedding_method = embedding_method
        entry.failed_stage = None
        entry.last_error = None
        entry.indexed_at = datetime.now(timezone.utc)
        await self.session.flush()
        return entry

    async def mark_failed(
        self,
        product_id: str,
        *,
        stage: str,
        error: str,
        record_ids: list[str] | None = None,
    ) -> ProductEmbeddingIndex:
        """Record a failure; ``record_ids`` lists partial writes to clean up later."""

        entry = await self._get_or_create(product_id)
        entry.state = IndexState.FAILED
        entry.failed_stage = stage
        entry.last_error = error[:2000]
        if record_ids is not None:
            entry.record_ids = list(record_ids)
        await self.session.flush()
        return entry

    async def remove(self, product_id: str) -> None:
        await self.session.execute(
            delete(ProductEmbeddingIndex).where(ProductEmbeddingIndex.product_id == product_id)
        )
        await self.session.flush()

    async def list_product_ids(self, state: IndexState) -> Sequence[str]:
        stmt = (
            select(ProductEmbeddingIndex.product_id)
            .where(ProductEmbeddingIndex.state == state)
            .order_by(ProductEmbeddingIndex.product_id)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()
