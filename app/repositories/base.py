"""
Base Repository Classes
Generic CRUD operations for RDB
"""

from typing import Generic, Sequence, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import RecordNotFoundError
from app.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Generic repository for CRUD operations

    Services own the transaction; repositories only flush/refresh.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    async def create(self, obj: ModelType) -> ModelType:
        self.session.add(obj)
        await self.session.flush()
        await self.session.refresh(obj)
        return obj

    async def get_by_id(self, id: str) -> ModelType | None:
        stmt = select(self.model).where(self.model.id == id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id_or_raise(self, id: str) -> ModelType:
        """
        Raises:
            RecordNotFoundError: If record not found
        """
        obj = await self.get_by_id(id)
        if obj is None:
            raise RecordNotFoundError(f"{self.model.__name__} with id={id} not found")
        return obj

    async def get_by_ids(self, ids: Sequence[str]) -> list[ModelType]:
        """
        Fetch many records by id, keeping the order of ``ids``.

        Unknown ids are skipped; duplicates in ``ids`` yield one record.
        """
        if not ids:
            return []

        stmt = select(self.model).where(self.model.id.in_(list(ids)))
        result = await self.session.execute(stmt)
        record_map = {item.id: item for item in result.scalars().all()}

        ordered: list[ModelType] = []
        for id in dict.fromkeys(ids):
            if id in record_map:
                ordered.append(record_map[id])
        return ordered

    async def count(self) -> int:
        stmt = select(func.count()).select_from(self.model)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def update(self, obj: ModelType) -> ModelType:
        await self.session.flush()
        await self.session.refresh(obj)
        return obj

    async def delete(self, obj: ModelType) -> None:
        await self.session.delete(obj)
        await self.session.flush()
