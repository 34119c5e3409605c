"""
Shared fixtures: a file-backed SQLite database per test (several sessions
must see the same data) and small product helpers.
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.db import build_session_maker
from app.encoder.mock import HashingEncoder
from app.models import Base, ComponentType, Product
from app.vectorstore.mock import InMemoryEmbeddingStore

TEST_DIMENSION = 64


@pytest.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker[AsyncSession]:
    return build_session_maker(db_engine)


@pytest.fixture
async def async_db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def encoder() -> HashingEncoder:
    return HashingEncoder(dimension=TEST_DIMENSION)


@pytest.fixture
def store() -> InMemoryEmbeddingStore:
    return InMemoryEmbeddingStore(dimension=TEST_DIMENSION, max_image_slots=10)


@pytest.fixture
def add_product(session_maker):
    """Insert a product row and return it."""

    async def _add(
        product_id: str,
        name: str,
        *,
        description: str | None = None,
        component_type: ComponentType | None = None,
        category_id: str | None = None,
        price: float = 100.0,
        image_urls: list[str] | None = None,
    ) -> Product:
        async with session_maker() as session:
            product = Product(
                id=product_id,
                name=name,
                description=description,
                component_type=component_type,
                category_id=category_id,
                price=price,
                image_urls=image_urls or [],
            )
            session.add(product)
            await session.commit()
            await session.refresh(product)
            return product

    return _add
