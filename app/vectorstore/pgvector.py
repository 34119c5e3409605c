"""
PGVector Embedding Store implementation.

PostgreSQL + pgvector table holding every embedding record. Vector queries use
cosine distance (``<=>``); keyword queries use PostgreSQL full-text search over
the searchable text column.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any, Iterable

from pgvector.sqlalchemy import Vector
from sqlalchemy import Integer, String, bindparam, text as sa_text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from app.core.config import settings
from app.core.db import get_async_engine
from app.core.exceptions import (
    DimensionMismatchError,
    StoreUnavailableError,
    VectorIndexError,
    VectorSearchError,
    VectorStoreError,
)
from app.core.logging import get_logger
from app.vectorstore.protocol import StoreHit
from app.vectorstore.schemas import (
    EmbeddingRecord,
    EmbeddingType,
    StoreFilter,
    well_known_record_ids,
)

logger = get_logger(__name__)

_RECORD_COLUMNS = (
    "record_id, product_id, embedding_type, embedding_method, image_index, "
    "category_id, component_type, price, searchable_text, payload, timestamp"
)

# columns that StoreFilter fields map to
_FILTER_COLUMNS = {
    "embedding_method": "embedding_method",
    "product_id": "product_id",
    "category_id": "category_id",
    "component_type": "component_type",
}


def build_where_clause(store_filter: StoreFilter | None) -> tuple[str, dict[str, Any]]:
    """SQL WHERE fragment and bind params for a StoreFilter."""

    if store_filter is None:
        return "", {}

    conditions: list[str] = []
    params: dict[str, Any] = {}
    if store_filter.embedding_type is not None:
        conditions.append("embedding_type = :f_embedding_type")
        params["f_embedding_type"] = store_filter.embedding_type.value
    for field, column in _FILTER_COLUMNS.items():
        value = getattr(store_filter, field)
        if value is not None:
            conditions.append(f"{column} = :f_{field}")
            params[f"f_{field}"] = value
    if store_filter.exclude_product_id is not None:
        conditions.append("product_id <> :f_exclude_product_id")
        params["f_exclude_product_id"] = store_filter.exclude_product_id

    if not conditions:
        return "", {}
    return f"WHERE {' AND '.join(conditions)}", params


class PGVectorEmbeddingStore:
    """PostgreSQL + pgvector-backed embedding store (one row per record)."""

    def __init__(
        self,
        engine: AsyncEngine | None = None,
        *,
        table_name: str | None = None,
        dimension: int | None = None,
        timeout_seconds: float | None = None,
        max_image_slots: int | None = None,
    ) -> None:
        self.engine = engine or get_async_engine()
        self.dimension = dimension or settings.embedding_dimension
        self.table_name = self._validate_table_name(table_name or settings.pgvector_table)
        self.timeout_seconds = timeout_seconds or settings.store_timeout_seconds
        self.max_image_slots = max_image_slots or settings.max_image_slots
        self._init_lock = asyncio.Lock()
        self._initialized = False

    async def initialize(self) -> None:
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            await self._run(self._create_extension_and_table, VectorIndexError)
            self._initialized = True

    async def upsert(self, record: EmbeddingRecord) -> None:
        if len(record.vector) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(record.vector), context=record.record_id)
        await self.initialize()

        upsert_sql = f"""
            INSERT INTO {self.table_name}
                (record_id, product_id, embedding, embedding_type, embedding_method,
                 image_index, category_id, component_type, price, searchable_text,
                 payload, timestamp)
            VALUES
                (:record_id, :product_id, :embedding, :embedding_type, :embedding_method,
                 :image_index, :category_id, :component_type, :price, :searchable_text,
                 :payload, :timestamp)
            ON CONFLICT (record_id) DO UPDATE SET
                product_id = EXCLUDED.product_id,
                embedding = EXCLUDED.embedding,
                embedding_type = EXCLUDED.embedding_type,
                embedding_method = EXCLUDED.embedding_method,
                image_index = EXCLUDED.image_index,
                category_id = EXCLUDED.category_id,
                component_type = EXCLUDED.component_type,
                price = EXCLUDED.price,
                searchable_text = EXCLUDED.searchable_text,
                payload = EXCLUDED.payload,
                timestamp = EXCLUDED.timestamp
        """
        stmt = sa_text(upsert_sql).bindparams(
            bindparam("embedding", type_=Vector(self.dimension)),
            bindparam("payload", type_=JSONB),
        )
        params = {
            "record_id": record.record_id,
            "product_id": record.product_id,
            "embedding": record.vector,
            "embedding_type": record.embedding_type.value,
            "embedding_method": record.embedding_method,
            "image_index": record.image_index,
            "category_id": record.category_id,
            "component_type": record.component_type,
            "price": record.price,
            "searchable_text": record.searchable_text,
            "payload": record.model_dump(
                mode="json",
                include={"name", "description", "has_images", "image_count"},
            ),
            "timestamp": record.timestamp,
        }

        async def _execute() -> None:
            async with self.engine.begin() as conn:
                await conn.execute(stmt, params)

        await self._run(_execute, VectorIndexError)
        logger.debug("pgvector_record_upserted", record_id=record.record_id)

    async def delete_by_id(self, record_id: str) -> bool:
        await self.initialize()

        async def _execute() -> int:
            async with self.engine.begin() as conn:
                result = await conn.execute(
                    sa_text(f"DELETE FROM {self.table_name} WHERE record_id = :record_id"),
                    {"record_id": record_id},
                )
                return result.rowcount or 0

        return await self._run(_execute, VectorIndexError) > 0

    async def delete_all_for_product(
        self,
        product_id: str,
        known_record_ids: Iterable[str] = (),
    ) -> int:
        await self.initialize()
        record_ids = list(dict.fromkeys([*well_known_record_ids(product_id, self.max_image_slots), *known_record_ids]))

        async def _execute() -> int:
            async with self.engine.begin() as conn:
                result = await conn.execute(
                    sa_text(
                        f"DELETE FROM {self.table_name} "
                        "WHERE product_id = :product_id OR record_id = ANY(:record_ids)"
                    ),
                    {"product_id": product_id, "record_ids": record_ids},
                )
                return result.rowcount or 0

        deleted = await self._run(_execute, VectorIndexError)
        logger.debug("pgvector_product_records_deleted", product_id=product_id, deleted=deleted)
        return deleted

    async def query_vector(
        self,
        vector: list[float],
        top_k: int,
        store_filter: StoreFilter | None = None,
    ) -> list[StoreHit]:
        if len(vector) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(vector), context="query vector")
        if top_k <= 0:
            return []
        await self.initialize()

        where_clause, params = build_where_clause(store_filter)
        search_sql = f"""
            SELECT {_RECORD_COLUMNS}, 1.0 - (embedding <=> :embedding) AS score
            FROM {self.table_name}
            {where_clause}
            ORDER BY embedding <=> :embedding, record_id
            LIMIT :limit
        """
        stmt = sa_text(search_sql).bindparams(
            bindparam("embedding", type_=Vector(self.dimension)),
            bindparam("limit", type_=Integer()),
        )
        params.update({"embedding": vector, "limit": top_k})

        rows = await self._run(lambda: self._fetch(stmt, params), VectorSearchError)
        return [StoreHit(record=self._row_to_record(row), score=float(row.score or 0.0)) for row in rows]

    async def query_keywords(
        self,
        text: str,
        top_k: int,
        store_filter: StoreFilter | None = None,
    ) -> list[StoreHit]:
        if not text or not text.strip() or top_k <= 0:
            return []
        await self.initialize()

        where_clause, params = build_where_clause(store_filter)
        match = "to_tsvector('simple', searchable_text) @@ plainto_tsquery('simple', :query)"
        where_clause = f"{where_clause} AND {match}" if where_clause else f"WHERE {match}"
        search_sql = f"""
            SELECT {_RECORD_COLUMNS}, ts_rank(to_tsvector('simple', searchable_text),
                              plainto_tsquery('simple', :query)) AS score
            FROM {self.table_name}
            {where_clause}
            ORDER BY score DESC, record_id
            LIMIT :limit
        """
        stmt = sa_text(search_sql).bindparams(
            bindparam("query", type_=String()),
            bindparam("limit", type_=Integer()),
        )
        params.update({"query": text.strip(), "limit": top_k})

        rows = await self._run(lambda: self._fetch(stmt, params), VectorSearchError)
        return [StoreHit(record=self._row_to_record(row), score=float(row.score or 0.0)) for row in rows]

    async def get(self, record_id: str) -> EmbeddingRecord | None:
        await self.initialize()
        stmt = sa_text(f"SELECT {_RECORD_COLUMNS} FROM {self.table_name} WHERE record_id = :record_id")
        rows = await self._run(lambda: self._fetch(stmt, {"record_id": record_id}), VectorSearchError)
        return self._row_to_record(rows[0]) if rows else None

    async def list_record_ids(self, product_id: str) -> list[str]:
        await self.initialize()
        stmt = sa_text(
            f"SELECT record_id FROM {self.table_name} WHERE product_id = :product_id ORDER BY record_id"
        )
        rows = await self._run(lambda: self._fetch(stmt, {"product_id": product_id}), VectorSearchError)
        return [row.record_id for row in rows]

    async def health_check(self) -> bool:
        try:
            await self._run(lambda: self._fetch(sa_text("SELECT 1"), {}), VectorSearchError)
        except VectorStoreError as exc:
            logger.warning("pgvector_health_check_failed", error=str(exc))
            return False
        return True

    async def close(self) -> None:
        # engine lifecycle belongs to app.core.db
        return None

    # Internal helpers -------------------------------------------------

    async def _fetch(self, stmt: Any, params: dict[str, Any]) -> list[Any]:
        async with self.engine.connect() as conn:
            result = await conn.execute(stmt, params)
            return list(result.fetchall())

    async def _run(self, operation: Any, error_cls: type[VectorStoreError]) -> Any:
        """Run a DB coroutine with a timeout, mapping driver errors to store errors."""
        try:
            return await asyncio.wait_for(operation(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            logger.warning("pgvector_timeout", table=self.table_name)
            raise StoreUnavailableError(f"pgvector timed out after {self.timeout_seconds}s") from exc
        except (OSError, ConnectionError) as exc:
            raise StoreUnavailableError(f"pgvector unreachable: {exc}") from exc
        except DBAPIError as exc:
            if exc.connection_invalidated:
                raise StoreUnavailableError(f"pgvector connection lost: {exc}") from exc
            raise error_cls(f"pgvector operation failed: {exc}") from exc
        except SQLAlchemyError as exc:
            raise error_cls(f"pgvector operation failed: {exc}") from exc

    async def _create_extension_and_table(self) -> None:
        create_table_sql = f"""
            CREATE TABLE IF NOT EXISTS {self.table_name} (
                record_id TEXT PRIMARY KEY,
                product_id TEXT NOT NULL,
                embedding VECTOR({self.dimension}) NOT NULL,
                embedding_type TEXT NOT NULL,
                embedding_method TEXT NOT NULL,
                image_index INTEGER NULL,
                category_id TEXT NULL,
                component_type TEXT NULL,
                price DOUBLE PRECISION NULL,
                searchable_text TEXT NOT NULL DEFAULT '',
                payload JSONB DEFAULT '{{}}'::jsonb,
                timestamp BIGINT NOT NULL
            )
        """
        indexes = [
            f"CREATE INDEX IF NOT EXISTS idx_{self.table_name}_product ON {self.table_name} (product_id)",
            f"CREATE INDEX IF NOT EXISTS idx_{self.table_name}_type_method "
            f"ON {self.table_name} (embedding_type, embedding_method)",
        ]

        async with self.engine.begin() as conn:
            await conn.execute(sa_text("CREATE EXTENSION IF NOT EXISTS vector"))
            await conn.execute(sa_text(create_table_sql))
            for stmt in indexes:
                await conn.execute(sa_text(stmt))
        logger.info("pgvector_table_ready", table=self.table_name, dimension=self.dimension)

    def _row_to_record(self, row: Any) -> EmbeddingRecord:
        payload = row.payload or {}
        return EmbeddingRecord(
            record_id=row.record_id,
            product_id=row.product_id,
            vector=[],
            embedding_type=EmbeddingType(row.embedding_type),
            embedding_method=row.embedding_method,
            image_index=row.image_index,
            name=payload.get("name", ""),
            description=payload.get("description"),
            price=row.price,
            component_type=row.component_type,
            category_id=row.category_id,
            has_images=payload.get("has_images", False),
            image_count=payload.get("image_count", 0),
            searchable_text=row.searchable_text or "",
            timestamp=row.timestamp,
        )

    @staticmethod
    def _validate_table_name(table_name: str) -> str:
        if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", table_name):
            raise ValueError(f"Unsafe table name: {table_name}")
        return table_name
