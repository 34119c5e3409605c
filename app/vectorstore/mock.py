"""
Mock Embedding Store Implementation
In-memory implementation for development/testing.

Cosine similarity over stored vectors; keyword score is the fraction of query
tokens present in the record's searchable text.
"""

import math
from typing import Iterable

from app.core.config import settings
from app.core.exceptions import DimensionMismatchError
from app.core.logging import get_logger
from app.encoder.mock import tokenize
from app.vectorstore.protocol import StoreHit
from app.vectorstore.schemas import EmbeddingRecord, StoreFilter, well_known_record_ids

logger = get_logger(__name__)


def cosine_similarity(left: list[float], right: list[float]) -> float:
    dot = sum(a * b for a, b in zip(left, right))
    norm = math.sqrt(sum(a * a for a in left)) * math.sqrt(sum(b * b for b in right))
    if norm == 0:
        return 0.0
    return dot / norm


class InMemoryEmbeddingStore:
    """Embedding store backed by a dict keyed by record id."""

    def __init__(self, dimension: int | None = None, max_image_slots: int | None = None):
        self.dimension = dimension or settings.embedding_dimension
        self.max_image_slots = max_image_slots or settings.max_image_slots
        self._records: dict[str, EmbeddingRecord] = {}
        logger.info("inmemory_embedding_store_initialized", dimension=self.dimension)

    def __len__(self) -> int:
        return len(self._records)

    async def initialize(self) -> None:
        return None

    async def upsert(self, record: EmbeddingRecord) -> None:
        if len(record.vector) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(record.vector), context=record.record_id)

        self._records[record.record_id] = record.model_copy(deep=True)
        logger.debug("embedding_record_upserted", record_id=record.record_id)

    async def delete_by_id(self, record_id: str) -> bool:
        return self._records.pop(record_id, None) is not None

    async def delete_all_for_product(
        self,
        product_id: str,
        known_record_ids: Iterable[str] = (),
    ) -> int:
        candidates = set(well_known_record_ids(product_id, self.max_image_slots))
        candidates.update(known_record_ids)
        candidates.update(
            record_id for record_id, record in self._records.items() if record.product_id == product_id
        )

        deleted = 0
        for record_id in candidates:
            if await self.delete_by_id(record_id):
                deleted += 1

        logger.debug("product_records_deleted", product_id=product_id, deleted=deleted)
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

        store_filter = store_filter or StoreFilter()
        hits = [
            StoreHit(record=record, score=cosine_similarity(vector, record.vector))
            for record in self._records.values()
            if store_filter.matches(record)
        ]
        # sorted() is stable: ties keep insertion order
        hits = sorted(hits, key=lambda hit: hit.score, reverse=True)
        return hits[:top_k]

    async def query_keywords(
        self,
        text: str,
        top_k: int,
        store_filter: StoreFilter | None = None,
    ) -> list[StoreHit]:
        query_tokens = set(tokenize(text))
        if not query_tokens or top_k <= 0:
            return []

        store_filter = store_filter or StoreFilter()
        hits: list[StoreHit] = []
        for record in self._records.values():
            if not store_filter.matches(record):
                continue
            haystack = set(tokenize(f"{record.searchable_text} {record.name}"))
            matched = len(query_tokens & haystack)
            if matched:
                hits.append(StoreHit(record=record, score=matched / len(query_tokens)))

        hits = sorted(hits, key=lambda hit: hit.score, reverse=True)
        return hits[:top_k]

    async def get(self, record_id: str) -> EmbeddingRecord | None:
        return self._records.get(record_id)

    async def list_record_ids(self, product_id: str) -> list[str]:
        return sorted(
            record_id for record_id, record in self._records.items() if record.product_id == product_id
        )

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    async def clear(self) -> None:
        count = len(self._records)
        self._records.clear()
        logger.info("embedding_store_cleared", records_removed=count)
