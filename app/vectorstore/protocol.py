"""
Embedding Store Protocol (Interface)
Defines contract for all embedding store implementations
"""

from typing import Iterable, NamedTuple, Protocol

from app.vectorstore.schemas import EmbeddingRecord, StoreFilter


class StoreHit(NamedTuple):
    """
    Single ranked store result

    Attributes:
        record: Matched embedding record (vector may be omitted by remote backends)
        score: Higher is better; vector queries report cosine similarity
    """

    record: EmbeddingRecord
    score: float


class EmbeddingStoreProtocol(Protocol):
    """
    Protocol for embedding store implementations

    Every record is keyed by ``{product_id}_{variant}``; writing the same id
    twice replaces the record. Transport failures and timeouts raise
    StoreUnavailableError.
    """

    dimension: int

    async def initialize(self) -> None:
        """Create the collection/table if missing (idempotent)."""
        ...

    async def upsert(self, record: EmbeddingRecord) -> None:
        """
        Raises:
            DimensionMismatchError: vector length differs from ``dimension``
            VectorIndexError: If the write fails
        """
        ...

    async def delete_by_id(self, record_id: str) -> bool:
        """Returns False when nothing was stored under ``record_id``."""
        ...

    async def delete_all_for_product(
        self,
        product_id: str,
        known_record_ids: Iterable[str] = (),
    ) -> int:
        """
        Best-effort removal of every record of a product.

        Deletes the well-known variants, ``known_record_ids`` and, where the
        backend can filter by product, anything else left behind. Returns the
        number of records removed; nothing to delete is not an error.
        """
        ...

    async def query_vector(
        self,
        vector: list[float],
        top_k: int,
        store_filter: StoreFilter | None = None,
    ) -> list[StoreHit]:
        """Nearest records by cosine similarity, best first."""
        ...

    async def query_keywords(
        self,
        text: str,
        top_k: int,
        store_filter: StoreFilter | None = None,
    ) -> list[StoreHit]:
        """Keyword match over the records' searchable text, best first."""
        ...

    async def get(self, record_id: str) -> EmbeddingRecord | None:
        ...

    async def list_record_ids(self, product_id: str) -> list[str]:
        ...

    async def health_check(self) -> bool:
        ...

    async def close(self) -> None:
        ...
