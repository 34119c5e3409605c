"""
Unit tests for InMemoryEmbeddingStore
"""

import pytest

from app.core.exceptions import DimensionMismatchError
from app.vectorstore.mock import InMemoryEmbeddingStore, cosine_similarity
from app.vectorstore.schemas import (
    EmbeddingRecord,
    EmbeddingType,
    StoreFilter,
    make_record_id,
    well_known_record_ids,
)


def _record(
    product_id: str,
    vector: list[float],
    embedding_type: EmbeddingType = EmbeddingType.COMBINED,
    *,
    image_index: int | None = None,
    category_id: str | None = None,
    searchable_text: str = "",
) -> EmbeddingRecord:
    return EmbeddingRecord(
        record_id=make_record_id(product_id, embedding_type, image_index),
        product_id=product_id,
        vector=vector,
        embedding_type=embedding_type,
        embedding_method="hashing",
        image_index=image_index,
        name=f"product {product_id}",
        category_id=category_id,
        searchable_text=searchable_text,
    )


@pytest.fixture
def store() -> InMemoryEmbeddingStore:
    return InMemoryEmbeddingStore(dimension=2, max_image_slots=3)


def test_record_ids() -> None:
    assert make_record_id("42", EmbeddingType.TEXT) == "42_text"
    assert make_record_id("42", EmbeddingType.IMAGE, 2) == "42_image_2"
    assert make_record_id("42", EmbeddingType.COMBINED) == "42_combined"
    assert well_known_record_ids("42", 2) == ["42_text", "42_combined", "42_image_0", "42_image_1"]

    with pytest.raises(ValueError):
        make_record_id("42", EmbeddingType.IMAGE)


def test_cosine_similarity_zero_vector() -> None:
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0
    assert cosine_similarity([1.0, 0.0], [2.0, 0.0]) == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_upsert_replaces_record_with_same_id(store: InMemoryEmbeddingStore) -> None:
    await store.upsert(_record("1", [1.0, 0.0]))
    await store.upsert(_record("1", [0.0, 1.0]))

    assert len(store) == 1
    assert (await store.get("1_combined")).vector == [0.0, 1.0]


@pytest.mark.asyncio
async def test_upsert_rejects_wrong_dimension(store: InMemoryEmbeddingStore) -> None:
    with pytest.raises(DimensionMismatchError):
        await store.upsert(_record("1", [1.0, 0.0, 0.0]))


@pytest.mark.asyncio
async def test_query_vector_orders_by_similarity_and_filters(store: InMemoryEmbeddingStore) -> None:
    await store.upsert(_record("a", [1.0, 0.0], category_id="gpu"))
    await store.upsert(_record("b", [0.7, 0.7], category_id="gpu"))
    await store.upsert(_record("c", [0.0, 1.0], category_id="cpu"))
    await store.upsert(_record("a", [1.0, 0.0], EmbeddingType.TEXT))

    hits = await store.query_vector(
        [1.0, 0.0], 10, StoreFilter(embedding_type=EmbeddingType.COMBINED, category_id="gpu")
    )

    assert [hit.record.record_id for hit in hits] == ["a_combined", "b_combined"]
    assert hits[0].score == pytest.approx(1.0)

    excluded = await store.query_vector([1.0, 0.0], 10, StoreFilter(exclude_product_id="a"))
    assert {hit.record.product_id for hit in excluded} == {"b", "c"}


@pytest.mark.asyncio
async def test_query_keywords_scores_token_overlap(store: InMemoryEmbeddingStore) -> None:
    await store.upsert(_record("a", [1.0, 0.0], searchable_text="RTX 4070 graphics card gpu"))
    await store.upsert(_record("b", [0.0, 1.0], searchable_text="Ryzen 7 processor cpu"))

    hits = await store.query_keywords("rtx gpu", 10)

    assert [hit.record.product_id for hit in hits] == ["a"]
    assert hits[0].score == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_delete_all_for_product_removes_every_record(store: InMemoryEmbeddingStore) -> None:
    await store.upsert(_record("1", [1.0, 0.0], EmbeddingType.TEXT))
    await store.upsert(_record("1", [1.0, 0.0], EmbeddingType.IMAGE, image_index=0))
    # outside the well-known slots, found by product id
    await store.upsert(_record("1", [1.0, 0.0], EmbeddingType.IMAGE, image_index=7))
    await store.upsert(_record("1", [1.0, 0.0]))
    await store.upsert(_record("2", [0.0, 1.0]))

    deleted = await store.delete_all_for_product("1")

    assert deleted == 4
    assert await store.list_record_ids("1") == []
    assert await store.list_record_ids("2") == ["2_combined"]
    assert await store.delete_all_for_product("1") == 0
