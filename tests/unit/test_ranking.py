"""
Unit tests for per-product deduplication and reciprocal rank fusion
"""

import pytest

from app.services.ranking import deduplicate_product_results, reciprocal_rank_fusion
from app.vectorstore.protocol import StoreHit
from app.vectorstore.schemas import EmbeddingRecord, EmbeddingType


def _hit(product_id: str, score: float, embedding_type: EmbeddingType = EmbeddingType.COMBINED) -> StoreHit:
    record = EmbeddingRecord(
        record_id=f"{product_id}_{embedding_type.value}",
        product_id=product_id,
        embedding_type=embedding_type,
        embedding_method="clip",
        name=product_id,
    )
    return StoreHit(record=record, score=score)


def test_deduplicate_keeps_best_hit_per_product() -> None:
    ranked = deduplicate_product_results(
        [_hit("A", 0.9), _hit("B", 0.8), _hit("A", 0.7, EmbeddingType.TEXT)]
    )

    assert [(item.product_id, item.score) for item in ranked] == [("A", 0.9), ("B", 0.8)]


def test_deduplicate_upgrades_to_later_better_hit() -> None:
    ranked = deduplicate_product_results(
        [_hit("A", 0.5), _hit("B", 0.6), _hit("A", 0.95, EmbeddingType.TEXT)]
    )

    assert [item.product_id for item in ranked] == ["A", "B"]
    assert ranked[0].score == pytest.approx(0.95)


def test_deduplicate_ties_keep_first_appearance() -> None:
    ranked = deduplicate_product_results([_hit("B", 0.5), _hit("A", 0.5), _hit("C", 0.5)])

    assert [item.product_id for item in ranked] == ["B", "A", "C"]


def test_deduplicate_empty() -> None:
    assert deduplicate_product_results([]) == []


def test_rrf_rewards_agreement_between_lists() -> None:
    fused = reciprocal_rank_fusion([["A", "B", "C"], ["B", "C", "D"]], k=60)

    assert [item.product_id for item in fused] == ["B", "C", "A", "D"]
    assert fused[0].score < 1.0


def test_rrf_top_in_every_list_scores_one() -> None:
    fused = reciprocal_rank_fusion([["A", "B"], ["A"]], k=60)

    assert fused[0].product_id == "A"
    assert fused[0].score == pytest.approx(1.0)


def test_rrf_ignores_duplicates_within_a_list() -> None:
    fused = reciprocal_rank_fusion([["A", "A", "B"]], k=0)

    assert [(item.product_id, item.score) for item in fused] == [("A", 1.0), ("B", 0.5)]


def test_rrf_rejects_negative_k() -> None:
    with pytest.raises(ValueError):
        reciprocal_rank_fusion([["A"]], k=-1)
