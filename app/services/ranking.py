"""
Ranking helpers for hybrid search

Pure functions: per-product deduplication of store hits and reciprocal rank
fusion of several ranked id lists.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from app.vectorstore.protocol import StoreHit


@dataclass(slots=True)
class RankedProduct:
    """A product id with the score of its best hit."""

    product_id: str
    score: float


def deduplicate_product_results(hits: Iterable[StoreHit]) -> list[RankedProduct]:
    """
    Keep one entry per product (its best-scoring hit), best first.

    Ties keep the order in which the products first appeared.

    [A 0.9, B 0.8, A 0.7] -> [A 0.9, B 0.8]
    """
    best: dict[str, RankedProduct] = {}
    first_seen: dict[str, int] = {}

    for position, hit in enumerate(hits):
        product_id = hit.record.product_id
        if product_id not in first_seen:
            first_seen[product_id] = position
            best[product_id] = RankedProduct(product_id=product_id, score=hit.score)
        elif hit.score > best[product_id].score:
            best[product_id].score = hit.score

    return sorted(best.values(), key=lambda item: (-item.score, first_seen[item.product_id]))


def reciprocal_rank_fusion(
    ranked_lists: Sequence[Sequence[str]],
    k: int = 60,
) -> list[RankedProduct]:
    """
    Fuse ranked id lists with RRF: score(id) = sum(1 / (k + rank)).

    Scores are divided by the best achievable score (rank 1 in every list) so
    they fall in [0, 1]. Ties keep first-appearance order.
    """
    if k < 0:
        raise ValueError("RRF constant k must not be negative")

    scores: dict[str, float] = {}
    for ranked in ranked_lists:
        for rank, product_id in enumerate(dict.fromkeys(ranked), start=1):
            scores[product_id] = scores.get(product_id, 0.0) + 1.0 / (k + rank)

    if not scores:
        return []

    max_score = len(ranked_lists) / (k + 1)
    order = {product_id: index for index, product_id in enumerate(scores)}
    fused = [
        RankedProduct(product_id=product_id, score=min(score / max_score, 1.0))
        for product_id, score in scores.items()
    ]
    return sorted(fused, key=lambda item: (-item.score, order[item.product_id]))
