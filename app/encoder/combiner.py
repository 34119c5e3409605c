"""
Weighted Embedding Combiner

Deterministic weighted average of equal-length vectors plus the weight policy
that decides how text fields and images share the combined embedding.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Sequence

from app.core.config import Settings, settings
from app.core.exceptions import DimensionMismatchError
from app.encoder.protocol import Vector

TEXT_FIELDS = ("name", "description", "component_type")


def combine(vectors: Sequence[Sequence[float]], weights: Sequence[float]) -> Vector:
    """
    Weighted average of ``vectors``; weights are normalized by their sum.

    combine([[1, 0], [0, 1]], [3, 1]) == [0.75, 0.25]

    Raises:
        ValueError: no vectors, count mismatch, negative weight or non-positive sum
        DimensionMismatchError: vectors of different length (never padded or truncated)
    """
    if not vectors:
        raise ValueError("combine() needs at least one vector")
    if len(vectors) != len(weights):
        raise ValueError(f"Got {len(vectors)} vectors but {len(weights)} weights")

    dimension = len(vectors[0])
    for vector in vectors:
        if len(vector) != dimension:
            raise DimensionMismatchError(dimension, len(vector), context="combine")

    if any(weight < 0 for weight in weights):
        raise ValueError("Weights must not be negative")
    total = float(sum(weights))
    if total <= 0 or not math.isfinite(total):
        raise ValueError("Weights must have a positive finite sum")

    combined = [0.0] * dimension
    for vector, weight in zip(vectors, weights):
        factor = weight / total
        for index, value in enumerate(vector):
            combined[index] += value * factor
    return combined


@dataclass(frozen=True, slots=True)
class WeightPolicy:
    """
    text_total is split across text fields by ratio, image_total evenly across
    the images that were actually embedded.
    """

    text_total: float = 0.6
    image_total: float = 0.4
    name_ratio: float = 0.6
    description_ratio: float = 0.3
    component_type_ratio: float = 0.1

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> WeightPolicy:
        config = config or settings
        return cls(
            text_total=config.text_weight_total,
            image_total=config.image_weight_total,
            name_ratio=config.name_weight_ratio,
            description_ratio=config.description_weight_ratio,
            component_type_ratio=config.component_type_weight_ratio,
        )

    def text_field_weights(self, fields: Iterable[str]) -> dict[str, float]:
        """
        Weights for the text fields present, renormalized so they still add up
        to ``text_total`` when a field is missing.
        """
        ratios = {
            "name": self.name_ratio,
            "description": self.description_ratio,
            "component_type": self.component_type_ratio,
        }
        present = list(fields)
        unknown = [field for field in present if field not in ratios]
        if unknown:
            raise ValueError(f"Unknown text fields: {unknown}")

        ratio_sum = sum(ratios[field] for field in present)
        if ratio_sum <= 0:
            return {}
        return {field: self.text_total * ratios[field] / ratio_sum for field in present}

    def image_weights(self, count: int) -> list[float]:
        if count <= 0:
            return []
        return [self.image_total / count] * count

    def query_weights(self, *, has_text: bool, image_count: int) -> list[float]:
        """Query side: the query text takes the whole text share."""
        weights = [self.text_total] if has_text else []
        return weights + self.image_weights(image_count)
