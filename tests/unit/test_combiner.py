"""
Unit tests for the weighted embedding combiner and weight policy
"""

import pytest

from app.core.exceptions import DimensionMismatchError
from app.encoder.combiner import WeightPolicy, combine


def test_combine_weighted_average() -> None:
    assert combine([[1.0, 0.0], [0.0, 1.0]], [3, 1]) == pytest.approx([0.75, 0.25])


def test_combine_single_vector_is_identity() -> None:
    assert combine([[0.2, -0.4, 0.1]], [0.6]) == pytest.approx([0.2, -0.4, 0.1])


def test_combine_rejects_mismatched_dimensions() -> None:
    with pytest.raises(DimensionMismatchError) as exc_info:
        combine([[0.1] * 4, [0.1] * 5], [1, 1])

    assert exc_info.value.expected == 4
    assert exc_info.value.actual == 5


@pytest.mark.parametrize(
    "vectors, weights",
    [
        ([], []),
        ([[1.0, 0.0]], [1, 1]),
        ([[1.0, 0.0], [0.0, 1.0]], [1, -1]),
        ([[1.0, 0.0], [0.0, 1.0]], [0, 0]),
    ],
)
def test_combine_rejects_invalid_weights(vectors, weights) -> None:
    with pytest.raises(ValueError):
        combine(vectors, weights)


def test_text_field_weights_full_product() -> None:
    policy = WeightPolicy()

    weights = policy.text_field_weights(["name", "description", "component_type"])

    assert weights["name"] == pytest.approx(0.36)
    assert weights["description"] == pytest.approx(0.18)
    assert weights["component_type"] == pytest.approx(0.06)


def test_text_field_weights_renormalize_missing_fields() -> None:
    policy = WeightPolicy()

    weights = policy.text_field_weights(["name", "component_type"])

    assert sum(weights.values()) == pytest.approx(0.6)
    assert weights["name"] / weights["component_type"] == pytest.approx(6.0)


def test_text_field_weights_unknown_field() -> None:
    with pytest.raises(ValueError):
        WeightPolicy().text_field_weights(["name", "sku"])


def test_image_weights_split_evenly() -> None:
    policy = WeightPolicy()

    assert policy.image_weights(0) == []
    assert policy.image_weights(2) == pytest.approx([0.2, 0.2])


def test_query_weights() -> None:
    policy = WeightPolicy()

    assert policy.query_weights(has_text=True, image_count=0) == pytest.approx([0.6])
    assert policy.query_weights(has_text=True, image_count=2) == pytest.approx([0.6, 0.2, 0.2])
    assert policy.query_weights(has_text=False, image_count=1) == pytest.approx([0.4])
