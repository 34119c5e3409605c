"""
Encoder Protocol (Interface)
Defines the contract shared by the CLIP encoder and the hashing mock
"""

import math
from typing import Any, Protocol, runtime_checkable

from app.core.exceptions import DimensionMismatchError, EncodingError

Vector = list[float]


@runtime_checkable
class EncoderProtocol(Protocol):
    """
    Text and image embeddings in one joint vector space.

    Both methods return vectors of length ``dimension``. Blank text raises
    EmptyInputError; any other failure raises EncodingError.
    """

    dimension: int
    method: str

    async def warmup(self) -> None:
        """Load the model ahead of the first request."""
        ...

    async def embed_text(self, text: str) -> Vector:
        ...

    async def embed_image(self, source: str) -> Vector:
        """
        Args:
            source: http(s) URL, data URL or bare base64 image payload
        """
        ...


def to_vector(raw: Any, dimension: int | None = None) -> Vector:
    """
    Convert encoder output into a flat list of floats.

    Accepts numpy arrays, tensors exposing ``tolist()``, plain sequences and
    single-row batches (``[[...]]``).

    Raises:
        EncodingError: empty, nested or non-numeric output
        DimensionMismatchError: length differs from ``dimension``
    """
    values = raw.tolist() if hasattr(raw, "tolist") else raw

    if isinstance(values, (list, tuple)) and len(values) == 1 and isinstance(values[0], (list, tuple)):
        values = values[0]

    if not isinstance(values, (list, tuple)) or len(values) == 0:
        raise EncodingError(f"Invalid embedding output of type {type(raw).__name__}")

    vector: Vector = []
    for value in values:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise EncodingError("Embedding output contains non-numeric values")
        number = float(value)
        if not math.isfinite(number):
            raise EncodingError("Embedding output contains NaN or infinite values")
        vector.append(number)

    if dimension is not None and len(vector) != dimension:
        raise DimensionMismatchError(dimension, len(vector), context="encoder output")

    return vector
