"""
Mock Encoder Implementation
Deterministic feature-hashing encoder for development/testing (no model download).

Text: signed token hashing, so texts sharing words land close together.
Images: pseudo-random unit vector seeded by the image bytes digest.
"""

import hashlib
import math
import random
import re

from app.core.config import settings
from app.core.exceptions import EmptyInputError
from app.core.logging import get_logger
from app.encoder.images import ImageLoader
from app.encoder.protocol import Vector

logger = get_logger(__name__)

_TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str) -> list[str]:
    return _TOKEN_PATTERN.findall(text.lower())


def _normalize(vector: Vector) -> Vector:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return vector
    return [value / norm for value in vector]


class HashingEncoder:
    """In-process encoder with the same contract as ClipEncoder."""

    method = "hashing"

    def __init__(
        self,
        dimension: int | None = None,
        image_loader: ImageLoader | None = None,
    ) -> None:
        self.dimension = dimension or settings.embedding_dimension
        self.image_loader = image_loader or ImageLoader()
        logger.info("hashing_encoder_initialized", dimension=self.dimension)

    async def warmup(self) -> None:
        return None

    async def embed_text(self, text: str) -> Vector:
        if text is None or not text.strip():
            raise EmptyInputError("Cannot embed empty text")

        vector = [0.0] * self.dimension
        for token in tokenize(text):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            index = int.from_bytes(digest[:4], "big") % self.dimension
            vector[index] += 1.0 if digest[4] % 2 == 0 else -1.0
        return _normalize(vector)

    async def embed_image(self, source: str) -> Vector:
        data = await self.image_loader.load(source)
        rng = random.Random(hashlib.sha256(data).digest())
        return _normalize([rng.gauss(0.0, 1.0) for _ in range(self.dimension)])
