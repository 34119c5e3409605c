"""
Embedding store DTO definitions

Every backend reads and writes the same record/filter types.
"""

import time
from enum import Enum

from pydantic import Field

from app.schemas.base import BaseSchema


class EmbeddingType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    COMBINED = "combined"


def make_record_id(product_id: str, embedding_type: EmbeddingType, image_index: int | None = None) -> str:
    """``{product_id}_text``, ``{product_id}_image_{i}`` or ``{product_id}_combined``."""

    if embedding_type is EmbeddingType.IMAGE:
        if image_index is None or image_index < 0:
            raise ValueError("image records need a non-negative image_index")
        return f"{product_id}_image_{image_index}"
    return f"{product_id}_{embedding_type.value}"


def well_known_record_ids(product_id: str, max_image_slots: int) -> list[str]:
    """Ids a product can own regardless of what was recorded at index time."""

    ids = [
        make_record_id(product_id, EmbeddingType.TEXT),
        make_record_id(product_id, EmbeddingType.COMBINED),
    ]
    ids.extend(make_record_id(product_id, EmbeddingType.IMAGE, index) for index in range(max_image_slots))
    return ids


class EmbeddingRecord(BaseSchema):
    """One vector plus the denormalized product fields shown in results."""

    record_id: str
    product_id: str
    vector: list[float] = Field(default_factory=list)
    embedding_type: EmbeddingType
    embedding_method: str
    image_index: int | None = None

    name: str
    description: str | None = None
    price: float | None = None
    component_type: str | None = None
    category_id: str | None = None
    has_images: bool = False
    image_count: int = 0
    searchable_text: str = ""
    timestamp: int = Field(default_factory=lambda: int(time.time()))


class StoreFilter(BaseSchema):
    """Equality filters pushed down to the store."""

    embedding_type: EmbeddingType | None = None
    embedding_method: str | None = None
    product_id: str | None = None
    category_id: str | None = None
    component_type: str | None = None
    exclude_product_id: str | None = None

    def matches(self, record: EmbeddingRecord) -> bool:
        if self.embedding_type is not None and record.embedding_type != self.embedding_type:
            return False
        if self.embedding_method is not None and record.embedding_method != self.embedding_method:
            return False
        if self.product_id is not None and record.product_id != self.product_id:
            return False
        if self.category_id is not None and record.category_id != self.category_id:
            return False
        if self.component_type is not None and record.component_type != self.component_type:
            return False
        if self.exclude_product_id is not None and record.product_id == self.exclude_product_id:
            return False
        return True
