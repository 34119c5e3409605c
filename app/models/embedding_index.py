"""
Embedding manifest: one row per product tracking which store records the
last index run wrote and where the pipeline stands.

product_id is a weak reference (no FK) so a product deleted from the catalogue
can still be deindexed.
"""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum as SQLEnum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, JSONType, StringIDMixin, TimestampMixin


class IndexState(str, enum.Enum):
    NOT_INDEXED = "NOT_INDEXED"
    INDEXING = "INDEXING"
    INDEXED = "INDEXED"
    FAILED = "FAILED"


class ProductEmbeddingIndex(Base, StringIDMixin, TimestampMixin):
    __tablename__ = "product_embedding_index"

    product_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    state: Mapped[IndexState] = mapped_column(
        SQLEnum(IndexState, name="index_state"),
        nullable=False,
        default=IndexState.NOT_INDEXED,
        index=True,
    )
    record_ids: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    embedding_method: Mapped[str | None] = mapped_column(String(64), nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_stage: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    indexed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<ProductEmbeddingIndex(product_id={self.product_id}, state={self.state})>"
