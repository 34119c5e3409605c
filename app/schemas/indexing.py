"""
Indexing outcome schemas
"""

from datetime import datetime

from pydantic import Field

from app.models.embedding_index import IndexState
from app.schemas.base import BaseSchema


class IndexResult(BaseSchema):
    product_id: str
    record_ids: list[str]
    failed_images: list[int] = Field(default_factory=list, description="Source indexes of skipped images")


class ReindexReport(BaseSchema):
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failed_product_ids: list[str] = Field(default_factory=list)
    duration_seconds: float = 0.0


class IndexStatusResponse(BaseSchema):
    product_id: str
    state: IndexState = IndexState.NOT_INDEXED
    record_ids: list[str] = Field(default_factory=list)
    embedding_method: str | None = None
    attempts: int = 0
    failed_stage: str | None = None
    last_error: str | None = None
    indexed_at: datetime | None = None
