"""
Index queue DTO definitions

Exponential backoff, retry count and dead-letter fields for background
index/deindex jobs.
"""

from datetime import datetime
from enum import Enum

from pydantic import Field

from app.core.config import settings
from app.schemas.base import BaseSchema
from app.schemas.product import ProductSnapshot


class IndexAction(str, Enum):
    INDEX = "INDEX"
    DEINDEX = "DEINDEX"


class JobStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    RETRYING = "RETRYING"
    COMPLETED = "COMPLETED"
    DEAD_LETTER = "DEAD_LETTER"


class IndexJob(BaseSchema):
    """Background (de)index request for one product."""

    job_id: str | None = Field(default=None, description="Assigned on enqueue")
    action: IndexAction
    product_id: str
    product: ProductSnapshot | None = Field(
        default=None,
        description="Snapshot taken at write time; INDEX jobs without one reload the product",
    )
    max_retries: int = Field(default_factory=lambda: settings.index_queue_max_retries, ge=1)
    attempts: int = Field(default=0, ge=0)
    backoff_factor: float = Field(default_factory=lambda: settings.index_queue_backoff_factor, ge=1.0)
    base_delay_seconds: float = Field(
        default_factory=lambda: settings.index_queue_base_delay_seconds, ge=0.0
    )
    next_retry_at: datetime | None = None
    last_error: str | None = None
    status: JobStatus = JobStatus.PENDING
    dead_letter_reason: str | None = None

    @classmethod
    def index(cls, product: ProductSnapshot, **kwargs) -> "IndexJob":
        return cls(action=IndexAction.INDEX, product_id=product.id, product=product, **kwargs)

    @classmethod
    def deindex(cls, product_id: str, **kwargs) -> "IndexJob":
        return cls(action=IndexAction.DEINDEX, product_id=product_id, **kwargs)
