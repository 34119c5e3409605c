"""
Search request/response schemas
"""

from enum import Enum

from pydantic import Field, model_validator

from app.core.config import settings
from app.models.product import ComponentType
from app.schemas.base import BaseSchema
from app.schemas.product import ProductResponse


class SearchMode(str, Enum):
    VECTOR = "vector"
    KEYWORD = "keyword"
    HYBRID = "hybrid"


class ScoreType(str, Enum):
    """Scores of different types are never compared with each other."""

    VECTOR_SIMILARITY = "vector_similarity"
    KEYWORD = "keyword"
    RRF = "rrf"
    FALLBACK = "fallback"


class SearchFilters(BaseSchema):
    category_id: str | None = None
    component_type: ComponentType | None = None
    min_price: float | None = Field(default=None, ge=0)
    max_price: float | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_price_range(self) -> "SearchFilters":
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError("min_price must not exceed max_price")
        return self


class SearchOptions(BaseSchema):
    top_k: int = Field(default_factory=lambda: settings.search_top_k, ge=1)
    mode: SearchMode = SearchMode.VECTOR
    filters: SearchFilters = Field(default_factory=SearchFilters)


class SearchRequest(SearchOptions):
    query: str | None = Field(default=None, max_length=1000)
    images: list[str] = Field(
        default_factory=list,
        max_length=5,
        description="http(s) URLs or data:image/...;base64 payloads",
    )


class SearchResultItem(BaseSchema):
    product_id: str
    score: float
    score_type: ScoreType
    product: ProductResponse


class SearchResponse(BaseSchema):
    query: str | None = None
    mode: SearchMode
    degraded: bool = False
    total: int = 0
    results: list[SearchResultItem] = Field(default_factory=list)
