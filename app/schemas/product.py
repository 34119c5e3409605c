"""
Product request/response schemas and the snapshot carried by index jobs
"""

from pydantic import Field, field_validator

from app.models.product import ComponentType
from app.schemas.base import BaseSchema, TimestampSchema


class ProductBase(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    price: float = Field(default=0.0, ge=0)
    discount: int = Field(default=0, ge=0, le=100)
    component_type: ComponentType | None = None
    category_id: str | None = Field(default=None, max_length=64)
    stock: int = Field(default=0, ge=0)
    image_urls: list[str] = Field(default_factory=list)

    cpu: str | None = None
    main: str | None = None
    ram: str | None = None
    storage: str | None = None
    gpu: str | None = None
    power: str | None = None
    case_computer: str | None = None
    coolers: str | None = None

    @field_validator("image_urls")
    @classmethod
    def _drop_blank_images(cls, value: list[str]) -> list[str]:
        return [item.strip() for item in value if item and item.strip()]


class ProductCreate(ProductBase):
    id: str | None = Field(default=None, max_length=64, description="Defaults to a UUID4 string")


class ProductUpdate(BaseSchema):
    """Partial update; only fields present in the payload are applied."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    price: float | None = Field(default=None, ge=0)
    discount: int | None = Field(default=None, ge=0, le=100)
    component_type: ComponentType | None = None
    category_id: str | None = Field(default=None, max_length=64)
    stock: int | None = Field(default=None, ge=0)
    image_urls: list[str] | None = None

    cpu: str | None = None
    main: str | None = None
    ram: str | None = None
    storage: str | None = None
    gpu: str | None = None
    power: str | None = None
    case_computer: str | None = None
    coolers: str | None = None


class ProductResponse(ProductBase, TimestampSchema):
    id: str


class ProductSnapshot(BaseSchema):
    """
    Fields the indexer needs, copied at write time so a background job does
    not depend on the writing transaction.
    """

    id: str
    name: str
    description: str | None = None
    price: float | None = None
    component_type: ComponentType | None = None
    category_id: str | None = None
    image_urls: list[str] = Field(default_factory=list)

    def text_fields(self) -> dict[str, str]:
        """Non-blank text fields in weighting order (name, description, component_type)."""

        values = {
            "name": self.name,
            "description": self.description,
            "component_type": self.component_type.value if self.component_type else None,
        }
        return {key: value.strip() for key, value in values.items() if value and value.strip()}

    @property
    def searchable_text(self) -> str:
        return " ".join(self.text_fields().values())


class ProductListResponse(BaseSchema):
    items: list[ProductResponse]
    total: int
    page: int
    page_size: int
