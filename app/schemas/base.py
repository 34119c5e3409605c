"""
Base Pydantic schemas
"""

from datetime import datetime
from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """
    Shared config: ORM rows validate directly, strings are stripped and enums
    stay enum members inside the service layer.
    """

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
        use_enum_values=False,
    )


class TimestampSchema(BaseSchema):
    created_at: datetime
    updated_at: datetime
