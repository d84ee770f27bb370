from datetime import datetime

from pydantic import Field, field_validator

from .task import CamelModel


class CategoryIn(CamelModel):
    name: str = Field(..., max_length=100)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Category name is required")
        return value


class CategoryResponse(CamelModel):
    id: int
    name: str
    user_id: int
    created_at: datetime
