"""Pydantic schemas for tenant items."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ItemCreate(BaseModel):
    """Schema for creating an item."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None


class ItemUpdate(BaseModel):
    """Schema for updating an item; unset fields are left alone."""

    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None

    @field_validator("name")
    @classmethod
    def name_not_null(cls, v: str | None) -> str:
        """Name may be omitted but never cleared."""
        if v is None:
            raise ValueError("Name cannot be null")
        return v


class ItemResponse(BaseModel):
    """Schema for item response."""

    id: str
    tenant_id: str
    name: str
    description: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ItemListResponse(BaseModel):
    """Schema for paginated item list response."""

    items: list[ItemResponse]
    total: int
    page: int
    page_size: int
    pages: int
