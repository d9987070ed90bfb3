"""Pydantic schemas for the current user's profile."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.db.models import TenantRole


class UserResponse(BaseModel):
    """Schema for user response."""

    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    keycloak_id: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserUpdate(BaseModel):
    """Schema for updating the current user's profile."""

    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)
    email: EmailStr | None = None

    @field_validator("email")
    @classmethod
    def email_not_null(cls, v: str | None) -> str:
        """Email may be omitted but never cleared."""
        if v is None:
            raise ValueError("Email cannot be null")
        return v


class SwitchTenant(BaseModel):
    """Schema for selecting the active tenant."""

    tenant_id: str


class SwitchTenantResponse(BaseModel):
    """Tenant to send as ``X-Tenant-ID`` on subsequent requests."""

    tenant_id: str
    tenant_name: str
    role: TenantRole
    message: str
