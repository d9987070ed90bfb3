"""Pydantic schemas for tenants, memberships and invitations."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.db.models import TenantRole
from app.tenants.repository import TenantWithRole

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


class TenantCreate(BaseModel):
    """Schema for creating a tenant."""

    name: str = Field(..., min_length=2, max_length=100)
    slug: str = Field(..., min_length=2, max_length=50, pattern=SLUG_PATTERN)


class TenantUpdate(BaseModel):
    """Schema for updating a tenant."""

    name: str | None = Field(None, min_length=2, max_length=100)
    slug: str | None = Field(None, min_length=2, max_length=50, pattern=SLUG_PATTERN)


class TenantResponse(BaseModel):
    """Schema for tenant information."""

    id: str
    name: str
    slug: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TenantWithRoleResponse(TenantResponse):
    """Tenant as seen by one of its members."""

    my_role: TenantRole
    member_count: int

    @classmethod
    def from_item(cls, item: TenantWithRole) -> "TenantWithRoleResponse":
        """Build from a directory listing entry."""
        return cls(
            **TenantResponse.model_validate(item.tenant).model_dump(),
            my_role=item.my_role,
            member_count=item.member_count,
        )


class MemberUser(BaseModel):
    """User embedded in a membership."""

    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None

    model_config = ConfigDict(from_attributes=True)


class MemberResponse(BaseModel):
    """Schema for a tenant membership."""

    id: str
    user_id: str
    tenant_id: str
    role: TenantRole
    created_at: datetime
    user: MemberUser | None = None

    model_config = ConfigDict(from_attributes=True)


class MemberAdd(BaseModel):
    """Schema for adding an existing user to a tenant."""

    user_id: str
    role: TenantRole = TenantRole.MEMBER


class MemberRoleUpdate(BaseModel):
    """Schema for changing a member's role."""

    role: TenantRole


class InvitationCreate(BaseModel):
    """Schema for creating an email invitation."""

    email: EmailStr
    role: TenantRole = TenantRole.MEMBER


class InvitationResponse(BaseModel):
    """Schema for invitation list response."""

    id: str
    email: str
    role: TenantRole
    accepted: bool
    tenant_id: str
    invited_by: str | None = None
    invited_by_name: str | None = None
    created_at: datetime
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvitationValidation(BaseModel):
    """Schema for validating an invitation token (public endpoint)."""

    email: str
    role: TenantRole
    tenant_id: str
    tenant_name: str
    tenant_slug: str
    invited_by_name: str
    expires_at: datetime


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
