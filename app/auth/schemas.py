"""Pydantic schemas for authentication."""

from pydantic import BaseModel, EmailStr, Field

from app.db.models import TenantRole
from app.tenants.schemas import TenantWithRoleResponse
from app.users.schemas import UserResponse


class AcceptInvitation(BaseModel):
    """Schema for accepting an invitation."""

    token: str = Field(..., min_length=1, max_length=64)


class AcceptedUser(BaseModel):
    """User record produced by an accepted invitation."""

    email: str
    first_name: str | None = None
    last_name: str | None = None


class AcceptedTenant(BaseModel):
    """Tenant joined through an accepted invitation."""

    id: str
    name: str


class AcceptInvitationResponse(BaseModel):
    """Response for invitation acceptance.

    The API issues no tokens; clients send the user to Keycloak to log in.
    """

    message: str
    user: AcceptedUser
    tenant: AcceptedTenant
    role: TenantRole
    redirect_to_keycloak: bool = True
    keycloak_login_hint: str


class ResetPasswordRequest(BaseModel):
    """Schema for requesting a password reset email."""

    email: EmailStr


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str


class MeResponse(BaseModel):
    """Current user with the active tenant and all memberships."""

    user: UserResponse
    current_tenant_id: str
    tenants: list[TenantWithRoleResponse]
