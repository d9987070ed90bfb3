"""Tenant, membership and invitation API routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from app.db.models import Invitation
from app.dependencies import CurrentPrincipal, DbSession, Invitations
from app.tenants.schemas import (
    InvitationCreate,
    InvitationResponse,
    InvitationValidation,
    MemberAdd,
    MemberResponse,
    MemberRoleUpdate,
    MessageResponse,
    TenantCreate,
    TenantResponse,
    TenantUpdate,
    TenantWithRoleResponse,
)
from app.tenants.service import TenantService

router = APIRouter()


def get_service(db: DbSession) -> TenantService:
    """Get tenant service dependency."""
    return TenantService(db)


Tenants = Annotated[TenantService, Depends(get_service)]


def _invitation_response(invitation: Invitation) -> InvitationResponse:
    return InvitationResponse(
        id=invitation.id,
        email=invitation.email,
        role=invitation.role,
        accepted=invitation.accepted,
        tenant_id=invitation.tenant_id,
        invited_by=invitation.invited_by,
        invited_by_name=invitation.inviter_display_name(),
        created_at=invitation.created_at,
        expires_at=invitation.expires_at,
    )


# --- Public ---


@router.get("/invitations/validate/{token}", response_model=InvitationValidation)
async def validate_invitation(token: str, invitations: Invitations):
    """Show invitation details before acceptance (no authentication).

    Args:
        token: Invitation token from the emailed link.
        invitations: Invitation service.

    Returns:
        InvitationValidation: Invitation details.
    """
    invitation = invitations.get_invitation_by_token(token)
    return InvitationValidation(
        email=invitation.email,
        role=invitation.role,
        tenant_id=invitation.tenant_id,
        tenant_name=invitation.tenant.name,
        tenant_slug=invitation.tenant.slug,
        invited_by_name=invitation.inviter_display_name(),
        expires_at=invitation.expires_at,
    )


# --- Tenants ---


@router.post("", response_model=TenantResponse, status_code=status.HTTP_201_CREATED)
async def create_tenant(data: TenantCreate, service: Tenants, principal: CurrentPrincipal):
    """Create a tenant; the caller becomes its OWNER."""
    return service.create_tenant(name=data.name, slug=data.slug, creator_id=principal.user_id)


@router.get("", response_model=list[TenantWithRoleResponse])
async def list_tenants(service: Tenants, principal: CurrentPrincipal):
    """List the caller's tenants, newest first."""
    return [
        TenantWithRoleResponse.from_item(item) for item in service.list_tenants(principal.user_id)
    ]


@router.get("/{tenant_id}", response_model=TenantWithRoleResponse)
async def get_tenant(tenant_id: str, service: Tenants, principal: CurrentPrincipal):
    """Get a tenant the caller belongs to."""
    return TenantWithRoleResponse.from_item(service.get_tenant(tenant_id, principal.user_id))


@router.patch("/{tenant_id}", response_model=TenantResponse)
async def update_tenant(
    tenant_id: str,
    data: TenantUpdate,
    service: Tenants,
    principal: CurrentPrincipal,
):
    """Update tenant name and/or slug (OWNER or ADMIN).

    Args:
        tenant_id: Tenant ID.
        data: Update data.
        service: Tenant service.
        principal: Authenticated caller.

    Returns:
        TenantResponse: Updated tenant.
    """
    return service.update_tenant(tenant_id, principal.user_id, name=data.name, slug=data.slug)


@router.delete("/{tenant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tenant(tenant_id: str, service: Tenants, principal: CurrentPrincipal):
    """Delete a tenant with its memberships and invitations (OWNER only)."""
    service.delete_tenant(tenant_id, principal.user_id)


# --- Members ---


@router.get("/{tenant_id}/users", response_model=list[MemberResponse])
async def list_members(tenant_id: str, service: Tenants, principal: CurrentPrincipal):
    """List members of a tenant, oldest first."""
    return service.list_members(tenant_id, principal.user_id)


@router.post(
    "/{tenant_id}/users", response_model=MemberResponse, status_code=status.HTTP_201_CREATED
)
async def add_member(
    tenant_id: str,
    data: MemberAdd,
    service: Tenants,
    principal: CurrentPrincipal,
):
    """Add an existing user to the tenant (OWNER or ADMIN)."""
    return service.add_member(tenant_id, principal.user_id, data.user_id, data.role)


@router.patch("/{tenant_id}/users/{user_id}/role", response_model=MemberResponse)
async def update_member_role(
    tenant_id: str,
    user_id: str,
    data: MemberRoleUpdate,
    service: Tenants,
    principal: CurrentPrincipal,
):
    """Change a member's role (OWNER or ADMIN; never to or from OWNER)."""
    return service.update_member_role(tenant_id, principal.user_id, user_id, data.role)


@router.delete("/{tenant_id}/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    tenant_id: str,
    user_id: str,
    service: Tenants,
    principal: CurrentPrincipal,
):
    """Remove a member from the tenant (OWNER or ADMIN; never the OWNER)."""
    service.remove_member(tenant_id, principal.user_id, user_id)


# --- Invitations ---


@router.post(
    "/{tenant_id}/invitations",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_invitation(
    tenant_id: str,
    data: InvitationCreate,
    invitations: Invitations,
    principal: CurrentPrincipal,
):
    """Invite someone to the tenant by email.

    Args:
        tenant_id: Tenant ID.
        data: Invitee email and role.
        invitations: Invitation service.
        principal: Authenticated caller.

    Returns:
        InvitationResponse: Created invitation.
    """
    invitation = invitations.create_invitation(
        tenant_id=tenant_id, email=data.email, role=data.role, invited_by=principal.user_id
    )
    return _invitation_response(invitation)


@router.get("/{tenant_id}/invitations", response_model=list[InvitationResponse])
async def list_invitations(tenant_id: str, invitations: Invitations, principal: CurrentPrincipal):
    """List pending invitations of the tenant (OWNER or ADMIN)."""
    return [
        _invitation_response(invitation)
        for invitation in invitations.list_invitations(tenant_id, principal.user_id)
    ]


@router.delete("/{tenant_id}/invitations/{invitation_id}", response_model=MessageResponse)
async def cancel_invitation(
    tenant_id: str,
    invitation_id: str,
    invitations: Invitations,
    principal: CurrentPrincipal,
):
    """Cancel a pending invitation (OWNER or ADMIN)."""
    invitations.cancel_invitation(tenant_id, invitation_id, principal.user_id)
    return MessageResponse(message="Invitation cancelled")
