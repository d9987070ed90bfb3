"""Authentication API routes.

Keycloak issues and refreshes all tokens; these routes only cover invitation
acceptance, password reset requests and the current session.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.auth.schemas import (
    AcceptedTenant,
    AcceptedUser,
    AcceptInvitation,
    AcceptInvitationResponse,
    MeResponse,
    MessageResponse,
    ResetPasswordRequest,
)
from app.auth.service import AuthService
from app.dependencies import CurrentPrincipal, DbSession, Invitations, KeycloakAdmin
from app.tenants.repository import TenantRepository
from app.tenants.schemas import TenantWithRoleResponse
from app.users.repository import UserRepository
from app.users.schemas import UserResponse

router = APIRouter()


def get_service(db: DbSession, keycloak_admin: KeycloakAdmin) -> AuthService:
    """Get auth service dependency."""
    return AuthService(db, keycloak_admin)


@router.post("/accept-invitation", response_model=AcceptInvitationResponse)
async def accept_invitation(data: AcceptInvitation, invitations: Invitations):
    """Accept an invitation and link the invitee to its tenant.

    The invitee must then log in via Keycloak to receive tokens.

    Args:
        data: Invitation token.
        invitations: Invitation service.

    Returns:
        AcceptInvitationResponse: Joined tenant, granted role and login hint.
    """
    accepted = invitations.accept_invitation(data.token)
    return AcceptInvitationResponse(
        message=(
            "Invitation accepted successfully. Please log in via Keycloak to access the tenant."
        ),
        user=AcceptedUser(
            email=accepted.user.email,
            first_name=accepted.user.first_name,
            last_name=accepted.user.last_name,
        ),
        tenant=AcceptedTenant(id=accepted.tenant.id, name=accepted.tenant.name),
        role=accepted.role,
        keycloak_login_hint=accepted.user.email,
    )


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(
    data: ResetPasswordRequest,
    service: Annotated[AuthService, Depends(get_service)],
):
    """Request a Keycloak password reset email.

    The response never reveals whether the account exists.
    """
    return MessageResponse(message=service.request_password_reset(data.email))


@router.get("/me", response_model=MeResponse)
async def me(principal: CurrentPrincipal, db: DbSession):
    """Get the current user, active tenant and memberships."""
    user = UserRepository(db).find_by_id(principal.user_id)
    tenants = TenantRepository(db).list_tenants_for_user(principal.user_id)
    return MeResponse(
        user=UserResponse.model_validate(user),
        current_tenant_id=principal.tenant_id,
        tenants=[TenantWithRoleResponse.from_item(item) for item in tenants],
    )
