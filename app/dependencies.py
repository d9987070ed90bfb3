"""Dependency injection for FastAPI."""

import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.auth.keycloak import KeycloakAdminClient, KeycloakTokenVerifier
from app.auth.service import KeycloakSyncService
from app.config import Settings, get_settings
from app.db.database import get_db
from app.email.service import EmailService
from app.exceptions import AuthenticationError, TenantAccessRevokedError, UserNoTenantAccessError
from app.invitations.service import InvitationService
from app.tenants.repository import TenantRepository

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller and the tenant the request acts in.

    Attributes:
        user_id: Local user ID (not the Keycloak ID).
        tenant_id: Active tenant ID.
        email: User's email.
    """

    user_id: str
    tenant_id: str
    email: str


def get_email_service(request: Request) -> EmailService:
    """Get the process-wide email service built at startup."""
    return request.app.state.email_service


def get_token_verifier(request: Request) -> KeycloakTokenVerifier:
    """Get the process-wide Keycloak token verifier built at startup."""
    return request.app.state.token_verifier


def get_keycloak_admin(request: Request) -> KeycloakAdminClient:
    """Get the process-wide Keycloak admin client built at startup."""
    return request.app.state.keycloak_admin


def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
    verifier: Annotated[KeycloakTokenVerifier, Depends(get_token_verifier)],
    x_tenant_id: Annotated[str | None, Header()] = None,
) -> Principal:
    """Resolve the bearer token to a local user and active tenant.

    A token with a tenantId claim must name a tenant the user belongs to.
    A token without one falls back to the user's own tenant, creating a
    workspace on first login. An ``X-Tenant-ID`` header switches to another
    tenant the user belongs to.

    Args:
        credentials: HTTP Bearer token credentials.
        db: Database session.
        verifier: Keycloak token verifier.
        x_tenant_id: Optional tenant selected by the client.

    Returns:
        Principal: The authenticated caller.

    Raises:
        AuthenticationError: If the token is missing or invalid.
        TenantAccessRevokedError: If the token's tenant is not accessible.
        UserNoTenantAccessError: If the selected tenant is not accessible.
    """
    if credentials is None:
        raise AuthenticationError()

    claims = verifier.decode(credentials.credentials)
    sync = KeycloakSyncService(db)
    tenants = TenantRepository(db)

    if claims.tenant_id:
        user = sync.sync_user(claims.sub, claims.email, claims.first_name, claims.last_name)
        if not tenants.get_membership(user.id, claims.tenant_id):
            logger.warning(
                f"User {claims.email} ({user.id}) does not have access to tenant {claims.tenant_id}"
            )
            raise TenantAccessRevokedError()
        tenant_id = claims.tenant_id
    else:
        user, tenant_id = sync.sync_user_with_auto_tenant(
            claims.sub, claims.email, claims.first_name, claims.last_name
        )

    if x_tenant_id and x_tenant_id != tenant_id:
        if not tenants.get_membership(user.id, x_tenant_id):
            logger.warning(f"User {user.id} tried to switch to tenant {x_tenant_id}")
            raise UserNoTenantAccessError(x_tenant_id)
        tenant_id = x_tenant_id

    return Principal(user_id=user.id, tenant_id=tenant_id, email=user.email)


# Type aliases for cleaner dependency injection
DbSession = Annotated[Session, Depends(get_db)]
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
Mailer = Annotated[EmailService, Depends(get_email_service)]
KeycloakAdmin = Annotated[KeycloakAdminClient, Depends(get_keycloak_admin)]


def get_invitation_service(
    db: DbSession,
    mailer: Mailer,
    settings: Annotated[Settings, Depends(get_settings)],
) -> InvitationService:
    """Get invitation service dependency."""
    return InvitationService(
        db,
        mailer,
        invitation_base_url=settings.invitation_base_url,
        expire_hours=settings.invitation_expire_hours,
    )


Invitations = Annotated[InvitationService, Depends(get_invitation_service)]
