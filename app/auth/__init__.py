"""Authentication module."""

from app.auth.keycloak import KeycloakAdminClient, KeycloakClaims, KeycloakTokenVerifier
from app.auth.service import AuthService, KeycloakSyncService

__all__ = [
    "AuthService",
    "KeycloakSyncService",
    "KeycloakAdminClient",
    "KeycloakClaims",
    "KeycloakTokenVerifier",
]
