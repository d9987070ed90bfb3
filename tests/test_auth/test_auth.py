"""Tests for authentication module."""

import asyncio
import re
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.auth.keycloak import KeycloakClaims
from app.auth.service import (
    PASSWORD_RESET_MESSAGE,
    AuthService,
    KeycloakSyncService,
    generate_workspace_name,
    generate_workspace_slug,
)
from app.db.models import Invitation, Tenant, TenantRole, TenantUser, User
from app.exceptions import (
    IdentityProviderError,
    TenantSlugAlreadyExistsError,
    UserEmailAlreadyExistsError,
)
from app.tenants.repository import TenantRepository
from app.users.repository import UserRepository


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def running_on_event_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


class TestWorkspaceHelpers:
    """Tests for automatic workspace naming."""

    def test_workspace_name_variants(self):
        """Test names fall back from full name to email to a default."""
        assert generate_workspace_name("Jane", "Doe", "j@x.com") == "Jane Doe's Workspace"
        assert generate_workspace_name("Jane", None, "j@x.com") == "Jane's Workspace"
        assert generate_workspace_name(None, None, "jdoe@x.com") == "jdoe's Workspace"
        assert generate_workspace_name(None, None, None) == "My Workspace"

    def test_workspace_slug(self):
        """Test slugs come from the email local part plus a random suffix."""
        slug = generate_workspace_slug("Jane.Doe+tag@example.com")
        assert re.fullmatch(r"jane-doe-tag-[a-z0-9]{6}", slug)

    def test_workspace_slug_fallback_and_length(self):
        """Test odd local parts still give valid slugs within 50 characters."""
        assert re.fullmatch(r"workspace-[a-z0-9]{6}", generate_workspace_slug("___@example.com"))
        long_slug = generate_workspace_slug("a" * 80 + "@example.com")
        assert len(long_slug) <= 50
        assert re.fullmatch(r"^[a-z0-9]+(?:-[a-z0-9]+)*$", long_slug)


class TestKeycloakSync:
    """Tests for KeycloakSyncService."""

    def test_creates_new_user(self, db: Session):
        """Test an unknown identity creates a linked local user."""
        user = KeycloakSyncService(db).sync_user("kc-1", "New@Example.com", "New", "Person")

        assert user.email == "new@example.com"
        assert user.keycloak_id == "kc-1"
        assert user.first_name == "New"

    def test_links_invited_user(self, db: Session, create_user):
        """Test a user created by an invitation is linked on first login."""
        invited = create_user("invitee@example.com")

        user = KeycloakSyncService(db).sync_user("kc-2", "invitee@example.com", "In", "Vitee")

        assert user.id == invited.id
        assert user.keycloak_id == "kc-2"
        assert db.query(User).count() == 1

    def test_updates_email_and_fills_empty_names(self, db: Session, create_user):
        """Test email follows Keycloak while existing names are kept."""
        create_user("old@example.com", first_name="Local", keycloak_id="kc-3")

        user = KeycloakSyncService(db).sync_user("kc-3", "new@example.com", "Remote", "Surname")

        assert user.email == "new@example.com"
        assert user.first_name == "Local"
        assert user.last_name == "Surname"

    def test_auto_tenant_for_new_user(self, db: Session):
        """Test a user without memberships gets an owned workspace."""
        user, tenant_id = KeycloakSyncService(db).sync_user_with_auto_tenant(
            "kc-4", "jane@example.com", "Jane", "Doe"
        )

        tenant = db.query(Tenant).filter(Tenant.id == tenant_id).one()
        assert tenant.name == "Jane Doe's Workspace"
        assert tenant.slug.startswith("jane-")
        assert TenantRepository(db).get_membership(user.id, tenant_id).role == TenantRole.OWNER

    def test_auto_tenant_prefers_owned(
        self, db: Session, owner: User, tenant: Tenant, create_user, create_membership
    ):
        """Test an owned tenant wins over earlier memberships."""
        other_owner = create_user("boss@example.com")
        earlier = TenantRepository(db).create_tenant("Earlier", "earlier", other_owner.id)
        db.query(TenantUser).filter(TenantUser.user_id == owner.id).delete()
        db.commit()
        create_membership(owner, earlier, TenantRole.MEMBER)
        create_membership(owner, tenant, TenantRole.OWNER)

        _, tenant_id = KeycloakSyncService(db).sync_user_with_auto_tenant(
            "kc-5", owner.email
        )

        assert tenant_id == tenant.id

    def test_auto_tenant_uses_earliest_membership(
        self, db: Session, tenant: Tenant, member: User
    ):
        """Test a non-owner reuses their existing membership."""
        tenants_before = db.query(Tenant).count()

        _, tenant_id = KeycloakSyncService(db).sync_user_with_auto_tenant("kc-6", member.email)

        assert tenant_id == tenant.id
        assert db.query(Tenant).count() == tenants_before

    def test_auto_tenant_retries_slug_collision(self, db: Session):
        """Test a colliding random slug is retried."""
        real_create = TenantRepository.create_tenant
        calls = []

        def flaky_create(self, name, slug, creator_user_id):
            calls.append(slug)
            if len(calls) == 1:
                raise TenantSlugAlreadyExistsError(slug)
            return real_create(self, name, slug, creator_user_id)

        with patch.object(TenantRepository, "create_tenant", flaky_create):
            _, tenant_id = KeycloakSyncService(db).sync_user_with_auto_tenant(
                "kc-7", "retry@example.com"
            )

        assert len(calls) == 2
        assert db.query(Tenant).filter(Tenant.id == tenant_id).one().slug == calls[1]

    def test_email_taken_by_another_user(self, db: Session, create_user):
        """Test a Keycloak email held by another local user is a conflict."""
        linked = create_user("alice@example.com", keycloak_id="kc-8")
        create_user("invited@example.com")

        with pytest.raises(UserEmailAlreadyExistsError):
            KeycloakSyncService(db).sync_user("kc-8", "Invited@example.com")

        db.refresh(linked)
        assert linked.email == "alice@example.com"

    def test_unique_violation_on_update_is_conflict(self, db: Session, create_user):
        """Test a duplicate email missed by the lookup is rolled back as a conflict."""
        linked = create_user("alice@example.com", keycloak_id="kc-9")
        create_user("invited@example.com")

        with patch.object(UserRepository, "find_by_email", return_value=None):
            with pytest.raises(UserEmailAlreadyExistsError):
                KeycloakSyncService(db).sync_user("kc-9", "invited@example.com")

        # The session is usable again after the failed commit
        user = KeycloakSyncService(db).sync_user("kc-9", "alice@example.com")
        assert user.id == linked.id
        assert user.email == "alice@example.com"

    def test_concurrent_first_login_reuses_user(self, db: Session, create_user):
        """Test losing a first-login race returns the user created by the winner."""
        winner = create_user("racer@example.com", keycloak_id="kc-15")
        real_find = UserRepository.find_by_keycloak_id
        lookups = []

        def late_find(self, keycloak_id):
            lookups.append(keycloak_id)
            return None if len(lookups) == 1 else real_find(self, keycloak_id)

        with (
            patch.object(UserRepository, "find_by_keycloak_id", late_find),
            patch.object(UserRepository, "find_by_email", return_value=None),
        ):
            user = KeycloakSyncService(db).sync_user("kc-15", "racer@example.com")

        assert user.id == winner.id
        assert len(lookups) == 2
        assert db.query(User).count() == 1

    def test_create_conflict_with_other_identity(self, db: Session, create_user):
        """Test a create colliding with another identity's email is a conflict."""
        create_user("shared@example.com", keycloak_id="kc-16")

        with patch.object(UserRepository, "find_by_email", return_value=None):
            with pytest.raises(UserEmailAlreadyExistsError):
                KeycloakSyncService(db).sync_user("kc-17", "shared@example.com")

        assert db.query(User).count() == 1


class TestCurrentPrincipal:
    """Tests for resolving bearer tokens to a principal."""

    def test_invalid_token(self, use_tokens):
        """Test an unverifiable token is rejected."""
        client = use_tokens({})

        response = client.get("/api/auth/me", headers=bearer("bad"))

        assert response.status_code == 401
        assert response.json()["code"] == "InvalidTokenError"

    def test_first_login_creates_workspace(self, use_tokens, db: Session):
        """Test a first login without a tenant claim gets a workspace."""
        client = use_tokens(
            {"t": KeycloakClaims(sub="kc-10", email="first@example.com", first_name="First")}
        )

        response = client.get("/api/auth/me", headers=bearer("t"))

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["email"] == "first@example.com"
        assert len(data["tenants"]) == 1
        assert data["tenants"][0]["name"] == "First's Workspace"
        assert data["current_tenant_id"] == data["tenants"][0]["id"]

    def test_tenant_claim_requires_membership(
        self, use_tokens, tenant: Tenant, outsider: User
    ):
        """Test a tenant claim the user cannot access is rejected."""
        client = use_tokens(
            {"t": KeycloakClaims(sub="kc-11", email=outsider.email, tenant_id=tenant.id)}
        )

        response = client.get("/api/auth/me", headers=bearer("t"))

        assert response.status_code == 401
        assert response.json()["code"] == "TenantAccessRevokedError"

    def test_tenant_claim_with_membership(self, use_tokens, tenant: Tenant, member: User):
        """Test a valid tenant claim becomes the active tenant."""
        client = use_tokens(
            {"t": KeycloakClaims(sub="kc-12", email=member.email, tenant_id=tenant.id)}
        )

        response = client.get("/api/auth/me", headers=bearer("t"))

        assert response.status_code == 200
        assert response.json()["current_tenant_id"] == tenant.id

    def test_tenant_header_switches(
        self, use_tokens, db: Session, owner: User, tenant: Tenant, create_user
    ):
        """Test X-Tenant-ID selects another tenant the user belongs to."""
        other_owner = create_user("boss@example.com")
        other = TenantRepository(db).create_tenant("Other", "other", other_owner.id)
        TenantRepository(db).add_member(owner.id, other.id, TenantRole.MEMBER)
        client = use_tokens({"t": KeycloakClaims(sub="kc-13", email=owner.email)})

        response = client.get("/api/auth/me", headers={**bearer("t"), "X-Tenant-ID": other.id})

        assert response.status_code == 200
        assert response.json()["current_tenant_id"] == other.id

    def test_tenant_header_without_access(
        self, use_tokens, db: Session, owner: User, tenant: Tenant, create_user
    ):
        """Test X-Tenant-ID for a foreign tenant is forbidden."""
        other_owner = create_user("boss@example.com")
        other = TenantRepository(db).create_tenant("Other", "other", other_owner.id)
        client = use_tokens({"t": KeycloakClaims(sub="kc-14", email=owner.email)})

        response = client.get("/api/auth/me", headers={**bearer("t"), "X-Tenant-ID": other.id})

        assert response.status_code == 403
        assert response.json()["code"] == "UserNoTenantAccessError"

    def test_keycloak_email_taken_is_conflict(self, use_tokens, create_user):
        """Test a Keycloak email owned by another local user returns 409, not 500."""
        create_user("alice@example.com", keycloak_id="kc-a")
        create_user("invited@example.com")
        client = use_tokens(
            {
                "moved": KeycloakClaims(sub="kc-a", email="invited@example.com"),
                "same": KeycloakClaims(sub="kc-a", email="alice@example.com"),
            }
        )

        response = client.get("/api/auth/me", headers=bearer("moved"))
        follow_up = client.get("/api/auth/me", headers=bearer("same"))

        assert response.status_code == 409
        assert response.json()["code"] == "UserEmailAlreadyExistsError"
        assert follow_up.status_code == 200
        assert follow_up.json()["user"]["email"] == "alice@example.com"


class TestAcceptInvitationRoute:
    """Tests for POST /api/auth/accept-invitation."""

    def test_accept(self, client: TestClient, login, db: Session, owner: User, tenant: Tenant):
        """Test acceptance creates the user and points them at Keycloak."""
        login(owner, tenant).post(
            f"/api/tenants/{tenant.id}/invitations",
            json={"email": "invitee@example.com", "role": "ADMIN"},
        )
        token = db.query(Invitation).one().token

        response = client.post("/api/auth/accept-invitation", json={"token": token})

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["email"] == "invitee@example.com"
        assert data["tenant"] == {"id": tenant.id, "name": "Test Company"}
        assert data["role"] == "ADMIN"
        assert data["redirect_to_keycloak"] is True
        assert data["keycloak_login_hint"] == "invitee@example.com"

        again = client.post("/api/auth/accept-invitation", json={"token": token})
        assert again.status_code == 400
        assert again.json()["code"] == "InvitationAlreadyAcceptedError"

    def test_accept_unknown(self, client: TestClient):
        """Test unknown tokens are not found."""
        response = client.post("/api/auth/accept-invitation", json={"token": "nope"})

        assert response.status_code == 404

    def test_accept_empty_token(self, client: TestClient):
        """Test an empty token fails validation."""
        response = client.post("/api/auth/accept-invitation", json={"token": ""})

        assert response.status_code == 422


class TestPasswordReset:
    """Tests for password reset requests."""

    def test_unknown_email_same_message(self, client: TestClient):
        """Test the response does not reveal whether the account exists."""
        response = client.post("/api/auth/reset-password", json={"email": "ghost@example.com"})

        assert response.status_code == 200
        assert response.json() == {"message": PASSWORD_RESET_MESSAGE}

    def test_linked_user_triggers_keycloak(self, db: Session, create_user):
        """Test a Keycloak-linked user gets the reset email."""
        create_user("linked@example.com", keycloak_id="kc-20")
        admin_client = MagicMock()
        admin_client.is_configured.return_value = True

        message = AuthService(db, admin_client).request_password_reset("Linked@example.com")

        assert message == PASSWORD_RESET_MESSAGE
        admin_client.send_reset_password.assert_called_once_with("kc-20")

    def test_unlinked_user_skips_keycloak(self, db: Session, create_user):
        """Test users never seen by Keycloak are skipped silently."""
        create_user("unlinked@example.com")
        admin_client = MagicMock()

        message = AuthService(db, admin_client).request_password_reset("unlinked@example.com")

        assert message == PASSWORD_RESET_MESSAGE
        admin_client.send_reset_password.assert_not_called()

    def test_keycloak_failure_same_message(self, db: Session, create_user):
        """Test identity provider failures are not surfaced."""
        create_user("linked@example.com", keycloak_id="kc-21")
        admin_client = MagicMock()
        admin_client.is_configured.return_value = True
        admin_client.send_reset_password.side_effect = IdentityProviderError()

        message = AuthService(db, admin_client).request_password_reset("linked@example.com")

        assert message == PASSWORD_RESET_MESSAGE

    def test_route_calls_keycloak_off_event_loop(self, client: TestClient, create_user):
        """Test the blocking Keycloak call runs in a worker thread."""
        from app.dependencies import get_keycloak_admin
        from app.main import app

        create_user("linked@example.com", keycloak_id="kc-22")
        on_loop = []
        admin_client = MagicMock()
        admin_client.is_configured.return_value = True
        admin_client.send_reset_password.side_effect = lambda _: on_loop.append(
            running_on_event_loop()
        )
        app.dependency_overrides[get_keycloak_admin] = lambda: admin_client

        response = client.post("/api/auth/reset-password", json={"email": "linked@example.com"})

        assert response.status_code == 200
        assert on_loop == [False]
