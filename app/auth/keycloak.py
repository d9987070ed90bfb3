"""Keycloak access token verification and admin API client."""

import logging
import threading
import time
from dataclasses import dataclass

import httpx
from jose import JWTError, jwt

from app.config import Settings
from app.exceptions import IdentityProviderError, InvalidTokenError

logger = logging.getLogger(__name__)

# Keycloak signs access tokens with RS256
ALGORITHMS = ["RS256"]

# Unknown key IDs trigger a JWKS refetch at most this often
MIN_JWKS_REFRESH_SECONDS = 10.0


@dataclass
class KeycloakClaims:
    """Identity claims extracted from a verified Keycloak access token.

    Attributes:
        sub: Keycloak user ID.
        email: Email, or preferred_username when email is absent.
        first_name: given_name claim.
        last_name: family_name claim.
        tenant_id: Custom tenantId claim, when the realm maps one.
    """

    sub: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    tenant_id: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "KeycloakClaims":
        """Build claims from a decoded token payload.

        Raises:
            InvalidTokenError: If sub or email is missing.
        """
        sub = payload.get("sub")
        email = payload.get("email") or payload.get("preferred_username")
        if not sub or not email:
            logger.error("Invalid Keycloak token: missing sub or email")
            raise InvalidTokenError("Invalid token: missing required claims")

        return cls(
            sub=sub,
            email=email,
            first_name=payload.get("given_name"),
            last_name=payload.get("family_name"),
            tenant_id=payload.get("tenantId"),
        )


class KeycloakTokenVerifier:
    """Verify RS256 access tokens against the realm's JWKS.

    The key set is fetched lazily and cached; a token signed with an unknown
    key ID forces a refetch so key rotation is picked up.
    """

    def __init__(
        self,
        jwks_uri: str,
        issuer: str,
        audience: str,
        cache_seconds: int = 3600,
    ):
        self.jwks_uri = jwks_uri
        self.issuer = issuer
        self.audience = audience
        self.cache_seconds = cache_seconds
        self._jwks: dict | None = None
        self._fetched_at = 0.0
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "KeycloakTokenVerifier":
        """Create a verifier for the configured realm."""
        return cls(
            jwks_uri=settings.resolved_jwks_uri,
            issuer=settings.keycloak_issuer,
            audience=settings.keycloak_audience,
            cache_seconds=settings.keycloak_jwks_cache_seconds,
        )

    def _fetch_jwks(self) -> dict:
        try:
            response = httpx.get(self.jwks_uri, timeout=10.0)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"JWKS endpoint returned HTTP {e.response.status_code}")
            raise IdentityProviderError() from e
        except httpx.RequestError as e:
            logger.error(f"Failed to fetch JWKS from {self.jwks_uri}: {e}")
            raise IdentityProviderError() from e
        return response.json()

    def get_jwks(self, force: bool = False) -> dict:
        """Get the cached key set, refetching when stale or forced.

        Args:
            force: Refetch even if the cache is fresh (rate limited).

        Returns:
            dict: JWKS document.
        """
        with self._lock:
            age = time.monotonic() - self._fetched_at
            stale = self._jwks is None or age > self.cache_seconds
            if stale or (force and age > MIN_JWKS_REFRESH_SECONDS):
                self._jwks = self._fetch_jwks()
                self._fetched_at = time.monotonic()
            return self._jwks

    @staticmethod
    def _find_key(jwks: dict, kid: str | None) -> dict | None:
        for key in jwks.get("keys", []):
            if key.get("kid") == kid:
                return key
        return None

    def decode(self, token: str) -> KeycloakClaims:
        """Verify a token and extract its claims.

        Args:
            token: Raw bearer token.

        Returns:
            KeycloakClaims: Verified claims.

        Raises:
            InvalidTokenError: If the token is malformed, expired, or signed
                by an unknown key, or has the wrong issuer or audience.
            IdentityProviderError: If the key set cannot be fetched.
        """
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise InvalidTokenError() from e

        kid = header.get("kid")
        key = self._find_key(self.get_jwks(), kid)
        if key is None:
            key = self._find_key(self.get_jwks(force=True), kid)
        if key is None:
            logger.warning(f"Token signed with unknown key ID {kid}")
            raise InvalidTokenError()

        try:
            payload = jwt.decode(
                token,
                key,
                algorithms=ALGORITHMS,
                audience=self.audience,
                issuer=self.issuer,
            )
        except JWTError as e:
            raise InvalidTokenError() from e

        return KeycloakClaims.from_payload(payload)


class KeycloakAdminClient:
    """Minimal Keycloak admin REST client using client credentials."""

    def __init__(
        self,
        server_url: str,
        realm: str,
        client_id: str,
        client_secret: str,
        timeout: float = 10.0,
    ):
        self.server_url = server_url.rstrip("/")
        self.realm = realm
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "KeycloakAdminClient":
        """Create an admin client for the configured realm."""
        return cls(
            server_url=settings.keycloak_auth_server_url,
            realm=settings.keycloak_realm,
            client_id=settings.keycloak_client_id,
            client_secret=settings.keycloak_client_secret,
        )

    def is_configured(self) -> bool:
        """Check whether admin credentials are available."""
        return bool(self.server_url and self.realm and self.client_id and self.client_secret)

    def _get_admin_token(self) -> str:
        try:
            response = httpx.post(
                f"{self.server_url}/realms/{self.realm}/protocol/openid-connect/token",
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise IdentityProviderError(f"Keycloak admin authentication failed: {e}") from e
        return response.json()["access_token"]

    def send_reset_password(self, keycloak_id: str) -> None:
        """Ask Keycloak to email the user an UPDATE_PASSWORD action link.

        Args:
            keycloak_id: Keycloak user ID.

        Raises:
            IdentityProviderError: If Keycloak rejects or cannot be reached.
        """
        token = self._get_admin_token()
        try:
            response = httpx.put(
                f"{self.server_url}/admin/realms/{self.realm}/users/{keycloak_id}"
                "/execute-actions-email",
                json=["UPDATE_PASSWORD"],
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise IdentityProviderError(f"Keycloak execute-actions-email failed: {e}") from e

        logger.info(f"Password reset email requested for Keycloak user {keycloak_id}")
