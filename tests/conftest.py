"""Pytest configuration and fixtures."""

import os
from collections.abc import Callable, Generator
from uuid import uuid4

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["DEBUG"] = "false"
os.environ["ENVIRONMENT"] = "development"
os.environ["INVITATION_BASE_URL"] = "https://app.example.com/accept-invitation"
os.environ["CRON_SECRET_KEY"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth.keycloak import KeycloakClaims
from app.db.models import Base, Tenant, TenantRole, TenantUser, User
from app.dependencies import Principal
from app.exceptions import InvalidTokenError

# Use in-memory SQLite for testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@event.listens_for(engine, "connect")
def _enable_foreign_keys(dbapi_connection, _connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class FakeMailer:
    """Records invitation emails instead of sending them."""

    def __init__(self):
        self.sent: list[dict] = []
        self.succeed = True
        self.error: Exception | None = None

    def send_invitation_email(
        self,
        to_email: str,
        tenant_name: str,
        inviter_name: str,
        invitation_link: str,
        expires_hours: int | None = None,
    ) -> bool:
        if self.error is not None:
            raise self.error
        self.sent.append(
            {
                "to_email": to_email,
                "tenant_name": tenant_name,
                "inviter_name": inviter_name,
                "invitation_link": invitation_link,
                "expires_hours": expires_hours,
            }
        )
        return self.succeed


class FakeVerifier:
    """Maps bearer tokens to claims without any signature checks."""

    def __init__(self, tokens: dict[str, KeycloakClaims]):
        self.tokens = tokens

    def decode(self, token: str) -> KeycloakClaims:
        if token not in self.tokens:
            raise InvalidTokenError()
        return self.tokens[token]


@pytest.fixture
def use_tokens(client: TestClient):
    """Install a fake verifier: ``use_tokens({"token": claims})``."""
    from app.dependencies import get_token_verifier
    from app.main import app

    def _use(tokens: dict[str, KeycloakClaims]) -> TestClient:
        app.dependency_overrides[get_token_verifier] = lambda: FakeVerifier(tokens)
        return client

    return _use


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def mailer() -> FakeMailer:
    """Create a recording mailer."""
    return FakeMailer()


@pytest.fixture(scope="function")
def client(db: Session, mailer: FakeMailer) -> Generator[TestClient, None, None]:
    """Create a test client with database and mailer overrides."""
    # Import here to ensure env vars are set
    from app.dependencies import get_db, get_email_service
    from app.main import app

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_email_service] = lambda: mailer
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_user(db: Session, email: str, first_name: str | None = None, **kwargs) -> User:
    """Create and persist a user."""
    user = User(id=str(uuid4()), email=email, first_name=first_name, **kwargs)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def add_membership(db: Session, user: User, tenant: Tenant, role: TenantRole) -> TenantUser:
    """Create and persist a membership."""
    membership = TenantUser(user_id=user.id, tenant_id=tenant.id, role=role)
    db.add(membership)
    db.commit()
    db.refresh(membership)
    return membership


@pytest.fixture
def owner(db: Session) -> User:
    """Create the tenant owner."""
    return make_user(db, "owner@example.com", first_name="Olivia", last_name="Owner")


@pytest.fixture
def tenant(db: Session, owner: User) -> Tenant:
    """Create a test tenant owned by ``owner``."""
    tenant = Tenant(id=str(uuid4()), name="Test Company", slug="test-company")
    db.add(tenant)
    db.commit()
    add_membership(db, owner, tenant, TenantRole.OWNER)
    db.refresh(tenant)
    return tenant


@pytest.fixture
def admin(db: Session, tenant: Tenant) -> User:
    """Create an ADMIN of ``tenant``."""
    user = make_user(db, "admin@example.com", first_name="Adam", last_name="Admin")
    add_membership(db, user, tenant, TenantRole.ADMIN)
    return user


@pytest.fixture
def member(db: Session, tenant: Tenant) -> User:
    """Create a MEMBER of ``tenant``."""
    user = make_user(db, "member@example.com", first_name="Mia")
    add_membership(db, user, tenant, TenantRole.MEMBER)
    return user


@pytest.fixture
def outsider(db: Session) -> User:
    """Create a user with no membership in ``tenant``."""
    return make_user(db, "outsider@example.com")


@pytest.fixture
def login(client: TestClient) -> Generator[Callable[..., TestClient], None, None]:
    """Authenticate the test client as a given user.

    Usage: ``login(user, tenant)`` returns the client acting as that user.
    """
    from app.dependencies import get_current_principal
    from app.main import app

    def _login(user: User, tenant: Tenant | None = None) -> TestClient:
        principal = Principal(
            user_id=user.id,
            tenant_id=tenant.id if tenant else "",
            email=user.email,
        )
        app.dependency_overrides[get_current_principal] = lambda: principal
        return client

    yield _login
    app.dependency_overrides.pop(get_current_principal, None)


@pytest.fixture
def create_user(db: Session) -> Callable[..., User]:
    """Factory fixture creating users: ``create_user(email, first_name=None, ...)``."""
    return lambda email, **kwargs: make_user(db, email, **kwargs)


@pytest.fixture
def create_membership(db: Session) -> Callable[[User, Tenant, TenantRole], TenantUser]:
    """Factory fixture creating memberships: ``create_membership(user, tenant, role)``."""
    return lambda user, tenant, role: add_membership(db, user, tenant, role)
