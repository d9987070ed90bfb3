"""SQLAlchemy database models."""

import enum
from datetime import UTC, datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.mysql import CHAR
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys.

    Returns:
        str: UUID as 36-character string.
    """
    return str(uuid4())


def utcnow() -> datetime:
    """Current time as naive UTC, the way timestamps are stored.

    Returns:
        datetime: Naive datetime in UTC.
    """
    return datetime.now(UTC).replace(tzinfo=None)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to a naive datetime read back from the database.

    Args:
        value: Datetime that may lack tzinfo.

    Returns:
        datetime: Timezone-aware datetime.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class TenantRole(str, enum.Enum):
    """Role of a user inside a tenant."""

    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class User(Base):
    """User model.

    Created directly, lazily when an invitation is accepted for an unknown
    email, or on first Keycloak login.

    Attributes:
        id: Primary key UUID.
        email: Unique email address.
        keycloak_id: Identity provider subject, once linked.
        first_name: Optional first name.
        last_name: Optional last name.
        created_at: Creation timestamp.
        updated_at: Last update timestamp.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    keycloak_id: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    # Relationships
    tenant_users: Mapped[list["TenantUser"]] = relationship(
        "TenantUser", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def display_name(self) -> str:
        """Human readable name, falling back to the email address."""
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}".strip()
        return self.first_name or self.last_name or self.email


class Tenant(Base):
    """Tenant model representing an isolated customer workspace.

    Attributes:
        id: Primary key UUID.
        name: Display name.
        slug: Unique URL-friendly identifier.
        created_at: Creation timestamp.
        updated_at: Last update timestamp.
    """

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    # Relationships
    tenant_users: Mapped[list["TenantUser"]] = relationship(
        "TenantUser", back_populates="tenant", cascade="all, delete-orphan"
    )
    invitations: Mapped[list["Invitation"]] = relationship(
        "Invitation", back_populates="tenant", cascade="all, delete-orphan"
    )
    items: Mapped[list["Item"]] = relationship(
        "Item", back_populates="tenant", cascade="all, delete-orphan"
    )

    def owner(self) -> Optional["TenantUser"]:
        """Get the OWNER membership, if any."""
        return next((tu for tu in self.tenant_users if tu.role == TenantRole.OWNER), None)

    def has_owner(self) -> bool:
        """Check whether the tenant still has an OWNER."""
        return self.owner() is not None


class TenantUser(Base):
    """Membership of a user in a tenant with a role.

    Attributes:
        id: Primary key UUID.
        user_id: FK to user.
        tenant_id: FK to tenant.
        role: OWNER, ADMIN or MEMBER.
        created_at: Creation timestamp.
        updated_at: Last update timestamp.
    """

    __tablename__ = "tenant_users"
    __table_args__ = (
        UniqueConstraint("user_id", "tenant_id", name="uq_tenant_user_user_tenant"),
        Index("ix_tenant_users_tenant_id", "tenant_id"),
    )

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(
        CHAR(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    tenant_id: Mapped[str] = mapped_column(
        CHAR(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[TenantRole] = mapped_column(
        Enum(TenantRole, values_callable=lambda x: [e.value for e in x]),
        default=TenantRole.MEMBER,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="tenant_users")
    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="tenant_users")

    @property
    def is_owner(self) -> bool:
        """Check if membership is the tenant OWNER."""
        return self.role == TenantRole.OWNER


class Invitation(Base):
    """Time-boxed, single-use offer of a role in a tenant to an email address.

    The lifecycle is pending -> accepted, with expiry computed from
    ``expires_at`` at read time and cancellation implemented as deletion.

    Attributes:
        id: Primary key UUID.
        email: Invitee email address.
        token: Opaque unique token used in acceptance links.
        role: Role granted on acceptance.
        expires_at: Expiry timestamp (naive UTC).
        accepted: Whether the invitation has been accepted.
        tenant_id: FK to the inviting tenant.
        invited_by: FK to the inviting user.
        created_at: Creation timestamp.
        updated_at: Last update timestamp.
    """

    __tablename__ = "invitations"
    __table_args__ = (
        Index("ix_invitations_tenant_id", "tenant_id"),
        Index("ix_invitations_email", "email"),
    )

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    role: Mapped[TenantRole] = mapped_column(
        Enum(TenantRole, values_callable=lambda x: [e.value for e in x]),
        default=TenantRole.MEMBER,
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    accepted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    tenant_id: Mapped[str] = mapped_column(
        CHAR(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    invited_by: Mapped[str | None] = mapped_column(
        CHAR(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    # Relationships
    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="invitations")
    inviter: Mapped[Optional["User"]] = relationship("User", foreign_keys=[invited_by])

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check if the invitation is past its expiry."""
        now = now or datetime.now(UTC)
        return as_utc(now) > as_utc(self.expires_at)

    def is_valid(self, now: datetime | None = None) -> bool:
        """Check if the invitation can still be accepted."""
        return not self.accepted and not self.is_expired(now)

    def is_pending(self) -> bool:
        """Check if the invitation is not yet accepted, regardless of expiry."""
        return not self.accepted

    def inviter_display_name(self) -> str:
        """Name shown to the invitee for the person who sent the invitation."""
        if self.inviter is None:
            return "Unknown"
        return self.inviter.display_name

    def hours_until_expiration(self, now: datetime | None = None) -> int:
        """Whole hours left before expiry, never negative."""
        now = now or datetime.now(UTC)
        remaining = as_utc(self.expires_at) - as_utc(now)
        return max(0, int(remaining.total_seconds() // 3600))


class Item(Base):
    """Sample tenant-owned record; every read and write is scoped to one tenant.

    Attributes:
        id: Primary key UUID.
        tenant_id: FK to the owning tenant.
        name: Item name.
        description: Optional free text.
        created_at: Creation timestamp.
        updated_at: Last update timestamp.
    """

    __tablename__ = "items"
    __table_args__ = (Index("ix_items_tenant_id", "tenant_id"),)

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    tenant_id: Mapped[str] = mapped_column(
        CHAR(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="items")

    def belongs_to_tenant(self, tenant_id: str) -> bool:
        return self.tenant_id == tenant_id
