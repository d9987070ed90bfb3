"""Database module."""

from app.db.database import SessionLocal, engine, get_db, init_db
from app.db.models import Base, Invitation, Item, Tenant, TenantRole, TenantUser, User

__all__ = [
    "SessionLocal",
    "engine",
    "get_db",
    "init_db",
    "Base",
    "User",
    "Tenant",
    "TenantUser",
    "TenantRole",
    "Invitation",
    "Item",
]
