"""Lookup and persistence of local user records."""

import logging

from sqlalchemy.orm import Session

from app.db.models import User

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    """Normalize an email address for storage and lookup."""
    return email.strip().lower()


class UserRepository:
    """Repository for users."""

    def __init__(self, db: Session):
        """Initialize user repository.

        Args:
            db: Database session.
        """
        self.db = db

    def find_by_id(self, user_id: str) -> User | None:
        """Get a user by ID."""
        return self.db.query(User).filter(User.id == user_id).first()

    def find_by_email(self, email: str) -> User | None:
        """Get a user by email (case-insensitive)."""
        return self.db.query(User).filter(User.email == normalize_email(email)).first()

    def find_by_keycloak_id(self, keycloak_id: str) -> User | None:
        """Get a user by identity provider subject."""
        return self.db.query(User).filter(User.keycloak_id == keycloak_id).first()

    def create(
        self,
        email: str,
        first_name: str | None = None,
        last_name: str | None = None,
        keycloak_id: str | None = None,
        commit: bool = True,
    ) -> User:
        """Create a user.

        Args:
            email: Email address.
            first_name: Optional first name.
            last_name: Optional last name.
            keycloak_id: Optional identity provider subject.
            commit: Commit immediately; otherwise only flush.

        Returns:
            User: Created user.
        """
        user = User(
            email=normalize_email(email),
            first_name=first_name,
            last_name=last_name,
            keycloak_id=keycloak_id,
        )
        self.db.add(user)
        if commit:
            self.db.commit()
            self.db.refresh(user)
        else:
            self.db.flush()
        return user

    def update(self, user: User, **fields) -> User:
        """Apply field changes to a user and commit.

        Args:
            user: User to update.
            **fields: Column values to set.

        Returns:
            User: Updated user.
        """
        for name, value in fields.items():
            if name == "email" and value is not None:
                value = normalize_email(value)
            setattr(user, name, value)
        self.db.commit()
        self.db.refresh(user)
        return user
