"""Typed application errors and their HTTP mapping.

Every business-rule violation is raised as an ``AppError`` subclass before
any mutating store call. Each error carries a ``kind`` which decides the
HTTP status returned by the handler registered in ``app.main``.
"""

import enum
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    """Broad category of an application error."""

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    FORBIDDEN = "forbidden"
    INVALID = "invalid"
    UNAUTHORIZED = "unauthorized"
    DEPENDENCY_FAILURE = "dependency_failure"


STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.INVALID: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.DEPENDENCY_FAILURE: status.HTTP_502_BAD_GATEWAY,
}


class AppError(Exception):
    """Base class for errors surfaced to API callers."""

    kind: ErrorKind = ErrorKind.INVALID
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        """HTTP status code for this error."""
        return STATUS_BY_KIND[self.kind]

    @property
    def code(self) -> str:
        """Stable machine-readable error code."""
        return type(self).__name__


class NotFoundError(AppError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Resource not found"


class ConflictError(AppError):
    kind = ErrorKind.CONFLICT
    default_message = "Resource already exists"


class ForbiddenError(AppError):
    kind = ErrorKind.FORBIDDEN
    default_message = "Forbidden"


class InvalidError(AppError):
    kind = ErrorKind.INVALID


class AuthenticationError(AppError):
    kind = ErrorKind.UNAUTHORIZED
    default_message = "Not authenticated"


class DependencyError(AppError):
    kind = ErrorKind.DEPENDENCY_FAILURE
    default_message = "An external service failed"


# --- Tenants ---


class TenantNotFoundError(NotFoundError):
    def __init__(self, tenant_id: str | None = None):
        super().__init__(
            f"Tenant with ID '{tenant_id}' not found" if tenant_id else "Tenant not found"
        )


class TenantSlugAlreadyExistsError(ConflictError):
    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"Tenant with slug '{slug}' already exists")


class TenantAccessDeniedError(ForbiddenError):
    default_message = "You do not have access to this tenant"


class InsufficientTenantPermissionsError(ForbiddenError):
    def __init__(self, required: str):
        super().__init__(f"Only {required} can perform this action")


class UserAlreadyInTenantError(ConflictError):
    default_message = "User is already a member of this tenant"


class UserNotInTenantError(NotFoundError):
    default_message = "User is not a member of this tenant"


class CannotModifyOwnerError(ForbiddenError):
    default_message = "Cannot change or remove OWNER role"


class CannotSetOwnerRoleError(ForbiddenError):
    default_message = "Cannot set user as OWNER. Transfer ownership instead."


# --- Invitations ---


class InvitationNotFoundError(NotFoundError):
    default_message = "Invitation not found"


class InvitationAlreadyAcceptedError(InvalidError):
    default_message = "This invitation has already been accepted"


class InvitationExpiredError(InvalidError):
    default_message = "This invitation has expired"


class UserAlreadyMemberError(ConflictError):
    default_message = "This user is already a member of the tenant"


class PendingInvitationExistsError(ConflictError):
    default_message = "There is already a pending invitation for this email"


class InvitationSendFailedError(DependencyError):
    default_message = "Failed to send invitation email"


class InvitationNotBelongToTenantError(ForbiddenError):
    default_message = "This invitation does not belong to the specified tenant"


class CannotCancelAcceptedInvitationError(InvalidError):
    default_message = "Cannot cancel an invitation that has already been accepted"


# --- Items ---


class ItemNotFoundError(NotFoundError):
    def __init__(self, item_id: str | None = None):
        super().__init__(f"Item with ID '{item_id}' not found" if item_id else "Item not found")


class ItemForbiddenError(ForbiddenError):
    default_message = "You do not have access to this item"


# --- Users ---


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: str | None = None):
        super().__init__(f"User with ID '{user_id}' not found" if user_id else "User not found")


class UserEmailAlreadyExistsError(ConflictError):
    def __init__(self, email: str):
        super().__init__(f"User with email '{email}' already exists")


class UserNoTenantAccessError(ForbiddenError):
    def __init__(self, tenant_id: str):
        super().__init__(f"You do not have access to tenant '{tenant_id}'")


# --- Mail ---


class MailDeliveryError(DependencyError):
    default_message = "Failed to deliver email"


# --- Identity provider ---


class InvalidTokenError(AuthenticationError):
    default_message = "Invalid or expired token"


class TenantAccessRevokedError(AuthenticationError):
    default_message = "Access to tenant denied or tenant no longer exists"


class IdentityProviderError(DependencyError):
    default_message = "Identity provider is unavailable"


def register_exception_handlers(app: FastAPI) -> None:
    """Render ``AppError`` subclasses as JSON with their kind's status code.

    Args:
        app: FastAPI application instance.
    """

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        level = logging.ERROR if exc.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "%s %s -> %s %s: %s",
            request.method,
            request.url.path,
            exc.status_code,
            exc.code,
            exc.message,
        )
        headers = {"WWW-Authenticate": "Bearer"} if exc.kind == ErrorKind.UNAUTHORIZED else None
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "error": exc.kind.value, "code": exc.code},
            headers=headers,
        )
