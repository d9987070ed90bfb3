"""Current user API routes."""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.dependencies import CurrentPrincipal, DbSession
from app.tenants.schemas import TenantWithRoleResponse
from app.users.schemas import SwitchTenant, SwitchTenantResponse, UserResponse, UserUpdate
from app.users.service import UserService

router = APIRouter()


def get_service(db: DbSession) -> UserService:
    """Get user service dependency."""
    return UserService(db)


Users = Annotated[UserService, Depends(get_service)]


@router.get("/me", response_model=UserResponse)
async def get_me(service: Users, principal: CurrentPrincipal):
    """Get the current user's profile."""
    return service.get_user(principal.user_id)


@router.patch("/me", response_model=UserResponse)
async def update_me(data: UserUpdate, service: Users, principal: CurrentPrincipal):
    """Update the current user's profile.

    Args:
        data: Fields to change.
        service: User service.
        principal: Authenticated caller.

    Returns:
        UserResponse: Updated profile.
    """
    return service.update_profile(principal.user_id, data)


@router.get("/me/tenants", response_model=list[TenantWithRoleResponse])
async def get_my_tenants(service: Users, principal: CurrentPrincipal):
    """List the current user's tenants."""
    return [
        TenantWithRoleResponse.from_item(item) for item in service.list_tenants(principal.user_id)
    ]


@router.post("/me/switch-tenant", response_model=SwitchTenantResponse)
async def switch_tenant(data: SwitchTenant, service: Users, principal: CurrentPrincipal):
    """Select the active tenant; clients send it back as ``X-Tenant-ID``."""
    item = service.switch_tenant(principal.user_id, data.tenant_id)
    return SwitchTenantResponse(
        tenant_id=item.tenant.id,
        tenant_name=item.tenant.name,
        role=item.my_role,
        message="Send this tenant ID in the X-Tenant-ID header for subsequent requests.",
    )
