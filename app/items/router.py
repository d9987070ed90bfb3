"""API router for tenant items."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from app.dependencies import CurrentPrincipal, DbSession
from app.items.schemas import ItemCreate, ItemListResponse, ItemResponse, ItemUpdate
from app.items.service import ItemService

router = APIRouter()


def get_item_service(db: DbSession, principal: CurrentPrincipal) -> ItemService:
    """Get item service dependency for the caller's active tenant."""
    return ItemService(db, principal.tenant_id)


Items = Annotated[ItemService, Depends(get_item_service)]


@router.get("", response_model=ItemListResponse)
async def list_items(
    service: Items,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
    search: str | None = None,
):
    """List items of the active tenant."""
    return service.list_items(page=page, page_size=page_size, search=search)


@router.get("/{item_id}", response_model=ItemResponse)
async def get_item(item_id: str, service: Items):
    """Get an item of the active tenant."""
    return service.get_item(item_id)


@router.post("", response_model=ItemResponse, status_code=status.HTTP_201_CREATED)
async def create_item(data: ItemCreate, service: Items):
    """Create an item in the active tenant."""
    return service.create_item(data)


@router.patch("/{item_id}", response_model=ItemResponse)
async def update_item(item_id: str, data: ItemUpdate, service: Items):
    """Update an item.

    Args:
        item_id: Item ID.
        data: Fields to change.
        service: Item service bound to the active tenant.

    Returns:
        ItemResponse: Updated item.
    """
    return service.update_item(item_id, data)


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(item_id: str, service: Items):
    """Delete an item."""
    service.delete_item(item_id)
