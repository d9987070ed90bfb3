"""Item service layer.

Items always belong to the tenant the request acts in. Lookups by ID tell
an unknown item (404) apart from another tenant's item (403).
"""

import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.db.models import Item
from app.exceptions import ItemForbiddenError, ItemNotFoundError
from app.items.schemas import ItemCreate, ItemListResponse, ItemResponse, ItemUpdate

logger = logging.getLogger(__name__)


class ItemService:
    """Service class for item operations within one tenant."""

    def __init__(self, db: Session, tenant_id: str):
        """Initialize item service.

        Args:
            db: Database session.
            tenant_id: Current tenant ID.
        """
        self.db = db
        self.tenant_id = tenant_id

    def list_items(
        self, page: int = 1, page_size: int = 20, search: str | None = None
    ) -> ItemListResponse:
        """List the tenant's items, newest first.

        Args:
            page: Page number, starting at 1.
            page_size: Items per page.
            search: Case-insensitive text matched against name and description.

        Returns:
            ItemListResponse: Paginated item list.
        """
        query = self.db.query(Item).filter(Item.tenant_id == self.tenant_id)

        if search:
            search_term = f"%{search}%"
            query = query.filter(
                or_(Item.name.ilike(search_term), Item.description.ilike(search_term))
            )

        total = query.count()
        offset = (page - 1) * page_size
        items = (
            query.order_by(Item.created_at.desc(), Item.id)
            .offset(offset)
            .limit(page_size)
            .all()
        )

        pages = (total + page_size - 1) // page_size

        return ItemListResponse(
            items=[ItemResponse.model_validate(item) for item in items],
            total=total,
            page=page,
            page_size=page_size,
            pages=pages,
        )

    def get_item(self, item_id: str) -> Item:
        """Get an item of the current tenant.

        Raises:
            ItemNotFoundError: If no item has this ID.
            ItemForbiddenError: If the item belongs to another tenant.
        """
        item = self.db.query(Item).filter(Item.id == item_id).first()
        if not item:
            raise ItemNotFoundError(item_id)
        if not item.belongs_to_tenant(self.tenant_id):
            logger.warning(
                f"Tenant {self.tenant_id} tried to access item {item_id} of tenant {item.tenant_id}"
            )
            raise ItemForbiddenError()
        return item

    def create_item(self, data: ItemCreate) -> Item:
        """Create an item in the current tenant.

        Args:
            data: Item creation data.

        Returns:
            Item: Created item.
        """
        item = Item(tenant_id=self.tenant_id, name=data.name, description=data.description)
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        logger.info(f"Item {item.id} created in tenant {self.tenant_id}")
        return item

    def update_item(self, item_id: str, data: ItemUpdate) -> Item:
        """Update an item of the current tenant.

        Args:
            item_id: Item UUID.
            data: Fields to change.

        Returns:
            Item: Updated item.
        """
        item = self.get_item(item_id)

        for name, value in data.model_dump(exclude_unset=True).items():
            setattr(item, name, value)

        self.db.commit()
        self.db.refresh(item)
        return item

    def delete_item(self, item_id: str) -> None:
        """Delete an item of the current tenant."""
        item = self.get_item(item_id)
        self.db.delete(item)
        self.db.commit()
        logger.info(f"Item {item_id} deleted from tenant {self.tenant_id}")
