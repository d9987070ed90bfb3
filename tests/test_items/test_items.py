"""Tests for tenant-scoped items."""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.auth.keycloak import KeycloakClaims
from app.db.models import Item, Tenant, TenantRole, User, utcnow
from app.exceptions import ItemForbiddenError, ItemNotFoundError
from app.items.schemas import ItemCreate, ItemUpdate
from app.items.service import ItemService
from app.tenants.repository import TenantRepository


def add_item(
    db: Session, tenant: Tenant, name: str, description: str | None = None, age_minutes: int = 0
) -> Item:
    item = Item(
        tenant_id=tenant.id,
        name=name,
        description=description,
        created_at=utcnow() - timedelta(minutes=age_minutes),
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


@pytest.fixture
def other_tenant(db: Session, create_user) -> Tenant:
    """A second tenant with its own owner."""
    other_owner = create_user("boss@example.com")
    return TenantRepository(db).create_tenant("Other Lab", "other-lab", other_owner.id)


class TestItemService:
    """Tests for ItemService."""

    def test_create_in_current_tenant(self, db: Session, tenant: Tenant):
        """Test new items belong to the service's tenant."""
        item = ItemService(db, tenant.id).create_item(ItemCreate(name="Widget"))

        assert item.tenant_id == tenant.id
        assert item.description is None

    def test_list_newest_first_paginated(self, db: Session, tenant: Tenant):
        """Test listing pages through items newest first."""
        add_item(db, tenant, "oldest", age_minutes=30)
        add_item(db, tenant, "middle", age_minutes=20)
        add_item(db, tenant, "newest", age_minutes=10)
        service = ItemService(db, tenant.id)

        first = service.list_items(page=1, page_size=2)
        second = service.list_items(page=2, page_size=2)

        assert [i.name for i in first.items] == ["newest", "middle"]
        assert [i.name for i in second.items] == ["oldest"]
        assert first.total == 3
        assert first.pages == 2

    def test_list_empty(self, db: Session, tenant: Tenant):
        """Test an empty tenant has no pages."""
        result = ItemService(db, tenant.id).list_items()

        assert result.items == []
        assert result.total == 0
        assert result.pages == 0

    def test_search_name_and_description(self, db: Session, tenant: Tenant):
        """Test search is case-insensitive across name and description."""
        add_item(db, tenant, "Red Widget")
        add_item(db, tenant, "Gadget", description="works with any widget")
        add_item(db, tenant, "Sprocket")

        result = ItemService(db, tenant.id).list_items(search="WIDGET")

        assert {i.name for i in result.items} == {"Red Widget", "Gadget"}
        assert result.total == 2

    def test_list_excludes_other_tenants(
        self, db: Session, tenant: Tenant, other_tenant: Tenant
    ):
        """Test listing never shows another tenant's items."""
        add_item(db, tenant, "mine")
        add_item(db, other_tenant, "theirs")

        result = ItemService(db, tenant.id).list_items()

        assert [i.name for i in result.items] == ["mine"]

    def test_get_unknown(self, db: Session, tenant: Tenant):
        """Test an unknown ID is not found."""
        with pytest.raises(ItemNotFoundError):
            ItemService(db, tenant.id).get_item("missing")

    def test_get_foreign(self, db: Session, tenant: Tenant, other_tenant: Tenant):
        """Test another tenant's item is forbidden."""
        theirs = add_item(db, other_tenant, "theirs")

        with pytest.raises(ItemForbiddenError):
            ItemService(db, tenant.id).get_item(theirs.id)

    def test_update_partial(self, db: Session, tenant: Tenant):
        """Test unset fields are left alone and description can be cleared."""
        item = add_item(db, tenant, "Widget", description="blue")
        service = ItemService(db, tenant.id)

        renamed = service.update_item(item.id, ItemUpdate(name="Gizmo"))
        assert renamed.name == "Gizmo"
        assert renamed.description == "blue"

        cleared = service.update_item(item.id, ItemUpdate(description=None))
        assert cleared.name == "Gizmo"
        assert cleared.description is None

    def test_update_foreign_leaves_item(
        self, db: Session, tenant: Tenant, other_tenant: Tenant
    ):
        """Test another tenant's item cannot be changed."""
        theirs = add_item(db, other_tenant, "theirs")

        with pytest.raises(ItemForbiddenError):
            ItemService(db, tenant.id).update_item(theirs.id, ItemUpdate(name="stolen"))

        db.refresh(theirs)
        assert theirs.name == "theirs"

    def test_delete(self, db: Session, tenant: Tenant):
        """Test deleting removes the item."""
        item = add_item(db, tenant, "Widget")

        ItemService(db, tenant.id).delete_item(item.id)

        assert db.query(Item).count() == 0

    def test_tenant_deletion_removes_items(self, db: Session, tenant: Tenant):
        """Test items go with their tenant."""
        add_item(db, tenant, "Widget")

        TenantRepository(db).delete_tenant(tenant.id)

        assert db.query(Item).count() == 0


class TestItemRoutes:
    """Tests for /api/items."""

    def test_requires_authentication(self, client: TestClient):
        """Test requests without a bearer token are rejected."""
        response = client.get("/api/items")

        assert response.status_code == 401

    def test_crud(self, login, member: User, tenant: Tenant):
        """Test a member can create, read, update and delete items."""
        client = login(member, tenant)

        created = client.post("/api/items", json={"name": "Widget", "description": "blue"})
        assert created.status_code == 201
        item_id = created.json()["id"]
        assert created.json()["tenant_id"] == tenant.id

        fetched = client.get(f"/api/items/{item_id}")
        assert fetched.status_code == 200
        assert fetched.json()["name"] == "Widget"

        updated = client.patch(f"/api/items/{item_id}", json={"name": "Gizmo"})
        assert updated.status_code == 200
        assert updated.json()["name"] == "Gizmo"
        assert updated.json()["description"] == "blue"

        listed = client.get("/api/items").json()
        assert listed["total"] == 1
        assert listed["page"] == 1
        assert listed["page_size"] == 20
        assert listed["pages"] == 1

        deleted = client.delete(f"/api/items/{item_id}")
        assert deleted.status_code == 204
        assert client.get(f"/api/items/{item_id}").status_code == 404

    def test_list_query_params(self, login, db: Session, member: User, tenant: Tenant):
        """Test paging and search arrive from the query string."""
        add_item(db, tenant, "alpha", age_minutes=2)
        add_item(db, tenant, "beta", age_minutes=1)
        client = login(member, tenant)

        response = client.get("/api/items", params={"page": 2, "page_size": 1})
        searched = client.get("/api/items", params={"search": "alp"})

        assert [i["name"] for i in response.json()["items"]] == ["alpha"]
        assert response.json()["pages"] == 2
        assert [i["name"] for i in searched.json()["items"]] == ["alpha"]

    def test_invalid_input(self, login, member: User, tenant: Tenant):
        """Test bad names and paging are validation errors."""
        client = login(member, tenant)
        item_id = client.post("/api/items", json={"name": "Widget"}).json()["id"]

        assert client.post("/api/items", json={"name": ""}).status_code == 422
        assert client.patch(f"/api/items/{item_id}", json={"name": None}).status_code == 422
        assert client.get("/api/items", params={"page": 0}).status_code == 422
        assert client.get("/api/items", params={"page_size": 101}).status_code == 422

    def test_foreign_item(self, login, db: Session, member: User, tenant: Tenant, other_tenant):
        """Test another tenant's item is forbidden and unknown IDs are not found."""
        theirs = add_item(db, other_tenant, "theirs")
        client = login(member, tenant)

        forbidden = client.get(f"/api/items/{theirs.id}")
        deleted = client.delete(f"/api/items/{theirs.id}")
        missing = client.get("/api/items/missing")

        assert forbidden.status_code == 403
        assert forbidden.json()["code"] == "ItemForbiddenError"
        assert deleted.status_code == 403
        assert missing.status_code == 404
        assert missing.json()["code"] == "ItemNotFoundError"
        assert db.query(Item).filter(Item.id == theirs.id).count() == 1

    def test_tenant_header_selects_items(
        self, use_tokens, db: Session, owner: User, tenant: Tenant, other_tenant: Tenant
    ):
        """Test X-Tenant-ID decides which tenant's items a request sees and creates."""
        TenantRepository(db).add_member(owner.id, other_tenant.id, TenantRole.MEMBER)
        add_item(db, tenant, "home item")
        add_item(db, other_tenant, "other item")
        client = use_tokens({"t": KeycloakClaims(sub="kc-30", email=owner.email)})
        auth = {"Authorization": "Bearer t"}
        switched = {**auth, "X-Tenant-ID": other_tenant.id}

        home = client.get("/api/items", headers=auth).json()
        other = client.get("/api/items", headers=switched).json()
        created = client.post("/api/items", json={"name": "new"}, headers=switched).json()

        assert [i["name"] for i in home["items"]] == ["home item"]
        assert [i["name"] for i in other["items"]] == ["other item"]
        assert created["tenant_id"] == other_tenant.id

    def test_tenant_header_without_membership(
        self, use_tokens, db: Session, outsider: User, tenant: Tenant
    ):
        """Test a non-member cannot reach a tenant's items by switching to it."""
        add_item(db, tenant, "private")
        client = use_tokens({"t": KeycloakClaims(sub="kc-31", email=outsider.email)})

        response = client.get(
            "/api/items", headers={"Authorization": "Bearer t", "X-Tenant-ID": tenant.id}
        )
        own = client.get("/api/items", headers={"Authorization": "Bearer t"})

        assert response.status_code == 403
        assert response.json()["code"] == "UserNoTenantAccessError"
        assert own.status_code == 200
        assert own.json()["items"] == []
