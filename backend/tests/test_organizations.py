"""Tests for organizations, onboarding, stores, categories, users and admin config."""

import json

import pytest


@pytest.mark.integration
@pytest.mark.asyncio
class TestAdminConfig:
    """POST /api/admin/config/*"""

    async def test_full_feature_stores(self, client, headers_for, admin_user, permissions_repo):
        headers = await headers_for(admin_user)

        resp = await client.post(
            "/api/admin/config/full-feature-stores", json={"storeIds": [1, 2]}, headers=headers
        )

        assert resp.status_code == 200
        assert resp.json() == {"success": True, "fullAccessStoreIds": [1, 2]}
        assert permissions_repo.full_access_store_ids() == [1, 2]

    async def test_staff_and_managers_are_per_email(self, client, headers_for, admin_user, permissions_repo):
        headers = await headers_for(admin_user)

        await client.post(
            "/api/admin/config/staff",
            json={"email": "a@example.com", "storeIds": [1]},
            headers=headers,
        )
        await client.post(
            "/api/admin/config/staff",
            json={"email": "b@example.com", "storeIds": [2]},
            headers=headers,
        )
        resp = await client.post(
            "/api/admin/config/managers",
            json={"email": "A@example.com", "storeIds": [3]},
            headers=headers,
        )

        assert resp.json() == {"success": True, "email": "a@example.com", "storeIds": [3]}
        doc = json.loads(permissions_repo.path.read_text())
        assert doc["staff"] == {"a@example.com": [1], "b@example.com": [2]}
        assert doc["managers"] == {"a@example.com": [3]}

    async def test_notify_and_full_feature_users(self, client, headers_for, admin_user, permissions_repo):
        headers = await headers_for(admin_user)

        notify = await client.post(
            "/api/admin/config/notify", json={"emails": ["ops@example.com"]}, headers=headers
        )
        users = await client.post(
            "/api/admin/config/full-feature-users",
            json={"emails": ["Owner@Example.com"]},
            headers=headers,
        )

        assert notify.json()["notifyEmails"] == ["ops@example.com"]
        assert users.json()["fullAccessUsers"] == ["owner@example.com"]
        assert permissions_repo.read().full_access_users == ["owner@example.com"]

    async def test_invalid_email_rejected(self, client, headers_for, admin_user):
        headers = await headers_for(admin_user)

        resp = await client.post(
            "/api/admin/config/staff",
            json={"email": "not-an-email", "storeIds": [1]},
            headers=headers,
        )

        assert resp.status_code == 422


@pytest.mark.integration
@pytest.mark.asyncio
class TestOrganizations:
    """Organization CRUD and onboarding wizard."""

    async def test_create_organization(self, client, headers_for, admin_user):
        headers = await headers_for(admin_user)

        resp = await client.post(
            "/api/organizations",
            json={"name": "Second Co", "industry": "retail"},
            headers=headers,
        )

        assert resp.status_code == 201
        data = resp.json()
        assert data["name"] == "Second Co"
        assert data["industry"] == "RETAIL"
        assert data["timezone"] == "Australia/Canberra"
        assert data["adminEmail"] == "admin@example.com"

    async def test_list_requires_admin(self, client, headers_for, admin_user, manager_user, other_organization):
        admin = await headers_for(admin_user)
        manager = await headers_for(manager_user)

        allowed = await client.get("/api/organizations", headers=admin)
        denied = await client.get("/api/organizations", headers=manager)

        assert allowed.status_code == 200
        assert [o["name"] for o in allowed.json()] == ["Acme Foods", "Rival Foods"]
        assert denied.status_code == 403

    async def test_get_own_organization_only(self, client, headers_for, admin_user, organization, other_organization):
        headers = await headers_for(admin_user)
        own, other = organization.id, other_organization.id

        ok = await client.get(f"/api/organizations/{own}", headers=headers)
        denied = await client.get(f"/api/organizations/{other}", headers=headers)
        missing = await client.get("/api/organizations/9999", headers=headers)

        assert ok.status_code == 200
        assert denied.status_code == 403
        assert missing.status_code == 404

    async def test_setup_wizard(self, client, headers_for, admin_user, organization):
        """One request sets up settings, the first store and starter items."""
        headers = await headers_for(admin_user)
        org_id = organization.id

        resp = await client.post(
            "/api/organizations/setup",
            json={
                "orgSettings": {"industry": "cafe", "contactEmail": "hello@acme.example"},
                "store": {"name": "Kingston"},
                "items": [
                    {"name": "Coffee Beans", "quantity": 3, "mondayRequired": 5},
                    {"name": "Cups", "category": "Packaging"},
                ],
                "defaultCategories": ["Dairy", "Packaging", "Dairy"],
            },
            headers=headers,
        )

        assert resp.status_code == 201
        data = resp.json()
        assert data["organizationId"] == org_id
        assert data["organization"]["industry"] == "CAFE"
        assert data["organization"]["contactEmail"] == "hello@acme.example"
        assert data["organization"]["defaultCategories"] == ["Dairy", "Packaging"]
        assert data["stores"][0]["name"] == "Kingston"

        items = await client.get(f"/api/items/store/{data['storeId']}", headers=headers)
        assert sorted((i["name"], i["category"]) for i in items.json()) == [
            ("Coffee Beans", "Other"),
            ("Cups", "Packaging"),
        ]

    async def test_setup_defaults_store_name(self, client, headers_for, admin_user):
        headers = await headers_for(admin_user)

        resp = await client.post("/api/organizations/setup", json={}, headers=headers)

        assert resp.status_code == 201
        assert resp.json()["stores"][0]["name"] == "Main Store"


@pytest.mark.integration
@pytest.mark.asyncio
class TestStores:
    async def test_store_user_sees_own_stores(self, client, headers_for, store_user, store_a, store_b):
        headers = await headers_for(store_user)

        resp = await client.get("/api/stores", headers=headers)

        assert [s["name"] for s in resp.json()] == ["Civic"]

    async def test_unassigned_store_user_sees_nothing(self, client, headers_for, unassigned_user, store_a):
        headers = await headers_for(unassigned_user)

        resp = await client.get("/api/stores", headers=headers)

        assert resp.json() == []

    async def test_create_store_stamps_organization(self, client, headers_for, admin_user, organization, other_organization):
        headers = await headers_for(admin_user)
        own, other = organization.id, other_organization.id

        resp = await client.post(
            "/api/stores", json={"name": "Woden", "organizationId": other}, headers=headers
        )

        assert resp.status_code == 201
        assert resp.json()["organizationId"] == own

    async def test_create_store_needs_full_access(self, client, headers_for, manager_user):
        headers = await headers_for(manager_user)

        resp = await client.post("/api/stores", json={"name": "Woden"}, headers=headers)

        assert resp.status_code == 403


@pytest.mark.integration
@pytest.mark.asyncio
class TestCategories:
    async def test_add_list_delete(self, client, headers_for, admin_user):
        headers = await headers_for(admin_user)

        added = await client.post("/api/categories", json={"category": " Dairy "}, headers=headers)
        listed = await client.get("/api/categories", headers=headers)
        deleted = await client.delete("/api/categories/Dairy", headers=headers)

        assert added.status_code == 201
        assert added.json()["categories"] == ["Dairy"]
        assert listed.json()["categories"] == ["Dairy"]
        assert deleted.status_code == 200
        assert deleted.json()["categories"] == []

    async def test_duplicate_category(self, client, headers_for, admin_user):
        headers = await headers_for(admin_user)

        await client.post("/api/categories", json={"category": "Dairy"}, headers=headers)
        resp = await client.post("/api/categories", json={"category": "Dairy"}, headers=headers)

        assert resp.status_code == 409

    async def test_blank_category(self, client, headers_for, admin_user):
        headers = await headers_for(admin_user)

        resp = await client.post("/api/categories", json={"category": "   "}, headers=headers)

        assert resp.status_code == 400

    async def test_delete_missing_category(self, client, headers_for, admin_user):
        headers = await headers_for(admin_user)

        resp = await client.delete("/api/categories/Nope", headers=headers)

        assert resp.status_code == 404


@pytest.mark.integration
@pytest.mark.asyncio
class TestUsers:
    async def test_lists_own_organization(self, client, headers_for, admin_user, store_user, other_organization):
        headers = await headers_for(admin_user)

        resp = await client.get("/api/users", headers=headers)

        assert resp.status_code == 200
        assert [(u["email"], u["role"]) for u in resp.json()] == [
            ("admin@example.com", "ADMIN"),
            ("clerk@example.com", "STORE"),
        ]
        assert "hashedPassword" not in resp.json()[0]
