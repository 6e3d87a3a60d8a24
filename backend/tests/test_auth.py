"""Tests for authentication endpoints."""

import pytest
from httpx import AsyncClient

from stockit.auth.jwt import token_service
from stockit.models.user import User


@pytest.mark.auth
@pytest.mark.asyncio
class TestLogin:
    """POST /api/auth/login"""

    async def test_login_success(self, client: AsyncClient, admin_user: User):
        """Admin login returns a session token with full access."""
        response = await client.post(
            "/api/auth/login",
            json={"email": admin_user.email, "password": "testpassword123"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["user"]["email"] == "admin@example.com"
        assert data["user"]["role"] == "ADMIN"
        assert data["user"]["permissions"]["isFullAccess"] is True
        assert token_service.verify_session_token(data["token"]).user_id == admin_user.id

    async def test_login_email_is_case_insensitive(self, client: AsyncClient, admin_user: User):
        response = await client.post(
            "/api/auth/login",
            json={"email": "Admin@Example.com", "password": "testpassword123"},
        )

        assert response.status_code == 200

    async def test_login_wrong_password(self, client: AsyncClient, admin_user: User):
        """Test login with wrong password."""
        response = await client.post(
            "/api/auth/login",
            json={"email": "admin@example.com", "password": "wrongpassword"},
        )

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid credentials"

    async def test_login_unknown_user(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/login",
            json={"email": "ghost@example.com", "password": "testpassword123"},
        )

        assert response.status_code == 401

    async def test_login_resolves_store_scope(self, client: AsyncClient, store_user: User, store_a):
        """Store rows from the database end up in the token."""
        store_id = store_a.id
        response = await client.post(
            "/api/auth/login",
            json={"email": "clerk@example.com", "password": "testpassword123"},
        )

        user = response.json()["user"]
        assert user["storeRole"] == "STORE"
        assert user["storeIds"] == [store_id]

    async def test_login_uses_document_when_no_rows(
        self, client: AsyncClient, unassigned_user: User, permissions_repo
    ):
        """Without store rows the managers map decides."""
        permissions_repo.assign_managers("nobody@example.com", [4, 5])

        response = await client.post(
            "/api/auth/login",
            json={"email": "nobody@example.com", "password": "testpassword123"},
        )

        user = response.json()["user"]
        assert user["storeRole"] == "MANAGER"
        assert user["storeIds"] == [4, 5]


@pytest.mark.auth
@pytest.mark.asyncio
class TestRegister:
    """POST /api/auth/register"""

    async def test_register_new_organization(self, client: AsyncClient):
        """Test registration with a fresh organization."""
        response = await client.post(
            "/api/auth/register",
            json={
                "email": "Founder@Example.com",
                "password": "SecurePassword123!",
                "role": "admin",
                "organizationName": "Fresh Co",
                "isNewOrganization": True,
            },
        )

        assert response.status_code == 201
        user = response.json()["user"]
        assert user["email"] == "founder@example.com"
        assert user["role"] == "ADMIN"
        assert user["organizationName"] == "Fresh Co"
        assert user["isNewOrganization"] is True
        assert user["organizationId"] is not None

    async def test_register_existing_organization(self, client: AsyncClient, organization):
        org_id = organization.id
        response = await client.post(
            "/api/auth/register",
            json={
                "email": "joiner@example.com",
                "password": "SecurePassword123!",
                "existingOrganizationId": org_id,
            },
        )

        assert response.status_code == 201
        user = response.json()["user"]
        assert user["organizationId"] == org_id
        assert user["role"] == "STORE"
        assert user["storeIds"] == []

    async def test_register_unknown_organization(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/register",
            json={
                "email": "joiner@example.com",
                "password": "SecurePassword123!",
                "existingOrganizationId": 12345,
            },
        )

        assert response.status_code == 404

    async def test_register_new_organization_needs_name(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/register",
            json={
                "email": "founder@example.com",
                "password": "SecurePassword123!",
                "isNewOrganization": True,
            },
        )

        assert response.status_code == 400

    async def test_register_duplicate_email(self, client: AsyncClient, admin_user: User):
        """Test registration with duplicate email."""
        response = await client.post(
            "/api/auth/register",
            json={"email": "admin@example.com", "password": "AnotherPassword123!"},
        )

        assert response.status_code == 409
        assert "already registered" in response.json()["error"]["message"].lower()

    async def test_register_short_password(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/register",
            json={"email": "short@example.com", "password": "abc"},
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_register_invalid_role(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/register",
            json={"email": "x@example.com", "password": "SecurePassword123!", "role": "OWNER"},
        )

        assert response.status_code == 400
