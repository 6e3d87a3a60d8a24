"""Tests for access resolution and the authorization predicates."""

from types import SimpleNamespace

import pytest

from stockit.auth.permissions import (
    can_create_item,
    can_delete_item,
    item_write_mode,
    resolve_access,
    resolve_user_access,
    visible_store_ids,
)
from stockit.models.store import StoreRole
from stockit.schemas.admin import PermissionsDocument
from stockit.schemas.auth import Permissions, SessionClaims


def row(store_id, store_role=StoreRole.STORE):
    return SimpleNamespace(store_id=store_id, store_role=store_role)


def claims(role="STORE", store_role=None, store_ids=(), is_full_access=False):
    return SessionClaims(
        user_id=1,
        role=role,
        email="someone@example.com",
        organization_id=1,
        permissions=Permissions(is_full_access=is_full_access),
        store_ids=list(store_ids),
        store_role=store_role,
    )


@pytest.mark.unit
class TestResolveAccess:
    """Precedence: DB rows, then managers map, then staff map."""

    @pytest.mark.parametrize("role", ["ADMIN", "HEADOFFICE"])
    def test_admin_roles_always_full_access(self, role):
        access = resolve_access(role, "boss@example.com", [], PermissionsDocument())

        assert access.permissions.is_full_access is True
        assert access.store_ids == []
        assert access.store_role is None

    def test_full_access_user_from_document(self):
        doc = PermissionsDocument(full_access_users=["owner@example.com"])

        access = resolve_access("STORE", "Owner@Example.com", [], doc)

        assert access.permissions.is_full_access is True

    def test_db_rows_override_document(self):
        doc = PermissionsDocument(
            staff={"clerk@example.com": [7, 8]},
            managers={"clerk@example.com": [9]},
        )

        access = resolve_access("STORE", "clerk@example.com", [row(1), row(2)], doc)

        assert access.store_ids == [1, 2]
        assert access.store_role == "STORE"

    def test_any_manager_row_makes_manager(self):
        rows = [row(1), row(2, StoreRole.MANAGER)]

        access = resolve_access("STORE", "lead@example.com", rows, PermissionsDocument())

        assert access.store_ids == [1, 2]
        assert access.store_role == "MANAGER"

    def test_managers_map_without_rows(self):
        doc = PermissionsDocument(managers={"lead@example.com": [1, 2]})

        access = resolve_access("STORE", "lead@example.com", [], doc)

        assert access.store_role == "MANAGER"
        assert access.store_ids == [1, 2]

    def test_managers_map_wins_over_staff_map(self):
        doc = PermissionsDocument(
            staff={"both@example.com": [3]},
            managers={"both@example.com": [4]},
        )

        access = resolve_access("STORE", "both@example.com", [], doc)

        assert access.store_role == "MANAGER"
        assert access.store_ids == [4]
        assert access.permissions.is_staff is True
        assert access.permissions.staff_store_ids == [3]

    def test_staff_map_only(self):
        doc = PermissionsDocument(staff={"clerk@example.com": [5]})

        access = resolve_access("STORE", "clerk@example.com", [], doc)

        assert access.store_role == "STORE"
        assert access.store_ids == [5]

    def test_no_assignment_anywhere(self):
        access = resolve_access("STORE", "nobody@example.com", [], PermissionsDocument())

        assert access.store_role is None
        assert access.store_ids == []
        assert access.permissions.is_full_access is False
        assert access.permissions.is_staff is False

    def test_full_access_store_ids_copied_from_document(self):
        doc = PermissionsDocument(full_access_store_ids=[11, 12])

        access = resolve_access("STORE", "clerk@example.com", [], doc)

        assert access.permissions.full_access_store_ids == [11, 12]


@pytest.mark.integration
@pytest.mark.asyncio
class TestResolveUserAccess:
    async def test_loads_rows_from_database(self, db_session, manager_user, store_a, permissions_repo):
        permissions_repo.assign_staff(manager_user.email, [999])

        access = await resolve_user_access(db_session, manager_user, permissions_repo)

        assert access.store_ids == [store_a.id]
        assert access.store_role == "MANAGER"

    async def test_falls_back_to_document(self, db_session, unassigned_user, permissions_repo):
        permissions_repo.assign_managers(unassigned_user.email, [1, 2])

        access = await resolve_user_access(db_session, unassigned_user, permissions_repo)

        assert access.store_ids == [1, 2]
        assert access.store_role == "MANAGER"


@pytest.mark.unit
class TestPredicates:
    def test_store_role_is_quantity_only_inside_assigned_store(self):
        c = claims(store_role="STORE", store_ids=[1])

        assert item_write_mode(c, 1, []) == "quantity"
        assert item_write_mode(c, 2, []) is None

    def test_store_role_never_escalates_on_full_access_store(self):
        c = claims(store_role="STORE", store_ids=[1])

        assert item_write_mode(c, 1, [1]) == "quantity"

    def test_manager_full_edit_inside_store_only(self):
        c = claims(store_role="MANAGER", store_ids=[1])

        assert item_write_mode(c, 1, []) == "full"
        assert item_write_mode(c, 2, []) is None

    def test_full_access_store_list_grants_full_edit(self):
        c = claims()

        assert item_write_mode(c, 3, [3]) == "full"
        assert item_write_mode(c, 4, [3]) is None

    def test_admin_full_edit_everywhere(self):
        c = claims(role="HEADOFFICE")

        assert item_write_mode(c, 42, []) == "full"
        assert can_delete_item(c, 42, [])

    def test_create_requires_manager_or_full_access(self):
        assert can_create_item(claims(store_role="MANAGER", store_ids=[1]), 1, [])
        assert not can_create_item(claims(store_role="STORE", store_ids=[1]), 1, [])
        assert can_create_item(claims(is_full_access=True), 5, [])

    def test_delete_is_full_access_only(self):
        assert not can_delete_item(claims(store_role="MANAGER", store_ids=[1]), 1, [])
        assert can_delete_item(claims(store_role="MANAGER", store_ids=[1]), 1, [1])

    def test_visible_store_ids(self):
        assert visible_store_ids(claims(role="ADMIN")) is None
        assert visible_store_ids(claims(store_role="MANAGER", store_ids=[1, 2])) == [1, 2]
        assert visible_store_ids(claims(store_ids=[])) is None
        assert visible_store_ids(claims(store_ids=[]), include_store_users=True) == []
