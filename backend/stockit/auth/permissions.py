"""Access resolution and authorization predicates.

Design:
  - Roles are fixed: ADMIN, HEADOFFICE, STORE (user role) and STORE,
    MANAGER (store role, per assigned store).
  - Store assignments come from two places: `UserStoreAccess` rows in the
    database and the `staff`/`managers` maps of the permissions document.
    Rows win outright; the two sources are never merged.
  - `resolve_access()` computes the effective access once, at login,
    registration and invite acceptance. The result is embedded in the
    session token so request-time checks are token-only, except for the
    full-access store list which is read live from the document.
  - Every mutating route decides through the predicates at the bottom of
    this module; no route re-implements a role check.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Literal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stockit.models.store import StoreRole, UserStoreAccess
from stockit.models.user import User
from stockit.schemas.admin import PermissionsDocument
from stockit.schemas.auth import Permissions, SessionClaims
from stockit.services.permissions_store import PermissionsRepository, normalise_email

FULL_ACCESS_ROLES = frozenset({"ADMIN", "HEADOFFICE"})

WriteMode = Literal["full", "quantity"]


def _value(enum_or_str) -> str | None:
    return getattr(enum_or_str, "value", enum_or_str)


# ── Resolution ──────────────────────────────────────────────

@dataclass
class ResolvedAccess:
    permissions: Permissions
    store_ids: list[int] = field(default_factory=list)
    store_role: str | None = None


def resolve_access(
    role,
    email: str,
    access_rows: Iterable[UserStoreAccess],
    document: PermissionsDocument,
) -> ResolvedAccess:
    """Compute a user's effective access.

    1. Full access for ADMIN/HEADOFFICE or an email in fullAccessUsers.
    2. DB rows, if any, decide storeIds and storeRole (MANAGER if any row
       is a MANAGER row, STORE otherwise).
    3. Without rows, the managers map wins over the staff map.
    """
    role = _value(role)
    email = normalise_email(email)

    is_full_access = (
        role in FULL_ACCESS_ROLES or email in document.full_access_users
    )

    rows = list(access_rows)
    db_store_ids = [row.store_id for row in rows]
    has_manager_row = any(
        _value(row.store_role) == StoreRole.MANAGER.value for row in rows
    )

    manager_store_ids = list(document.managers.get(email, []))
    staff_store_ids = list(document.staff.get(email, []))
    config_store_ids = manager_store_ids or staff_store_ids

    if db_store_ids:
        store_ids = db_store_ids
        store_role = StoreRole.MANAGER.value if has_manager_row else StoreRole.STORE.value
    else:
        store_ids = config_store_ids
        if manager_store_ids:
            store_role = StoreRole.MANAGER.value
        elif staff_store_ids:
            store_role = StoreRole.STORE.value
        else:
            store_role = None

    permissions = Permissions(
        is_full_access=is_full_access,
        is_staff=len(staff_store_ids) > 0,
        full_access_store_ids=list(document.full_access_store_ids),
        staff_store_ids=staff_store_ids,
    )
    return ResolvedAccess(
        permissions=permissions, store_ids=store_ids, store_role=store_role
    )


async def resolve_user_access(
    db: AsyncSession,
    user: User,
    repository: PermissionsRepository,
) -> ResolvedAccess:
    """Load the user's store-access rows and resolve against the document."""
    result = await db.execute(
        select(UserStoreAccess)
        .where(UserStoreAccess.user_id == user.id)
        .order_by(UserStoreAccess.id)
    )
    rows = result.scalars().all()
    return resolve_access(user.role, user.email, rows, repository.read())


# ── Predicates ──────────────────────────────────────────────

def has_full_access(
    claims: SessionClaims,
    store_id: int | None,
    full_access_store_ids: Iterable[int],
) -> bool:
    if claims.permissions.is_full_access or claims.role in FULL_ACCESS_ROLES:
        return True
    return store_id is not None and store_id in set(full_access_store_ids)


def can_create_item(
    claims: SessionClaims,
    store_id: int,
    full_access_store_ids: Iterable[int],
) -> bool:
    if has_full_access(claims, store_id, full_access_store_ids):
        return True
    return claims.store_role == StoreRole.MANAGER.value and store_id in claims.store_ids


def item_write_mode(
    claims: SessionClaims,
    store_id: int,
    full_access_store_ids: Iterable[int],
) -> WriteMode | None:
    """What an item update may change: everything, quantity only, or nothing.

    A STORE store role is decided first and never escalates to a full
    edit, even for a store on the full-access list.
    """
    if claims.store_role == StoreRole.STORE.value:
        return "quantity" if store_id in claims.store_ids else None
    if claims.store_role == StoreRole.MANAGER.value and store_id in claims.store_ids:
        return "full"
    if has_full_access(claims, store_id, full_access_store_ids):
        return "full"
    return None


def can_delete_item(
    claims: SessionClaims,
    store_id: int,
    full_access_store_ids: Iterable[int],
) -> bool:
    return has_full_access(claims, store_id, full_access_store_ids)


def visible_store_ids(
    claims: SessionClaims, include_store_users: bool = False
) -> list[int] | None:
    """Store ids a listing is restricted to, or None when unrestricted.

    `include_store_users` also restricts STORE-role users that carry no
    store role (used by the store and history listings).
    """
    if claims.store_role in (StoreRole.STORE.value, StoreRole.MANAGER.value):
        return list(claims.store_ids)
    if include_store_users and claims.role == "STORE":
        return list(claims.store_ids)
    return None
