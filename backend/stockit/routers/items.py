"""Item routes.

Who may do what (see stockit.auth.permissions):
  create   full access, or MANAGER of the store
  update   STORE store role: quantity only, assigned stores only
           MANAGER of the store / full access: every field
  delete   full access only
  read     store-scoped users see their assigned stores only

Items of another organization are reported as not found.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stockit.auth.deps import OrganizationScope, get_current_claims, scope_to_organization
from stockit.auth.permissions import (
    can_create_item,
    can_delete_item,
    item_write_mode,
    visible_store_ids,
)
from stockit.database import get_db
from stockit.middleware.exceptions import ForbiddenError, NotFoundError
from stockit.models.item import Item
from stockit.models.store import Store
from stockit.schemas.auth import SessionClaims
from stockit.schemas.item import ItemCreate, ItemOut, ItemUpdate
from stockit.services.email import EmailSender, get_email_sender
from stockit.services.item_update import ItemUpdateGuard
from stockit.services.notifications import (
    UpdateNotificationBatcher,
    get_update_batcher,
    send_item_created_email,
)
from stockit.services.permissions_store import (
    PermissionsRepository,
    get_permissions_repository,
)

router = APIRouter()


# ── Helpers ──────────────────────────────────────────────────

async def _get_item(db: AsyncSession, item_id: int, scope: OrganizationScope) -> Item:
    item = await db.get(Item, item_id)
    if item is None:
        raise NotFoundError("Item", item_id)
    if scope.organization_id is not None and item.organization_id != scope.organization_id:
        raise NotFoundError("Item", item_id)
    return item


async def _list_items(
    db: AsyncSession,
    claims: SessionClaims,
    scope: OrganizationScope,
    store_id: int | None,
) -> list[Item]:
    query = select(Item)
    organization_id = scope.restrict(None)
    if organization_id is not None:
        query = query.where(Item.organization_id == organization_id)

    allowed = visible_store_ids(claims)
    if allowed is not None:
        if store_id is not None and store_id not in allowed:
            raise ForbiddenError("Forbidden: not assigned to this store")
        if not allowed:
            return []
        query = query.where(Item.store_id.in_(allowed))

    if store_id is not None:
        query = query.where(Item.store_id == store_id)

    result = await db.execute(query.order_by(Item.id))
    return list(result.scalars().all())


# ── Create ───────────────────────────────────────────────────

@router.post("", response_model=ItemOut, status_code=status.HTTP_201_CREATED)
async def create_item(
    body: ItemCreate,
    background_tasks: BackgroundTasks,
    claims: SessionClaims = Depends(get_current_claims),
    scope: OrganizationScope = Depends(scope_to_organization),
    db: AsyncSession = Depends(get_db),
    repository: PermissionsRepository = Depends(get_permissions_repository),
    sender: EmailSender = Depends(get_email_sender),
):
    store = await db.get(Store, body.store_id)
    if store is None or scope.restrict(store.organization_id) != store.organization_id:
        raise NotFoundError("Store", body.store_id)

    if not can_create_item(claims, store.id, repository.full_access_store_ids()):
        raise ForbiddenError("Forbidden: insufficient permissions to create items")

    fields = body.model_dump(exclude={"store_id", "organization_id", "category"})
    item = Item(
        **fields,
        category=body.category or "Other",
        store_id=store.id,
        # Always the store's organization, whatever the client sent
        organization_id=store.organization_id,
    )
    db.add(item)
    await db.flush()
    await db.refresh(item)

    created = ItemOut.model_validate(item)
    background_tasks.add_task(
        send_item_created_email,
        sender,
        repository.notify_emails(),
        created,
        claims.email,
    )
    return created


# ── Read ─────────────────────────────────────────────────────

@router.get("", response_model=list[ItemOut])
async def list_items(
    store_id: int | None = Query(None, alias="storeId"),
    claims: SessionClaims = Depends(get_current_claims),
    scope: OrganizationScope = Depends(scope_to_organization),
    db: AsyncSession = Depends(get_db),
):
    return await _list_items(db, claims, scope, store_id)


@router.get("/store/{store_id}", response_model=list[ItemOut])
async def list_items_by_store(
    store_id: int,
    claims: SessionClaims = Depends(get_current_claims),
    scope: OrganizationScope = Depends(scope_to_organization),
    db: AsyncSession = Depends(get_db),
):
    return await _list_items(db, claims, scope, store_id)


@router.get("/{item_id}", response_model=ItemOut)
async def get_item(
    item_id: int,
    claims: SessionClaims = Depends(get_current_claims),
    scope: OrganizationScope = Depends(scope_to_organization),
    db: AsyncSession = Depends(get_db),
):
    item = await _get_item(db, item_id, scope)
    allowed = visible_store_ids(claims)
    if allowed is not None and item.store_id not in allowed:
        raise ForbiddenError("Forbidden: not assigned to this store")
    return item


# ── Update ───────────────────────────────────────────────────

@router.put("/{item_id}", response_model=ItemOut)
async def update_item(
    item_id: int,
    body: ItemUpdate,
    claims: SessionClaims = Depends(get_current_claims),
    scope: OrganizationScope = Depends(scope_to_organization),
    db: AsyncSession = Depends(get_db),
    repository: PermissionsRepository = Depends(get_permissions_repository),
    batcher: UpdateNotificationBatcher = Depends(get_update_batcher),
):
    item = await _get_item(db, item_id, scope)

    mode = item_write_mode(claims, item.store_id, repository.full_access_store_ids())
    if mode is None:
        raise ForbiddenError("Forbidden: insufficient permissions to update item")

    return await ItemUpdateGuard(db, batcher).apply(item, body, claims, mode)


# ── Delete ───────────────────────────────────────────────────

@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(
    item_id: int,
    claims: SessionClaims = Depends(get_current_claims),
    scope: OrganizationScope = Depends(scope_to_organization),
    db: AsyncSession = Depends(get_db),
    repository: PermissionsRepository = Depends(get_permissions_repository),
):
    item = await _get_item(db, item_id, scope)
    if not can_delete_item(claims, item.store_id, repository.full_access_store_ids()):
        raise ForbiddenError("Forbidden: only full access users can delete items")

    # History rows go with the item
    await db.delete(item)
    await db.flush()
