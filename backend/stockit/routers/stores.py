from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stockit.auth.deps import OrganizationScope, get_current_claims, scope_to_organization
from stockit.auth.permissions import has_full_access, visible_store_ids
from stockit.database import get_db
from stockit.middleware.exceptions import ForbiddenError
from stockit.models.store import Store
from stockit.schemas.auth import SessionClaims
from stockit.schemas.store import StoreCreate, StoreOut
from stockit.services.permissions_store import (
    PermissionsRepository,
    get_permissions_repository,
)

router = APIRouter()


@router.get("", response_model=list[StoreOut])
async def list_stores(
    claims: SessionClaims = Depends(get_current_claims),
    scope: OrganizationScope = Depends(scope_to_organization),
    db: AsyncSession = Depends(get_db),
):
    """Stores of the caller's organization; store users see their own only."""
    query = select(Store)
    organization_id = scope.restrict(None)
    if organization_id is not None:
        query = query.where(Store.organization_id == organization_id)

    allowed = visible_store_ids(claims, include_store_users=True)
    if allowed is not None:
        if not allowed:
            return []
        query = query.where(Store.id.in_(allowed))

    result = await db.execute(query.order_by(Store.id))
    return result.scalars().all()


@router.post("", response_model=StoreOut, status_code=status.HTTP_201_CREATED)
async def create_store(
    body: StoreCreate,
    claims: SessionClaims = Depends(get_current_claims),
    scope: OrganizationScope = Depends(scope_to_organization),
    db: AsyncSession = Depends(get_db),
    repository: PermissionsRepository = Depends(get_permissions_repository),
):
    if not has_full_access(claims, None, repository.full_access_store_ids()):
        raise ForbiddenError("Forbidden: full access required to create stores")

    payload = scope.stamp(body.model_dump())
    if payload.get("organization_id") is None:
        scope.require()

    store = Store(**payload)
    db.add(store)
    await db.flush()
    await db.refresh(store)
    return store
