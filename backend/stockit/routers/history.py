from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from stockit.auth.deps import OrganizationScope, get_current_claims, scope_to_organization
from stockit.auth.permissions import visible_store_ids
from stockit.database import get_db
from stockit.models.item import Item, ItemHistory
from stockit.schemas.auth import SessionClaims
from stockit.schemas.item import ItemHistoryOut

router = APIRouter()


@router.get("/full", response_model=list[ItemHistoryOut])
async def full_history(
    claims: SessionClaims = Depends(get_current_claims),
    scope: OrganizationScope = Depends(scope_to_organization),
    db: AsyncSession = Depends(get_db),
):
    """Every history row visible to the caller, newest first, with its item."""
    query = (
        select(ItemHistory)
        .join(Item, ItemHistory.item_id == Item.id)
        .options(selectinload(ItemHistory.item))
    )
    organization_id = scope.restrict(None)
    if organization_id is not None:
        query = query.where(Item.organization_id == organization_id)

    allowed = visible_store_ids(claims, include_store_users=True)
    if allowed is not None:
        if not allowed:
            return []
        query = query.where(Item.store_id.in_(allowed))

    result = await db.execute(
        query.order_by(ItemHistory.updated_at.desc(), ItemHistory.id.desc())
    )
    return result.scalars().all()
