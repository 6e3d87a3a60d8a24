from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stockit.auth.deps import OrganizationScope, scope_to_organization
from stockit.database import get_db
from stockit.models.user import User
from stockit.schemas.store import UserListOut

router = APIRouter()


@router.get("", response_model=list[UserListOut])
async def list_users(
    scope: OrganizationScope = Depends(scope_to_organization),
    db: AsyncSession = Depends(get_db),
):
    """Users of the caller's organization."""
    organization_id = scope.require()
    result = await db.execute(
        select(User).where(User.organization_id == organization_id).order_by(User.id)
    )
    return [
        UserListOut(
            id=user.id,
            email=user.email,
            role=user.role.value,
            organization_id=user.organization_id,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )
        for user in result.scalars().all()
    ]
