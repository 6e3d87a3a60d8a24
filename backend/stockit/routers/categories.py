"""Organization item categories (`Organization.default_categories`)."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from stockit.auth.deps import OrganizationScope, scope_to_organization
from stockit.database import get_db
from stockit.middleware.exceptions import BadRequestError, ConflictError, NotFoundError
from stockit.models.organization import Organization
from stockit.schemas.organization import CategoriesOut, CategoryCreate

router = APIRouter()


async def _organization(db: AsyncSession, scope: OrganizationScope) -> Organization:
    organization_id = scope.require()
    org = await db.get(Organization, organization_id)
    if org is None:
        raise NotFoundError("Organization", organization_id)
    return org


@router.get("", response_model=CategoriesOut)
async def list_categories(
    scope: OrganizationScope = Depends(scope_to_organization),
    db: AsyncSession = Depends(get_db),
):
    org = await _organization(db, scope)
    return CategoriesOut(categories=org.default_categories or [])


@router.post("", response_model=CategoriesOut, status_code=status.HTTP_201_CREATED)
async def add_category(
    body: CategoryCreate,
    scope: OrganizationScope = Depends(scope_to_organization),
    db: AsyncSession = Depends(get_db),
):
    name = body.category.strip()
    if not name:
        raise BadRequestError("Valid category name is required")

    org = await _organization(db, scope)
    categories = list(org.default_categories or [])
    if name in categories:
        raise ConflictError("Category already exists")

    # Reassign rather than append so the JSON column is marked dirty
    org.default_categories = [*categories, name]
    await db.flush()
    return CategoriesOut(
        categories=org.default_categories, message="Category added successfully"
    )


@router.delete("/{category_name}", response_model=CategoriesOut)
async def delete_category(
    category_name: str,
    scope: OrganizationScope = Depends(scope_to_organization),
    db: AsyncSession = Depends(get_db),
):
    org = await _organization(db, scope)
    categories = list(org.default_categories or [])
    if category_name not in categories:
        raise NotFoundError("Category", category_name)

    org.default_categories = [c for c in categories if c != category_name]
    await db.flush()
    return CategoriesOut(
        categories=org.default_categories, message="Category deleted successfully"
    )
