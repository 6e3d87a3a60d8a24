"""Organization routes.

  POST /        create (the caller becomes the admin contact)
  GET  /        list all (ADMIN only)
  POST /setup   onboarding wizard: settings, first store, starter items
  GET  /{id}    fetch the caller's own organization
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stockit.auth.deps import get_current_claims
from stockit.database import get_db
from stockit.middleware.exceptions import BadRequestError, ForbiddenError, NotFoundError
from stockit.models.item import Item
from stockit.models.organization import DEFAULT_TIMEZONE, Organization
from stockit.models.store import Store
from stockit.models.user import User, UserRole
from stockit.schemas.auth import SessionClaims
from stockit.schemas.organization import (
    OrganizationCreate,
    OrganizationOut,
    OrganizationSetupRequest,
    OrganizationSetupResponse,
)
from stockit.schemas.store import StoreOut

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_STORE_NAME = "Main Store"


@router.post("", response_model=OrganizationOut, status_code=status.HTTP_201_CREATED)
async def create_organization(
    body: OrganizationCreate,
    claims: SessionClaims = Depends(get_current_claims),
    db: AsyncSession = Depends(get_db),
):
    org = Organization(
        name=body.name,
        industry=(body.industry or "OTHER").upper(),
        address=body.address,
        phone=body.phone,
        timezone=body.timezone or DEFAULT_TIMEZONE,
        admin_email=claims.email,
    )
    db.add(org)
    await db.flush()
    await db.refresh(org)
    return org


@router.get("", response_model=list[OrganizationOut])
async def list_organizations(
    claims: SessionClaims = Depends(get_current_claims),
    db: AsyncSession = Depends(get_db),
):
    if claims.role != UserRole.ADMIN.value:
        raise ForbiddenError("Access denied. Admin role required")
    result = await db.execute(select(Organization).order_by(Organization.id))
    return result.scalars().all()


@router.post(
    "/setup",
    response_model=OrganizationSetupResponse,
    status_code=status.HTTP_201_CREATED,
)
async def setup_organization(
    body: OrganizationSetupRequest,
    claims: SessionClaims = Depends(get_current_claims),
    db: AsyncSession = Depends(get_db),
):
    """Complete onboarding in one transaction."""
    if claims.organization_id is None:
        raise BadRequestError("User is not associated with an organization")

    org = await db.get(Organization, claims.organization_id)
    if org is None:
        raise NotFoundError("Organization", claims.organization_id)

    settings_in = body.org_settings
    org.industry = (settings_in.industry or "OTHER").upper()
    org.timezone = settings_in.timezone or DEFAULT_TIMEZONE
    org.address = settings_in.address or ""
    org.phone = settings_in.phone or ""
    for field in ("contact_email", "contact_phone", "logo_url"):
        if field in settings_in.model_fields_set:
            setattr(org, field, getattr(settings_in, field))
    if body.default_categories is not None:
        # Ordered, without duplicates
        org.default_categories = list(dict.fromkeys(body.default_categories))

    store = Store(
        name=body.store.name or DEFAULT_STORE_NAME,
        address=body.store.address or None,
        organization_id=org.id,
    )
    db.add(store)
    await db.flush()

    for item in body.items:
        db.add(
            Item(
                **item.model_dump(exclude={"category"}),
                category=item.category or "Other",
                store_id=store.id,
                organization_id=org.id,
            )
        )

    user = await db.get(User, claims.user_id)
    if user is not None:
        user.is_new_organization = False

    await db.flush()
    await db.refresh(org)
    await db.refresh(store)
    logger.info(
        "Organization %s set up with store %s and %d item(s)",
        org.id,
        store.id,
        len(body.items),
    )

    return OrganizationSetupResponse(
        message="Organization setup completed successfully",
        organization=OrganizationOut.model_validate(org),
        stores=[StoreOut.model_validate(store)],
        organization_id=org.id,
        store_id=store.id,
    )


@router.get("/{organization_id}", response_model=OrganizationOut)
async def get_organization(
    organization_id: int,
    claims: SessionClaims = Depends(get_current_claims),
    db: AsyncSession = Depends(get_db),
):
    org = await db.get(Organization, organization_id)
    if org is None:
        raise NotFoundError("Organization", organization_id)
    if claims.organization_id != org.id:
        raise ForbiddenError("Access denied")
    return org
