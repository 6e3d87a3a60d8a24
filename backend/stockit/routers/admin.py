"""Admin routes: permissions document maintenance and organization invites.

All endpoints require ADMIN or HEADOFFICE.

  GET  /config/permissions          whole document
  POST /config/full-feature-stores  {storeIds}        replace
  POST /config/staff                {email, storeIds} replace for that email
  POST /config/managers             {email, storeIds} replace for that email
  POST /config/notify               {emails}          replace
  POST /config/full-feature-users   {emails}          replace
  POST /org/invite                  invite a user into the caller's org
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stockit.auth.deps import OrganizationScope, require_admin, scope_to_organization
from stockit.auth.jwt import TokenService, get_token_service
from stockit.database import get_db
from stockit.schemas.admin import (
    EmailsRequest,
    InviteRequest,
    InviteResponse,
    PermissionsDocument,
    StoreAssignmentRequest,
    StoreIdsRequest,
)
from stockit.schemas.auth import SessionClaims
from stockit.services.email import EmailSender, get_email_sender
from stockit.services.invitations import create_invitation
from stockit.services.permissions_store import (
    PermissionsRepository,
    get_permissions_repository,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/config/permissions", response_model=PermissionsDocument)
async def get_permissions(
    _: SessionClaims = Depends(require_admin),
    repository: PermissionsRepository = Depends(get_permissions_repository),
):
    return repository.read()


@router.post("/config/full-feature-stores")
async def set_full_feature_stores(
    body: StoreIdsRequest,
    claims: SessionClaims = Depends(require_admin),
    repository: PermissionsRepository = Depends(get_permissions_repository),
):
    store_ids = repository.set_full_access_store_ids(body.store_ids)
    logger.info("%s set full access stores to %s", claims.email, store_ids)
    return {"success": True, "fullAccessStoreIds": store_ids}


@router.post("/config/staff")
async def assign_staff(
    body: StoreAssignmentRequest,
    claims: SessionClaims = Depends(require_admin),
    repository: PermissionsRepository = Depends(get_permissions_repository),
):
    store_ids = repository.assign_staff(body.email, body.store_ids)
    logger.info("%s assigned staff %s to stores %s", claims.email, body.email, store_ids)
    return {"success": True, "email": body.email.lower(), "storeIds": store_ids}


@router.post("/config/managers")
async def assign_managers(
    body: StoreAssignmentRequest,
    claims: SessionClaims = Depends(require_admin),
    repository: PermissionsRepository = Depends(get_permissions_repository),
):
    store_ids = repository.assign_managers(body.email, body.store_ids)
    logger.info("%s assigned manager %s to stores %s", claims.email, body.email, store_ids)
    return {"success": True, "email": body.email.lower(), "storeIds": store_ids}


@router.post("/config/notify")
async def set_notify_emails(
    body: EmailsRequest,
    _: SessionClaims = Depends(require_admin),
    repository: PermissionsRepository = Depends(get_permissions_repository),
):
    return {"success": True, "notifyEmails": repository.set_notify_emails(body.emails)}


@router.post("/config/full-feature-users")
async def set_full_feature_users(
    body: EmailsRequest,
    _: SessionClaims = Depends(require_admin),
    repository: PermissionsRepository = Depends(get_permissions_repository),
):
    return {
        "success": True,
        "fullAccessUsers": repository.set_full_access_users(body.emails),
    }


@router.post("/org/invite", response_model=InviteResponse)
async def invite_to_organization(
    body: InviteRequest,
    _: SessionClaims = Depends(require_admin),
    scope: OrganizationScope = Depends(scope_to_organization),
    db: AsyncSession = Depends(get_db),
    repository: PermissionsRepository = Depends(get_permissions_repository),
    sender: EmailSender = Depends(get_email_sender),
    tokens: TokenService = Depends(get_token_service),
):
    return await create_invitation(
        db, repository, sender, tokens, scope.restrict(body.organization_id), body
    )
