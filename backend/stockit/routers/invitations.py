"""POST /api/invitations: invite a user (ADMIN / HEADOFFICE only)."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stockit.auth.deps import OrganizationScope, require_admin, scope_to_organization
from stockit.auth.jwt import TokenService, get_token_service
from stockit.database import get_db
from stockit.schemas.admin import InviteRequest, InviteResponse
from stockit.schemas.auth import SessionClaims
from stockit.services.email import EmailSender, get_email_sender
from stockit.services.invitations import create_invitation
from stockit.services.permissions_store import (
    PermissionsRepository,
    get_permissions_repository,
)

router = APIRouter()


@router.post("", response_model=InviteResponse)
async def invite(
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
