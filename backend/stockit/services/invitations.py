"""Invitations: issue invite links and accept them.

Issuing (admin):
  1. STORE invites must name stores, all inside the organization.
  2. The permissions document learns the invitee: STORE → staff,
     MANAGER → managers, ADMIN/HEADOFFICE → fullAccessUsers.
  3. A 7-day invite token is minted and emailed as
     `<base>/invite?token=<token>`.

Accepting (invitee):
  1. The token is verified (must be an invite token).
  2. The user is created, or an existing user's password is reset.
  3. For STORE invites, the user's store-access rows for the invited
     stores are replaced with rows carrying the invite's store role.
"""

import html
import logging
from urllib.parse import quote

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from stockit.auth.jwt import InvalidTokenError, TokenService
from stockit.auth.password import hash_password
from stockit.config import settings
from stockit.middleware.exceptions import BadRequestError, StockITException
from stockit.models.organization import Organization
from stockit.models.store import Store, StoreRole, UserStoreAccess
from stockit.models.user import User, UserRole
from stockit.schemas.admin import InviteRequest, InviteResponse
from stockit.schemas.auth import InvitePayload
from stockit.services.email import EmailSender
from stockit.services.permissions_store import PermissionsRepository

logger = logging.getLogger(__name__)

VALID_ROLES = {r.value for r in UserRole}
VALID_STORE_ROLES = {r.value for r in StoreRole}


class InvitationDeliveryError(StockITException):
    def __init__(self):
        super().__init__(
            message="Failed to send invitation",
            status_code=500,
            error_code="INVITE_DELIVERY_FAILED",
        )


def build_invite_link(token: str, base: str | None = None) -> str:
    base = (base or settings.frontend_url).rstrip("/")
    return f"{base}/invite?token={quote(token, safe='')}"


def render_invite_email(
    invite: InvitePayload, link: str, organization_name: str | None
) -> tuple[str, str, str]:
    """Return (subject, html_body, text_body)."""
    org_suffix = f" - {organization_name}" if organization_name else ""
    role_text = invite.role + (f" ({invite.store_role})" if invite.store_role else "")
    stores_text = ", ".join(str(s) for s in invite.store_ids)

    text_lines = [
        f"You've been invited to StockIT{org_suffix}.",
        f"Role: {role_text}",
    ]
    if stores_text:
        text_lines.append(f"Stores: {stores_text}")
    text_lines.append(f"Accept your invite: {link}")

    stores_html = (
        f"<p>Stores: <strong>{html.escape(stores_text)}</strong></p>" if stores_text else ""
    )
    html_body = f"""
    <div style="font-family: Arial, sans-serif; max-width:600px; margin:0 auto;">
      <h2>You're invited to StockIT{html.escape(org_suffix)}</h2>
      <p>Role: <strong>{html.escape(role_text)}</strong></p>
      {stores_html}
      <p>
        <a href="{html.escape(link)}" style="display:inline-block; background:#2563eb; color:#fff; padding:10px 16px; text-decoration:none; border-radius:6px;">Accept Invite</a>
      </p>
      <p>Or open this link: <br/><code>{html.escape(link)}</code></p>
    </div>
    """
    return "You're invited to StockIT", html_body, "\n".join(text_lines)


# ── Issue ───────────────────────────────────────────────────

async def create_invitation(
    db: AsyncSession,
    repository: PermissionsRepository,
    sender: EmailSender,
    tokens: TokenService,
    organization_id: int | None,
    body: InviteRequest,
) -> InviteResponse:
    email = body.email.strip().lower()
    role = (body.role or UserRole.STORE.value).upper()
    if role not in VALID_ROLES:
        raise BadRequestError(f"Invalid role: {body.role}")

    store_role = None
    store_ids: list[int] = []
    if role == UserRole.STORE.value:
        store_role = (body.store_role or StoreRole.STORE.value).upper()
        if store_role not in VALID_STORE_ROLES:
            raise BadRequestError(f"Invalid storeRole: {body.store_role}")

        store_ids = [int(s) for s in body.store_ids]
        if not store_ids:
            raise BadRequestError("storeIds are required for STORE invites")

        result = await db.execute(
            select(Store.id).where(
                Store.id.in_(store_ids), Store.organization_id == organization_id
            )
        )
        found = set(result.scalars().all())
        missing = [s for s in store_ids if s not in found]
        if missing:
            raise BadRequestError(
                "Some stores do not belong to this organization",
                details={"missingStoreIds": missing},
            )

        if store_role == StoreRole.MANAGER.value:
            repository.assign_managers(email, store_ids)
        else:
            repository.assign_staff(email, store_ids)
    else:
        repository.add_full_access_user(email)

    invite = InvitePayload(
        email=email,
        role=role,
        store_role=store_role,
        store_ids=store_ids,
        organization_id=organization_id,
    )
    token = tokens.issue_invite_token(invite)
    link = build_invite_link(token, body.invite_url_base)

    organization_name = None
    if organization_id is not None:
        org = await db.get(Organization, organization_id)
        organization_name = org.name if org else None

    subject, html_body, text_body = render_invite_email(invite, link, organization_name)
    try:
        await sender.send([email], subject, html_body, text_body)
    except Exception as e:
        logger.exception("Invite email to %s failed", email)
        raise InvitationDeliveryError() from e

    logger.info("Invited %s as %s to organization %s", email, role, organization_id)
    return InviteResponse(invite_link=link, token=token)


# ── Accept ──────────────────────────────────────────────────

def read_invite(tokens: TokenService, token: str) -> InvitePayload:
    try:
        return tokens.verify_invite_token(token)
    except InvalidTokenError as e:
        raise BadRequestError(f"Invalid invite: {e}") from e


async def accept_invitation(
    db: AsyncSession,
    tokens: TokenService,
    token: str,
    password: str,
) -> User:
    invite = read_invite(tokens, token)
    email = invite.email.strip().lower()
    role = (invite.role or UserRole.STORE.value).upper()
    if role not in VALID_ROLES:
        raise BadRequestError(f"Invalid invite: unknown role {invite.role}")

    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(
            email=email,
            hashed_password=hash_password(password),
            role=UserRole(role),
            organization_id=invite.organization_id,
            is_new_organization=False,
        )
        db.add(user)
        await db.flush()
    else:
        user.hashed_password = hash_password(password)

    if role == UserRole.STORE.value and invite.store_ids:
        store_role = (
            StoreRole.MANAGER
            if invite.store_role == StoreRole.MANAGER.value
            else StoreRole.STORE
        )
        store_ids = [int(s) for s in invite.store_ids]
        await db.execute(
            delete(UserStoreAccess).where(
                UserStoreAccess.user_id == user.id,
                UserStoreAccess.store_id.in_(store_ids),
            )
        )
        for store_id in dict.fromkeys(store_ids):
            db.add(
                UserStoreAccess(
                    user_id=user.id,
                    store_id=store_id,
                    organization_id=invite.organization_id,
                    store_role=store_role,
                )
            )

    await db.flush()
    logger.info("Invite accepted by %s", email)
    return user
