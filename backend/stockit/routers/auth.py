"""Auth routes: login, register, invite verification/acceptance, profile.

Route overview:
  POST /login          email + password login
  POST /register       self-registration (new or existing organization)
  GET  /verify-invite  check an invite token before showing the accept form
  POST /accept-invite  set a password from an invite, get a session token
  GET  /me             claims of the current session

Every token issued here is built from `resolve_user_access`, so the
store scope in the token always follows the same precedence.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stockit.auth.deps import get_current_claims
from stockit.auth.jwt import TokenService, get_token_service
from stockit.auth.password import hash_password, verify_password
from stockit.auth.permissions import ResolvedAccess, resolve_user_access
from stockit.database import get_db
from stockit.middleware.exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
)
from stockit.models.organization import Organization
from stockit.models.user import User, UserRole
from stockit.schemas.auth import (
    AcceptInviteRequest,
    LoginRequest,
    RegisterRequest,
    SessionClaims,
    TokenResponse,
    UserOut,
    VerifyInviteResponse,
)
from stockit.services.invitations import accept_invitation, read_invite
from stockit.services.permissions_store import (
    PermissionsRepository,
    get_permissions_repository,
)

router = APIRouter()


# ── Helpers ──────────────────────────────────────────────────

async def _organization_name(db: AsyncSession, organization_id: int | None) -> str | None:
    if organization_id is None:
        return None
    org = await db.get(Organization, organization_id)
    return org.name if org else None


def build_session_claims(
    user: User, access: ResolvedAccess, organization_name: str | None
) -> SessionClaims:
    return SessionClaims(
        user_id=user.id,
        role=user.role.value,
        email=user.email,
        organization_id=user.organization_id,
        organization_name=organization_name,
        is_new_organization=user.is_new_organization,
        permissions=access.permissions,
        store_ids=access.store_ids,
        store_role=access.store_role,
    )


async def _build_token_response(
    db: AsyncSession,
    user: User,
    repository: PermissionsRepository,
    tokens: TokenService,
) -> TokenResponse:
    access = await resolve_user_access(db, user, repository)
    claims = build_session_claims(
        user, access, await _organization_name(db, user.organization_id)
    )
    return TokenResponse(
        token=tokens.issue_session_token(claims),
        user=UserOut(id=claims.user_id, **claims.model_dump(exclude={"user_id"})),
    )


# ── POST /login ──────────────────────────────────────────────

@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
    repository: PermissionsRepository = Depends(get_permissions_repository),
    tokens: TokenService = Depends(get_token_service),
):
    """Email + password login. Returns a session token with resolved access."""
    result = await db.execute(select(User).where(User.email == body.email.lower()))
    user = result.scalar_one_or_none()

    if not user or not verify_password(body.password, user.hashed_password):
        raise UnauthorizedError("Invalid credentials")

    return await _build_token_response(db, user, repository, tokens)


# ── POST /register ──────────────────────────────────────────

@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    repository: PermissionsRepository = Depends(get_permissions_repository),
    tokens: TokenService = Depends(get_token_service),
):
    """Self-registration.

    With `isNewOrganization` a fresh organization named `organizationName`
    is created and the user becomes its admin contact; otherwise the user
    joins `existingOrganizationId` (if given).
    """
    email = body.email.lower()
    existing = await db.execute(select(User).where(User.email == email))
    if existing.scalar_one_or_none():
        raise ConflictError("Email already registered")

    role = (body.role or UserRole.STORE.value).upper()
    if role not in {r.value for r in UserRole}:
        raise BadRequestError(f"Invalid role: {body.role}")

    organization_id = None
    if body.is_new_organization:
        if not body.organization_name or not body.organization_name.strip():
            raise BadRequestError("organizationName is required for a new organization")
        org = Organization(name=body.organization_name.strip(), admin_email=email)
        db.add(org)
        await db.flush()
        organization_id = org.id
    elif body.existing_organization_id is not None:
        org = await db.get(Organization, body.existing_organization_id)
        if org is None:
            raise NotFoundError("Organization", body.existing_organization_id)
        organization_id = org.id

    user = User(
        email=email,
        hashed_password=hash_password(body.password),
        role=UserRole(role),
        organization_id=organization_id,
        is_new_organization=body.is_new_organization,
    )
    db.add(user)
    await db.flush()

    return await _build_token_response(db, user, repository, tokens)


# ── Invites ──────────────────────────────────────────────────

@router.get("/verify-invite", response_model=VerifyInviteResponse)
async def verify_invite(
    token: str = Query(...),
    tokens: TokenService = Depends(get_token_service),
):
    return VerifyInviteResponse(valid=True, invite=read_invite(tokens, token))


@router.post("/accept-invite", response_model=TokenResponse)
async def accept_invite(
    body: AcceptInviteRequest,
    db: AsyncSession = Depends(get_db),
    repository: PermissionsRepository = Depends(get_permissions_repository),
    tokens: TokenService = Depends(get_token_service),
):
    """Create (or reset) the invited user and log them in."""
    user = await accept_invitation(db, tokens, body.token, body.password)
    return await _build_token_response(db, user, repository, tokens)


# ── GET /me ──────────────────────────────────────────────────

@router.get("/me", response_model=SessionClaims)
async def me(claims: SessionClaims = Depends(get_current_claims)):
    return claims
