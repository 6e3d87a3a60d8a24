from typing import Literal

from pydantic import EmailStr, Field

from stockit.schemas.common import CamelModel


# ── Token claims ─────────────────────────────────────────────

class Permissions(CamelModel):
    """Coarse-grained access descriptor embedded in the session token."""
    is_full_access: bool = False
    is_staff: bool = False  # informational only, never gates anything
    full_access_store_ids: list[int] = []
    staff_store_ids: list[int] = []


class SessionClaims(CamelModel):
    user_id: int
    role: str
    email: str
    organization_id: int | None = None
    organization_name: str | None = None
    is_new_organization: bool = False
    permissions: Permissions = Permissions()
    store_ids: list[int] = []
    store_role: Literal["STORE", "MANAGER"] | None = None


class InvitePayload(CamelModel):
    email: str
    role: str = "STORE"
    store_role: Literal["STORE", "MANAGER"] | None = None
    store_ids: list[int] = []
    organization_id: int | None = None
    type: Literal["invite"] = "invite"


# ── Login / registration ────────────────────────────────────

class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=72)  # bcrypt input limit
    role: str = "STORE"
    organization_name: str | None = None
    is_new_organization: bool = False
    existing_organization_id: int | None = None


class UserOut(CamelModel):
    id: int
    email: str
    role: str
    organization_id: int | None = None
    organization_name: str | None = None
    is_new_organization: bool = False
    permissions: Permissions = Permissions()
    store_ids: list[int] = []
    store_role: str | None = None


class TokenResponse(CamelModel):
    token: str
    token_type: str = "bearer"
    user: UserOut
    success: bool = True


# ── Invitations ──────────────────────────────────────────────

class AcceptInviteRequest(CamelModel):
    token: str
    password: str = Field(min_length=8, max_length=72)


class VerifyInviteResponse(CamelModel):
    valid: bool
    invite: InvitePayload
