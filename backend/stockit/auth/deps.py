"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_claims     → verify the bearer session token, return claims
  require_admin          → restrict to ADMIN / HEADOFFICE
  scope_to_organization  → organization scope taken from the token

Missing credentials are a 401; a presented token that is invalid,
expired or of the wrong type is a 403.
"""

import logging
from dataclasses import dataclass

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from stockit.auth.jwt import InvalidTokenError, TokenService, get_token_service
from stockit.auth.permissions import FULL_ACCESS_ROLES
from stockit.middleware.exceptions import (
    BadRequestError,
    ForbiddenError,
    UnauthorizedError,
)
from stockit.schemas.auth import SessionClaims

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


# ── Core claims dependency ──────────────────────────────────

async def get_current_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_token_service),
) -> SessionClaims:
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError()

    try:
        return tokens.verify_session_token(credentials.credentials)
    except InvalidTokenError as e:
        logger.info("Rejected session token: %s", e)
        raise ForbiddenError("Invalid or expired token") from e


# ── Role-based access control ───────────────────────────────

async def require_admin(
    claims: SessionClaims = Depends(get_current_claims),
) -> SessionClaims:
    """Restrict endpoint to ADMIN and HEADOFFICE users."""
    if claims.role not in FULL_ACCESS_ROLES:
        raise ForbiddenError("Admin access required")
    return claims


# ── Organization scoping ────────────────────────────────────

@dataclass
class OrganizationScope:
    """Organization a request is confined to.

    When the token carries an organization it overrides whatever the
    client sent, both in read filters and in write payloads.
    """

    organization_id: int | None

    def restrict(self, requested: int | None) -> int | None:
        if self.organization_id is not None:
            return self.organization_id
        return requested

    def stamp(self, payload: dict) -> dict:
        if self.organization_id is not None:
            payload["organization_id"] = self.organization_id
        return payload

    def require(self) -> int:
        if self.organization_id is None:
            raise BadRequestError("No organization context")
        return self.organization_id


async def scope_to_organization(
    claims: SessionClaims = Depends(get_current_claims),
) -> OrganizationScope:
    return OrganizationScope(organization_id=claims.organization_id)
