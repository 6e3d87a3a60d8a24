"""JWT token creation and decoding.

Session token claims:
  - userId, role, email
  - organizationId, organizationName, isNewOrganization
  - permissions:   {isFullAccess, isStaff, fullAccessStoreIds, staffStoreIds}
  - storeIds:      store ids the user is scoped to (see resolve_access)
  - storeRole:     "STORE" | "MANAGER" | null
  - type:          "session"
  - iat / exp:     issue and expiry timestamps

Invite token claims:
  - email, role, storeRole, storeIds, organizationId
  - type:          "invite"
  - iat / exp      (7 days by default)

Expiry is judged against the service's clock rather than the wall clock
inside python-jose, so tests can move time forward without sleeping.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

from jose import JWTError, jwt
from pydantic import ValidationError

from stockit.config import settings
from stockit.schemas.auth import InvitePayload, SessionClaims

SESSION_TOKEN = "session"
INVITE_TOKEN = "invite"


class InvalidTokenError(Exception):
    """Bad signature, malformed token or unexpected claim shape."""


class TokenExpiredError(InvalidTokenError):
    pass


class WrongTokenTypeError(InvalidTokenError):
    """A valid token of the wrong kind (e.g. an invite used as a session)."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        session_ttl: timedelta = timedelta(days=1),
        invite_ttl: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.session_ttl = session_ttl
        self.invite_ttl = invite_ttl
        self.clock = clock

    # ── Encoding ─────────────────────────────────────────────

    def _encode(self, claims: dict, token_type: str, ttl: timedelta) -> str:
        now = self.clock()
        payload = {
            **claims,
            "type": token_type,
            "iat": int(now.timestamp()),
            "exp": int((now + ttl).timestamp()),
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def issue_session_token(self, claims: SessionClaims) -> str:
        return self._encode(
            claims.model_dump(by_alias=True), SESSION_TOKEN, self.session_ttl
        )

    def issue_invite_token(self, invite: InvitePayload) -> str:
        body = invite.model_dump(by_alias=True, exclude={"type"})
        return self._encode(body, INVITE_TOKEN, self.invite_ttl)

    # ── Decoding ─────────────────────────────────────────────

    def _decode(self, token: str, expected_type: str) -> dict:
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except JWTError as e:
            raise InvalidTokenError(str(e)) from e

        exp = payload.get("exp")
        if not isinstance(exp, (int, float)):
            raise InvalidTokenError("Token has no expiry")
        if self.clock().timestamp() >= exp:
            raise TokenExpiredError("Token has expired")

        if payload.get("type") != expected_type:
            raise WrongTokenTypeError(
                f"Expected a {expected_type} token, got {payload.get('type')!r}"
            )
        return payload

    def verify_session_token(self, token: str) -> SessionClaims:
        payload = self._decode(token, SESSION_TOKEN)
        try:
            return SessionClaims.model_validate(payload)
        except ValidationError as e:
            raise InvalidTokenError("Malformed session claims") from e

    def verify_invite_token(self, token: str) -> InvitePayload:
        payload = self._decode(token, INVITE_TOKEN)
        try:
            return InvitePayload.model_validate(payload)
        except ValidationError as e:
            raise InvalidTokenError("Malformed invite claims") from e


token_service = TokenService(
    secret_key=settings.secret_key,
    algorithm=settings.jwt_algorithm,
    session_ttl=timedelta(minutes=settings.session_token_expire_minutes),
    invite_ttl=timedelta(days=settings.invite_token_expire_days),
)


def get_token_service() -> TokenService:
    return token_service
