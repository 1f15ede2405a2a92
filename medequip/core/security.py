"""Administrator credentials and the signed tokens handed out after login.

Two kinds of token are issued, both HS256 JWTs scoped to this service:
``access`` (short lived, sent as ``Authorization: Bearer``) and ``refresh``
(long lived, only accepted by the refresh endpoint). Every token carries the
``admin`` scope; there are no other roles.
"""

from __future__ import annotations

import hmac
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from .config import settings

ALGORITHM = "HS256"
AUDIENCE = "medequip-admin"
ISSUER = "medequip"
ADMIN_SCOPE = "admin"

ACCESS = "access"
REFRESH = "refresh"


class TokenError(ValueError):
    """Raised for any token that cannot be trusted: bad signature, expired, wrong kind."""


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class AdminClaims(BaseModel):
    sub: str
    exp: datetime
    iat: datetime
    typ: str
    aud: str
    iss: str
    scope: str = ""

    @property
    def scopes(self) -> set[str]:
        return set(self.scope.split())

    @property
    def is_admin(self) -> bool:
        return ADMIN_SCOPE in self.scopes


def _lifetime(kind: str) -> timedelta:
    if kind == ACCESS:
        return timedelta(minutes=settings.JWT_ACCESS_TTL_MIN)
    return timedelta(days=settings.JWT_REFRESH_TTL_DAYS)


def _sign(subject: str, kind: str, scope: str) -> str:
    issued = datetime.now(tz=timezone.utc)
    claims: dict[str, Any] = {
        "sub": subject,
        "typ": kind,
        "scope": scope,
        "aud": AUDIENCE,
        "iss": ISSUER,
        "iat": int(issued.timestamp()),
        "exp": int((issued + _lifetime(kind)).timestamp()),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=ALGORITHM)


def check_admin_login(username: str, password: str) -> bool:
    """Compare against ADMIN_USERNAME and either the bcrypt hash or the plain password."""

    if not hmac.compare_digest((username or "").encode(), (settings.ADMIN_USERNAME or "").encode()):
        return False
    stored_hash = (settings.ADMIN_PASSWORD_HASH or "").strip()
    if not stored_hash:
        return hmac.compare_digest((password or "").encode(), (settings.ADMIN_PASSWORD or "").encode())
    try:
        return bcrypt.checkpw((password or "").encode("utf-8"), stored_hash.encode("utf-8"))
    except ValueError:
        # not a bcrypt hash
        return False


def check_api_key(provided: str | None) -> bool:
    expected = (settings.API_KEY or "").strip()
    offered = (provided or "").strip()
    return bool(expected and offered) and hmac.compare_digest(expected.encode(), offered.encode())


def issue_admin_tokens(subject: str, scope: str = ADMIN_SCOPE) -> TokenPair:
    return TokenPair(
        access_token=_sign(subject, ACCESS, scope),
        refresh_token=_sign(subject, REFRESH, scope),
        expires_in=int(_lifetime(ACCESS).total_seconds()),
    )


def read_token(token: str, kind: str) -> AdminClaims:
    try:
        raw = jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM], audience=AUDIENCE, issuer=ISSUER)
        claims = AdminClaims.model_validate(raw)
    except (JWTError, ValidationError) as exc:
        raise TokenError("Invalid token") from exc
    if claims.typ != kind:
        raise TokenError(f"Expected a {kind} token")
    return claims


def rotate_tokens(refresh_token: str) -> TokenPair:
    claims = read_token(refresh_token, REFRESH)
    return issue_admin_tokens(claims.sub, scope=claims.scope)
