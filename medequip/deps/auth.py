from __future__ import annotations

from dataclasses import dataclass

from fastapi import Header, HTTPException, Request, status
from fastapi.security.utils import get_authorization_scheme_param

from ..core.config import settings
from ..core.security import ACCESS, TokenError, check_api_key, read_token
from ..middlewares import principal_ctx_var


@dataclass(frozen=True)
class Admin:
    """Who passed the admin gate and how."""

    principal: str
    method: str


def _deny(detail: str, code: int = status.HTTP_401_UNAUTHORIZED) -> HTTPException:
    headers = {"WWW-Authenticate": "Bearer"} if code == status.HTTP_401_UNAUTHORIZED else None
    return HTTPException(status_code=code, detail=detail, headers=headers)


def _admit(request: Request, principal: str, method: str) -> Admin:
    principal_ctx_var.set(principal)
    request.state.principal = principal
    return Admin(principal=principal, method=method)


async def require_admin(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> Admin:
    """Equipment and reservation management: API key, or a bearer token with the admin scope."""

    if x_api_key is not None and settings.AUTH_ALLOW_API_KEY and check_api_key(x_api_key):
        return _admit(request, "api-key", "api_key")

    scheme, token = get_authorization_scheme_param(authorization)
    if scheme.lower() == "bearer" and token:
        try:
            claims = read_token(token, ACCESS)
        except TokenError as exc:
            raise _deny(str(exc)) from exc
        if not claims.is_admin:
            raise _deny("Admin scope required", status.HTTP_403_FORBIDDEN)
        request.state.token_claims = claims
        return _admit(request, f"admin:{claims.sub}", "jwt")

    raise _deny("Invalid API key" if x_api_key else "Authorization required")
