from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from scheduler.auth import jwt_handler

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    email: str
    role: str


def _authorize(token: str, allowed_roles: set[str], denied_detail: str) -> Principal:
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    role = payload.get("role")
    if role not in allowed_roles:
        raise HTTPException(status_code=403, detail=denied_detail)
    return Principal(email=email, role=role)


def require_admin(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Principal:
    return _authorize(credentials.credentials, {jwt_handler.ADMIN_ROLE}, "Administrator access required")


def optional_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_security),
) -> Principal | None:
    """None for anonymous callers; a presented token must still be a valid admin token."""
    if credentials is None:
        return None
    return _authorize(credentials.credentials, {jwt_handler.ADMIN_ROLE}, "Administrator access required")


def require_checkout_service(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Principal:
    return _authorize(
        credentials.credentials,
        {jwt_handler.CHECKOUT_ROLE, jwt_handler.ADMIN_ROLE},
        "Checkout service access required",
    )
