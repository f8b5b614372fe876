"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_principal  → decode the bearer token into a Principal
  require_role(...)      → restrict to specific roles
  require_platform_admin → shorthand for require_role(PLATFORM_ADMIN)

`ensure_entity_access` is a plain helper for routes whose target entity
comes from the request body rather than the path.
"""

import enum
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from repairhub.auth.jwt import decode_token
from repairhub.middleware.exceptions import PermissionDeniedError

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


class Role(str, enum.Enum):
    PLATFORM_ADMIN = "platform_admin"
    CENTRO = "centro"
    CORNER = "corner"
    CUSTOMER = "customer"


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: Role
    entity_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.PLATFORM_ADMIN


async def get_current_principal(token: str | None = Depends(oauth2_scheme)) -> Principal:
    """Decode the JWT and return who is calling."""
    payload = decode_token(token) if token else {}
    user_id: str | None = payload.get("sub")
    try:
        role = Role(payload.get("role"))
    except ValueError:
        role = None

    if not user_id or role is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return Principal(user_id=user_id, role=role, entity_id=payload.get("entity_id"))


def require_role(*roles: Role):
    """Dependency factory restricting a route to one or more roles.

    Platform admins always pass.
    """
    async def _check(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not principal.is_admin and principal.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(r.value for r in roles)}",
            )
        return principal

    return _check


async def require_platform_admin(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    if not principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Platform admin access required",
        )
    return principal


def ensure_entity_access(principal: Principal, entity_type: str, entity_id: str) -> None:
    """Raise 403 unless the principal may act on the given centro/corner."""
    if principal.is_admin:
        return
    if principal.role.value == entity_type and principal.entity_id == entity_id:
        return
    raise PermissionDeniedError(f"No access to {entity_type} {entity_id}")
