"""Bearer tokens shared with the external auth provider.

Claims read by the API:
  - sub:        user ID
  - role:       platform_admin | centro | corner | customer
  - entity_id:  centro or corner the user operates (those two roles only)
  - exp:        expiry

The provider signs with the same secret; `create_access_token` is used by
the CLI tooling and the tests.
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from repairhub.config import settings


def create_access_token(
    user_id: str,
    role: str,
    entity_id: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims = {"sub": user_id, "role": role, "exp": datetime.now(timezone.utc) + lifetime}
    if entity_id:
        claims["entity_id"] = entity_id
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Verified claims, or {} for a bad signature or an expired token."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return {}
