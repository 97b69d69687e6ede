"""
CustomTees Backend — Access Token Helpers
===========================================

What:  Reads the bearer token from a request and decodes it with python-jose.
Why:   The storefront and the admin console send the same HS256 JWT, but
       through different headers; one place knows all of them.
Who:   app.dependencies.get_current_user; tests and ops scripts mint tokens
       with create_access_token.

Accepted headers, first non-empty wins:
    Authorization: Bearer <jwt>   (or the bare token)
    X-Admin-Token: <jwt>
    X-Access-Token: <jwt>
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional

from jose import JWTError, jwt

from app.config import settings

TOKEN_HEADERS = ("authorization", "x-admin-token", "x-access-token")


def _strip_bearer(value: str) -> str:
    value = value.strip()
    scheme, _, rest = value.partition(" ")
    if scheme.lower() == "bearer":
        return rest.strip()
    return value


def extract_token(headers: Mapping[str, str]) -> Optional[str]:
    """Returns the raw JWT from the first populated auth header, or None."""
    for name in TOKEN_HEADERS:
        raw = headers.get(name)
        if raw:
            token = _strip_bearer(raw)
            if token:
                return token
    return None


def create_access_token(
    user_id: Any,
    expires_minutes: Optional[int] = None,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """Issues a token carrying the user id in both `id` and `sub`."""
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=expires_minutes or settings.access_token_expire_minutes)
    claims: Dict[str, Any] = dict(extra_claims or {})
    claims.update({
        "id": str(user_id),
        "sub": str(user_id),
        "iat": now,
        "exp": expire,
        "jti": str(uuid.uuid4()),
    })
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """Decoded claims, or None when the token is invalid, expired or no secret is set."""
    if not settings.jwt_secret:
        return None
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"verify_sub": False},
        )
    except JWTError:
        return None


def user_id_from_claims(claims: Mapping[str, Any]) -> Optional[uuid.UUID]:
    raw = claims.get("id") or claims.get("sub")
    if not raw:
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        return None
