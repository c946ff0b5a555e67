"""
JWT bearer authentication.

Tokens are issued by the identity provider; this service only validates
them. The `sub` claim carries the user id and the `role` claim marks
administrators.
"""

from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ticketing.core.config import get_settings
from ticketing.core.exceptions import AuthenticationError, PermissionDeniedError

ADMIN_ROLE = "admin"

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_minutes: int = 30) -> str:
    """Sign a token the way the identity provider does. Used by tooling and tests."""
    settings = get_settings()
    payload = data.copy()
    payload["exp"] = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError as exc:
        raise AuthenticationError("Invalid or expired token") from exc


async def get_token_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict:
    if credentials is None:
        raise AuthenticationError("Not authenticated")
    claims = decode_access_token(credentials.credentials)
    if "sub" not in claims:
        raise AuthenticationError("Token has no subject")
    return claims


async def get_current_user_id(claims: dict = Depends(get_token_claims)) -> int:
    try:
        return int(claims["sub"])
    except (TypeError, ValueError) as exc:
        raise AuthenticationError("Token subject is not a user id") from exc


async def is_admin(claims: dict = Depends(get_token_claims)) -> bool:
    return claims.get("role") == ADMIN_ROLE


async def require_admin(claims: dict = Depends(get_token_claims)) -> int:
    """Dependency for organizer/administrator-only endpoints."""
    if claims.get("role") != ADMIN_ROLE:
        raise PermissionDeniedError("Administrator role required")
    return await get_current_user_id(claims)
