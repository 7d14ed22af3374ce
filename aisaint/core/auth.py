"""
Caller identity for the chat API.

Resolves the verified user id from a Clerk JWT. The dependency never
raises: a missing or invalid credential yields None, and the services
reject None with UnauthenticatedError.
"""
from typing import Optional
import logging

import jwt
from fastapi import Header, Request

from aisaint.core.clerk_auth import verify_jwt_token
from aisaint.core.config import settings

logger = logging.getLogger(__name__)


async def identity_from_bearer(authorization: str) -> Optional[str]:
    """Return the 'sub' claim of a valid Bearer token, else None."""
    if not authorization.startswith("Bearer "):
        return None
    token = authorization[7:].strip()
    if not token:
        return None
    try:
        claims = await verify_jwt_token(token)
    except jwt.ExpiredSignatureError:
        logger.info("[auth] token expired")
        return None
    except jwt.PyJWTError as e:
        logger.info(f"[auth] invalid token: {e}")
        return None
    user_id = claims.get("sub")
    return user_id or None


async def get_caller_identity(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Local development only: trusted user id"),
) -> Optional[str]:
    """
    Extract the verified caller id.

    Priority:
    1. Clerk JWT from Authorization header
    2. X-User-Id header, only when AUTH_ALLOW_USER_HEADER is enabled
    3. None (unauthenticated)
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header:
        user_id = await identity_from_bearer(auth_header)
        if user_id:
            return user_id
        # A bad token is never upgraded by the header fallback
        return None

    if x_user_id and settings.AUTH_ALLOW_USER_HEADER:
        return x_user_id

    return None
