"""
Identity resolution for Levelr API requests.

Priority:
1. Clerk session JWT from the Authorization header (Bearer {token})
2. Clerk `__session` cookie (same-origin browser requests)
3. X-User-Id header, outside production only (local dev and tests)
"""
import logging
from typing import Optional

import jwt
from fastapi import Request

from levelr.core.config import Settings, settings
from levelr.core.clerk_auth import verify_jwt_token
from levelr.core.errors import AuthenticationError

logger = logging.getLogger(__name__)

SESSION_COOKIE = "__session"


def _settings_for(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or settings


def _bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE)


def resolve_user_id(request: Request, settings_obj: Optional[Settings] = None) -> Optional[str]:
    """
    Return the authenticated user id, or None when the request is anonymous.

    Raises:
        AuthenticationError: a token was presented but failed verification
    """
    cfg = settings_obj or _settings_for(request)

    token = _bearer_token(request)
    if token:
        try:
            claims = verify_jwt_token(token, cfg)
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Session expired")
        except jwt.PyJWTError as e:
            logger.debug(f"Invalid session token: {e}")
            raise AuthenticationError("Invalid session token")
        user_id = claims.get("sub")
        if not user_id:
            raise AuthenticationError("Session token has no subject")
        return user_id

    if not cfg.is_production:
        header_user = request.headers.get("X-User-Id")
        if header_user and header_user.strip():
            return header_user.strip()

    return None


async def get_current_user_id(request: Request) -> str:
    """FastAPI dependency: authenticated user id or 401."""
    user_id = resolve_user_id(request)
    if not user_id:
        raise AuthenticationError("Authentication required")
    return user_id
