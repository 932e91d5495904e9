"""
Bearer token authentication for Bluhatch.

Tokens are HS256 JWTs whose ``sub`` claim is the owner's UUID. They are read
from the ``Authorization: Bearer`` header, falling back to the ``auth_token``
cookie.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

import jwt
from fastapi import HTTPException, Request

from core import config
from core.logging import get_logger

from .models import AuthToken, CurrentUser

logger = get_logger(__name__)


def create_access_token(user_id: UUID, email: Optional[str] = None) -> AuthToken:
    """Create a JWT token for an authenticated user."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "exp": now + timedelta(hours=config.JWT_EXPIRY_HOURS),
        "iat": now
    }

    return AuthToken(
        access_token=jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM),
        expires_in=config.JWT_EXPIRY_HOURS * 3600,
    )


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Verify and decode a JWT token."""
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.warning("JWT token expired")
        return None
    except jwt.InvalidTokenError:
        logger.warning("Invalid JWT token")
        return None


def extract_token(request: Request) -> Optional[str]:
    """Extract JWT token from request."""
    # Try Authorization header
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]

    # Try cookie
    return request.cookies.get("auth_token")


def get_current_user(request: Request) -> CurrentUser:
    """Require authentication - raise 401 if not authenticated."""
    token = extract_token(request)
    payload = decode_access_token(token) if token else None

    user = None
    if payload:
        try:
            user = CurrentUser(id=UUID(str(payload.get("sub"))), email=payload.get("email"))
        except ValueError:
            logger.warning("JWT subject is not a user id")

    if user is None:
        raise HTTPException(
            status_code=401,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"}
        )

    request.state.user = user
    return user
