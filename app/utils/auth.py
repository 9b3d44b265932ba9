"""
Admin check for gallery write endpoints.
The X-CMS-Password header is verified against a bcrypt hash from settings.
"""
import logging
from typing import Optional

import bcrypt
from fastapi import Header, HTTPException, status

from app.config import settings

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    """Bcrypt hash suitable for ADMIN_PASSWORD_HASH."""
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=12)).decode('utf-8')


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), hashed_password.encode('utf-8'))
    except ValueError:
        # Malformed hash
        return False


def require_admin(
    x_cms_password: Optional[str] = Header(None, alias="X-CMS-Password", description="CMS admin password")
) -> bool:
    """
    FastAPI dependency guarding admin endpoints.

    Raises:
        HTTPException: 401 if the password is missing or wrong,
            500 if ADMIN_PASSWORD_HASH is not configured
    """
    if not x_cms_password:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Missing password", "detail": "Admin access requires password authentication"}
        )

    if not settings.ADMIN_PASSWORD_HASH:
        logger.error("ADMIN_PASSWORD_HASH not configured, rejecting admin request")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Server configuration error", "detail": "Admin password not configured"}
        )

    if not verify_password(x_cms_password, settings.ADMIN_PASSWORD_HASH):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Invalid password", "detail": "Admin access denied"}
        )

    return True
