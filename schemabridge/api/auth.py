"""
Bearer-token guard for administrative endpoints (/logs, /dummy-mode).
"""

import secrets
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..core import config
from util.logging import logger

security = HTTPBearer(auto_error=False)


def authenticate(token_input: Optional[str]) -> bool:
    """
    Validate a token against LOGS_ADMIN_TOKEN.

    All authentication attempts are logged (never the token itself).
    """
    expected_token = config.get_logs_admin_token()

    if not expected_token or not expected_token.strip():
        logger.error("Admin authentication attempted but no LOGS_ADMIN_TOKEN configured")
        return False

    if not token_input:
        logger.warning("Admin authentication failed: no token provided")
        return False

    if not secrets.compare_digest(token_input.encode("utf-8"), expected_token.encode("utf-8")):
        logger.warning("Admin authentication failed: invalid token provided")
        return False

    logger.info("Admin authentication successful")
    return True


def require_admin(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> str:
    """FastAPI dependency; returns the accessor label for audit records."""
    if not config.get_logs_admin_token():
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                            detail="Administrative access is disabled (LOGS_ADMIN_TOKEN not set)")

    if not authenticate(credentials.credentials if credentials else None):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                            detail="Invalid or missing bearer token",
                            headers={"WWW-Authenticate": "Bearer"})
    return "admin"
