"""
Authentication Dependencies

Provides:
- get_current_session: caller with both a user and an organization, or 401
"""

import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from config import Settings, get_settings
from services.auth import SessionUser, decode_session_token

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


# ==================== DEPENDENCIES ====================

async def get_current_session(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    settings: Settings = Depends(get_settings)
) -> SessionUser:
    """
    Extract the caller from the bearer token.
    Raises 401 if no token, invalid token, or no active organization.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"}
        )

    token_data = decode_session_token(
        credentials.credentials, settings.JWT_SECRET_KEY, settings.JWT_ALGORITHM
    )

    if not token_data:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"}
        )

    if not token_data.org_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No active organization",
            headers={"WWW-Authenticate": "Bearer"}
        )

    return SessionUser(user_id=token_data.user_id, org_id=token_data.org_id)
