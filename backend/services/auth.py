"""
Session Token Service

The identity provider issues HS256 JWT session tokens:
- sub: user id
- org_id: active organization (management group)

This service only verifies them; creating tokens is provided for tooling
and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from jose import JWTError, jwt
from pydantic import BaseModel

logger = logging.getLogger(__name__)

ACCESS_TOKEN_EXPIRE_MINUTES = 60  # 1 hour


# ==================== MODELS ====================

class SessionUser(BaseModel):
    """Authenticated caller bound to an organization"""
    user_id: str
    org_id: str


class TokenData(BaseModel):
    """Data extracted from a session token"""
    user_id: str
    org_id: Optional[str] = None
    exp: Optional[datetime] = None


# ==================== JWT UTILITIES ====================

def create_session_token(
    user_id: str,
    org_id: Optional[str],
    secret_key: str,
    algorithm: str = "HS256",
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create a session token"""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))

    to_encode = {
        "sub": user_id,
        "exp": expire,
        "iat": now,
    }
    if org_id:
        to_encode["org_id"] = org_id

    return jwt.encode(to_encode, secret_key, algorithm=algorithm)


def decode_session_token(token: str, secret_key: str, algorithm: str = "HS256") -> Optional[TokenData]:
    """Decode and validate a session token"""
    try:
        payload = jwt.decode(token, secret_key, algorithms=[algorithm])
    except JWTError as e:
        logger.warning(f"JWT decode error: {e}")
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None

    exp = payload.get("exp")
    return TokenData(
        user_id=user_id,
        org_id=payload.get("org_id") or None,
        exp=datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None,
    )
