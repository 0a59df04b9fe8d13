"""Teacher authentication: bearer JWTs signed with the configured secret."""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from feedback_agent.config.settings import get_settings
from feedback_agent.middleware.error_handler import set_user_context

# Configuration
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_HOURS = 12

# Security scheme
security = HTTPBearer(auto_error=False)


def create_access_token(teacher_uid: str, secret: Optional[str] = None, expire_hours: float = ACCESS_TOKEN_EXPIRE_HOURS) -> str:
    """Create a JWT access token for a teacher uid."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": teacher_uid,
        "exp": now + timedelta(hours=expire_hours),
        "iat": now,
    }
    return jwt.encode(payload, secret or get_settings().jwt_secret, algorithm=ALGORITHM)


def decode_token(token: str, secret: Optional[str] = None) -> Optional[dict]:
    """Decode and validate a JWT token."""
    try:
        return jwt.decode(token, secret or get_settings().jwt_secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


async def get_teacher_uid(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> str:
    """The authenticated teacher's uid from the bearer token."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not get_settings().jwt_secret:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Teacher authentication is not configured",
        )

    payload = decode_token(credentials.credentials)
    if payload is None or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    uid = str(payload["sub"])
    request.state.user_id = uid
    set_user_context(user_id=uid)
    return uid
