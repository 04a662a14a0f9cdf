"""
Security utilities for the warehouse admin API.

Includes:
- JWT access token generation and verification
- FastAPI dependency extracting the bearer token
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials as HTTPAuthCredentials
from pydantic import BaseModel
import jwt

from app.config import get_settings
from core.exceptions import UnauthorizedError

# JWT configuration
ALGORITHM = "HS256"

# HTTP Bearer for API endpoints; missing headers are reported as 401 below
security_scheme = HTTPBearer(auto_error=False)


class TokenPayload(BaseModel):
    """JWT token payload structure."""
    sub: str  # user_id
    exp: datetime
    iat: datetime
    type: str  # "access"


def create_access_token(user_id: str, expires_minutes: Optional[int] = None) -> str:
    """
    Create a JWT access token.

    Args:
        user_id: User ID
        expires_minutes: Override for the configured lifetime

    Returns:
        Encoded JWT token
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    lifetime = settings.ACCESS_TOKEN_EXPIRE_MINUTES if expires_minutes is None else expires_minutes
    expire = now + timedelta(minutes=lifetime)

    payload = {
        "sub": user_id,
        "type": "access",
        "iat": now,
        "exp": expire,
    }

    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> TokenPayload:
    """
    Verify and decode a JWT token.

    Args:
        token: Encoded JWT token

    Returns:
        Decoded token payload

    Raises:
        UnauthorizedError: If token is invalid or expired
    """
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token has expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token payload")

    return TokenPayload(
        sub=user_id,
        exp=datetime.fromtimestamp(payload.get("exp"), tz=timezone.utc),
        iat=datetime.fromtimestamp(payload.get("iat"), tz=timezone.utc),
        type=payload.get("type") or "",
    )


async def get_current_user(
    credentials: Optional[HTTPAuthCredentials] = Depends(security_scheme),
) -> TokenPayload:
    """
    FastAPI dependency to get the current authenticated user from JWT token.

    Raises:
        UnauthorizedError: If token is missing, invalid, or expired
    """
    if not credentials:
        raise UnauthorizedError("Missing authorization header")

    token_payload = verify_token(credentials.credentials)

    if token_payload.type != "access":
        raise UnauthorizedError("Invalid token type")

    return token_payload
