from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from libris.core.config import settings

DEFAULT_TOKEN_TTL = timedelta(minutes=30)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token (used by tests and local tooling; sessions are issued elsewhere)."""
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or DEFAULT_TOKEN_TTL)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """Decode and verify a JWT token."""
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
