"""
Resolves the caller's identity from a bearer JWT.

Sessions are issued by the library's auth service; here we only verify the
token and read the user's email, which is the identity the engine keys on.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

from libris.core.security import decode_access_token

logger = logging.getLogger(__name__)


def _unauthorized(detail: str = "Not authenticated") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _extract_bearer_token(request: Request) -> str:
    """
    Extract 'Bearer <token>' from Authorization header.
    """
    auth = request.headers.get("Authorization")
    if not auth:
        raise _unauthorized("Missing Authorization header")

    parts = auth.split()
    if len(parts) != 2:
        raise _unauthorized("Invalid Authorization header format. Expected 'Bearer <token>'")

    scheme, token = parts
    if scheme.lower() != "bearer":
        raise _unauthorized("Invalid auth scheme. Expected 'Bearer'")

    return token


def get_current_user_email(request: Request) -> str:
    """
    FastAPI dependency: the authenticated user's email.

    Uses the `email` claim, falling back to `sub` for tokens that carry the
    email as subject.
    """
    token = _extract_bearer_token(request)
    payload = decode_access_token(token)
    if payload is None:
        logger.warning("JWT validation failed for %s %s", request.method, request.url.path)
        raise _unauthorized("Token validation failed")

    email = payload.get("email") or payload.get("sub")
    if not email:
        raise _unauthorized("Token missing email")
    return str(email)
