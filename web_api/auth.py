"""
JWT authentication utilities for the web API.

Sessions are issued by the platform's login service; this API only verifies
them. The "session" cookie holds an HS256 JWT whose "sub" is the user id.
"""

import os
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, HTTPException, Request

JWT_SECRET = os.environ.get("JWT_SECRET")
JWT_ALGORITHM = "HS256"
JWT_EXPIRATION_HOURS = 24


def create_jwt(user_id: int, username: str = "") -> str:
    """
    Create a signed JWT token for a user.

    Used by tests and local tooling; production sessions come from the
    login service with the same secret.
    """
    if not JWT_SECRET:
        raise ValueError("JWT_SECRET environment variable not set")

    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "username": username,
        "iat": now,
        "exp": now + timedelta(hours=JWT_EXPIRATION_HOURS),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def verify_jwt(token: str) -> dict | None:
    """
    Verify and decode a JWT token.

    Args:
        token: The JWT token string

    Returns:
        Decoded payload dict if valid, None if invalid
    """
    if not JWT_SECRET:
        raise ValueError("JWT_SECRET environment variable not set")

    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        return None


async def get_current_user(request: Request) -> dict:
    """
    FastAPI dependency to get the current authenticated user.

    Extracts the session cookie and validates the JWT.

    Returns:
        The decoded JWT payload with "user_id" (int) added

    Raises:
        HTTPException: 401 if not authenticated or invalid token
    """
    token = request.cookies.get("session")
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    payload = verify_jwt(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    try:
        payload["user_id"] = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    return payload


async def require_admin(user: dict = Depends(get_current_user)) -> dict:
    """
    FastAPI dependency that only lets site admins through.

    Raises:
        HTTPException: 401 if not authenticated, 403 if not an admin
    """
    from core.database import get_connection
    from core.queries import users as user_queries

    async with get_connection() as conn:
        admin = await user_queries.is_admin(conn, user["user_id"])

    if not admin:
        raise HTTPException(status_code=403, detail="Admin access required")

    return user
