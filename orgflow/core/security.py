"""Bearer token helpers.

Sign-in flows live outside this service; it only issues and verifies the
short-lived HS256 access tokens its API accepts.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import jwt

from orgflow.config import settings

ALGORITHM = "HS256"
TOKEN_ISSUER = "orgflow"
TOKEN_AUDIENCE = "orgflow"


def create_access_token(user_id: uuid.UUID | str, expires_minutes: int | None = None) -> str:
    now = datetime.now(timezone.utc)
    minutes = expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
        "iss": TOKEN_ISSUER,
        "aud": TOKEN_AUDIENCE,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Return the verified claims, or None for any invalid or expired token."""
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[ALGORITHM],
            issuer=TOKEN_ISSUER,
            audience=TOKEN_AUDIENCE,
        )
    except jwt.PyJWTError:
        return None
