"""
JWT Bearer Tokens — HS256

Tokens are signed with the shared secret from settings and carry the
numeric user id:

    { "user_id": 42, "sub": "42", "iat": ..., "exp": ... }

User registration and login live outside this service; it only issues
tokens for a known user id (create_access_token) and verifies them on
every request (get_current_user).
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel

from readmate.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# HTTP Bearer extractor
# ---------------------------------------------------------------------------

bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Verified token payload
# ---------------------------------------------------------------------------

class TokenPayload(BaseModel):
    """Parsed, validated JWT claims — passed to route handlers."""
    user_id: int
    exp:     int


# ---------------------------------------------------------------------------
# Issue / verify
# ---------------------------------------------------------------------------

def create_access_token(user_id: int, expires_in: timedelta | None = None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (expires_in or timedelta(days=settings.jwt_expire_days))
    claims = {
        "user_id": user_id,
        "sub":     str(user_id),
        "iat":     int(now.timestamp()),
        "exp":     int(expire.timestamp()),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> TokenPayload:
    """
    Verify signature and expiry, then return the typed payload.
    Raises HTTPException(401) on any problem.
    """
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"verify_exp": True},
        )
    except ExpiredSignatureError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail="Token has expired")
    except JWTError as exc:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {exc}")

    raw_user_id = claims.get("user_id", claims.get("sub"))
    try:
        user_id = int(raw_user_id)
    except (TypeError, ValueError):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail="Token missing user_id claim")

    return TokenPayload(user_id=user_id, exp=claims["exp"])


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------

async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> TokenPayload:
    """
    FastAPI dependency that extracts and validates the Bearer token.

        @router.get("/documents")
        async def list_docs(user: TokenPayload = Depends(get_current_user)):
            ...
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return decode_token(credentials.credentials)
