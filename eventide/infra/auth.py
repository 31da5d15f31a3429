"""Authentication — JWT access tokens and hashed API keys."""

from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import Depends, HTTPException, Request
from jose import JWTError, jwt
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventide.infra.config import settings
from eventide.infra.db import get_db
from eventide.models.db_models import User


class TokenData(BaseModel):
    user_id: str
    exp: datetime


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    expires_at: datetime

    def as_payload(self) -> dict:
        return {
            "user_id": self.user_id,
            "access_token": self.access_token,
            "expires_at": self.expires_at.isoformat(),
        }


# --- API keys ---


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode()).hexdigest()


def generate_api_key() -> tuple[str, str]:
    """Returns (raw_key, hash). Only the hash is stored."""
    raw_key = secrets.token_hex(32)
    return raw_key, hash_api_key(raw_key)


# --- JWT ---


def create_access_token(user_id: str) -> TokenResponse:
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expire_minutes)
    token = jwt.encode(
        {"sub": user_id, "exp": expires_at},
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return TokenResponse(access_token=token, user_id=user_id, expires_at=expires_at)


def decode_access_token(token: str) -> TokenData:
    """Decode and validate a JWT. Raises HTTPException(401) on failure."""
    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise HTTPException(status_code=401, detail=f"Invalid token: {e}")
    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token: missing subject")
    return TokenData(
        user_id=user_id,
        exp=datetime.fromtimestamp(claims.get("exp", 0), tz=timezone.utc),
    )


# --- FastAPI dependency ---


async def _active_user(db: AsyncSession, *criteria) -> User | None:
    result = await db.execute(select(User).where(*criteria, User.is_active.is_(True)))
    return result.scalar_one_or_none()


async def get_current_user(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Resolve the caller from a Bearer JWT, falling back to ``X-API-Key``."""
    scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials:
        token_data = decode_access_token(credentials)
        user = await _active_user(db, User.id == token_data.user_id)
        if user is not None:
            return user

    api_key = request.headers.get("X-API-Key")
    if api_key:
        user = await _active_user(db, User.api_key_hash == hash_api_key(api_key))
        if user is not None:
            return user

    raise HTTPException(status_code=401, detail="Authentication required")
