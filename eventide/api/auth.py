"""Auth API — registration, API-key login and key rotation."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventide.infra.auth import (
    create_access_token,
    generate_api_key,
    get_current_user,
    hash_api_key,
)
from eventide.infra.db import get_db
from eventide.models.db_models import GamePlayer, User

router = APIRouter(prefix="/api/auth", tags=["auth"])


class RegisterRequest(BaseModel):
    username: str


class ApiKeyLoginRequest(BaseModel):
    api_key: str


@router.post("/register")
async def register(
    req: RegisterRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Create a user. The raw API key is shown here and never again."""
    taken = await db.execute(select(User.id).where(User.username == req.username))
    if taken.scalar_one_or_none() is not None:
        raise HTTPException(status_code=409, detail="Username already taken")

    raw_key, key_hash = generate_api_key()
    user = User(username=req.username, api_key_hash=key_hash)
    db.add(user)
    await db.flush()
    return {**create_access_token(user.id).as_payload(), "api_key": raw_key}


@router.post("/login/api-key")
async def login_by_api_key(
    req: ApiKeyLoginRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    result = await db.execute(select(User).where(User.api_key_hash == hash_api_key(req.api_key)))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid API key")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User account is deactivated")
    return create_access_token(user.id).as_payload()


@router.post("/api-key/rotate")
async def rotate_api_key(
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Replace the caller's API key; the old one stops working immediately."""
    raw_key, user.api_key_hash = generate_api_key()
    await db.flush()
    return {"user_id": user.id, "api_key": raw_key}


@router.get("/me")
async def get_me(
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """The caller and the tables they sit at."""
    seats = await db.execute(select(GamePlayer).where(GamePlayer.user_id == user.id))
    return {
        "user_id": user.id,
        "username": user.username,
        "is_active": user.is_active,
        "created_at": user.created_at.isoformat(),
        "games": [{"game_id": s.game_id, "role": s.role} for s in seats.scalars().all()],
    }
