"""Permission helpers — GM/PL seats and the write-authorization capability."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventide.models.db_models import GamePlayer


class Authorization(str, Enum):
    """Who may mutate target entities during an execution.

    PRIVILEGED writes directly; STANDARD only computes results and flags
    them for remote application by a GM.
    """

    PRIVILEGED = "privileged"
    STANDARD = "standard"


async def _seat(db: AsyncSession, game_id: str, user_id: str) -> GamePlayer | None:
    result = await db.execute(
        select(GamePlayer).where(
            GamePlayer.game_id == game_id,
            GamePlayer.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def get_role(db: AsyncSession, game_id: str, user_id: str) -> str | None:
    seat = await _seat(db, game_id, user_id)
    return seat.role if seat is not None else None


async def is_gm(db: AsyncSession, game_id: str, user_id: str) -> bool:
    return await get_role(db, game_id, user_id) == "GM"


async def require_game_player(
    db: AsyncSession, game_id: str, user_id: str
) -> GamePlayer:
    """The user's seat at the table (any role). Raises ValueError if unseated."""
    seat = await _seat(db, game_id, user_id)
    if seat is None:
        raise ValueError(f"User {user_id} is not in game {game_id}")
    return seat


async def require_gm(db: AsyncSession, game_id: str, user_id: str) -> GamePlayer:
    seat = await require_game_player(db, game_id, user_id)
    if seat.role != "GM":
        raise ValueError("Only the GM can perform this action")
    return seat
