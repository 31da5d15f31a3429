"""Game tables — create, join, list players and GMs."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventide.models.db_models import Game, GamePlayer

ROLES = ("GM", "PL")


async def create_game(db: AsyncSession, name: str, created_by: str) -> Game:
    game = Game(name=name, created_by=created_by)
    db.add(game)
    await db.flush()

    # Creator runs the table
    link = GamePlayer(game_id=game.id, user_id=created_by, role="GM")
    db.add(link)
    await db.flush()
    return game


async def join_game(
    db: AsyncSession,
    game_id: str,
    user_id: str,
    role: str = "PL",
) -> GamePlayer:
    if role not in ROLES:
        raise ValueError(f"Invalid role: {role}")
    existing = await db.execute(
        select(GamePlayer).where(
            GamePlayer.game_id == game_id, GamePlayer.user_id == user_id
        )
    )
    link = existing.scalar_one_or_none()
    if link is not None:
        link.role = role
    else:
        link = GamePlayer(game_id=game_id, user_id=user_id, role=role)
        db.add(link)
    await db.flush()
    return link


async def get_game(db: AsyncSession, game_id: str) -> Game | None:
    result = await db.execute(select(Game).where(Game.id == game_id))
    return result.scalar_one_or_none()


async def get_game_players(db: AsyncSession, game_id: str) -> list[GamePlayer]:
    result = await db.execute(
        select(GamePlayer).where(GamePlayer.game_id == game_id)
    )
    return list(result.scalars().all())


async def get_gm_ids(db: AsyncSession, game_id: str) -> list[str]:
    result = await db.execute(
        select(GamePlayer.user_id).where(
            GamePlayer.game_id == game_id, GamePlayer.role == "GM"
        )
    )
    return list(result.scalars().all())
