"""Combat turn order — combatant list, active turn, rounds."""

from __future__ import annotations

import json

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventide.models.db_models import Character, Combat


async def start_combat(
    db: AsyncSession, game_id: str, combatant_ids: list[str]
) -> Combat:
    """Start a combat, ending any active one in the same game."""
    if not combatant_ids:
        raise ValueError("A combat needs at least one combatant")
    current = await get_active_combat(db, game_id)
    if current is not None:
        current.is_active = False

    combat = Combat(
        game_id=game_id,
        combatant_ids_json=json.dumps(combatant_ids),
        turn=0,
        round=1,
        is_active=True,
    )
    db.add(combat)
    await db.flush()
    return combat


async def get_active_combat(db: AsyncSession, game_id: str) -> Combat | None:
    result = await db.execute(
        select(Combat)
        .where(Combat.game_id == game_id, Combat.is_active.is_(True))
        .order_by(Combat.created_at.desc())
    )
    return result.scalars().first()


def combatant_ids(combat: Combat) -> list[str]:
    return json.loads(combat.combatant_ids_json or "[]")


def current_combatant_id(combat: Combat) -> str | None:
    ids = combatant_ids(combat)
    if not ids:
        return None
    return ids[combat.turn % len(ids)]


async def is_active_turn(db: AsyncSession, character: Character) -> bool:
    """True if ``character`` holds the turn, or no combat is running."""
    combat = await get_active_combat(db, character.game_id)
    if combat is None:
        return True
    return current_combatant_id(combat) == character.id


async def next_turn(db: AsyncSession, game_id: str) -> Combat:
    """Advance to the next combatant, wrapping into a new round."""
    combat = await get_active_combat(db, game_id)
    if combat is None:
        raise ValueError(f"No active combat in game {game_id}")
    ids = combatant_ids(combat)
    combat.turn += 1
    if combat.turn >= len(ids):
        combat.turn = 0
        combat.round += 1
    await db.flush()
    return combat


async def end_combat(db: AsyncSession, game_id: str) -> Combat:
    combat = await get_active_combat(db, game_id)
    if combat is None:
        raise ValueError(f"No active combat in game {game_id}")
    combat.is_active = False
    await db.flush()
    return combat
