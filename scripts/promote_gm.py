"""Seat a user as GM of a game, e.g. to hand a table over.

Usage:
    python scripts/promote_gm.py <game_id> <user_id>
"""

from __future__ import annotations

import asyncio
import sys

from eventide.domain import game as game_mod
from eventide.domain.permissions import get_role
from eventide.infra.db import init_db, session_scope


async def promote(game_id: str, user_id: str) -> int:
    await init_db()
    async with session_scope() as db:
        game = await game_mod.get_game(db, game_id)
        if game is None:
            print(f"Error: game {game_id} not found.")
            return 1

        role = await get_role(db, game_id, user_id)
        if role == "GM":
            print(f"{user_id} already runs '{game.name}'.")
            return 0

        await game_mod.join_game(db, game_id, user_id, role="GM")
        seated = "promoted from PL" if role == "PL" else "seated"
        print(f"{user_id} {seated} as GM of '{game.name}'.")
    return 0


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print(__doc__.strip())
        sys.exit(1)
    sys.exit(asyncio.run(promote(sys.argv[1], sys.argv[2])))
