"""WebSocket rooms — push EngineResults to a game's table, or only to its GMs."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable

from fastapi import WebSocket

from eventide.models.result import EngineResult

logger = logging.getLogger("eventide.ws")


class ConnectionManager:
    """One room per game; one socket per user in each room."""

    def __init__(self) -> None:
        self._rooms: dict[str, dict[str, WebSocket]] = defaultdict(dict)

    async def connect(self, game_id: str, user_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self._rooms[game_id][user_id] = websocket

    def disconnect(self, game_id: str, user_id: str) -> None:
        room = self._rooms.get(game_id)
        if room is None:
            return
        room.pop(user_id, None)
        if not room:
            del self._rooms[game_id]

    async def _send(
        self, game_id: str, user_ids: Iterable[str], result: EngineResult
    ) -> int:
        room = self._rooms.get(game_id, {})
        payload = result.model_dump_json()
        delivered = 0
        dead: list[str] = []
        for user_id in user_ids:
            ws = room.get(user_id)
            if ws is None:
                continue
            try:
                await ws.send_text(payload)
                delivered += 1
            except Exception:
                logger.info("Dropping dead socket for %s in game %s", user_id, game_id)
                dead.append(user_id)
        for user_id in dead:
            self.disconnect(game_id, user_id)
        return delivered

    async def broadcast_to_game(self, game_id: str, result: EngineResult) -> int:
        """Send to everyone at the table. Returns the number of sockets reached."""
        return await self._send(game_id, list(self._rooms.get(game_id, {})), result)

    async def send_to_users(
        self, game_id: str, user_ids: Iterable[str], result: EngineResult
    ) -> int:
        """Send to a subset of the table, e.g. the GMs who must approve a request."""
        return await self._send(game_id, list(user_ids), result)

    def get_connected_users(self, game_id: str) -> list[str]:
        return list(self._rooms.get(game_id, {}).keys())


# Module-level singleton
ws_manager = ConnectionManager()
