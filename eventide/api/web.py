"""Web API — the game's real-time WebSocket room."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from eventide.api.actions import notify_approvers
from eventide.domain.dispatcher import dispatch
from eventide.domain.narrative import NarrativeLog
from eventide.infra.auth import decode_access_token
from eventide.infra.db import session_scope
from eventide.infra.ws_manager import ws_manager
from eventide.models.event import GameEvent

logger = logging.getLogger("eventide.ws")

router = APIRouter(prefix="/api/web", tags=["web"])

UNAUTHORIZED = 4001


async def _authenticate(websocket: WebSocket) -> str | None:
    """User id from the ``token`` query parameter; closes the socket if invalid."""
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=UNAUTHORIZED, reason="Missing token")
        return None
    try:
        return decode_access_token(token).user_id
    except HTTPException:
        await websocket.close(code=UNAUTHORIZED, reason="Invalid token")
        return None


async def _handle(log: NarrativeLog, game_id: str, user_id: str, data: dict) -> None:
    event = GameEvent(game_id=game_id, user_id=user_id, payload=data.get("payload", {}))
    async with session_scope() as db:
        result = await dispatch(db, log, event)
        await notify_approvers(db, game_id, result)
    await ws_manager.broadcast_to_game(game_id, result)


@router.websocket("/ws/{game_id}")
async def websocket_game(websocket: WebSocket, game_id: str) -> None:
    """Connect with ``ws://host/api/web/ws/{game_id}?token=<jwt>``.

    Receives ``{"payload": {...}}`` game events, dispatched as the token's
    user. Every EngineResult in the game is pushed to the whole room;
    pending approvals are also pushed to the game's GMs.
    """
    user_id = await _authenticate(websocket)
    if user_id is None:
        return

    log = websocket.app.state.narrative_log
    await ws_manager.connect(game_id, user_id, websocket)
    try:
        while True:
            data = await websocket.receive_json()
            try:
                await _handle(log, game_id, user_id, data)
            except ValidationError as exc:
                await websocket.send_json({"success": False, "error": str(exc)})
            except Exception as exc:
                logger.warning("Event from %s in %s failed", user_id, game_id, exc_info=True)
                await websocket.send_json({"success": False, "error": str(exc)})
    except WebSocketDisconnect:
        ws_manager.disconnect(game_id, user_id)
