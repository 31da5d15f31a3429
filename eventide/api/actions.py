"""Actions API — event submission, approvals, narrative log and character queries."""

from __future__ import annotations

import json
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from eventide.domain import approval, character, game as game_mod, narrative, permissions
from eventide.domain.dispatcher import dispatch
from eventide.domain.threshold import describe, validate_threshold
from eventide.infra.auth import get_current_user
from eventide.infra.db import get_db
from eventide.infra.ws_manager import ws_manager
from eventide.models.action_card import ThresholdConfig
from eventide.models.db_models import User
from eventide.models.event import GameEvent
from eventide.models.result import EngineResult

router = APIRouter(prefix="/api", tags=["actions"])


def get_narrative_log(request: Request) -> narrative.NarrativeLog:
    return request.app.state.narrative_log


async def notify_approvers(db: AsyncSession, game_id: str, result: EngineResult) -> None:
    """Push a pending approval to the game's GMs."""
    if not result.data.get("awaiting_approval"):
        return
    gm_ids = await game_mod.get_gm_ids(db, game_id)
    await ws_manager.send_to_users(
        game_id,
        gm_ids,
        EngineResult(
            success=True,
            event_type="approval_request",
            data={"request_id": result.data.get("approval_request_id")},
            narrative="An action card is waiting for your approval",
        ),
    )


# --- Event dispatch ---


@router.post("/events")
async def submit_event(
    event: GameEvent,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    log: Annotated[narrative.NarrativeLog, Depends(get_narrative_log)],
) -> dict:
    """Submit a game event as the authenticated user."""
    if event.user_id != current_user.id:
        raise HTTPException(status_code=403, detail="Cannot submit events for another user")
    result = await dispatch(db, log, event)
    await ws_manager.broadcast_to_game(event.game_id, result)
    await notify_approvers(db, event.game_id, result)
    return result.model_dump(mode="json")


# --- Games ---


@router.get("/games/{game_id}")
async def get_game(
    game_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    game = await game_mod.get_game(db, game_id)
    if game is None:
        raise HTTPException(status_code=404, detail="Game not found")
    try:
        await permissions.require_game_player(db, game_id, current_user.id)
    except ValueError as e:
        raise HTTPException(status_code=403, detail=str(e))
    players = await game_mod.get_game_players(db, game_id)
    return {
        "game_id": game.id,
        "name": game.name,
        "players": [{"user_id": p.user_id, "role": p.role} for p in players],
    }


# --- Approvals ---


@router.get("/games/{game_id}/approvals")
async def list_approvals(
    game_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[dict]:
    """Pending approval requests, oldest first. GM only."""
    try:
        await permissions.require_gm(db, game_id, current_user.id)
    except ValueError as e:
        raise HTTPException(status_code=403, detail=str(e))
    pending = await approval.get_pending(db, game_id)
    return [
        {
            "request_id": r.id,
            "actor_id": r.actor_id,
            "action_card_id": r.action_card_id,
            "requesting_user_id": r.requesting_user_id,
            "target_ids": approval.target_ids(r),
            "repetition_count": r.repetition_count,
            "roll": json.loads(r.roll_json) if r.roll_json else None,
            "created_at": r.created_at.isoformat(),
        }
        for r in pending
    ]


# --- Narrative ---


@router.get("/games/{game_id}/narrative")
async def get_narrative(
    game_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: int = 50,
    after_seq: int | None = None,
) -> list[dict]:
    try:
        await permissions.require_game_player(db, game_id, current_user.id)
    except ValueError as e:
        raise HTTPException(status_code=403, detail=str(e))
    entries = await narrative.get_entries(db, game_id, limit=limit, after_seq=after_seq)
    return [
        {
            "seq": e.seq,
            "kind": e.kind,
            "speaker_id": e.speaker_id,
            "content": e.content,
            "data": narrative.entry_data(e),
            "created_at": e.created_at.isoformat(),
        }
        for e in entries
    ]


# --- Characters ---


@router.get("/characters/{character_id}")
async def get_character(
    character_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Derived-statistics snapshot of a character."""
    c = await character.get_character(db, character_id)
    if c is None:
        raise HTTPException(status_code=404, detail="Character not found")
    try:
        await permissions.require_game_player(db, c.game_id, current_user.id)
    except ValueError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return {
        "character_id": c.id,
        "name": c.name,
        "owner_user_id": c.owner_user_id,
        "stats": character.get_derived_stats(c),
        "critical_thresholds": character.critical_thresholds(c).model_dump(),
        "active_transformation": c.active_transformation_name,
        "items": [
            {
                "item_id": i.id,
                "item_type": i.item_type,
                "name": i.name,
                "quantity": i.quantity,
                "equipped": i.equipped,
                "changes": [ch.model_dump(mode="json") for ch in character.item_changes(i)],
            }
            for i in c.items
        ],
    }


# --- Thresholds ---


@router.post("/thresholds/validate")
async def validate(
    threshold: dict,
    current_user: Annotated[User, Depends(get_current_user)],
) -> dict:
    """Check a ThresholdConfig document without saving it."""
    valid = validate_threshold(threshold)
    result: dict = {"valid": valid}
    if valid:
        result["description"] = describe(ThresholdConfig(**threshold))
    return result
