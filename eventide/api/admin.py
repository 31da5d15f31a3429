"""Admin API — authoring of games, characters, items, action cards and combats."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from eventide.domain import action_card, combat as combat_mod, game as game_mod, permissions
from eventide.domain import character
from eventide.domain.errors import ThresholdValidationError
from eventide.infra.auth import get_current_user
from eventide.infra.db import get_db
from eventide.models.action_card import ActionCardData, EffectChange
from eventide.models.db_models import User

router = APIRouter(prefix="/api/admin", tags=["admin"])


# --- Request schemas ---


class CreateGameRequest(BaseModel):
    name: str


class AddPlayerRequest(BaseModel):
    user_id: str
    role: str = "PL"


class CreateCharacterRequest(BaseModel):
    game_id: str
    name: str
    owner_user_id: str | None = None
    abilities: dict[str, int] | None = None
    hidden: dict[str, int] | None = None
    resolve: int = 10
    power: int = 5


class AddItemRequest(BaseModel):
    item_type: str  # status | gear | feature | combatPower | transformation
    name: str
    description: str = ""
    changes: list[EffectChange] = []
    quantity: int = 1
    equipped: bool = True
    cost: int = 0
    cursed: bool = False


class CreateActionCardRequest(BaseModel):
    game_id: str
    actor_id: str
    name: str
    data: ActionCardData


class StartCombatRequest(BaseModel):
    game_id: str
    combatant_ids: list[str]


async def _require_gm(db: AsyncSession, game_id: str, user_id: str) -> None:
    try:
        await permissions.require_gm(db, game_id, user_id)
    except ValueError as e:
        raise HTTPException(status_code=403, detail=str(e))


# --- Games ---


@router.post("/games")
async def create_game(
    req: CreateGameRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    game = await game_mod.create_game(db, req.name, current_user.id)
    return {"game_id": game.id, "name": game.name}


@router.post("/games/{game_id}/players")
async def add_player(
    game_id: str,
    req: AddPlayerRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    await _require_gm(db, game_id, current_user.id)
    try:
        link = await game_mod.join_game(db, game_id, req.user_id, role=req.role)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"game_id": game_id, "user_id": link.user_id, "role": link.role}


# --- Characters ---


@router.post("/characters")
async def create_character(
    req: CreateCharacterRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """GMs create any character; players only characters they own."""
    if req.owner_user_id != current_user.id:
        await _require_gm(db, req.game_id, current_user.id)
    else:
        try:
            await permissions.require_game_player(db, req.game_id, current_user.id)
        except ValueError as e:
            raise HTTPException(status_code=403, detail=str(e))
    try:
        c = await character.create_character(
            db,
            game_id=req.game_id,
            name=req.name,
            owner_user_id=req.owner_user_id,
            abilities=req.abilities,
            hidden=req.hidden,
            resolve=req.resolve,
            power=req.power,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"character_id": c.id, "name": c.name, "stats": character.get_derived_stats(c)}


@router.post("/characters/{character_id}/items")
async def add_item(
    character_id: str,
    req: AddItemRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    c = await character.get_character(db, character_id)
    if c is None:
        raise HTTPException(status_code=404, detail="Character not found")
    if not await character.has_control_authority(db, c, current_user.id):
        raise HTTPException(status_code=403, detail="Not allowed to edit this character")
    item = await character.add_item(
        db,
        c,
        item_type=req.item_type,
        name=req.name,
        description=req.description,
        changes=req.changes,
        quantity=req.quantity,
        equipped=req.equipped,
        cost=req.cost,
        cursed=req.cursed,
    )
    return {"item_id": item.id, "name": item.name, "stats": character.get_derived_stats(c)}


# --- Action cards ---


@router.post("/action-cards")
async def create_action_card(
    req: CreateActionCardRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Author an action card. Malformed thresholds are rejected with 422."""
    actor = await character.get_character(db, req.actor_id)
    if actor is None:
        raise HTTPException(status_code=404, detail="Character not found")
    if not await character.has_control_authority(db, actor, current_user.id):
        raise HTTPException(status_code=403, detail="Not allowed to author for this character")
    try:
        card = await action_card.create_action_card(
            db, req.game_id, req.actor_id, req.name, req.data, created_by=current_user.id
        )
    except ThresholdValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"action_card_id": card.id, "name": card.name}


# --- Combat ---


@router.post("/combats")
async def start_combat(
    req: StartCombatRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    await _require_gm(db, req.game_id, current_user.id)
    try:
        c = await combat_mod.start_combat(db, req.game_id, req.combatant_ids)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "combat_id": c.id,
        "round": c.round,
        "current": combat_mod.current_combatant_id(c),
    }


@router.delete("/combats/{game_id}")
async def end_combat(
    game_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    await _require_gm(db, game_id, current_user.id)
    try:
        c = await combat_mod.end_combat(db, game_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"combat_id": c.id, "is_active": c.is_active}
