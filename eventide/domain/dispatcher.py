"""Event dispatcher — the single entry point for all game events."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from eventide.domain import action_card, approval, rolls
from eventide.domain import character as character_mod
from eventide.domain import combat as combat_mod
from eventide.domain.narrative import NarrativeLog
from eventide.domain.permissions import require_game_player, require_gm
from eventide.models.event import (
    ApproveActionCardPayload,
    DismissApprovalPayload,
    EventType,
    ExecuteActionCardPayload,
    GameEvent,
    RollFormulaPayload,
)
from eventide.models.result import EngineResult, ExecutionResult, StateChange


async def dispatch(db: AsyncSession, log: NarrativeLog, event: GameEvent) -> EngineResult:
    """Route a GameEvent to its handler and return an EngineResult."""
    payload = event.payload
    et = payload.event_type

    try:
        await require_game_player(db, event.game_id, event.user_id)
        if et == EventType.EXECUTE_ACTION_CARD:
            return await _handle_execute(db, log, event)
        elif et == EventType.APPROVE_ACTION_CARD:
            return await _handle_approve(db, log, event)
        elif et == EventType.DISMISS_APPROVAL:
            return await _handle_dismiss(db, event)
        elif et == EventType.ROLL_FORMULA:
            return await _handle_roll(db, log, event)
        elif et == EventType.NEXT_TURN:
            return await _handle_next_turn(db, event)
        else:
            return EngineResult(
                success=False, event_type=et, error=f"Unhandled event type: {et}"
            )
    except Exception as exc:
        return EngineResult(success=False, event_type=et, error=str(exc))


def _execution_result(event_type: str, result: ExecutionResult) -> EngineResult:
    changes = [
        StateChange(
            entity_type="character",
            entity_id=d.target_id,
            field="resolve",
            old_value=str(d.resolve_before),
            new_value=str(d.resolve_after),
        )
        for d in result.damage_results
        if d.applied
    ]
    changes.extend(
        StateChange(
            entity_type="character_item",
            entity_id=a.target_id,
            field=a.effect.item_type,
            new_value=a.effect.name,
        )
        for a in result.status_results + result.transformation_results
        if a.applied
    )
    if result.awaiting_approval:
        narrative = "Waiting for GM approval"
    elif result.success:
        narrative = None
    else:
        narrative = result.message
    return EngineResult(
        success=result.success,
        event_type=event_type,
        data=result.model_dump(mode="json"),
        narrative=narrative,
        state_changes=changes,
        error=None if result.success else result.reason,
    )


# --- Action cards ---

async def _handle_execute(db: AsyncSession, log: NarrativeLog, event: GameEvent) -> EngineResult:
    payload: ExecuteActionCardPayload = event.payload  # type: ignore[assignment]
    card = await action_card.require_action_card(db, payload.action_card_id)
    if card.game_id != event.game_id:
        raise ValueError(f"Action card {card.id} is not in game {event.game_id}")
    result = await action_card.execute_action_card(
        db,
        log,
        payload.action_card_id,
        event.user_id,
        payload.target_ids,
        transformation_selections=payload.transformation_selections,
    )
    return _execution_result("execute_action_card", result)


async def _handle_approve(db: AsyncSession, log: NarrativeLog, event: GameEvent) -> EngineResult:
    payload: ApproveActionCardPayload = event.payload  # type: ignore[assignment]
    result = await approval.approve(db, log, payload.request_id, event.user_id)
    return _execution_result("approve_action_card", result)


async def _handle_dismiss(db: AsyncSession, event: GameEvent) -> EngineResult:
    payload: DismissApprovalPayload = event.payload  # type: ignore[assignment]
    req = await approval.dismiss(db, payload.request_id, event.user_id)
    return EngineResult(
        success=True,
        event_type="dismiss_approval",
        data={"request_id": req.id, "status": req.status},
        state_changes=[
            StateChange(
                entity_type="approval_request",
                entity_id=req.id,
                field="status",
                old_value="pending",
                new_value=req.status,
            )
        ],
    )


# --- Rolls ---

async def _handle_roll(db: AsyncSession, log: NarrativeLog, event: GameEvent) -> EngineResult:
    payload: RollFormulaPayload = event.payload  # type: ignore[assignment]
    actor = await character_mod.require_character(db, payload.character_id)
    if not await character_mod.has_control_authority(db, actor, event.user_id):
        raise ValueError(f"User {event.user_id} cannot roll for {actor.name}")
    result = await rolls.roll_formula(
        db, log, actor, payload.formula, label=payload.label, author_user_id=event.user_id
    )
    return EngineResult(
        success=True,
        event_type="roll_formula",
        data=result.model_dump(mode="json"),
        narrative=f"{actor.name} rolls {payload.label or payload.formula}: {result.outcome.total}",
    )


# --- Turn order ---

async def _handle_next_turn(db: AsyncSession, event: GameEvent) -> EngineResult:
    await require_gm(db, event.game_id, event.user_id)
    combat = await combat_mod.next_turn(db, event.game_id)
    return EngineResult(
        success=True,
        event_type="next_turn",
        data={
            "combat_id": combat.id,
            "turn": combat.turn,
            "round": combat.round,
            "current": combat_mod.current_combatant_id(combat),
        },
        state_changes=[
            StateChange(
                entity_type="combat",
                entity_id=combat.id,
                field="turn",
                new_value=str(combat.turn),
            )
        ],
    )
