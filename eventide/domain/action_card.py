"""Action card orchestrator — validate, roll, gate on ownership, dispatch effects, repeat."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventide.domain import approval, effect_attachment, resources, rolls
from eventide.domain import character as character_mod
from eventide.domain import combat as combat_mod
from eventide.domain import repetition
from eventide.domain.errors import (
    BridgeTimeoutError,
    EligibilityError,
    EvaluationError,
)
from eventide.domain.narrative import NarrativeLog
from eventide.domain.permissions import Authorization
from eventide.domain.repetition import RepetitionContext
from eventide.domain.rules import attack_chain, damage
from eventide.domain.threshold import require_valid
from eventide.infra.config import settings
from eventide.models.action_card import ActionCardData, EmbeddedItem
from eventide.models.db_models import ActionCard, ApprovalRequest, Character
from eventide.models.result import ExecutionResult, RollResult

logger = logging.getLogger("eventide.action_card")


# --- Authoring ---


def load_card_data(action_card: ActionCard) -> ActionCardData:
    return ActionCardData.model_validate_json(action_card.data_json or "{}")


def validate_card_data(data: ActionCardData) -> None:
    """Strict authoring-time validation of every threshold on the card.

    Raises:
        ThresholdValidationError: On the first malformed threshold.
    """
    for threshold in data.all_thresholds():
        require_valid(threshold)


async def create_action_card(
    db: AsyncSession,
    game_id: str,
    actor_id: str,
    name: str,
    data: ActionCardData,
    created_by: str | None = None,
) -> ActionCard:
    validate_card_data(data)
    actor = await character_mod.require_character(db, actor_id)
    if actor.game_id != game_id:
        raise ValueError(f"Character {actor_id} is not in game {game_id}")
    card = ActionCard(
        game_id=game_id,
        actor_id=actor_id,
        name=name,
        data_json=data.model_dump_json(),
        created_by=created_by,
    )
    db.add(card)
    await db.flush()
    return card


async def get_action_card(db: AsyncSession, action_card_id: str) -> ActionCard | None:
    result = await db.execute(select(ActionCard).where(ActionCard.id == action_card_id))
    return result.scalar_one_or_none()


async def require_action_card(db: AsyncSession, action_card_id: str) -> ActionCard:
    card = await get_action_card(db, action_card_id)
    if card is None:
        raise ValueError(f"Action card {action_card_id} not found")
    return card


async def load_targets(db: AsyncSession, target_ids: list[str]) -> list[Character]:
    """Load targets in the given order, dropping duplicates."""
    targets: list[Character] = []
    seen: set[str] = set()
    for target_id in target_ids:
        if target_id in seen:
            continue
        seen.add(target_id)
        targets.append(await character_mod.require_character(db, target_id))
    return targets


# --- Validating ---


async def validate_eligibility(
    db: AsyncSession,
    card: ActionCardData,
    actor: Character,
    targets: list[Character],
) -> None:
    """Mode-appropriate preconditions. Raises EligibilityError with a specific reason."""
    for target in targets:
        if target.game_id != actor.game_id:
            raise EligibilityError(
                "invalidTarget", f"{target.name} is not part of this game"
            )
    if card.mode == "attackChain":
        if not settings.enable_action_card_chains:
            raise EligibilityError("chainsDisabled", "Action card chains are disabled")
        if card.embedded_item is None:
            raise EligibilityError("noEmbeddedItem", "This action card has no embedded item")
        if not targets:
            raise EligibilityError("noTargets", "Select at least one target")
        check = resources.check_resources(actor, card.embedded_item)
        if not check.can_execute:
            raise EligibilityError(check.reason, check.message)
    elif card.saved_damage.requires_target and not targets:
        raise EligibilityError("noTargets", "Select at least one target")

    if card.advance_initiative and not await combat_mod.is_active_turn(db, actor):
        raise EligibilityError("notYourTurn", f"It is not {actor.name}'s turn")


# --- Execution ---


async def execute_action_card(
    db: AsyncSession,
    log: NarrativeLog,
    action_card_id: str,
    user_id: str,
    target_ids: list[str],
    transformation_selections: dict[str, int] | None = None,
) -> ExecutionResult:
    """Run an action card on behalf of ``user_id``.

    Eligibility and evaluation failures come back as an unsuccessful
    ExecutionResult with a ``reason``. When the user does not control every
    target a single ApprovalRequest is filed and the result is flagged
    ``awaiting_approval``.
    """
    action_card = await require_action_card(db, action_card_id)
    card = load_card_data(action_card)
    actor = await character_mod.require_character(db, action_card.actor_id)
    if not await character_mod.has_control_authority(db, actor, user_id):
        raise ValueError(f"User {user_id} cannot act as {actor.name}")
    targets = await load_targets(db, target_ids)

    try:
        await validate_eligibility(db, card, actor, targets)
        count = await repetition.evaluate_count(
            db, log, actor, action_card.name, card, author_user_id=user_id
        )
        roll = None
        if card.mode == "attackChain":
            roll = await rolls.roll_item(
                db, log, actor, card.embedded_item, author_user_id=user_id
            )
    except EligibilityError as exc:
        logger.info("%s aborted: %s", action_card.name, exc.reason)
        return ExecutionResult(
            success=False, mode=card.mode, reason=exc.reason, message=exc.message
        )
    except EvaluationError as exc:
        logger.warning("%s roll failed: %s", action_card.name, exc)
        return ExecutionResult(
            success=False, mode=card.mode, reason="rollFailed", message=str(exc)
        )

    selections = dict(transformation_selections or {})
    if not await _controls_all(db, user_id, targets):
        request = await approval.request(
            db,
            log,
            action_card=action_card,
            actor=actor,
            requesting_user_id=user_id,
            targets=targets,
            roll=roll,
            selections=selections,
            repetition_count=count,
        )
        preview = await _run_iteration(
            db, log, RepetitionContext(card, count, selections), 0, actor,
            targets, roll, Authorization.STANDARD, user_id,
        )
        preview.awaiting_approval = True
        preview.approval_request_id = request.id
        preview.repetition_count = count
        return preview

    return await dispatch_effects(
        db, log, action_card, card, actor, targets, roll, count,
        Authorization.PRIVILEGED,
        selections=selections,
        author_user_id=user_id,
    )


async def resume(
    db: AsyncSession,
    log: NarrativeLog,
    request: ApprovalRequest,
    author_user_id: str | None = None,
) -> ExecutionResult:
    """Re-enter an approved request at effect dispatch, reusing its roll and selections."""
    action_card = await require_action_card(db, request.action_card_id)
    card = load_card_data(action_card)
    actor = await character_mod.require_character(db, request.actor_id)
    targets = await load_targets(db, approval.target_ids(request))
    return await dispatch_effects(
        db, log, action_card, card, actor, targets,
        approval.carried_roll(request),
        request.repetition_count,
        Authorization.PRIVILEGED,
        selections=approval.carried_selections(request),
        author_user_id=author_user_id,
    )


async def _controls_all(
    db: AsyncSession, user_id: str, targets: list[Character]
) -> bool:
    for target in targets:
        if not await character_mod.has_control_authority(db, target, user_id):
            return False
    return True


async def dispatch_effects(
    db: AsyncSession,
    log: NarrativeLog,
    action_card: ActionCard,
    card: ActionCardData,
    actor: Character,
    targets: list[Character],
    roll: RollResult | None,
    count: int,
    authorization: Authorization,
    selections: dict[str, int] | None = None,
    author_user_id: str | None = None,
) -> ExecutionResult:
    """Run every repetition in order, then advance the turn if the card says so."""
    ctx = RepetitionContext(card, count, dict(selections or {}))
    iterations: list[ExecutionResult] = []
    item = card.embedded_item

    for index in range(count):
        if item is not None:
            consume = ctx.charges_cost(index)
            check = resources.check_resources(actor, item, consume=consume)
            if not check.can_execute:
                logger.warning(
                    "%s halted at repetition %d: %s",
                    action_card.name, index + 1, check.reason,
                )
                await log.append(
                    db,
                    actor.game_id,
                    kind="action_failure",
                    content=f"{action_card.name} stops after {index} of {count}: {check.message}",
                    speaker_id=actor.id,
                    author_user_id=author_user_id,
                    data={"reason": "insufficientResources", "resource": check.reason},
                )
                partial = repetition.aggregate(iterations, count, card.mode)
                partial.success = False
                partial.reason = "insufficientResources"
                partial.message = check.message
                partial.completed_repetitions = index
                return partial
            if consume:
                await resources.charge(db, actor, item)

        current = roll
        if ctx.rerolls(index) and roll is not None:
            current = await _reroll(db, log, actor, item, author_user_id)

        iterations.append(
            await _run_iteration(
                db, log, ctx, index, actor, targets, current, authorization, author_user_id
            )
        )
        if index < count - 1:
            await repetition.wait_between(ctx.delay)

    if card.advance_initiative:
        if await combat_mod.get_active_combat(db, actor.game_id) is not None:
            await combat_mod.next_turn(db, actor.game_id)

    result = repetition.aggregate(iterations, count, card.mode)
    await log.append(
        db,
        actor.game_id,
        kind="action_card",
        content=f"{actor.name} uses {action_card.name}",
        speaker_id=actor.id,
        author_user_id=author_user_id,
        data={
            "action_card_id": action_card.id,
            "mode": card.mode,
            "repetitions": count,
            "damage": len(result.damage_results),
            "statuses": len(result.status_results),
            "transformations": len(result.transformation_results),
        },
    )
    return result


async def _reroll(
    db: AsyncSession,
    log: NarrativeLog,
    actor: Character,
    item: EmbeddedItem,
    author_user_id: str | None,
) -> RollResult | None:
    """Roll the embedded item again and pick the result up from the narrative log."""
    try:
        async with log.capture_next(actor.id, kind="roll") as capture:
            await rolls.roll_item(db, log, actor, item, author_user_id=author_user_id)
            entry = await capture.wait()
    except BridgeTimeoutError as exc:
        logger.warning("Repeat roll for %s not captured: %s", item.name, exc)
        return None
    except EvaluationError:
        logger.warning("Repeat roll for %s failed", item.name, exc_info=True)
        return None
    return rolls.result_from_entry(entry)


async def _run_iteration(
    db: AsyncSession,
    log: NarrativeLog,
    ctx: RepetitionContext,
    index: int,
    actor: Character,
    targets: list[Character],
    roll: RollResult | None,
    authorization: Authorization,
    author_user_id: str | None,
) -> ExecutionResult:
    card = ctx.card
    target_map = {t.id: t for t in targets}
    roll_total = roll.outcome.total if roll is not None else 0

    if card.mode == "attackChain":
        chain = card.attack_chain
        roll_type = card.embedded_item.roll.type if card.embedded_item else "roll"
        target_results = attack_chain.calculate_target_hits(
            roll.outcome if roll is not None else None,
            targets,
            chain.first_stat,
            chain.second_stat,
            roll_type=roll_type,
        )
        damage_results = []
        if ctx.applies_damage(index):
            damage_results = await damage.apply_damage(
                db, log, target_results, target_map,
                chain.damage_formula, chain.damage_type, roll_total, authorization,
                condition=chain.damage_condition,
                speaker_id=actor.id,
                author_user_id=author_user_id,
            )
        status_results = []
        if ctx.applies_status(index):
            status_results = await effect_attachment.apply_threshold_effects(
                db,
                card.embedded_status_effects,
                target_results,
                roll_total,
                authorization,
                target_map,
                default_threshold=chain.status_condition,
                inventory_source=actor if card.attempt_inventory_reduction else None,
            )
        unconditional = False
    else:
        saved = card.saved_damage
        target_results = attack_chain.unconditional_results(targets)
        damage_results = []
        if ctx.applies_damage(index):
            damage_results = await damage.apply_damage(
                db, log, target_results, target_map,
                saved.formula, saved.type, roll_total, authorization,
                description=saved.description,
                speaker_id=actor.id,
                author_user_id=author_user_id,
            )
        status_results = []
        unconditional = True

    transformation_results = await effect_attachment.apply_transformations(
        db,
        card.transformation.embedded_transformations,
        card.transformation.condition,
        target_results,
        roll_total,
        authorization,
        target_map,
        selections=ctx.selections,
        applied_keys=ctx.applied_transformations,
        unconditional=unconditional,
    )

    return ExecutionResult(
        success=True,
        mode=card.mode,
        roll=roll,
        target_results=target_results,
        damage_results=damage_results,
        status_results=status_results,
        transformation_results=transformation_results,
        repetition_count=ctx.count,
        completed_repetitions=1,
    )
