"""Effect attachment — apply threshold-gated statuses and transformations to targets."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from eventide.domain import character as character_mod
from eventide.domain.errors import AttachmentError
from eventide.domain.permissions import Authorization
from eventide.domain.threshold import should_apply
from eventide.models.action_card import (
    EffectEntry,
    EffectPayload,
    ThresholdConfig,
    ThresholdType,
)
from eventide.models.db_models import Character
from eventide.models.result import AttachmentResult, TargetResult

logger = logging.getLogger("eventide.effects")


async def _consume_gear(
    db: AsyncSession, owner: Character, payload: EffectPayload
) -> str | None:
    """Deduct ``payload.cost`` from the owner's gear of the same name.

    Returns a warning message instead of deducting when the gear is missing
    or short.
    """
    gear = character_mod.find_gear(owner, payload.name)
    if gear is None:
        logger.warning("Gear effect %r not found in %s's inventory", payload.name, owner.name)
        return f"{payload.name} is not in {owner.name}'s inventory"
    if gear.quantity < payload.cost:
        logger.warning(
            "Insufficient %r in %s's inventory (%d required, %d available)",
            payload.name, owner.name, payload.cost, gear.quantity,
        )
        return (
            f"Not enough {payload.name}: {payload.cost} required, "
            f"{gear.quantity} available"
        )
    gear.quantity = max(0, gear.quantity - payload.cost)
    await db.flush()
    return None


async def attach(
    db: AsyncSession,
    target: Character | None,
    target_id: str,
    payload: EffectPayload,
    threshold: ThresholdConfig | None,
    inventory_source: Character | None = None,
) -> AttachmentResult:
    """Materialise one payload on one target. Failures are captured, never raised."""
    result = AttachmentResult(target_id=target_id, effect=payload, threshold=threshold)
    if target is None:
        result.error = f"Target {target_id} not found"
        return result

    if inventory_source is not None and payload.item_type == "gear":
        warning = await _consume_gear(db, inventory_source, payload)
        if warning is not None:
            result.warning = warning
            return result

    try:
        applied = await character_mod.apply_effect(db, target, payload)
    except AttachmentError as exc:
        logger.info("%s rejected %r: %s", target.name, payload.name, exc)
        result.reason = exc.reason
        result.error = str(exc)
        return result
    except Exception as exc:
        logger.warning(
            "Failed to apply %r to %s", payload.name, target.name, exc_info=True
        )
        result.error = str(exc)
        return result

    result.applied = True
    result.intensified = applied.intensified
    return result


async def apply_threshold_effects(
    db: AsyncSession,
    effects: list[EffectEntry],
    target_results: list[TargetResult],
    roll_total: int | float,
    authorization: Authorization,
    targets: Mapping[str, Character],
    default_threshold: ThresholdConfig | None = None,
    inventory_source: Character | None = None,
) -> list[AttachmentResult]:
    """Apply every (target, effect) pair whose threshold passes.

    Targets are the outer loop and effects the inner one. A STANDARD caller
    never mutates; its results are flagged ``needs_remote_application``.
    Entries without their own threshold use ``default_threshold``.
    """
    results: list[AttachmentResult] = []
    for target_result in target_results:
        for entry in effects:
            threshold = entry.threshold or default_threshold
            if not should_apply(threshold, target_result, roll_total):
                continue

            if authorization != Authorization.PRIVILEGED:
                results.append(
                    AttachmentResult(
                        target_id=target_result.target_id,
                        effect=entry.payload,
                        threshold=threshold,
                        needs_remote_application=True,
                    )
                )
                continue

            results.append(
                await attach(
                    db,
                    targets.get(target_result.target_id),
                    target_result.target_id,
                    entry.payload,
                    threshold,
                    inventory_source=inventory_source,
                )
            )
    return results


def _select_transformation(
    transformations: list[EffectPayload],
    target_id: str,
    selections: Mapping[str, int],
) -> int | None:
    if target_id in selections:
        index = selections[target_id]
        if 0 <= index < len(transformations):
            return index
        logger.warning("Transformation selection %r out of range for %s", index, target_id)
        return None
    if len(transformations) == 1:
        return 0
    return None


async def apply_transformations(
    db: AsyncSession,
    transformations: list[EffectPayload],
    condition: ThresholdConfig,
    target_results: list[TargetResult],
    roll_total: int | float,
    authorization: Authorization,
    targets: Mapping[str, Character],
    selections: Mapping[str, int] | None = None,
    applied_keys: set[str] | None = None,
    unconditional: bool = False,
) -> list[AttachmentResult]:
    """Apply the selected transformation to each target whose condition passes.

    With several transformations and no selection for a target, that target
    is skipped. ``applied_keys`` records ``"{target}-{index}"`` pairs so a
    transformation lands at most once per execution. ``unconditional`` fires
    on any condition other than ``never``.
    """
    results: list[AttachmentResult] = []
    if not transformations:
        return results
    selections = selections or {}
    applied_keys = applied_keys if applied_keys is not None else set()

    for target_result in target_results:
        index = _select_transformation(transformations, target_result.target_id, selections)
        if index is None:
            logger.warning(
                "No transformation selected for %s, skipping", target_result.target_id
            )
            continue

        if unconditional:
            fire = condition.type != ThresholdType.NEVER
        else:
            fire = should_apply(condition, target_result, roll_total)
        if not fire:
            continue

        key = f"{target_result.target_id}-{index}"
        if key in applied_keys:
            continue

        payload = transformations[index]
        if payload.item_type != "transformation":
            payload = payload.model_copy(update={"item_type": "transformation"})
        if authorization != Authorization.PRIVILEGED:
            results.append(
                AttachmentResult(
                    target_id=target_result.target_id,
                    effect=payload,
                    threshold=condition,
                    needs_remote_application=True,
                )
            )
            continue

        result = await attach(
            db,
            targets.get(target_result.target_id),
            target_result.target_id,
            payload,
            condition,
        )
        if result.applied:
            applied_keys.add(key)
        results.append(result)
    return results
