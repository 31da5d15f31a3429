"""Damage pathway — vulnerability, formula evaluation and resolve changes."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from eventide.domain import character as character_mod
from eventide.domain import rolls
from eventide.domain.narrative import NarrativeLog
from eventide.domain.permissions import Authorization
from eventide.domain.threshold import should_apply
from eventide.models.action_card import ThresholdConfig
from eventide.models.db_models import Character
from eventide.models.result import DamageResult, TargetResult

logger = logging.getLogger("eventide.damage")

DAMAGE_TYPES = ("damage", "heal")


def with_vulnerability(formula: str, target: Character, damage_type: str) -> str:
    """Append the target's vulnerability to non-heal damage formulas."""
    if damage_type == "heal":
        return formula
    vuln = character_mod.get_derived_stat(target, "vuln")
    if vuln > 0:
        return f"{formula} + {vuln}"
    return formula


async def resolve_damage(
    db: AsyncSession,
    log: NarrativeLog,
    target: Character,
    formula: str,
    damage_type: str = "damage",
    description: str = "",
    speaker_id: str | None = None,
    author_user_id: str | None = None,
) -> DamageResult:
    """Roll ``formula`` against the target and apply it to its resolve."""
    if damage_type not in DAMAGE_TYPES:
        raise ValueError(f"Invalid damage type: {damage_type}")

    final_formula = with_vulnerability(formula, target, damage_type)
    outcome = rolls.evaluate(final_formula, character_mod.roll_data(target))
    before = target.resolve
    after = await character_mod.damage_resolve(
        db, target, outcome.total, heal=damage_type == "heal"
    )

    verb = "heals" if damage_type == "heal" else "takes"
    noun = "resolve" if damage_type == "heal" else "damage"
    content = f"{target.name} {verb} {abs(outcome.total)} {noun}"
    if description:
        content += f": {description}"
    await log.append(
        db,
        target.game_id,
        kind="damage",
        content=content,
        speaker_id=speaker_id,
        author_user_id=author_user_id,
        data={
            "target_id": target.id,
            "formula": final_formula,
            "type": damage_type,
            "total": outcome.total,
            "resolve_before": before,
            "resolve_after": after,
        },
    )
    return DamageResult(
        target_id=target.id,
        formula=final_formula,
        type=damage_type,
        amount=outcome.total,
        resolve_before=before,
        resolve_after=after,
        applied=True,
    )


async def apply_damage(
    db: AsyncSession,
    log: NarrativeLog,
    target_results: list[TargetResult],
    targets: Mapping[str, Character],
    formula: str,
    damage_type: str,
    roll_total: int | float,
    authorization: Authorization,
    condition: ThresholdConfig | None = None,
    description: str = "",
    speaker_id: str | None = None,
    author_user_id: str | None = None,
) -> list[DamageResult]:
    """Damage every target whose condition passes; ``None`` condition means always.

    A failure on one target is logged and recorded; the rest still resolve.
    """
    results: list[DamageResult] = []
    for target_result in target_results:
        if condition is not None and not should_apply(condition, target_result, roll_total):
            continue

        target = targets.get(target_result.target_id)
        if authorization != Authorization.PRIVILEGED:
            results.append(
                DamageResult(
                    target_id=target_result.target_id,
                    formula=formula,
                    type=damage_type,
                    needs_remote_application=True,
                )
            )
            continue
        if target is None:
            results.append(
                DamageResult(
                    target_id=target_result.target_id,
                    formula=formula,
                    type=damage_type,
                    error=f"Target {target_result.target_id} not found",
                )
            )
            continue

        try:
            results.append(
                await resolve_damage(
                    db, log, target, formula, damage_type, description,
                    speaker_id=speaker_id, author_user_id=author_user_id,
                )
            )
        except Exception as exc:
            logger.warning(
                "Failed to apply %s to %s", damage_type, target.name, exc_info=True
            )
            results.append(
                DamageResult(
                    target_id=target.id,
                    formula=formula,
                    type=damage_type,
                    error=str(exc),
                )
            )
    return results
