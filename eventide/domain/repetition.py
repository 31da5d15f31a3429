"""Repetition handling — count evaluation, per-repetition flags, timing, aggregation."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from eventide.domain import character as character_mod
from eventide.domain import rolls
from eventide.domain.errors import EligibilityError
from eventide.domain.narrative import NarrativeLog
from eventide.infra.config import settings
from eventide.models.action_card import ActionCardData
from eventide.models.db_models import Character
from eventide.models.result import ExecutionResult

logger = logging.getLogger("eventide.repetition")


@dataclass
class RepetitionContext:
    """State shared by all repetitions of one execution."""

    card: ActionCardData
    count: int
    selections: dict[str, int] = field(default_factory=dict)
    applied_transformations: set[str] = field(default_factory=set)

    def charges_cost(self, index: int) -> bool:
        return self.card.cost_on_repetition or index == 0

    def applies_damage(self, index: int) -> bool:
        return self.card.damage_application or index == 0

    def applies_status(self, index: int) -> bool:
        return self.card.status_per_success or index == 0

    def rerolls(self, index: int) -> bool:
        return (
            self.card.repeat_to_hit
            and index > 0
            and self.card.mode == "attackChain"
        )

    @property
    def delay(self) -> float:
        if self.card.timing_override > 0:
            return self.card.timing_override
        return settings.action_card_execution_delay


async def evaluate_count(
    db: AsyncSession,
    log: NarrativeLog,
    actor: Character,
    card_name: str,
    card: ActionCardData,
    author_user_id: str | None = None,
) -> int:
    """Evaluate the repetition formula once; cap it at the system limit.

    Raises:
        EligibilityError: ``insufficientRepetitions`` when the count is below one.
        EvaluationError: If the formula is malformed.
    """
    outcome = rolls.evaluate(card.repetitions or "1", character_mod.roll_data(actor))
    count = math.floor(outcome.total)

    if count <= 0:
        message = f"{card_name} fails: {card.repetitions} produced {count} repetitions"
        await log.append(
            db,
            actor.game_id,
            kind="action_failure",
            content=message,
            speaker_id=actor.id,
            author_user_id=author_user_id,
            data={"reason": "insufficientRepetitions", "repetitions": count},
        )
        raise EligibilityError("insufficientRepetitions", message)

    limit = settings.action_card_execution_limit
    if limit > 0 and count > limit:
        logger.warning(
            "%s requested %d repetitions, capped at %d", card_name, count, limit
        )
        count = limit
    return count


async def wait_between(delay: float) -> None:
    if delay > 0:
        await asyncio.sleep(delay)


def aggregate(
    iterations: list[ExecutionResult], count: int, mode: str
) -> ExecutionResult:
    """Fold per-repetition results into one ExecutionResult."""
    if not iterations:
        return ExecutionResult(success=False, mode=mode, repetition_count=count)

    first = iterations[0]
    combined = ExecutionResult(
        success=all(r.success for r in iterations),
        mode=mode,
        roll=first.roll,
        target_results=first.target_results,
        repetition_count=count,
        completed_repetitions=len(iterations),
    )
    for r in iterations:
        combined.damage_results.extend(r.damage_results)
        combined.status_results.extend(r.status_results)
        combined.transformation_results.extend(r.transformation_results)
    return combined
