"""Roll pipeline — evaluate, classify and announce rolls."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from eventide.domain import character as character_mod
from eventide.domain.errors import EvaluationError
from eventide.domain.narrative import NarrativeLog, entry_data
from eventide.domain.outcome import classify
from eventide.models.action_card import EmbeddedItem
from eventide.models.db_models import Character, NarrativeEntry
from eventide.models.result import ClassifiedOutcome, RollOutcome, RollResult
from eventide.modules.dice.parser import evaluate_formula, keep_modes


def evaluate(formula: str, context: dict | None = None) -> RollOutcome:
    """evaluate_formula, with failures wrapped in EvaluationError."""
    try:
        return evaluate_formula(formula, context)
    except ValueError as exc:
        raise EvaluationError(formula, exc) from exc


def classify_roll(
    actor: Character, outcome: RollOutcome, crit_allowed: bool = True
) -> ClassifiedOutcome:
    keeps_lowest, keeps_highest = keep_modes(outcome.formula)
    return classify(
        outcome,
        character_mod.critical_thresholds(actor),
        formula_keeps_lowest=keeps_lowest,
        formula_keeps_multiple=keeps_highest,
        crit_allowed=crit_allowed,
    )


def _describe(result: RollResult) -> str:
    label = result.item_name or result.outcome.formula
    text = f"rolls {label}: {result.outcome.total}"
    flags = result.classification
    if flags.crit_hit:
        text += " (critical hit)"
    elif flags.stolen_crit:
        text += " (critical stolen)"
    if flags.crit_miss:
        text += " (critical miss)"
    elif flags.saved_miss:
        text += " (miss saved)"
    return text


async def roll_formula(
    db: AsyncSession,
    log: NarrativeLog,
    actor: Character,
    formula: str,
    label: str | None = None,
    crit_allowed: bool = True,
    author_user_id: str | None = None,
) -> RollResult:
    """Roll a formula for ``actor`` and announce it as a ``roll`` narrative entry."""
    outcome = evaluate(formula, character_mod.roll_data(actor))
    result = RollResult(
        actor_id=actor.id,
        item_name=label,
        outcome=outcome,
        classification=classify_roll(actor, outcome, crit_allowed),
    )
    await log.append(
        db,
        actor.game_id,
        kind="roll",
        content=f"{actor.name} {_describe(result)}",
        speaker_id=actor.id,
        author_user_id=author_user_id,
        data=result.model_dump(mode="json"),
    )
    return result


async def roll_item(
    db: AsyncSession,
    log: NarrativeLog,
    actor: Character,
    item: EmbeddedItem,
    author_user_id: str | None = None,
) -> RollResult | None:
    """Roll an embedded item. Items with roll type ``none`` produce no roll."""
    if item.roll.type == "none":
        return None
    return await roll_formula(
        db,
        log,
        actor,
        item.roll.formula,
        label=item.name,
        crit_allowed=item.crit_allowed,
        author_user_id=author_user_id,
    )


def result_from_entry(entry: NarrativeEntry) -> RollResult:
    """Rebuild a RollResult from a captured ``roll`` narrative entry."""
    return RollResult(**entry_data(entry))
