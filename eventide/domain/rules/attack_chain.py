"""Attack chain — opposed roll against two armor classes per target."""

from __future__ import annotations

from eventide.domain import character as character_mod
from eventide.infra.config import settings
from eventide.models.db_models import Character
from eventide.models.result import RollOutcome, TargetResult


def armor_class(target: Character, stat: str) -> int:
    """AC of ``target`` for ``stat``; the default AC when the stat does not exist."""
    abilities = character_mod.get_derived_stats(target)["abilities"]
    if stat not in abilities:
        return settings.default_armor_class
    return abilities[stat]["ac"]


def calculate_target_hits(
    outcome: RollOutcome | None,
    targets: list[Character],
    first_stat: str,
    second_stat: str,
    roll_type: str = "roll",
) -> list[TargetResult]:
    """One TargetResult per target, in target order.

    Items that do not roll hit automatically. With no roll at all nothing hits.
    """
    results = []
    for target in targets:
        if roll_type == "none":
            first_hit = second_hit = True
        elif outcome is None:
            first_hit = second_hit = False
        else:
            first_hit = outcome.total >= armor_class(target, first_stat)
            second_hit = outcome.total >= armor_class(target, second_stat)
        results.append(
            TargetResult(
                target_id=target.id,
                target_name=target.name,
                first_hit=first_hit,
                second_hit=second_hit,
                one_hit=first_hit or second_hit,
                both_hit=first_hit and second_hit,
            )
        )
    return results


def unconditional_results(targets: list[Character]) -> list[TargetResult]:
    """TargetResults for modes that do not roll (saved damage)."""
    return [
        TargetResult(
            target_id=t.id,
            target_name=t.name,
            first_hit=True,
            second_hit=True,
            one_hit=True,
            both_hit=True,
        )
        for t in targets
    ]
