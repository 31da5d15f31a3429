"""Outcome classification — critical hits, fumbles, stolen crits and saved misses."""

from __future__ import annotations

from eventide.models.result import ClassifiedOutcome, CriticalThresholds, RollOutcome


def classify(
    outcome: RollOutcome,
    thresholds: CriticalThresholds,
    formula_keeps_lowest: bool,
    formula_keeps_multiple: bool,
    crit_allowed: bool = True,
) -> ClassifiedOutcome:
    """Classify a roll against the actor's critical and fumble bands.

    Every face of the first dice term is inspected, discarded ones included:
    a critical face dropped by keep-lowest is a stolen crit, a fumble face
    dropped by keep-highest is a saved miss. A single die can never be
    stolen or saved since there is no alternative die to keep.
    """
    faces = [d.face for d in outcome.die_results]
    if not crit_allowed or not faces:
        return ClassifiedOutcome()

    in_crit = [thresholds.crit_min <= f <= thresholds.crit_max for f in faces]
    in_fumble = [thresholds.fumble_min <= f <= thresholds.fumble_max for f in faces]

    crit_hit = any(in_crit)
    crit_miss = any(in_fumble)
    stolen_crit = crit_hit and formula_keeps_lowest and not all(in_crit)
    saved_miss = (
        crit_miss
        and formula_keeps_multiple
        and not formula_keeps_lowest
        and not all(in_fumble)
    )

    if stolen_crit:
        crit_hit = False
    if saved_miss:
        crit_miss = False

    return ClassifiedOutcome(
        crit_hit=crit_hit,
        crit_miss=crit_miss,
        stolen_crit=stolen_crit,
        saved_miss=saved_miss,
    )
