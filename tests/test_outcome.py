"""Tests for critical/fumble classification."""

from itertools import product

from eventide.domain.outcome import classify
from eventide.models.result import CriticalThresholds, DieResult, RollOutcome

WIDE = CriticalThresholds(crit_min=18, crit_max=20, fumble_min=1, fumble_max=3)


def _outcome(formula: str, faces: list[int], discarded: list[bool] | None = None) -> RollOutcome:
    discarded = discarded or [False] * len(faces)
    return RollOutcome(
        total=sum(f for f, d in zip(faces, discarded) if not d),
        die_results=[DieResult(face=f, discarded=d) for f, d in zip(faces, discarded)],
        formula=formula,
    )


def test_discarded_crit_under_keep_lowest_is_stolen():
    out = _outcome("2d20kl", [19, 4], [True, False])
    c = classify(out, WIDE, formula_keeps_lowest=True, formula_keeps_multiple=True)
    assert c.stolen_crit is True
    assert c.crit_hit is False
    assert c.crit_miss is False
    assert c.saved_miss is False


def test_single_die_fumble():
    c = classify(_outcome("1d20", [2]), WIDE, False, False)
    assert c.crit_miss is True
    assert not (c.crit_hit or c.stolen_crit or c.saved_miss)


def test_single_die_crit():
    c = classify(_outcome("1d20", [20]), CriticalThresholds(), False, False)
    assert c.crit_hit is True
    assert not (c.crit_miss or c.stolen_crit or c.saved_miss)


def test_both_dice_in_crit_band_keep_lowest_is_still_a_crit():
    out = _outcome("2d20kl", [19, 20], [False, True])
    c = classify(out, WIDE, True, True)
    assert c.crit_hit is True
    assert c.stolen_crit is False


def test_discarded_fumble_under_keep_highest_is_saved():
    out = _outcome("2d20kh", [1, 15], [True, False])
    c = classify(out, WIDE, False, True)
    assert c.saved_miss is True
    assert c.crit_miss is False


def test_keep_highest_crit_with_saved_fumble():
    out = _outcome("2d20kh", [20, 2], [False, True])
    c = classify(out, WIDE, False, True)
    assert c.crit_hit is True
    assert c.saved_miss is True
    assert c.crit_miss is False
    assert c.stolen_crit is False


def test_keep_lowest_fumble_with_stolen_crit():
    out = _outcome("2d20kl", [20, 2], [True, False])
    c = classify(out, WIDE, True, True)
    assert c.crit_miss is True
    assert c.stolen_crit is True
    assert c.crit_hit is False
    assert c.saved_miss is False


def test_crit_not_allowed_clears_everything():
    c = classify(_outcome("1d20", [20]), WIDE, False, False, crit_allowed=False)
    assert c == c.__class__()


def test_no_dice_clears_everything():
    out = RollOutcome(total=12, formula="12")
    c = classify(out, WIDE, False, False)
    assert not (c.crit_hit or c.crit_miss or c.stolen_crit or c.saved_miss)


def test_flag_exclusivity_across_two_die_rolls():
    for a, b, keeps_lowest in product(range(1, 21), range(1, 21), (True, False)):
        kept_a = a <= b if keeps_lowest else a >= b
        out = _outcome("2d20kl" if keeps_lowest else "2d20kh", [a, b], [not kept_a, kept_a])
        c = classify(out, WIDE, keeps_lowest, True)
        assert not (c.crit_hit and c.stolen_crit), (a, b, keeps_lowest)
        assert not (c.crit_miss and c.saved_miss), (a, b, keeps_lowest)
        if c.stolen_crit:
            assert keeps_lowest
        if c.saved_miss:
            assert not keeps_lowest
