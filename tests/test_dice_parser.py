"""Tests for the dice formula evaluator."""

import pytest

from eventide.modules.dice.parser import evaluate_formula, keep_modes


class FixedRng:
    """Returns preset faces in order."""

    def __init__(self, *faces: int) -> None:
        self.faces = list(faces)
        self.calls: list[tuple[int, int]] = []

    def randint(self, a: int, b: int) -> int:
        self.calls.append((a, b))
        return self.faces.pop(0)


# --- Dice terms ---


def test_keep_lowest_marks_discarded():
    out = evaluate_formula("2d20kl", rng=FixedRng(19, 4))
    assert out.total == 4
    assert [d.face for d in out.die_results] == [19, 4]
    assert [d.discarded for d in out.die_results] == [True, False]


def test_keep_highest_three_of_four():
    out = evaluate_formula("4d6kh3", rng=FixedRng(1, 5, 3, 6))
    assert out.total == 14
    assert [d.discarded for d in out.die_results] == [True, False, False, False]


def test_bare_k_keeps_highest_one():
    out = evaluate_formula("2d20k", rng=FixedRng(7, 12))
    assert out.total == 12


def test_shorthand_single_die():
    rng = FixedRng(7)
    out = evaluate_formula("d8", rng=rng)
    assert out.total == 7
    assert rng.calls == [(1, 8)]


def test_die_results_come_from_first_term():
    out = evaluate_formula("1d20 + 2d6", rng=FixedRng(5, 3, 4))
    assert out.total == 12
    assert [d.face for d in out.die_results] == [5]


def test_no_dice_means_no_die_results():
    out = evaluate_formula("3 + 4")
    assert out.total == 7
    assert out.die_results == []
    assert out.formula == "3 + 4"


# --- Arithmetic and variables ---


def test_operator_precedence_and_parentheses():
    assert evaluate_formula("(2 + 3) * 4 - 6 / 2").total == 17


def test_whole_division_returns_int():
    total = evaluate_formula("9 / 3").total
    assert total == 3
    assert isinstance(total, int)


def test_fractional_division_stays_float():
    assert evaluate_formula("7 / 2").total == 3.5


def test_unary_minus():
    assert evaluate_formula("-2 + 5").total == 3
    assert evaluate_formula("-(1 + 1)").total == -2


def test_functions():
    assert evaluate_formula("max(1, 3) + floor(7 / 2)").total == 6
    assert evaluate_formula("min(4, 2, 9)").total == 2
    assert evaluate_formula("ceil(5 / 2)").total == 3
    assert evaluate_formula("abs(-4)").total == 4


def test_variable_substitution():
    ctx = {"acro": {"total": 3}, "hidden": {"vuln": {"total": 2}}}
    out = evaluate_formula("1d20 + @acro.total + @hidden.vuln.total", ctx, rng=FixedRng(10))
    assert out.total == 15


# --- Errors ---


@pytest.mark.parametrize(
    "formula",
    ["", "   ", "2 +", "(1 + 2", "1 2", "3d6kh4", "1 / 0", "foo(1)", "abs(1, 2)", "#"],
)
def test_malformed_formulas_raise(formula):
    with pytest.raises(ValueError):
        evaluate_formula(formula, rng=FixedRng(1, 1, 1))


def test_unknown_variable_raises():
    with pytest.raises(ValueError, match="Unknown variable"):
        evaluate_formula("@missing.total")


def test_non_numeric_variable_raises():
    with pytest.raises(ValueError, match="not numeric"):
        evaluate_formula("@acro", {"acro": {"total": 3}})


# --- Keep modes ---


def test_keep_modes():
    assert keep_modes("2d20kl") == (True, False)
    assert keep_modes("2d20kh") == (False, True)
    assert keep_modes("2d20k1 + 3") == (False, True)
    assert keep_modes("1d20") == (False, False)
    assert keep_modes("1d20 + @wits.total") == (False, False)
