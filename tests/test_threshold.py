"""Tests for the threshold gate."""

import logging

import pytest

from eventide.domain.errors import ThresholdValidationError
from eventide.domain.threshold import describe, require_valid, should_apply, validate_threshold
from eventide.models.action_card import ThresholdConfig
from eventide.models.result import TargetResult

ONE = TargetResult(target_id="t", one_hit=True, both_hit=False)
BOTH = TargetResult(target_id="t", first_hit=True, second_hit=True, one_hit=True, both_hit=True)
NONE = TargetResult(target_id="t")


def test_one_success_passes_on_single_hit():
    assert should_apply(ThresholdConfig(type="oneSuccess"), ONE, 10) is True
    assert should_apply(ThresholdConfig(type="oneSuccess"), NONE, 10) is False


def test_two_successes_requires_both():
    assert should_apply(ThresholdConfig(type="twoSuccesses"), ONE, 10) is False
    assert should_apply(ThresholdConfig(type="twoSuccesses"), BOTH, 10) is True


def test_never_is_always_false():
    never = ThresholdConfig(type="never")
    for result in (ONE, BOTH, NONE):
        for total in (0, 15, 30):
            assert should_apply(never, result, total) is False


def test_roll_value_boundaries():
    threshold = ThresholdConfig(type="rollValue", value=12)
    assert should_apply(threshold, NONE, 11) is False
    assert should_apply(threshold, NONE, 12) is True
    assert should_apply(threshold, NONE, 13) is True


def test_roll_value_ignores_hits():
    threshold = ThresholdConfig(type="rollValue", value=12)
    assert should_apply(threshold, BOTH, 5) is False


def test_roll_value_defaults_to_fifteen():
    threshold = ThresholdConfig(type="rollValue")
    assert should_apply(threshold, NONE, 14) is False
    assert should_apply(threshold, NONE, 15) is True


def test_unknown_type_falls_back_to_one_success(caplog):
    with caplog.at_level(logging.WARNING, logger="eventide.threshold"):
        assert should_apply(ThresholdConfig(type="threeSuccesses"), ONE, 1) is True
        assert should_apply(ThresholdConfig(type="threeSuccesses"), NONE, 30) is False
    assert "Unknown threshold type" in caplog.text


def test_missing_threshold_falls_back_to_one_success(caplog):
    with caplog.at_level(logging.WARNING, logger="eventide.threshold"):
        assert should_apply(None, ONE, 1) is True
    assert "Missing threshold" in caplog.text


# --- Validation ---


@pytest.mark.parametrize(
    "threshold",
    [
        ThresholdConfig(type="never"),
        ThresholdConfig(type="oneSuccess"),
        ThresholdConfig(type="twoSuccesses"),
        ThresholdConfig(type="rollValue", value=1),
        ThresholdConfig(type="rollValue", value=30),
        {"type": "rollValue", "value": 12.5},
        {"type": "oneSuccess"},
    ],
)
def test_valid_thresholds(threshold):
    assert validate_threshold(threshold) is True
    assert validate_threshold(threshold) is True


@pytest.mark.parametrize(
    "threshold",
    [
        None,
        "oneSuccess",
        {"type": "sometimes"},
        {"type": "rollValue"},
        {"type": "rollValue", "value": 0},
        {"type": "rollValue", "value": 31},
        {"type": "rollValue", "value": "12"},
        {"type": "rollValue", "value": True},
    ],
)
def test_invalid_thresholds(threshold):
    assert validate_threshold(threshold) is False


def test_require_valid_raises_with_label():
    with pytest.raises(ThresholdValidationError, match="damage condition"):
        require_valid({"type": "sometimes"}, "damage condition")
    require_valid({"type": "never"})


def test_describe():
    assert describe(ThresholdConfig(type="never")) == "never"
    assert describe(ThresholdConfig(type="twoSuccesses")) == "on two successes"
    assert describe(ThresholdConfig(type="rollValue", value=12)) == "on a roll of 12 or more"
    assert describe(ThresholdConfig(type="rollValue")) == "on a roll of 15 or more"
