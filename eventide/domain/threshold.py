"""Threshold gate — decides whether a conditional payload fires for a target."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from eventide.domain.errors import ThresholdValidationError
from eventide.infra.config import settings
from eventide.models.action_card import ThresholdConfig, ThresholdType
from eventide.models.result import TargetResult

logger = logging.getLogger("eventide.threshold")

THRESHOLD_TYPES = tuple(t.value for t in ThresholdType)
MIN_ROLL_VALUE = 1
MAX_ROLL_VALUE = 30


def should_apply(
    threshold: ThresholdConfig | None,
    target_result: TargetResult,
    roll_total: int | float,
) -> bool:
    """Evaluate a threshold for one target.

    Unknown or missing threshold types log a warning and fall back to
    ``oneSuccess``.
    """
    if threshold is None:
        logger.warning("Missing threshold config, falling back to oneSuccess")
        return target_result.one_hit

    kind = threshold.type
    if kind == ThresholdType.NEVER:
        return False
    if kind == ThresholdType.ONE_SUCCESS:
        return target_result.one_hit
    if kind == ThresholdType.TWO_SUCCESSES:
        return target_result.both_hit
    if kind == ThresholdType.ROLL_VALUE:
        value = threshold.value if threshold.value is not None else settings.default_threshold_value
        return (roll_total or 0) >= value

    logger.warning("Unknown threshold type %r, falling back to oneSuccess", kind)
    return target_result.one_hit


def validate_threshold(threshold: ThresholdConfig | Mapping | None) -> bool:
    """Return True if ``threshold`` is a well-formed ThresholdConfig."""
    if isinstance(threshold, ThresholdConfig):
        kind, value = threshold.type, threshold.value
    elif isinstance(threshold, Mapping):
        kind, value = threshold.get("type"), threshold.get("value")
    else:
        return False

    if kind not in THRESHOLD_TYPES:
        return False
    if kind == ThresholdType.ROLL_VALUE:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if not MIN_ROLL_VALUE <= value <= MAX_ROLL_VALUE:
            return False
    return True


def require_valid(threshold: ThresholdConfig | Mapping | None, label: str = "threshold") -> None:
    """Raise ThresholdValidationError unless ``threshold`` validates."""
    if not validate_threshold(threshold):
        raise ThresholdValidationError(f"Invalid {label}: {threshold!r}")


def describe(threshold: ThresholdConfig) -> str:
    """Human-readable summary used in narrative entries."""
    if threshold.type == ThresholdType.NEVER:
        return "never"
    if threshold.type == ThresholdType.ONE_SUCCESS:
        return "on one success"
    if threshold.type == ThresholdType.TWO_SUCCESSES:
        return "on two successes"
    if threshold.type == ThresholdType.ROLL_VALUE:
        value = threshold.value if threshold.value is not None else settings.default_threshold_value
        return f"on a roll of {value} or more"
    return f"unknown ({threshold.type})"
