"""Engine error taxonomy."""

from __future__ import annotations


class EngineError(Exception):
    """Base class for action-resolution errors."""


class EligibilityError(EngineError, ValueError):
    """A precondition failed; the execution is aborted before any mutation."""

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        self.message = message or reason
        super().__init__(self.message)


class EvaluationError(EngineError, ValueError):
    """A formula could not be evaluated."""

    def __init__(self, formula: str, cause: Exception | str) -> None:
        self.formula = formula
        super().__init__(f"Failed to evaluate {formula!r}: {cause}")


class AttachmentError(EngineError):
    """A target rejected an effect mutation."""

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or reason)


class BridgeTimeoutError(EngineError, TimeoutError):
    """No roll announcement was captured before the deadline."""


class ThresholdValidationError(EngineError, ValueError):
    """An authored ThresholdConfig is malformed."""
