"""Engine result schemas — output from the engine dispatcher and the action-card pipeline."""

from __future__ import annotations

from pydantic import BaseModel

from eventide.models.action_card import EffectPayload, ThresholdConfig


class DieResult(BaseModel):
    face: int
    discarded: bool = False


class RollOutcome(BaseModel):
    total: int | float
    die_results: list[DieResult] = []
    formula: str


class ClassifiedOutcome(BaseModel):
    crit_hit: bool = False
    crit_miss: bool = False
    stolen_crit: bool = False
    saved_miss: bool = False


class CriticalThresholds(BaseModel):
    crit_min: int = 20
    crit_max: int = 20
    fumble_min: int = 1
    fumble_max: int = 1


class RollResult(BaseModel):
    """A classified roll as announced to the narrative log."""

    actor_id: str
    item_name: str | None = None
    outcome: RollOutcome
    classification: ClassifiedOutcome = ClassifiedOutcome()


class TargetResult(BaseModel):
    target_id: str
    target_name: str = ""
    first_hit: bool = False
    second_hit: bool = False
    one_hit: bool = False
    both_hit: bool = False


class AttachmentResult(BaseModel):
    target_id: str
    effect: EffectPayload
    threshold: ThresholdConfig | None = None
    applied: bool = False
    needs_remote_application: bool = False
    intensified: bool = False
    reason: str | None = None
    error: str | None = None
    warning: str | None = None


class DamageResult(BaseModel):
    target_id: str
    formula: str
    type: str
    amount: int | float = 0
    resolve_before: int = 0
    resolve_after: int = 0
    applied: bool = False
    needs_remote_application: bool = False
    error: str | None = None


class ExecutionResult(BaseModel):
    """Structured outcome of one action-card execution."""

    success: bool
    mode: str
    reason: str | None = None
    message: str | None = None
    awaiting_approval: bool = False
    approval_request_id: str | None = None
    roll: RollResult | None = None
    target_results: list[TargetResult] = []
    damage_results: list[DamageResult] = []
    status_results: list[AttachmentResult] = []
    transformation_results: list[AttachmentResult] = []
    repetition_count: int = 1
    completed_repetitions: int = 0


class StateChange(BaseModel):
    entity_type: str  # "character", "character_item", "combat", "approval_request"
    entity_id: str
    field: str
    old_value: str | None = None
    new_value: str | None = None


class EngineResult(BaseModel):
    success: bool
    event_type: str
    data: dict = {}
    narrative: str | None = None
    state_changes: list[StateChange] = []
    error: str | None = None
