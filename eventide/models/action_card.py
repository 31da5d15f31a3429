"""Authored action-card documents — thresholds, effect entries, embedded items."""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class ThresholdType(str, Enum):
    NEVER = "never"
    ONE_SUCCESS = "oneSuccess"
    TWO_SUCCESSES = "twoSuccesses"
    ROLL_VALUE = "rollValue"


class ThresholdConfig(BaseModel):
    """Condition gating a conditional payload.

    ``type`` is kept as a plain string so that legacy documents with an
    unrecognised type still load; ``validate_threshold`` rejects them at
    authoring time.
    """

    type: str = ThresholdType.NEVER.value
    value: int | float | None = None  # only meaningful for rollValue, 1..30


class TargetStat(str, Enum):
    ACRO = "acro"
    PHYS = "phys"
    FORT = "fort"
    WILL = "will"
    WITS = "wits"
    CMIN = "cmin"
    CMAX = "cmax"
    FMIN = "fmin"
    FMAX = "fmax"
    VULN = "vuln"
    DICE = "dice"


ABILITIES = ("acro", "phys", "fort", "will", "wits")
HIDDEN_ABILITIES = ("cmin", "cmax", "fmin", "fmax", "vuln", "dice")


class ChangeField(str, Enum):
    TOTAL = "total"
    AC = "ac"  # abilities only


class ChangeMode(str, Enum):
    ADD = "add"
    OVERRIDE = "override"


class EffectChange(BaseModel):
    target_stat: TargetStat
    field: ChangeField = ChangeField.TOTAL
    mode: ChangeMode = ChangeMode.ADD
    value: int = 0


class EffectPayload(BaseModel):
    """Data used to materialise an item (status, gear or transformation) on a target."""

    item_type: Literal["status", "gear", "transformation"] = "status"
    name: str
    description: str = ""
    changes: list[EffectChange] = []
    cost: int = 0
    quantity: int = 1
    cursed: bool = False


class EffectEntry(BaseModel):
    """An effect payload plus the threshold that gates it.

    A ``None`` threshold inherits the card's status condition.
    """

    payload: EffectPayload
    threshold: ThresholdConfig | None = None


class EmbeddedRoll(BaseModel):
    type: Literal["roll", "none"] = "roll"
    formula: str = "1d20"


class EmbeddedItem(BaseModel):
    """The rollable item an attack chain executes (combat power, gear or feature)."""

    name: str
    item_type: Literal["combatPower", "gear", "feature"] = "combatPower"
    roll: EmbeddedRoll = Field(default_factory=EmbeddedRoll)
    cost: int = 0
    crit_allowed: bool = True


class AttackChainConfig(BaseModel):
    first_stat: str = "acro"
    second_stat: str = "phys"
    damage_condition: ThresholdConfig = Field(default_factory=ThresholdConfig)
    damage_formula: str = "1d6"
    damage_type: str = "damage"  # "damage" | "heal"
    status_condition: ThresholdConfig = Field(default_factory=ThresholdConfig)


class SavedDamageConfig(BaseModel):
    formula: str = "1d6"
    type: str = "damage"
    description: str = ""
    requires_target: bool = True


class TransformationConfig(BaseModel):
    condition: ThresholdConfig = Field(default_factory=ThresholdConfig)
    embedded_transformations: list[EffectPayload] = []


class ActionCardData(BaseModel):
    """Full authored state of an action card."""

    mode: Literal["attackChain", "savedDamage"] = "attackChain"
    embedded_item: EmbeddedItem | None = None
    attack_chain: AttackChainConfig = Field(default_factory=AttackChainConfig)
    embedded_status_effects: list[EffectEntry] = []
    saved_damage: SavedDamageConfig = Field(default_factory=SavedDamageConfig)
    transformation: TransformationConfig = Field(default_factory=TransformationConfig)

    # Side effects
    advance_initiative: bool = False
    attempt_inventory_reduction: bool = False

    # Repetition
    repetitions: str = "1"
    repeat_to_hit: bool = False
    damage_application: bool = False
    status_per_success: bool = False
    timing_override: float = 0.0
    cost_on_repetition: bool = False

    def all_thresholds(self) -> list[ThresholdConfig]:
        """Every ThresholdConfig authored on this card."""
        thresholds = [
            self.attack_chain.damage_condition,
            self.attack_chain.status_condition,
            self.transformation.condition,
        ]
        thresholds.extend(
            e.threshold for e in self.embedded_status_effects if e.threshold is not None
        )
        return thresholds
