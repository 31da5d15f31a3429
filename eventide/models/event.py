"""Game event schemas — input to the engine dispatcher."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class EventType(str, Enum):
    # Action cards
    EXECUTE_ACTION_CARD = "execute_action_card"
    APPROVE_ACTION_CARD = "approve_action_card"
    DISMISS_APPROVAL = "dismiss_approval"

    # Rolls
    ROLL_FORMULA = "roll_formula"

    # Turn order
    NEXT_TURN = "next_turn"


# --- Payload models ---


class ExecuteActionCardPayload(BaseModel):
    event_type: Literal["execute_action_card"] = "execute_action_card"
    action_card_id: str
    target_ids: list[str] = []
    # target_id -> index into the card's embedded transformations
    transformation_selections: dict[str, int] = {}


class ApproveActionCardPayload(BaseModel):
    event_type: Literal["approve_action_card"] = "approve_action_card"
    request_id: str


class DismissApprovalPayload(BaseModel):
    event_type: Literal["dismiss_approval"] = "dismiss_approval"
    request_id: str


class RollFormulaPayload(BaseModel):
    event_type: Literal["roll_formula"] = "roll_formula"
    character_id: str
    formula: str
    label: str | None = None


class NextTurnPayload(BaseModel):
    event_type: Literal["next_turn"] = "next_turn"


EventPayload = Annotated[
    Union[
        ExecuteActionCardPayload,
        ApproveActionCardPayload,
        DismissApprovalPayload,
        RollFormulaPayload,
        NextTurnPayload,
    ],
    Field(discriminator="event_type"),
]


class GameEvent(BaseModel):
    """Top-level event submitted by a client to the engine."""

    game_id: str
    user_id: str
    payload: EventPayload
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
