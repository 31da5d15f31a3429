"""Tests for event routing through the dispatcher."""

import pytest

from eventide.domain import combat, game
from eventide.domain.dispatcher import dispatch
from eventide.models.db_models import User
from eventide.models.event import GameEvent
from tests.test_action_card import make_card, strike


def event(table, user, payload: dict) -> GameEvent:
    return GameEvent(game_id=table.game.id, user_id=user.id, payload=payload)


@pytest.mark.asyncio
async def test_execute_reports_state_changes(table):
    card = await make_card(table, strike(embedded_status_effects=[{
        "payload": {"name": "Dazed"}, "threshold": {"type": "oneSuccess"},
    }]))
    result = await dispatch(table.db, table.log, event(table, table.gm, {
        "event_type": "execute_action_card",
        "action_card_id": card.id,
        "target_ids": [table.foe.id],
    }))
    assert result.success
    assert result.event_type == "execute_action_card"
    fields = {(c.entity_type, c.field) for c in result.state_changes}
    assert fields == {("character", "resolve"), ("character_item", "status")}
    resolve_change = next(c for c in result.state_changes if c.field == "resolve")
    assert (resolve_change.old_value, resolve_change.new_value) == ("12", "10")


@pytest.mark.asyncio
async def test_failed_execution_carries_reason(table):
    card = await make_card(table, strike())
    result = await dispatch(table.db, table.log, event(table, table.gm, {
        "event_type": "execute_action_card", "action_card_id": card.id, "target_ids": [],
    }))
    assert not result.success
    assert result.error == "noTargets"


@pytest.mark.asyncio
async def test_awaiting_approval_then_approve(table):
    card = await make_card(table, strike())
    pending = await dispatch(table.db, table.log, event(table, table.player, {
        "event_type": "execute_action_card",
        "action_card_id": card.id,
        "target_ids": [table.foe.id],
    }))
    assert pending.success
    assert pending.narrative == "Waiting for GM approval"
    assert pending.state_changes == []
    request_id = pending.data["approval_request_id"]

    approved = await dispatch(table.db, table.log, event(table, table.gm, {
        "event_type": "approve_action_card", "request_id": request_id,
    }))
    assert approved.success
    assert table.foe.resolve == 10


@pytest.mark.asyncio
async def test_dismiss(table):
    card = await make_card(table, strike())
    pending = await dispatch(table.db, table.log, event(table, table.player, {
        "event_type": "execute_action_card", "action_card_id": card.id, "target_ids": [table.foe.id],
    }))
    result = await dispatch(table.db, table.log, event(table, table.player, {
        "event_type": "dismiss_approval", "request_id": pending.data["approval_request_id"],
    }))
    assert result.success
    assert result.data["status"] == "dismissed"


@pytest.mark.asyncio
async def test_outsider_is_rejected(table):
    outsider = User(username="outsider")
    table.db.add(outsider)
    await table.db.flush()
    result = await dispatch(table.db, table.log, event(table, outsider, {
        "event_type": "roll_formula", "character_id": table.hero.id, "formula": "1d20",
    }))
    assert not result.success
    assert result.error


@pytest.mark.asyncio
async def test_card_from_another_game_is_rejected(table):
    other = await game.create_game(table.db, "Elsewhere", table.gm.id)
    card = await make_card(table, strike())
    result = await dispatch(table.db, table.log, GameEvent(
        game_id=other.id, user_id=table.gm.id,
        payload={"event_type": "execute_action_card", "action_card_id": card.id, "target_ids": []},
    ))
    assert not result.success
    assert "is not in game" in result.error


@pytest.mark.asyncio
async def test_roll_requires_control(table):
    ok = await dispatch(table.db, table.log, event(table, table.player, {
        "event_type": "roll_formula", "character_id": table.hero.id, "formula": "2 + @acro.total",
        "label": "Check",
    }))
    assert ok.success
    assert ok.data["outcome"]["total"] == 5
    assert ok.narrative == "Hero rolls Check: 5"

    denied = await dispatch(table.db, table.log, event(table, table.player, {
        "event_type": "roll_formula", "character_id": table.foe.id, "formula": "1d20",
    }))
    assert not denied.success


@pytest.mark.asyncio
async def test_next_turn_is_gm_only(table):
    await combat.start_combat(table.db, table.game.id, [table.hero.id, table.foe.id])
    denied = await dispatch(table.db, table.log, event(table, table.player, {"event_type": "next_turn"}))
    assert not denied.success

    first = await dispatch(table.db, table.log, event(table, table.gm, {"event_type": "next_turn"}))
    second = await dispatch(table.db, table.log, event(table, table.gm, {"event_type": "next_turn"}))
    assert first.data["current"] == table.foe.id
    assert (second.data["turn"], second.data["round"]) == (0, 2)
