"""Tests for the approval mailbox."""

from unittest.mock import patch

import pytest

from eventide.domain import action_card, approval, game, rolls
from eventide.models.db_models import User
from tests.test_action_card import make_card, run, strike


async def _pending(table, **overrides):
    card = await make_card(table, strike(**overrides))
    result = await run(table, card, [table.ally, table.foe], user=table.player)
    return result.approval_request_id


@pytest.mark.asyncio
async def test_approve_executes_with_carried_roll(table):
    request_id = await _pending(table)
    with patch.object(rolls, "roll_item", wraps=rolls.roll_item) as roll_item:
        result = await approval.approve(table.db, table.log, request_id, table.gm.id)

    roll_item.assert_not_called()
    assert result.success
    assert result.approval_request_id == request_id
    assert result.roll.outcome.total == 15
    assert (table.foe.resolve, table.ally.resolve) == (10, 13)

    req = await approval.get_request(table.db, request_id)
    assert (req.status, req.resolved_by) == ("approved", table.gm.id)
    assert req.resolved_at is not None


@pytest.mark.asyncio
async def test_approval_keeps_repetition_count(table):
    request_id = await _pending(table, repetitions="2", damage_application=True)
    result = await approval.approve(table.db, table.log, request_id, table.gm.id)
    assert result.completed_repetitions == 2
    assert table.foe.resolve == 8


@pytest.mark.asyncio
async def test_cannot_approve_twice(table):
    request_id = await _pending(table)
    await approval.approve(table.db, table.log, request_id, table.gm.id)
    with pytest.raises(ValueError, match="already approved"):
        await approval.approve(table.db, table.log, request_id, table.gm.id)
    assert table.foe.resolve == 10


@pytest.mark.asyncio
async def test_only_gm_approves(table):
    request_id = await _pending(table)
    with pytest.raises(ValueError):
        await approval.approve(table.db, table.log, request_id, table.player.id)
    req = await approval.get_request(table.db, request_id)
    assert req.status == "pending"


@pytest.mark.asyncio
async def test_requester_dismisses(table):
    request_id = await _pending(table)
    req = await approval.dismiss(table.db, request_id, table.player.id)
    assert req.status == "dismissed"
    with pytest.raises(ValueError, match="already dismissed"):
        await approval.approve(table.db, table.log, request_id, table.gm.id)
    assert table.foe.resolve == 12


@pytest.mark.asyncio
async def test_other_player_cannot_dismiss(table):
    request_id = await _pending(table)
    other = User(username="other")
    table.db.add(other)
    await table.db.flush()
    await game.join_game(table.db, table.game.id, other.id, role="PL")
    with pytest.raises(ValueError):
        await approval.dismiss(table.db, request_id, other.id)


@pytest.mark.asyncio
async def test_unknown_request(table):
    with pytest.raises(ValueError, match="not found"):
        await approval.approve(table.db, table.log, "missing", table.gm.id)


@pytest.mark.asyncio
async def test_pending_lists_open_requests(table):
    first = await _pending(table)
    second = await _pending(table)
    await approval.dismiss(table.db, first, table.gm.id)
    pending = await approval.get_pending(table.db, table.game.id)
    assert [r.id for r in pending] == [second]


@pytest.mark.asyncio
async def test_failed_approval_stays_pending(table):
    request_id = await _pending(table)
    with patch.object(
        action_card, "resume", side_effect=ValueError("Character gone not found"),
    ):
        with pytest.raises(ValueError, match="not found"):
            await approval.approve(table.db, table.log, request_id, table.gm.id)

    req = await approval.get_request(table.db, request_id)
    assert (req.status, req.resolved_by, req.resolved_at) == ("pending", None, None)

    result = await approval.approve(table.db, table.log, request_id, table.gm.id)
    assert result.success
    assert table.foe.resolve == 10
