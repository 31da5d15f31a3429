"""Tests for the attack chain, damage pathway, resource checks and roll pipeline."""

from unittest.mock import AsyncMock, patch

import pytest

from eventide.domain import character, rolls
from eventide.domain.errors import EvaluationError
from eventide.domain.narrative import get_entries
from eventide.domain.permissions import Authorization
from eventide.domain.resources import charge, check_resources
from eventide.domain.rules.attack_chain import armor_class, calculate_target_hits
from eventide.domain.rules.damage import apply_damage, resolve_damage, with_vulnerability
from eventide.models.action_card import EmbeddedItem, ThresholdConfig
from eventide.models.result import DamageResult, RollOutcome


def _roll(total: int) -> RollOutcome:
    return RollOutcome(total=total, formula=str(total))


# --- Attack chain ---


@pytest.mark.asyncio
async def test_single_hit_against_lower_ac(table):
    # foe: acro ac 12, phys ac 15
    [result] = calculate_target_hits(_roll(13), [table.foe], "acro", "phys")
    assert (result.first_hit, result.second_hit) == (True, False)
    assert result.one_hit and not result.both_hit
    assert result.target_name == "Foe"


@pytest.mark.asyncio
async def test_meeting_ac_is_a_hit(table):
    [result] = calculate_target_hits(_roll(15), [table.foe], "acro", "phys")
    assert result.both_hit


@pytest.mark.asyncio
async def test_no_roll_hits_nothing_and_no_roll_type_hits_everything(table):
    targets = [table.foe, table.ally]
    assert not any(r.one_hit for r in calculate_target_hits(None, targets, "acro", "phys"))
    assert all(
        r.both_hit for r in calculate_target_hits(None, targets, "acro", "phys", roll_type="none")
    )


@pytest.mark.asyncio
async def test_unknown_stat_uses_default_ac(table):
    assert armor_class(table.foe, "luck") == 11
    [result] = calculate_target_hits(_roll(11), [table.foe], "luck", "phys")
    assert result.first_hit and not result.second_hit


# --- Damage ---


@pytest.mark.asyncio
async def test_vulnerability_added_to_damage_not_heal(table):
    await character.add_item(
        table.db, table.foe, "status", "Exposed", changes=[{"target_stat": "vuln", "value": 2}],
    )
    assert with_vulnerability("1d6", table.foe, "damage") == "1d6 + 2"
    assert with_vulnerability("1d6", table.foe, "heal") == "1d6"
    assert with_vulnerability("1d6", table.ally, "damage") == "1d6"


@pytest.mark.asyncio
async def test_resolve_damage_updates_resolve_and_logs(table):
    result = await resolve_damage(table.db, table.log, table.foe, "3", description="slash")
    assert (result.resolve_before, result.resolve_after, result.amount) == (12, 9, 3)
    assert table.foe.resolve == 9

    [entry] = await get_entries(table.db, table.game.id)
    assert entry.kind == "damage"
    assert entry.content == "Foe takes 3 damage: slash"


@pytest.mark.asyncio
async def test_heal_caps_at_max(table):
    await character.damage_resolve(table.db, table.ally, 5)
    result = await resolve_damage(table.db, table.log, table.ally, "10", damage_type="heal")
    assert result.resolve_after == 15


@pytest.mark.asyncio
async def test_invalid_damage_type(table):
    with pytest.raises(ValueError, match="Invalid damage type"):
        await resolve_damage(table.db, table.log, table.foe, "3", damage_type="fire")


@pytest.mark.asyncio
async def test_apply_damage_respects_condition(table):
    hits = calculate_target_hits(_roll(13), [table.foe, table.ally], "acro", "phys")
    targets = {table.foe.id: table.foe, table.ally.id: table.ally}
    # ally: acro ac 12, phys ac 12 -> both hit; foe only one
    results = await apply_damage(
        table.db, table.log, hits, targets, "2", "damage", 13, Authorization.PRIVILEGED,
        condition=ThresholdConfig(type="twoSuccesses"),
    )
    assert [r.target_id for r in results] == [table.ally.id]
    assert table.foe.resolve == 12
    assert table.ally.resolve == 13


@pytest.mark.asyncio
async def test_apply_damage_standard_only_reports(table):
    hits = calculate_target_hits(_roll(20), [table.foe], "acro", "phys")
    results = await apply_damage(
        table.db, table.log, hits, {table.foe.id: table.foe}, "2", "damage", 20,
        Authorization.STANDARD,
    )
    assert results[0].needs_remote_application
    assert table.foe.resolve == 12


@pytest.mark.asyncio
async def test_apply_damage_failure_continues(table):
    hits = calculate_target_hits(_roll(20), [table.foe, table.ally], "acro", "phys")
    targets = {table.foe.id: table.foe, table.ally.id: table.ally}
    ok = DamageResult(target_id=table.ally.id, formula="2", type="damage", applied=True)
    with patch(
        "eventide.domain.rules.damage.resolve_damage",
        new=AsyncMock(side_effect=[EvaluationError("2", "bad"), ok]),
    ):
        results = await apply_damage(
            table.db, table.log, hits, targets, "2", "damage", 20, Authorization.PRIVILEGED,
        )
    assert results[0].error is not None and not results[0].applied
    assert results[1] is ok


# --- Resources ---


@pytest.mark.asyncio
async def test_power_check_and_charge(table):
    item = EmbeddedItem(name="Blast", cost=3)
    assert check_resources(table.hero, item).can_execute
    await charge(table.db, table.hero, item)
    assert table.hero.power == 2

    check = check_resources(table.hero, item)
    assert (check.can_execute, check.reason) == (False, "insufficientPower")
    assert check_resources(table.hero, item, consume=False).can_execute


@pytest.mark.asyncio
async def test_gear_checks(table):
    sling = EmbeddedItem(name="Sling", item_type="gear", cost=2)
    assert check_resources(table.hero, sling).reason == "noGearInInventory"

    gear = await character.add_item(table.db, table.hero, "gear", "Sling", quantity=1, equipped=False)
    assert check_resources(table.hero, sling).reason == "gearNotEquipped"

    gear.equipped = True
    assert check_resources(table.hero, sling).reason == "insufficientQuantity"
    assert check_resources(table.hero, sling, consume=False).can_execute

    gear.quantity = 3
    await charge(table.db, table.hero, sling)
    assert gear.quantity == 1


# --- Roll pipeline ---


@pytest.mark.asyncio
async def test_roll_formula_announces_and_classifies(table):
    with patch("random.randint", return_value=20):
        result = await rolls.roll_formula(
            table.db, table.log, table.hero, "1d20 + @acro.total", label="Strike",
        )
    assert result.outcome.total == 23
    assert result.classification.crit_hit

    [entry] = await get_entries(table.db, table.game.id)
    assert entry.kind == "roll"
    assert entry.speaker_id == table.hero.id
    assert entry.content == "Hero rolls Strike: 23 (critical hit)"
    assert rolls.result_from_entry(entry) == result


@pytest.mark.asyncio
async def test_roll_item_without_roll(table):
    item = EmbeddedItem(name="Aura", roll={"type": "none"})
    assert await rolls.roll_item(table.db, table.log, table.hero, item) is None


@pytest.mark.asyncio
async def test_bad_formula_raises_evaluation_error(table):
    with pytest.raises(EvaluationError):
        await rolls.roll_formula(table.db, table.log, table.hero, "1d")
