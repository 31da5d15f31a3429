"""Character entity store — derived statistics, items, effects and resources."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventide.domain import permissions
from eventide.domain.errors import AttachmentError
from eventide.models.action_card import (
    ABILITIES,
    HIDDEN_ABILITIES,
    ChangeField,
    ChangeMode,
    EffectChange,
    EffectPayload,
)
from eventide.models.db_models import Character, CharacterItem
from eventide.models.result import CriticalThresholds

logger = logging.getLogger("eventide.character")

DEFAULT_ABILITY_VALUE = 1
HIDDEN_DEFAULTS = {"cmin": 20, "cmax": 20, "fmin": 1, "fmax": 1, "vuln": 0, "dice": 20}
AC_BASE = 11
RESOURCES = ("resolve", "power")


@dataclass
class AppliedEffect:
    item: CharacterItem
    intensified: bool = False


# --- CRUD ---


async def create_character(
    db: AsyncSession,
    game_id: str,
    name: str,
    owner_user_id: str | None = None,
    abilities: dict[str, int] | None = None,
    hidden: dict[str, int] | None = None,
    resolve: int = 10,
    power: int = 5,
) -> Character:
    """Create a character. ``abilities``/``hidden`` map stat names to base values."""
    abilities_doc = {
        name_: {"value": DEFAULT_ABILITY_VALUE, "override": None} for name_ in ABILITIES
    }
    for key, value in (abilities or {}).items():
        if key not in ABILITIES:
            raise ValueError(f"Unknown ability: {key}")
        abilities_doc[key]["value"] = value

    hidden_doc = {
        key: {"value": default, "override": None} for key, default in HIDDEN_DEFAULTS.items()
    }
    for key, value in (hidden or {}).items():
        if key not in HIDDEN_ABILITIES:
            raise ValueError(f"Unknown hidden ability: {key}")
        hidden_doc[key]["value"] = value

    character = Character(
        game_id=game_id,
        owner_user_id=owner_user_id,
        name=name,
        abilities_json=json.dumps(abilities_doc),
        hidden_json=json.dumps(hidden_doc),
        resolve=resolve,
        resolve_max=resolve,
        power=power,
        power_max=power,
        items=[],
    )
    db.add(character)
    await db.flush()
    return character


async def get_character(db: AsyncSession, character_id: str) -> Character | None:
    result = await db.execute(select(Character).where(Character.id == character_id))
    return result.scalar_one_or_none()


async def require_character(db: AsyncSession, character_id: str) -> Character:
    character = await get_character(db, character_id)
    if character is None:
        raise ValueError(f"Character {character_id} not found")
    return character


async def add_item(
    db: AsyncSession,
    character: Character,
    item_type: str,
    name: str,
    description: str = "",
    changes: list[EffectChange] | list[dict] | None = None,
    quantity: int = 1,
    equipped: bool = True,
    cost: int = 0,
    cursed: bool = False,
) -> CharacterItem:
    """Attach a new item to a character."""
    parsed = [c if isinstance(c, EffectChange) else EffectChange(**c) for c in changes or []]
    item = CharacterItem(
        item_type=item_type,
        name=name,
        description=description,
        quantity=quantity,
        equipped=equipped,
        cost=cost,
        cursed=cursed,
        changes_json=json.dumps([c.model_dump(mode="json") for c in parsed]),
    )
    character.items.append(item)
    await db.flush()
    return item


def item_changes(item: CharacterItem) -> list[EffectChange]:
    return [EffectChange(**c) for c in json.loads(item.changes_json or "[]")]


def find_gear(character: Character, name: str) -> CharacterItem | None:
    for item in character.items:
        if item.item_type == "gear" and item.name == name:
            return item
    return None


# --- Derived statistics ---


def _is_active(item: CharacterItem) -> bool:
    if item.item_type in ("status", "feature", "transformation"):
        return True
    if item.item_type == "gear":
        return bool(item.equipped)
    return False


def get_derived_stats(character: Character) -> dict:
    """Compute the derived-statistics snapshot for a character.

    Abilities: ``total = (override or value) + adds`` and
    ``ac = total + 11 + ac adds``. Hidden abilities have no AC.
    """
    abilities = json.loads(character.abilities_json or "{}")
    hidden = json.loads(character.hidden_json or "{}")

    base: dict[str, dict] = {}
    for key in ABILITIES:
        entry = abilities.get(key, {})
        base[key] = {
            "value": entry.get("value", DEFAULT_ABILITY_VALUE),
            "override": entry.get("override"),
        }
    for key in HIDDEN_ABILITIES:
        entry = hidden.get(key, {})
        base[key] = {
            "value": entry.get("value", HIDDEN_DEFAULTS[key]),
            "override": entry.get("override"),
        }

    total_adds = {key: 0 for key in base}
    ac_adds = {key: 0 for key in ABILITIES}
    for item in character.items:
        if not _is_active(item):
            continue
        for change in item_changes(item):
            stat = change.target_stat.value
            if change.mode == ChangeMode.OVERRIDE:
                base[stat]["override"] = change.value
            elif change.field == ChangeField.AC and stat in ac_adds:
                ac_adds[stat] += change.value
            else:
                total_adds[stat] += change.value

    derived_abilities = {}
    for key in ABILITIES:
        b = base[key]
        start = b["override"] if b["override"] is not None else b["value"]
        total = start + total_adds[key]
        derived_abilities[key] = {
            "value": b["value"],
            "override": b["override"],
            "total": total,
            "ac": total + AC_BASE + ac_adds[key],
        }
    derived_hidden = {}
    for key in HIDDEN_ABILITIES:
        b = base[key]
        start = b["override"] if b["override"] is not None else b["value"]
        derived_hidden[key] = {
            "value": b["value"],
            "override": b["override"],
            "total": start + total_adds[key],
        }

    return {
        "abilities": derived_abilities,
        "hidden": derived_hidden,
        "resolve": {"value": character.resolve, "max": character.resolve_max},
        "power": {"value": character.power, "max": character.power_max},
    }


def get_derived_stat(character: Character, name: str) -> int:
    """Look up one derived value: ``acro`` (total), ``acro.ac``, ``vuln``, ``resolve``."""
    stats = get_derived_stats(character)
    key, _, sub = name.partition(".")
    if key in stats["abilities"]:
        return stats["abilities"][key][sub or "total"]
    if key in stats["hidden"]:
        return stats["hidden"][key][sub or "total"]
    if key in RESOURCES:
        return stats[key][sub or "value"]
    raise ValueError(f"Unknown stat: {name}")


def roll_data(character: Character) -> dict:
    """Variable context for formulas (``@acro.total``, ``@hidden.vuln.total``, ...)."""
    stats = get_derived_stats(character)
    data = dict(stats)
    data.update(stats["abilities"])
    data.update(stats["hidden"])
    return data


def critical_thresholds(character: Character) -> CriticalThresholds:
    hidden = get_derived_stats(character)["hidden"]
    return CriticalThresholds(
        crit_min=hidden["cmin"]["total"],
        crit_max=hidden["cmax"]["total"],
        fumble_min=hidden["fmin"]["total"],
        fumble_max=hidden["fmax"]["total"],
    )


# --- Authority ---


async def has_control_authority(
    db: AsyncSession, character: Character, user_id: str
) -> bool:
    """True if ``user_id`` owns the character or is GM of its game."""
    if character.owner_user_id is not None and character.owner_user_id == user_id:
        return True
    return await permissions.is_gm(db, character.game_id, user_id)


# --- Effects ---


def _find_matching_status(character: Character, payload: EffectPayload) -> CharacterItem | None:
    for item in character.items:
        if (
            item.item_type == "status"
            and item.name == payload.name
            and item.description == payload.description
        ):
            return item
    return None


def _intensify(item: CharacterItem) -> None:
    changes = item_changes(item)
    for change in changes:
        if change.value > 0:
            change.value += 1
        elif change.value < 0:
            change.value -= 1
    item.changes_json = json.dumps([c.model_dump(mode="json") for c in changes])


def check_transformation(character: Character, payload: EffectPayload) -> None:
    """Raise AttachmentError if ``payload`` may not replace the active transformation."""
    active = character.active_transformation_name
    if active is None:
        return
    if active == payload.name:
        raise AttachmentError(
            "duplicate_name",
            f"{character.name} is already transformed into {payload.name}",
        )
    if character.active_transformation_cursed and not payload.cursed:
        raise AttachmentError(
            "cursed_override_denied",
            f"{character.name}'s cursed transformation {active} cannot be replaced by {payload.name}",
        )


async def apply_effect(
    db: AsyncSession, character: Character, payload: EffectPayload
) -> AppliedEffect:
    """Materialise an effect payload on a character.

    Statuses with the same name and description intensify the existing item.
    Gear is added (or stacked onto gear of the same name). Transformations
    replace the active one subject to ``check_transformation``.

    Raises:
        AttachmentError: If the character rejects the mutation.
    """
    if payload.item_type == "status":
        existing = _find_matching_status(character, payload)
        if existing is not None:
            _intensify(existing)
            await db.flush()
            return AppliedEffect(item=existing, intensified=True)

    elif payload.item_type == "gear":
        existing = find_gear(character, payload.name)
        if existing is not None:
            existing.quantity += payload.quantity
            await db.flush()
            return AppliedEffect(item=existing)

    elif payload.item_type == "transformation":
        check_transformation(character, payload)
        for item in [i for i in character.items if i.item_type == "transformation"]:
            character.items.remove(item)
        character.active_transformation_name = payload.name
        character.active_transformation_cursed = payload.cursed

    item = await add_item(
        db,
        character,
        item_type=payload.item_type,
        name=payload.name,
        description=payload.description,
        changes=payload.changes,
        quantity=payload.quantity,
        cost=payload.cost,
        cursed=payload.cursed,
    )
    return AppliedEffect(item=item)


# --- Resources ---


async def adjust_resource(
    db: AsyncSession, character: Character, path: str, delta: int
) -> int:
    """Add ``delta`` to ``resolve`` or ``power``, clamped to ``[0, max]``. Returns the new value."""
    if path not in RESOURCES:
        raise ValueError(f"Unknown resource: {path}")
    current = getattr(character, path)
    maximum = getattr(character, f"{path}_max")
    new_value = max(0, min(maximum, current + delta))
    setattr(character, path, new_value)
    await db.flush()
    return new_value


async def damage_resolve(
    db: AsyncSession, character: Character, amount: int | float, heal: bool = False
) -> int:
    """Heal adds ``|amount|`` resolve, damage subtracts it."""
    magnitude = int(abs(amount))
    return await adjust_resource(db, character, "resolve", magnitude if heal else -magnitude)
