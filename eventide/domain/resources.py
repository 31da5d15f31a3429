"""Resource validation and cost charging for embedded action-card items."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from eventide.domain import character as character_mod
from eventide.models.action_card import EmbeddedItem
from eventide.models.db_models import Character


@dataclass
class ResourceCheck:
    can_execute: bool
    reason: str | None = None
    message: str | None = None
    required: int = 0
    available: int = 0


def check_resources(
    actor: Character, item: EmbeddedItem, consume: bool = True
) -> ResourceCheck:
    """Whether ``actor`` can pay for ``item`` right now.

    With ``consume=False`` the cost counts as zero; gear must still be held
    and equipped.
    """
    cost = item.cost if consume else 0
    if item.item_type == "combatPower":
        if cost > actor.power:
            return ResourceCheck(
                False,
                "insufficientPower",
                f"{actor.name} needs {cost} power for {item.name} but has {actor.power}",
                required=cost,
                available=actor.power,
            )
        return ResourceCheck(True, required=cost, available=actor.power)

    if item.item_type == "gear":
        gear = character_mod.find_gear(actor, item.name)
        if gear is None:
            return ResourceCheck(
                False, "noGearInInventory", f"{actor.name} has no {item.name}",
                required=cost,
            )
        if not gear.equipped:
            return ResourceCheck(
                False, "gearNotEquipped", f"{item.name} is not equipped",
                required=cost, available=gear.quantity,
            )
        if gear.quantity < cost:
            return ResourceCheck(
                False,
                "insufficientQuantity",
                f"{item.name}: {cost} required, {gear.quantity} available",
                required=cost,
                available=gear.quantity,
            )
        return ResourceCheck(True, required=cost, available=gear.quantity)

    return ResourceCheck(True)


async def charge(db: AsyncSession, actor: Character, item: EmbeddedItem) -> None:
    """Deduct the item's cost. Call only after a passing ``check_resources``."""
    if item.cost <= 0:
        return
    if item.item_type == "combatPower":
        await character_mod.adjust_resource(db, actor, "power", -item.cost)
    elif item.item_type == "gear":
        gear = character_mod.find_gear(actor, item.name)
        if gear is not None:
            gear.quantity = max(0, gear.quantity - item.cost)
            await db.flush()
