"""Approval mailbox — players ask a GM to execute an action card for them."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventide.domain import permissions
from eventide.domain.narrative import NarrativeLog
from eventide.models.db_models import ActionCard, ApprovalRequest, Character
from eventide.models.result import ExecutionResult, RollResult

logger = logging.getLogger("eventide.approval")


async def request(
    db: AsyncSession,
    log: NarrativeLog,
    action_card: ActionCard,
    actor: Character,
    requesting_user_id: str,
    targets: list[Character],
    roll: RollResult | None = None,
    selections: dict[str, int] | None = None,
    repetition_count: int = 1,
) -> ApprovalRequest:
    """File one pending request covering every target of the execution."""
    req = ApprovalRequest(
        game_id=actor.game_id,
        actor_id=actor.id,
        action_card_id=action_card.id,
        requesting_user_id=requesting_user_id,
        target_ids_json=json.dumps([t.id for t in targets]),
        roll_json=roll.model_dump_json() if roll is not None else None,
        selections_json=json.dumps(selections) if selections else None,
        repetition_count=repetition_count,
        status="pending",
    )
    db.add(req)
    await db.flush()

    names = ", ".join(t.name for t in targets)
    await log.append(
        db,
        actor.game_id,
        kind="approval_request",
        content=f"{actor.name} requests GM approval to use {action_card.name} on {names}",
        author_user_id=requesting_user_id,
        data={"request_id": req.id, "action_card_id": action_card.id},
    )
    logger.info("Approval request %s filed for %s", req.id, action_card.name)
    return req


async def get_request(db: AsyncSession, request_id: str) -> ApprovalRequest | None:
    result = await db.execute(
        select(ApprovalRequest).where(ApprovalRequest.id == request_id)
    )
    return result.scalar_one_or_none()


async def get_pending(db: AsyncSession, game_id: str) -> list[ApprovalRequest]:
    result = await db.execute(
        select(ApprovalRequest)
        .where(ApprovalRequest.game_id == game_id, ApprovalRequest.status == "pending")
        .order_by(ApprovalRequest.created_at)
    )
    return list(result.scalars().all())


def target_ids(req: ApprovalRequest) -> list[str]:
    return json.loads(req.target_ids_json or "[]")


def carried_roll(req: ApprovalRequest) -> RollResult | None:
    if not req.roll_json:
        return None
    return RollResult.model_validate_json(req.roll_json)


def carried_selections(req: ApprovalRequest) -> dict[str, int]:
    return json.loads(req.selections_json) if req.selections_json else {}


async def _require_pending(db: AsyncSession, request_id: str) -> ApprovalRequest:
    req = await get_request(db, request_id)
    if req is None:
        raise ValueError(f"Approval request {request_id} not found")
    if req.status != "pending":
        raise ValueError(f"Approval request {request_id} is already {req.status}")
    return req


async def approve(
    db: AsyncSession,
    log: NarrativeLog,
    request_id: str,
    approver_user_id: str,
) -> ExecutionResult:
    """GM-side acceptance: execute the card with the carried roll and selections."""
    from eventide.domain import action_card

    req = await _require_pending(db, request_id)
    await permissions.require_gm(db, req.game_id, approver_user_id)

    req.status = "approved"
    req.resolved_by = approver_user_id
    req.resolved_at = datetime.now(timezone.utc)
    await db.flush()

    try:
        result = await action_card.resume(db, log, req, author_user_id=approver_user_id)
    except Exception:
        req.status = "pending"
        req.resolved_by = None
        req.resolved_at = None
        await db.flush()
        raise
    result.approval_request_id = req.id
    return result


async def dismiss(
    db: AsyncSession, request_id: str, user_id: str
) -> ApprovalRequest:
    """Dismiss a pending request. Allowed for the requester or a GM."""
    req = await _require_pending(db, request_id)
    if req.requesting_user_id != user_id:
        await permissions.require_gm(db, req.game_id, user_id)
    req.status = "dismissed"
    req.resolved_by = user_id
    req.resolved_at = datetime.now(timezone.utc)
    await db.flush()
    return req
