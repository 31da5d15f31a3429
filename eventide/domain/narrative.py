"""Narrative log — chat timeline persistence and the roll-capture bridge."""

from __future__ import annotations

import asyncio
import json
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from eventide.domain.errors import BridgeTimeoutError
from eventide.infra.config import settings
from eventide.models.db_models import NarrativeEntry

logger = logging.getLogger("eventide.narrative")


class RollCapture:
    """A scoped, single-fire subscription to the next entry by one speaker.

    Use as an async context manager; the subscription is removed exactly once,
    on first resolution, on timeout, or on exit, whichever happens first.
    """

    def __init__(
        self, log: NarrativeLog, speaker_id: str, kind: str | None, timeout: float
    ) -> None:
        self.log = log
        self.speaker_id = speaker_id
        self.kind = kind
        self.timeout = timeout
        self._future: asyncio.Future[NarrativeEntry] | None = None
        self._registered = False

    async def __aenter__(self) -> RollCapture:
        self._future = asyncio.get_running_loop().create_future()
        self.log._register(self)
        self._registered = True
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._registered:
            self._registered = False
            self.log._unregister(self)
        if self._future is not None and not self._future.done():
            self._future.cancel()

    def _offer(self, entry: NarrativeEntry) -> bool:
        if self._future is None or self._future.done():
            return False
        if entry.speaker_id != self.speaker_id:
            return False
        if self.kind is not None and entry.kind != self.kind:
            return False
        self._future.set_result(entry)
        return True

    @property
    def resolved(self) -> bool:
        return (
            self._future is not None
            and self._future.done()
            and not self._future.cancelled()
        )

    async def wait(self) -> NarrativeEntry:
        """Return the captured entry, or raise BridgeTimeoutError."""
        if self._future is None:
            raise RuntimeError("RollCapture.wait() called outside its context")
        try:
            return await asyncio.wait_for(self._future, self.timeout)
        except asyncio.TimeoutError:
            raise BridgeTimeoutError(
                f"No {self.kind or 'narrative'} entry from {self.speaker_id} "
                f"within {self.timeout}s"
            ) from None
        finally:
            self.close()


class NarrativeLog:
    """Appends narrative entries and notifies roll captures.

    One instance is owned by the application and handed to the engine.
    """

    def __init__(self, capture_timeout: float | None = None) -> None:
        self.capture_timeout = (
            capture_timeout if capture_timeout is not None else settings.roll_capture_timeout
        )
        self._captures: dict[str, list[RollCapture]] = {}

    def _register(self, capture: RollCapture) -> None:
        self._captures.setdefault(capture.speaker_id, []).append(capture)

    def _unregister(self, capture: RollCapture) -> None:
        captures = self._captures.get(capture.speaker_id, [])
        if capture in captures:
            captures.remove(capture)
        if not captures:
            self._captures.pop(capture.speaker_id, None)

    def subscription_count(self, speaker_id: str | None = None) -> int:
        if speaker_id is not None:
            return len(self._captures.get(speaker_id, []))
        return sum(len(c) for c in self._captures.values())

    def capture_next(
        self, speaker_id: str, kind: str | None = "roll", timeout: float | None = None
    ) -> RollCapture:
        return RollCapture(
            self,
            speaker_id,
            kind,
            timeout if timeout is not None else self.capture_timeout,
        )

    def _notify(self, entry: NarrativeEntry) -> None:
        if entry.speaker_id is None:
            return
        for capture in list(self._captures.get(entry.speaker_id, [])):
            if capture._offer(entry):
                capture.close()

    async def append(
        self,
        db: AsyncSession,
        game_id: str,
        kind: str,
        content: str | None = None,
        speaker_id: str | None = None,
        author_user_id: str | None = None,
        data: dict | None = None,
    ) -> NarrativeEntry:
        """Persist a narrative entry with the next per-game sequence number."""
        result = await db.execute(
            select(func.max(NarrativeEntry.seq)).where(NarrativeEntry.game_id == game_id)
        )
        seq = (result.scalar() or 0) + 1

        entry = NarrativeEntry(
            game_id=game_id,
            seq=seq,
            kind=kind,
            speaker_id=speaker_id,
            author_user_id=author_user_id,
            content=content,
            data_json=json.dumps(data) if data is not None else None,
        )
        db.add(entry)
        await db.flush()
        logger.debug("narrative #%d %s by %s", seq, kind, speaker_id)
        self._notify(entry)
        return entry


async def get_entries(
    db: AsyncSession,
    game_id: str,
    limit: int = 50,
    after_seq: int | None = None,
) -> list[NarrativeEntry]:
    """Narrative entries for a game, oldest first."""
    stmt = select(NarrativeEntry).where(NarrativeEntry.game_id == game_id)
    if after_seq is not None:
        stmt = stmt.where(NarrativeEntry.seq > after_seq)
    stmt = stmt.order_by(NarrativeEntry.seq).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


def entry_data(entry: NarrativeEntry) -> dict:
    return json.loads(entry.data_json) if entry.data_json else {}
