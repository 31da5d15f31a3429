"""SQLAlchemy ORM models for eventide-core."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _uuid() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_uuid)
    username: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    api_key_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    game_links: Mapped[list[GamePlayer]] = relationship(back_populates="user")

    def __str__(self) -> str:
        return f"{self.username} ({self.id[:8]})"


class Game(Base):
    """A table — container for characters, action cards, combats and the narrative log."""

    __tablename__ = "games"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    created_by: Mapped[str] = mapped_column(String(32), ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    user_links: Mapped[list[GamePlayer]] = relationship(back_populates="game")
    characters: Mapped[list[Character]] = relationship(back_populates="game")

    def __str__(self) -> str:
        return self.name


class GamePlayer(Base):
    """Per-game role of a user. GM is the privileged role."""

    __tablename__ = "game_players"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_uuid)
    game_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("games.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(8), nullable=False, default="PL")  # "GM" | "PL"
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    game: Mapped[Game] = relationship(back_populates="user_links")
    user: Mapped[User] = relationship(back_populates="game_links")

    __table_args__ = (
        Index("ix_game_player", "game_id", "user_id", unique=True),
    )


class Character(Base):
    """A character or NPC. Base statistics live here; derived statistics are computed."""

    __tablename__ = "characters"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_uuid)
    game_id: Mapped[str] = mapped_column(String(32), ForeignKey("games.id"))
    owner_user_id: Mapped[str | None] = mapped_column(
        String(32), ForeignKey("users.id"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    # {"acro": {"value": 1, "override": null}, ...}
    abilities_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    # {"cmin": {"value": 20, "override": null}, "vuln": {...}, ...}
    hidden_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    resolve: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    resolve_max: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    power: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    power_max: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    active_transformation_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    active_transformation_cursed: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    game: Mapped[Game] = relationship(back_populates="characters")
    items: Mapped[list[CharacterItem]] = relationship(
        back_populates="character", cascade="all, delete-orphan", lazy="selectin"
    )

    def __str__(self) -> str:
        return f"{self.name} ({self.id[:8]})"


class CharacterItem(Base):
    """An item owned by a character: status, gear, feature, combat power or transformation."""

    __tablename__ = "character_items"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_uuid)
    character_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("characters.id", ondelete="CASCADE"), nullable=False
    )
    item_type: Mapped[str] = mapped_column(String(16), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    equipped: Mapped[bool] = mapped_column(Boolean, default=True)
    cost: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cursed: Mapped[bool] = mapped_column(Boolean, default=False)
    # [{"target_stat": "acro", "field": "total", "mode": "add", "value": 1}, ...]
    changes_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    character: Mapped[Character] = relationship(back_populates="items")

    __table_args__ = (
        Index("ix_item_character", "character_id"),
    )


class ActionCard(Base):
    """An authored action card. ``data_json`` holds an ``ActionCardData`` document."""

    __tablename__ = "action_cards"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_uuid)
    game_id: Mapped[str] = mapped_column(String(32), ForeignKey("games.id"))
    actor_id: Mapped[str] = mapped_column(String(32), ForeignKey("characters.id"))
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    data_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_by: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def __str__(self) -> str:
        return self.name


class Combat(Base):
    """Turn order for an encounter."""

    __tablename__ = "combats"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_uuid)
    game_id: Mapped[str] = mapped_column(String(32), ForeignKey("games.id"))
    combatant_ids_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    turn: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    round: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class NarrativeEntry(Base):
    """A chat/narrative log record."""

    __tablename__ = "narrative_entries"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_uuid)
    game_id: Mapped[str] = mapped_column(String(32), ForeignKey("games.id"))
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    speaker_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    author_user_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    data_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_narrative_game_seq", "game_id", "seq", unique=True),
    )


class ApprovalRequest(Base):
    """A player's request for a GM to execute an action card on their behalf."""

    __tablename__ = "approval_requests"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_uuid)
    game_id: Mapped[str] = mapped_column(String(32), ForeignKey("games.id"))
    actor_id: Mapped[str] = mapped_column(String(32), ForeignKey("characters.id"))
    action_card_id: Mapped[str] = mapped_column(String(32), ForeignKey("action_cards.id"))
    requesting_user_id: Mapped[str] = mapped_column(String(32), ForeignKey("users.id"))
    target_ids_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    roll_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    selections_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    repetition_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="pending"
    )  # "pending" | "approved" | "dismissed"
    resolved_by: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_approval_game_status", "game_id", "status"),
    )
