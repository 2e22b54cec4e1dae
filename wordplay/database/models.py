"""
wordplay.database.models — SQLAlchemy 2.0 Data Models
======================================================

Tables:
- games                  — One word round per (user, game key, is_daily)
- custom_games           — Player-authored secret words
- arenas                 — Multiplayer competition containers
- streak_freeze_mints    — Earned / purchased freeze grants
- streak_freeze_applied  — Missed daily games covered by a freeze
- streak_freeze_ledgers  — Per-player write gate for freeze applications

``games.version``, ``arenas.version`` and ``streak_freeze_ledgers.version``
back compare-and-write updates: writers issue
``UPDATE … WHERE <key> AND version = :seen`` and treat a zero rowcount as
a lost race.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Wordplay ORM models."""


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class GameStatus(enum.StrEnum):
    IN_PROGRESS = "IN_PROGRESS"
    WON = "WON"
    LOST = "LOST"


class IdentityProvider(enum.StrEnum):
    """Where a player's ``user_id`` comes from."""
    SOCIAL = "fc"
    MESSAGING = "xmtp"
    ALT_SOCIAL = "lens"
    UNAUTHENTICATED = "fc_unauthed"
    ANONYMOUS = "anon"


class FreezeSource(enum.StrEnum):
    EARNED = "EARNED"
    PURCHASED = "PURCHASED"


# ---------------------------------------------------------------------------
# Games — one row per word round
# ---------------------------------------------------------------------------
class Game(Base):
    __tablename__ = "games"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    identity_provider: Mapped[str] = mapped_column(String(20), nullable=False)
    game_key: Mapped[str] = mapped_column(String(100), nullable=False)
    is_daily: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    word: Mapped[str] = mapped_column(String(5), nullable=False)
    guesses: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=GameStatus.IN_PROGRESS.value
    )
    guess_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_hard_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    arena_id: Mapped[int | None] = mapped_column(
        ForeignKey("arenas.id", ondelete="SET NULL"), default=None
    )
    arena_word_index: Mapped[int | None] = mapped_column(Integer, default=None)
    game_data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    user_data: Mapped[dict | None] = mapped_column(JSONB, default=None)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "identity_provider", "game_key", "is_daily",
            name="uq_games_user_game_key",
        ),
        Index("ix_games_daily_status", "identity_provider", "is_daily", "status"),
        Index("ix_games_arena", "arena_id", "arena_word_index"),
    )

    def __repr__(self) -> str:
        return (
            f"<Game id={self.id} user={self.identity_provider}:{self.user_id} "
            f"key={self.game_key!r} status={self.status}>"
        )


# ---------------------------------------------------------------------------
# Custom games — a word chosen by one player for others to guess
# ---------------------------------------------------------------------------
class CustomGame(Base):
    __tablename__ = "custom_games"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    word: Mapped[str] = mapped_column(String(5), nullable=False)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    identity_provider: Mapped[str] = mapped_column(String(20), nullable=False)
    is_art: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<CustomGame id={self.id} by={self.identity_provider}:{self.user_id}>"


# ---------------------------------------------------------------------------
# Arenas
# ---------------------------------------------------------------------------
class Arena(Base):
    __tablename__ = "arenas"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    identity_provider: Mapped[str] = mapped_column(String(20), nullable=False)
    config: Mapped[dict] = mapped_column(JSONB, nullable=False)
    members: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    last_notified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Arena id={self.id} members={len(self.members or [])} v{self.version}>"


# ---------------------------------------------------------------------------
# Streak freezes
# ---------------------------------------------------------------------------
class StreakFreezeMint(Base):
    """A freeze grant.  Earned grants stay unclaimed until the on-chain
    mint is confirmed; purchased grants are claimed on arrival."""

    __tablename__ = "streak_freeze_mints"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    identity_provider: Mapped[str] = mapped_column(String(20), nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    earned_at_streak_length: Mapped[int | None] = mapped_column(Integer, default=None)
    earned_at_game_key: Mapped[str | None] = mapped_column(String(100), default=None)
    claim_nonce: Mapped[str | None] = mapped_column(String(66), default=None)
    claim_signature: Mapped[str | None] = mapped_column(String(200), default=None)
    claim_tx_hash: Mapped[str | None] = mapped_column(String(66), default=None)
    claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    wallet_address: Mapped[str | None] = mapped_column(String(42), default=None)
    purchase_tx_ref: Mapped[str | None] = mapped_column(String(66), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "identity_provider", "earned_at_game_key",
            name="uq_freeze_mints_earned",
        ),
        UniqueConstraint("purchase_tx_ref", name="uq_freeze_mints_purchase"),
    )

    def __repr__(self) -> str:
        return f"<StreakFreezeMint id={self.id} source={self.source} claimed={self.claimed_at is not None}>"


class StreakFreezeApplied(Base):
    __tablename__ = "streak_freeze_applied"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    identity_provider: Mapped[str] = mapped_column(String(20), nullable=False)
    applied_to_game_key: Mapped[str] = mapped_column(String(10), nullable=False)
    burn_tx_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    wallet_address: Mapped[str | None] = mapped_column(String(42), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "identity_provider", "applied_to_game_key",
            name="uq_freeze_applied_day",
        ),
        Index("ix_freeze_applied_burn_tx", "burn_tx_hash"),
    )

    def __repr__(self) -> str:
        return f"<StreakFreezeApplied user={self.identity_provider}:{self.user_id} day={self.applied_to_game_key}>"


class StreakFreezeLedger(Base):
    """One row per player, bumped by every freeze application.

    The burn-usage and consecutive-day checks read many applied rows; the
    version on this row is what makes those reads and the insert that
    follows a single compare-and-write.
    """

    __tablename__ = "streak_freeze_ledgers"

    user_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    identity_provider: Mapped[str] = mapped_column(String(20), primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<StreakFreezeLedger user={self.identity_provider}:{self.user_id} v{self.version}>"
