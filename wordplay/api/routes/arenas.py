"""
wordplay.api.routes.arenas — Multiplayer arena endpoints
==========================================================
"""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from wordplay.api.deps import (
    get_config,
    get_current_admin,
    get_current_user,
    get_dispatcher,
    get_engine,
    get_secret,
    get_words,
)
from wordplay.config import WordplayConfig
from wordplay.engine.arena import ArenaConfig, AudienceMember
from wordplay.engine.evaluator import VALIDATION_MESSAGES
from wordplay.engine.games import UserKey
from wordplay.engine.words import WordList
from wordplay.exceptions import InvalidGuessError
from wordplay.services import arena_service
from wordplay.services.notifications import NotificationDispatcher

router = APIRouter(prefix="/arenas", tags=["arenas"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class AudienceIn(BaseModel):
    user_id: str
    identity_provider: str
    username: str | None = None


class ArenaCreate(BaseModel):
    word_count: int = Field(ge=1)
    audience_size: int = Field(ge=1)
    words: list[str] = Field(default_factory=list)
    random_words: bool = False
    audience: list[AudienceIn] = Field(default_factory=list)
    duration_minutes: int | None = None
    start_at: datetime | None = None
    sudden_death: bool = False
    is_hard_mode_required: bool = False

    def to_config(self) -> ArenaConfig:
        start_at = self.start_at
        if start_at is not None and start_at.tzinfo is None:
            start_at = start_at.replace(tzinfo=UTC)
        return ArenaConfig(
            word_count=self.word_count,
            audience_size=self.audience_size,
            words=tuple(w.strip().lower() for w in self.words),
            random_words=self.random_words,
            audience=tuple(
                AudienceMember(a.user_id, a.identity_provider, a.username) for a in self.audience
            ),
            duration_minutes=self.duration_minutes,
            start_at=start_at,
            sudden_death=self.sudden_death,
            is_hard_mode_required=self.is_hard_mode_required,
        )


class JoinIn(BaseModel):
    username: str | None = None


class MemberIn(BaseModel):
    user_id: str
    identity_provider: str


class ArenaGuessIn(BaseModel):
    guess: str | None = None


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.post("")
def create_arena(
    body: ArenaCreate,
    user: UserKey = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    words: WordList = Depends(get_words),
):
    snap = arena_service.create_arena(engine, user, body.to_config(), words=words)
    return snap.to_public_dict(datetime.now(UTC))


@router.get("/{arena_id}")
def get_arena(arena_id: int, engine: Engine = Depends(get_engine)):
    return arena_service.load_arena(engine, arena_id).to_public_dict(datetime.now(UTC))


@router.post("/{arena_id}/join")
def join_arena(
    arena_id: int,
    body: JoinIn,
    user: UserKey = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    cfg: WordplayConfig = Depends(get_config),
):
    snap = arena_service.join_arena(engine, arena_id, user, username=body.username, cfg=cfg)
    return snap.to_public_dict(datetime.now(UTC))


@router.post("/{arena_id}/kick")
def kick_member(
    arena_id: int,
    body: MemberIn,
    user: UserKey = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    target = UserKey(body.user_id, body.identity_provider)
    return arena_service.kick_member(engine, arena_id, user, target).to_public_dict(datetime.now(UTC))


@router.post("/{arena_id}/unkick")
def unkick_member(
    arena_id: int,
    body: MemberIn,
    user: UserKey = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    target = UserKey(body.user_id, body.identity_provider)
    return arena_service.unkick_member(engine, arena_id, user, target).to_public_dict(datetime.now(UTC))


@router.post("/{arena_id}/play")
def play_arena(
    arena_id: int,
    body: ArenaGuessIn,
    user: UserKey = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    words: WordList = Depends(get_words),
    secret: str = Depends(get_secret),
):
    """Resume (or start) the member's current round, optionally guessing."""
    result = arena_service.play(engine, arena_id, user, body.guess, words=words, secret=secret)
    if result.outcome is not None and not result.outcome.accepted:
        raise InvalidGuessError(
            result.outcome.validation, VALIDATION_MESSAGES[result.outcome.validation]
        )
    return {"game": result.game.to_dict(), "hasNext": result.has_next}


@router.get("/{arena_id}/results")
def arena_results(arena_id: int, engine: Engine = Depends(get_engine)):
    return [
        {
            "rank": s.rank,
            "userId": s.user.user_id,
            "identityProvider": s.user.identity_provider,
            "username": s.username,
            "totalScore": s.total_score,
            "wins": s.wins,
            "roundsCompleted": s.rounds_completed,
        }
        for s in arena_service.arena_results(engine, arena_id)
    ]


@router.post("/{arena_id}/notify")
def notify_arena(
    arena_id: int,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
    cfg: WordplayConfig = Depends(get_config),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    sent = arena_service.notify_arena_members(
        engine, arena_id, dispatcher, cooldown_minutes=cfg.arena_notify_cooldown_minutes,
    )
    return {"sent": sent}
