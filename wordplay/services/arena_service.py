"""
wordplay.services.arena_service — Arena Orchestration
======================================================

Persistence-aware arena operations.  Rules live in
:mod:`wordplay.engine.arena`; this module loads the arena row and its rounds,
asks the engine, and writes.

The arena row is mutated by three paths only (join, kick/un-kick and the
notification stamp), all of them compare-and-write on ``arenas.version``:
re-read the row, re-validate against what was just read, then
``UPDATE … WHERE version = :seen``.  Two players racing for the last open
slot therefore get exactly one success; the loser re-reads, finds no slot,
and is rejected.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import Engine, select, update
from sqlalchemy.orm import Session

from wordplay.config import WordplayConfig
from wordplay.constants import ensure_utc
from wordplay.database.models import Arena, Game, GameStatus
from wordplay.engine.arena import (
    ArenaAvailability,
    ArenaConfig,
    ArenaMember,
    ArenaRound,
    ArenaStanding,
    AvailabilityStatus,
    CompletionStatus,
    Membership,
    awaiting_audience,
    evaluate_availability,
    has_next_round,
    rank_arena_members,
    rounds_for_user,
)
from wordplay.engine.games import (
    GuessedGame,
    UserGameKey,
    UserKey,
    arena_game_key,
    format_duration,
    to_guessed_game,
)
from wordplay.engine.words import WordList
from wordplay.exceptions import (
    ArenaRejectedError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from wordplay.services import game_service
from wordplay.services.game_service import GuessOutcome, PreCreateResult
from wordplay.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3
ENDING_SOON = timedelta(hours=1)


@dataclass(slots=True)
class ArenaSnapshot:
    """An arena row plus all of its rounds, read in one session."""

    id: int
    creator: UserKey
    config: ArenaConfig
    members: list[ArenaMember]
    version: int
    started_at: datetime | None = None
    last_notified_at: datetime | None = None
    created_at: datetime | None = None
    rounds: list[ArenaRound] = field(default_factory=list)

    def availability(self, now: datetime, user: UserKey | None = None) -> ArenaAvailability:
        return evaluate_availability(
            self.config, self.members, self.rounds,
            started_at=self.started_at, now=now, user=user,
        )

    def to_public_dict(self, now: datetime) -> dict[str, Any]:
        """Everything but the secret words."""
        avail = self.availability(now)
        waiting, open_slots = awaiting_audience(self.config, self.members)
        return {
            "id": self.id,
            "creator": {"userId": self.creator.user_id, "identityProvider": self.creator.identity_provider},
            "config": self.config.to_dict(include_words=False),
            "members": [m.to_dict() for m in self.members],
            "awaitingAudience": [a.to_dict() for a in waiting],
            "freeSlots": open_slots,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "status": avail.status.value,
            "completionStatus": avail.completion_status.value,
            "start": avail.start.isoformat() if avail.start else None,
            "end": avail.end.isoformat() if avail.end else None,
        }


@dataclass(frozen=True, slots=True)
class ArenaPlayResult:
    outcome: GuessOutcome | None
    game: GuessedGame  # state after the guess, if one was made
    has_next: bool


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------
def _round(game: Game) -> ArenaRound:
    return ArenaRound(
        user=UserKey(game.user_id, game.identity_provider),
        arena_word_index=game.arena_word_index or 0,
        status=GameStatus(game.status),
        guess_count=game.guess_count,
        completed_at=ensure_utc(game.completed_at),
        game_key=game.game_key,
    )


def _snapshot(session: Session, arena_id: int) -> ArenaSnapshot:
    arena = session.get(Arena, arena_id)
    if arena is None:
        raise NotFoundError(f"Arena {arena_id} not found", details={"arena_id": arena_id})
    games = session.scalars(select(Game).where(Game.arena_id == arena_id)).all()
    return ArenaSnapshot(
        id=arena.id,
        creator=UserKey(arena.user_id, arena.identity_provider),
        config=ArenaConfig.from_dict(arena.config),
        members=[ArenaMember.from_dict(m) for m in arena.members or []],
        version=arena.version,
        started_at=ensure_utc(arena.started_at),
        last_notified_at=ensure_utc(arena.last_notified_at),
        created_at=ensure_utc(arena.created_at),
        rounds=[_round(g) for g in games],
    )


def load_arena(engine: Engine, arena_id: int) -> ArenaSnapshot:
    with Session(engine) as session:
        return _snapshot(session, arena_id)


def availability(
    engine: Engine, arena_id: int, user: UserKey | None = None, *, now: datetime | None = None
) -> ArenaAvailability:
    return load_arena(engine, arena_id).availability(now or datetime.now(UTC), user)


def _cas_members(session: Session, snap: ArenaSnapshot, **values: Any) -> bool:
    result = session.execute(
        update(Arena)
        .where(Arena.id == snap.id, Arena.version == snap.version)
        .values(version=snap.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------
def create_arena(
    engine: Engine, creator: UserKey, config: ArenaConfig, *, words: WordList
) -> ArenaSnapshot:
    try:
        config.validate()
    except ValueError as exc:
        raise ValidationError(str(exc), code="invalid_arena_config") from exc
    if config.random_words:
        # Drawn once so every member plays the same words.
        config = dataclasses.replace(
            config, words=tuple(words.generate_random_words(config.word_count))
        )
    else:
        bad = [w for w in config.words if not words.is_valid_word(w)]
        if bad:
            raise ValidationError(
                f"Not in word list: {', '.join(bad)}", code="invalid_arena_words",
                details={"words": bad},
            )

    with Session(engine) as session:
        arena = Arena(
            user_id=creator.user_id,
            identity_provider=creator.identity_provider,
            config=config.to_dict(),
            members=[],
            version=1,
        )
        session.add(arena)
        session.commit()
        arena_id = arena.id
        snap = _snapshot(session, arena_id)
    logger.info(
        "Arena %d created by %s: %d words, %d slots",
        arena_id, creator, config.word_count, config.audience_size,
    )
    return snap


# ---------------------------------------------------------------------------
# Join
# ---------------------------------------------------------------------------
def _is_blacklisted(cfg: WordplayConfig | None, user: UserKey) -> bool:
    if cfg is None:
        return False
    return f"{user.identity_provider}/{user.user_id}" in cfg.arena_blacklist


def join_arena(
    engine: Engine,
    arena_id: int,
    user: UserKey,
    *,
    username: str | None = None,
    cfg: WordplayConfig | None = None,
    now: datetime | None = None,
) -> ArenaSnapshot:
    """Add *user* to the arena, starting it if it starts on first join.

    Joining again as a member is a no-op.

    Raises
    ------
    NotFoundError
        Unknown arena.
    ArenaRejectedError
        ``blacklisted``, ``closed``, ``kicked`` or ``no_free_slots``.
    ConflictError
        Kept losing the version race.
    """
    now = now or datetime.now(UTC)
    if _is_blacklisted(cfg, user):
        raise ArenaRejectedError("You cannot join this arena", code="blacklisted")

    for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
        with Session(engine) as session:
            snap = _snapshot(session, arena_id)
            avail = snap.availability(now, user)
            membership = avail.membership

            if membership is not None and membership.is_member:
                return snap
            if membership is Membership.MEMBER_KICKED:
                raise ArenaRejectedError("You were removed from this arena", code="kicked")
            if avail.status is AvailabilityStatus.ENDED:
                raise ArenaRejectedError("Arena is already closed", code="closed")
            if membership is Membership.NOT_MEMBER:
                raise ArenaRejectedError("No free slots left in this arena", code="no_free_slots")

            members = [m.to_dict() for m in snap.members]
            members.append(
                ArenaMember(user.user_id, user.identity_provider, username, now.isoformat()).to_dict()
            )
            values: dict[str, Any] = {"members": members}
            if snap.config.is_immediate and snap.started_at is None:
                values["started_at"] = now

            if not _cas_members(session, snap, **values):
                session.rollback()
                logger.warning(
                    "Join race on arena %d for %s (attempt %d/%d)",
                    arena_id, user, attempt, MAX_WRITE_ATTEMPTS,
                )
                continue
            session.commit()
            joined = _snapshot(session, arena_id)

        logger.info("%s joined arena %d as %s", user, arena_id, membership)
        if "started_at" in values:
            logger.info("Arena %d started", arena_id)
        return joined

    raise ConflictError(f"Arena {arena_id} kept changing; retry the join")


# ---------------------------------------------------------------------------
# Kick / un-kick
# ---------------------------------------------------------------------------
def _set_kicked(
    engine: Engine, arena_id: int, actor: UserKey, target: UserKey, kicked_at: str | None
) -> ArenaSnapshot:
    for _ in range(MAX_WRITE_ATTEMPTS):
        with Session(engine) as session:
            snap = _snapshot(session, arena_id)
            if actor != snap.creator:
                raise ArenaRejectedError("Only the arena creator can do that", code="not_creator")
            if not any(m.key == target for m in snap.members):
                raise ArenaRejectedError(f"{target} is not a member", code="not_member")

            members = [
                {**m.to_dict(), "kicked_at": kicked_at} if m.key == target else m.to_dict()
                for m in snap.members
            ]
            if not _cas_members(session, snap, members=members):
                session.rollback()
                continue
            session.commit()
            result = _snapshot(session, arena_id)
        logger.info(
            "Arena %d: %s %s by %s",
            arena_id, target, "kicked" if kicked_at else "reinstated", actor,
        )
        return result

    raise ConflictError(f"Arena {arena_id} kept changing; retry")


def kick_member(
    engine: Engine, arena_id: int, actor: UserKey, target: UserKey, *, now: datetime | None = None
) -> ArenaSnapshot:
    now = now or datetime.now(UTC)
    return _set_kicked(engine, arena_id, actor, target, now.isoformat())


def unkick_member(engine: Engine, arena_id: int, actor: UserKey, target: UserKey) -> ArenaSnapshot:
    return _set_kicked(engine, arena_id, actor, target, None)


# ---------------------------------------------------------------------------
# Play
# ---------------------------------------------------------------------------
def _require_playable(snap: ArenaSnapshot, user: UserKey, now: datetime) -> ArenaAvailability:
    avail = snap.availability(now, user)
    if avail.membership is None or not avail.membership.is_member:
        raise ArenaRejectedError("You are not a member of the arena", code="not_member")
    if avail.status is not AvailabilityStatus.OPEN:
        raise ArenaRejectedError("Arena is not open for playing", code="not_open")
    return avail


def check_can_play(
    engine: Engine, arena_id: int, user: UserKey, *, now: datetime | None = None
) -> ArenaAvailability:
    """Gate for any guess on a round of this arena, whichever route it comes from.

    Raises
    ------
    ArenaRejectedError
        ``not_member`` (including kicked members) or ``not_open``.
    """
    return _require_playable(load_arena(engine, arena_id), user, now or datetime.now(UTC))


def play_next_round(
    engine: Engine,
    arena_id: int,
    user: UserKey,
    *,
    words: WordList,
    secret: str,
    user_data: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Game:
    """The member's current round, creating the next one when needed.

    Raises
    ------
    ArenaRejectedError
        ``not_member``, ``not_open`` or ``completed``.
    """
    now = now or datetime.now(UTC)
    snap = load_arena(engine, arena_id)
    avail = _require_playable(snap, user, now)

    mine = rounds_for_user(snap.rounds, user)
    last = mine[-1] if mine else None
    if last is not None and last.status is GameStatus.IN_PROGRESS:
        game_key = last.game_key or arena_game_key(arena_id, len(mine))
        pre_create = None
    elif (
        len(mine) < snap.config.word_count
        and avail.member_completion_status is not CompletionStatus.COMPLETED
    ):
        index = len(mine)
        game_key = arena_game_key(arena_id, index + 1)
        config = snap.config

        def pre_create() -> PreCreateResult:
            return PreCreateResult(
                word=config.words[index],
                arena_id=arena_id,
                arena_word_index=index,
                is_hard_mode=config.is_hard_mode_required,
            )
    else:
        raise ArenaRejectedError("All arena rounds are completed", code="completed")

    key = UserGameKey(user, game_key, is_daily=False)
    return game_service.load_or_create(
        engine, key, words=words, secret=secret, pre_create=pre_create, user_data=user_data,
    )


def has_next(engine: Engine, arena_id: int, user: UserKey) -> bool:
    snap = load_arena(engine, arena_id)
    return has_next_round(snap.config, snap.rounds, user, snap.members)


def play(
    engine: Engine,
    arena_id: int,
    user: UserKey,
    text: str | None,
    *,
    words: WordList,
    secret: str,
    now: datetime | None = None,
) -> ArenaPlayResult:
    """Resolve the member's round, apply *text* if given, report ``has_next``."""
    game = play_next_round(engine, arena_id, user, words=words, secret=secret, now=now)
    outcome = None
    current = to_guessed_game(game)
    if text:
        outcome = game_service.guess(engine, game.id, text, words=words)
        current = outcome.game
    # Recomputed after the guess: this round may have ended the arena.
    return ArenaPlayResult(outcome=outcome, game=current, has_next=has_next(engine, arena_id, user))


def arena_results(engine: Engine, arena_id: int) -> list[ArenaStanding]:
    snap = load_arena(engine, arena_id)
    return rank_arena_members(snap.members, snap.rounds)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
def plan_notification(
    snap: ArenaSnapshot, now: datetime
) -> tuple[list[UserKey], str, str]:
    """Recipients (members + invited, deduped) and the message for now."""
    recipients: list[UserKey] = []
    for key in [m.key for m in snap.members if not m.kicked_at] + [a.key for a in snap.config.audience]:
        if key not in recipients:
            recipients.append(key)

    avail = snap.availability(now)
    title = f"Arena {snap.id}"
    if avail.status is AvailabilityStatus.PENDING:
        body = "A new arena was created. Join now!"
    elif avail.status is AvailabilityStatus.ENDED:
        body = "The arena has ended. Thanks for playing!"
    elif avail.end is not None and avail.end - now < ENDING_SOON:
        body = f"The arena ends in {format_duration(max(1, int((avail.end - now).total_seconds() // 60)))}. Don't miss out!"
    else:
        body = "The arena has started. Good luck!"
    return recipients, title, body


def notify_arena_members(
    engine: Engine,
    arena_id: int,
    dispatcher: NotificationDispatcher,
    *,
    cooldown_minutes: int = 60,
    now: datetime | None = None,
) -> bool:
    """Notify the arena unless it was notified within the cooldown.

    The ``last_notified_at`` stamp is written first (compare-and-write) so
    concurrent callers send at most one batch.  Returns True if sent.
    """
    now = now or datetime.now(UTC)
    with Session(engine) as session:
        snap = _snapshot(session, arena_id)
        if snap.last_notified_at and now - snap.last_notified_at < timedelta(minutes=cooldown_minutes):
            logger.debug("Arena %d notified recently; skipping", arena_id)
            return False
        if not _cas_members(session, snap, last_notified_at=now):
            session.rollback()
            logger.info("Arena %d notification claimed by another worker", arena_id)
            return False
        session.commit()

    recipients, title, body = plan_notification(snap, now)
    dispatcher.notify(recipients, title, body)
    logger.info("Arena %d: notified %d player(s)", arena_id, len(recipients))
    return True
