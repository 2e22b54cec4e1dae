"""
wordplay.services.game_service — Single-Player Game State Machine
==================================================================

Persistence-aware operations on :class:`~wordplay.database.models.Game`:

* :func:`load_or_create` — insert-if-absent keyed on
  ``(user_id, identity_provider, game_key, is_daily)``.  A caller that loses
  the creation race reads back the winner's row, so every caller observes
  the same game id.
* :func:`guess` / :func:`undo_guess` / :func:`reset` — compare-and-write on
  ``games.version``: read, validate, ``UPDATE … WHERE version = :seen``.
  A zero rowcount means another request got there first; the operation
  re-reads and re-validates, up to :data:`MAX_WRITE_ATTEMPTS` times.

Invalid guesses never touch the database; they come back as a
:class:`~wordplay.engine.evaluator.ValidationResult` on the outcome.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Engine, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wordplay.constants import MAX_GUESSES, WORD_LENGTH
from wordplay.database.engine import get_session
from wordplay.database.models import CustomGame, Game, GameStatus, IdentityProvider
from wordplay.engine.evaluator import ValidationResult, normalize_guess, validate_guess
from wordplay.engine.games import (
    GameKind,
    GuessedGame,
    PublicGuessedGame,
    UserGameKey,
    UserKey,
    classify_game_key,
    to_guessed_game,
    to_public_game,
)
from wordplay.engine.words import WordList
from wordplay.exceptions import (
    ConflictError,
    InvariantViolation,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3

_CUSTOM_WORD_RE = re.compile(rf"^[a-z]{{{WORD_LENGTH}}}$")


@dataclass(frozen=True, slots=True)
class PreCreateResult:
    """Word (and arena context) for a game about to be created."""
    word: str
    arena_id: int | None = None
    arena_word_index: int | None = None
    is_hard_mode: bool | None = None


PreCreate = Callable[[], PreCreateResult]


@dataclass(frozen=True, slots=True)
class GuessOutcome:
    game: GuessedGame
    validation: ValidationResult
    finished: bool = False  # True only on the call that ended the game

    @property
    def accepted(self) -> bool:
        return self.validation is ValidationResult.VALID


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
def _find(session: Session, key: UserGameKey) -> Game | None:
    return session.scalar(
        select(Game).where(
            Game.user_id == key.user.user_id,
            Game.identity_provider == key.user.identity_provider,
            Game.game_key == key.game_key,
            Game.is_daily == key.is_daily,
        )
    )


def _require(session: Session, game_id: str) -> Game:
    game = session.get(Game, game_id)
    if game is None:
        raise NotFoundError(f"Game {game_id} not found", details={"game_id": game_id})
    return game


def _select_word(
    session: Session, key: UserGameKey, *, words: WordList, secret: str
) -> str:
    kind = classify_game_key(key.game_key, key.is_daily)
    idp = key.user.identity_provider
    if kind is GameKind.DAILY:
        return words.daily_word(key.game_key, idp, secret)
    if kind is GameKind.CUSTOM:
        custom_id = key.game_key.removeprefix("custom_")
        custom = session.get(CustomGame, custom_id)
        if custom is None:
            raise NotFoundError(f"Custom word {custom_id} not found")
        return custom.word
    if kind is GameKind.ARENA:
        raise InvariantViolation("Arena rounds are created through their arena")
    return words.practice_word(key.game_key, idp, secret)


# ---------------------------------------------------------------------------
# Load / create
# ---------------------------------------------------------------------------
def load_or_create(
    engine: Engine,
    key: UserGameKey,
    *,
    words: WordList,
    secret: str,
    pre_create: PreCreate | None = None,
    user_data: dict[str, Any] | None = None,
    is_hard_mode: bool = False,
) -> Game:
    """Return the game for *key*, creating it exactly once.

    *pre_create* supplies the word when creation depends on caller context
    (arena rounds).  It is only invoked when no game exists yet.
    """
    with Session(engine, expire_on_commit=False) as session:
        existing = _find(session, key)
        if existing is not None:
            session.expunge(existing)
            return existing

        arena_id = arena_word_index = None
        if pre_create is not None:
            pre = pre_create()
            word = pre.word
            arena_id, arena_word_index = pre.arena_id, pre.arena_word_index
            if pre.is_hard_mode is not None:
                is_hard_mode = pre.is_hard_mode
        else:
            word = _select_word(session, key, words=words, secret=secret)

        game = Game(
            user_id=key.user.user_id,
            identity_provider=key.user.identity_provider,
            game_key=key.game_key,
            is_daily=key.is_daily,
            word=word,
            guesses=[],
            status=GameStatus.IN_PROGRESS.value,
            guess_count=0,
            is_hard_mode=is_hard_mode,
            arena_id=arena_id,
            arena_word_index=arena_word_index,
            game_data={},
            user_data=user_data,
            version=1,
        )
        # The unique constraint is the arbiter: whoever inserts first wins,
        # everybody else reads the winner's row back.
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(game)
                session.flush()
        except IntegrityError:
            logger.info("Lost create race for %s %s; reading winner", key.user, key.game_key)
            winner = _find(session, key)
            session.commit()
            if winner is None:
                raise ConflictError(
                    f"Game {key.game_key} could not be created or read back"
                ) from None
            session.expunge(winner)
            return winner

        session.commit()
        session.expunge(game)
        logger.info("Created game %s for %s key=%s", game.id, key.user, key.game_key)
        return game


def load(engine: Engine, game_id: str) -> GuessedGame | None:
    with Session(engine) as session:
        game = session.get(Game, game_id)
        return to_guessed_game(game) if game is not None else None


def load_public(
    engine: Engine, game_id: str, personal: bool
) -> GuessedGame | PublicGuessedGame | None:
    """Full view for the owner (*personal*), statuses only for others."""
    guessed = load(engine, game_id)
    if guessed is None:
        return None
    return guessed if personal else to_public_game(guessed)


def load_all_dailies(engine: Engine, user: UserKey) -> list[GuessedGame]:
    with Session(engine) as session:
        rows = session.scalars(
            select(Game)
            .where(
                Game.user_id == user.user_id,
                Game.identity_provider == user.identity_provider,
                Game.is_daily.is_(True),
            )
            .order_by(Game.game_key)
        ).all()
        return [to_guessed_game(g) for g in rows]


# ---------------------------------------------------------------------------
# Pure projections
# ---------------------------------------------------------------------------
def check_guess(game: Game, text: str | None, *, words: WordList) -> ValidationResult:
    """Validate *text* against *game* without touching it."""
    return validate_guess(
        text,
        word=game.word,
        guesses=list(game.guesses or []),
        is_hard_mode=game.is_hard_mode,
        dictionary=words,
    )


# ---------------------------------------------------------------------------
# Compare-and-write
# ---------------------------------------------------------------------------
def _write(session: Session, game: Game, **values: Any) -> bool:
    result = session.execute(
        update(Game)
        .where(Game.id == game.id, Game.version == game.version)
        .values(version=game.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def guess(engine: Engine, game_id: str, text: str | None, *, words: WordList) -> GuessOutcome:
    """Submit a guess.

    Raises
    ------
    NotFoundError
        Unknown *game_id*.
    InvariantViolation
        The game is already WON or LOST.
    ConflictError
        Kept losing the version race.
    """
    for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
        with Session(engine, expire_on_commit=False) as session:
            game = _require(session, game_id)
            if game.status != GameStatus.IN_PROGRESS:
                raise InvariantViolation(
                    f"Game {game_id} is already {game.status}",
                    details={"status": game.status},
                )

            result = check_guess(game, text, words=words)
            if result is not ValidationResult.VALID:
                logger.debug("Rejected guess %r on %s: %s", text, game_id, result)
                return GuessOutcome(to_guessed_game(game), result)

            word = normalize_guess(text)
            guesses = [*game.guesses, word]
            if word == game.word:
                status = GameStatus.WON
            elif len(guesses) >= MAX_GUESSES:
                status = GameStatus.LOST
            else:
                status = GameStatus.IN_PROGRESS
            finished = status is not GameStatus.IN_PROGRESS

            values: dict[str, Any] = {
                "guesses": guesses,
                "guess_count": len(guesses),
                "status": status.value,
            }
            if finished:
                values["completed_at"] = datetime.now(UTC)

            if not _write(session, game, **values):
                session.rollback()
                logger.warning(
                    "Version conflict on game %s (attempt %d/%d)",
                    game_id, attempt, MAX_WRITE_ATTEMPTS,
                )
                continue

            session.commit()
            session.refresh(game)
            if finished:
                logger.info(
                    "Game %s %s in %d guesses (%s)",
                    game_id, status.value, len(guesses), game.game_key,
                )
            return GuessOutcome(to_guessed_game(game), result, finished=finished)

    raise ConflictError(f"Game {game_id} kept changing; retry the guess")


def undo_guess(engine: Engine, game_id: str) -> GuessedGame:
    """Drop the last guess of an in-progress practice or custom game."""
    for _ in range(MAX_WRITE_ATTEMPTS):
        with Session(engine, expire_on_commit=False) as session:
            game = _require(session, game_id)
            kind = classify_game_key(game.game_key, game.is_daily)
            if kind not in (GameKind.PRACTICE, GameKind.CUSTOM):
                raise InvariantViolation(f"Undo is not available for {kind} games")
            if game.status != GameStatus.IN_PROGRESS:
                raise InvariantViolation(f"Game {game_id} is already {game.status}")
            if not game.guesses:
                return to_guessed_game(game)

            guesses = list(game.guesses[:-1])
            if not _write(session, game, guesses=guesses, guess_count=len(guesses)):
                session.rollback()
                continue
            session.commit()
            session.refresh(game)
            return to_guessed_game(game)

    raise ConflictError(f"Game {game_id} kept changing; retry the undo")


def reset(engine: Engine, game_id: str, *, words: WordList, secret: str) -> GuessedGame:
    """Clear the guesses and reopen the game.

    * daily — only while in progress; the word stays (it is the day's word)
    * custom — the word stays (the creator chose it)
    * practice — a fresh word is drawn
    * arena — never, rounds count toward the arena results
    """
    for _ in range(MAX_WRITE_ATTEMPTS):
        with Session(engine, expire_on_commit=False) as session:
            game = _require(session, game_id)
            kind = classify_game_key(game.game_key, game.is_daily)
            if kind is GameKind.ARENA:
                raise InvariantViolation("Arena rounds cannot be reset")
            if kind is GameKind.DAILY and game.status != GameStatus.IN_PROGRESS:
                raise InvariantViolation("A finished daily game cannot be reset")

            word = game.word
            if kind is GameKind.PRACTICE:
                # Re-seed off the version so every reset draws a new word.
                word = words.practice_word(
                    f"{game.game_key}/{game.version}", game.identity_provider, secret
                )

            ok = _write(
                session, game,
                guesses=[], guess_count=0, word=word,
                status=GameStatus.IN_PROGRESS.value, completed_at=None,
            )
            if not ok:
                session.rollback()
                continue
            session.commit()
            session.refresh(game)
            logger.info("Reset game %s (%s)", game_id, kind)
            return to_guessed_game(game)

    raise ConflictError(f"Game {game_id} kept changing; retry the reset")


def update_game_data(engine: Engine, game_id: str, data: dict[str, Any]) -> GuessedGame:
    """Merge *data* into the game's side-channel map (e.g. mint receipts)."""
    for _ in range(MAX_WRITE_ATTEMPTS):
        with Session(engine, expire_on_commit=False) as session:
            game = _require(session, game_id)
            merged = {**(game.game_data or {}), **data}
            if not _write(session, game, game_data=merged):
                session.rollback()
                continue
            session.commit()
            session.refresh(game)
            return to_guessed_game(game)

    raise ConflictError(f"Game {game_id} kept changing; retry")


# ---------------------------------------------------------------------------
# Custom words
# ---------------------------------------------------------------------------
def create_custom_word(
    engine: Engine, creator: UserKey, word: str, *, is_art: bool = False
) -> CustomGame:
    """Store a player-chosen word; others play it as ``custom_<id>``."""
    if creator.identity_provider == IdentityProvider.ANONYMOUS:
        raise ValidationError("Anonymous players cannot create custom words", code="anonymous")
    normalized = normalize_guess(word)
    if not _CUSTOM_WORD_RE.match(normalized):
        raise ValidationError(f"Invalid word {word!r}", code="invalid_word")

    with get_session(engine) as session:
        custom = CustomGame(
            word=normalized,
            user_id=creator.user_id,
            identity_provider=creator.identity_provider,
            is_art=is_art,
        )
        session.add(custom)
    logger.info("Custom word %s created by %s", custom.id, creator)
    return custom
