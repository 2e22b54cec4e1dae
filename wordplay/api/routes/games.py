"""
wordplay.api.routes.games — Single-player game endpoints
==========================================================

Daily, practice and custom games, the stats page and share text.  Every
route resolves the player from the bearer token; a game can only be
mutated by its owner.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from wordplay.api.deps import (
    get_config,
    get_current_user,
    get_engine,
    get_optional_user,
    get_secret,
    get_words,
)
from wordplay.config import WordplayConfig
from wordplay.constants import is_daily_key, today_key
from wordplay.database.models import GameStatus
from wordplay.engine.evaluator import VALIDATION_MESSAGES
from wordplay.engine.games import (
    GuessedGame,
    UserGameKey,
    UserKey,
    build_share_text,
    custom_game_key,
    practice_game_key,
    to_guessed_game,
)
from wordplay.engine.words import WordList
from wordplay.exceptions import InvalidGuessError, NotFoundError, ValidationError
from wordplay.services import arena_service, freeze_service, game_service, streak_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["games"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class StartGame(BaseModel):
    game_key: str | None = None
    is_hard_mode: bool = False
    user_data: dict[str, Any] | None = None


class GuessIn(BaseModel):
    guess: str


class GameDataIn(BaseModel):
    data: dict[str, Any] = Field(default_factory=dict)


class CustomWordIn(BaseModel):
    word: str
    is_art: bool = False


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _owned(engine: Engine, game_id: str, user: UserKey) -> GuessedGame:
    """The game if *user* owns it; other players get a 404, not a 403."""
    game = game_service.load(engine, game_id)
    if game is None or game.user != user:
        raise NotFoundError(f"Game {game_id} not found", details={"game_id": game_id})
    return game


def _start(
    engine: Engine,
    key: UserGameKey,
    body: StartGame,
    words: WordList,
    secret: str,
) -> dict:
    game = game_service.load_or_create(
        engine, key, words=words, secret=secret,
        user_data=body.user_data, is_hard_mode=body.is_hard_mode,
    )
    return to_guessed_game(game).to_dict()


# ---------------------------------------------------------------------------
# Start / resume
# ---------------------------------------------------------------------------
@router.post("/games/daily")
def play_daily(
    body: StartGame,
    user: UserKey = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    words: WordList = Depends(get_words),
    secret: str = Depends(get_secret),
):
    """Today's game (or a past day's, for the archive)."""
    today = today_key()
    game_key = body.game_key or today
    if not is_daily_key(game_key):
        raise ValidationError(f"{game_key!r} is not a daily game key", code="invalid_game_key")
    if game_key > today:
        raise ValidationError(f"{game_key} is not playable yet", code="future_game_key")
    return _start(engine, UserGameKey(user, game_key, is_daily=True), body, words, secret)


@router.post("/games/practice")
def play_practice(
    body: StartGame,
    user: UserKey = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    words: WordList = Depends(get_words),
    secret: str = Depends(get_secret),
):
    game_key = body.game_key or practice_game_key()
    if is_daily_key(game_key) or game_key.startswith(("custom_", "arena_")):
        raise ValidationError(f"{game_key!r} is not a practice game key", code="invalid_game_key")
    return _start(engine, UserGameKey(user, game_key, is_daily=False), body, words, secret)


@router.post("/games/custom/{custom_id}")
def play_custom(
    custom_id: str,
    body: StartGame,
    user: UserKey = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    words: WordList = Depends(get_words),
    secret: str = Depends(get_secret),
):
    key = UserGameKey(user, custom_game_key(custom_id), is_daily=False)
    return _start(engine, key, body, words, secret)


@router.post("/custom-words")
def create_custom_word(
    body: CustomWordIn,
    user: UserKey = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    custom = game_service.create_custom_word(engine, user, body.word, is_art=body.is_art)
    return {"id": custom.id, "gameKey": custom_game_key(custom.id), "isArt": custom.is_art}


# ---------------------------------------------------------------------------
# History / stats (static paths before /games/{game_id})
# ---------------------------------------------------------------------------
@router.get("/games/daily/history")
def daily_history(
    user: UserKey = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return [g.to_dict() for g in game_service.load_all_dailies(engine, user)]


@router.get("/stats")
def get_stats(
    user: UserKey = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    stats = streak_service.load_stats(engine, user)
    return stats.to_dict() if stats else None


# ---------------------------------------------------------------------------
# Per-game
# ---------------------------------------------------------------------------
@router.get("/games/{game_id}")
def get_game(
    game_id: str,
    user: UserKey | None = Depends(get_optional_user),
    engine: Engine = Depends(get_engine),
):
    """Full view for the owner; letters hidden from everybody else."""
    game = game_service.load(engine, game_id)
    if game is None:
        raise NotFoundError(f"Game {game_id} not found", details={"game_id": game_id})
    if user is not None and game.user == user:
        return game.to_dict()
    return game_service.load_public(engine, game_id, personal=False).to_dict()


@router.get("/games/{game_id}/share")
def share_game(
    game_id: str,
    engine: Engine = Depends(get_engine),
):
    game = game_service.load_public(engine, game_id, personal=False)
    if game is None:
        raise NotFoundError(f"Game {game_id} not found", details={"game_id": game_id})
    title, grid = build_share_text(game)
    return {"title": title, "grid": grid, "text": f"{title}\n\n{grid}"}


@router.post("/games/{game_id}/guess")
def submit_guess(
    game_id: str,
    body: GuessIn,
    user: UserKey = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    words: WordList = Depends(get_words),
    cfg: WordplayConfig = Depends(get_config),
):
    owned = _owned(engine, game_id, user)
    if owned.arena_id is not None:
        # Arena rounds are playable only by current members while the arena is OPEN.
        arena_service.check_can_play(engine, owned.arena_id, user)
    outcome = game_service.guess(engine, game_id, body.guess, words=words)
    if not outcome.accepted:
        raise InvalidGuessError(outcome.validation, VALIDATION_MESSAGES[outcome.validation])

    game = outcome.game
    earned = None
    if outcome.finished and game.is_daily and game.status is GameStatus.WON:
        mint = freeze_service.earn_for_streak(
            engine, user, game.game_key, interval=cfg.freeze_earn_interval
        )
        if mint is not None:
            earned = {"id": mint.id, "streakLength": mint.earned_at_streak_length}
    return {"game": game.to_dict(), "finished": outcome.finished, "freezeEarned": earned}


@router.post("/games/{game_id}/undo")
def undo_guess(
    game_id: str,
    user: UserKey = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    _owned(engine, game_id, user)
    return game_service.undo_guess(engine, game_id).to_dict()


@router.post("/games/{game_id}/reset")
def reset_game(
    game_id: str,
    user: UserKey = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    words: WordList = Depends(get_words),
    secret: str = Depends(get_secret),
):
    _owned(engine, game_id, user)
    return game_service.reset(engine, game_id, words=words, secret=secret).to_dict()


@router.patch("/games/{game_id}/data")
def update_game_data(
    game_id: str,
    body: GameDataIn,
    user: UserKey = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    _owned(engine, game_id, user)
    return game_service.update_game_data(engine, game_id, body.data).to_dict()
