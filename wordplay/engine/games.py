"""
wordplay.engine.games — Keys, Game Projections & Share Text
=============================================================

Pure helpers shared by the services and the API:

* :class:`UserKey` / :class:`UserGameKey` — identity tuples.
* Game-key builders and :func:`classify_game_key` (daily / practice /
  custom / arena).
* :func:`to_guessed_game` — the read-only projection of a stored game with
  every guess colored; :func:`to_public_game` hides the letters.
* :func:`build_share_text` — ``"Wordplay 2024-03-01 3/6*"`` plus emoji grid.
"""

from __future__ import annotations

import enum
import re
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from wordplay.constants import GAME_TITLE, MAX_GUESSES, SHARE_EMOJI, is_daily_key
from wordplay.database.models import GameStatus
from wordplay.engine.evaluator import GuessCharacter, GuessStatus, evaluate_guess, keyboard_summary

if TYPE_CHECKING:
    from wordplay.database.models import Game

__all__ = [
    "UserKey",
    "UserGameKey",
    "GameKind",
    "GuessedGame",
    "PublicGuessedGame",
    "arena_game_key",
    "build_share_text",
    "classify_game_key",
    "custom_game_key",
    "practice_game_key",
    "to_guessed_game",
    "to_public_game",
]

_ARENA_KEY_RE = re.compile(r"^arena_(\d+)_(\d+)$")


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class UserKey:
    user_id: str
    identity_provider: str

    def __str__(self) -> str:
        return f"{self.identity_provider}:{self.user_id}"


@dataclass(frozen=True, slots=True)
class UserGameKey:
    user: UserKey
    game_key: str
    is_daily: bool


# ---------------------------------------------------------------------------
# Game keys
# ---------------------------------------------------------------------------
class GameKind(enum.StrEnum):
    DAILY = "daily"
    PRACTICE = "practice"
    CUSTOM = "custom"
    ARENA = "arena"


def practice_game_key() -> str:
    return f"practice_{secrets.token_hex(8)}"


def custom_game_key(custom_id: str) -> str:
    return f"custom_{custom_id}"


def arena_game_key(arena_id: int, round_number: int) -> str:
    """Key of the *round_number*-th (1-based) round of an arena."""
    return f"arena_{arena_id}_{round_number}"


def parse_arena_game_key(game_key: str) -> tuple[int, int] | None:
    m = _ARENA_KEY_RE.match(game_key)
    if m is None:
        return None
    return int(m.group(1)), int(m.group(2))


def classify_game_key(game_key: str, is_daily: bool) -> GameKind:
    if is_daily:
        if not is_daily_key(game_key):
            raise ValueError(f"Daily game key must be YYYY-MM-DD, got {game_key!r}")
        return GameKind.DAILY
    if game_key.startswith("custom_"):
        return GameKind.CUSTOM
    if _ARENA_KEY_RE.match(game_key):
        return GameKind.ARENA
    return GameKind.PRACTICE


# ---------------------------------------------------------------------------
# Projections
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class GuessedGame:
    """A stored game with every guess evaluated.  Never mutates the game."""

    id: str
    user: UserKey
    game_key: str
    is_daily: bool
    word: str
    status: GameStatus
    is_hard_mode: bool
    original_guesses: list[str]
    guesses: list[list[GuessCharacter]]
    keyboard: dict[str, GuessStatus]
    completed_at: datetime | None = None
    arena_id: int | None = None
    arena_word_index: int | None = None
    game_data: dict[str, Any] = field(default_factory=dict)

    @property
    def guess_count(self) -> int:
        return len(self.original_guesses)

    @property
    def is_finished(self) -> bool:
        return self.status is not GameStatus.IN_PROGRESS

    def to_dict(self, *, reveal_word: bool | None = None) -> dict[str, Any]:
        """JSON-friendly dict.  The word is only revealed once finished."""
        if reveal_word is None:
            reveal_word = self.is_finished
        return {
            "id": self.id,
            "userId": self.user.user_id,
            "identityProvider": self.user.identity_provider,
            "gameKey": self.game_key,
            "isDaily": self.is_daily,
            "word": self.word if reveal_word else "",
            "status": self.status.value,
            "isHardMode": self.is_hard_mode,
            "guessCount": self.guess_count,
            "originalGuesses": list(self.original_guesses),
            "guesses": [
                [{"character": c.character, "status": c.status.value} for c in row]
                for row in self.guesses
            ],
            "keyboard": {k: v.value for k, v in self.keyboard.items()},
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "arenaId": self.arena_id,
            "arenaWordIndex": self.arena_word_index,
        }


@dataclass(frozen=True, slots=True)
class PublicGuessedGame:
    """Game view for non-owners: statuses only, no letters."""

    id: str
    game_key: str
    is_daily: bool
    status: GameStatus
    is_hard_mode: bool
    rows: list[list[GuessStatus]]
    arena_id: int | None = None
    arena_word_index: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "gameKey": self.game_key,
            "isDaily": self.is_daily,
            "status": self.status.value,
            "isHardMode": self.is_hard_mode,
            "guesses": [[s.value for s in row] for row in self.rows],
            "arenaId": self.arena_id,
            "arenaWordIndex": self.arena_word_index,
        }


def to_guessed_game(game: Game) -> GuessedGame:
    guesses = list(game.guesses or [])
    return GuessedGame(
        id=game.id,
        user=UserKey(game.user_id, game.identity_provider),
        game_key=game.game_key,
        is_daily=game.is_daily,
        word=game.word,
        status=GameStatus(game.status),
        is_hard_mode=game.is_hard_mode,
        original_guesses=guesses,
        guesses=[evaluate_guess(game.word, g) for g in guesses],
        keyboard=keyboard_summary(game.word, guesses),
        completed_at=game.completed_at,
        arena_id=game.arena_id,
        arena_word_index=game.arena_word_index,
        game_data=dict(game.game_data or {}),
    )


def to_public_game(guessed: GuessedGame) -> PublicGuessedGame:
    return PublicGuessedGame(
        id=guessed.id,
        game_key=guessed.game_key,
        is_daily=guessed.is_daily,
        status=guessed.status,
        is_hard_mode=guessed.is_hard_mode,
        rows=[[c.status for c in row] for row in guessed.guesses],
        arena_id=guessed.arena_id,
        arena_word_index=guessed.arena_word_index,
    )


# ---------------------------------------------------------------------------
# Share text
# ---------------------------------------------------------------------------
def format_game_key(game: GuessedGame | PublicGuessedGame) -> str:
    if game.arena_id is not None:
        return f"Arena {game.arena_id} (#{(game.arena_word_index or 0) + 1})"
    if game.is_daily:
        return game.game_key
    if game.game_key.startswith("custom_"):
        return game.game_key[-8:]
    return "Practice"


def build_share_text(game: GuessedGame | PublicGuessedGame) -> tuple[str, str]:
    """Return ``(title, grid)`` for sharing a finished game."""
    if isinstance(game, GuessedGame):
        rows = [[c.status for c in row] for row in game.guesses]
    else:
        rows = game.rows
    score = str(len(rows)) if game.status is GameStatus.WON else "X"
    title = (
        f"{GAME_TITLE} {format_game_key(game)} {score}/{MAX_GUESSES}"
        f"{'*' if game.is_hard_mode else ''}"
    )
    grid = "\n".join("".join(SHARE_EMOJI[s.value] for s in row) for row in rows)
    return title, grid


def format_duration(minutes: int) -> str:
    """Human-friendly duration, e.g. ``"2 days"``, ``"1 hour and 5 minutes"``."""

    def plural(n: int, unit: str) -> str:
        return f"{n} {unit}{'' if n == 1 else 's'}"

    days = minutes // (60 * 24)
    hours = (minutes % (60 * 24)) // 60
    mins = minutes % 60
    if days > 1:
        return plural(days, "day")
    if days == 1:
        return f"1 day and {plural(hours, 'hour')}" if hours else "1 day"
    if hours > 12:
        return plural(hours, "hour")
    if hours:
        return f"{plural(hours, 'hour')} and {plural(mins, 'minute')}" if mins else plural(hours, "hour")
    return plural(max(1, mins), "minute")
