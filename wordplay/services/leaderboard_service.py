"""
wordplay.services.leaderboard_service — Ranked Views over Daily Games
======================================================================

Three views per identity provider:

* ``score`` — wins in a trailing window (desc), then average guesses per
  win (asc).  Dense rank on wins: two players tied on wins are both "1"
  and the next distinct win count is "2".
* ``wins`` — all daily wins up to the cutoff (desc), dense rank.
* ``streak`` — current streak (desc), standard rank (``1, 1, 3``).

All three views are ranked in SQL with window functions.  Score and wins
are aggregated there too; streaks are recomputed in Python from the game
history (frozen days bridge gaps) and fed back as literal rows for
``RANK()``.
A player outside the top N still gets their own entry back.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Engine, Integer, String, func, literal, select, union_all
from sqlalchemy.orm import Session

from wordplay.config import WordplayConfig
from wordplay.constants import (
    DEFAULT_LEADERBOARD_DAYS,
    DEFAULT_LEADERBOARD_SIZE,
    add_days,
    today_key,
)
from wordplay.database.models import Game, GameStatus
from wordplay.engine.games import UserKey
from wordplay.services.streak_service import current_streaks_for_provider

logger = logging.getLogger(__name__)


class LeaderboardType(enum.StrEnum):
    SCORE = "score"
    WINS = "wins"
    STREAK = "streak"


@dataclass(slots=True)
class LeaderboardEntry:
    rank: int
    user: UserKey
    wins: int = 0
    total_guesses: int = 0
    streak: int = 0

    @property
    def average_guesses(self) -> float | None:
        return round(self.total_guesses / self.wins, 2) if self.wins else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rank": self.rank,
            "userId": self.user.user_id,
            "identityProvider": self.user.identity_provider,
            "wins": self.wins,
            "averageGuesses": self.average_guesses,
            "streak": self.streak,
        }


@dataclass(slots=True)
class Leaderboard:
    type: LeaderboardType
    identity_provider: str
    date: str
    entries: list[LeaderboardEntry] = field(default_factory=list)
    days: int | None = None
    personal_entry: LeaderboardEntry | None = None
    personal_entry_index: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "identityProvider": self.identity_provider,
            "date": self.date,
            "days": self.days,
            "entries": [e.to_dict() for e in self.entries],
            "personalEntry": self.personal_entry.to_dict() if self.personal_entry else None,
            "personalEntryIndex": self.personal_entry_index,
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _excluded(cfg: WordplayConfig | None, identity_provider: str) -> set[str]:
    if cfg is None:
        return set()
    prefix = f"{identity_provider}:"
    return {e.removeprefix(prefix) for e in cfg.excluded_users if e.startswith(prefix)}


def _win_rows(
    engine: Engine,
    identity_provider: str,
    *,
    start: str | None,
    end: str,
    excluded: set[str],
) -> list[tuple[str, int, int, int]]:
    """``(user_id, wins, win_guesses, dense_rank)`` ordered for display."""
    wins = func.count(Game.id)
    win_guesses = func.sum(Game.guess_count)
    avg = win_guesses * 1.0 / wins
    stmt = (
        select(
            Game.user_id,
            wins.label("wins"),
            win_guesses.label("win_guesses"),
            func.dense_rank().over(order_by=wins.desc()).label("rank"),
        )
        .where(
            Game.identity_provider == identity_provider,
            Game.is_daily.is_(True),
            Game.status == GameStatus.WON.value,
            Game.game_key <= end,
        )
        .group_by(Game.user_id)
        .order_by(wins.desc(), avg.asc(), Game.user_id)
    )
    if start is not None:
        stmt = stmt.where(Game.game_key >= start)
    if excluded:
        stmt = stmt.where(Game.user_id.not_in(excluded))
    with Session(engine) as session:
        return [tuple(r) for r in session.execute(stmt).all()]


def _streak_rows(
    engine: Engine, streaks: dict[UserKey, int]
) -> list[tuple[str, int, int]]:
    """``(user_id, streak, rank)`` with ``RANK()`` over the given streaks."""
    if not streaks:
        return []
    rows = [
        select(
            literal(u.user_id, String).label("user_id"),
            literal(s, Integer).label("streak"),
        )
        for u, s in streaks.items()
    ]
    sub = (rows[0] if len(rows) == 1 else union_all(*rows)).subquery("streaks")
    stmt = select(
        sub.c.user_id,
        sub.c.streak,
        func.rank().over(order_by=sub.c.streak.desc()).label("rank"),
    ).order_by(sub.c.streak.desc(), sub.c.user_id)
    with Session(engine) as session:
        return [tuple(r) for r in session.execute(stmt).all()]


def _finish(
    board: Leaderboard, ranked: list[LeaderboardEntry], size: int, user: UserKey | None
) -> Leaderboard:
    board.entries = ranked[:size]
    if user is not None:
        for index, entry in enumerate(ranked):
            if entry.user == user:
                board.personal_entry = entry
                board.personal_entry_index = index
                break
    return board


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------
def score_leaderboard(
    engine: Engine,
    identity_provider: str,
    *,
    date: str | None = None,
    days: int = DEFAULT_LEADERBOARD_DAYS,
    size: int = DEFAULT_LEADERBOARD_SIZE,
    user: UserKey | None = None,
    cfg: WordplayConfig | None = None,
) -> Leaderboard:
    end = date or today_key()
    start = add_days(end, -(days - 1))
    rows = _win_rows(
        engine, identity_provider, start=start, end=end,
        excluded=_excluded(cfg, identity_provider),
    )
    ranked = [
        LeaderboardEntry(rank=rank, user=UserKey(uid, identity_provider), wins=w, total_guesses=g or 0)
        for uid, w, g, rank in rows
    ]
    board = Leaderboard(LeaderboardType.SCORE, identity_provider, end, days=days)
    return _finish(board, ranked, size, user)


def wins_leaderboard(
    engine: Engine,
    identity_provider: str,
    *,
    date: str | None = None,
    size: int = DEFAULT_LEADERBOARD_SIZE,
    user: UserKey | None = None,
    cfg: WordplayConfig | None = None,
) -> Leaderboard:
    end = date or today_key()
    rows = _win_rows(
        engine, identity_provider, start=None, end=end,
        excluded=_excluded(cfg, identity_provider),
    )
    ranked = [
        LeaderboardEntry(rank=rank, user=UserKey(uid, identity_provider), wins=w, total_guesses=g or 0)
        for uid, w, g, rank in rows
    ]
    board = Leaderboard(LeaderboardType.WINS, identity_provider, end)
    return _finish(board, ranked, size, user)


def streak_leaderboard(
    engine: Engine,
    identity_provider: str,
    *,
    date: str | None = None,
    size: int = DEFAULT_LEADERBOARD_SIZE,
    user: UserKey | None = None,
    cfg: WordplayConfig | None = None,
) -> Leaderboard:
    end = date or today_key()
    excluded = _excluded(cfg, identity_provider)
    streaks = {
        u: s
        for u, s in current_streaks_for_provider(engine, identity_provider, end).items()
        if u.user_id not in excluded
    }
    ranked = [
        LeaderboardEntry(rank=rank, user=UserKey(uid, identity_provider), streak=s)
        for uid, s, rank in _streak_rows(engine, streaks)
    ]
    board = Leaderboard(LeaderboardType.STREAK, identity_provider, end)
    return _finish(board, ranked, size, user)


def rank(
    engine: Engine,
    board_type: LeaderboardType | str,
    identity_provider: str,
    *,
    date: str | None = None,
    days: int | None = None,
    user: UserKey | None = None,
    cfg: WordplayConfig | None = None,
) -> Leaderboard:
    """Dispatch to the requested view, sized and filtered per *cfg*."""
    board_type = LeaderboardType(board_type)
    size = cfg.leaderboard_size if cfg else DEFAULT_LEADERBOARD_SIZE
    if board_type is LeaderboardType.SCORE:
        window = days or (cfg.leaderboard_days if cfg else DEFAULT_LEADERBOARD_DAYS)
        return score_leaderboard(
            engine, identity_provider, date=date, days=window, size=size, user=user, cfg=cfg
        )
    if board_type is LeaderboardType.WINS:
        return wins_leaderboard(engine, identity_provider, date=date, size=size, user=user, cfg=cfg)
    return streak_leaderboard(engine, identity_provider, date=date, size=size, user=user, cfg=cfg)
