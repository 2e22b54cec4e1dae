"""
wordplay.services.streak_service — Streaks & User Stats from History
=====================================================================

Streaks are recomputed from finished daily games plus applied freezes every
time; nothing here writes.  See :mod:`wordplay.engine.streaks` for the
grouping itself.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from wordplay.constants import today_key
from wordplay.database.models import Game, GameStatus, StreakFreezeApplied
from wordplay.engine.games import UserKey
from wordplay.engine.streaks import StreakGroup, current_streak, group_streaks, max_streak

logger = logging.getLogger(__name__)

LAST_RESULTS = 30


@dataclass(frozen=True, slots=True)
class GameResult:
    date: str
    won: bool
    frozen: bool
    guess_count: int


@dataclass(slots=True)
class UserStats:
    user: UserKey
    total_games: int = 0
    total_wins: int = 0
    total_losses: int = 0
    current_streak: int = 0
    max_streak: int = 0
    last_game_won_date: str | None = None
    win_guess_counts: dict[int, int] = field(default_factory=dict)
    last30: list[GameResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.user),
            "userId": self.user.user_id,
            "identityProvider": self.user.identity_provider,
            "totalGames": self.total_games,
            "totalWins": self.total_wins,
            "totalLosses": self.total_losses,
            "currentStreak": self.current_streak,
            "maxStreak": self.max_streak,
            "lastGameWonDate": self.last_game_won_date,
            "winGuessCounts": {str(k): v for k, v in sorted(self.win_guess_counts.items())},
            "last30": [
                {"date": r.date, "won": r.won, "frozen": r.frozen, "guessCount": r.guess_count}
                for r in self.last30
            ],
        }


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def won_days(session: Session, user: UserKey, *, until: str | None = None) -> list[str]:
    stmt = select(Game.game_key).where(
        Game.user_id == user.user_id,
        Game.identity_provider == user.identity_provider,
        Game.is_daily.is_(True),
        Game.status == GameStatus.WON.value,
    )
    if until is not None:
        stmt = stmt.where(Game.game_key <= until)
    return list(session.scalars(stmt.order_by(Game.game_key)))


def frozen_days(session: Session, user: UserKey) -> list[str]:
    return list(
        session.scalars(
            select(StreakFreezeApplied.applied_to_game_key)
            .where(
                StreakFreezeApplied.user_id == user.user_id,
                StreakFreezeApplied.identity_provider == user.identity_provider,
            )
            .order_by(StreakFreezeApplied.applied_to_game_key)
        )
    )


def streak_groups(
    engine: Engine, user: UserKey, *, until: str | None = None
) -> list[StreakGroup]:
    with Session(engine) as session:
        return group_streaks(won_days(session, user), frozen_days(session, user), until=until)


def get_current_streak(engine: Engine, user: UserKey, reference: str | None = None) -> int:
    reference = reference or today_key()
    return current_streak(streak_groups(engine, user, until=reference), reference)


def current_streaks_for_provider(
    engine: Engine, identity_provider: str, reference: str
) -> dict[UserKey, int]:
    """Current streak of every player of *identity_provider* with one alive."""
    wins: dict[UserKey, list[str]] = defaultdict(list)
    frozen: dict[UserKey, list[str]] = defaultdict(list)
    with Session(engine) as session:
        for user_id, key in session.execute(
            select(Game.user_id, Game.game_key).where(
                Game.identity_provider == identity_provider,
                Game.is_daily.is_(True),
                Game.status == GameStatus.WON.value,
                Game.game_key <= reference,
            )
        ):
            wins[UserKey(user_id, identity_provider)].append(key)
        for user_id, key in session.execute(
            select(StreakFreezeApplied.user_id, StreakFreezeApplied.applied_to_game_key)
            .where(StreakFreezeApplied.identity_provider == identity_provider)
        ):
            frozen[UserKey(user_id, identity_provider)].append(key)

    streaks = {}
    for user, days in wins.items():
        length = current_streak(group_streaks(days, frozen.get(user, ()), until=reference), reference)
        if length > 0:
            streaks[user] = length
    return streaks


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------
def load_stats(
    engine: Engine, user: UserKey, reference: str | None = None
) -> UserStats | None:
    """Aggregate a player's finished daily games.  ``None`` if they have none."""
    reference = reference or today_key()
    with Session(engine) as session:
        rows = session.execute(
            select(Game.game_key, Game.status, Game.guess_count)
            .where(
                Game.user_id == user.user_id,
                Game.identity_provider == user.identity_provider,
                Game.is_daily.is_(True),
                Game.status.in_([GameStatus.WON.value, GameStatus.LOST.value]),
            )
            .order_by(Game.game_key)
        ).all()
        frozen = frozen_days(session, user)

    if not rows:
        return None

    wins = [key for key, status, _ in rows if status == GameStatus.WON]
    groups = group_streaks(wins, frozen, until=reference)
    played = {key for key, _, _ in rows}

    results = [
        GameResult(key, status == GameStatus.WON, False, count)
        for key, status, count in rows
    ] + [GameResult(day, False, True, 0) for day in frozen if day not in played]
    results.sort(key=lambda r: r.date)

    return UserStats(
        user=user,
        total_games=len(rows),
        total_wins=len(wins),
        total_losses=len(rows) - len(wins),
        current_streak=current_streak(groups, reference),
        max_streak=max_streak(groups),
        last_game_won_date=wins[-1] if wins else None,
        win_guess_counts=dict(
            Counter(count for _, status, count in rows if status == GameStatus.WON)
        ),
        last30=results[-LAST_RESULTS:],
    )
