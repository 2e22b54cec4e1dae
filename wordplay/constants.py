"""
wordplay.constants — Shared Constants & Helpers
=================================================

Single source of truth for game limits, scoring penalties and the daily
calendar.  Import from here instead of duplicating in engine and services.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

# ---------------------------------------------------------------------------
# Game limits
# ---------------------------------------------------------------------------
WORD_LENGTH = 5
MAX_GUESSES = 6

# Score charged for a lost round when ranking by total guesses.
LOST_PENALTY = 8

# ---------------------------------------------------------------------------
# Streak freezes
# ---------------------------------------------------------------------------
FREEZE_EARN_INTERVAL = 100   # One freeze every N wins in a streak
FREEZE_MAX_CONSECUTIVE = 7   # Max consecutive days a freeze may cover

# ---------------------------------------------------------------------------
# Leaderboards
# ---------------------------------------------------------------------------
DEFAULT_LEADERBOARD_SIZE = 50
DEFAULT_LEADERBOARD_DAYS = 14

# ---------------------------------------------------------------------------
# Daily calendar
# ---------------------------------------------------------------------------
DAILY_EPOCH = date(2024, 2, 3)  # Day 0 of the daily word sequence

_ISO_FORMAT = "%Y-%m-%d"


def today_key(now: datetime | None = None) -> str:
    """Daily game key for *now* (UTC), e.g. ``"2024-03-01"``."""
    now = now or datetime.now(UTC)
    return now.date().isoformat()


def parse_day(game_key: str) -> date:
    """Parse a daily game key into a :class:`date`.

    Raises ``ValueError`` if *game_key* is not ``YYYY-MM-DD``.
    """
    return datetime.strptime(game_key, _ISO_FORMAT).date()


def add_days(game_key: str, days: int) -> str:
    return (parse_day(game_key) + timedelta(days=days)).isoformat()


def is_daily_key(game_key: str) -> bool:
    try:
        parse_day(game_key)
    except ValueError:
        return False
    return True


def days_since_epoch(game_key: str) -> int:
    return (parse_day(game_key) - DAILY_EPOCH).days


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


# ---------------------------------------------------------------------------
# Presentation
# ---------------------------------------------------------------------------
SHARE_EMOJI: dict[str, str] = {
    "CORRECT": "\U0001f7e9",         # 🟩
    "WRONG_POSITION": "\U0001f7e8",  # 🟨
    "INCORRECT": "⬜",           # ⬜
}

GAME_TITLE = "Wordplay"
