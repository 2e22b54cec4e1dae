"""
wordplay.engine.streaks — Streak Grouping over Sparse Win Dates
================================================================

Streaks are never stored; they are recomputed from the daily game history
and the applied streak freezes every time they are needed.

Grouping uses the classic *date minus row-number* trick: sort the active
days (won days plus frozen days), subtract each day's position from its
ordinal, and every run of consecutive calendar days ends up with the same
group value.  A frozen day keeps a run alive but does not add to its
length; length counts wins only.

Example::

    won = ["2024-01-01", "2024-01-02", "2024-01-04"]
    [g.length for g in group_streaks(won)]   # [2, 1]
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta

from wordplay.constants import parse_day

__all__ = [
    "StreakGroup",
    "StreakMilestone",
    "consecutive_frozen_before",
    "current_streak",
    "find_streak_gaps",
    "frozen_run_length",
    "group_streaks",
    "max_streak",
    "streak_milestones",
]


@dataclass(slots=True)
class StreakGroup:
    start: str
    end: str
    length: int = 0                      # wins only
    frozen: list[str] = field(default_factory=list)

    @property
    def span_days(self) -> int:
        return (parse_day(self.end) - parse_day(self.start)).days + 1


@dataclass(frozen=True, slots=True)
class StreakMilestone:
    """A win at which the running streak reached a multiple of the interval."""
    game_key: str
    streak_length: int


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------
def _active_days(
    won_days: Iterable[str],
    frozen_days: Iterable[str],
    until: str | None,
) -> list[tuple[date, bool]]:
    wins = {parse_day(k) for k in won_days}
    frozen = {parse_day(k) for k in frozen_days} - wins
    limit = parse_day(until) if until else None
    days = [(d, True) for d in wins] + [(d, False) for d in frozen]
    if limit is not None:
        days = [(d, w) for d, w in days if d <= limit]
    days.sort()
    return days


def group_streaks(
    won_days: Iterable[str],
    frozen_days: Iterable[str] = (),
    *,
    until: str | None = None,
) -> list[StreakGroup]:
    """Partition won and frozen days into runs of consecutive days.

    A day that is both won and frozen counts as a win.  Groups made only of
    frozen days are dropped.  Returned oldest first.
    """
    groups: list[StreakGroup] = []
    current_grp: int | None = None
    for row_number, (day, is_win) in enumerate(_active_days(won_days, frozen_days, until)):
        grp = day.toordinal() - row_number
        key = day.isoformat()
        if grp != current_grp:
            groups.append(StreakGroup(start=key, end=key))
            current_grp = grp
        group = groups[-1]
        group.end = key
        if is_win:
            group.length += 1
        else:
            group.frozen.append(key)
    return [g for g in groups if g.length > 0]


def current_streak(groups: list[StreakGroup], reference: str) -> int:
    """Length of the streak still alive on *reference*.

    A streak is alive when its last active day is *reference* or the day
    before (today's game may not be played yet).
    """
    ref = parse_day(reference)
    for group in reversed(groups):
        end = parse_day(group.end)
        if end > ref:
            continue
        if end >= ref - timedelta(days=1):
            return group.length
        return 0
    return 0


def max_streak(groups: list[StreakGroup]) -> int:
    return max((g.length for g in groups), default=0)


# ---------------------------------------------------------------------------
# Freeze helpers
# ---------------------------------------------------------------------------
def consecutive_frozen_before(target: str, frozen_days: Iterable[str]) -> int:
    """Count frozen days immediately preceding *target*, walking backward."""
    frozen = {parse_day(k) for k in frozen_days}
    day = parse_day(target) - timedelta(days=1)
    count = 0
    while day in frozen:
        count += 1
        day -= timedelta(days=1)
    return count


def frozen_run_length(target: str, frozen_days: Iterable[str]) -> int:
    """Length of the run of consecutive frozen days *target* would sit in."""
    keys = list(frozen_days)
    frozen = {parse_day(k) for k in keys}
    day = parse_day(target) + timedelta(days=1)
    after = 0
    while day in frozen:
        after += 1
        day += timedelta(days=1)
    return consecutive_frozen_before(target, keys) + 1 + after


def streak_milestones(
    won_days: Iterable[str],
    frozen_days: Iterable[str] = (),
    *,
    interval: int,
) -> list[StreakMilestone]:
    """Every win at which a streak's win count hit a multiple of *interval*."""
    if interval <= 0:
        raise ValueError("interval must be positive")
    milestones: list[StreakMilestone] = []
    current_grp: int | None = None
    running = 0
    for row_number, (day, is_win) in enumerate(_active_days(won_days, frozen_days, None)):
        grp = day.toordinal() - row_number
        if grp != current_grp:
            current_grp = grp
            running = 0
        if not is_win:
            continue
        running += 1
        if running % interval == 0:
            milestones.append(StreakMilestone(day.isoformat(), running))
    return milestones


def find_streak_gaps(
    won_days: Iterable[str],
    frozen_days: Iterable[str],
    reference: str,
    *,
    max_gap: int,
) -> list[str]:
    """Missed, unfrozen days whose freezing would extend the latest streak.

    Two cases, both limited to runs of at most *max_gap* days:

    * days between the latest streak and *reference* (exclusive) that
      currently break it, and
    * days between the latest streak and the one before it, which would
      merge the two.
    """
    won = list(won_days)
    frozen = list(frozen_days)
    groups = group_streaks(won, frozen, until=reference)
    if not groups:
        return []

    ref = parse_day(reference)
    latest = groups[-1]
    latest_end = parse_day(latest.end)

    trailing_start = latest_end + timedelta(days=1)
    trailing = (ref - trailing_start).days
    if 0 < trailing <= max_gap:
        return [(trailing_start + timedelta(days=i)).isoformat() for i in range(trailing)]
    if trailing > max_gap:
        return []

    if len(groups) < 2:
        return []
    prev_end = parse_day(groups[-2].end)
    latest_start = parse_day(latest.start)
    between = (latest_start - prev_end).days - 1
    if 0 < between <= max_gap:
        return [(prev_end + timedelta(days=i + 1)).isoformat() for i in range(between)]
    return []
