"""
wordplay.engine.arena — Arena Membership, Availability & Sudden Death
======================================================================

Pure arena semantics.  Nothing here is stored: membership, availability
and completion are all derived from the arena row plus its rounds (games)
every time they are asked for.

Membership is a closed set of variants (:class:`Membership`) and every call
site is expected to handle each of them:

============================  ==============================================
``AUDIENCE``                  invited by name, has not joined yet
``FREE_SLOT``                 not invited, but an open slot is available
``MEMBER``                    joined, holds an invited slot
``MEMBER_FREE_SLOT``          joined through an open slot
``MEMBER_KICKED``             joined, then removed by the creator
``NOT_MEMBER``                nothing available
============================  ==============================================

Open slots = ``audience_size − len(audience) − joined non-audience members``.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from wordplay.constants import LOST_PENALTY, ensure_utc
from wordplay.database.models import GameStatus
from wordplay.engine.games import UserKey
from wordplay.engine.ranking import standard_rank

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------
class Membership(enum.StrEnum):
    AUDIENCE = "audience"
    FREE_SLOT = "free_slot"
    MEMBER = "member"
    MEMBER_FREE_SLOT = "member_free_slot"
    MEMBER_KICKED = "member_kicked"
    NOT_MEMBER = "not_member"

    @property
    def can_join(self) -> bool:
        return self in (Membership.AUDIENCE, Membership.FREE_SLOT)

    @property
    def is_member(self) -> bool:
        return self in (Membership.MEMBER, Membership.MEMBER_FREE_SLOT)


class AvailabilityStatus(enum.StrEnum):
    PENDING = "PENDING"
    OPEN = "OPEN"
    ENDED = "ENDED"


class CompletionStatus(enum.StrEnum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AudienceMember:
    user_id: str
    identity_provider: str
    username: str | None = None

    @property
    def key(self) -> UserKey:
        return UserKey(self.user_id, self.identity_provider)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> AudienceMember:
        return cls(raw["user_id"], raw["identity_provider"], raw.get("username"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "identity_provider": self.identity_provider,
            "username": self.username,
        }


@dataclass(frozen=True, slots=True)
class ArenaMember:
    user_id: str
    identity_provider: str
    username: str | None = None
    joined_at: str | None = None   # ISO timestamp
    kicked_at: str | None = None

    @property
    def key(self) -> UserKey:
        return UserKey(self.user_id, self.identity_provider)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ArenaMember:
        return cls(
            raw["user_id"],
            raw["identity_provider"],
            raw.get("username"),
            raw.get("joined_at"),
            raw.get("kicked_at"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "identity_provider": self.identity_provider,
            "username": self.username,
            "joined_at": self.joined_at,
            "kicked_at": self.kicked_at,
        }


@dataclass(frozen=True, slots=True)
class ArenaConfig:
    """Everything fixed at arena creation.

    ``duration_minutes`` of ``None`` means unlimited; ``start_at`` of
    ``None`` means the arena starts on the first join.
    """

    word_count: int
    audience_size: int
    words: tuple[str, ...] = ()
    random_words: bool = False
    audience: tuple[AudienceMember, ...] = ()
    duration_minutes: int | None = None
    start_at: datetime | None = None
    sudden_death: bool = False
    is_hard_mode_required: bool = False

    @property
    def is_immediate(self) -> bool:
        return self.start_at is None

    def validate(self) -> None:
        """Raise ``ValueError`` describing the first inconsistency."""
        if self.word_count < 1:
            raise ValueError("An arena needs at least one word")
        if not self.random_words and len(self.words) != self.word_count:
            raise ValueError(
                f"Expected {self.word_count} words, got {len(self.words)}"
            )
        if self.audience_size < 1:
            raise ValueError("Audience size must be at least 1")
        if len(self.audience) > self.audience_size:
            raise ValueError("More invited players than audience slots")
        if self.duration_minutes is not None and self.duration_minutes <= 0:
            raise ValueError("Duration must be positive")

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ArenaConfig:
        start_at = raw.get("start_at")
        return cls(
            word_count=int(raw["word_count"]),
            audience_size=int(raw["audience_size"]),
            words=tuple(raw.get("words") or ()),
            random_words=bool(raw.get("random_words", False)),
            audience=tuple(AudienceMember.from_dict(a) for a in raw.get("audience") or ()),
            duration_minutes=raw.get("duration_minutes"),
            start_at=ensure_utc(datetime.fromisoformat(start_at)) if start_at else None,
            sudden_death=bool(raw.get("sudden_death", False)),
            is_hard_mode_required=bool(raw.get("is_hard_mode_required", False)),
        )

    def to_dict(self, *, include_words: bool = True) -> dict[str, Any]:
        body: dict[str, Any] = {
            "word_count": self.word_count,
            "audience_size": self.audience_size,
            "random_words": self.random_words,
            "audience": [a.to_dict() for a in self.audience],
            "duration_minutes": self.duration_minutes,
            "start_at": self.start_at.isoformat() if self.start_at else None,
            "sudden_death": self.sudden_death,
            "is_hard_mode_required": self.is_hard_mode_required,
        }
        if include_words:
            body["words"] = list(self.words)
        return body


@dataclass(frozen=True, slots=True)
class ArenaRound:
    """One member's game for one word of the arena."""

    user: UserKey
    arena_word_index: int
    status: GameStatus
    guess_count: int
    completed_at: datetime | None = None
    game_key: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def score(self) -> int:
        return self.guess_count if self.status is GameStatus.WON else LOST_PENALTY


@dataclass(frozen=True, slots=True)
class SuddenDeathStatus:
    is_over: bool
    leader: UserKey | None = None


@dataclass(frozen=True, slots=True)
class ArenaAvailability:
    status: AvailabilityStatus
    completion_status: CompletionStatus
    membership: Membership | None = None
    member_completion_status: CompletionStatus | None = None
    start: datetime | None = None
    end: datetime | None = None
    sudden_death: SuddenDeathStatus | None = None


@dataclass(slots=True)
class ArenaStanding:
    user: UserKey
    username: str | None
    rounds_completed: int = 0
    wins: int = 0
    total_score: int = 0
    rank: int = 0
    rounds: list[ArenaRound] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------
def _in_audience(config: ArenaConfig, user: UserKey) -> bool:
    return any(a.key == user for a in config.audience)


def free_slots(config: ArenaConfig, members: Sequence[ArenaMember]) -> int:
    outside = sum(1 for m in members if not _in_audience(config, m.key))
    return config.audience_size - len(config.audience) - outside


def check_membership(
    config: ArenaConfig, members: Sequence[ArenaMember], user: UserKey
) -> Membership:
    member = next((m for m in members if m.key == user), None)
    if member is not None and member.kicked_at:
        return Membership.MEMBER_KICKED
    invited = _in_audience(config, user)
    if member is not None:
        return Membership.MEMBER if invited else Membership.MEMBER_FREE_SLOT
    if invited:
        return Membership.AUDIENCE
    if free_slots(config, members) > 0:
        return Membership.FREE_SLOT
    return Membership.NOT_MEMBER


def awaiting_audience(
    config: ArenaConfig, members: Sequence[ArenaMember]
) -> tuple[list[AudienceMember], int]:
    """Invited players who have not joined yet, and the open slot count."""
    joined = {m.key for m in members}
    waiting = [a for a in config.audience if a.key not in joined]
    return waiting, max(0, free_slots(config, members))


# ---------------------------------------------------------------------------
# Rounds
# ---------------------------------------------------------------------------
def rounds_for_user(rounds: Iterable[ArenaRound], user: UserKey) -> list[ArenaRound]:
    return sorted(
        (r for r in rounds if r.user == user), key=lambda r: r.arena_word_index
    )


def check_sudden_death(
    config: ArenaConfig,
    rounds: Sequence[ArenaRound],
    members: Sequence[ArenaMember] | None = None,
) -> SuddenDeathStatus | None:
    """Early finish for two-player sudden-death arenas.

    Scores are total guesses over completed rounds (a lost round costs
    :data:`LOST_PENALTY`); lower is better.  A player's best final score
    assumes every remaining round is won in one guess, the worst assumes
    every remaining round is lost.  The arena is over once one player's
    best is strictly worse than the other's worst; an achievable tie keeps
    it going.  When *members* is given, rounds of kicked members are left
    out.  Returns ``None`` when the rule does not apply.
    """
    if not config.sudden_death or config.audience_size != 2:
        return None

    if members is not None:
        active = {m.key for m in members if not m.kicked_at}
        rounds = [r for r in rounds if r.user in active]
    players = sorted({r.user for r in rounds}, key=str)
    if len(players) != 2:
        return SuddenDeathStatus(is_over=False)

    bounds: dict[UserKey, tuple[int, int]] = {}
    for user in players:
        done = [r for r in rounds if r.user == user and r.is_completed]
        score = sum(r.score for r in done)
        remaining = max(0, config.word_count - len(done))
        bounds[user] = (score + remaining, score + remaining * LOST_PENALTY)

    a, b = players
    a_best, a_worst = bounds[a]
    b_best, b_worst = bounds[b]
    if b_best > a_worst:
        return SuddenDeathStatus(is_over=True, leader=a)
    if a_best > b_worst:
        return SuddenDeathStatus(is_over=True, leader=b)
    return SuddenDeathStatus(is_over=False)


def member_completion(
    config: ArenaConfig,
    rounds: Sequence[ArenaRound],
    user: UserKey,
    sudden_death: SuddenDeathStatus | None = None,
) -> CompletionStatus:
    mine = rounds_for_user(rounds, user)
    if not mine:
        return CompletionStatus.NOT_STARTED
    completed = sum(1 for r in mine if r.is_completed)
    if completed >= config.word_count or (sudden_death and sudden_death.is_over):
        return CompletionStatus.COMPLETED
    return CompletionStatus.IN_PROGRESS


def has_next_round(
    config: ArenaConfig,
    rounds: Sequence[ArenaRound],
    user: UserKey,
    members: Sequence[ArenaMember] | None = None,
) -> bool:
    """True while *user* has unplayed words and sudden death has not ended it."""
    sd = check_sudden_death(config, rounds, members)
    if sd is not None and sd.is_over:
        return False
    mine = rounds_for_user(rounds, user)
    completed = sum(1 for r in mine if r.is_completed)
    return completed < config.word_count


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------
def evaluate_availability(
    config: ArenaConfig,
    members: Sequence[ArenaMember],
    rounds: Sequence[ArenaRound],
    *,
    started_at: datetime | None,
    now: datetime,
    user: UserKey | None = None,
) -> ArenaAvailability:
    """Arena-wide status plus, when *user* is given, their membership."""
    started_at = ensure_utc(started_at)
    start = started_at or config.start_at
    end = (
        start + timedelta(minutes=config.duration_minutes)
        if start is not None and config.duration_minutes is not None
        else None
    )

    sd = check_sudden_death(config, rounds, members)
    if not rounds:
        completion = CompletionStatus.NOT_STARTED
    elif (sd and sd.is_over) or sum(
        1 for r in rounds if r.is_completed
    ) >= config.word_count * config.audience_size:
        completion = CompletionStatus.COMPLETED
    else:
        completion = CompletionStatus.IN_PROGRESS

    if start is not None and now < start:
        status = AvailabilityStatus.PENDING
    elif (end is not None and now > end) or completion is CompletionStatus.COMPLETED:
        status = AvailabilityStatus.ENDED
    else:
        status = AvailabilityStatus.OPEN

    membership = member_status = None
    if user is not None:
        membership = check_membership(config, members, user)
        member_status = member_completion(config, rounds, user, sd)

    return ArenaAvailability(
        status=status,
        completion_status=completion,
        membership=membership,
        member_completion_status=member_status,
        start=start,
        end=end,
        sudden_death=sd,
    )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
def rank_arena_members(
    members: Sequence[ArenaMember], rounds: Sequence[ArenaRound]
) -> list[ArenaStanding]:
    """Standings of non-kicked members.

    Ordered by total score over completed rounds (ascending), then by wins
    (descending).  Members without a completed round come last.  Ties share
    a rank with gaps after them.
    """
    standings = []
    for m in members:
        if m.kicked_at:
            continue
        mine = [r for r in rounds_for_user(rounds, m.key) if r.is_completed]
        standings.append(
            ArenaStanding(
                user=m.key,
                username=m.username,
                rounds_completed=len(mine),
                wins=sum(1 for r in mine if r.status is GameStatus.WON),
                total_score=sum(r.score for r in mine),
                rounds=mine,
            )
        )

    def sort_key(s: ArenaStanding) -> tuple:
        return (s.rounds_completed == 0, s.total_score, -s.wins)

    standings.sort(key=lambda s: (*sort_key(s), str(s.user)))
    for standing, rank in zip(standings, standard_rank([sort_key(s) for s in standings])):
        standing.rank = rank
    return standings
