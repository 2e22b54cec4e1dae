"""
tests/test_arena_engine.py — Pure Arena Rule Tests
====================================================
Membership variants, availability windows, sudden death and standings.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from wordplay.constants import LOST_PENALTY
from wordplay.database.models import GameStatus
from wordplay.engine.arena import (
    ArenaConfig,
    ArenaMember,
    ArenaRound,
    AudienceMember,
    AvailabilityStatus,
    CompletionStatus,
    Membership,
    awaiting_audience,
    check_membership,
    check_sudden_death,
    evaluate_availability,
    free_slots,
    has_next_round,
    rank_arena_members,
)
from wordplay.engine.games import UserKey

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
A, B, C = UserKey("a", "fc"), UserKey("b", "fc"), UserKey("c", "fc")


def _member(user: UserKey, kicked: bool = False) -> ArenaMember:
    return ArenaMember(
        user.user_id, user.identity_provider, None, NOW.isoformat(),
        NOW.isoformat() if kicked else None,
    )


def _round(user: UserKey, index: int, status=GameStatus.WON, guesses=3, done=True) -> ArenaRound:
    return ArenaRound(
        user=user,
        arena_word_index=index,
        status=status,
        guess_count=guesses,
        completed_at=NOW if done else None,
    )


def _config(**overrides) -> ArenaConfig:
    values = dict(word_count=3, audience_size=2, words=("crane", "slate", "ghost"))
    values.update(overrides)
    return ArenaConfig(**values)


class TestConfig:
    def test_valid(self):
        _config().validate()

    @pytest.mark.parametrize("overrides", [
        {"word_count": 0, "words": ()},
        {"words": ("crane",)},
        {"audience_size": 0},
        {"audience": (AudienceMember("x", "fc"), AudienceMember("y", "fc"), AudienceMember("z", "fc"))},
        {"duration_minutes": 0},
    ])
    def test_invalid(self, overrides):
        with pytest.raises(ValueError):
            _config(**overrides).validate()

    def test_random_words_need_no_word_list(self):
        _config(words=(), random_words=True).validate()

    def test_dict_round_trip_hides_words_on_request(self):
        config = _config(start_at=NOW, audience=(AudienceMember("a", "fc", "alice"),))
        assert "words" not in config.to_dict(include_words=False)
        assert ArenaConfig.from_dict(config.to_dict()) == config


class TestMembership:
    def test_variants(self):
        config = _config(audience=(AudienceMember("a", "fc"),), audience_size=2)
        assert check_membership(config, [], A) is Membership.AUDIENCE
        assert check_membership(config, [], B) is Membership.FREE_SLOT
        assert check_membership(config, [_member(A)], A) is Membership.MEMBER
        members = [_member(A), _member(B)]
        assert check_membership(config, members, B) is Membership.MEMBER_FREE_SLOT
        assert check_membership(config, members, C) is Membership.NOT_MEMBER
        assert check_membership(config, [_member(B, kicked=True)], B) is Membership.MEMBER_KICKED

    def test_invited_slots_are_reserved(self):
        config = _config(audience=(AudienceMember("a", "fc"),), audience_size=2)
        assert free_slots(config, []) == 1
        assert free_slots(config, [_member(B)]) == 0
        assert free_slots(config, [_member(A), _member(B)]) == 0

    def test_awaiting_audience(self):
        config = _config(audience=(AudienceMember("a", "fc"), AudienceMember("c", "fc")), audience_size=3)
        waiting, open_slots = awaiting_audience(config, [_member(A)])
        assert [w.key for w in waiting] == [C]
        assert open_slots == 1

    def test_membership_flags(self):
        assert Membership.FREE_SLOT.can_join and not Membership.FREE_SLOT.is_member
        assert Membership.MEMBER_FREE_SLOT.is_member
        assert not Membership.MEMBER_KICKED.can_join


class TestAvailability:
    def test_pending_before_start(self):
        config = _config(start_at=NOW + timedelta(hours=1))
        avail = evaluate_availability(config, [], [], started_at=None, now=NOW)
        assert avail.status is AvailabilityStatus.PENDING

    def test_open_then_ended_by_duration(self):
        config = _config(duration_minutes=60)
        started = NOW - timedelta(minutes=30)
        assert evaluate_availability(
            config, [], [], started_at=started, now=NOW
        ).status is AvailabilityStatus.OPEN
        late = evaluate_availability(
            config, [], [], started_at=started, now=NOW + timedelta(hours=1)
        )
        assert late.status is AvailabilityStatus.ENDED
        assert late.end == started + timedelta(minutes=60)

    def test_ended_when_every_round_is_done(self):
        config = _config(word_count=1, audience_size=2)
        rounds = [_round(A, 0), _round(B, 0)]
        avail = evaluate_availability(config, [], rounds, started_at=NOW, now=NOW, user=A)
        assert avail.status is AvailabilityStatus.ENDED
        assert avail.completion_status is CompletionStatus.COMPLETED
        assert avail.member_completion_status is CompletionStatus.COMPLETED

    def test_member_completion_progress(self):
        config = _config()
        rounds = [_round(A, 0), _round(A, 1, done=False)]
        avail = evaluate_availability(config, [], rounds, started_at=NOW, now=NOW, user=A)
        assert avail.completion_status is CompletionStatus.IN_PROGRESS
        assert avail.member_completion_status is CompletionStatus.IN_PROGRESS
        other = evaluate_availability(config, [], rounds, started_at=NOW, now=NOW, user=B)
        assert other.member_completion_status is CompletionStatus.NOT_STARTED


class TestSuddenDeath:
    def test_only_for_two_player_sudden_death(self):
        assert check_sudden_death(_config(), []) is None
        assert check_sudden_death(_config(sudden_death=True, audience_size=3), []) is None

    def test_continues_while_catchable(self):
        config = _config(sudden_death=True)
        rounds = [_round(A, 0, guesses=2), _round(B, 0, guesses=5)]
        # A: 2 + [2, 16]; B: 5 + [2, 16] -> B's best 7 is not above A's worst 18.
        assert check_sudden_death(config, rounds).is_over is False

    def test_over_when_trailing_player_cannot_catch_up(self):
        config = _config(word_count=2, sudden_death=True)
        rounds = [
            _round(A, 0, guesses=1), _round(A, 1, guesses=1),
            _round(B, 0, status=GameStatus.LOST, guesses=6),
        ]
        # A final = 2; B best = 8 + 1 = 9 > 2.
        status = check_sudden_death(config, rounds)
        assert status.is_over
        assert status.leader == A
        assert has_next_round(config, rounds, B) is False

    def test_achievable_tie_keeps_going(self):
        config = _config(word_count=2, sudden_death=True)
        rounds = [_round(A, 0, guesses=1), _round(A, 1, guesses=2), _round(B, 0, guesses=2)]
        # A final = 3; B best = 2 + 1 = 3: a tie is still possible.
        assert check_sudden_death(config, rounds).is_over is False
        assert has_next_round(config, rounds, B) is True

    def test_kicked_member_does_not_count(self):
        config = _config(word_count=2, sudden_death=True)
        rounds = [
            _round(A, 0, guesses=1), _round(A, 1, guesses=1),
            _round(B, 0, status=GameStatus.LOST, guesses=6),
        ]
        members = [_member(A), _member(B, kicked=True)]
        assert check_sudden_death(config, rounds).is_over is True
        assert check_sudden_death(config, rounds, members).is_over is False

        avail = evaluate_availability(config, members, rounds, started_at=NOW, now=NOW)
        assert avail.status is AvailabilityStatus.OPEN
        assert avail.sudden_death.leader is None


class TestStandings:
    def test_lower_total_ranks_first_and_ties_share(self):
        members = [_member(A), _member(B), _member(C)]
        rounds = [
            _round(A, 0, guesses=3),
            _round(B, 0, guesses=3),
            _round(C, 0, status=GameStatus.LOST, guesses=6),
        ]
        standings = rank_arena_members(members, rounds)
        assert [(s.user, s.rank) for s in standings] == [(A, 1), (B, 1), (C, 3)]
        assert standings[-1].total_score == LOST_PENALTY

    def test_kicked_and_idle_members(self):
        members = [_member(A), _member(B, kicked=True), _member(C)]
        rounds = [_round(A, 0), _round(B, 0, guesses=1)]
        standings = rank_arena_members(members, rounds)
        assert [s.user for s in standings] == [A, C]
        assert standings[1].rounds_completed == 0
