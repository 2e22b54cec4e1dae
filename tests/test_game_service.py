"""
tests/test_game_service.py — Game Service Integration Tests
=============================================================
Covers load-or-create idempotency, the guess state machine, undo/reset
rules and compare-and-write conflicts.

Uses an in-memory SQLite database via the shared conftest fixtures.
"""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from wordplay.constants import MAX_GUESSES
from wordplay.database.models import Game, GameStatus
from wordplay.engine.evaluator import ValidationResult
from wordplay.engine.games import (
    PublicGuessedGame,
    UserGameKey,
    UserKey,
    build_share_text,
    custom_game_key,
)
from wordplay.exceptions import (
    ConflictError,
    InvariantViolation,
    NotFoundError,
    ValidationError,
)
from wordplay.services import game_service

LOSING_GUESSES = ["hello", "world", "crate", "trace", "carts", "spare"]


@pytest.fixture
def engine(db_engine):
    """Re-use the shared conftest db_engine (SQLite, StaticPool)."""
    return db_engine


def _custom(engine, creator: UserKey, player: UserKey, words, secret, word="crane", **kwargs):
    custom = game_service.create_custom_word(engine, creator, word)
    key = UserGameKey(player, custom_game_key(custom.id), is_daily=False)
    return game_service.load_or_create(engine, key, words=words, secret=secret, **kwargs)


def _game_count(engine) -> int:
    with Session(engine) as session:
        return session.scalar(select(func.count()).select_from(Game))


def _row(engine, game_id: str) -> Game:
    with Session(engine) as session:
        return session.get(Game, game_id)


class TestLoadOrCreate:
    def test_creates_once(self, engine, words, secret, alice):
        key = UserGameKey(alice, "2024-03-01", is_daily=True)
        first = game_service.load_or_create(engine, key, words=words, secret=secret)
        second = game_service.load_or_create(engine, key, words=words, secret=secret)
        assert first.id == second.id
        assert _game_count(engine) == 1

    def test_daily_word_comes_from_the_shuffle(self, engine, words, secret, alice):
        key = UserGameKey(alice, "2024-03-01", is_daily=True)
        game = game_service.load_or_create(engine, key, words=words, secret=secret)
        assert game.word == words.daily_word("2024-03-01", "fc", secret)
        assert game.status == GameStatus.IN_PROGRESS
        assert game.guesses == []
        assert game.version == 1

    def test_daily_and_non_daily_keys_are_distinct(self, engine, words, secret, alice):
        game_service.load_or_create(
            engine, UserGameKey(alice, "2024-03-01", is_daily=True), words=words, secret=secret,
        )
        game_service.load_or_create(
            engine, UserGameKey(alice, "practice_2024", is_daily=False), words=words, secret=secret,
        )
        assert _game_count(engine) == 2

    def test_losing_the_create_race_returns_the_winner(
        self, engine, words, secret, alice, monkeypatch
    ):
        """A caller whose lookup missed a concurrent insert reads the winner back."""
        key = UserGameKey(alice, "2024-03-01", is_daily=True)
        winner = game_service.load_or_create(engine, key, words=words, secret=secret)

        real_find = game_service._find
        calls = []

        def stale_find(session, k):
            calls.append(k)
            return None if len(calls) == 1 else real_find(session, k)

        monkeypatch.setattr(game_service, "_find", stale_find)
        loser = game_service.load_or_create(engine, key, words=words, secret=secret)

        assert loser.id == winner.id
        assert len(calls) == 2
        assert _game_count(engine) == 1

    def test_pre_create_only_runs_for_new_games(self, engine, words, secret, alice):
        calls = []

        def pre_create():
            calls.append(1)
            return game_service.PreCreateResult(word="ghost", is_hard_mode=True)

        key = UserGameKey(alice, "practice_pre", is_daily=False)
        game = game_service.load_or_create(
            engine, key, words=words, secret=secret, pre_create=pre_create
        )
        game_service.load_or_create(engine, key, words=words, secret=secret, pre_create=pre_create)
        assert game.word == "ghost"
        assert game.is_hard_mode is True
        assert len(calls) == 1

    def test_unknown_custom_word(self, engine, words, secret, alice):
        key = UserGameKey(alice, custom_game_key("missing"), is_daily=False)
        with pytest.raises(NotFoundError):
            game_service.load_or_create(engine, key, words=words, secret=secret)

    def test_arena_rounds_need_their_arena(self, engine, words, secret, alice):
        key = UserGameKey(alice, "arena_1_1", is_daily=False)
        with pytest.raises(InvariantViolation):
            game_service.load_or_create(engine, key, words=words, secret=secret)


class TestGuess:
    def test_winning_guess(self, engine, words, secret, alice, bob):
        game = _custom(engine, bob, alice, words, secret)
        outcome = game_service.guess(engine, game.id, "CRANE", words=words)
        assert outcome.accepted
        assert outcome.finished
        assert outcome.game.status is GameStatus.WON

        row = _row(engine, game.id)
        assert row.status == GameStatus.WON
        assert row.guess_count == 1
        assert row.completed_at is not None
        assert row.version == 2

    def test_sixth_miss_loses(self, engine, words, secret, alice, bob):
        game = _custom(engine, bob, alice, words, secret)
        for i, text in enumerate(LOSING_GUESSES, start=1):
            outcome = game_service.guess(engine, game.id, text, words=words)
            assert outcome.accepted
            assert outcome.finished is (i == MAX_GUESSES)
        assert outcome.game.status is GameStatus.LOST
        assert _row(engine, game.id).guess_count == MAX_GUESSES

    def test_no_guess_after_terminal(self, engine, words, secret, alice, bob):
        game = _custom(engine, bob, alice, words, secret)
        game_service.guess(engine, game.id, "crane", words=words)
        with pytest.raises(InvariantViolation):
            game_service.guess(engine, game.id, "slate", words=words)
        assert _row(engine, game.id).guesses == ["crane"]

    def test_invalid_guess_does_not_write(self, engine, words, secret, alice, bob):
        game = _custom(engine, bob, alice, words, secret)
        outcome = game_service.guess(engine, game.id, "zzzzz", words=words)
        assert not outcome.accepted
        assert outcome.validation is ValidationResult.INVALID_WORD
        row = _row(engine, game.id)
        assert row.guesses == []
        assert row.version == 1

    def test_repeat_guess_rejected(self, engine, words, secret, alice, bob):
        game = _custom(engine, bob, alice, words, secret)
        game_service.guess(engine, game.id, "slate", words=words)
        outcome = game_service.guess(engine, game.id, "slate", words=words)
        assert outcome.validation is ValidationResult.INVALID_ALREADY_GUESSED
        assert _row(engine, game.id).guesses == ["slate"]

    def test_hard_mode_rejection_is_not_appended(self, engine, words, secret, alice, bob):
        game = _custom(engine, bob, alice, words, secret, is_hard_mode=True)
        game_service.guess(engine, game.id, "crate", words=words)
        outcome = game_service.guess(engine, game.id, "trace", words=words)
        assert outcome.validation is ValidationResult.INVALID_HARD_MODE
        assert _row(engine, game.id).guesses == ["crate"]

    def test_custom_word_outside_dictionary_can_be_won(self, engine, words, secret, alice, bob):
        game = _custom(engine, bob, alice, words, secret, word="zzyzx")
        outcome = game_service.guess(engine, game.id, "zzyzx", words=words)
        assert outcome.game.status is GameStatus.WON

    def test_unknown_game(self, engine, words):
        with pytest.raises(NotFoundError):
            game_service.guess(engine, "nope", "crane", words=words)

    def test_lost_version_race_raises_conflict(self, engine, words, secret, alice, bob, monkeypatch):
        game = _custom(engine, bob, alice, words, secret)
        monkeypatch.setattr(game_service, "_write", lambda *a, **k: False)
        with pytest.raises(ConflictError):
            game_service.guess(engine, game.id, "slate", words=words)
        monkeypatch.undo()
        row = _row(engine, game.id)
        assert row.guesses == []
        assert row.version == 1


class TestUndoReset:
    def test_undo_practice(self, engine, words, secret, alice):
        key = UserGameKey(alice, "practice_undo", is_daily=False)
        game = game_service.load_or_create(engine, key, words=words, secret=secret)
        guess = "hello" if game.word != "hello" else "world"
        game_service.guess(engine, game.id, guess, words=words)
        undone = game_service.undo_guess(engine, game.id)
        assert undone.original_guesses == []
        assert _row(engine, game.id).version == 3

    def test_undo_daily_rejected(self, engine, words, secret, alice):
        key = UserGameKey(alice, "2024-03-01", is_daily=True)
        game = game_service.load_or_create(engine, key, words=words, secret=secret)
        with pytest.raises(InvariantViolation):
            game_service.undo_guess(engine, game.id)

    def test_reset_in_progress_daily_keeps_word(self, engine, words, secret, alice):
        key = UserGameKey(alice, "2024-03-01", is_daily=True)
        game = game_service.load_or_create(engine, key, words=words, secret=secret)
        game_service.guess(engine, game.id, "hello", words=words)
        reset = game_service.reset(engine, game.id, words=words, secret=secret)
        assert reset.original_guesses == []
        assert reset.word == game.word

    def test_reset_finished_daily_rejected(self, engine, words, secret, alice):
        key = UserGameKey(alice, "2024-03-01", is_daily=True)
        game = game_service.load_or_create(engine, key, words=words, secret=secret)
        game_service.guess(engine, game.id, game.word, words=words)
        with pytest.raises(InvariantViolation):
            game_service.reset(engine, game.id, words=words, secret=secret)

    def test_reset_reopens_finished_custom(self, engine, words, secret, alice, bob):
        game = _custom(engine, bob, alice, words, secret)
        game_service.guess(engine, game.id, "crane", words=words)
        reset = game_service.reset(engine, game.id, words=words, secret=secret)
        assert reset.status is GameStatus.IN_PROGRESS
        assert reset.word == "crane"
        assert _row(engine, game.id).completed_at is None

    def test_reset_practice_picks_from_answers(self, engine, words, secret, alice):
        key = UserGameKey(alice, "practice_reset", is_daily=False)
        game = game_service.load_or_create(engine, key, words=words, secret=secret)
        reset = game_service.reset(engine, game.id, words=words, secret=secret)
        assert reset.word in words.answers

    def test_arena_round_cannot_be_reset(self, engine, words, secret, alice):
        with Session(engine) as session:
            game = Game(
                user_id=alice.user_id, identity_provider=alice.identity_provider,
                game_key="arena_1_1", is_daily=False, word="crane", guesses=[],
            )
            session.add(game)
            session.commit()
            game_id = game.id
        with pytest.raises(InvariantViolation):
            game_service.reset(engine, game_id, words=words, secret=secret)


class TestProjections:
    def test_public_view_hides_letters(self, engine, words, secret, alice, bob):
        game = _custom(engine, bob, alice, words, secret)
        game_service.guess(engine, game.id, "crate", words=words)
        public = game_service.load_public(engine, game.id, personal=False)
        assert isinstance(public, PublicGuessedGame)
        body = public.to_dict()
        assert "word" not in body
        assert body["guesses"] == [["CORRECT", "CORRECT", "CORRECT", "INCORRECT", "CORRECT"]]

    def test_word_hidden_until_finished(self, engine, words, secret, alice, bob):
        game = _custom(engine, bob, alice, words, secret)
        assert game_service.load(engine, game.id).to_dict()["word"] == ""
        game_service.guess(engine, game.id, "crane", words=words)
        assert game_service.load(engine, game.id).to_dict()["word"] == "crane"

    def test_share_text(self, engine, words, secret, alice, bob):
        game = _custom(engine, bob, alice, words, secret)
        game_service.guess(engine, game.id, "crate", words=words)
        game_service.guess(engine, game.id, "crane", words=words)
        title, grid = build_share_text(game_service.load(engine, game.id))
        assert title == f"Wordplay {game.game_key[-8:]} 2/6"
        assert grid.splitlines()[1] == "🟩🟩🟩🟩🟩"

    def test_load_all_dailies(self, engine, words, secret, alice):
        for day in ("2024-03-02", "2024-03-01"):
            game_service.load_or_create(
                engine, UserGameKey(alice, day, is_daily=True), words=words, secret=secret,
            )
        assert [g.game_key for g in game_service.load_all_dailies(engine, alice)] == [
            "2024-03-01", "2024-03-02",
        ]

    def test_update_game_data_merges(self, engine, words, secret, alice, bob):
        game = _custom(engine, bob, alice, words, secret)
        game_service.update_game_data(engine, game.id, {"mint": "0xabc"})
        updated = game_service.update_game_data(engine, game.id, {"shared": True})
        assert updated.game_data == {"mint": "0xabc", "shared": True}


class TestCustomWords:
    def test_normalized(self, engine, alice):
        custom = game_service.create_custom_word(engine, alice, " CRANE ")
        assert custom.word == "crane"

    @pytest.mark.parametrize("word", ["cran", "cr4ne", "cranes"])
    def test_invalid(self, engine, alice, word):
        with pytest.raises(ValidationError):
            game_service.create_custom_word(engine, alice, word)

    def test_anonymous_creator_rejected(self, engine):
        with pytest.raises(ValidationError):
            game_service.create_custom_word(engine, UserKey("x", "anon"), "crane")
