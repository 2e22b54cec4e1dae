"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Integration tests for the player, arena, freeze and leaderboard routes
using the FastAPI TestClient.

These tests verify:
- Auth guards (401 without a token, 403 for non-admins)
- Error mapping from service exceptions to status codes and ``code`` bodies
- Basic response structure of each route family
"""

from __future__ import annotations

import dataclasses
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import update
from sqlalchemy.orm import Session

from conftest import TEST_SHUFFLE_SECRET, auth, jan, seed_daily
from wordplay.constants import add_days, today_key
from wordplay.database.models import Arena
from wordplay.services import freeze_service


def _start_daily(client, user, **body):
    resp = client.post("/api/games/daily", json=body, headers=auth(user))
    assert resp.status_code == 200, resp.text
    return resp.json()


def _override_config(client_app, cfg):
    from wordplay.api import deps

    client_app.dependency_overrides[deps.get_config] = lambda: cfg


# ===========================================================================
# Health / auth
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestAuthGuards:
    @pytest.mark.parametrize("method,path", [
        ("post", "/api/games/daily"),
        ("post", "/api/games/practice"),
        ("get", "/api/stats"),
        ("get", "/api/streak-freeze"),
        ("post", "/api/arenas"),
    ])
    def test_missing_token_returns_401(self, client, method, path):
        resp = getattr(client, method)(path, json={}) if method == "post" else client.get(path)
        assert resp.status_code == 401

    def test_invalid_token_returns_401(self, client):
        resp = client.get("/api/stats", headers={"Authorization": "Bearer not.a.jwt"})
        assert resp.status_code == 401

    def test_admin_routes_reject_players(self, client, alice):
        assert client.post("/api/streak-freeze/backfill", headers=auth(alice)).status_code == 403
        assert client.post("/api/arenas/1/notify", headers=auth(alice)).status_code == 403


# ===========================================================================
# Games
# ===========================================================================
class TestDailyGame:
    def test_start_hides_the_word(self, client, alice):
        game = _start_daily(client, alice)
        assert game["gameKey"] == today_key()
        assert game["status"] == "IN_PROGRESS"
        assert game["word"] == ""

    def test_start_is_idempotent(self, client, alice):
        assert _start_daily(client, alice)["id"] == _start_daily(client, alice)["id"]

    def test_archive_day_allowed_future_rejected(self, client, alice):
        past = add_days(today_key(), -3)
        assert _start_daily(client, alice, game_key=past)["gameKey"] == past

        resp = client.post(
            "/api/games/daily", json={"game_key": add_days(today_key(), 1)}, headers=auth(alice)
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "future_game_key"

        resp = client.post("/api/games/daily", json={"game_key": "nope"}, headers=auth(alice))
        assert resp.json()["code"] == "invalid_game_key"

    def test_win_flow(self, client, alice, words):
        game = _start_daily(client, alice)
        answer = words.daily_word(today_key(), alice.identity_provider, TEST_SHUFFLE_SECRET)

        resp = client.post(f"/api/games/{game['id']}/guess", json={"guess": answer}, headers=auth(alice))
        assert resp.status_code == 200
        body = resp.json()
        assert body["finished"] is True
        assert body["game"]["status"] == "WON"
        assert body["game"]["word"] == answer
        assert body["freezeEarned"] is None

        stats = client.get("/api/stats", headers=auth(alice)).json()
        assert stats["totalWins"] == 1
        assert stats["currentStreak"] == 1

        history = client.get("/api/games/daily/history", headers=auth(alice)).json()
        assert [g["id"] for g in history] == [game["id"]]

        share = client.get(f"/api/games/{game['id']}/share").json()
        assert share["title"].endswith("1/6")
        assert share["grid"] == "🟩" * 5

        # Terminal games take no more guesses.
        resp = client.post(f"/api/games/{game['id']}/guess", json={"guess": answer}, headers=auth(alice))
        assert resp.status_code == 422

    def test_win_on_milestone_earns_a_freeze(self, client, alice, words, wordplay_config):
        from wordplay.api.main import app

        _override_config(app, dataclasses.replace(wordplay_config, freeze_earn_interval=1))
        game = _start_daily(client, alice)
        answer = words.daily_word(today_key(), alice.identity_provider, TEST_SHUFFLE_SECRET)
        body = client.post(
            f"/api/games/{game['id']}/guess", json={"guess": answer}, headers=auth(alice)
        ).json()
        assert body["freezeEarned"]["streakLength"] == 1

    def test_invalid_guess_is_400_with_reason(self, client, alice):
        game = _start_daily(client, alice)
        resp = client.post(f"/api/games/{game['id']}/guess", json={"guess": "zzzzz"}, headers=auth(alice))
        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_WORD"

        resp = client.post(f"/api/games/{game['id']}/guess", json={"guess": "abc"}, headers=auth(alice))
        assert resp.json()["code"] == "INVALID_SIZE"

    def test_stats_empty_for_new_player(self, client, alice):
        resp = client.get("/api/stats", headers=auth(alice))
        assert resp.status_code == 200
        assert resp.json() is None


class TestOwnership:
    def test_other_players_get_404_on_mutation(self, client, alice, bob):
        game = _start_daily(client, alice)
        for path in ("guess", "undo", "reset"):
            resp = client.post(f"/api/games/{game['id']}/{path}", json={"guess": "hello"}, headers=auth(bob))
            assert resp.status_code == 404
        resp = client.patch(f"/api/games/{game['id']}/data", json={"data": {}}, headers=auth(bob))
        assert resp.status_code == 404

    def test_public_view_hides_letters(self, client, alice, bob):
        game = _start_daily(client, alice)
        client.post(f"/api/games/{game['id']}/guess", json={"guess": "hello"}, headers=auth(alice))

        public = client.get(f"/api/games/{game['id']}", headers=auth(bob)).json()
        assert "word" not in public
        assert len(public["guesses"]) == 1
        assert all(isinstance(s, str) for s in public["guesses"][0])

        owner = client.get(f"/api/games/{game['id']}", headers=auth(alice)).json()
        assert owner["originalGuesses"] == ["hello"]

    def test_unknown_game(self, client):
        assert client.get("/api/games/does-not-exist").status_code == 404


class TestPracticeAndCustom:
    def test_practice_undo_and_data(self, client, alice):
        resp = client.post("/api/games/practice", json={}, headers=auth(alice))
        game = resp.json()
        assert game["gameKey"].startswith("practice_")

        client.post(f"/api/games/{game['id']}/guess", json={"guess": "hello"}, headers=auth(alice))
        undone = client.post(f"/api/games/{game['id']}/undo", headers=auth(alice)).json()
        assert undone["originalGuesses"] == []

        resp = client.patch(f"/api/games/{game['id']}/data", json={"data": {"theme": "dark"}}, headers=auth(alice))
        assert resp.status_code == 200

    def test_practice_rejects_daily_keys(self, client, alice):
        resp = client.post("/api/games/practice", json={"game_key": "2024-01-01"}, headers=auth(alice))
        assert resp.status_code == 400

    def test_custom_word_round_trip(self, client, alice, bob):
        created = client.post("/api/custom-words", json={"word": "crane"}, headers=auth(alice)).json()
        assert created["gameKey"] == f"custom_{created['id']}"

        game = client.post(f"/api/games/custom/{created['id']}", json={}, headers=auth(bob)).json()
        body = client.post(f"/api/games/{game['id']}/guess", json={"guess": "crane"}, headers=auth(bob)).json()
        assert body["game"]["status"] == "WON"

    def test_unknown_custom_word(self, client, alice):
        assert client.post("/api/games/custom/nope", json={}, headers=auth(alice)).status_code == 404

    def test_bad_custom_word(self, client, alice):
        resp = client.post("/api/custom-words", json={"word": "no"}, headers=auth(alice))
        assert resp.status_code == 400


# ===========================================================================
# Arenas
# ===========================================================================
class TestArenas:
    def _create(self, client, user, **overrides):
        body = {"word_count": 1, "audience_size": 2, "words": ["CRANE"]}
        body.update(overrides)
        resp = client.post("/api/arenas", json=body, headers=auth(user))
        assert resp.status_code == 200, resp.text
        return resp.json()

    def test_create_hides_words(self, client, alice):
        arena = self._create(client, alice)
        assert "words" not in arena["config"]
        assert arena["freeSlots"] == 2

    def test_invalid_arena(self, client, alice):
        resp = client.post(
            "/api/arenas", json={"word_count": 2, "audience_size": 2, "words": ["crane"]}, headers=auth(alice)
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_arena_config"

    def test_join_play_and_results(self, client, alice):
        arena = self._create(client, alice)
        joined = client.post(f"/api/arenas/{arena['id']}/join", json={"username": "alice"}, headers=auth(alice))
        assert joined.json()["status"] == "OPEN"

        start = client.post(f"/api/arenas/{arena['id']}/play", json={}, headers=auth(alice)).json()
        assert start["game"]["status"] == "IN_PROGRESS"
        assert start["hasNext"] is True

        done = client.post(f"/api/arenas/{arena['id']}/play", json={"guess": "crane"}, headers=auth(alice)).json()
        assert done["game"]["status"] == "WON"
        assert done["hasNext"] is False

        results = client.get(f"/api/arenas/{arena['id']}/results").json()
        assert results == [{
            "rank": 1, "userId": alice.user_id, "identityProvider": "fc", "username": "alice",
            "totalScore": 1, "wins": 1, "roundsCompleted": 1,
        }]

    def test_full_arena(self, client, alice, bob):
        arena = self._create(client, alice, audience_size=1)
        client.post(f"/api/arenas/{arena['id']}/join", json={}, headers=auth(alice))
        resp = client.post(f"/api/arenas/{arena['id']}/join", json={}, headers=auth(bob))
        assert resp.status_code == 400
        assert resp.json()["code"] == "no_free_slots"

    def test_non_member_cannot_play(self, client, alice, bob):
        arena = self._create(client, alice)
        resp = client.post(f"/api/arenas/{arena['id']}/play", json={}, headers=auth(bob))
        assert resp.json()["code"] == "not_member"

    def test_kick_requires_creator(self, client, alice, bob):
        arena = self._create(client, alice)
        client.post(f"/api/arenas/{arena['id']}/join", json={}, headers=auth(bob))
        member = {"user_id": bob.user_id, "identity_provider": bob.identity_provider}
        assert client.post(f"/api/arenas/{arena['id']}/kick", json=member, headers=auth(bob)).status_code == 400
        kicked = client.post(f"/api/arenas/{arena['id']}/kick", json=member, headers=auth(alice)).json()
        assert kicked["members"][0]["kicked_at"] is not None

    def _bob_round(self, client, alice, bob, **overrides):
        arena = self._create(client, alice, **overrides)
        client.post(f"/api/arenas/{arena['id']}/join", json={}, headers=auth(bob))
        game = client.post(f"/api/arenas/{arena['id']}/play", json={}, headers=auth(bob)).json()["game"]
        return arena, game

    def test_round_can_be_guessed_through_games_route(self, client, alice, bob):
        _, game = self._bob_round(client, alice, bob)
        resp = client.post(f"/api/games/{game['id']}/guess", json={"guess": "crane"}, headers=auth(bob))
        assert resp.status_code == 200
        assert resp.json()["game"]["status"] == "WON"

    def test_kicked_member_cannot_guess_through_games_route(self, client, alice, bob):
        arena, game = self._bob_round(client, alice, bob)
        member = {"user_id": bob.user_id, "identity_provider": bob.identity_provider}
        client.post(f"/api/arenas/{arena['id']}/kick", json=member, headers=auth(alice))

        resp = client.post(f"/api/games/{game['id']}/guess", json={"guess": "crane"}, headers=auth(bob))
        assert resp.status_code == 400
        assert resp.json()["code"] == "not_member"
        assert client.get(f"/api/games/{game['id']}", headers=auth(bob)).json()["status"] == "IN_PROGRESS"

    def test_ended_arena_rejects_guess_through_games_route(self, client, db_engine, alice, bob):
        arena, game = self._bob_round(client, alice, bob, duration_minutes=30)
        with Session(db_engine) as session:
            session.execute(
                update(Arena)
                .where(Arena.id == arena["id"])
                .values(started_at=datetime.now(UTC) - timedelta(hours=2))
            )
            session.commit()

        resp = client.post(f"/api/games/{game['id']}/guess", json={"guess": "crane"}, headers=auth(bob))
        assert resp.status_code == 400
        assert resp.json()["code"] == "not_open"

    def test_play_returns_guessed_round(self, client, alice):
        arena = self._create(client, alice)
        client.post(f"/api/arenas/{arena['id']}/join", json={}, headers=auth(alice))
        body = client.post(f"/api/arenas/{arena['id']}/play", json={"guess": "slate"}, headers=auth(alice)).json()
        assert body["game"]["originalGuesses"] == ["slate"]
        assert body["hasNext"] is True

    def test_unknown_arena(self, client):
        assert client.get("/api/arenas/999").status_code == 404

    def test_notify(self, client, alice, dispatcher):
        arena = self._create(client, alice)
        client.post(f"/api/arenas/{arena['id']}/join", json={}, headers=auth(alice))
        resp = client.post(f"/api/arenas/{arena['id']}/notify", headers=auth(alice, is_admin=True))
        assert resp.json() == {"sent": True}
        assert dispatcher.sent[0][0] == [alice]


# ===========================================================================
# Streak freezes
# ===========================================================================
class TestStreakFreeze:
    def test_overview(self, client, alice):
        view = client.get("/api/streak-freeze", headers=auth(alice)).json()
        assert view["balance"] == 2
        assert view["applied"] == []

    def test_apply(self, client, alice, chain):
        chain.burns["0xburn"] = 1
        body = {"game_keys": ["2024-01-04"], "burn_tx_hash": "0xburn"}
        resp = client.post("/api/streak-freeze/apply", json=body, headers=auth(alice))
        assert resp.json() == {"applied": ["2024-01-04"]}

        again = client.post("/api/streak-freeze/apply", json=body, headers=auth(alice))
        assert again.status_code == 400
        assert again.json()["code"] == "already_applied"

    def test_apply_needs_days(self, client, alice):
        resp = client.post(
            "/api/streak-freeze/apply", json={"game_keys": [], "burn_tx_hash": "0x"}, headers=auth(alice)
        )
        assert resp.status_code == 422

    def test_chain_outage_is_502(self, client, alice, chain):
        chain.fail = True
        body = {"game_keys": ["2024-01-04"], "burn_tx_hash": "0xburn"}
        resp = client.post("/api/streak-freeze/apply", json=body, headers=auth(alice))
        assert resp.status_code == 502
        assert resp.json()["code"] == "chain_unavailable"

    def test_claim(self, client, db_engine, alice):
        mint = freeze_service.earn(db_engine, alice, streak_length=3, game_key="2024-01-03")
        resp = client.post(
            "/api/streak-freeze/claim", json={"mint_id": mint.id, "claim_tx_hash": "0xclaim"}, headers=auth(alice)
        )
        assert resp.status_code == 200
        assert resp.json()["claimTxHash"] == "0xclaim"

    def test_purchase(self, client, alice, chain):
        chain.purchases.add("0xbuy")
        resp = client.post("/api/streak-freeze/purchase", json={"tx_hash": "0xbuy"}, headers=auth(alice))
        assert resp.json()["purchaseTxRef"] == "0xbuy"

    def test_backfill_dry_run(self, client, db_engine, alice):
        seed_daily(db_engine, alice, *jan(1, 2, 3))
        resp = client.post(
            "/api/streak-freeze/backfill", params={"dry_run": True}, headers=auth(alice, is_admin=True)
        )
        assert resp.status_code == 200
        assert resp.json()["dry_run"] is True
        assert resp.json()["users_scanned"] == 1


# ===========================================================================
# Leaderboard
# ===========================================================================
class TestLeaderboard:
    def test_score_board_with_personal_entry(self, client, db_engine, alice, bob):
        seed_daily(db_engine, alice, *jan(8, 9))
        seed_daily(db_engine, bob, *jan(9))
        resp = client.get(
            "/api/leaderboard/score",
            params={"identity_provider": "fc", "date": "2024-01-10", "days": 7},
            headers=auth(bob),
        )
        assert resp.status_code == 200
        data = resp.json()
        assert [(e["userId"], e["rank"]) for e in data["entries"]] == [("1001", 1), ("1002", 2)]
        assert data["personalEntryIndex"] == 1

    def test_validation(self, client):
        assert client.get("/api/leaderboard/score", params={"identity_provider": "fc", "date": "nope"}).status_code == 400
        assert client.get("/api/leaderboard/score").status_code == 422
        assert client.get("/api/leaderboard/fastest", params={"identity_provider": "fc"}).status_code == 422
