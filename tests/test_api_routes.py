"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Integration tests for the member and admin reward routes using the FastAPI
TestClient against an in-memory SQLite database.

These tests verify:
- Auth guards on member and admin endpoints
- Idempotent claim routes (repeat calls pay once)
- Admin catalog and milestone edits reach the cache immediately
- Admin ledger listing, filters and totals
- Health endpoint availability
"""

from __future__ import annotations

import pytest
from conftest import add_user, make_token
from fastapi.testclient import TestClient

from rewardledger.api.deps import get_claim_hint, get_config, get_engine, get_notifier
from rewardledger.api.main import app
from rewardledger.config import RewardsConfig
from rewardledger.services.daily_login_service import ClaimedTodayCache
from rewardledger.services.ledger_service import get_balance


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, int, str]] = []

    def notify_coins(self, user_id: str, amount: int, reason: str) -> None:
        self.sent.append((user_id, amount, reason))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(seeded_engine, notifier):
    """A TestClient wired to the seeded SQLite engine."""
    app.dependency_overrides[get_engine] = lambda: seeded_engine
    app.dependency_overrides[get_config] = lambda: RewardsConfig(community_name="Test")
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_claim_hint] = ClaimedTodayCache
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def member_token():
    return make_token("member-1", username="Member One")


@pytest.fixture
def non_admin_token():
    return make_token("67890", username="RegularUser")


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Auth guards
# ===========================================================================
class TestMemberAuthGuards:
    MEMBER_POST_ENDPOINTS = [
        "/api/rewards/daily-login",
        "/api/rewards/streak",
        "/api/rewards/check-in",
        "/api/rewards/engagement",
        "/api/activities/mood",
    ]

    MEMBER_GET_ENDPOINTS = [
        "/api/me/balance",
        "/api/me/transactions",
        "/api/me/streak",
        "/api/rewards/engagement",
    ]

    @pytest.mark.parametrize("endpoint", MEMBER_POST_ENDPOINTS)
    def test_post_rejects_no_auth(self, client, endpoint):
        assert client.post(endpoint).status_code == 401

    @pytest.mark.parametrize("endpoint", MEMBER_GET_ENDPOINTS)
    def test_get_rejects_invalid_token(self, client, endpoint):
        resp = client.get(endpoint, headers={"Authorization": "Bearer invalid"})
        assert resp.status_code == 401

    def test_token_without_subject_rejected(self, client):
        resp = client.get("/api/me/balance", headers=_auth(make_token("")))
        assert resp.status_code == 401


class TestAdminAuthGuards:
    """All admin endpoints must return 401/403 for missing/invalid/non-admin tokens."""

    ADMIN_GET_ENDPOINTS = [
        "/api/admin/rewards",
        "/api/admin/milestones",
        "/api/admin/ledger/reconcile",
        "/api/admin/ledger/reconcile/member-1",
        "/api/admin/transactions",
        "/api/admin/transactions/stats",
    ]

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_get_rejects_no_auth(self, client, endpoint):
        assert client.get(endpoint).status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_get_rejects_non_admin(self, client, non_admin_token, endpoint):
        resp = client.get(endpoint, headers=_auth(non_admin_token))
        assert resp.status_code == 403

    def test_issue_rejects_non_admin(self, client, non_admin_token):
        resp = client.post("/api/admin/scratch-cards/issue", headers=_auth(non_admin_token))
        assert resp.status_code == 403

    def test_patch_rejects_non_admin(self, client, non_admin_token):
        resp = client.patch(
            "/api/admin/rewards/daily_login",
            json={"coins_amount": 1000},
            headers=_auth(non_admin_token),
        )
        assert resp.status_code == 403

    def test_milestone_patch_rejects_non_admin(self, client, non_admin_token):
        resp = client.patch(
            "/api/admin/milestones/1",
            json={"bonus_coins": 1000},
            headers=_auth(non_admin_token),
        )
        assert resp.status_code == 403


# ===========================================================================
# Member reward routes
# ===========================================================================
class TestDailyLoginRoute:
    def test_claim_once(self, client, seeded_engine, member_token, notifier):
        first = client.post("/api/rewards/daily-login", headers=_auth(member_token))
        second = client.post("/api/rewards/daily-login", headers=_auth(member_token))

        assert first.status_code == 200
        assert first.json()["coins_awarded"] == 10
        assert first.json()["already_claimed"] is False
        assert second.status_code == 200
        assert second.json()["coins_awarded"] == 0
        assert second.json()["already_claimed"] is True
        assert get_balance(seeded_engine, "member-1") == 10
        assert notifier.sent == [("member-1", 10, "Daily login bonus")]

    def test_check_in_combines_login_and_streak(self, client, member_token):
        resp = client.post("/api/rewards/check-in", headers=_auth(member_token))
        assert resp.status_code == 200
        body = resp.json()
        assert body["daily_login"]["coins_awarded"] == 10
        assert body["streak"]["current_streak"] == 1
        assert body["streak"]["advanced"] is True

        again = client.post("/api/rewards/check-in", headers=_auth(member_token)).json()
        assert again["daily_login"]["already_claimed"] is True
        assert again["streak"]["advanced"] is False

    def test_my_streak_shows_claimed_today(self, client, member_token):
        before = client.get("/api/me/streak", headers=_auth(member_token)).json()
        assert before["claimed_today"] is False
        assert before["current_streak"] == 0

        client.post("/api/rewards/check-in", headers=_auth(member_token))
        after = client.get("/api/me/streak", headers=_auth(member_token)).json()
        assert after["claimed_today"] is True
        assert after["current_streak"] == 1
        assert after["next_milestone"]["days_required"] == 3

    def test_ledger_failure_returns_500(self, client, member_token, monkeypatch):
        from rewardledger.services import catalog_service
        from rewardledger.services.ledger_service import LedgerError

        def boom(*args, **kwargs):
            raise LedgerError("no balance row")

        monkeypatch.setattr(catalog_service, "award_coins", boom)
        resp = client.post("/api/rewards/daily-login", headers=_auth(member_token))
        assert resp.status_code == 500


class TestActivityRoutes:
    def test_unknown_activity_is_422(self, client, member_token):
        resp = client.post("/api/activities/crossword", headers=_auth(member_token))
        assert resp.status_code == 422

    def test_completing_all_triggers_bonus_once(self, client, seeded_engine, member_token):
        h = _auth(member_token)
        mood = client.post("/api/activities/mood", headers=h).json()
        assert mood["coins_awarded"] == 5
        assert mood["engagement"]["celebrate"] is False

        client.post("/api/activities/fortune", headers=h)
        last = client.post("/api/activities/word_game", headers=h).json()
        assert last["status"]["all_complete"] is True
        assert last["engagement"]["celebrate"] is True
        assert last["engagement"]["coins_awarded"] == 25

        claim = client.post("/api/rewards/engagement", headers=h).json()
        assert claim["celebrate"] is False
        assert claim["already_completed"] is True

        status = client.get("/api/rewards/engagement", headers=h).json()
        assert status["all_complete"] is True
        assert get_balance(seeded_engine, "member-1") == 5 + 5 + 10 + 25

    def test_repeat_activity_pays_once(self, client, member_token):
        h = _auth(member_token)
        client.post("/api/activities/fortune", headers=h)
        again = client.post("/api/activities/fortune", headers=h).json()
        assert again["already_completed"] is True
        assert again["coins_awarded"] == 0


class TestMeRoutes:
    def test_balance_and_transactions(self, client, member_token):
        h = _auth(member_token)
        assert client.get("/api/me/balance", headers=h).json() == {
            "user_id": "member-1", "coins": 0,
        }
        client.post("/api/rewards/daily-login", headers=h)
        client.post("/api/activities/mood", headers=h)

        assert client.get("/api/me/balance", headers=h).json()["coins"] == 15
        page = client.get("/api/me/transactions?page_size=1", headers=h).json()
        assert page["total"] == 2
        assert len(page["transactions"]) == 1

    def test_page_size_validated(self, client, member_token):
        resp = client.get("/api/me/transactions?page_size=1000", headers=_auth(member_token))
        assert resp.status_code == 422

    def test_scratch_card_without_collection(self, client, member_token):
        resp = client.get("/api/me/scratch-card", headers=_auth(member_token))
        assert resp.status_code == 404

    def test_scratch_card_generated_once(self, client, member_token, active_collection):
        h = _auth(member_token)
        first = client.get("/api/me/scratch-card", headers=h).json()
        second = client.get("/api/me/scratch-card", headers=h).json()
        assert first["created"] is True
        assert second["created"] is False
        assert first["id"] == second["id"]
        assert first["collection_id"] == active_collection


# ===========================================================================
# Admin routes
# ===========================================================================
class TestAdminRoutes:
    def test_list_rewards(self, client, admin_token):
        resp = client.get("/api/admin/rewards", headers=_auth(admin_token))
        assert resp.status_code == 200
        keys = {r["reward_key"] for r in resp.json()}
        assert keys == {
            "daily_login", "daily_engagement_bonus", "mood_checkin",
            "fortune_view", "word_game_complete",
        }

    def test_patch_takes_effect_immediately(self, client, admin_token, member_token):
        client.get("/api/admin/rewards", headers=_auth(admin_token))  # warm the cache
        resp = client.patch(
            "/api/admin/rewards/daily_login",
            json={"coins_amount": 40},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 200
        assert resp.json()["coins_amount"] == 40

        claim = client.post("/api/rewards/daily-login", headers=_auth(member_token)).json()
        assert claim["coins_awarded"] == 40

    def test_disable_reward(self, client, admin_token, member_token):
        client.patch(
            "/api/admin/rewards/daily_login",
            json={"is_active": False},
            headers=_auth(admin_token),
        )
        claim = client.post("/api/rewards/daily-login", headers=_auth(member_token)).json()
        assert claim["success"] is True
        assert claim["coins_awarded"] == 0

    def test_patch_validation(self, client, admin_token):
        negative = client.patch(
            "/api/admin/rewards/daily_login",
            json={"coins_amount": -5},
            headers=_auth(admin_token),
        )
        unknown = client.patch(
            "/api/admin/rewards/free_money",
            json={"coins_amount": 5},
            headers=_auth(admin_token),
        )
        assert negative.status_code == 422
        assert unknown.status_code == 422

    def test_issue_scratch_cards(self, client, seeded_engine, admin_token, active_collection):
        add_user(seeded_engine, "a")
        add_user(seeded_engine, "b")
        first = client.post("/api/admin/scratch-cards/issue", headers=_auth(admin_token))
        second = client.post("/api/admin/scratch-cards/issue", headers=_auth(admin_token))
        assert first.json()["created"] == 2
        assert second.json()["created"] == 0
        assert second.json()["skipped"] == 2

    def test_reconcile(self, client, seeded_engine, admin_token):
        add_user(seeded_engine, "drifty", coins=12)
        report = client.get("/api/admin/ledger/reconcile", headers=_auth(admin_token)).json()
        assert report["drifted"] == 1
        assert report["drift"][0]["user_id"] == "drifty"

    def test_reconcile_one_member(self, client, seeded_engine, admin_token):
        add_user(seeded_engine, "drifty", coins=12)
        resp = client.get("/api/admin/ledger/reconcile/drifty", headers=_auth(admin_token))
        assert resp.status_code == 200
        assert resp.json() == {
            "user_id": "drifty", "stored": 12, "actual": 0, "diff": -12, "drifted": True,
        }

        missing = client.get("/api/admin/ledger/reconcile/nobody", headers=_auth(admin_token))
        assert missing.status_code == 404


class TestAdminMilestoneRoutes:
    def test_list_milestones(self, client, admin_token):
        resp = client.get("/api/admin/milestones", headers=_auth(admin_token))
        assert resp.status_code == 200
        body = resp.json()
        assert [m["days_required"] for m in body] == [3, 7, 14, 30]
        week = body[1]
        assert week["badge_name"] == "Week Warrior"
        assert week["bonus_coins"] == 50
        assert week["free_scratch_cards"] == 1

    def test_patch_takes_effect_immediately(self, client, admin_token):
        h = _auth(admin_token)
        week_id = client.get("/api/admin/milestones", headers=h).json()[1]["id"]
        resp = client.patch(
            f"/api/admin/milestones/{week_id}",
            json={"bonus_coins": 80, "free_scratch_cards": 2},
            headers=h,
        )
        assert resp.status_code == 200
        assert resp.json()["bonus_coins"] == 80

        week = next(
            m for m in client.get("/api/admin/milestones", headers=h).json()
            if m["id"] == week_id
        )
        assert week["bonus_coins"] == 80
        assert week["free_scratch_cards"] == 2

    def test_disable_milestone(self, client, admin_token):
        h = _auth(admin_token)
        resp = client.patch("/api/admin/milestones/1", json={"is_active": False}, headers=h)
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False
        # Untouched fields keep their values
        assert resp.json()["bonus_coins"] == 15

    @pytest.mark.parametrize(
        "body", [{"bonus_coins": -1}, {"free_scratch_cards": -3}],
    )
    def test_negative_values_rejected(self, client, admin_token, body):
        resp = client.patch("/api/admin/milestones/1", json=body, headers=_auth(admin_token))
        assert resp.status_code == 422

    def test_unknown_milestone_is_404(self, client, admin_token):
        resp = client.patch(
            "/api/admin/milestones/9999",
            json={"bonus_coins": 5},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 404


class TestAdminTransactionRoutes:
    @pytest.fixture
    def activity(self, client, member_token):
        h = _auth(member_token)
        client.post("/api/rewards/daily-login", headers=h)
        client.post("/api/activities/mood", headers=h)
        other = _auth(make_token("member-2", username="Member Two"))
        client.post("/api/rewards/daily-login", headers=other)

    def test_lists_all_members(self, client, admin_token, activity):
        resp = client.get("/api/admin/transactions", headers=_auth(admin_token))
        assert resp.status_code == 200
        body = resp.json()
        assert body["total"] == 3
        assert body["page"] == 1
        assert {t["user_id"] for t in body["transactions"]} == {"member-1", "member-2"}

    def test_filters(self, client, admin_token, activity):
        h = _auth(admin_token)
        mine = client.get("/api/admin/transactions?user_id=member-2", headers=h).json()
        assert mine["total"] == 1
        earned = client.get("/api/admin/transactions?transaction_type=earned", headers=h).json()
        assert earned["total"] == 3
        spent = client.get("/api/admin/transactions?transaction_type=spent", headers=h).json()
        assert spent["total"] == 0

    def test_invalid_filters_are_422(self, client, admin_token):
        h = _auth(admin_token)
        assert client.get(
            "/api/admin/transactions?transaction_type=stolen", headers=h,
        ).status_code == 422
        assert client.get(
            "/api/admin/transactions?page_size=1000", headers=h,
        ).status_code == 422

    def test_stats(self, client, admin_token, activity):
        resp = client.get("/api/admin/transactions/stats", headers=_auth(admin_token))
        assert resp.status_code == 200
        stats = resp.json()
        assert stats["total_count"] == 3
        assert stats["total_earned"] == 25
        assert stats["total_spent"] == 0
        assert stats["by_type"] == {"earned": {"count": 3, "total": 25}}
