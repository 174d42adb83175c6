"""Integration tests for the gamification HTTP endpoints."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession


class TestAwardEndpoint:
    async def test_requires_service_key(self, client: AsyncClient, make_user):
        user = await make_user()
        response = await client.post("/api/v1/xp/award", json={
            "user_id": user.id, "source": "lesson", "source_id": "l-1",
        })
        assert response.status_code == 401

    async def test_wrong_service_key(self, client: AsyncClient, make_user):
        user = await make_user()
        response = await client.post(
            "/api/v1/xp/award",
            json={"user_id": user.id, "source": "lesson", "source_id": "l-1"},
            headers={"X-Service-Key": "sk-pglms-nope"},
        )
        assert response.status_code == 401

    async def test_award_and_replay(self, client: AsyncClient, make_user, service_headers):
        user = await make_user()
        body = {"user_id": user.id, "source": "lesson", "source_id": "l-1", "amount": 50}

        first = await client.post("/api/v1/xp/award", json=body, headers=service_headers)
        replay = await client.post("/api/v1/xp/award", json=body, headers=service_headers)

        assert first.status_code == 200
        assert first.json()["accepted"] is True
        assert first.json()["amount_credited"] == 50
        assert first.json()["total_xp"] == 50
        assert replay.status_code == 200
        assert replay.json()["accepted"] is False
        assert replay.json()["amount_credited"] == 0
        assert replay.json()["total_xp"] == 50

    async def test_default_amount_per_source(self, client: AsyncClient, make_user, service_headers):
        user = await make_user()
        response = await client.post(
            "/api/v1/xp/award",
            json={"user_id": user.id, "source": "module", "source_id": "m-1"},
            headers=service_headers,
        )
        assert response.json()["amount_credited"] == 200

    async def test_unknown_user_is_404(self, client: AsyncClient, service_headers):
        response = await client.post(
            "/api/v1/xp/award",
            json={"user_id": 4242, "source": "task", "source_id": "t-1", "amount": 10},
            headers=service_headers,
        )
        assert response.status_code == 404
        assert "4242" in response.json()["detail"]

    @pytest.mark.parametrize("body", [
        {"source": "task", "source_id": "t-1", "amount": -5},
        {"source": "badge", "source_id": "b-1", "amount": 10},
    ])
    async def test_invalid_award_is_422(self, client: AsyncClient, make_user, service_headers, body):
        user = await make_user()
        response = await client.post(
            "/api/v1/xp/award", json={"user_id": user.id, **body}, headers=service_headers,
        )
        assert response.status_code == 422

    async def test_quiz_completion(self, client: AsyncClient, make_user, service_headers):
        user = await make_user()
        response = await client.post(
            "/api/v1/xp/quiz-completions",
            json={"user_id": user.id, "task_id": "quiz-9", "score": 80, "xp_reward": 50},
            headers=service_headers,
        )
        assert response.status_code == 200
        assert response.json()["amount_credited"] == 40

    async def test_quiz_score_out_of_range(self, client: AsyncClient, make_user, service_headers):
        user = await make_user()
        response = await client.post(
            "/api/v1/xp/quiz-completions",
            json={"user_id": user.id, "task_id": "quiz-9", "score": 120},
            headers=service_headers,
        )
        assert response.status_code == 422

    async def test_training_completion(self, client: AsyncClient, make_user, service_headers):
        user = await make_user()
        response = await client.post(
            "/api/v1/xp/training-completions",
            json={"user_id": user.id, "training_id": "tr-1", "total_xp": 200, "score": 40, "passed": False},
            headers=service_headers,
        )
        assert response.json()["amount_credited"] == 100


class TestDailyLogin:
    async def test_requires_auth(self, client: AsyncClient):
        response = await client.post("/api/v1/users/me/daily-login")
        assert response.status_code in (401, 403)

    async def test_once_per_day(self, client: AsyncClient, make_user, auth_headers):
        user = await make_user()
        headers = auth_headers(user)

        first = await client.post("/api/v1/users/me/daily-login", headers=headers)
        second = await client.post("/api/v1/users/me/daily-login", headers=headers)

        assert first.json()["accepted"] is True
        assert first.json()["amount_credited"] == 10
        assert second.json()["accepted"] is False

    async def test_pending_account_rejected(self, client: AsyncClient, make_user, auth_headers):
        user = await make_user(status="PENDING")
        response = await client.post("/api/v1/users/me/daily-login", headers=auth_headers(user))
        assert response.status_code == 403

    async def test_garbage_token(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/users/me/daily-login", headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401


class TestProgressEndpoints:
    async def test_my_gamification(self, client: AsyncClient, make_user, auth_headers):
        today = datetime.now(timezone.utc).date()
        user = await make_user(xp=5200, diamonds=30, streak_days=2, longest_streak=5, last_active_day=today)

        response = await client.get("/api/v1/users/me/gamification", headers=auth_headers(user))

        assert response.status_code == 200
        data = response.json()
        assert data["xp"] == 5200
        assert data["level"] == 6
        assert data["rank_name"] == "Space Explorer"
        assert data["next_rank_name"] == "Nebula Navigator"
        assert data["effective_streak"] == 2
        assert data["longest_streak"] == 5
        assert data["last_active_day"] == today.isoformat()

    async def test_lapsed_streak_shown_as_zero(self, client: AsyncClient, make_user, auth_headers):
        user = await make_user(streak_days=8, last_active_day=date(2020, 1, 1))
        data = (await client.get("/api/v1/users/me/gamification", headers=auth_headers(user))).json()
        assert data["streak_days"] == 8
        assert data["effective_streak"] == 0

    async def test_rank_level_of_other_user(self, client: AsyncClient, make_user, auth_headers):
        me = await make_user()
        other = await make_user(xp=40_000, diamonds=99)

        response = await client.get(f"/api/v1/users/{other.id}/rank-level", headers=auth_headers(me))

        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == other.id
        assert data["level"] == 41
        assert data["rank_name"] == "Galaxy Master"
        assert "diamonds" not in data

    async def test_rank_level_unknown_user(self, client: AsyncClient, make_user, auth_headers):
        me = await make_user()
        response = await client.get("/api/v1/users/99999/rank-level", headers=auth_headers(me))
        assert response.status_code == 404

    async def test_xp_history(self, client: AsyncClient, make_user, auth_headers, service_headers):
        user = await make_user()
        for lesson in ("l-1", "l-2", "l-3"):
            await client.post(
                "/api/v1/xp/award",
                json={"user_id": user.id, "source": "lesson", "source_id": lesson},
                headers=service_headers,
            )

        response = await client.get(
            "/api/v1/users/me/xp/history?per_page=2", headers=auth_headers(user),
        )
        data = response.json()
        assert data["total"] == 3
        assert len(data["entries"]) == 2
        assert data["entries"][0]["source"] == "lesson"

    async def test_ledger_outage_is_503(self, client: AsyncClient, make_user, auth_headers, monkeypatch):
        user = await make_user()
        execute = AsyncSession.execute

        async def execute_without_ledger(self, statement, *args, **kwargs):
            if "xp_events" in str(statement):
                raise OperationalError(str(statement), {}, Exception("connection refused"))
            return await execute(self, statement, *args, **kwargs)

        monkeypatch.setattr(AsyncSession, "execute", execute_without_ledger)
        response = await client.get("/api/v1/users/me/xp/history", headers=auth_headers(user))

        assert response.status_code == 503
        assert response.headers["retry-after"] == "5"
        assert response.json() == {"detail": "XP ledger is temporarily unavailable"}

    async def test_rank_table(self, client: AsyncClient):
        response = await client.get("/api/v1/ranks")
        assert response.status_code == 200
        data = response.json()
        assert len(data["ranks"]) == 9
        assert data["ranks"][0] == {"level": 1, "name": "Stellar Cadet", "min_xp": 0}
        assert data["ranks"][-1]["name"] == "Universal Legend"
        assert data["xp_per_level"] == 1000
        assert data["max_level"] == 100


class TestAnalytics:
    async def test_admin_only(self, client: AsyncClient, make_user, auth_headers):
        learner = await make_user()
        response = await client.get("/api/v1/admin/analytics/gamification", headers=auth_headers(learner))
        assert response.status_code == 403

    async def test_overview(self, client: AsyncClient, make_user, auth_headers, service_headers):
        admin = await make_user(role="ADMIN", xp=99_999)
        today = datetime.now(timezone.utc).date()
        a = await make_user(xp=0)
        await make_user(xp=2500, streak_days=3, last_active_day=today)
        await client.post(
            "/api/v1/xp/award",
            json={"user_id": a.id, "source": "course", "source_id": "c-1"},
            headers=service_headers,
        )

        response = await client.get(
            "/api/v1/admin/analytics/gamification?days=7", headers=auth_headers(admin),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total_users"] == 2
        assert data["total_xp"] == 3500
        assert data["average_xp"] == 1750
        assert data["active_streaks"] == 2
        assert {"level": 2, "count": 1} in data["level_distribution"]
        assert data["top_performers"][0]["xp"] == 2500
        assert len(data["xp_earned_trend"]) == 7
        assert data["xp_earned_trend"][-1] == {"date": today.isoformat(), "xp": 1000}
        assert data["date_range"]["days"] == 7
