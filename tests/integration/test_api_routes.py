"""
Integration tests for the accounting API
Run against an in-memory SQLite database through the FastAPI test client
"""
import pytest
from datetime import datetime, timedelta
from unittest.mock import patch, MagicMock
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from creator_subscriptions.db.models import Subscription, UserRole
from creator_subscriptions.services.subscription_service import SubscriptionService, SubscriptionStatusResolver


@pytest.fixture
def team(db_session, catalog):
    return SubscriptionService(db_session, catalog=catalog).create_team("Acme")


@pytest.fixture
def admin(make_user, team):
    return make_user(team=team, role=UserRole.ADMIN.value)


@pytest.fixture
def member(make_user, team):
    return make_user(team=team)


class TestAuthentication:

    def test_missing_token(self, client: TestClient):
        response = client.get("/api/teams/subscription-status")
        assert response.status_code == 401
        assert response.json()["code"] == "AUTH_ERROR"

    def test_invalid_token(self, client: TestClient):
        response = client.get("/api/teams/subscription-status", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_user_without_team(self, client: TestClient, make_user, auth_headers):
        loner = make_user()
        response = client.get("/api/teams/subscription-status", headers=auth_headers(loner))
        assert response.status_code == 404
        body = response.json()
        assert body["code"] == "TEAM_NOT_FOUND"
        assert body["details"]["can_access"] is False


class TestSubscriptionStatus:

    def test_trial_team(self, client: TestClient, member, team, auth_headers):
        response = client.get("/api/teams/subscription-status", headers=auth_headers(member))
        assert response.status_code == 200
        data = response.json()
        assert data["is_trial"] is True
        assert data["can_access"] is True
        assert data["days_remaining"] in (13, 14)
        assert data["plan"]["name"] == "FREE"
        assert data["team_id"] == team.id

    def test_expired_trial(self, client: TestClient, db_session: Session, member, team, auth_headers):
        subscription = db_session.query(Subscription).filter(Subscription.team_id == team.id).one()
        subscription.trial_end_date = datetime.utcnow() - timedelta(days=1)
        db_session.commit()

        data = client.get("/api/teams/subscription-status", headers=auth_headers(member)).json()
        assert data["is_expired"] is True
        assert data["can_access"] is False
        assert data["is_trial"] is False
        assert data["trial_ended"] is True

        db_session.refresh(subscription)
        assert subscription.status == "EXPIRED"

    def test_database_unavailable(self, client: TestClient, member, auth_headers):
        failure = OperationalError("SELECT 1", {}, Exception("connection refused"))
        with patch.object(SubscriptionStatusResolver, "resolve", side_effect=failure):
            response = client.get("/api/teams/subscription-status", headers=auth_headers(member))

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "30"
        body = response.json()
        assert body["code"] == "SERVICE_UNAVAILABLE"
        assert body["details"]["retry_after"] == 30
        assert body["details"]["can_access"] is False


class TestSubscribe:

    def test_admin_subscribes(self, client: TestClient, admin, auth_headers):
        response = client.post("/api/teams/subscribe", json={"plan_name": "basic"}, headers=auth_headers(admin))
        assert response.status_code == 200
        data = response.json()
        assert data["plan_name"] == "BASIC"
        assert data["status"] == "ACTIVE"
        assert data["credits"]["content_reviews"] == 15

    def test_member_cannot_subscribe(self, client: TestClient, member, auth_headers):
        response = client.post("/api/teams/subscribe", json={"plan_name": "PRO"}, headers=auth_headers(member))
        assert response.status_code == 403

    def test_second_trial_rejected(self, client: TestClient, admin, auth_headers):
        response = client.post("/api/teams/subscribe", json={"plan_name": "FREE"}, headers=auth_headers(admin))
        assert response.status_code == 400
        assert response.json()["code"] == "PLAN_VALIDATION_ERROR"

    def test_unknown_plan(self, client: TestClient, admin, auth_headers):
        response = client.post("/api/teams/subscribe", json={"plan_name": "PLATINUM"}, headers=auth_headers(admin))
        assert response.status_code == 404


class TestPlans:

    def test_list_plans_in_order(self, client: TestClient):
        response = client.get("/api/plans")
        assert response.status_code == 200
        assert [plan["name"] for plan in response.json()] == ["FREE", "BASIC", "PRO", "ENTERPRISE"]

    def test_get_plan(self, client: TestClient, catalog):
        pro = catalog.get_by_name("PRO")
        data = client.get(f"/api/plans/{pro.id}").json()
        assert data["limits"]["members"] == 20
        assert client.get("/api/plans/9999").status_code == 404

    def test_create_plan_requires_admin(self, client: TestClient, member, auth_headers):
        response = client.post("/api/plans", json={"name": "AGENCY"}, headers=auth_headers(member))
        assert response.status_code == 403

    def test_create_plan_rule_violations(self, client: TestClient, admin, auth_headers):
        payload = {
            "name": "AGENCY",
            "display_name": "Agency",
            "price": 0,
            "trial_days": 5,
            "max_members": 50,
            "max_brands": 20,
            "max_strategic_themes": 60,
            "max_personas": 60,
            "quick_content_creations": 15,
            "custom_content_suggestions": 40,
            "content_plans": 15,
            "content_reviews": 20,
        }
        response = client.post("/api/plans", json=payload, headers=auth_headers(admin))
        assert response.status_code == 400
        errors = response.json()["details"]["errors"]
        assert "Paid plans must have a price greater than zero" in errors
        assert "Only the free plan can have a trial period" in errors

        payload.update(price=149.90, trial_days=0)
        response = client.post("/api/plans", json=payload, headers=auth_headers(admin))
        assert response.status_code == 201
        plan_id = response.json()["id"]

        assert "AGENCY" in [plan["name"] for plan in client.get("/api/plans").json()]

        response = client.put(f"/api/plans/{plan_id}", json={"display_name": "Agency XL"}, headers=auth_headers(admin))
        assert response.status_code == 200
        assert response.json()["display_name"] == "Agency XL"

        response = client.delete(f"/api/plans/{plan_id}", headers=auth_headers(admin))
        assert response.status_code == 200

    def test_schema_violation_is_422(self, client: TestClient, admin, auth_headers):
        response = client.post("/api/plans", json={"name": "agency"}, headers=auth_headers(admin))
        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_system_plan_cannot_be_deleted(self, client: TestClient, admin, catalog, auth_headers):
        response = client.delete(f"/api/plans/{catalog.get_free_plan().id}", headers=auth_headers(admin))
        assert response.status_code == 400
        assert "System plans cannot be deleted" in response.json()["details"]["errors"]

    def test_validate_usage(self, client: TestClient, member, team, catalog, auth_headers):
        response = client.post(
            "/api/plans/validate-usage",
            json={"team_id": team.id, "plan_id": catalog.get_free_plan().id, "usage": {"members": 7}},
            headers=auth_headers(member),
        )
        assert response.status_code == 200
        assert response.json()["is_valid"] is False

        response = client.post(
            "/api/plans/validate-usage",
            json={"team_id": team.id, "plan_id": catalog.get_free_plan().id, "usage": {"videos": 1}},
            headers=auth_headers(member),
        )
        assert response.status_code == 422


class TestQuotaAndCredits:

    def test_quota_check_at_limit(self, client: TestClient, member, auth_headers):
        response = client.post(
            "/api/quota/check",
            json={"resource": "content_reviews", "current_usage": 10},
            headers=auth_headers(member),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["allowed"] is False
        assert data["limit"] == 10
        assert "10" in data["reason"]

    def test_quota_check_below_limit(self, client: TestClient, member, auth_headers):
        data = client.post(
            "/api/quota/check",
            json={"resource": "brands", "current_usage": 0},
            headers=auth_headers(member),
        ).json()
        assert data == {"allowed": True, "reason": None, "limit": 1}

    def test_unknown_resource(self, client: TestClient, member, auth_headers):
        response = client.post(
            "/api/quota/check",
            json={"resource": "videos", "current_usage": 0},
            headers=auth_headers(member),
        )
        assert response.status_code == 422

    def test_consume_credits(self, client: TestClient, member, auth_headers):
        assert client.get("/api/teams/credits", headers=auth_headers(member)).json()["credits"]["content_plans"] == 5

        response = client.post(
            "/api/teams/credits/consume",
            json={"kind": "content_plans", "amount": 9},
            headers=auth_headers(member),
        )
        assert response.status_code == 200
        assert response.json()["credits"]["content_plans"] == 0
        assert response.json()["warning"] is None

    def test_consume_rejects_zero(self, client: TestClient, member, auth_headers):
        response = client.post(
            "/api/teams/credits/consume",
            json={"kind": "content_plans", "amount": 0},
            headers=auth_headers(member),
        )
        assert response.status_code == 422


class TestUsageSessionRoutes:

    def test_session_flow(self, client: TestClient, member, auth_headers):
        headers = auth_headers(member)

        started = client.post("/api/usage-session/start", headers=headers).json()
        assert started["state"] == "RUNNING"
        session_id = started["session_id"]

        assert client.post("/api/usage-session/heartbeat", headers=headers).status_code == 200

        paused = client.post("/api/usage-session/pause", json={"session_id": session_id}, headers=headers).json()
        assert paused["state"] == "PAUSED"

        resumed = client.post("/api/usage-session/resume", headers=headers).json()
        assert resumed["session_id"] == session_id
        assert resumed["state"] == "RUNNING"

        ended = client.post("/api/usage-session/end", headers=headers).json()
        assert ended["session_id"] == session_id
        assert ended["duration"] >= 0

    def test_heartbeat_without_session(self, client: TestClient, member, auth_headers):
        response = client.post("/api/usage-session/heartbeat", headers=auth_headers(member))
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_end_without_session(self, client: TestClient, member, auth_headers):
        data = client.post("/api/usage-session/end", headers=auth_headers(member)).json()
        assert data["session_id"] is None
        assert data["message"] == "No active session found"

    def test_admin_only_maintenance(self, client: TestClient, member, admin, auth_headers):
        assert client.post("/api/usage-session/cleanup", headers=auth_headers(member)).status_code == 403
        assert client.get("/api/usage-session/stats", headers=auth_headers(member)).status_code == 403

        cleanup = client.post("/api/usage-session/cleanup", headers=auth_headers(admin))
        assert cleanup.json()["cleaned_sessions"] == 0

        stats = client.get("/api/usage-session/stats", headers=auth_headers(admin)).json()
        assert stats["total_sessions"] == 0


class TestHealth:

    def test_healthy(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["database"] == "ok"

    def test_database_down(self, client: TestClient):
        broken = MagicMock()
        broken.connect.side_effect = OperationalError("SELECT 1", {}, Exception("down"))
        with patch("creator_subscriptions.db.engine.engine", broken):
            response = client.get("/health")
        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
