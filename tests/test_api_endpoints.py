"""
Tests for API endpoints
"""

import inspect

import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

from academy.api.v1.routes import scheduler as scheduler_routes
from academy.api.v1.routes import subscriptions as subscription_routes
from academy.core.config import settings
from academy.models.audit_log import AuditLog
from academy.models.subscription import SubscriptionStatus, UserSubscription
from academy.services.email_service import EmailService
from academy.services.payment_service import PaymentOutcome, PaymentResult
from academy.services.scheduler_service import SchedulerService


@pytest.fixture
def scheduler_override(client, mock_cache):
    """Scheduler with a mocked mailer and lock, wired into the app"""
    email = MagicMock(spec=EmailService)
    email.send_expiration_reminder.return_value = True
    service = SchedulerService(email_service=email, cache=mock_cache)
    client.app.dependency_overrides[scheduler_routes.get_scheduler_service] = lambda: service
    return service


@pytest.fixture
def payment_override(client):
    """Payment service that always starts a pending Stripe payment"""
    payments = MagicMock()
    payments.process_payment = AsyncMock(return_value=PaymentResult(
        success=True, status=PaymentOutcome.PENDING, provider="stripe",
        reference="pi_123", client_secret="pi_123_secret",
    ))
    client.app.dependency_overrides[subscription_routes.get_payment_service] = lambda: payments
    return payments


class TestHealthEndpoint:
    """Test health check endpoint"""

    def test_health_check(self, client):
        """Test health check returns 200"""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestAuthEndpoints:
    """Signup, signin and session cookie handling"""

    def test_signup_sets_cookie_and_free_plan(self, client, db_session):
        response = client.post("/api/v1/auth/signup", json={
            "email": "New.Trader@Example.com", "password": "long-enough-password", "first_name": "New",
        })

        assert response.status_code == 201
        assert response.json()["user"]["email"] == "new.trader@example.com"
        assert "auth_token" in response.cookies

        current = client.get("/api/v1/subscriptions/current")
        assert current.status_code == 200
        assert current.json()["plan"]["name"] == "free"
        assert current.json()["status"] == "active"

    def test_signup_duplicate_email(self, client, make_user):
        make_user(email="taken@example.com")

        response = client.post("/api/v1/auth/signup", json={"email": "taken@example.com", "password": "long-enough-password"})

        assert response.status_code == 400

    def test_signup_short_password(self, client, db_session):
        response = client.post("/api/v1/auth/signup", json={"email": "a@example.com", "password": "short"})

        assert response.status_code == 400

    def test_signin_and_me(self, client, make_user):
        make_user(email="alice@example.com", password="correct-horse-battery")

        signin = client.post("/api/v1/auth/signin", json={"email": "alice@example.com", "password": "correct-horse-battery"})
        me = client.get("/api/v1/auth/me")

        assert signin.status_code == 200
        assert me.status_code == 200
        assert me.json()["user"]["email"] == "alice@example.com"

    def test_signin_wrong_password(self, client, make_user):
        make_user(email="alice@example.com")

        response = client.post("/api/v1/auth/signin", json={"email": "alice@example.com", "password": "wrong-password"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid credentials"

    def test_signin_deactivated_account(self, client, make_user):
        make_user(email="gone@example.com", password="correct-horse-battery", is_active=False)

        response = client.post("/api/v1/auth/signin", json={"email": "gone@example.com", "password": "correct-horse-battery"})

        assert response.status_code == 403

    def test_me_requires_session(self, client):
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_invalid_token_rejected(self, client):
        client.cookies.set("auth_token", "not-a-jwt")

        assert client.get("/api/v1/auth/me").status_code == 401

    def test_legacy_cookie_name_accepted(self, client, make_user):
        from academy.core.security import create_access_token
        user = make_user()
        client.cookies.set("auth-token", create_access_token(user.id, user.email))

        assert client.get("/api/v1/auth/me").status_code == 200

    def test_signout_clears_cookie(self, client, make_user, login):
        login(make_user())

        response = client.post("/api/v1/auth/signout")

        assert response.status_code == 200
        assert client.get("/api/v1/auth/me").status_code == 401


class TestSubscriptionEndpoints:
    """Plans, checkout, cancellation and history"""

    def test_plans_are_public(self, client, plans):
        response = client.get("/api/v1/subscriptions/plans")

        assert response.status_code == 200
        names = {p["name"] for p in response.json()["plans"]}
        assert {"free", "basic", "pro", "elite"} <= names

    def test_checkout_creates_pending_subscription(self, client, db_session, plans, make_user, login, payment_override):
        user = make_user()
        login(user)

        response = client.post("/api/v1/subscriptions/checkout", json={"plan_name": "pro", "payment_method": "stripe"})

        assert response.status_code == 200
        body = response.json()
        assert body["subscription"]["status"] == "pending"
        assert body["payment"]["client_secret"] == "pi_123_secret"
        request = payment_override.process_payment.call_args.args[0]
        assert str(request.amount) == "24.99"
        assert request.subscription_id == body["subscription"]["id"]

    def test_checkout_free_plan_rejected(self, client, plans, make_user, login, payment_override):
        login(make_user())

        response = client.post("/api/v1/subscriptions/checkout", json={"plan_name": "free", "payment_method": "stripe"})

        assert response.status_code == 400
        payment_override.process_payment.assert_not_called()

    def test_failed_payment_start_marks_subscription_failed(
        self, client, db_session, plans, make_user, login, payment_override
    ):
        user = make_user()
        login(user)
        payment_override.process_payment.return_value = PaymentResult(
            success=False, status=PaymentOutcome.FAILED, error="Phone number is required for mobile money payments",
        )

        response = client.post("/api/v1/subscriptions/checkout", json={"plan_name": "basic", "payment_method": "mobile_money"})

        assert response.status_code == 400
        db_session.expire_all()
        subscription = db_session.query(UserSubscription).filter(UserSubscription.user_id == user.id).one()
        assert subscription.status == SubscriptionStatus.FAILED

    @pytest.mark.parametrize("previous", [SubscriptionStatus.FAILED, SubscriptionStatus.CANCELLED])
    def test_activate_retry_reports_provider_decline(
        self, client, db_session, plans, make_user, make_subscription, login, payment_override, previous
    ):
        user = make_user()
        subscription = make_subscription(user, plans["pro"], status=previous, payment_method="stripe")
        login(user)
        payment_override.process_payment.return_value = PaymentResult(
            success=False, status=PaymentOutcome.FAILED, provider="stripe", error="Card declined",
        )

        response = client.post("/api/v1/subscriptions/activate", json={})

        assert response.status_code == 400
        assert response.json()["detail"] == "Card declined"
        db_session.expire_all()
        assert db_session.get(UserSubscription, subscription.id).status == SubscriptionStatus.FAILED

    def test_activate_retry_reopens_failed_subscription(
        self, client, db_session, plans, make_user, make_subscription, login, payment_override
    ):
        user = make_user()
        subscription = make_subscription(user, plans["pro"], status=SubscriptionStatus.FAILED, payment_method="stripe")
        login(user)

        response = client.post("/api/v1/subscriptions/activate", json={"payment_method": "crypto"})

        assert response.status_code == 200
        assert response.json()["subscription"]["status"] == "pending"
        db_session.expire_all()
        assert db_session.get(UserSubscription, subscription.id).payment_method == "crypto"

    def test_cancel_paid_subscription(self, client, db_session, plans, make_user, make_subscription, login):
        user = make_user()
        subscription = make_subscription(user, plans["pro"], period_end=datetime.utcnow() + timedelta(days=10))
        login(user)

        response = client.post("/api/v1/subscriptions/cancel")

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        history = client.get("/api/v1/subscriptions/history").json()["history"]
        assert history[0]["action_type"] == "cancellation"
        assert history[0]["subscription_id"] == subscription.id

    def test_cancel_free_plan_rejected(self, client, plans, make_user, make_subscription, login):
        user = make_user()
        make_subscription(user, plans["free"], period_end=datetime.utcnow() + timedelta(days=300))
        login(user)

        assert client.post("/api/v1/subscriptions/cancel").status_code == 400

    def test_current_without_subscription_is_404(self, client, make_user, login):
        login(make_user())

        assert client.get("/api/v1/subscriptions/current").status_code == 404


class TestSchedulerEndpoints:
    """Cron and manual scheduler triggers"""

    def test_manual_run_requires_api_key(self, client, scheduler_override):
        assert client.post("/api/v1/scheduler/run").status_code == 401
        assert client.post("/api/v1/scheduler/run", headers={"x-api-key": "wrong"}).status_code == 401

    def test_manual_run_with_api_key(self, client, plans, make_user, make_subscription, scheduler_override):
        make_subscription(make_user(), plans["pro"], period_end=datetime.utcnow() - timedelta(days=1))

        response = client.post("/api/v1/scheduler/run", headers={"x-api-key": "test-scheduler-api-key"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["results"]["expired"] == 1

    def test_scheduler_status_is_open(self, client):
        assert client.get("/api/v1/scheduler/run").json()["success"] is True

    def test_cron_post_uses_cron_key(self, client, plans, scheduler_override):
        assert client.post("/api/v1/cron/subscription-check",
                           headers={"x-api-key": "test-scheduler-api-key"}).status_code == 401
        assert client.post("/api/v1/cron/subscription-check",
                           headers={"x-api-key": "test-cron-api-key"}).status_code == 200

    def test_cron_get_open_outside_production(self, client, plans, scheduler_override):
        assert client.get("/api/v1/cron/subscription-check").status_code == 200

    def test_cron_get_in_production(self, client, plans, scheduler_override, monkeypatch):
        monkeypatch.setattr(settings, "environment", "production")

        anonymous = client.get("/api/v1/cron/subscription-check")
        cron_agent = client.get("/api/v1/cron/subscription-check", headers={"user-agent": "cron-job.org"})
        with_secret = client.get("/api/v1/cron/subscription-check", headers={"x-cron-secret": "test-cron-secret"})

        assert anonymous.status_code == 401
        assert cron_agent.status_code == 200
        assert with_secret.status_code == 200

    @pytest.mark.parametrize("handler", [
        scheduler_routes.cron_subscription_check,
        scheduler_routes.cron_subscription_check_manual,
        scheduler_routes.run_scheduler,
    ])
    def test_scan_handlers_run_off_the_event_loop(self, handler):
        assert not inspect.iscoroutinefunction(handler)

    def test_locked_run_reports_skip(self, client, plans, scheduler_override, mock_cache):
        mock_cache.acquire_lock.return_value = None

        response = client.post("/api/v1/scheduler/run", headers={"x-api-key": "test-scheduler-api-key"})

        assert response.status_code == 200
        assert response.json()["results"]["skipped"] is True


class TestAdminEndpoints:
    """Admin-only routes"""

    def test_member_gets_403(self, client, make_user, login):
        login(make_user())

        assert client.get("/api/v1/admin/subscriptions").status_code == 403

    def test_anonymous_gets_401(self, client):
        assert client.get("/api/v1/admin/subscriptions").status_code == 401

    def test_overview(self, client, plans, make_user, make_subscription, login):
        make_subscription(make_user(), plans["pro"], period_end=datetime.utcnow() + timedelta(days=10))
        login(make_user(is_admin=True))

        response = client.get("/api/v1/admin/subscriptions")

        assert response.status_code == 200
        assert len(response.json()["subscriptions"]) == 1

    def test_status_override_writes_audit_log(self, client, db_session, plans, make_user, make_subscription, login):
        subscription = make_subscription(make_user(), plans["pro"], period_end=datetime.utcnow() + timedelta(days=10))
        admin = make_user(is_admin=True)
        login(admin)

        response = client.patch(f"/api/v1/admin/subscriptions/{subscription.id}", json={"status": "cancelled"})

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        db_session.expire_all()
        audit = db_session.query(AuditLog).one()
        assert audit.user_id == admin.id
        assert audit.resource_id == subscription.id

    def test_status_override_rejects_illegal_move(self, client, plans, make_user, make_subscription, login):
        subscription = make_subscription(make_user(), plans["pro"], status=SubscriptionStatus.EXPIRED,
                                         period_end=datetime.utcnow() - timedelta(days=1))
        login(make_user(is_admin=True))

        response = client.patch(f"/api/v1/admin/subscriptions/{subscription.id}", json={"status": "failed"})

        assert response.status_code == 400

    def test_status_override_unknown_subscription(self, client, make_user, login):
        login(make_user(is_admin=True))

        response = client.patch("/api/v1/admin/subscriptions/missing", json={"status": "active"})

        assert response.status_code == 404

    def test_add_free_plan_is_idempotent(self, client, db_session, make_user, login):
        login(make_user(is_admin=True))

        first = client.post("/api/v1/admin/subscription-plans/free")
        second = client.post("/api/v1/admin/subscription-plans/free")

        assert first.json()["created"] is True
        assert second.json()["created"] is False
