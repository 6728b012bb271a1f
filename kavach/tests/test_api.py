"""Tests for the FastAPI endpoints."""

import hashlib
import hmac
import json
from datetime import timedelta

import pytest

from kavach.api.auth import get_google_jwks_client
from kavach.api.scan import get_scan_engine
from kavach.api.server import app
from kavach.config import settings
from kavach.models.scan_log import ScanLog
from kavach.services.scan_engine import ScanDecisionEngine, ScanPolicy
from kavach.services.scan_log_service import ScanLogRepository
from kavach.services.user_service import UserRepository
from kavach.exceptions import StorageUnavailable


class TestHealthEndpoint:
    """Tests for /health and /status."""

    def test_health_returns_ok(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_status_reports_quota(self, client):
        response = client.get("/status")
        assert response.status_code == 200
        assert response.json()["scan_quota"]["per_day"] == settings.scan_quota_per_day

    def test_security_headers(self, client):
        response = client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert "X-Request-ID" in response.headers


class TestScanAuth:
    """Session token handling on /api/scan/link."""

    def test_missing_token_is_401(self, client):
        response = client.post("/api/scan/link", json={"url": "http://example.com"})
        assert response.status_code == 401
        assert "message" in response.json()

    def test_invalid_token_is_400(self, client):
        response = client.post(
            "/api/scan/link",
            json={"url": "http://example.com"},
            headers={"auth-token": "garbage"},
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid Token"


class TestScanLinkEndpoint:
    """Tests for POST /api/scan/link."""

    def test_free_user_basic_scan(self, client, make_user, auth_headers, sample_blacklisted_url):
        user = make_user()
        response = client.post("/api/scan/link", json={"url": sample_blacklisted_url}, headers=auth_headers(user))

        assert response.status_code == 200
        assert response.json() == {
            "url": sample_blacklisted_url,
            "status": "DANGEROUS",
            "message": "Link found in global blacklist.",
            "scanType": "BASIC",
        }

    def test_pro_user_deep_scan(self, client, make_user, auth_headers, sample_suspicious_url):
        user = make_user(is_pro=True)
        response = client.post("/api/scan/link", json={"url": sample_suspicious_url}, headers=auth_headers(user))

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "SUSPICIOUS"
        assert data["scanType"] == "DEEP"

    @pytest.mark.parametrize("body", [{}, {"url": ""}, {"url": "   "}])
    def test_missing_url_is_400(self, client, db_session, make_user, auth_headers, body):
        user = make_user()
        response = client.post("/api/scan/link", json=body, headers=auth_headers(user))

        assert response.status_code == 400
        assert response.json()["message"] == "URL is required"
        assert db_session.query(ScanLog).count() == 0

    def test_deleted_user_is_404(self, client, db_session, make_user, auth_headers):
        user = make_user()
        headers = auth_headers(user)
        UserRepository(db_session).delete(user)

        response = client.post("/api/scan/link", json={"url": "http://example.com"}, headers=headers)
        assert response.status_code == 404
        assert response.json()["message"] == "User not found"

    def test_quota_exceeded_is_429(self, client, db_session, make_user, auth_headers):
        user = make_user()
        headers = auth_headers(user)

        for _ in range(10):
            assert client.post("/api/scan/link", json={"url": "http://example.com"}, headers=headers).status_code == 200

        response = client.post("/api/scan/link", json={"url": "http://example.com"}, headers=headers)
        assert response.status_code == 429
        assert response.json() == {
            "message": "Daily scan limit reached. Upgrade to Pro for unlimited AI scans.",
            "upgradeRequired": True,
        }
        assert db_session.query(ScanLog).filter(ScanLog.user_id == user.id).count() == 10

    def test_quota_resets_next_day(self, client, make_user, auth_headers, clock):
        user = make_user()
        headers = auth_headers(user)
        for _ in range(10):
            client.post("/api/scan/link", json={"url": "http://example.com"}, headers=headers)

        clock.now = clock.now + timedelta(days=1)
        response = client.post("/api/scan/link", json={"url": "http://example.com"}, headers=headers)
        assert response.status_code == 200

    def test_append_failure_is_500(self, client, db_session, make_user, auth_headers, clock):
        class FailingAppendRepository(ScanLogRepository):
            def append(self, **kwargs):
                raise StorageUnavailable()

        app.dependency_overrides[get_scan_engine] = lambda: ScanDecisionEngine(
            UserRepository(db_session),
            FailingAppendRepository(db_session),
            ScanPolicy(day_boundary_timezone="UTC"),
            clock,
        )
        user = make_user()

        response = client.post("/api/scan/link", json={"url": "http://example.com"}, headers=auth_headers(user))

        assert response.status_code == 500
        assert response.json() == {"message": "Server error during scan"}


class TestScanHistoryAndQuota:

    def test_history_lists_own_scans(self, client, make_user, auth_headers):
        user, other = make_user(), make_user()
        client.post("/api/scan/link", json={"url": "http://a.example"}, headers=auth_headers(user))
        client.post("/api/scan/link", json={"url": "http://b.example"}, headers=auth_headers(other))

        response = client.get("/api/scan/history", headers=auth_headers(user))
        assert response.status_code == 200
        scans = response.json()["scans"]
        assert [s["url"] for s in scans] == ["http://a.example"]
        assert scans[0]["scanType"] == "BASIC"
        assert "createdAt" in scans[0]

    def test_history_timestamps_are_utc(self, client, make_user, auth_headers):
        user = make_user()
        headers = auth_headers(user)
        client.post("/api/scan/link", json={"url": "http://a.example"}, headers=headers)

        created_at = client.get("/api/scan/history", headers=headers).json()["scans"][0]["createdAt"]
        assert created_at.endswith(("Z", "+00:00"))
        assert created_at.startswith("2026-03-14T12:00:00")

    def test_quota_for_free_user(self, client, make_user, auth_headers):
        user = make_user()
        headers = auth_headers(user)
        for _ in range(3):
            client.post("/api/scan/link", json={"url": "http://example.com"}, headers=headers)

        response = client.get("/api/scan/quota", headers=headers)
        assert response.json() == {"isPro": False, "limit": 10, "used": 3, "remaining": 7}

    def test_quota_for_pro_user(self, client, make_user, auth_headers):
        response = client.get("/api/scan/quota", headers=auth_headers(make_user(is_pro=True)))
        data = response.json()
        assert data["isPro"] is True
        assert data["limit"] is None
        assert data["remaining"] is None


class TestAuthEndpoints:

    def test_register_then_login(self, client):
        response = client.post(
            "/api/auth/register",
            json={"name": "Asha", "email": "Asha@Example.com", "password": "s3cret-pass"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["token"]
        assert data["user"]["email"] == "asha@example.com"
        assert data["user"]["isPro"] is False

        response = client.post("/api/auth/login", json={"email": "asha@example.com", "password": "s3cret-pass"})
        assert response.status_code == 200
        token = response.json()["token"]

        response = client.post("/api/scan/link", json={"url": "http://example.com"}, headers={"auth-token": token})
        assert response.status_code == 200

    def test_duplicate_email(self, client):
        body = {"email": "dup@example.com", "password": "s3cret-pass"}
        assert client.post("/api/auth/register", json=body).status_code == 200
        response = client.post("/api/auth/register", json=body)
        assert response.status_code == 400
        assert response.json()["message"] == "Email already exists"

    def test_wrong_password(self, client):
        client.post("/api/auth/register", json={"email": "x@example.com", "password": "s3cret-pass"})
        response = client.post("/api/auth/login", json={"email": "x@example.com", "password": "nope-nope"})
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid credentials"

    def test_short_password_rejected(self, client):
        response = client.post("/api/auth/register", json={"email": "y@example.com", "password": "123"})
        assert response.status_code == 400
        assert "password" in response.json()["message"]


class TestGoogleLogin:

    @pytest.fixture(autouse=True)
    def static_google_keys(self, client, google_jwks_client):
        app.dependency_overrides[get_google_jwks_client] = lambda: google_jwks_client

    def test_first_login_creates_verified_user(self, client, db_session, google_id_token):
        response = client.post("/api/auth/google-login", json={"idToken": google_id_token()})
        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Google Login Successful!"
        assert data["user"]["email"] == "g.user@example.com"
        assert data["user"]["isEmailVerified"] is True

        user = UserRepository(db_session).find_by_email("g.user@example.com")
        assert user.password_hash is None
        assert user.google_id == "google-sub-123"
        assert user.avatar == "https://example.com/avatar.png"

        scan = client.post("/api/scan/link", json={"url": "http://example.com"}, headers={"auth-token": data["token"]})
        assert scan.status_code == 200

    def test_existing_email_links_account(self, client, db_session, make_user, google_id_token):
        user = make_user(email="g.user@example.com")
        response = client.post("/api/auth/google-login", json={"idToken": google_id_token()})
        assert response.status_code == 200
        assert response.json()["user"]["id"] == user.id
        db_session.expire_all()
        assert UserRepository(db_session).find_by_id(user.id).google_id == "google-sub-123"

    def test_password_login_points_to_google(self, client, google_id_token):
        client.post("/api/auth/google-login", json={"idToken": google_id_token()})
        response = client.post("/api/auth/login", json={"email": "g.user@example.com", "password": "anything"})
        assert response.status_code == 400
        assert response.json()["message"] == "This account was created with Google. Please login with Google."

    def test_wrong_audience_is_401(self, client, google_id_token):
        token = google_id_token(aud="someone-else.apps.googleusercontent.com")
        response = client.post("/api/auth/google-login", json={"idToken": token})
        assert response.status_code == 401
        assert response.json() == {"message": "Invalid Google Token"}

    def test_missing_id_token_is_400(self, client):
        response = client.post("/api/auth/google-login", json={})
        assert response.status_code == 400
        assert response.json() == {"message": "No ID Token provided"}


class TestUserEndpoints:

    def test_profile_roundtrip(self, client, make_user, auth_headers):
        user = make_user()
        headers = auth_headers(user)

        response = client.put("/api/user/profile", json={"phone": "+91 99999 00000", "name": ""}, headers=headers)
        assert response.status_code == 200
        assert response.json()["user"]["phone"] == "+91 99999 00000"
        assert response.json()["user"]["name"] == user.name

        profile = client.get("/api/user/profile", headers=headers).json()
        assert profile["phone"] == "+91 99999 00000"
        assert profile["isPro"] is False

    def test_cancel_requires_pro(self, client, make_user, auth_headers):
        response = client.post("/api/user/subscription/cancel", headers=auth_headers(make_user()))
        assert response.status_code == 400

    def test_cancel_keeps_pro_until_period_end(self, client, make_user, auth_headers):
        user = make_user(is_pro=True, subscription_status="active")
        headers = auth_headers(user)

        assert client.post("/api/user/subscription/cancel", headers=headers).status_code == 200
        info = client.get("/api/user/subscription", headers=headers).json()
        assert info["status"] == "cancelled"
        assert info["isPro"] is True

    def test_payment_history_total(self, client, make_user, auth_headers):
        user = make_user(payment_history=[{"paymentId": "p1", "amount": 100}, {"paymentId": "p2", "amount": 99.5}])
        data = client.get("/api/user/payment-history", headers=auth_headers(user)).json()
        assert data["totalSpent"] == 199.5
        assert len(data["payments"]) == 2

    def test_invoice_for_known_payment(self, client, make_user, auth_headers):
        history = [{"paymentId": "pay_1", "orderId": "order_1", "plan": "pro", "amount": 199,
                    "status": "captured", "date": "2026-03-01T10:00:00+00:00"}]
        user = make_user(name="Asha", email="asha@example.com", payment_history=history)

        response = client.get("/api/user/invoice/pay_1", headers=auth_headers(user))
        assert response.status_code == 200
        assert response.json() == {
            "invoiceNumber": "INV-pay_1",
            "date": "2026-03-01T10:00:00+00:00",
            "customerName": "Asha",
            "customerEmail": "asha@example.com",
            "plan": "pro",
            "amount": 199,
            "paymentId": "pay_1",
            "orderId": "order_1",
            "status": "captured",
        }

    def test_invoice_for_unknown_payment_is_404(self, client, make_user, auth_headers):
        user = make_user(payment_history=[{"paymentId": "pay_1", "amount": 199}])
        response = client.get("/api/user/invoice/pay_2", headers=auth_headers(user))
        assert response.status_code == 404
        assert response.json() == {"message": "Invoice not found"}

    def test_change_password(self, client, auth_headers):
        client.post("/api/auth/register", json={"email": "c@example.com", "password": "old-password"})
        token = client.post("/api/auth/login", json={"email": "c@example.com", "password": "old-password"}).json()["token"]
        headers = {"auth-token": token}

        bad = client.post(
            "/api/user/change-password",
            json={"currentPassword": "wrong-one", "newPassword": "new-password"},
            headers=headers,
        )
        assert bad.status_code == 400

        ok = client.post(
            "/api/user/change-password",
            json={"currentPassword": "old-password", "newPassword": "new-password"},
            headers=headers,
        )
        assert ok.status_code == 200
        assert client.post("/api/auth/login", json={"email": "c@example.com", "password": "new-password"}).status_code == 200

    def test_delete_account_keeps_scan_logs(self, client, db_session, make_user, auth_headers):
        user = make_user()
        headers = auth_headers(user)
        client.post("/api/scan/link", json={"url": "http://example.com"}, headers=headers)

        assert client.delete("/api/user/account", headers=headers).status_code == 200
        assert client.get("/api/user/profile", headers=headers).status_code == 404
        assert db_session.query(ScanLog).filter(ScanLog.user_id == user.id).count() == 1


class TestPaymentEndpoints:

    def sign(self, message: bytes) -> str:
        return hmac.new(settings.payment_key_secret.encode(), message, hashlib.sha256).hexdigest()

    def test_verify_upgrades_user(self, client, make_user, auth_headers):
        user = make_user()
        headers = auth_headers(user)
        body = {
            "razorpay_order_id": "order_1",
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": self.sign(b"order_1|pay_1"),
            "amount": 199,
        }

        response = client.post("/api/payment/verify", json=body, headers=headers)
        assert response.status_code == 200

        scan = client.post("/api/scan/link", json={"url": "http://example.com"}, headers=headers).json()
        assert scan["scanType"] == "DEEP"

    def test_verify_bad_signature(self, client, make_user, auth_headers):
        body = {"razorpay_order_id": "order_1", "razorpay_payment_id": "pay_1", "razorpay_signature": "bad"}
        response = client.post("/api/payment/verify", json=body, headers=auth_headers(make_user()))
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid signature sent!"

    def test_verify_missing_fields(self, client, make_user, auth_headers):
        response = client.post("/api/payment/verify", json={}, headers=auth_headers(make_user()))
        assert response.status_code == 400

    def test_webhook_refund(self, client, db_session, make_user):
        user = make_user(is_pro=True, subscription_status="active")
        body = json.dumps({
            "event": "refund.processed",
            "payload": {"payment": {"entity": {"id": "pay_1", "notes": {"userId": user.id}}}},
        }).encode()

        response = client.post(
            "/api/payment/webhook",
            content=body,
            headers={settings.payment_webhook_header: self.sign(body), "Content-Type": "application/json"},
        )
        assert response.status_code == 200
        db_session.expire_all()
        assert UserRepository(db_session).find_by_id(user.id).is_pro is False

    def test_webhook_bad_signature(self, client):
        response = client.post(
            "/api/payment/webhook",
            content=b'{"event": "payment.captured"}',
            headers={settings.payment_webhook_header: "bad"},
        )
        assert response.status_code == 400

    def test_webhook_handler_error_is_logged_not_500(self, client, make_user):
        user = make_user()
        body = json.dumps({
            "event": "payment.captured",
            "payload": {"payment": {"entity": {"id": "pay_9", "order_id": "order_9", "amount": "abc",
                                               "notes": {"userId": user.id}}}},
        }).encode()

        response = client.post(
            "/api/payment/webhook",
            content=body,
            headers={settings.payment_webhook_header: self.sign(body), "Content-Type": "application/json"},
        )
        assert response.status_code == 200
        assert response.json() == {"status": "error_logged"}
