"""
API route tests with the service layer mocked out.
Covers status codes, role gating and error mapping; no database needed.
"""
import pytest
import stripe
from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError
from portall.api.main import app
from portall.api.routes import to_http_exception
from portall.database.db import get_db_session
from portall.services import (
    auth_service,
    user_service,
    player_service,
    coach_service,
    njcaa_coach_service,
    subscription_service,
    stripe_service,
    webhook_service,
    admin_service,
    email_service,
)
from portall.services.errors import ConflictError, NotFoundError, PermissionDeniedError


# ============================================================================
# Helpers
# ============================================================================

def make_client_with_auth(monkeypatch, user_type="coach", user_id=1, is_active=True):
    """Authenticated test client for a user of the given role."""
    def fake_verify_token(token, expected_type=auth_service.TOKEN_TYPE_ACCESS):
        return {"user_id": user_id, "email": "test@example.com", "user_type": user_type}

    async def fake_get_user_by_id(session, uid):
        return {
            "id": user_id,
            "email": "test@example.com",
            "first_name": "Test",
            "last_name": "User",
            "full_name": "Test User",
            "user_type": user_type,
            "is_active": is_active,
            "is_email_verified": False,
            "created_at": "2025-01-01T00:00:00+00:00",
        }

    monkeypatch.setattr(auth_service, "verify_token", fake_verify_token, raising=True)
    monkeypatch.setattr(user_service, "get_user_by_id", fake_get_user_by_id, raising=True)
    return TestClient(app), {"Authorization": "Bearer dummy"}


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture outgoing emails instead of calling SendGrid."""
    sent = []

    def recorder(name):
        def send(*args, **kwargs):
            sent.append((name, args))
            return True
        return send

    for name in (
        "send_welcome_email",
        "send_new_registration_notification",
        "send_account_approved_email",
        "send_account_rejected_email",
        "send_password_reset_email",
    ):
        monkeypatch.setattr(email_service, name, recorder(name), raising=True)
    return sent


REGISTER_PAYLOAD = {
    "email": "player@example.com",
    "password": "Password123",
    "confirm_password": "Password123",
    "first_name": "Pat",
    "last_name": "Kicker",
    "user_type": "player",
    "gender": "male",
    "college_id": 1,
}


# ============================================================================
# Health / auth
# ============================================================================

def test_health_check():
    response = TestClient(app).get("/api/health")
    assert response.status_code == 200
    assert response.json()["service"] == "portall-api"


class TestAuthEndpoints:
    def test_register_success_sends_emails(self, monkeypatch, sent_emails):
        async def fake_register_user(session, **kwargs):
            return {"id": 5, "email": kwargs["email"], "first_name": "Pat", "user_type": "player", "is_active": False}

        monkeypatch.setattr(user_service, "register_user", fake_register_user, raising=True)
        response = TestClient(app).post("/api/auth/register", json=REGISTER_PAYLOAD)

        assert response.status_code == 201
        assert response.json()["data"]["user"]["is_active"] is False
        assert [name for name, _ in sent_emails] == ["send_welcome_email", "send_new_registration_notification"]

    def test_register_duplicate_email(self, monkeypatch, sent_emails):
        async def fake_register_user(session, **kwargs):
            raise ConflictError("An account with this email already exists")

        monkeypatch.setattr(user_service, "register_user", fake_register_user, raising=True)
        response = TestClient(app).post("/api/auth/register", json=REGISTER_PAYLOAD)

        assert response.status_code == 409
        assert sent_emails == []

    def test_register_admin_rejected_by_validation(self):
        response = TestClient(app).post("/api/auth/register", json={**REGISTER_PAYLOAD, "user_type": "admin"})
        assert response.status_code == 422

    def test_login_unknown_user(self, monkeypatch):
        async def fake_get_user_by_email(session, email):
            return None

        monkeypatch.setattr(user_service, "get_user_by_email", fake_get_user_by_email, raising=True)
        response = TestClient(app).post("/api/auth/login", json={"email": "x@example.com", "password": "Password123"})
        assert response.status_code == 401

    def test_login_pending_account(self, monkeypatch):
        class FakeUser:
            id = 3
            is_active = False
            password_hash = auth_service.hash_password("Password123")

        async def fake_get_user_by_email(session, email):
            return FakeUser()

        monkeypatch.setattr(user_service, "get_user_by_email", fake_get_user_by_email, raising=True)
        response = TestClient(app).post("/api/auth/login", json={"email": "p@example.com", "password": "Password123"})
        assert response.status_code == 403

    def test_login_success_returns_tokens(self, monkeypatch):
        class FakeUser:
            id = 3
            is_active = True
            password_hash = auth_service.hash_password("Password123")

        async def fake_get_user_by_email(session, email):
            return FakeUser()

        async def fake_update_last_login(session, user_id):
            return None

        async def fake_get_user_by_id(session, user_id):
            return {"id": 3, "email": "p@example.com", "user_type": "player", "is_active": True}

        monkeypatch.setattr(user_service, "get_user_by_email", fake_get_user_by_email, raising=True)
        monkeypatch.setattr(user_service, "update_last_login", fake_update_last_login, raising=True)
        monkeypatch.setattr(user_service, "get_user_by_id", fake_get_user_by_id, raising=True)

        response = TestClient(app).post("/api/auth/login", json={"email": "p@example.com", "password": "Password123"})
        assert response.status_code == 200
        body = response.json()
        assert auth_service.verify_token(body["access_token"])["user_id"] == 3
        assert auth_service.verify_token(body["refresh_token"], expected_type="refresh")["user_id"] == 3

    def test_forgot_password_same_answer_for_unknown_email(self, monkeypatch, sent_emails):
        async def fake_get_user_by_email(session, email):
            return None

        monkeypatch.setattr(user_service, "get_user_by_email", fake_get_user_by_email, raising=True)
        response = TestClient(app).post("/api/auth/forgot-password", json={"email": "nobody@example.com"})

        assert response.status_code == 200
        assert "If an account exists" in response.json()["message"]
        assert sent_emails == []

    def test_me_requires_token(self):
        response = TestClient(app).get("/api/auth/me")
        assert response.status_code in (401, 403)

    def test_me_returns_current_user(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="player")
        response = client.get("/api/auth/me", headers=headers)
        assert response.status_code == 200
        assert response.json()["user_type"] == "player"


# ============================================================================
# Role gating
# ============================================================================

class TestRoleGating:
    def test_pending_account_is_blocked(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="coach", is_active=False)
        response = client.get("/api/coaches/dashboard", headers=headers)
        assert response.status_code == 403
        assert response.json()["detail"] == "Account pending approval"

    def test_player_cannot_use_coach_routes(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="player")
        assert client.get("/api/coaches/favorites", headers=headers).status_code == 403
        assert client.get("/api/players/search", headers=headers).status_code == 403

    def test_coach_cannot_use_admin_routes(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="coach")
        assert client.get("/api/admin/dashboard", headers=headers).status_code == 403

    def test_njcaa_coach_cannot_subscribe(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="njcaa_coach")
        response = client.post(
            "/api/subscriptions/create", json={"plan_id": 1, "payment_method_id": "pm_card_visa"}, headers=headers
        )
        assert response.status_code == 403


# ============================================================================
# Players / coaches / NJCAA coaches
# ============================================================================

class TestRecruitingEndpoints:
    def test_search_passes_filters(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="coach")
        captured = {}

        async def fake_find(session, **kwargs):
            captured.update(kwargs)
            return {"players": [], "total": 0}

        monkeypatch.setattr(player_service, "find_visible_profiles", fake_find, raising=True)
        response = client.get("/api/players/search?state=TX&gender=female&limit=5", headers=headers)

        assert response.status_code == 200
        assert response.json()["limit"] == 5
        assert captured["state"] == "TX"
        assert captured["gender"].value == "female"

    def test_private_profile_is_forbidden(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="coach")

        async def fake_get(session, player_id, viewer):
            raise PermissionDeniedError("This player profile is private")

        monkeypatch.setattr(player_service, "get_player_profile_for_viewer", fake_get, raising=True)
        assert client.get("/api/players/7/profile", headers=headers).status_code == 403

    def test_profile_update_only_sends_present_fields(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="player")
        captured = {}

        async def fake_update(session, user_id, changes):
            captured.update(changes)
            return {"id": 1, **changes}

        monkeypatch.setattr(player_service, "update_profile", fake_update, raising=True)
        response = client.put("/api/players/profile", json={"height": 181}, headers=headers)

        assert response.status_code == 200
        assert captured == {"height": 181}

    def test_profile_update_out_of_range(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="player")
        assert client.put("/api/players/profile", json={"height": 250}, headers=headers).status_code == 422

    def test_duplicate_favorite_conflict(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="coach")

        async def fake_add(session, user_id, player_id, **kwargs):
            raise ConflictError("Player already in favorites")

        monkeypatch.setattr(coach_service, "add_favorite", fake_add, raising=True)
        response = client.post("/api/coaches/favorites/3", json={"priority_level": "high"}, headers=headers)
        assert response.status_code == 409

    def test_remove_missing_favorite(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="coach")

        async def fake_remove(session, user_id, player_id):
            raise NotFoundError("Player not found in favorites")

        monkeypatch.setattr(coach_service, "remove_favorite", fake_remove, raising=True)
        assert client.delete("/api/coaches/favorites/3", headers=headers).status_code == 404

    def test_evaluation_created(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="njcaa_coach")

        async def fake_evaluate(session, user_id, player_id, data):
            return {"evaluation": {"evaluation_version": 1}, "player": {"id": player_id}, "is_update": False}

        monkeypatch.setattr(njcaa_coach_service, "evaluate_player", fake_evaluate, raising=True)
        payload = {
            "available_to_transfer": True,
            "expected_graduation_date": 2026,
            "role_in_team": "Starter",
            "performance_level": "High",
            "player_strengths": "Pace and first touch",
            "improvement_areas": "Aerial duels in the box",
            "mentality": "Competitive and focused",
            "coachability": "Takes feedback well",
            "technique": "Clean passing under pressure",
            "physique": "Quick with good stamina",
            "coach_final_comment": "Ready to contribute at the next level.",
        }
        response = client.post("/api/njcaa-coaches/players/4/evaluation", json=payload, headers=headers)

        assert response.status_code == 201
        assert response.json()["message"] == "Evaluation created"

    def test_evaluation_of_other_college_forbidden(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="njcaa_coach")

        async def fake_get(session, user_id, player_id):
            raise PermissionDeniedError("Coach and player are not from the same college")

        monkeypatch.setattr(njcaa_coach_service, "get_player_evaluation", fake_get, raising=True)
        assert client.get("/api/njcaa-coaches/players/4/evaluation", headers=headers).status_code == 403


# ============================================================================
# Reference data
# ============================================================================

def test_invalid_division_is_bad_request():
    response = TestClient(app).get("/api/reference/ncaa-colleges/division_9")
    assert response.status_code == 400
    assert "Valid divisions" in response.json()["detail"]


# ============================================================================
# Subscriptions
# ============================================================================

class TestSubscriptionEndpoints:
    BODY = {"plan_id": 1, "payment_method_id": "pm_card_visa"}

    def _patch_create(self, monkeypatch, result=None, error=None):
        async def fake_create(session, user_id, plan_id, payment_method_id):
            if error is not None:
                raise error
            return result

        monkeypatch.setattr(subscription_service, "create_subscription", fake_create, raising=True)

    def test_success(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="coach")
        self._patch_create(monkeypatch, {
            "subscription": {"status": "active"},
            "payment": {"status": "succeeded"},
            "requires_action": False,
        })
        response = client.post("/api/subscriptions/create", json=self.BODY, headers=headers)
        assert response.status_code == 201
        assert response.json()["data"]["subscription"]["status"] == "active"

    def test_declined_card_is_402(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="player")
        self._patch_create(monkeypatch, {
            "subscription": {"status": "expired"},
            "payment": {"status": "failed", "failure_message": "Your card was declined."},
            "requires_action": False,
        })
        response = client.post("/api/subscriptions/create", json=self.BODY, headers=headers)
        assert response.status_code == 402
        assert response.json()["message"] == "Your card was declined."

    def test_requires_action_is_202(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="coach")
        self._patch_create(monkeypatch, {
            "subscription": {"status": "pending"},
            "payment": {"status": "requires_action", "client_secret": "pi_secret"},
            "requires_action": True,
        })
        response = client.post("/api/subscriptions/create", json=self.BODY, headers=headers)
        assert response.status_code == 202
        assert response.json()["data"]["payment"]["client_secret"] == "pi_secret"

    def test_existing_subscription_conflict(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="coach")
        self._patch_create(monkeypatch, error=ConflictError("User already has an active or pending subscription"))
        assert client.post("/api/subscriptions/create", json=self.BODY, headers=headers).status_code == 409

    def test_processor_error_is_502(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="coach")
        self._patch_create(monkeypatch, error=stripe.APIConnectionError("network down"))
        assert client.post("/api/subscriptions/create", json=self.BODY, headers=headers).status_code == 502

    def test_bad_payment_method_is_422(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="coach")
        body = {"plan_id": 1, "payment_method_id": "tok_visa"}
        assert client.post("/api/subscriptions/create", json=body, headers=headers).status_code == 422

    def test_my_subscription_none(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="coach")

        async def fake_get(session, user_id):
            return None

        monkeypatch.setattr(subscription_service, "get_my_subscription", fake_get, raising=True)
        response = client.get("/api/subscriptions/my-subscription", headers=headers)
        assert response.status_code == 200
        assert response.json()["data"] is None

    def test_cancel_without_subscription(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="coach")

        async def fake_cancel(session, user_id):
            raise NotFoundError("No active subscription to cancel")

        monkeypatch.setattr(subscription_service, "cancel_subscription", fake_cancel, raising=True)
        assert client.post("/api/subscriptions/cancel", headers=headers).status_code == 404


# ============================================================================
# Webhooks
# ============================================================================

class TestWebhookEndpoint:
    def test_missing_signature(self):
        response = TestClient(app).post("/api/webhooks/stripe", content=b"{}")
        assert response.status_code == 400

    def test_invalid_signature(self, monkeypatch):
        def fake_construct(payload, signature):
            raise stripe.SignatureVerificationError("bad signature", signature)

        monkeypatch.setattr(stripe_service, "construct_event", fake_construct, raising=True)
        response = TestClient(app).post(
            "/api/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "t=1,v1=bad"}
        )
        assert response.status_code == 400

    def test_event_processed(self, monkeypatch):
        event = {"id": "evt_1", "type": "invoice.payment_succeeded", "data": {"object": {}}}
        monkeypatch.setattr(stripe_service, "construct_event", lambda payload, signature: event, raising=True)

        async def fake_process(session, received):
            assert received is event
            return {"received": True, "event_id": "evt_1", "event_type": received["type"], "result": {"action": "x"}}

        monkeypatch.setattr(webhook_service, "process_event", fake_process, raising=True)
        response = TestClient(app).post(
            "/api/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "t=1,v1=ok"}
        )
        assert response.status_code == 200
        assert response.json()["received"] is True

    def test_processing_failure_is_500_so_stripe_retries(self, monkeypatch):
        event = {"id": "evt_2", "type": "invoice.payment_failed", "data": {"object": {}}}
        monkeypatch.setattr(stripe_service, "construct_event", lambda payload, signature: event, raising=True)

        async def fake_process(session, received):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(webhook_service, "process_event", fake_process, raising=True)
        response = TestClient(app).post(
            "/api/webhooks/stripe", content=b"{}", headers={"Stripe-Signature": "t=1,v1=ok"}
        )
        assert response.status_code == 500

    def test_supported_events(self):
        response = TestClient(app).get("/api/webhooks/events")
        assert "invoice.payment_succeeded" in response.json()["supported_events"]


# ============================================================================
# Admin
# ============================================================================

class TestAdminEndpoints:
    def test_approve_sends_email(self, monkeypatch, sent_emails):
        client, headers = make_client_with_auth(monkeypatch, user_type="admin")

        async def fake_approve(session, user_id, admin):
            return {"id": user_id, "email": "p@example.com", "first_name": "Pat", "is_active": True}

        monkeypatch.setattr(admin_service, "approve_user", fake_approve, raising=True)
        response = client.post("/api/admin/users/9/approve", headers=headers)

        assert response.status_code == 200
        assert sent_emails[0][0] == "send_account_approved_email"
        assert sent_emails[0][1][1] == "Test User"

    def test_approve_active_user_is_bad_request(self, monkeypatch, sent_emails):
        client, headers = make_client_with_auth(monkeypatch, user_type="admin")

        async def fake_approve(session, user_id, admin):
            raise ValueError("User account is already active")

        monkeypatch.setattr(admin_service, "approve_user", fake_approve, raising=True)
        assert client.post("/api/admin/users/9/approve", headers=headers).status_code == 400
        assert sent_emails == []

    def test_reject_and_delete(self, monkeypatch, sent_emails):
        client, headers = make_client_with_auth(monkeypatch, user_type="admin")

        async def fake_reject(session, user_id, admin, reason=None, delete_account=False):
            return {"user": {"id": user_id, "email": "p@example.com"}, "deleted": delete_account, "reason": reason}

        monkeypatch.setattr(admin_service, "reject_user", fake_reject, raising=True)
        response = client.post(
            "/api/admin/users/9/reject", json={"reason": "Duplicate account", "delete_account": True}, headers=headers
        )

        assert response.status_code == 200
        assert response.json()["message"] == "User rejected and account deleted"
        assert sent_emails == [("send_account_rejected_email", ({"id": 9, "email": "p@example.com"}, "Duplicate account"))]


# ============================================================================
# Database conflicts and commit ordering
# ============================================================================

def _integrity_error():
    return IntegrityError("DELETE FROM users", {}, Exception("violates foreign key constraint"))


class TestDatabaseConflicts:
    def test_reject_with_delete_of_paying_user_is_conflict(self, monkeypatch, sent_emails):
        client, headers = make_client_with_auth(monkeypatch, user_type="admin")

        async def fake_reject(session, user_id, admin, reason=None, delete_account=False):
            raise _integrity_error()

        monkeypatch.setattr(admin_service, "reject_user", fake_reject, raising=True)
        response = client.post("/api/admin/users/9/reject", json={"delete_account": True}, headers=headers)

        assert response.status_code == 409
        assert response.json()["detail"] == "Conflict with existing data"
        assert sent_emails == []

    def test_profile_update_conflict_is_not_a_server_error(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="player")

        async def fake_update_profile(session, user_id, updates):
            raise _integrity_error()

        monkeypatch.setattr(player_service, "update_profile", fake_update_profile, raising=True)
        response = client.put("/api/players/profile", json={"height": 180}, headers=headers)
        assert response.status_code == 409

    def test_explicit_null_gender_is_validation_error(self, monkeypatch):
        client, headers = make_client_with_auth(monkeypatch, user_type="player")
        response = client.put("/api/players/profile", json={"gender": None}, headers=headers)
        assert response.status_code == 422


class RecordingSession:
    def __init__(self, events):
        self.events = events

    async def commit(self):
        self.events.append("commit")

    async def rollback(self):
        self.events.append("rollback")


@pytest.fixture
def recorded_session():
    events = []

    async def override():
        yield RecordingSession(events)

    app.dependency_overrides[get_db_session] = override
    yield events
    app.dependency_overrides.pop(get_db_session, None)


def test_registration_emails_follow_commit(monkeypatch, recorded_session):
    async def fake_register_user(session, **kwargs):
        recorded_session.append("register")
        return {"id": 5, "email": kwargs["email"], "first_name": "Pat", "user_type": "player", "is_active": False}

    def record(name):
        def send(*args):
            recorded_session.append(name)
            return True
        return send

    monkeypatch.setattr(user_service, "register_user", fake_register_user, raising=True)
    monkeypatch.setattr(email_service, "send_welcome_email", record("welcome"), raising=True)
    monkeypatch.setattr(email_service, "send_new_registration_notification", record("admin_notice"), raising=True)

    response = TestClient(app).post("/api/auth/register", json=REGISTER_PAYLOAD)

    assert response.status_code == 201
    assert recorded_session == ["register", "commit", "welcome", "admin_notice"]


@pytest.mark.parametrize("error,status_code", [
    (NotFoundError("missing"), 404),
    (PermissionDeniedError("nope"), 403),
    (ConflictError("taken"), 409),
    (ValueError("bad input"), 400),
])
def test_service_errors_map_to_status_codes(error, status_code):
    exc = to_http_exception(error)
    assert exc.status_code == status_code
    assert exc.detail == str(error)
