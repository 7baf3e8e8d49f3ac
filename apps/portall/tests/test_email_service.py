"""
Tests for email_service: flag parsing, skip behaviour and SendGrid failures.
"""
import pytest
from portall.services import email_service


class FakeResponse:
    def __init__(self, status_code):
        self.status_code = status_code
        self.body = b""


@pytest.mark.parametrize("raw,expected", [
    ("true", True), ("YES", True), ("1", True), ("on", True),
    ("false", False), ("0", False), ("nope", False),
])
def test_get_bool_env(monkeypatch, raw, expected):
    monkeypatch.setenv("PORTALL_FLAG", raw)
    assert email_service.get_bool_env("PORTALL_FLAG", default=not expected) is expected


def test_get_bool_env_unset_uses_default(monkeypatch):
    monkeypatch.delenv("PORTALL_FLAG", raising=False)
    assert email_service.get_bool_env("PORTALL_FLAG", default=False) is False


def test_disabled_email_is_a_successful_no_op(monkeypatch):
    monkeypatch.setattr(email_service, "ENABLE_EMAIL", False)

    def explode(*args, **kwargs):
        raise AssertionError("SendGrid must not be called")

    monkeypatch.setattr(email_service, "SendGridAPIClient", explode)
    assert email_service.send_email("a@example.com", "Hi", "Body") is True


def test_sendgrid_error_status_returns_false(monkeypatch):
    monkeypatch.setattr(email_service, "ENABLE_EMAIL", True)
    monkeypatch.setattr(email_service, "SENDGRID_API_KEY", "SG.test")

    class FakeClient:
        def __init__(self, api_key):
            pass

        def send(self, message):
            return FakeResponse(401)

    monkeypatch.setattr(email_service, "SendGridAPIClient", FakeClient)
    assert email_service.send_email("a@example.com", "Hi", "Body") is False


def test_sendgrid_exception_returns_false(monkeypatch):
    monkeypatch.setattr(email_service, "ENABLE_EMAIL", True)
    monkeypatch.setattr(email_service, "SENDGRID_API_KEY", "SG.test")

    class FakeClient:
        def __init__(self, api_key):
            pass

        def send(self, message):
            raise ConnectionError("timeout")

    monkeypatch.setattr(email_service, "SendGridAPIClient", FakeClient)
    assert email_service.send_email("a@example.com", "Hi", "Body") is False


def test_reset_email_contains_link(monkeypatch):
    sent = {}

    def fake_send(to_email, subject, body):
        sent.update(to=to_email, subject=subject, body=body)
        return True

    monkeypatch.setattr(email_service, "send_email", fake_send)
    user = {"id": 1, "email": "p@example.com", "first_name": "Pat"}
    assert email_service.send_password_reset_email(user, "tok123") is True
    assert sent["to"] == "p@example.com"
    assert "reset-password?token=tok123" in sent["body"]


def test_html_body_is_escaped():
    rendered = email_service._to_html("Hi <b>Pat</b>,\n\nLine one\nLine two")
    assert "&lt;b&gt;" in rendered
    assert rendered.count("<p>") == 2
    assert "Line one<br>Line two" in rendered
