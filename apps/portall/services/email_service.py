"""
Account lifecycle emails sent through SendGrid.

Send functions return a bool and never raise. A missing API key or
ENABLE_EMAIL=false turns sending into a logged no-op, which is how tests
and local development run.
"""

import os
import html
import logging
from typing import Dict, List, Optional
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

TRUTHY_VALUES = ("true", "1", "yes", "on")


def get_bool_env(key: str, default: bool = True) -> bool:
    """Read a boolean flag from the environment; unset means `default`."""
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in TRUTHY_VALUES


SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY")
SENDGRID_FROM_EMAIL = os.getenv("SENDGRID_FROM_EMAIL", "noreply@portall.com")
SENDGRID_FROM_NAME = os.getenv("SENDGRID_FROM_NAME", "Portall")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@portall.com")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
ENABLE_EMAIL = get_bool_env("ENABLE_EMAIL", default=True)

USER_TYPE_LABELS = {
    "player": "NJCAA Player",
    "coach": "NCAA/NAIA Coach",
    "njcaa_coach": "NJCAA Coach",
    "admin": "Administrator",
}


def _to_html(body: str) -> str:
    paragraphs = [p for p in body.split("\n\n") if p.strip()]
    return "".join(
        "<p>" + "<br>".join(html.escape(line) for line in p.split("\n")) + "</p>" for p in paragraphs
    )


def send_email(to_email: str, subject: str, body: str) -> bool:
    """
    Send `body` as plain text with an HTML alternative.

    Returns:
        bool: True if SendGrid accepted it or sending is switched off,
        False if the request failed
    """
    if not ENABLE_EMAIL:
        logger.info(f"Email disabled, not sending '{subject}' to {to_email}")
        return True
    if not SENDGRID_API_KEY:
        logger.warning(f"SENDGRID_API_KEY missing, not sending '{subject}' to {to_email}")
        return True

    message = Mail(
        from_email=Email(SENDGRID_FROM_EMAIL, SENDGRID_FROM_NAME),
        to_emails=To(to_email),
        subject=subject,
        plain_text_content=Content("text/plain", body),
        html_content=Content("text/html", _to_html(body)),
    )
    try:
        response = SendGridAPIClient(SENDGRID_API_KEY).send(message)
    except Exception as e:
        logger.error(f"SendGrid request for '{subject}' to {to_email} failed: {e}")
        return False

    if response.status_code >= 300:
        logger.error(f"SendGrid rejected '{subject}' to {to_email}: {response.status_code} {response.body}")
        return False
    logger.info(f"Sent '{subject}' to {to_email}")
    return True


def _signature(lines: List[str]) -> str:
    return "\n".join(lines + ["", "The Portall team"])


def send_welcome_email(user: Dict) -> bool:
    """Tell a new user their account is waiting for admin review."""
    body = _signature([
        f"Hi {user['first_name']},",
        "",
        f"Thanks for registering on Portall as a {USER_TYPE_LABELS.get(user['user_type'], user['user_type'])}.",
        "Your account is pending review by our team. We will email you as soon as it is approved.",
    ])
    return send_email(user["email"], "Welcome to Portall - account pending review", body)


def send_new_registration_notification(user: Dict) -> bool:
    """Notify the admin inbox that an account needs approval."""
    body = _signature([
        "A new account is waiting for approval:",
        "",
        f"Name: {user['first_name']} {user['last_name']}",
        f"Email: {user['email']}",
        f"Type: {USER_TYPE_LABELS.get(user['user_type'], user['user_type'])}",
        f"Review: {FRONTEND_URL}/admin/users/{user['id']}",
    ])
    return send_email(ADMIN_EMAIL, f"New {user['user_type']} registration: {user['email']}", body)


def send_account_approved_email(user: Dict, approved_by: Optional[str] = None) -> bool:
    lines = [
        f"Hi {user['first_name']},",
        "",
        "Good news: your Portall account has been approved. You can now log in:",
        f"{FRONTEND_URL}/login",
    ]
    if approved_by:
        lines.append(f"Approved by: {approved_by}")
    return send_email(user["email"], "Your Portall account is approved", _signature(lines))


def send_account_rejected_email(user: Dict, reason: Optional[str] = None) -> bool:
    lines = [
        f"Hi {user['first_name']},",
        "",
        "We were unable to approve your Portall account.",
    ]
    if reason:
        lines.extend(["", f"Reason: {reason}"])
    return send_email(user["email"], "Your Portall registration", _signature(lines))


def send_password_reset_email(user: Dict, reset_token: str) -> bool:
    """Send the reset link; the token expires after one hour."""
    body = _signature([
        f"Hi {user['first_name']},",
        "",
        "Use the link below to choose a new password. It expires in 1 hour.",
        f"{FRONTEND_URL}/reset-password?token={reset_token}",
        "",
        "If you did not request this, you can ignore this email.",
    ])
    return send_email(user["email"], "Reset your Portall password", body)
