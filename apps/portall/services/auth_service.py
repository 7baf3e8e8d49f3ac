"""
Authentication service: password hashing, JWT tokens, email helpers.
"""

import os
import re
import secrets
import logging
from datetime import timedelta
from typing import Optional, Dict
import bcrypt
import jwt
from dotenv import load_dotenv
from portall.utils.datetime_utils import utcnow

load_dotenv()

logger = logging.getLogger(__name__)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "portall-dev-secret-change-me")
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRATION_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRATION_MINUTES", "60"))
REFRESH_TOKEN_EXPIRATION_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRATION_DAYS", "7"))
PASSWORD_RESET_EXPIRATION_HOURS = 1

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}$")


def hash_password(password: str) -> str:
    """Hash a password with bcrypt (random salt per call)."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a plaintext password against a bcrypt hash."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash stored in the database
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


def _encode(data: Dict, token_type: str, expires_delta: timedelta) -> str:
    payload = data.copy()
    now = utcnow()
    payload.update({"type": token_type, "iat": now, "exp": now + expires_delta})
    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def create_access_token(data: Dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed access token.

    Args:
        data: Claims to embed (user_id, email, user_type)
        expires_delta: Optional custom lifetime, defaults to ACCESS_TOKEN_EXPIRATION_MINUTES

    Returns:
        Encoded JWT string
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRATION_MINUTES)
    return _encode(data, TOKEN_TYPE_ACCESS, expires_delta)


def create_refresh_token(data: Dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed refresh token; only accepted by the refresh endpoint."""
    if expires_delta is None:
        expires_delta = timedelta(days=REFRESH_TOKEN_EXPIRATION_DAYS)
    return _encode(data, TOKEN_TYPE_REFRESH, expires_delta)


def verify_token(token: str, expected_type: str = TOKEN_TYPE_ACCESS) -> Optional[Dict]:
    """
    Decode and validate a token.

    Args:
        token: Encoded JWT
        expected_type: "access" or "refresh"

    Returns:
        Decoded claims, or None if the token is invalid, expired, or of the wrong type
    """
    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.debug("Token expired")
        return None
    except jwt.InvalidTokenError:
        return None

    if payload.get("type") != expected_type:
        return None
    return payload


def build_token_claims(user: Dict) -> Dict:
    """Claims shared by access and refresh tokens of a user dict."""
    return {"user_id": user["id"], "email": user["email"], "user_type": user["user_type"]}


def generate_reset_token() -> str:
    """Random URL-safe token for password reset links."""
    return secrets.token_urlsafe(32)


def validate_email(email: str) -> bool:
    if not email:
        return False
    return bool(EMAIL_PATTERN.match(email))


def normalize_email(email: str) -> str:
    """
    Lowercase and trim an email address.

    Raises:
        ValueError: If the email is empty or malformed
    """
    if not email:
        raise ValueError("Email is required")
    normalized = email.strip().lower()
    if not validate_email(normalized):
        raise ValueError(f"Invalid email address: {email}")
    return normalized
