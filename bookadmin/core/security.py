"""Password hashing, session/selection JWTs, and single-use token generation."""

import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
import jwt

from bookadmin.core.config import settings

# Bcrypt cost (rounds). Tests patch this down.
BCRYPT_ROUNDS = 12

# "type" claim values; a selection ticket must never pass as a session token.
SESSION_TOKEN_TYPE = "access"
SELECTION_TOKEN_TYPE = "role_selection"


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password for storage. Do not store plain passwords."""
    # bcrypt has a 72-byte limit; truncate to avoid errors (validation already limits length).
    pw_bytes = plain_password.encode("utf-8")[:72]
    return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain_password: str, hashed: str | None) -> bool:
    """Verify a plain password against a stored hash. An unset hash never matches."""
    if not hashed:
        return False
    pw_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def _encode(payload: dict[str, Any]) -> str:
    secret = settings.JWT_SECRET.get_secret_value()
    return jwt.encode(payload, secret, algorithm=settings.JWT_ALGORITHM)


def _decode(token: str) -> dict[str, Any]:
    secret = settings.JWT_SECRET.get_secret_value()
    return jwt.decode(token, secret, algorithms=[settings.JWT_ALGORITHM])


def create_session_token(
    user_id: str,
    email: str,
    role: int,
    role_id: str | None = None,
    company_id: str | None = None,
    impersonated_by: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """
    Sign a session token carrying the role chosen for this session.

    Claims: userId, email, role, roleId, companyId, iat, exp, and, for
    impersonation sessions, impersonatedBy + isImpersonating.
    """
    now = datetime.now(UTC)
    expire = now + (expires_delta or timedelta(minutes=settings.JWT_EXPIRE_MINUTES))
    payload: dict[str, Any] = {
        "userId": user_id,
        "email": email,
        "role": int(role),
        "roleId": role_id,
        "companyId": company_id,
        "type": SESSION_TOKEN_TYPE,
        "iat": now,
        "exp": expire,
    }
    if impersonated_by is not None:
        payload["impersonatedBy"] = impersonated_by
        payload["isImpersonating"] = True
    return _encode(payload)


def decode_session_token(token: str) -> dict[str, Any]:
    """
    Decode and validate a session JWT; return its claims.
    Raises jwt.ExpiredSignatureError when expired and jwt.PyJWTError when otherwise invalid.
    """
    payload = _decode(token)
    if payload.get("type") != SESSION_TOKEN_TYPE:
        raise jwt.InvalidTokenError("Not a session token")
    return payload


def create_selection_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    """Short-lived ticket proving the password check passed; exchanged for a session by complete_login."""
    now = datetime.now(UTC)
    expire = now + (
        expires_delta or timedelta(minutes=settings.ROLE_SELECTION_EXPIRE_MINUTES)
    )
    payload = {
        "userId": user_id,
        "type": SELECTION_TOKEN_TYPE,
        "iat": now,
        "exp": expire,
    }
    return _encode(payload)


def decode_selection_token(token: str) -> dict[str, Any]:
    """Decode a role-selection ticket. Raises jwt.PyJWTError if invalid, expired, or of another type."""
    payload = _decode(token)
    if payload.get("type") != SELECTION_TOKEN_TYPE:
        raise jwt.InvalidTokenError("Not a role selection token")
    return payload


def generate_single_use_token() -> str:
    """Random 64-char hex string for password reset, account setup and email verification links."""
    return secrets.token_hex(32)
