# app/core/security.py
"""
Security module for authentication.
Handles password hashing, JWT access/refresh token creation and validation,
and the one-way hashing used for every token persisted server-side.
"""
import datetime as dt
import hashlib
import secrets
import uuid

import jwt  # PyJWT
from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool

from app.config import settings

# Password hashing context
# Argon2 only; the time cost is the configurable work factor
pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
    argon2__time_cost=settings.password_hash_time_cost,
)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def utc_now() -> dt.datetime:
    """Current UTC datetime with timezone information."""
    return dt.datetime.now(dt.timezone.utc)


def hash_password(plain: str) -> str:
    """
    Hash a plain text password using Argon2.

    Note: Never store plain text passwords. Always use this function before saving.
    """
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str | None) -> bool:
    """
    Verify a plain text password against a hashed password.
    Accounts created through OAuth may have no password; those never verify.
    """
    if not hashed:
        return False
    return pwd_context.verify(plain, hashed)


async def hash_password_async(plain: str) -> str:
    # Argon2 is CPU bound; keep it off the event loop
    return await run_in_threadpool(hash_password, plain)


async def verify_password_async(plain: str, hashed: str | None) -> bool:
    return await run_in_threadpool(verify_password, plain, hashed)


def sha256_hex(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def generate_random_token(nbytes: int = 32) -> str:
    """High-entropy hex token for out-of-band delivery (verification, reset)."""
    return secrets.token_hex(nbytes)


def create_access_token(user_id: str, email: str, expires_minutes: int | None = None) -> str:
    """
    Create a short-lived JWT access token.

    Payload:
        - sub: user ID
        - email: user email
        - type: "access"
        - jti: unique token ID
        - iat: issued-at timestamp with sub-second precision, compared by the
          gate against the user's last password change
        - exp: expiration timestamp
    """
    now = utc_now()
    minutes = settings.access_token_expire_minutes if expires_minutes is None else expires_minutes
    payload = {
        "sub": str(user_id),
        "email": email,
        "type": ACCESS_TOKEN_TYPE,
        "jti": uuid.uuid4().hex,
        "iat": now.timestamp(),
        "exp": now + dt.timedelta(minutes=minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_refresh_token(user_id: str) -> tuple[str, dt.datetime]:
    """
    Create a long-lived JWT refresh token.

    Returns the encoded token and its expiry. The `jti` keeps two tokens minted
    for the same user within the same second distinct.
    """
    now = utc_now()
    expires_at = now + dt.timedelta(days=settings.refresh_token_expire_days)
    payload = {
        "sub": str(user_id),
        "type": REFRESH_TOKEN_TYPE,
        "jti": uuid.uuid4().hex,
        "iat": now.timestamp(),
        "exp": expires_at,
    }
    return jwt.encode(payload, settings.jwt_refresh_secret, algorithm=settings.jwt_algorithm), expires_at


def _decode(token: str, secret: str, expected_type: str) -> dict:
    payload = jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])
    if payload.get("type") != expected_type or not payload.get("sub"):
        raise jwt.InvalidTokenError(f"Not a {expected_type} token")
    return payload


def decode_access_token(token: str) -> dict:
    """
    Decode and validate a JWT access token.

    Raises:
        jwt.ExpiredSignatureError: If token has expired
        jwt.InvalidTokenError: If token is invalid, malformed or not an access token
    """
    return _decode(token, settings.jwt_secret, ACCESS_TOKEN_TYPE)


def decode_refresh_token(token: str) -> dict:
    """Decode and validate a JWT refresh token (same errors as decode_access_token)."""
    return _decode(token, settings.jwt_refresh_secret, REFRESH_TOKEN_TYPE)
