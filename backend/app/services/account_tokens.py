"""
Single-use account tokens (email verification and password reset).

Both kinds follow one pattern: a random hex value is handed to the caller
for out-of-band delivery while only its SHA-256 hash and an expiry are
stored on the user. Lookup hashes the presented value; consumption clears
both fields so a token works once.
"""
import datetime as dt
from dataclasses import dataclass
from typing import Optional

from app.core.security import generate_random_token, sha256_hex, utc_now
from app.models.user import User


@dataclass(frozen=True)
class AccountTokenKind:
    name: str
    hash_field: str
    expires_field: str


VERIFICATION = AccountTokenKind("verification", "email_verification_token", "email_verification_expires")
PASSWORD_RESET = AccountTokenKind("password_reset", "password_reset_token", "password_reset_expires")


async def issue_token(user: User, kind: AccountTokenKind, ttl: dt.timedelta) -> str:
    """Store a fresh hash + expiry on the user and return the raw token."""
    raw = generate_random_token()
    expires = utc_now() + ttl
    await User.filter(id=user.id).update(**{kind.hash_field: sha256_hex(raw), kind.expires_field: expires})
    setattr(user, kind.hash_field, sha256_hex(raw))
    setattr(user, kind.expires_field, expires)
    return raw


async def find_by_token(kind: AccountTokenKind, raw: Optional[str]) -> Optional[User]:
    """Return the user owning an unexpired token, or None."""
    if not raw:
        return None
    return await User.filter(
        **{kind.hash_field: sha256_hex(raw), f"{kind.expires_field}__gt": utc_now()}
    ).select_related("role").first()


async def consume_token(user: User, kind: AccountTokenKind, **changes) -> bool:
    """
    Clear the token and apply `changes` in one conditional update.

    The update only matches while the stored hash is still the one that was
    looked up, so two concurrent consumers cannot both succeed.
    """
    current = getattr(user, kind.hash_field)
    if current is None:
        return False
    updated = await User.filter(id=user.id, **{kind.hash_field: current}).update(
        **{kind.hash_field: None, kind.expires_field: None}, **changes,
    )
    if not updated:
        return False
    setattr(user, kind.hash_field, None)
    setattr(user, kind.expires_field, None)
    for key, value in changes.items():
        setattr(user, key, value)
    return True
