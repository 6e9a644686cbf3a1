"""
auth/tokens.py -- JWT, password hashing, and reset-token utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       the account id, username, email, role (plus organization_name for
       organizers) and an expiry. Verification returns None on any failure --
       the dependency layer turns that into a 401.

  Passwords: bcrypt, used directly. Bcrypt's cost factor makes brute-force of
       low-entropy secrets expensive. Plaintext passwords are never logged.

  Reset tokens: secrets.token_hex(32) gives 256 bits of entropy. They are
       single-use and cleared as soon as they are exchanged.

  SECRET_KEY: sourced from core.config.get_settings().

Layer rule: no imports from api/ or events/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import Account

logger = logging.getLogger("tickethub.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are silently truncated by bcrypt. The API
    layer caps password fields at 72 characters.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(account: Account, expire_seconds: int = 0) -> str:
    """Encode a signed JWT describing the given account.

    Args:
        account:        User or Organizer; must already have an id.
        expire_seconds: Token lifetime in seconds. If 0 (default), uses
                        Settings.token_expire_seconds (1 hour).
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "sub": account.username,
        "id": account.id,
        "username": account.username,
        "email": account.email,
        "role": account.role,
        "exp": expire,
    }
    organization_name = getattr(account, "organization_name", None)
    if organization_name is not None:
        payload["organization_name"] = organization_name
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure.

    Expired tokens, bad signatures and payloads missing id/role all yield None.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if "id" not in payload or "role" not in payload:
        return None
    return payload


# ---------------------------------------------------------------------------
# Reset tokens
# ---------------------------------------------------------------------------


def generate_reset_token() -> str:
    """Return 32 random bytes as 64 hex characters."""
    return secrets.token_hex(32)
