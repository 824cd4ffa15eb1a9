"""
auth/tokens.py -- Access tokens, refresh tokens and password hashing.

Security design decisions:
  Access tokens: python-jose with HS256, signed with SECRET_KEY. Claims are
       sub (user id), userId, email, role, iss ("talentspal"), iat and exp.
       verify_access_token() pins the algorithm list, requires exp and sub,
       and checks the issuer. Any failure is the same Unauthorized error so a
       client cannot tell an expired token from a forged one.

  Refresh tokens: secrets.token_hex(32) gives 256 bits of entropy. The client
       gets the plaintext; the store keeps HMAC-SHA256(SECRET_KEY, plaintext).
       The hash is deterministic, so lookup by hash is a single indexed query,
       and a leaked users table yields nothing usable without SECRET_KEY.

  Passwords: bcrypt directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email is registered.

  SECRET_KEY: sourced from core.config.get_settings(). Settings validates
       the key at startup (auto-generated in DEBUG, required otherwise,
       at least 32 characters).

Layer rule: no imports from api/. Import from core/ is allowed -- core/ is the
kernel and has no reverse dependencies.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import jwt
from jose.exceptions import JOSEError

from core.config import get_settings
from core.errors import InternalFault, Unauthorized

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("talentspal.auth")

_ALGORITHM = "HS256"
ISSUER = "talentspal"

INVALID_TOKEN_MESSAGE = "Invalid or expired token"

# bcrypt ignores everything past 72 bytes and bcrypt>=4.1 raises instead of
# truncating, so both sides cut the encoded password at the same point.
_BCRYPT_MAX_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def _password_bytes(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    try:
        return bcrypt.hashpw(_password_bytes(plain), bcrypt.gensalt()).decode("utf-8")
    except (ValueError, TypeError) as exc:
        raise InternalFault(exc) from exc


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(_password_bytes(plain), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        logger.warning("Stored password hash could not be checked")
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. Always call verify_password() even when the
# email does not exist.
_DUMMY_HASH: str = hash_password("talentspal_timing_dummy")


# ---------------------------------------------------------------------------
# Access tokens
# ---------------------------------------------------------------------------


def create_access_token(user: User, expire_seconds: int = 0, now: datetime | None = None) -> str:
    """Encode a signed access token for user.

    Args:
        user:           The authenticated user; must already have an id.
        expire_seconds: Lifetime override in seconds. If 0 (default), uses
                        JWT_EXPIRES_IN from settings. Negative values produce
                        an already-expired token (used by tests).
        now:            Issue time; defaults to the current UTC time.
    """
    settings = get_settings()
    issued = now or datetime.now(timezone.utc)
    ttl = timedelta(seconds=expire_seconds) if expire_seconds else settings.access_token_ttl
    payload = {
        "sub": user.id,
        "userId": user.id,
        "email": user.email,
        "role": user.role,
        "iss": ISSUER,
        "iat": int(issued.timestamp()),
        "exp": int((issued + ttl).timestamp()),
    }
    try:
        return jwt.encode(payload, settings.secret_key, algorithm=_ALGORITHM)
    except JOSEError as exc:
        raise InternalFault(exc) from exc


def decode_access_token(token: str, secret: str | None = None) -> dict:
    """Decode and verify an access token. Returns the claims dict.

    Raises Unauthorized on a bad signature, an unexpected algorithm, a
    missing exp or sub claim, an expired token or a foreign issuer.
    """
    key = secret or get_settings().secret_key
    try:
        claims = jwt.decode(
            token,
            key,
            algorithms=[_ALGORITHM],
            issuer=ISSUER,
            options={"require_exp": True, "require_sub": True, "require_iat": False},
        )
    except JOSEError as exc:
        raise Unauthorized(INVALID_TOKEN_MESSAGE) from exc
    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject:
        raise Unauthorized(INVALID_TOKEN_MESSAGE)
    return claims


def verify_access_token(token: str, secret: str | None = None) -> str:
    """Verify an access token and return its subject (the user id)."""
    return decode_access_token(token, secret)["sub"]


# ---------------------------------------------------------------------------
# Refresh tokens
# ---------------------------------------------------------------------------


def hash_refresh_token(plaintext: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, plaintext) as a hex string."""
    return hmac.new(
        get_settings().secret_key.encode(),
        plaintext.encode(),
        hashlib.sha256,
    ).hexdigest()


def issue_refresh_token() -> tuple[str, str]:
    """Generate a refresh token. Returns (plaintext, hash).

    Only the hash may be persisted; the plaintext goes to the client once.
    """
    plaintext = secrets.token_hex(32)
    return plaintext, hash_refresh_token(plaintext)


# ---------------------------------------------------------------------------
# User authentication (constant-time)
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Check an email/password pair with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on a matching password, None otherwise. Account status
    (is_active, is_email_verified) is left to the caller, which reports each
    with its own message.
    """
    user = store.get_by_email(email)
    if user is None or user.password_hash is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user
