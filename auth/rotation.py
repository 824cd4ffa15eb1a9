"""
auth/rotation.py -- Refresh-token rotation policy.

Every successful login or email verification passes through rotate_if_stale().
Per user the refresh state is one of two:

  FRESH -- a refresh hash is stored and its expiry is in the future. The
           client still holds the plaintext it was given earlier, so no new
           one is issued and the stored expiry is reused.
  STALE -- no hash, or the stored expiry has passed. A new pair is minted,
           expiry = now + JWT_REFRESH_EXPIRES_IN, and the plaintext is
           returned exactly once.

The access token is reissued on every call regardless of state.

Concurrency: the write is a compare-and-swap on the hash that was read
(UserStore.swap_refresh_token). When two requests for the same user race
through STALE, one swap succeeds; the loser re-reads the row, finds it FRESH
with the winner's hash, and returns without a refresh plaintext. No caller
ever receives a plaintext whose hash is not the one stored.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime

from auth.models import User, public_profile
from auth.store import UserStore, from_iso, to_iso, utc_now
from auth.tokens import create_access_token, issue_refresh_token
from core.config import get_settings
from core.errors import InternalFault

logger = logging.getLogger("talentspal.auth.rotation")


class RefreshState(enum.Enum):
    FRESH = "fresh"
    STALE = "stale"

    @classmethod
    def of(cls, user: User, now: datetime) -> RefreshState:
        expires = from_iso(user.refresh_token_expires)
        if user.refresh_token_hash and expires is not None and expires > now:
            return cls.FRESH
        return cls.STALE


@dataclass(frozen=True)
class RotationResult:
    """Tokens handed back to the client after login or verification.

    refresh_token is the plaintext and is set only when is_new is True.
    """

    access_token: str
    refresh_token: str | None
    refresh_expires: str
    is_new: bool
    user: User

    def as_payload(self) -> dict:
        payload = {"user": public_profile(self.user), "accessToken": self.access_token}
        if self.is_new:
            payload["refreshToken"] = self.refresh_token
        return payload


def rotate_if_stale(store: UserStore, user: User, now: datetime | None = None) -> RotationResult:
    """Apply the rotation policy to user and persist any new refresh hash.

    Blocking; call through core.concurrency.run_db from async code.
    """
    now = now or utc_now()
    access_token = create_access_token(user, now=now)

    if RefreshState.of(user, now) is RefreshState.FRESH:
        return RotationResult(access_token, None, user.refresh_token_expires, False, user)

    plaintext, token_hash = issue_refresh_token()
    expires = to_iso(now + get_settings().refresh_token_ttl)
    if store.swap_refresh_token(user.id, user.refresh_token_hash, token_hash, expires):
        user.refresh_token_hash = token_hash
        user.refresh_token_expires = expires
        logger.info("Issued new refresh token for user %s", user.id)
        return RotationResult(access_token, plaintext, expires, True, user)

    # Another request rotated first; its token is the live one.
    current = store.get_by_id(user.id)
    if current is None:
        raise InternalFault(f"user {user.id} vanished during refresh rotation")
    logger.info("Refresh rotation for user %s lost a concurrent race; keeping the winner's token", user.id)
    return RotationResult(access_token, None, current.refresh_token_expires or "", False, current)
