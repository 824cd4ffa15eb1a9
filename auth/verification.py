"""
auth/verification.py -- One-time email-verification tokens.

issue:  new_verification_token() mints the token and its 24 hour expiry,
        which signup stores on the new user record. The email carrying the
        link is handed to the EmailDispatcher and never awaited.

redeem: redeem_verification_token() consumes the token with one conditional
        update in the store, then logs the user in through the rotation
        policy. Unknown, already-used and expired tokens all produce the same
        error so a caller cannot probe which tokens exist.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import html
import logging
import secrets
from datetime import datetime, timedelta

from auth.mailer import EmailDispatcher, EmailMessageSpec
from auth.models import User
from auth.rotation import RotationResult, rotate_if_stale
from auth.store import UserStore, to_iso, utc_now
from core.config import get_settings
from core.errors import BadRequest

logger = logging.getLogger("talentspal.auth.verification")

VERIFICATION_TTL = timedelta(hours=24)
INVALID_VERIFICATION_MESSAGE = "Invalid or expired verification token"


def new_verification_token(now: datetime | None = None) -> tuple[str, str]:
    """Return (token, expires_iso) for a fresh verification token."""
    now = now or utc_now()
    return secrets.token_hex(32), to_iso(now + VERIFICATION_TTL)


def verification_link(token: str) -> str:
    return f"{get_settings().frontend_url.rstrip('/')}/verify-email/{token}"


def build_verification_email(user: User, token: str) -> EmailMessageSpec:
    settings = get_settings()
    link = verification_link(token)
    text = (
        f"Hi {user.full_name},\n\n"
        f"Welcome to {settings.app_name}! Please confirm your email address by opening the link below:\n\n"
        f"{link}\n\n"
        "The link expires in 24 hours. If you did not create an account, you can ignore this email.\n"
    )
    body_html = (
        f"<p>Hi {html.escape(user.full_name)},</p>"
        f"<p>Welcome to {html.escape(settings.app_name)}! Please confirm your email address:</p>"
        f'<p><a href="{link}">Verify my email</a></p>'
        "<p>The link expires in 24 hours. If you did not create an account, you can ignore this email.</p>"
    )
    return EmailMessageSpec(
        to=user.email,
        subject=f"Verify your email - {settings.app_name}",
        text=text,
        html=body_html,
    )


def dispatch_verification_email(dispatcher: EmailDispatcher, user: User, token: str) -> None:
    """Queue the verification email. Returns immediately; failures are only logged."""
    dispatcher.dispatch(build_verification_email(user, token), purpose="verification")


def redeem_verification_token(store: UserStore, token: str, now: datetime | None = None) -> RotationResult:
    """Mark the owning user's email verified and log them in.

    Raises BadRequest for an empty, unknown, used or expired token.
    Blocking; call through core.concurrency.run_db from async code.
    """
    now = now or utc_now()
    token = token.strip()
    if not token:
        raise BadRequest(INVALID_VERIFICATION_MESSAGE)
    user = store.redeem_verification_token(token, now)
    if user is None:
        raise BadRequest(INVALID_VERIFICATION_MESSAGE)
    logger.info("Email verified for user %s", user.id)
    return rotate_if_stale(store, user, now)
