"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Protected routes authenticate with exactly one method: an
Authorization: Bearer <access token> header. The header is trimmed, must
start with "Bearer " (that exact prefix), and the token after it is trimmed
and must be non-empty. Anything else is a 401 before any token parsing.

get_current_user() then verifies the token, loads the user by the token's
subject and attaches it to request.state.user. A token for a user that no
longer exists is a 404, distinct from an invalid token.

is_active and is_email_verified are not re-checked here; they are enforced at
login (see auth/service.py).

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.mailer import EmailDispatcher
from auth.models import User
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import verify_access_token
from core.concurrency import run_db
from core.errors import NotFound, Unauthorized

_BEARER_PREFIX = "Bearer "

MISSING_TOKEN_MESSAGE = "Not authorized, no token provided"


def extract_bearer_token(header: str | None) -> str:
    """Return the token from an Authorization header value or raise Unauthorized."""
    value = (header or "").strip()
    if not value.startswith(_BEARER_PREFIX):
        raise Unauthorized(MISSING_TOKEN_MESSAGE)
    token = value[len(_BEARER_PREFIX) :].strip()
    if not token:
        raise Unauthorized(MISSING_TOKEN_MESSAGE)
    return token


async def get_current_user(request: Request) -> User:
    """Require a valid bearer access token. Returns the token's user.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    user_id = verify_access_token(token)
    user_store: UserStore = request.app.state.user_store
    user = await run_db(user_store.get_by_id, user_id)
    if user is None:
        raise NotFound("User not found")
    request.state.user = user
    return user


def get_auth_service(request: Request) -> AuthService:
    store: UserStore = request.app.state.user_store
    dispatcher: EmailDispatcher = request.app.state.email_dispatcher
    return AuthService(store, dispatcher)
