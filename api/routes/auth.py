"""
api/routes/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/auth/signup               -- create an account; sends verification email
  POST /api/auth/login                -- email/password login; access token + maybe refresh token
  GET  /api/auth/verify-email/{token} -- redeem a verification token; logs the user in
  POST /api/auth/refresh              -- exchange a refresh token for a new access token
  GET  /api/auth/me                   -- current user profile (requires auth)
  PUT  /api/auth/update-profile       -- partial profile update (requires auth)
  PUT  /api/auth/change-password      -- change password (requires auth)

Bodies are taken as raw JSON and handed to auth/service.py, which sanitizes
before validating. Declaring pydantic models as parameters here would
validate the unsanitized input.

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT).
  authenticate_user() provides timing equalization -- the service uses it.
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import success_response
from auth.dependencies import get_auth_service, get_current_user
from auth.models import User, public_profile, signup_summary
from auth.service import AuthService
from core.errors import BadRequest

# Auth policy:
# - POST /api/auth/signup:               public
# - POST /api/auth/login:                public, rate-limited
# - GET  /api/auth/verify-email/{token}: public -- the token is the credential
# - POST /api/auth/refresh:              public -- the refresh token is the credential
# - GET  /api/auth/me:                   requires auth (get_current_user)
# - PUT  /api/auth/update-profile:       requires auth (get_current_user)
# - PUT  /api/auth/change-password:      requires auth (get_current_user)
router = APIRouter(prefix="/auth")


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/signup", status_code=201)
async def signup(
    payload: Any = Body(None),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    user = await service.signup(payload)
    return success_response(
        "User registered successfully. Please check your email to verify your account.",
        {"user": signup_summary(user)},
        status_code=201,
    )


@limiter.limit(login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/login")
async def login(
    request: Request,
    payload: Any = Body(None),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Authenticate with email and password.

    refreshToken is present in the response only when a new one was minted.
    """
    result = await service.login(payload)
    return success_response("User logged in successfully", result.as_payload(), no_store=True)


@router.get("/verify-email")
@router.get("/verify-email/")
async def verify_email_missing_token() -> JSONResponse:
    raise BadRequest("A verification token is required: /api/auth/verify-email/{token}")


@router.get("/verify-email/{token}")
async def verify_email(token: str, service: AuthService = Depends(get_auth_service)) -> JSONResponse:
    result = await service.verify_email(token)
    return success_response("Email verified successfully! You can now log in.", result.as_payload(), no_store=True)


@router.post("/refresh")
async def refresh(
    payload: Any = Body(None),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    _user, access_token = await service.refresh(payload)
    return success_response("Access token refreshed successfully", {"accessToken": access_token}, no_store=True)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/me")
async def me(current_user: User = Depends(get_current_user)) -> JSONResponse:
    return success_response("User profile provided successfully", {"user": public_profile(current_user)})


@router.put("/update-profile")
async def update_profile(
    payload: Any = Body(None),
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    user = await service.update_profile(current_user, payload)
    return success_response("Profile updated successfully", {"user": public_profile(user)})


@router.put("/change-password")
async def change_password(
    payload: Any = Body(None),
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    await service.change_password(current_user, payload)
    return success_response("Password changed successfully. Please log in again on your other devices.", {})
