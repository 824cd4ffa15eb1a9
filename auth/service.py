"""
auth/service.py -- Signup, login, verification, refresh and profile flows.

Each public coroutine is one request's worth of work. Input goes through the
same pipeline everywhere:

    raw dict -> core.sanitize (per-endpoint helper) -> core.validation
             -> store-backed checks -> mutation

All blocking work (store queries, bcrypt) runs through core.concurrency.run_db
so it is deadline-bounded and never blocks the event loop.

Signup (fails fast, in this order):
    sanitize, default role, validate shape, email uniqueness, password policy
    and confirmation, phone/region, role-conditional required fields,
    reference lookups, hash, insert, verification token, email dispatch.

Login:
    sanitize, validate shape, lookup + bcrypt (generic message on either
    miss), is_active, is_email_verified, rotation policy.

Account status is enforced here and in refresh only. Access tokens already
issued to a deactivated or unverified account stay valid until they expire;
auth.dependencies.get_current_user does not re-check them.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError

from auth.mailer import EmailDispatcher
from auth.models import (
    AdminProfile,
    CompanyProfile,
    StudentProfile,
    User,
    compute_profile_complete,
    profile_for_role,
)
from auth.rotation import RotationResult, rotate_if_stale
from auth.schemas import (
    LoginRequest,
    PasswordChangeRequest,
    ProfileUpdateRequest,
    RefreshRequest,
    SignupRequest,
)
from auth.store import UserStore, to_iso, utc_now
from auth.tokens import authenticate_user, create_access_token, hash_password, hash_refresh_token, verify_password
from auth.verification import dispatch_verification_email, new_verification_token, redeem_verification_token
from core.concurrency import run_db
from core.errors import BadRequest, Conflict, NotFound, Unauthorized, ValidationFailed
from core.sanitize import (
    sanitize_login_payload,
    sanitize_password_payload,
    sanitize_profile_payload,
    sanitize_signup_payload,
    sanitize_token_payload,
)
from core.validation import REQUIRED_MESSAGE, check_password_complexity, check_phone, validate_payload

logger = logging.getLogger("talentspal.auth.service")

DUPLICATE_EMAIL_MESSAGE = "An account with this email already exists"
INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
DEACTIVATED_MESSAGE = "Your account has been deactivated"
UNVERIFIED_MESSAGE = "Please verify your email before logging in. Check your inbox for the verification link."
INVALID_REFRESH_MESSAGE = "Invalid or expired refresh token"

# Role-conditional required fields, keyed by the error-map name.
_STUDENT_REQUIRED = {"university": "university", "major": "major"}
_COMPANY_REQUIRED = {
    "companyname": "company_name",
    "companyemail": "company_email",
    "companylocation": "company_location",
    "industry": "industry",
    "description": "description",
}


def _require_object(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise ValidationFailed({"validation": "Invalid payload"})
    return raw


def _policy_error(field: str, message: str) -> ValidationFailed:
    return ValidationFailed({field: message}, message=message)


class AuthService:
    """The auth flows, bound to one store and one email dispatcher.

    Usage:
        service = AuthService(store, dispatcher)
        user = await service.signup(body)
    """

    def __init__(self, store: UserStore, dispatcher: EmailDispatcher) -> None:
        self.store = store
        self.dispatcher = dispatcher

    # ------------------------------------------------------------------
    # Shared checks
    # ------------------------------------------------------------------

    async def _require_reference(self, kind: str, value: str) -> None:
        if not await run_db(self.store.reference_exists, kind, value):
            raise NotFound(f"{value} is not supported yet!")

    @staticmethod
    def _check_phone(phone: str, country_code: str | None) -> None:
        if not country_code:
            raise ValidationFailed({"countrycode": REQUIRED_MESSAGE})
        message = check_phone(phone, country_code)
        if message:
            raise _policy_error("phone", message)

    # ------------------------------------------------------------------
    # Signup
    # ------------------------------------------------------------------

    async def signup(self, raw: Any) -> User:
        """Create an unverified account and send its verification email.

        Returns the stored user. Raises ValidationFailed, Conflict or NotFound.
        """
        payload = sanitize_signup_payload(_require_object(raw))
        body = validate_payload(SignupRequest, payload)

        if await run_db(self.store.email_exists, body.email):
            raise Conflict(DUPLICATE_EMAIL_MESSAGE)

        message = check_password_complexity(body.password)
        if message:
            raise _policy_error("password", message)

        self._check_phone(body.phone, body.country_code)

        required = {"student": _STUDENT_REQUIRED, "company": _COMPANY_REQUIRED}.get(body.role, {})
        missing = {key: REQUIRED_MESSAGE for key, attr in required.items() if not getattr(body, attr)}
        if missing:
            raise ValidationFailed(missing, message=f"Please provide all required {body.role} fields")

        await self._require_reference("cities", body.city)
        match body.role:
            case "student":
                await self._require_reference("universities", body.university)
                await self._require_reference("majors", body.major)
            case "company":
                await self._require_reference("industries", body.industry)

        password_hash = await run_db(hash_password, body.password)
        token, token_expires = new_verification_token()
        user = User(
            email=body.email,
            full_name=body.full_name,
            profile=profile_for_role(
                body.role,
                university=body.university,
                major=body.major,
                graduation_year=body.graduation_year,
                interests=body.interests,
                linked_in_url=body.linked_in_url,
                company_name=body.company_name,
                company_email=body.company_email,
                company_location=body.company_location,
                industry=body.industry,
                description=body.description,
            ),
            password_hash=password_hash,
            phone=body.phone,
            city=body.city,
            email_verification_token=token,
            email_verification_expires=token_expires,
        )
        user.is_profile_complete = compute_profile_complete(user)

        try:
            user.id = await run_db(self.store.create_user, user)
        except IntegrityError as exc:
            # Lost a race with a concurrent signup for the same email.
            raise Conflict(DUPLICATE_EMAIL_MESSAGE) from exc

        logger.info("Registered %s user %s", user.role, user.id)
        dispatch_verification_email(self.dispatcher, user, token)
        return user

    # ------------------------------------------------------------------
    # Login / verification / refresh
    # ------------------------------------------------------------------

    async def login(self, raw: Any) -> RotationResult:
        payload = sanitize_login_payload(_require_object(raw))
        body = validate_payload(LoginRequest, payload)

        user = await run_db(authenticate_user, self.store, body.email, body.password)
        if user is None:
            raise Unauthorized(INVALID_CREDENTIALS_MESSAGE)
        if not user.is_active:
            raise Unauthorized(DEACTIVATED_MESSAGE)
        if not user.is_email_verified:
            raise Unauthorized(UNVERIFIED_MESSAGE)

        return await run_db(rotate_if_stale, self.store, user)

    async def verify_email(self, token: str) -> RotationResult:
        return await run_db(redeem_verification_token, self.store, token)

    async def refresh(self, raw: Any) -> tuple[User, str]:
        """Exchange a live refresh token for a new access token. No rotation."""
        payload = sanitize_token_payload(_require_object(raw))
        body = validate_payload(RefreshRequest, payload)

        user = await run_db(self.store.get_by_refresh_hash, hash_refresh_token(body.refresh_token))
        if user is None:
            raise Unauthorized(INVALID_REFRESH_MESSAGE)
        if not user.is_active:
            raise Unauthorized(DEACTIVATED_MESSAGE)
        return user, create_access_token(user)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    async def update_profile(self, user: User, raw: Any) -> User:
        """Apply a partial profile update and recompute completeness.

        Fields that belong to another role are ignored. Raises BadRequest
        when nothing applicable was supplied.
        """
        payload = sanitize_profile_payload(_require_object(raw))
        body = validate_payload(ProfileUpdateRequest, payload)
        changed = False

        if body.full_name is not None:
            user.full_name = body.full_name
            changed = True
        if body.profile_image is not None:
            user.profile_image = body.profile_image
            changed = True
        if body.bio is not None:
            user.bio = body.bio
            changed = True
        if body.phone is not None:
            self._check_phone(body.phone, body.country_code)
            user.phone = body.phone
            changed = True
        if body.city is not None:
            await self._require_reference("cities", body.city)
            user.city = body.city
            changed = True

        match user.profile:
            case StudentProfile() as student:
                if body.university is not None:
                    await self._require_reference("universities", body.university)
                    student.university = body.university
                    changed = True
                if body.major is not None:
                    await self._require_reference("majors", body.major)
                    student.major = body.major
                    changed = True
                if body.graduation_year is not None:
                    student.graduation_year = body.graduation_year
                    changed = True
                if body.interests:
                    student.interests = body.interests
                    changed = True
                if body.linked_in_url is not None:
                    student.linked_in_url = body.linked_in_url
                    changed = True
            case CompanyProfile() as company:
                if body.industry is not None:
                    await self._require_reference("industries", body.industry)
                    company.industry = body.industry
                    changed = True
                if body.company_name is not None:
                    company.company_name = body.company_name
                    changed = True
                if body.company_location is not None:
                    company.company_location = body.company_location
                    changed = True
                if body.description is not None:
                    company.description = body.description
                    changed = True
            case AdminProfile():
                pass

        if not changed:
            raise BadRequest("No fields provided to update")

        user.is_profile_complete = compute_profile_complete(user)
        user.updated_at = to_iso(utc_now())
        if not await run_db(self.store.save_profile, user):
            raise NotFound("User not found")
        return user

    async def change_password(self, user: User, raw: Any) -> None:
        """Replace the password and revoke the stored refresh token."""
        payload = sanitize_password_payload(_require_object(raw))
        body = validate_payload(PasswordChangeRequest, payload)

        current_ok = user.password_hash is not None and await run_db(
            verify_password, body.current_password, user.password_hash
        )
        if not current_ok:
            raise BadRequest("Current password is incorrect")

        message = check_password_complexity(body.new_password)
        if message:
            raise _policy_error("newpassword", message)
        if body.new_password == body.current_password:
            raise _policy_error("newpassword", "New password must be different from the current password")

        new_hash = await run_db(hash_password, body.new_password)
        updated = await run_db(
            self.store.update_user,
            user.id,
            password_hash=new_hash,
            refresh_token_hash=None,
            refresh_token_expires=None,
        )
        if not updated:
            raise NotFound("User not found")
        logger.info("Password changed for user %s", user.id)
