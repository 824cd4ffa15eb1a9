"""
auth/schemas.py -- Request models for the authentication endpoints.

These Pydantic v2 models are the declarative half of input validation. They
see payloads only after core.sanitize has cleaned them, and they are always
run through core.validation.validate_payload() so failures come back as the
{lower-cased field: message} map rather than pydantic's error list.

JSON keys are camelCase (fullName, linkedInUrl, ...). alias_generator maps
them onto snake_case attributes; error locations use the alias, so the
error map keys are the lower-cased JSON names (fullname, linkedinurl, ...).

What is NOT checked here: rules that need the store (email uniqueness,
reference lookups), the password policy, phone/region agreement and the
role-conditional required fields. auth/service.py runs those in order after
the shape check passes.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from core.validation import (
    EmailAddress,
    HttpUrlStr,
    NumericStr,
    YearStr,
    check_role,
    domain_error,
    mismatch_error,
    normalize_interests,
)

# bcrypt only reads the first 72 bytes; the upper bound keeps request bodies sane.
_PASSWORD_MAX = 128


class _AuthRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _dedupe_interests(value: list[str] | None) -> list[str] | None:
    if value is None:
        return None
    unique, message = normalize_interests(value)
    if message:
        raise domain_error(message)
    return unique


class SignupRequest(_AuthRequest):
    """Body for POST /api/auth/signup.

    university and major are optional here and required by the signup flow
    only for students; the company block likewise only for companies.
    """

    full_name: str = Field(min_length=2, max_length=100)
    email: EmailAddress
    password: str = Field(min_length=8, max_length=_PASSWORD_MAX)
    confirm_password: str
    role: str = "student"
    country_code: str
    phone: NumericStr
    city: str = Field(min_length=2, max_length=50)

    # Student
    university: str | None = Field(default=None, min_length=2, max_length=100)
    major: str | None = Field(default=None, min_length=2, max_length=50)
    graduation_year: YearStr | None = None
    interests: list[str] | None = None
    linked_in_url: HttpUrlStr | None = None

    # Company
    company_name: str | None = Field(default=None, min_length=2, max_length=50)
    company_email: EmailAddress | None = None
    company_location: str | None = Field(default=None, min_length=2, max_length=100)
    industry: str | None = Field(default=None, min_length=2, max_length=50)
    description: str | None = Field(default=None, max_length=2000)

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, value: str, info: ValidationInfo) -> str:
        password = info.data.get("password")
        if password is not None and value != password:
            raise mismatch_error()
        return value

    @field_validator("role")
    @classmethod
    def known_role(cls, value: str) -> str:
        message = check_role(value)
        if message:
            raise domain_error(message)
        return value

    @field_validator("interests")
    @classmethod
    def unique_interests(cls, value: list[str] | None) -> list[str] | None:
        return _dedupe_interests(value)


class LoginRequest(_AuthRequest):
    email: EmailAddress
    password: str = Field(min_length=8, max_length=_PASSWORD_MAX)


class ProfileUpdateRequest(_AuthRequest):
    """Body for PUT /api/auth/update-profile. Every field is optional.

    Fields belonging to another role are accepted and ignored by the flow.
    """

    full_name: str | None = Field(default=None, min_length=2, max_length=100)
    country_code: str | None = None
    phone: NumericStr | None = None
    city: str | None = Field(default=None, min_length=2, max_length=50)
    profile_image: HttpUrlStr | None = None
    bio: str | None = Field(default=None, min_length=30, max_length=500)

    # Student
    university: str | None = Field(default=None, min_length=2, max_length=100)
    major: str | None = Field(default=None, min_length=2, max_length=50)
    graduation_year: YearStr | None = None
    interests: list[str] | None = None
    linked_in_url: HttpUrlStr | None = None

    # Company
    company_name: str | None = Field(default=None, min_length=2, max_length=50)
    company_location: str | None = Field(default=None, min_length=2, max_length=100)
    industry: str | None = Field(default=None, min_length=2, max_length=50)
    description: str | None = Field(default=None, max_length=2000)

    @field_validator("interests")
    @classmethod
    def unique_interests(cls, value: list[str] | None) -> list[str] | None:
        return _dedupe_interests(value)


class PasswordChangeRequest(_AuthRequest):
    current_password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    new_password: str = Field(min_length=8, max_length=_PASSWORD_MAX)
    confirm_new_password: str

    @field_validator("confirm_new_password")
    @classmethod
    def passwords_match(cls, value: str, info: ValidationInfo) -> str:
        new_password = info.data.get("new_password")
        if new_password is not None and value != new_password:
            raise mismatch_error()
        return value


class RefreshRequest(_AuthRequest):
    refresh_token: str = Field(min_length=1, max_length=256)
