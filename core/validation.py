"""
core/validation.py -- Declarative field rules and domain checks.

Request shapes are pydantic v2 models (see auth/schemas.py). This module
supplies the reusable pieces those models are built from and the translation
from pydantic's error list into the {field: message} map clients receive:

  validate_payload(Model, payload) -> Model instance, or raises
      ValidationFailed with one message per lower-cased field name. Every
      field is evaluated; the first failing rule for a field wins.

Rule kinds map to fixed messages (_MESSAGES below). Custom rules raise
PydanticCustomError with their final wording as the template, so the
translator can pass error["msg"] through unchanged.

Domain checks (password complexity, phone/region, year, interests, role) are
plain functions returning None on success or a message on failure. The
models wrap some of them as field validators; the signup flow calls the
others directly at the point its state machine requires.

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations

import re
from typing import Annotated, Any, TypeVar
import phonenumbers
from pydantic import AfterValidator, BaseModel, EmailStr, HttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticCustomError

from core.errors import ValidationFailed

ModelT = TypeVar("ModelT", bound=BaseModel)

VALID_ROLES: tuple[str, ...] = ("student", "company", "admin")

MIN_PASSWORD_LENGTH = 8
PASSWORD_SPECIAL_CHARS = "!@#$%^&*()_+-=[]{};':\"\\|,.<>/?"

MIN_YEAR = 1900
MAX_YEAR = 2100

MIN_INTEREST_LENGTH = 2
MAX_INTEREST_LENGTH = 50

REQUIRED_MESSAGE = "This field is required"

_MESSAGES = {
    "missing": REQUIRED_MESSAGE,
    "string_too_short": "Value is too short",
    "too_short": "Value is too short",
    "string_too_long": "Value is too long",
    "too_long": "Value is too long",
    "literal_error": "Invalid value",
    "enum": "Invalid value",
}

# Error types raised by the custom rules below. Their msg is already final.
_CUSTOM_TYPES = frozenset({"numeric", "email", "url", "fields_mismatch", "domain"})

_NUMERIC_RE = re.compile(r"^[+-]?\d+$")


# ---------------------------------------------------------------------------
# Domain checks
# ---------------------------------------------------------------------------


def check_password_complexity(password: str) -> str | None:
    """Return None if the password meets the policy, else the first failure.

    Every category is scanned; the message follows a fixed priority:
    length, uppercase, lowercase, digit, special character.
    """
    has_upper = any(ch.isupper() for ch in password)
    has_lower = any(ch.islower() for ch in password)
    has_digit = any(ch.isdigit() for ch in password)
    has_special = any(ch in PASSWORD_SPECIAL_CHARS for ch in password)

    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
    if not has_upper:
        return "Password must contain at least one uppercase letter"
    if not has_lower:
        return "Password must contain at least one lowercase letter"
    if not has_digit:
        return "Password must contain at least one number"
    if not has_special:
        return "Password must contain at least one special character"
    return None


def check_phone(phone: str, region: str) -> str | None:
    """Validate a phone number against a two-letter region code.

    The region re-derived from the parsed number must equal the supplied
    region, so a valid number for another country is rejected.
    """
    if not phone or not region:
        return "Phone number and country code are required"
    region = region.strip().upper()
    try:
        parsed = phonenumbers.parse(phone, region)
    except phonenumbers.NumberParseException:
        return "Invalid phone number format"
    if not phonenumbers.is_valid_number(parsed):
        return "Phone number is not valid for the specified country"
    if phonenumbers.region_code_for_number(parsed) != region:
        return "Phone number country code does not match the specified country"
    return None


def check_year(value: Any) -> str | None:
    try:
        year = int(str(value).strip())
    except (TypeError, ValueError):
        return "Year must be a number"
    if year < MIN_YEAR or year > MAX_YEAR:
        return f"Year must be between {MIN_YEAR} and {MAX_YEAR}"
    return None


def normalize_interests(items: list[str]) -> tuple[list[str], str | None]:
    """Deduplicate interests (first occurrence wins, order kept) and check lengths.

    Returns (unique_items, None) on success or ([], message) when any element
    falls outside the allowed length.
    """
    seen: set[str] = set()
    unique: list[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        if not MIN_INTEREST_LENGTH <= len(item) <= MAX_INTEREST_LENGTH:
            return [], f"An interest should be between {MIN_INTEREST_LENGTH} & {MAX_INTEREST_LENGTH} characters"
        unique.append(item)
    return unique, None


def check_role(value: str) -> str | None:
    if value not in VALID_ROLES:
        return "Invalid role specified"
    return None


# ---------------------------------------------------------------------------
# Reusable field types
# ---------------------------------------------------------------------------


def _numeric(value: str) -> str:
    if not _NUMERIC_RE.match(value):
        raise PydanticCustomError("numeric", "Value must be numeric")
    return value


_EMAIL_ADAPTER = TypeAdapter(EmailStr)
_URL_ADAPTER = TypeAdapter(HttpUrl)


def _email(value: str) -> str:
    try:
        _EMAIL_ADAPTER.validate_python(value)
    except PydanticValidationError:
        raise PydanticCustomError("email", "Please provide a valid email address") from None
    return value


def _http_url(value: str) -> str:
    # The parser percent-encodes inner spaces, so whitespace is rejected up front.
    if any(ch.isspace() for ch in value):
        raise PydanticCustomError("url", "Please provide a valid URL")
    try:
        _URL_ADAPTER.validate_python(value)
    except PydanticValidationError:
        raise PydanticCustomError("url", "Please provide a valid URL") from None
    return value


def _year(value: str) -> str:
    message = check_year(value)
    if message:
        raise PydanticCustomError("domain", message)
    return str(int(value))


NumericStr = Annotated[str, AfterValidator(_numeric)]
EmailAddress = Annotated[str, AfterValidator(_email)]
HttpUrlStr = Annotated[str, AfterValidator(_http_url)]
YearStr = Annotated[str, AfterValidator(_year)]


def domain_error(message: str) -> PydanticCustomError:
    """Build an error for a field validator wrapping a domain check."""
    return PydanticCustomError("domain", message)


def mismatch_error() -> PydanticCustomError:
    return PydanticCustomError("fields_mismatch", "Fields do not match")


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------


def _message_for(error: dict) -> str:
    error_type = error.get("type", "")
    if error_type in _CUSTOM_TYPES:
        return error["msg"]
    if error_type == "value_error":
        ctx_error = (error.get("ctx") or {}).get("error")
        return str(ctx_error) if ctx_error else "Invalid value"
    if error_type == "string_too_short" and error.get("input") == "":
        return REQUIRED_MESSAGE
    if error_type in _MESSAGES:
        return _MESSAGES[error_type]
    if error.get("input") is None:
        return REQUIRED_MESSAGE
    return "Invalid value"


def errors_to_field_map(exc: PydanticValidationError) -> dict[str, str]:
    """Collapse a pydantic error list to {lower-cased field: first message}.

    List items (loc like ("interests", 2)) report under their parent field.
    Model-level errors with an empty loc report under "validation".
    """
    field_errors: dict[str, str] = {}
    for error in exc.errors():
        loc = error.get("loc") or ()
        field = str(loc[0]).lower() if loc else "validation"
        field_errors.setdefault(field, _message_for(error))
    return field_errors


def validate_payload(model: type[ModelT], payload: Any) -> ModelT:
    """Validate a sanitized payload against a request model.

    Raises ValidationFailed carrying the full {field: message} map.
    """
    if not isinstance(payload, dict):
        raise ValidationFailed({"validation": "Invalid payload"})
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationFailed(errors_to_field_map(exc)) from exc
