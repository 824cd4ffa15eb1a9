"""Unit tests for core/validation.py and the request models in auth/schemas.py.

Covers:
- domain checks: password policy priority, phone/region agreement, year
  range, interest dedupe + length, role membership
- validate_payload(): one message per lower-cased field, every field
  evaluated, rule-kind messages
"""

from __future__ import annotations

import pytest

from auth.schemas import LoginRequest, PasswordChangeRequest, ProfileUpdateRequest, SignupRequest
from core.errors import ValidationFailed
from core.validation import (
    REQUIRED_MESSAGE,
    check_password_complexity,
    check_phone,
    check_role,
    check_year,
    normalize_interests,
    validate_payload,
)

VALID_US_PHONE = "+12015550123"


def _signup(**overrides) -> dict:
    body = {
        "fullName": "Lina Haddad",
        "email": "lina@example.com",
        "password": "Str0ng!Pass",
        "confirmPassword": "Str0ng!Pass",
        "role": "student",
        "countryCode": "US",
        "phone": VALID_US_PHONE,
        "city": "Ramallah",
    }
    body.update(overrides)
    return {k: v for k, v in body.items() if v is not None}


def _errors(model, payload) -> dict[str, str]:
    with pytest.raises(ValidationFailed) as exc_info:
        validate_payload(model, payload)
    return exc_info.value.errors


# ---------------------------------------------------------------------------
# Domain checks
# ---------------------------------------------------------------------------


class TestPasswordComplexity:
    @pytest.mark.parametrize(
        "password, fragment",
        [
            ("Sh0rt!", "at least 8 characters"),
            ("lowercase1!", "uppercase letter"),
            ("UPPERCASE1!", "lowercase letter"),
            ("NoDigits!!", "number"),
            ("NoSpecial12", "special character"),
        ],
    )
    def test_missing_category_rejected(self, password, fragment):
        message = check_password_complexity(password)
        assert message is not None
        assert fragment in message

    def test_length_reported_before_categories(self):
        assert check_password_complexity("abc") == "Password must be at least 8 characters long"

    def test_upper_reported_before_digit(self):
        assert check_password_complexity("nodigitsorupper!") == "Password must contain at least one uppercase letter"

    @pytest.mark.parametrize("password", ["Str0ng!Pass", "aA1{aaaa", "Zz9|zzzz", "Q1w2e3r4?"])
    def test_compliant_password_accepted(self, password):
        assert check_password_complexity(password) is None


class TestPhone:
    def test_valid_number_for_region(self):
        assert check_phone(VALID_US_PHONE, "US") is None

    def test_national_format_parsed_under_region(self):
        assert check_phone("2015550123", "US") is None

    def test_valid_number_for_other_country_rejected(self):
        assert check_phone(VALID_US_PHONE, "GB") == "Phone number country code does not match the specified country"

    def test_unparseable_number(self):
        assert check_phone("not-a-number", "US") == "Invalid phone number format"

    def test_invalid_number(self):
        assert check_phone("12345", "US") == "Phone number is not valid for the specified country"

    def test_region_is_case_insensitive(self):
        assert check_phone(VALID_US_PHONE, "us") is None


class TestYearInterestsRole:
    @pytest.mark.parametrize("year", ["1900", "2026", "2100", 2030])
    def test_year_in_range(self, year):
        assert check_year(year) is None

    @pytest.mark.parametrize("year", ["1899", "2101"])
    def test_year_out_of_range(self, year):
        assert check_year(year) == "Year must be between 1900 and 2100"

    def test_year_not_a_number(self):
        assert check_year("twenty") == "Year must be a number"

    def test_interests_deduplicated_in_order(self):
        assert normalize_interests(["ai", "ai", "ml"]) == (["ai", "ml"], None)

    def test_short_interest_fails_whole_list(self):
        unique, message = normalize_interests(["ai", "a"])
        assert unique == []
        assert message == "An interest should be between 2 & 50 characters"

    def test_long_interest_fails(self):
        _, message = normalize_interests(["x" * 51])
        assert message is not None

    def test_roles(self):
        assert check_role("company") is None
        assert check_role("superuser") == "Invalid role specified"


# ---------------------------------------------------------------------------
# Request models through validate_payload
# ---------------------------------------------------------------------------


class TestSignupRequest:
    def test_valid_payload_returns_model(self):
        body = validate_payload(SignupRequest, _signup(interests=["ai", "ai", "ml"]))
        assert body.full_name == "Lina Haddad"
        assert body.interests == ["ai", "ml"]
        assert body.role == "student"

    def test_empty_payload_reports_every_required_field(self):
        errors = _errors(SignupRequest, {})
        for field in ("fullname", "email", "password", "confirmpassword", "countrycode", "phone", "city"):
            assert errors[field] == REQUIRED_MESSAGE
        assert "role" not in errors

    def test_every_field_evaluated_in_one_pass(self):
        errors = _errors(SignupRequest, _signup(fullName="A", email="nope", phone="12a"))
        assert errors == {
            "fullname": "Value is too short",
            "email": "Please provide a valid email address",
            "phone": "Value must be numeric",
        }

    def test_max_length(self):
        assert _errors(SignupRequest, _signup(fullName="x" * 101)) == {"fullname": "Value is too long"}

    def test_confirmation_must_match(self):
        assert _errors(SignupRequest, _signup(confirmPassword="Other!Pass1")) == {"confirmpassword": "Fields do not match"}

    def test_short_password_is_a_length_error(self):
        errors = _errors(SignupRequest, _signup(password="Ab1!", confirmPassword="Ab1!"))
        assert errors["password"] == "Value is too short"

    def test_unknown_role(self):
        assert _errors(SignupRequest, _signup(role="superuser")) == {"role": "Invalid role specified"}

    @pytest.mark.parametrize(
        "url",
        ["javascript:alert(1)", "http://[::1", "ftp://files.example.com/cv.pdf", "https://", "https://www.linkedin.com/in/a b"],
    )
    def test_url_rule(self, url):
        errors = _errors(SignupRequest, _signup(linkedInUrl=url))
        assert errors == {"linkedinurl": "Please provide a valid URL"}

    def test_url_kept_as_submitted(self):
        body = validate_payload(SignupRequest, _signup(linkedInUrl="https://www.linkedin.com/in/lina"))
        assert body.linked_in_url == "https://www.linkedin.com/in/lina"

    @pytest.mark.parametrize("email", ["a..b@example.com", "a@-b.example.com", "a@b..com", ".a@example.com", "nope"])
    def test_malformed_email(self, email):
        assert _errors(SignupRequest, _signup(email=email)) == {"email": "Please provide a valid email address"}

    def test_malformed_company_email(self):
        errors = _errors(SignupRequest, _signup(role="company", companyEmail="jobs@@acme.io"))
        assert errors == {"companyemail": "Please provide a valid email address"}

    def test_year_rule(self):
        errors = _errors(SignupRequest, _signup(graduationYear="1800"))
        assert errors == {"graduationyear": "Year must be between 1900 and 2100"}

    def test_interest_length_rule(self):
        errors = _errors(SignupRequest, _signup(interests=["a"]))
        assert errors == {"interests": "An interest should be between 2 & 50 characters"}

    def test_company_field_lengths(self):
        errors = _errors(SignupRequest, _signup(role="company", companyName="A", companyLocation="x" * 101))
        assert errors == {"companyname": "Value is too short", "companylocation": "Value is too long"}

    def test_non_object_payload(self):
        assert _errors(SignupRequest, ["not", "an", "object"]) == {"validation": "Invalid payload"}

    def test_wrong_type_is_invalid_value(self):
        assert _errors(SignupRequest, _signup(interests="ai")) == {"interests": "Invalid value"}


class TestOtherRequests:
    def test_login_requires_both_fields(self):
        assert _errors(LoginRequest, {}) == {"email": REQUIRED_MESSAGE, "password": REQUIRED_MESSAGE}

    def test_login_rejects_malformed_email(self):
        errors = _errors(LoginRequest, {"email": "a..b@example.com", "password": "Str0ng!Pass"})
        assert errors == {"email": "Please provide a valid email address"}

    def test_profile_update_everything_optional(self):
        body = validate_payload(ProfileUpdateRequest, {})
        assert body.full_name is None

    def test_profile_update_bio_bounds(self):
        assert _errors(ProfileUpdateRequest, {"bio": "too short"}) == {"bio": "Value is too short"}

    def test_password_change_confirmation(self):
        errors = _errors(
            PasswordChangeRequest,
            {"currentPassword": "Old!Pass1", "newPassword": "New!Pass1", "confirmNewPassword": "New!Pass2"},
        )
        assert errors == {"confirmnewpassword": "Fields do not match"}
