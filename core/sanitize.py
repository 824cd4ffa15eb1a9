"""
core/sanitize.py -- Input cleanup applied to untrusted strings before validation.

sanitize() is a pure function: no configuration, no module-level mutable
state. The payload helpers below apply it field by field for each entry point
(signup, login, profile update) and are threaded explicitly through the auth
flows -- there is no global sanitizer instance.

Cleanup steps, in order:
  1. NFKC normalization (fullwidth and compatibility forms fold to ASCII, so
     "＜script＞" cannot slip past the tag filter).
  2. Strip <...> tags.
  3. Strip javascript: scheme prefixes (case-insensitive, whitespace allowed
     before the colon).
  4. Drop zero-width / bidi control characters and any other non-printable
     control character except newline and tab.
  5. Trim surrounding whitespace.

The steps repeat until the value stops changing. Removing one construct can
assemble another ("<<b>script>", "javajavascript:script:"), so a single pass
is not idempotent.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any

_HTML_TAG_RE = re.compile(r"<[^>]*>")
_JS_SCHEME_RE = re.compile(r"javascript\s*:", re.IGNORECASE)

# Zero-width joiners/spaces, bidi embeddings/overrides/isolates, and BOM.
_INVISIBLE_CHARS = frozenset(
    "\u200b\u200c\u200d\u200e\u200f"
    "\u202a\u202b\u202c\u202d\u202e"
    "\u2066\u2067\u2068\u2069"
    "\ufeff"
)

_KEEP_CONTROLS = frozenset("\n\t")


def _strip_controls(value: str) -> str:
    return "".join(
        ch
        for ch in value
        if ch not in _INVISIBLE_CHARS and (ch in _KEEP_CONTROLS or unicodedata.category(ch) != "Cc")
    )


def _clean_once(value: str) -> str:
    value = unicodedata.normalize("NFKC", value)
    value = _HTML_TAG_RE.sub("", value)
    value = _JS_SCHEME_RE.sub("", value)
    value = _strip_controls(value)
    return value.strip()


def sanitize(value: Any) -> str:
    """Return a cleaned copy of an untrusted string. Never raises.

    Non-string input is coerced with str(); None becomes "".
    """
    if value is None:
        return ""
    if not isinstance(value, str):
        try:
            value = str(value)
        except Exception:
            return ""
    # Terminates: after the first pass NFKC is stable and every step only removes.
    while True:
        cleaned = _clean_once(value)
        if cleaned == value:
            break
        value = cleaned
    return value


# ---------------------------------------------------------------------------
# Payload helpers
#
# Each helper returns a NEW dict and never mutates the raw payload. Keys whose
# value is blank after cleanup are dropped so "missing" and "blank" validate
# identically (both report "This field is required").
# ---------------------------------------------------------------------------

_TEXT_FIELDS = (
    "fullName",
    "phone",
    "city",
    "university",
    "major",
    "graduationYear",
    "companyName",
    "companyLocation",
    "industry",
    "description",
    "bio",
)
_LOWER_FIELDS = ("email", "companyEmail")
_URL_FIELDS = ("linkedInUrl", "profileImage")


def _strip_blank(payload: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in payload.items() if v is not None and v != "" and v != []}


def _sanitize_interests(value: Any) -> Any:
    if isinstance(value, list):
        return [sanitize(item) for item in value]
    return value


def _sanitize_common(raw: dict[str, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, value in raw.items():
        if key in _TEXT_FIELDS:
            cleaned[key] = sanitize(value)
        elif key in _LOWER_FIELDS:
            cleaned[key] = sanitize(value).lower()
        elif key in _URL_FIELDS:
            # URLs are only trimmed; the URL rule rejects javascript: and friends.
            cleaned[key] = value.strip() if isinstance(value, str) else value
        elif key == "countryCode":
            cleaned[key] = value.strip().upper() if isinstance(value, str) else value
        elif key == "role":
            cleaned[key] = value.strip().lower() if isinstance(value, str) else value
        elif key == "interests":
            cleaned[key] = _sanitize_interests(value)
        else:
            # Passwords and unknown keys pass through untouched.
            cleaned[key] = value
    return cleaned


def sanitize_signup_payload(raw: dict[str, Any]) -> dict[str, Any]:
    """Clean a signup body and default a blank role to "student"."""
    cleaned = _strip_blank(_sanitize_common(raw))
    cleaned.setdefault("role", "student")
    return cleaned


def sanitize_login_payload(raw: dict[str, Any]) -> dict[str, Any]:
    cleaned = dict(raw)
    if "email" in cleaned:
        cleaned["email"] = sanitize(cleaned["email"]).lower()
    return _strip_blank(cleaned)


def sanitize_profile_payload(raw: dict[str, Any]) -> dict[str, Any]:
    return _strip_blank(_sanitize_common(raw))


def sanitize_token_payload(raw: dict[str, Any]) -> dict[str, Any]:
    """Clean a body that carries only opaque tokens (refresh exchange)."""
    return _strip_blank({k: sanitize(v) if isinstance(v, str) else v for k, v in raw.items()})


def sanitize_password_payload(raw: dict[str, Any]) -> dict[str, Any]:
    """Passwords are compared byte for byte, so only blank keys are dropped."""
    return _strip_blank(dict(raw))
