"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class. Dataclasses own domain shape; the store maps rows onto
them and the flows in auth/service.py do the work.

Role is a closed variant. Rather than one flat record with optional fields
for every role, the role-specific data lives in exactly one payload object:

    StudentProfile | CompanyProfile | AdminProfile

User.role is derived from the payload type, so a user can never carry
company fields while claiming to be a student. public_profile() and
compute_profile_complete() dispatch on the payload with a match statement.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass
class StudentProfile:
    university: str = ""
    major: str = ""
    graduation_year: str = ""
    interests: list[str] = field(default_factory=list)
    linked_in_url: str = ""


@dataclass
class CompanyProfile:
    company_name: str = ""
    company_email: str = ""
    company_location: str = ""
    industry: str = ""
    description: str = ""


@dataclass
class AdminProfile:
    pass


RoleProfile = Union[StudentProfile, CompanyProfile, AdminProfile]

_STUDENT_FIELDS = frozenset(StudentProfile.__dataclass_fields__)
_COMPANY_FIELDS = frozenset(CompanyProfile.__dataclass_fields__)


def profile_for_role(role: str, **fields: Any) -> RoleProfile:
    """Build the role payload for a role string, ignoring fields it does not own."""
    match role:
        case "student":
            return StudentProfile(**{k: v for k, v in fields.items() if k in _STUDENT_FIELDS and v is not None})
        case "company":
            return CompanyProfile(**{k: v for k, v in fields.items() if k in _COMPANY_FIELDS and v is not None})
        case "admin":
            return AdminProfile()
    raise ValueError(f"Unknown role {role!r}")


@dataclass
class User:
    """A platform account.

    id is None until the store assigns one on insert.

    password_hash is a bcrypt hash. refresh_token_hash is an HMAC of the
    refresh token handed to the client -- the plaintext is never stored.
    email_verification_token is stored as-is: it is single-use, expires in
    24 hours and grants nothing beyond flipping is_email_verified.

    google_id / linkedin_id are kept on the record for social login, which
    this service does not implement.
    """

    email: str
    full_name: str
    profile: RoleProfile = field(default_factory=StudentProfile)
    id: str | None = None
    password_hash: str | None = None
    phone: str = ""
    city: str = ""
    profile_image: str = ""
    bio: str = ""
    is_email_verified: bool = False
    email_verification_token: str | None = None
    email_verification_expires: str | None = None  # ISO 8601
    refresh_token_hash: str | None = None
    refresh_token_expires: str | None = None  # ISO 8601
    is_active: bool = True
    is_profile_complete: bool = False
    google_id: str | None = None
    linkedin_id: str | None = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def role(self) -> str:
        match self.profile:
            case StudentProfile():
                return "student"
            case CompanyProfile():
                return "company"
            case AdminProfile():
                return "admin"
        raise TypeError(f"Unsupported profile type {type(self.profile).__name__}")


def compute_profile_complete(user: User) -> bool:
    """Return True iff every field mandatory for the user's role is non-empty."""
    base = (user.full_name, user.email, user.phone, user.city, user.profile_image)
    if not all(base):
        return False
    match user.profile:
        case StudentProfile(university=u, major=m, graduation_year=y, interests=i, linked_in_url=url):
            return all((u, m, y, i, url, user.bio))
        case CompanyProfile(company_name=n, company_email=e, company_location=loc, industry=ind, description=d):
            return all((n, e, loc, ind, d))
        case AdminProfile():
            return True
    return False


def signup_summary(user: User) -> dict:
    """The non-sensitive subset returned by signup."""
    return {
        "id": user.id,
        "fullName": user.full_name,
        "email": user.email,
        "role": user.role,
        "isEmailVerified": user.is_email_verified,
    }


def public_profile(user: User) -> dict:
    """Project a user onto the JSON shape clients see.

    Secrets (password hash, refresh hash, verification token) never appear.
    """
    base = {
        "id": user.id,
        "fullName": user.full_name,
        "email": user.email,
        "role": user.role,
        "phone": user.phone,
        "city": user.city,
        "isEmailVerified": user.is_email_verified,
        "isActive": user.is_active,
        "isProfileComplete": user.is_profile_complete,
        "profileImage": user.profile_image,
        "createdAt": user.created_at,
        "updatedAt": user.updated_at,
    }
    match user.profile:
        case StudentProfile() as student:
            return {
                **base,
                "linkedInUrl": student.linked_in_url,
                "university": student.university,
                "major": student.major,
                "graduationYear": student.graduation_year,
                "interests": list(student.interests),
                "bio": user.bio,
            }
        case CompanyProfile() as company:
            return {
                **base,
                "companyName": company.company_name,
                "companyEmail": company.company_email,
                "companyLocation": company.company_location,
                "industry": company.industry,
                "description": company.description,
            }
    return base
