"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts and reference data.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Flow and route code never touches SQL directly.

The store is the only shared mutable state between requests. Every mutation
is a single-row read-modify-write; the two that guard invariants are
conditional updates rather than read-then-write:

  swap_refresh_token()        -- writes the new refresh hash only if the row
                                 still holds the hash the caller read.
  redeem_verification_token() -- flips is_email_verified only for a row whose
                                 token matches and has not expired, clearing
                                 the token in the same statement.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Emails are lower-cased on every write and lookup; combined with the UNIQUE
  column this makes email uniqueness case-insensitive.

Timestamps are ISO 8601 UTC strings with fixed microsecond precision, so
lexicographic comparison in SQL matches chronological order.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine

from auth.models import AdminProfile, CompanyProfile, StudentProfile, User, profile_for_role
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text),  # NULL for social-login-only users
    Column("role", String(20), nullable=False, server_default="student"),
    Column("full_name", String(100), nullable=False),
    Column("phone", String(32), nullable=False, server_default=""),
    Column("city", String(50), nullable=False, server_default=""),
    Column("profile_image", Text, nullable=False, server_default=""),
    Column("bio", Text, nullable=False, server_default=""),
    # Student payload
    Column("university", String(100)),
    Column("major", String(50)),
    Column("graduation_year", String(4)),
    Column("interests", Text),  # JSON array
    Column("linked_in_url", Text),
    # Company payload
    Column("company_name", String(50)),
    Column("company_email", String(255)),
    Column("company_location", String(100)),
    Column("industry", String(50)),
    Column("description", Text),
    # Verification
    Column("is_email_verified", Boolean, nullable=False, server_default="0"),
    Column("email_verification_token", String(64), index=True),
    Column("email_verification_expires", String(32)),
    # Session
    Column("refresh_token_hash", String(64), index=True),
    Column("refresh_token_expires", String(32)),
    # Flags
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("is_profile_complete", Boolean, nullable=False, server_default="0"),
    # Social login linkage (unused by this service)
    Column("google_id", String(64)),
    Column("linkedin_id", String(64)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


def _reference_table(name: str) -> Table:
    return Table(
        name,
        _metadata,
        Column("id", String(32), primary_key=True),
        Column("name", String(100), nullable=False, unique=True),
        Column("is_active", Boolean, nullable=False, server_default="1"),
        Column("created_at", String(32), nullable=False),
    )


# Reference collections checked at signup / profile update.
REFERENCE_KINDS = ("cities", "universities", "majors", "industries")
_reference_tables: dict[str, Table] = {kind: _reference_table(kind) for kind in REFERENCE_KINDS}

_STUDENT_COLUMNS = ("university", "major", "graduation_year", "interests", "linked_in_url")
_COMPANY_COLUMNS = ("company_name", "company_email", "company_location", "industry", "description")


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """Serialize a timezone-aware datetime in the store's sortable format."""
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records and the reference collections.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user_id = store.create_user(User(email="a@b.co", full_name="Ada"))
        user = store.get_by_email("A@B.co")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = get_settings().db_timeout_seconds
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a new user and return its assigned ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Signup checks first; the IntegrityError only surfaces when two
        requests race past that check, and the caller maps it to a conflict.
        """
        now = to_iso(utc_now())
        user_id = user.id or _new_id()
        values = _user_to_values(user)
        values.update(id=user_id, created_at=user.created_at or now, updated_at=user.updated_at or now)
        with self.engine.begin() as conn:
            conn.execute(_users.insert().values(**values))
        return user_id

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email, case-insensitively. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email.strip().lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def email_exists(self, email: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(_users.c.id).where(_users.c.email == email.strip().lower())).fetchone()
        return row is not None

    def get_by_refresh_hash(self, token_hash: str, now: datetime | None = None) -> User | None:
        """Return the user holding this refresh hash, if it has not expired."""
        now_iso = to_iso(now or utc_now())
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(
                    (_users.c.refresh_token_hash == token_hash) & (_users.c.refresh_token_expires > now_iso)
                )
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_user(self, user_id: str, **fields) -> bool:
        """Update columns on an existing user. Stamps updated_at.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - set(_users.c.keys())
        if unknown:
            raise ValueError(f"Unknown user columns: {sorted(unknown)!r}")
        if "email" in fields:
            fields["email"] = fields["email"].strip().lower()
        if "interests" in fields and fields["interests"] is not None:
            fields["interests"] = json.dumps(fields["interests"])
        fields.setdefault("updated_at", to_iso(utc_now()))
        with self.engine.begin() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
        return result.rowcount > 0

    def save_profile(self, user: User) -> bool:
        """Write every profile column of user, including the derived completeness flag."""
        values = _user_to_values(user)
        for key in ("email", "password_hash", "created_at", "google_id", "linkedin_id"):
            values.pop(key, None)
        for key in (
            "is_email_verified",
            "email_verification_token",
            "email_verification_expires",
            "refresh_token_hash",
            "refresh_token_expires",
            "is_active",
        ):
            values.pop(key, None)
        values["updated_at"] = user.updated_at or to_iso(utc_now())
        with self.engine.begin() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user.id).values(**values))
        return result.rowcount > 0

    def swap_refresh_token(
        self,
        user_id: str,
        expected_hash: str | None,
        new_hash: str,
        new_expires: str,
    ) -> bool:
        """Replace the stored refresh hash only if it still equals expected_hash.

        Returns False when another writer rotated the token first.
        """
        if expected_hash is None:
            guard = _users.c.refresh_token_hash.is_(None)
        else:
            guard = _users.c.refresh_token_hash == expected_hash
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & guard)
                .values(
                    refresh_token_hash=new_hash,
                    refresh_token_expires=new_expires,
                    updated_at=to_iso(utc_now()),
                )
            )
        return result.rowcount > 0

    def redeem_verification_token(self, token: str, now: datetime | None = None) -> User | None:
        """Consume an unexpired verification token and mark the email verified.

        The lookup and the update share one transaction, and the update
        repeats the token/expiry predicate, so of two concurrent redemptions
        of the same token exactly one sees a matching row.

        Returns the updated user, or None for an unknown or expired token.
        """
        now_iso = to_iso(now or utc_now())
        predicate = (_users.c.email_verification_token == token) & (_users.c.email_verification_expires > now_iso)
        with self.engine.begin() as conn:
            row = conn.execute(select(_users.c.id).where(predicate)).fetchone()
            if row is None:
                return None
            result = conn.execute(
                _users.update()
                .where((_users.c.id == row.id) & predicate)
                .values(
                    is_email_verified=True,
                    email_verification_token=None,
                    email_verification_expires=None,
                    updated_at=now_iso,
                )
            )
            if result.rowcount == 0:
                return None
            updated = conn.execute(_users.select().where(_users.c.id == row.id)).fetchone()
        return _row_to_user(updated)

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    def reference_exists(self, kind: str, name: str) -> bool:
        """Return True if an active entry with exactly this name exists in the collection."""
        table = _reference_table_for(kind)
        with self.engine.connect() as conn:
            row = conn.execute(
                select(table.c.id).where((table.c.name == name) & (table.c.is_active.is_(True)))
            ).fetchone()
        return row is not None

    def add_references(self, kind: str, names: list[str]) -> int:
        """Insert names not already present. Returns the number inserted."""
        table = _reference_table_for(kind)
        now = to_iso(utc_now())
        inserted = 0
        with self.engine.begin() as conn:
            existing = {r.name for r in conn.execute(select(table.c.name)).fetchall()}
            for name in dict.fromkeys(n.strip() for n in names if n and n.strip()):
                if name in existing:
                    continue
                conn.execute(table.insert().values(id=_new_id(), name=name, created_at=now))
                inserted += 1
        return inserted

    def list_references(self, kind: str) -> list[str]:
        table = _reference_table_for(kind)
        with self.engine.connect() as conn:
            rows = conn.execute(select(table.c.name).order_by(table.c.name)).fetchall()
        return [r.name for r in rows]

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


def _reference_table_for(kind: str) -> Table:
    try:
        return _reference_tables[kind]
    except KeyError:
        raise ValueError(f"Unknown reference collection {kind!r}") from None


# ---------------------------------------------------------------------------
# Mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _user_to_values(user: User) -> dict:
    values = {
        "email": user.email.strip().lower(),
        "password_hash": user.password_hash,
        "role": user.role,
        "full_name": user.full_name,
        "phone": user.phone,
        "city": user.city,
        "profile_image": user.profile_image,
        "bio": user.bio,
        "is_email_verified": user.is_email_verified,
        "email_verification_token": user.email_verification_token,
        "email_verification_expires": user.email_verification_expires,
        "refresh_token_hash": user.refresh_token_hash,
        "refresh_token_expires": user.refresh_token_expires,
        "is_active": user.is_active,
        "is_profile_complete": user.is_profile_complete,
        "google_id": user.google_id,
        "linkedin_id": user.linkedin_id,
    }
    # Columns of the other roles are written as NULL so a role payload never
    # leaves stale data behind.
    values.update({col: None for col in _STUDENT_COLUMNS + _COMPANY_COLUMNS})
    match user.profile:
        case StudentProfile() as student:
            values.update(
                university=student.university,
                major=student.major,
                graduation_year=student.graduation_year,
                interests=json.dumps(student.interests),
                linked_in_url=student.linked_in_url,
            )
        case CompanyProfile() as company:
            values.update(
                company_name=company.company_name,
                company_email=company.company_email,
                company_location=company.company_location,
                industry=company.industry,
                description=company.description,
            )
        case AdminProfile():
            pass
    return values


def _row_to_user(row) -> User:
    role_fields = {col: getattr(row, col) for col in _STUDENT_COLUMNS + _COMPANY_COLUMNS}
    role_fields["interests"] = json.loads(row.interests) if row.interests else []
    return User(
        id=row.id,
        email=row.email,
        full_name=row.full_name,
        profile=profile_for_role(row.role, **role_fields),
        password_hash=row.password_hash,
        phone=row.phone or "",
        city=row.city or "",
        profile_image=row.profile_image or "",
        bio=row.bio or "",
        is_email_verified=bool(row.is_email_verified),
        email_verification_token=row.email_verification_token,
        email_verification_expires=row.email_verification_expires,
        refresh_token_hash=row.refresh_token_hash,
        refresh_token_expires=row.refresh_token_expires,
        is_active=bool(row.is_active),
        is_profile_complete=bool(row.is_profile_complete),
        google_id=row.google_id,
        linkedin_id=row.linkedin_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
