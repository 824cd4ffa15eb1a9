"""
tests/conftest.py -- Shared test fixtures for TalentsPal tests.

This module provides:
  - RecordingSender: EmailSender that keeps messages in memory
  - make_test_store(): isolated named shared-memory SQLite store, seeded
  - _patch_lifespan(): wires a test store and dispatcher into app.state
  - client: (TestClient, store, sender) for integration tests
  - student_payload / company_payload: valid signup bodies

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because route handlers run store calls in worker threads. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import threading
import time
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set env before any auth/core import so get_settings() picks it up.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.mailer import EmailDispatcher, EmailMessageSpec
from auth.models import User
from auth.seed import seed_reference_data
from auth.store import UserStore
from auth.tokens import hash_password

# US example number from libphonenumber's metadata; always valid for "US".
VALID_US_PHONE = "+12015550123"
STRONG_PASSWORD = "Str0ng!Pass"


class RecordingSender:
    """EmailSender that records messages instead of sending them."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.messages: list[EmailMessageSpec] = []
        self._lock = threading.Lock()

    def send(self, message: EmailMessageSpec) -> None:
        if self.fail:
            raise ConnectionRefusedError("smtp relay unreachable")
        with self._lock:
            self.messages.append(message)

    def wait_for(self, count: int, timeout: float = 2.0) -> list[EmailMessageSpec]:
        """Block until count messages arrived (sends run in the background)."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            with self._lock:
                if len(self.messages) >= count:
                    return list(self.messages)
            time.sleep(0.01)
        with self._lock:
            return list(self.messages)


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_test_store(name: str | None = None, seed: bool = True) -> UserStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        name: DB name; a random one is used when omitted so tests never
              share state.
        seed: Load the default cities/universities/majors/industries.
    """
    db_name = name or f"talentspal_{uuid.uuid4().hex}"
    store = UserStore(db_url=f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    if seed:
        seed_reference_data(store)
    return store


def make_user(store: UserStore, email: str = "ada@example.com", password: str = STRONG_PASSWORD, **fields) -> User:
    """Insert a verified, active user directly through the store."""
    fields.setdefault("is_email_verified", True)
    full_name = fields.pop("full_name", "Ada Lovelace")
    user = User(email=email, full_name=full_name, password_hash=hash_password(password), **fields)
    user.id = store.create_user(user)
    return user


def _patch_lifespan(user_store: UserStore, dispatcher: EmailDispatcher):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test objects into app.state so TestClient routes see
    an isolated DB and a recording email sender.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.email_dispatcher = dispatcher
        yield
        await dispatcher.drain(timeout=2.0)

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = make_test_store()
    yield s
    s.close()


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def client(store: UserStore, sender: RecordingSender) -> Generator[tuple[TestClient, UserStore, RecordingSender], None, None]:
    """Yield (client, store, sender) for integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use an isolated in-memory store.
    """
    app.router.lifespan_context = _patch_lifespan(store, EmailDispatcher(sender))
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c, store, sender


@pytest.fixture
def student_payload() -> dict:
    return {
        "fullName": "Lina Haddad",
        "email": "Lina.Haddad@Example.com",
        "password": STRONG_PASSWORD,
        "confirmPassword": STRONG_PASSWORD,
        "role": "student",
        "countryCode": "US",
        "phone": VALID_US_PHONE,
        "city": "Ramallah",
        "university": "Birzeit University",
        "major": "Computer Science",
        "graduationYear": "2026",
        "interests": ["ai", "ai", "ml"],
        "linkedInUrl": "https://www.linkedin.com/in/lina",
    }


@pytest.fixture
def company_payload() -> dict:
    return {
        "fullName": "Omar Saleh",
        "email": "hr@acme.io",
        "password": STRONG_PASSWORD,
        "confirmPassword": STRONG_PASSWORD,
        "role": "company",
        "countryCode": "US",
        "phone": VALID_US_PHONE,
        "city": "Nablus",
        "companyName": "Acme Software",
        "companyEmail": "Jobs@Acme.io",
        "companyLocation": "Nablus, Rafidia Street",
        "industry": "Technology & IT",
        "description": "We build software for regional logistics companies.",
    }
