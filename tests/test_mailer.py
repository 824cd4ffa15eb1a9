"""Unit tests for auth/mailer.py -- SMTP sender and background dispatcher.

Covers:
- dispatch resolves its future with None on success, the exception on failure
- a failed send is logged and never raised into the caller
- cancelling the dispatching coroutine does not cancel the send
- drain() waits for outstanding sends and abandons them after the grace period
- SmtpEmailSender speaks STARTTLS + login against a fake smtplib.SMTP
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
import threading
import time

from auth.mailer import (
    EmailDispatcher,
    EmailMessageSpec,
    LogOnlySender,
    SmtpEmailSender,
    sender_from_settings,
)
from conftest import RecordingSender
from core.config import Settings

MESSAGE = EmailMessageSpec(to="lina@example.com", subject="Hello", text="plain body", html="<p>html body</p>")


def _settings(**overrides) -> Settings:
    return Settings(secret_key="k" * 32, **overrides)


class SlowSender:
    def __init__(self, delay: float) -> None:
        self.delay = delay
        self.sent: list[EmailMessageSpec] = []

    def send(self, message: EmailMessageSpec) -> None:
        time.sleep(self.delay)
        self.sent.append(message)


class BlockingSender:
    def __init__(self) -> None:
        self.release = threading.Event()

    def send(self, message: EmailMessageSpec) -> None:
        self.release.wait(timeout=5)


class FakeSMTP:
    instances: list["FakeSMTP"] = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.calls: list[str] = []
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.calls.append("quit")
        return False

    def ehlo(self):
        self.calls.append("ehlo")

    def has_extn(self, name):
        return name == "starttls"

    def starttls(self):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(f"login:{user}")

    def send_message(self, msg):
        self.calls.append("send")
        self.sent.append(msg)


class TestEmailDispatcher:
    def test_success_resolves_none(self):
        sender = RecordingSender()

        async def scenario():
            dispatcher = EmailDispatcher(sender)
            return await dispatcher.dispatch(MESSAGE)

        assert asyncio.run(scenario()) is None
        assert sender.messages == [MESSAGE]

    def test_failure_resolves_to_exception_and_logs(self, caplog):
        sender = RecordingSender(fail=True)

        async def scenario():
            dispatcher = EmailDispatcher(sender)
            return await dispatcher.dispatch(MESSAGE, purpose="verification")

        with caplog.at_level(logging.WARNING, logger="talentspal.mailer"):
            outcome = asyncio.run(scenario())
        assert isinstance(outcome, ConnectionRefusedError)
        assert "Failed to send verification email to lina@example.com" in caplog.text

    def test_send_survives_caller_cancellation(self):
        sender = SlowSender(delay=0.05)

        async def scenario():
            dispatcher = EmailDispatcher(sender)
            handed_off: asyncio.Future = asyncio.get_running_loop().create_future()

            async def request_handler():
                handed_off.set_result(dispatcher.dispatch(MESSAGE))
                await asyncio.sleep(10)

            request = asyncio.create_task(request_handler())
            done = await handed_off
            request.cancel()
            return await done

        assert asyncio.run(scenario()) is None
        assert sender.sent == [MESSAGE]

    def test_drain_waits_for_pending_sends(self):
        sender = SlowSender(delay=0.05)

        async def scenario():
            dispatcher = EmailDispatcher(sender)
            dispatcher.dispatch(MESSAGE)
            dispatcher.dispatch(MESSAGE)
            assert dispatcher.pending == 2
            await dispatcher.drain(timeout=2.0)
            await asyncio.sleep(0)
            return dispatcher.pending

        assert asyncio.run(scenario()) == 0
        assert len(sender.sent) == 2

    def test_drain_abandons_after_grace_period(self, caplog):
        sender = BlockingSender()

        async def scenario():
            dispatcher = EmailDispatcher(sender, grace_seconds=0.05)
            dispatcher.dispatch(MESSAGE)
            try:
                await dispatcher.drain()
            finally:
                sender.release.set()

        with caplog.at_level(logging.WARNING, logger="talentspal.mailer"):
            asyncio.run(scenario())
        assert "Abandoned 1 email send(s) at shutdown" in caplog.text

    def test_drain_with_nothing_pending(self):
        async def scenario():
            await EmailDispatcher(RecordingSender()).drain()

        asyncio.run(scenario())


class TestSenders:
    def test_no_host_means_log_only(self):
        assert isinstance(sender_from_settings(_settings(smtp_host="")), LogOnlySender)

    def test_host_means_smtp(self):
        assert isinstance(sender_from_settings(_settings(smtp_host="smtp.example.com")), SmtpEmailSender)

    def test_log_only_sender_logs(self, caplog):
        with caplog.at_level(logging.WARNING, logger="talentspal.mailer"):
            LogOnlySender().send(MESSAGE)
        assert "skipping email 'Hello' to lina@example.com" in caplog.text

    def test_smtp_starttls_and_login(self, monkeypatch):
        FakeSMTP.instances.clear()
        monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
        settings = _settings(smtp_host="smtp.example.com", smtp_port=587, smtp_user="mailer", smtp_pass="pw")

        SmtpEmailSender(settings).send(MESSAGE)

        (server,) = FakeSMTP.instances
        assert (server.host, server.port) == ("smtp.example.com", 587)
        assert server.calls == ["ehlo", "starttls", "ehlo", "login:mailer", "send", "quit"]
        msg = server.sent[0]
        assert msg["To"] == "lina@example.com"
        assert msg["Subject"] == "Hello"
        assert settings.email_from in msg["From"]
        assert [part.get_content_type() for part in msg.get_payload()] == ["text/plain", "text/html"]

    def test_smtp_without_credentials_skips_login(self, monkeypatch):
        FakeSMTP.instances.clear()
        monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)

        SmtpEmailSender(_settings(smtp_host="smtp.example.com")).send(MESSAGE)

        assert not any(call.startswith("login") for call in FakeSMTP.instances[0].calls)

    def test_implicit_tls_port_uses_smtp_ssl(self, monkeypatch):
        FakeSMTP.instances.clear()
        monkeypatch.setattr(smtplib, "SMTP_SSL", FakeSMTP)

        SmtpEmailSender(_settings(smtp_host="smtp.example.com", smtp_port=465)).send(MESSAGE)

        (server,) = FakeSMTP.instances
        assert server.port == 465
        assert "starttls" not in server.calls
