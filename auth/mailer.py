"""
auth/mailer.py -- Outbound email: SMTP sender and the fire-and-forget dispatcher.

EmailSender is the narrow seam the auth flows depend on. Two implementations:

  SmtpEmailSender -- smtplib over STARTTLS (or implicit TLS on port 465).
  LogOnlySender   -- used when SMTP_HOST is empty; logs and drops the message
                     so signup works on a developer machine without a relay.

EmailDispatcher runs each send as an independent asyncio task. The send
itself is blocking smtplib work and runs in a worker thread. The task is
created on the event loop, not awaited by the request, so a client
disconnecting (request cancellation) does not cancel a send that has already
been handed off. Each dispatch returns a single-shot future resolving to None
on success or to the exception on failure; failures are logged here and
nothing else is required of the caller.

Tasks are held in a set until they finish so they are not garbage collected
mid-flight. drain() is called from the application lifespan on shutdown and
waits a bounded grace period for outstanding sends.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

from core.config import Settings, get_settings

logger = logging.getLogger("talentspal.mailer")

_IMPLICIT_TLS_PORT = 465


@dataclass(frozen=True)
class EmailMessageSpec:
    to: str
    subject: str
    text: str
    html: str | None = None


class EmailSender(Protocol):
    def send(self, message: EmailMessageSpec) -> None:
        """Deliver message. Blocking; raises on failure."""
        ...


class SmtpEmailSender:
    """Send mail through the SMTP relay configured in settings."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    def _build(self, message: EmailMessageSpec) -> MIMEMultipart:
        s = self._settings
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = f"{s.app_name} <{s.email_from}>"
        msg["To"] = message.to
        msg.attach(MIMEText(message.text, "plain", "utf-8"))
        if message.html:
            msg.attach(MIMEText(message.html, "html", "utf-8"))
        return msg

    def send(self, message: EmailMessageSpec) -> None:
        s = self._settings
        msg = self._build(message)
        if s.smtp_port == _IMPLICIT_TLS_PORT:
            server: smtplib.SMTP = smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout_seconds)
        else:
            server = smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout_seconds)
        with server:
            if s.smtp_port != _IMPLICIT_TLS_PORT:
                server.ehlo()
                if server.has_extn("starttls"):
                    server.starttls()
                    server.ehlo()
            if s.smtp_user:
                server.login(s.smtp_user, s.smtp_pass)
            server.send_message(msg)
        logger.info("Sent email %r to %s", message.subject, message.to)


class LogOnlySender:
    """Stand-in used when no SMTP host is configured."""

    def send(self, message: EmailMessageSpec) -> None:
        logger.warning("SMTP_HOST not set -- skipping email %r to %s", message.subject, message.to)


def sender_from_settings(settings: Settings | None = None) -> EmailSender:
    settings = settings or get_settings()
    if not settings.smtp_host:
        return LogOnlySender()
    return SmtpEmailSender(settings)


class EmailDispatcher:
    """Hands messages to background tasks and tracks them until they finish."""

    def __init__(self, sender: EmailSender, grace_seconds: float = 10.0) -> None:
        self._sender = sender
        self._grace_seconds = grace_seconds
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, message: EmailMessageSpec, purpose: str = "email") -> asyncio.Future:
        """Start delivering message in the background and return its completion future.

        Must be called from code running on the event loop.
        """
        loop = asyncio.get_running_loop()
        done: asyncio.Future = loop.create_future()
        task = loop.create_task(self._deliver(message, purpose, done))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return done

    async def _deliver(self, message: EmailMessageSpec, purpose: str, done: asyncio.Future) -> None:
        try:
            await asyncio.to_thread(self._sender.send, message)
        except Exception as exc:
            logger.warning("Failed to send %s email to %s: %s", purpose, message.to, exc)
            if not done.done():
                done.set_result(exc)
            return
        if not done.done():
            done.set_result(None)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for outstanding sends; cancel whatever is still running after the grace period."""
        if not self._tasks:
            return
        pending = set(self._tasks)
        finished, unfinished = await asyncio.wait(pending, timeout=self._grace_seconds if timeout is None else timeout)
        for task in unfinished:
            task.cancel()
        if unfinished:
            logger.warning("Abandoned %d email send(s) at shutdown", len(unfinished))
        logger.info("Email dispatcher drained (%d delivered or failed)", len(finished))
