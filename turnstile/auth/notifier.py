# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Out-of-band user notifications.

The engine only depends on the Notifier protocol. Every call it makes is
best-effort: a notifier that raises or returns False never changes the
outcome of the credential operation that triggered it.

EmailNotifier sends over SMTP (blocking smtplib, run in a worker
thread). Without SMTP host/from address it runs in dev mode and logs
the message instead.
"""

import asyncio
import logging
import smtplib
import ssl
from collections.abc import Awaitable
from datetime import datetime
from email.message import EmailMessage
from typing import Protocol, runtime_checkable

from ..core.settings import NotificationSettings

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 30


@runtime_checkable
class Notifier(Protocol):
    """What the engine needs from an outbound notification channel."""

    async def send_security_alert(self, email: str, subject: str, message: str) -> bool: ...

    async def send_password_changed_notification(self, email: str) -> bool: ...

    async def send_password_reset_notification(
        self,
        email: str,
        token: str,
        reset_url: str | None,
        expires_at: datetime,
    ) -> bool: ...


async def deliver_best_effort(what: str, call: Awaitable[bool]) -> bool:
    """
    Await a notifier call without letting it fail the caller.

    Returns whether the notifier reported success.
    """
    try:
        sent = await call
    except Exception:
        logger.exception("Notification failed: %s", what)
        return False
    if not sent:
        logger.warning("Notification not delivered: %s", what)
    return bool(sent)


def redact_email(email: str) -> str:
    """Redact an address for logging."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class EmailNotifier:
    """
    SMTP implementation of Notifier.

    Usage:
        notifier = EmailNotifier(settings.notifications)
        await notifier.send_password_changed_notification("a@example.com")
    """

    def __init__(self, settings: NotificationSettings):
        self.host = settings.host
        self.port = settings.port
        self.user = settings.user
        self.password = settings.password
        self.use_tls = settings.use_tls
        self.from_email = settings.from_email or settings.user
        self.from_name = settings.from_name

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.from_email)

    # ============================================================
    # NOTIFIER PROTOCOL
    # ============================================================

    async def send_security_alert(self, email: str, subject: str, message: str) -> bool:
        body = (
            f"{message}\n\n"
            "If this was not you, change your password immediately. "
            "You will need to sign in again on your devices."
        )
        return await self._send(email, subject, body)

    async def send_password_changed_notification(self, email: str) -> bool:
        body = (
            "The password for your account was just changed.\n\n"
            "If you did not make this change, reset your password right away "
            "and contact your administrator."
        )
        return await self._send(email, "Your password was changed", body)

    async def send_password_reset_notification(
        self,
        email: str,
        token: str,
        reset_url: str | None,
        expires_at: datetime,
    ) -> bool:
        link = reset_url or f"Reset code: {token}"
        body = (
            "A password reset was requested for your account.\n\n"
            f"{link}\n\n"
            f"This link expires at {expires_at:%Y-%m-%d %H:%M} UTC. "
            "If you did not request a reset you can ignore this message."
        )
        return await self._send(email, "Reset your password", body)

    # ============================================================
    # TRANSPORT
    # ============================================================

    async def _send(self, to_email: str, subject: str, body: str) -> bool:
        if not self.is_configured:
            # Dev mode: log instead of sending. The body may carry a reset token.
            logger.info(
                "Email (dev mode) to %s: %s",
                redact_email(to_email),
                subject,
                extra={"event": "email_dev_mode", "body_chars": len(body)},
            )
            return True
        return await asyncio.to_thread(self._send_sync, to_email, subject, body)

    def _build_message(self, to_email: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email
        msg.set_content(body)
        return msg

    def _send_sync(self, to_email: str, subject: str, body: str) -> bool:
        msg = self._build_message(to_email, subject, body)
        context = ssl.create_default_context()

        try:
            if self.use_tls:
                with smtplib.SMTP(self.host, self.port, timeout=SMTP_TIMEOUT_SECONDS) as server:
                    server.starttls(context=context)
                    if self.user and self.password:
                        server.login(self.user, self.password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP_SSL(
                    self.host, self.port, context=context, timeout=SMTP_TIMEOUT_SECONDS
                ) as server:
                    if self.user and self.password:
                        server.login(self.user, self.password)
                    server.send_message(msg)
        except smtplib.SMTPAuthenticationError as e:
            logger.error("SMTP authentication failed for %s: %s", self.host, e.smtp_code)
            return False
        except smtplib.SMTPRecipientsRefused:
            logger.error("SMTP recipient refused: %s", redact_email(to_email))
            return False
        except (smtplib.SMTPException, ssl.SSLError, OSError) as e:
            logger.error(
                "Email to %s failed: %s: %s", redact_email(to_email), type(e).__name__, e
            )
            return False

        logger.info("Email sent to %s: %s", redact_email(to_email), subject)
        return True


__all__ = [
    "Notifier",
    "EmailNotifier",
    "deliver_best_effort",
    "redact_email",
]
