"""
Test Suite: Notifier
====================

Best-effort delivery and the SMTP notifier (transport mocked).
"""

import logging
import smtplib
from datetime import UTC, datetime

import pytest

from conftest import RecordingNotifier
from turnstile.auth.notifier import EmailNotifier, Notifier, deliver_best_effort, redact_email
from turnstile.core.settings import NotificationSettings


class FakeSMTP:
    """Stands in for smtplib.SMTP / SMTP_SSL."""

    instances: list["FakeSMTP"] = []
    fail_with: Exception | None = None

    def __init__(self, host, port, **kwargs):
        self.host = host
        self.port = port
        self.started_tls = False
        self.logged_in = None
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self, context=None):
        self.started_tls = True

    def login(self, user, password):
        self.logged_in = (user, password)

    def send_message(self, msg):
        if FakeSMTP.fail_with is not None:
            raise FakeSMTP.fail_with
        self.sent.append(msg)


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_with = None
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    monkeypatch.setattr(smtplib, "SMTP_SSL", FakeSMTP)
    return FakeSMTP


def _configured(**overrides) -> EmailNotifier:
    values = {
        "host": "smtp.example.test",
        "port": 587,
        "user": "mailer",
        "password": "mail-pass",
        "from_email": "no-reply@example.test",
    }
    values.update(overrides)
    return EmailNotifier(NotificationSettings(**values))


class TestDeliverBestEffort:
    @pytest.mark.asyncio
    async def test_success(self):
        notifier = RecordingNotifier()
        sent = await deliver_best_effort(
            "alert", notifier.send_security_alert("a@example.com", "S", "M")
        )
        assert sent is True

    @pytest.mark.asyncio
    async def test_exception_is_swallowed_and_logged(self, caplog):
        notifier = RecordingNotifier()
        notifier.fail = True

        with caplog.at_level(logging.ERROR):
            sent = await deliver_best_effort(
                "alert", notifier.send_security_alert("a@example.com", "S", "M")
            )

        assert sent is False
        assert "Notification failed: alert" in caplog.text

    @pytest.mark.asyncio
    async def test_false_result(self):
        async def not_delivered():
            return False

        assert await deliver_best_effort("alert", not_delivered()) is False


class TestEmailNotifier:
    def test_satisfies_protocol(self):
        assert isinstance(EmailNotifier(NotificationSettings()), Notifier)
        assert isinstance(RecordingNotifier(), Notifier)

    def test_redact_email(self):
        assert redact_email("olive@example.com") == "ol***@example.com"
        assert redact_email("nonsense") == "redacted"

    @pytest.mark.asyncio
    async def test_dev_mode_logs_without_body(self, caplog, fake_smtp):
        notifier = EmailNotifier(NotificationSettings(host=None, from_email=None))
        assert notifier.is_configured is False

        with caplog.at_level(logging.INFO):
            sent = await notifier.send_password_reset_notification(
                "olive@example.com", "secret-token", None, datetime.now(UTC)
            )

        assert sent is True
        assert fake_smtp.instances == []
        assert "secret-token" not in caplog.text
        assert "ol***@example.com" in caplog.text

    @pytest.mark.asyncio
    async def test_starttls_delivery(self, fake_smtp):
        notifier = _configured()

        sent = await notifier.send_password_changed_notification("olive@example.com")

        assert sent is True
        server = fake_smtp.instances[0]
        assert server.started_tls is True
        assert server.logged_in == ("mailer", "mail-pass")
        msg = server.sent[0]
        assert msg["To"] == "olive@example.com"
        assert msg["Subject"] == "Your password was changed"
        assert "no-reply@example.test" in msg["From"]

    @pytest.mark.asyncio
    async def test_implicit_tls_delivery(self, fake_smtp):
        notifier = _configured(use_tls=False, port=465)

        await notifier.send_security_alert("olive@example.com", "Heads up", "Body")

        server = fake_smtp.instances[0]
        assert server.port == 465
        assert server.started_tls is False
        assert server.sent[0]["Subject"] == "Heads up"

    @pytest.mark.asyncio
    async def test_reset_mail_contains_link(self, fake_smtp):
        notifier = _configured()

        await notifier.send_password_reset_notification(
            "olive@example.com",
            "tok",
            "https://app.example.test/reset-password?token=tok",
            datetime(2026, 1, 1, 12, 0, tzinfo=UTC),
        )

        body = fake_smtp.instances[0].sent[0].get_content()
        assert "https://app.example.test/reset-password?token=tok" in body
        assert "2026-01-01 12:00" in body

    @pytest.mark.asyncio
    async def test_smtp_failure_returns_false(self, fake_smtp):
        fake_smtp.fail_with = smtplib.SMTPServerDisconnected("gone")

        sent = await _configured().send_password_changed_notification("olive@example.com")

        assert sent is False
