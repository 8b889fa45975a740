"""
Turnstile Test Suite - Shared Fixtures
"""

import pytest
import pytest_asyncio
from sqlalchemy import update

from turnstile.auth.engine import build_session_engine
from turnstile.core.settings import (
    DatabaseSettings,
    NotificationSettings,
    ObservabilitySettings,
    SecuritySettings,
    Settings,
)
from turnstile.data.models import RefreshTokenModel, UserModel
from turnstile.data.repositories import RefreshTokenRepository
from turnstile.observability.metrics import AuthMetrics

ACCESS_SECRET = "access-Q7v2Lm9Xw4Rt8Yp1Kz6Nb3Hc5Jd0FsGa"
REFRESH_SECRET = "refresh-Z3k8Pq1Wd6Mx4Bv9Tn2Lc7Hy5Rg0JsEu"
HMAC_SECRET = "hmac-Vb5Nq2Xz8Kt1Mw7Rp4Lj9Hd3Gs6Fc0YeAo"

PASSWORD = "Str0ngPassw0rd"
NEW_PASSWORD = "N3wer-Passw0rd"


class RecordingNotifier:
    """Notifier that records every call; set `fail = True` to make it raise."""

    def __init__(self):
        self.alerts: list[tuple[str, str, str]] = []
        self.password_changed: list[str] = []
        self.resets: list[dict] = []
        self.fail = False

    def _maybe_fail(self):
        if self.fail:
            raise RuntimeError("notifier is down")

    async def send_security_alert(self, email, subject, message):
        self._maybe_fail()
        self.alerts.append((email, subject, message))
        return True

    async def send_password_changed_notification(self, email):
        self._maybe_fail()
        self.password_changed.append(email)
        return True

    async def send_password_reset_notification(self, email, token, reset_url, expires_at):
        self._maybe_fail()
        self.resets.append(
            {"email": email, "token": token, "reset_url": reset_url, "expires_at": expires_at}
        )
        return True


@pytest.fixture
def security_settings():
    return SecuritySettings(
        jwt_access_secret=ACCESS_SECRET,
        jwt_refresh_secret=REFRESH_SECRET,
        refresh_token_hmac_secret=HMAC_SECRET,
        bcrypt_rounds=4,
        frontend_url="https://app.example.test",
    )


@pytest.fixture
def settings(tmp_path, security_settings):
    """Settings pointing at a file-backed SQLite database in tmp_path."""
    return Settings(
        environment="test",
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'turnstile.db'}"),
        security=security_settings,
        notifications=NotificationSettings(),
        observability=ObservabilitySettings(metrics_namespace="test"),
    )


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def metrics():
    return AuthMetrics(namespace="test")


@pytest_asyncio.fixture
async def engine(settings, notifier, metrics):
    """A fully wired SessionEngine with its tables created."""
    session_engine = build_session_engine(settings, notifier=notifier, metrics=metrics)
    await session_engine.create_tables()
    yield session_engine
    await session_engine.close()


@pytest_asyncio.fixture
async def tenant(engine):
    return await engine.accounts.create_tenant("Acme Courts")


@pytest_asyncio.fixture
async def registered(engine, tenant):
    """A registered user (tenant owner) with one live session."""
    return await engine.accounts.register(
        "owner@example.com", PASSWORD, "Olive Owner", tenant_id=tenant.id, ip_address="10.0.0.1"
    )


async def set_token_fields(engine, token_id: str, **values):
    async with engine.store.transaction() as session:
        await session.execute(
            update(RefreshTokenModel).where(RefreshTokenModel.id == token_id).values(**values)
        )


async def set_user_fields(engine, user_id: str, **values):
    async with engine.store.transaction() as session:
        await session.execute(update(UserModel).where(UserModel.id == user_id).values(**values))


async def get_token(engine, token_id: str) -> RefreshTokenModel | None:
    async with engine.store.transaction() as session:
        return await RefreshTokenRepository(session).get_by_id(token_id)


async def session_tokens(engine, session_id: str) -> list[RefreshTokenModel]:
    async with engine.store.transaction() as session:
        return list(await RefreshTokenRepository(session).list_by_session(session_id))
