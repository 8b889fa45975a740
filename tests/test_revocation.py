"""
Test Suite: Session Revocation & Password Lifecycle
===================================================

Logout in all its forms, session listing, and the change / forgot /
reset password flows that end sessions.
"""

import uuid
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import update

from conftest import NEW_PASSWORD, PASSWORD, get_token, session_tokens, set_user_fields
from turnstile.auth.revocation import FORGOT_PASSWORD_MESSAGE, INVALID_RESET_TOKEN
from turnstile.auth.rotation import RefreshFailure
from turnstile.data.models import AuditAction, PasswordResetTokenModel
from turnstile.data.repositories import PasswordResetTokenRepository
from turnstile_core.exceptions import (
    BadRequestError,
    NotFoundError,
    RefreshTokenRejected,
    UnauthorizedError,
    WeakPasswordError,
)


async def _second_session(engine, registered):
    return await engine.accounts.login(
        "owner@example.com", PASSWORD, tenant_id=registered.user.tenant_id
    )


async def _is_revoked(engine, token_id) -> bool:
    return (await get_token(engine, token_id)).revoked_at is not None


class TestLogout:
    @pytest.mark.asyncio
    async def test_logout_by_session_id(self, engine, registered):
        other = await _second_session(engine, registered)

        await engine.revocation.logout(registered.user.id, session_id=registered.tokens.session_id)

        assert await _is_revoked(engine, registered.tokens.refresh_token_id)
        assert not await _is_revoked(engine, other.tokens.refresh_token_id)

    @pytest.mark.asyncio
    async def test_logout_by_refresh_token(self, engine, registered):
        other = await _second_session(engine, registered)

        await engine.revocation.logout(
            registered.user.id, refresh_token=registered.tokens.refresh_token
        )

        assert await _is_revoked(engine, registered.tokens.refresh_token_id)
        assert not await _is_revoked(engine, other.tokens.refresh_token_id)

    @pytest.mark.asyncio
    async def test_logout_without_target_revokes_everything(self, engine, registered):
        other = await _second_session(engine, registered)

        await engine.revocation.logout(registered.user.id)

        assert await _is_revoked(engine, registered.tokens.refresh_token_id)
        assert await _is_revoked(engine, other.tokens.refresh_token_id)

    @pytest.mark.asyncio
    async def test_unusable_refresh_token_falls_back_to_everything(self, engine, registered):
        other = await _second_session(engine, registered)

        await engine.revocation.logout(registered.user.id, refresh_token="garbage")

        assert await _is_revoked(engine, registered.tokens.refresh_token_id)
        assert await _is_revoked(engine, other.tokens.refresh_token_id)

    @pytest.mark.asyncio
    async def test_foreign_refresh_token_is_ignored(self, engine, registered, tenant):
        stranger = await engine.accounts.register(
            "staff@example.com", PASSWORD, "Sam Staff", tenant_id=tenant.id
        )

        await engine.revocation.logout(
            registered.user.id, refresh_token=stranger.tokens.refresh_token
        )

        assert await _is_revoked(engine, registered.tokens.refresh_token_id)
        assert not await _is_revoked(engine, stranger.tokens.refresh_token_id)

    @pytest.mark.asyncio
    async def test_logout_is_idempotent(self, engine, registered):
        sid = registered.tokens.session_id
        await engine.revocation.logout(registered.user.id, session_id=sid)
        first = await get_token(engine, registered.tokens.refresh_token_id)

        await engine.revocation.logout(registered.user.id, session_id=sid)
        second = await get_token(engine, registered.tokens.refresh_token_id)

        assert first.revoked_at == second.revoked_at

    @pytest.mark.asyncio
    async def test_unknown_user_is_silent(self, engine, registered):
        await engine.revocation.logout(str(uuid.uuid4()))

        assert not await _is_revoked(engine, registered.tokens.refresh_token_id)

    @pytest.mark.asyncio
    async def test_logout_cannot_touch_other_users_session(self, engine, registered, tenant):
        stranger = await engine.accounts.register(
            "staff@example.com", PASSWORD, "Sam Staff", tenant_id=tenant.id
        )

        await engine.revocation.logout(
            registered.user.id, session_id=stranger.tokens.session_id
        )

        assert not await _is_revoked(engine, stranger.tokens.refresh_token_id)

    @pytest.mark.asyncio
    async def test_logout_is_audited(self, engine, registered):
        await engine.revocation.logout(registered.user.id, ip_address="10.0.0.2")

        entries = await engine.audit.entries_for_user(registered.user.id, AuditAction.LOGOUT)
        assert len(entries) == 1
        assert entries[0].description == "User logged out: owner@example.com"
        assert entries[0].ip_address == "10.0.0.2"

    @pytest.mark.asyncio
    async def test_refresh_after_logout_is_rejected(self, engine, registered):
        await engine.revocation.logout(registered.user.id, session_id=registered.tokens.session_id)

        with pytest.raises(RefreshTokenRejected) as exc:
            await engine.rotation.refresh(registered.tokens.refresh_token)
        assert exc.value.reason == RefreshFailure.REVOKED_REUSE


class TestLogoutDevices:
    @pytest.mark.asyncio
    async def test_logout_device(self, engine, registered):
        other = await _second_session(engine, registered)

        await engine.revocation.logout_device(other.tokens.session_id, registered.user.id)

        assert await _is_revoked(engine, other.tokens.refresh_token_id)
        assert not await _is_revoked(engine, registered.tokens.refresh_token_id)

    @pytest.mark.asyncio
    async def test_logout_device_revokes_whole_session(self, engine, registered):
        rotated = await engine.rotation.refresh(registered.tokens.refresh_token)

        await engine.revocation.logout_device(rotated.session_id, registered.user.id)

        records = await session_tokens(engine, rotated.session_id)
        assert all(r.revoked_at is not None for r in records)

    @pytest.mark.asyncio
    async def test_logout_all_devices(self, engine, registered):
        await _second_session(engine, registered)

        revoked = await engine.revocation.logout_all_devices(registered.user.id)

        assert revoked == 2
        assert await engine.revocation.list_active_sessions(registered.user.id) == []

    @pytest.mark.asyncio
    async def test_logout_all_devices_except_current(self, engine, registered):
        other = await _second_session(engine, registered)

        revoked = await engine.revocation.logout_all_devices(
            registered.user.id, except_session_id=registered.tokens.session_id
        )

        assert revoked == 1
        assert await _is_revoked(engine, other.tokens.refresh_token_id)
        assert not await _is_revoked(engine, registered.tokens.refresh_token_id)

    @pytest.mark.asyncio
    async def test_logout_all_devices_unknown_user(self, engine, registered):
        assert await engine.revocation.logout_all_devices(str(uuid.uuid4())) == 0


class TestListActiveSessions:
    @pytest.mark.asyncio
    async def test_one_entry_per_session(self, engine, registered, metrics):
        await engine.rotation.refresh(registered.tokens.refresh_token)
        other = await _second_session(engine, registered)

        sessions = await engine.revocation.list_active_sessions(registered.user.id)

        assert {s.session_id for s in sessions} == {
            registered.tokens.session_id,
            other.tokens.session_id,
        }
        assert metrics.value("active_sessions") == 2

    @pytest.mark.asyncio
    async def test_carries_device_details(self, engine, registered):
        sessions = await engine.revocation.list_active_sessions(registered.user.id)

        assert len(sessions) == 1
        assert sessions[0].ip_address == "10.0.0.1"
        assert sessions[0].expires_at > datetime.now(UTC)


class TestChangePassword:
    @pytest.mark.asyncio
    async def test_change_password_keeps_current_session(self, engine, registered, notifier):
        other = await _second_session(engine, registered)

        await engine.revocation.change_password(
            registered.user.id,
            PASSWORD,
            NEW_PASSWORD,
            current_session_id=registered.tokens.session_id,
        )

        assert not await _is_revoked(engine, registered.tokens.refresh_token_id)
        assert await _is_revoked(engine, other.tokens.refresh_token_id)
        assert notifier.password_changed == ["owner@example.com"]

        result = await engine.accounts.login(
            "owner@example.com", NEW_PASSWORD, tenant_id=registered.user.tenant_id
        )
        assert result.user.id == registered.user.id

    @pytest.mark.asyncio
    async def test_without_current_session_revokes_all(self, engine, registered):
        await engine.revocation.change_password(registered.user.id, PASSWORD, NEW_PASSWORD)

        assert await _is_revoked(engine, registered.tokens.refresh_token_id)

    @pytest.mark.asyncio
    async def test_blank_current_password(self, engine, registered):
        with pytest.raises(BadRequestError, match="Current password is required"):
            await engine.revocation.change_password(registered.user.id, "  ", NEW_PASSWORD)

    @pytest.mark.asyncio
    async def test_unknown_user(self, engine, registered):
        with pytest.raises(NotFoundError):
            await engine.revocation.change_password(str(uuid.uuid4()), PASSWORD, NEW_PASSWORD)

    @pytest.mark.asyncio
    async def test_wrong_current_password(self, engine, registered):
        with pytest.raises(UnauthorizedError, match="Current password is incorrect"):
            await engine.revocation.change_password(
                registered.user.id, "Wr0ngPassw0rd", NEW_PASSWORD
            )
        assert not await _is_revoked(engine, registered.tokens.refresh_token_id)

    @pytest.mark.asyncio
    async def test_weak_new_password(self, engine, registered):
        with pytest.raises(WeakPasswordError):
            await engine.revocation.change_password(registered.user.id, PASSWORD, "weak")

    @pytest.mark.asyncio
    async def test_notifier_failure_is_ignored(self, engine, registered, notifier):
        notifier.fail = True

        await engine.revocation.change_password(registered.user.id, PASSWORD, NEW_PASSWORD)

        assert await _is_revoked(engine, registered.tokens.refresh_token_id)


class TestForgotPassword:
    @pytest.mark.asyncio
    async def test_existing_user_gets_reset_link(self, engine, registered, notifier):
        response = await engine.revocation.forgot_password(
            "owner@example.com", registered.user.tenant_id
        )

        assert response == {"message": FORGOT_PASSWORD_MESSAGE}
        assert len(notifier.resets) == 1
        reset = notifier.resets[0]
        assert reset["email"] == "owner@example.com"
        assert reset["reset_url"].startswith("https://app.example.test/reset-password?token=")
        assert reset["reset_url"].endswith(reset["token"])

    @pytest.mark.asyncio
    async def test_unknown_email_looks_the_same(self, engine, registered, notifier):
        response = await engine.revocation.forgot_password(
            "nobody@example.com", registered.user.tenant_id
        )

        assert response == {"message": FORGOT_PASSWORD_MESSAGE}
        assert notifier.resets == []

    @pytest.mark.asyncio
    async def test_inactive_user_gets_nothing(self, engine, registered, notifier):
        await set_user_fields(engine, registered.user.id, is_active=False)

        response = await engine.revocation.forgot_password(
            "owner@example.com", registered.user.tenant_id
        )

        assert response == {"message": FORGOT_PASSWORD_MESSAGE}
        assert notifier.resets == []

    @pytest.mark.asyncio
    async def test_invalid_tenant(self, engine, registered):
        with pytest.raises(BadRequestError):
            await engine.revocation.forgot_password("owner@example.com", "not-a-uuid")

    @pytest.mark.asyncio
    async def test_new_request_invalidates_previous_token(self, engine, registered, notifier):
        tenant_id = registered.user.tenant_id
        await engine.revocation.forgot_password("owner@example.com", tenant_id)
        await engine.revocation.forgot_password("owner@example.com", tenant_id)
        first, second = notifier.resets

        with pytest.raises(BadRequestError):
            await engine.revocation.reset_password(first["token"], NEW_PASSWORD)
        await engine.revocation.reset_password(second["token"], NEW_PASSWORD)

    @pytest.mark.asyncio
    async def test_raw_token_is_not_stored(self, engine, registered, notifier):
        await engine.revocation.forgot_password("owner@example.com", registered.user.tenant_id)

        async with engine.store.transaction() as session:
            records = await PasswordResetTokenRepository(session).list_by_user(
                registered.user.id
            )
        assert len(records) == 1
        assert records[0].token_hash != notifier.resets[0]["token"]


class TestResetPassword:
    async def _request(self, engine, registered, notifier) -> str:
        await engine.revocation.forgot_password("owner@example.com", registered.user.tenant_id)
        return notifier.resets[-1]["token"]

    @pytest.mark.asyncio
    async def test_reset_revokes_all_sessions(self, engine, registered, notifier):
        other = await _second_session(engine, registered)
        token = await self._request(engine, registered, notifier)

        await engine.revocation.reset_password(token, NEW_PASSWORD)

        assert await _is_revoked(engine, registered.tokens.refresh_token_id)
        assert await _is_revoked(engine, other.tokens.refresh_token_id)
        assert notifier.password_changed == ["owner@example.com"]

        result = await engine.accounts.login(
            "owner@example.com", NEW_PASSWORD, tenant_id=registered.user.tenant_id
        )
        assert result.user.id == registered.user.id

    @pytest.mark.asyncio
    async def test_token_is_single_use(self, engine, registered, notifier):
        token = await self._request(engine, registered, notifier)
        await engine.revocation.reset_password(token, NEW_PASSWORD)

        with pytest.raises(BadRequestError, match=INVALID_RESET_TOKEN):
            await engine.revocation.reset_password(token, "An0ther-Passw0rd")

    @pytest.mark.asyncio
    async def test_unknown_token(self, engine, registered):
        with pytest.raises(BadRequestError, match=INVALID_RESET_TOKEN):
            await engine.revocation.reset_password("deadbeef", NEW_PASSWORD)

    @pytest.mark.asyncio
    async def test_expired_token(self, engine, registered, notifier):
        token = await self._request(engine, registered, notifier)
        async with engine.store.transaction() as session:
            await session.execute(
                update(PasswordResetTokenModel)
                .where(PasswordResetTokenModel.user_id == registered.user.id)
                .values(expires_at=datetime.now(UTC) - timedelta(minutes=1))
            )

        with pytest.raises(BadRequestError, match=INVALID_RESET_TOKEN):
            await engine.revocation.reset_password(token, NEW_PASSWORD)

    @pytest.mark.asyncio
    async def test_weak_password_checked_first(self, engine, registered, notifier):
        token = await self._request(engine, registered, notifier)

        with pytest.raises(WeakPasswordError):
            await engine.revocation.reset_password(token, "weak")

        # Token survives a policy failure
        await engine.revocation.reset_password(token, NEW_PASSWORD)

    @pytest.mark.asyncio
    async def test_reset_is_audited(self, engine, registered, notifier):
        token = await self._request(engine, registered, notifier)

        await engine.revocation.reset_password(token, NEW_PASSWORD)

        entries = await engine.audit.entries_for_user(registered.user.id, AuditAction.UPDATE)
        descriptions = {e.description for e in entries}
        assert "Password reset requested: owner@example.com" in descriptions
        assert "User reset password: owner@example.com" in descriptions
