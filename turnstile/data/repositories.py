# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Repository pattern for tenant, user and credential tables.

Every repository is constructed with an AsyncSession and provides
typed query methods. Repositories never commit; the caller's
SessionStore.transaction() owns the boundary.

Revocation helpers only ever touch rows whose revoked_at is still NULL,
so calling them twice leaves the same end state.
"""

import uuid
from collections.abc import Sequence
from datetime import UTC, datetime

from pydantic import BaseModel
from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    AuditAction,
    AuditLogModel,
    PasswordResetTokenModel,
    RefreshTokenModel,
    TenantModel,
    UserModel,
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# AuditEvent  (Pydantic model for an entry before persistence)
# ---------------------------------------------------------------------------


class AuditEvent(BaseModel):
    """Pydantic model for recording an audit entry before persistence."""

    tenant_id: str
    user_id: str | None = None
    action: AuditAction
    entity_type: str
    entity_id: str
    description: str | None = None
    changes: dict | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    occurred_at: datetime | None = None


# ---------------------------------------------------------------------------
# TenantRepository
# ---------------------------------------------------------------------------


class TenantRepository:
    """CRUD for the tenants table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, name: str) -> TenantModel:
        tenant = TenantModel(id=str(uuid.uuid4()), name=name)
        self.session.add(tenant)
        await self.session.flush()
        return tenant

    async def get_by_id(self, tenant_id: str) -> TenantModel | None:
        result = await self.session.execute(
            select(TenantModel).where(TenantModel.id == str(tenant_id))
        )
        return result.scalar_one_or_none()

    async def exists(self, tenant_id: str) -> bool:
        return await self.get_by_id(tenant_id) is not None

    async def list_oldest(self, limit: int = 2) -> Sequence[TenantModel]:
        result = await self.session.execute(
            select(TenantModel).order_by(TenantModel.created_at).limit(limit)
        )
        return result.scalars().all()


# ---------------------------------------------------------------------------
# UserRepository
# ---------------------------------------------------------------------------


class UserRepository:
    """CRUD for the users table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        tenant_id: str,
        email: str,
        password_hash: str,
        role: str = "STAFF",
        name: str | None = None,
        phone: str | None = None,
    ) -> UserModel:
        user = UserModel(
            id=str(uuid.uuid4()),
            tenant_id=str(tenant_id),
            email=email,
            password_hash=password_hash,
            role=role,
            name=name,
            phone=phone,
            is_active=True,
        )
        self.session.add(user)
        await self.session.flush()
        return user

    async def get_by_id(self, user_id: str) -> UserModel | None:
        result = await self.session.execute(select(UserModel).where(UserModel.id == str(user_id)))
        return result.scalar_one_or_none()

    async def get_by_email(
        self,
        tenant_id: str,
        email: str,
        include_deleted: bool = False,
    ) -> UserModel | None:
        conditions = [UserModel.tenant_id == str(tenant_id), UserModel.email == email]
        if not include_deleted:
            conditions.append(UserModel.deleted_at.is_(None))
        result = await self.session.execute(select(UserModel).where(and_(*conditions)))
        return result.scalar_one_or_none()

    async def count_by_tenant(self, tenant_id: str) -> int:
        result = await self.session.execute(
            select(func.count(UserModel.id)).where(UserModel.tenant_id == str(tenant_id))
        )
        return result.scalar_one()

    async def update(self, user_id: str, **patch) -> int:
        """Apply a column patch. Returns the number of rows changed (0 or 1)."""
        if not patch:
            return 0
        patch.setdefault("updated_at", _utcnow())
        result = await self.session.execute(
            update(UserModel)
            .where(UserModel.id == str(user_id))
            .values(**patch)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def set_password(self, user_id: str, password_hash: str) -> int:
        return await self.update(user_id, password_hash=password_hash)

    async def update_last_login(self, user_id: str) -> int:
        return await self.update(user_id, last_login_at=_utcnow())


# ---------------------------------------------------------------------------
# RefreshTokenRepository
# ---------------------------------------------------------------------------


class RefreshTokenRepository:
    """Refresh token records.

    A record is active iff revoked_at is NULL and expires_at is in the
    future. Records are only ever mutated to set revoked_at (and
    replaced_by_token_id on rotation).
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        token_id: str,
        user_id: str,
        session_id: str,
        token_hash: str,
        issued_at: datetime,
        expires_at: datetime,
        ip_address: str | None = None,
        user_agent: str | None = None,
        device_fingerprint_hash: str | None = None,
    ) -> RefreshTokenModel:
        record = RefreshTokenModel(
            id=token_id,
            user_id=user_id,
            session_id=session_id,
            token_hash=token_hash,
            issued_at=issued_at,
            expires_at=expires_at,
            ip_address=ip_address,
            user_agent=user_agent,
            device_fingerprint_hash=device_fingerprint_hash,
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def get_by_id(self, token_id: str) -> RefreshTokenModel | None:
        """Fetch a record regardless of state (revoked rows are needed for reuse detection)."""
        result = await self.session.execute(
            select(RefreshTokenModel).where(RefreshTokenModel.id == token_id)
        )
        return result.scalar_one_or_none()

    async def find_active(
        self, token_id: str, now: datetime | None = None
    ) -> RefreshTokenModel | None:
        now = now or _utcnow()
        result = await self.session.execute(
            select(RefreshTokenModel).where(
                and_(
                    RefreshTokenModel.id == token_id,
                    RefreshTokenModel.revoked_at.is_(None),
                    RefreshTokenModel.expires_at > now,
                )
            )
        )
        return result.scalar_one_or_none()

    async def conditional_revoke(
        self,
        token_id: str,
        replaced_by: str | None = None,
        now: datetime | None = None,
    ) -> int:
        """
        Revoke one record only if nobody else has.

        Single UPDATE ... WHERE id = :id AND revoked_at IS NULL. Under a
        serializable transaction this is the mutex for rotation: exactly
        one concurrent caller sees 1, everyone else sees 0.
        """
        values = {"revoked_at": now or _utcnow()}
        if replaced_by is not None:
            values["replaced_by_token_id"] = replaced_by

        result = await self.session.execute(
            update(RefreshTokenModel)
            .where(
                and_(
                    RefreshTokenModel.id == token_id,
                    RefreshTokenModel.revoked_at.is_(None),
                )
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def _revoke_where(self, *conditions, now: datetime | None = None) -> int:
        result = await self.session.execute(
            update(RefreshTokenModel)
            .where(and_(RefreshTokenModel.revoked_at.is_(None), *conditions))
            .values(revoked_at=now or _utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def revoke_all_by_session(self, session_id: str, now: datetime | None = None) -> int:
        return await self._revoke_where(RefreshTokenModel.session_id == session_id, now=now)

    async def revoke_session_for_user(
        self,
        user_id: str,
        session_id: str,
        now: datetime | None = None,
    ) -> int:
        return await self._revoke_where(
            RefreshTokenModel.user_id == user_id,
            RefreshTokenModel.session_id == session_id,
            now=now,
        )

    async def revoke_token_for_user(
        self,
        token_id: str,
        user_id: str,
        now: datetime | None = None,
    ) -> int:
        return await self._revoke_where(
            RefreshTokenModel.id == token_id,
            RefreshTokenModel.user_id == user_id,
            now=now,
        )

    async def revoke_all_by_user(
        self,
        user_id: str,
        except_session_id: str | None = None,
        now: datetime | None = None,
    ) -> int:
        conditions = [RefreshTokenModel.user_id == user_id]
        if except_session_id:
            conditions.append(RefreshTokenModel.session_id != except_session_id)
        return await self._revoke_where(*conditions, now=now)

    async def list_active_by_user(
        self,
        user_id: str,
        now: datetime | None = None,
    ) -> Sequence[RefreshTokenModel]:
        now = now or _utcnow()
        result = await self.session.execute(
            select(RefreshTokenModel)
            .where(
                and_(
                    RefreshTokenModel.user_id == user_id,
                    RefreshTokenModel.revoked_at.is_(None),
                    RefreshTokenModel.expires_at > now,
                )
            )
            .order_by(RefreshTokenModel.issued_at.desc())
        )
        return result.scalars().all()

    async def list_by_session(self, session_id: str) -> Sequence[RefreshTokenModel]:
        result = await self.session.execute(
            select(RefreshTokenModel)
            .where(RefreshTokenModel.session_id == session_id)
            .order_by(RefreshTokenModel.issued_at)
        )
        return result.scalars().all()

    async def purge_revoked_expired(self, now: datetime, revoked_before: datetime) -> int:
        """Delete rows that are both past expiry and revoked before the cutoff."""
        result = await self.session.execute(
            delete(RefreshTokenModel)
            .where(
                and_(
                    RefreshTokenModel.expires_at < now,
                    RefreshTokenModel.revoked_at.is_not(None),
                    RefreshTokenModel.revoked_at < revoked_before,
                )
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


# ---------------------------------------------------------------------------
# PasswordResetTokenRepository
# ---------------------------------------------------------------------------


class PasswordResetTokenRepository:
    """Password reset tokens. Only HMAC digests are stored."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def invalidate_unused(self, user_id: str, now: datetime | None = None) -> int:
        """Burn every unused token for the user so at most one stays usable."""
        result = await self.session.execute(
            update(PasswordResetTokenModel)
            .where(
                and_(
                    PasswordResetTokenModel.user_id == user_id,
                    PasswordResetTokenModel.used_at.is_(None),
                )
            )
            .values(used_at=now or _utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def create(
        self,
        user_id: str,
        token_hash: str,
        expires_at: datetime,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> PasswordResetTokenModel:
        token = PasswordResetTokenModel(
            id=str(uuid.uuid4()),
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.session.add(token)
        await self.session.flush()
        return token

    async def find_unused_by_hash(self, token_hash: str) -> PasswordResetTokenModel | None:
        result = await self.session.execute(
            select(PasswordResetTokenModel).where(
                and_(
                    PasswordResetTokenModel.token_hash == token_hash,
                    PasswordResetTokenModel.used_at.is_(None),
                )
            )
        )
        return result.unique().scalar_one_or_none()

    async def mark_used(self, token_id: str, now: datetime | None = None) -> int:
        result = await self.session.execute(
            update(PasswordResetTokenModel)
            .where(
                and_(
                    PasswordResetTokenModel.id == token_id,
                    PasswordResetTokenModel.used_at.is_(None),
                )
            )
            .values(used_at=now or _utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def list_by_user(self, user_id: str) -> Sequence[PasswordResetTokenModel]:
        result = await self.session.execute(
            select(PasswordResetTokenModel)
            .where(PasswordResetTokenModel.user_id == user_id)
            .order_by(PasswordResetTokenModel.created_at)
        )
        return result.unique().scalars().all()

    async def purge_expired(self, before: datetime) -> int:
        """Delete tokens that expired before the cutoff (used or not)."""
        result = await self.session.execute(
            delete(PasswordResetTokenModel)
            .where(PasswordResetTokenModel.expires_at < before)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


# ---------------------------------------------------------------------------
# AuditLogRepository
# ---------------------------------------------------------------------------


class AuditLogRepository:
    """Append-only audit log."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(self, event: AuditEvent) -> AuditLogModel:
        """Persist an AuditEvent."""
        entry = AuditLogModel(
            id=str(uuid.uuid4()),
            tenant_id=event.tenant_id,
            user_id=event.user_id,
            action=event.action.value,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            description=event.description,
            changes=event.changes,
            ip_address=event.ip_address,
            user_agent=event.user_agent,
        )
        if event.occurred_at is not None:
            entry.created_at = event.occurred_at
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def count_security_incidents(self, user_id: str, since: datetime) -> int:
        """SECURITY_INCIDENT entries for the user created after `since`."""
        result = await self.session.execute(
            select(func.count(AuditLogModel.id)).where(
                and_(
                    AuditLogModel.user_id == user_id,
                    AuditLogModel.action == AuditAction.SECURITY_INCIDENT.value,
                    AuditLogModel.created_at > since,
                )
            )
        )
        return result.scalar_one()

    async def list_for_user(
        self,
        user_id: str,
        action: AuditAction | None = None,
    ) -> Sequence[AuditLogModel]:
        query = select(AuditLogModel).where(AuditLogModel.user_id == user_id)
        if action is not None:
            query = query.where(AuditLogModel.action == action.value)
        result = await self.session.execute(query.order_by(AuditLogModel.created_at))
        return result.scalars().all()
