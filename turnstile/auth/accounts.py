# Turnstile - Multi-Tenant Session & Credential Lifecycle Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Account Service

Tenant resolution, registration, password login and access-token
authentication. Token issuance is delegated to the RotationEngine so a
login always starts a fresh session.
"""

import logging
import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import IntegrityError

from turnstile_core.exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    TokenInvalidError,
    UnauthorizedError,
)

from ..data.models import AuditAction, UserModel
from ..data.repositories import AuditEvent, TenantRepository, UserRepository
from ..data.store import SessionStore
from ..observability.logging import short_id
from ..observability.metrics import AuthMetrics
from .audit import AuditSink
from .codec import TokenCodec, TokenPair, TokenType
from .passwords import CredentialHasher, validate_password_strength
from .rotation import RotationEngine

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
INACTIVE_ACCOUNT = "User account is inactive"


# ============================================================
# VIEWS
# ============================================================


class UserView(BaseModel):
    """Public shape of a user."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    email: str
    name: str | None = None
    phone: str | None = None
    role: str
    is_active: bool
    last_login_at: datetime | None = None
    created_at: datetime | None = None


class TenantContext(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str


class AuthContext(BaseModel):
    """Identity established from a verified access token."""

    user_id: str
    tenant_id: str
    email: str
    role: str
    session_id: str | None = None


class AuthResult(BaseModel):
    """Token pair plus the user it was issued for."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    tokens: TokenPair
    user: UserView

    def to_dict(self) -> dict[str, Any]:
        return {**self.tokens.to_dict(), "user": self.user.model_dump(mode="json")}


# ============================================================
# TENANT RESOLUTION
# ============================================================


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


async def resolve_tenant_id(store: SessionStore, tenant_id: str | None) -> str:
    """
    Validate a caller-supplied tenant id.

    Raises:
        BadRequestError: missing, not a UUID, or no such tenant
    """
    if not tenant_id or not _is_uuid(tenant_id):
        raise BadRequestError("Tenant ID is required")

    async with store.transaction() as session:
        exists = await TenantRepository(session).exists(tenant_id)
    if not exists:
        raise BadRequestError("Invalid tenant ID")
    return str(tenant_id)


# ============================================================
# ACCOUNT SERVICE
# ============================================================


class AccountService:
    """
    Usage:
        accounts = AccountService(store, codec, hasher, rotation, audit, metrics)

        result = await accounts.register("a@example.com", "S3cure-pass", "Ada", tenant_id=tid)
        result = await accounts.login("a@example.com", "S3cure-pass", tenant_id=tid)
        ctx = await accounts.authenticate_access_token(result.tokens.access_token)
    """

    def __init__(
        self,
        store: SessionStore,
        codec: TokenCodec,
        hasher: CredentialHasher,
        rotation: RotationEngine,
        audit: AuditSink,
        metrics: AuthMetrics,
    ):
        self.store = store
        self.codec = codec
        self.hasher = hasher
        self.rotation = rotation
        self.audit = audit
        self.metrics = metrics
        self._dummy_hash: str | None = None

    # ============================================================
    # TENANTS
    # ============================================================

    async def resolve_tenant_id(self, tenant_id: str | None) -> str:
        return await resolve_tenant_id(self.store, tenant_id)

    async def get_tenant_context(self) -> TenantContext:
        """
        The single configured tenant, for single-tenant deployments.

        Raises:
            NotFoundError: no tenant exists
            BadRequestError: more than one tenant exists
        """
        async with self.store.transaction() as session:
            tenants = await TenantRepository(session).list_oldest(limit=2)

        if not tenants:
            raise NotFoundError("No tenant is configured")
        if len(tenants) > 1:
            raise BadRequestError("Tenant ID is required")
        return TenantContext.model_validate(tenants[0])

    async def create_tenant(self, name: str) -> TenantContext:
        async with self.store.transaction() as session:
            tenant = await TenantRepository(session).create(name)
        logger.info("Created tenant %s", short_id(tenant.id))
        return TenantContext.model_validate(tenant)

    # ============================================================
    # REGISTRATION / LOGIN
    # ============================================================

    async def register(
        self,
        email: str,
        password: str,
        name: str | None = None,
        tenant_id: str | None = None,
        phone: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthResult:
        """
        Create a user and start their first session.

        The first user of a tenant becomes OWNER, everyone after that STAFF.

        Raises:
            BadRequestError: bad tenant or weak password
            ConflictError: email already registered in the tenant
        """
        tenant_id = await self.resolve_tenant_id(tenant_id)
        validate_password_strength(password)

        async with self.store.transaction() as session:
            existing = await UserRepository(session).get_by_email(
                tenant_id, email, include_deleted=True
            )
        if existing is not None:
            raise ConflictError(f"Email {email} already registered in this tenant")

        password_hash = await self.hasher.hash(password)
        try:
            async with self.store.transaction() as session:
                users = UserRepository(session)
                role = "OWNER" if await users.count_by_tenant(tenant_id) == 0 else "STAFF"
                user = await users.create(
                    tenant_id=tenant_id,
                    email=email,
                    password_hash=password_hash,
                    role=role,
                    name=name,
                    phone=phone,
                )
        except IntegrityError as e:
            raise ConflictError(f"Email {email} already registered in this tenant") from e

        await self.audit.record(
            AuditEvent(
                tenant_id=tenant_id,
                user_id=user.id,
                action=AuditAction.CREATE,
                entity_type="User",
                entity_id=user.id,
                description=f"User registered: {email}",
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )

        tokens = await self.rotation.issue_token_pair(
            user, ip_address=ip_address, user_agent=user_agent
        )
        await self._audit_login(user, ip_address, user_agent)
        self.metrics.track_auth_attempt("register", "success")
        return AuthResult(tokens=tokens, user=UserView.model_validate(user))

    async def login(
        self,
        email: str,
        password: str,
        tenant_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthResult:
        """
        Password login. Starts a new session.

        Unknown email, soft-deleted user and wrong password all fail with
        the same message.

        Raises:
            UnauthorizedError
        """
        tenant_id = await self.resolve_tenant_id(tenant_id)

        async with self.store.transaction() as session:
            user = await UserRepository(session).get_by_email(tenant_id, email)

        if user is None:
            # Burn a hash verify anyway so response time does not reveal the miss
            await self.hasher.verify(password, await self._get_dummy_hash())
            self.metrics.track_auth_attempt("password", "failure")
            raise UnauthorizedError(INVALID_CREDENTIALS)

        if not await self.hasher.verify(password, user.password_hash):
            self.metrics.track_auth_attempt("password", "failure")
            raise UnauthorizedError(INVALID_CREDENTIALS)

        if not user.is_active:
            self.metrics.track_auth_attempt("password", "inactive")
            raise UnauthorizedError(INACTIVE_ACCOUNT)

        patch: dict[str, Any] = {"last_login_at": self.codec.now()}
        if self.hasher.needs_rehash(user.password_hash):
            patch["password_hash"] = await self.hasher.hash(password)
            logger.info("Re-hashed password for user %s", short_id(user.id))

        async with self.store.transaction() as session:
            await UserRepository(session).update(user.id, **patch)
        user.last_login_at = patch["last_login_at"]

        tokens = await self.rotation.issue_token_pair(
            user, ip_address=ip_address, user_agent=user_agent
        )
        await self._audit_login(user, ip_address, user_agent)
        self.metrics.track_auth_attempt("password", "success")
        return AuthResult(tokens=tokens, user=UserView.model_validate(user))

    async def _audit_login(
        self, user: UserModel, ip_address: str | None, user_agent: str | None
    ) -> None:
        await self.audit.record(
            AuditEvent(
                tenant_id=user.tenant_id,
                user_id=user.id,
                action=AuditAction.LOGIN,
                entity_type="User",
                entity_id=user.id,
                description=f"User logged in: {user.email}",
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )

    async def _get_dummy_hash(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = await self.hasher.hash(uuid.uuid4().hex)
        return self._dummy_hash

    # ============================================================
    # CURRENT USER
    # ============================================================

    async def get_current_user(self, user_id: str) -> UserView:
        """
        Raises:
            NotFoundError: no such user, or user is soft-deleted
        """
        async with self.store.transaction() as session:
            user = await UserRepository(session).get_by_id(user_id)
        if user is None or user.deleted_at is not None:
            raise NotFoundError("User not found")
        return UserView.model_validate(user)

    async def authenticate_access_token(self, token: str) -> AuthContext:
        """
        Verify an access token and load its user.

        Access tokens are not individually revocable: a valid token stays
        usable until it expires, unless the user is deactivated or deleted.

        Raises:
            TokenExpiredError / TokenInvalidError: bad token
            UnauthorizedError: user gone or inactive
        """
        claims = self.codec.verify_access(token)
        if claims.typ != TokenType.ACCESS:
            raise TokenInvalidError("Invalid token")

        async with self.store.transaction() as session:
            user = await UserRepository(session).get_by_id(claims.sub)

        if user is None or user.deleted_at is not None:
            raise UnauthorizedError("User not found")
        if not user.is_active:
            raise UnauthorizedError(INACTIVE_ACCOUNT)

        return AuthContext(
            user_id=user.id,
            tenant_id=user.tenant_id,
            email=user.email,
            role=user.role,
            session_id=claims.sid,
        )


__all__ = [
    "AccountService",
    "AuthContext",
    "AuthResult",
    "TenantContext",
    "UserView",
    "resolve_tenant_id",
    "INVALID_CREDENTIALS",
    "INACTIVE_ACCOUNT",
]
