"""
Test Suite: Token Codec
=======================

Signing and verification of access and refresh JWTs.
"""

from datetime import UTC, datetime, timedelta

import jwt
import pytest

from conftest import ACCESS_SECRET, REFRESH_SECRET
from turnstile.auth.codec import Identity, TokenClaims, TokenCodec, TokenPair, TokenType
from turnstile_core.exceptions import InvalidPayloadError, TokenExpiredError, TokenInvalidError

IDENTITY = Identity(
    user_id="5d0f7c1e-0000-4000-8000-000000000001",
    email="ada@example.com",
    role="OWNER",
    tenant_id="5d0f7c1e-0000-4000-8000-0000000000aa",
)


@pytest.fixture
def codec(security_settings):
    return TokenCodec(security_settings)


class TestIssueAccess:
    def test_claims(self, codec):
        token = codec.issue_access(IDENTITY, session_id="sess-1")
        payload = jwt.decode(token, ACCESS_SECRET, algorithms=["HS256"])

        assert payload["sub"] == IDENTITY.user_id
        assert payload["email"] == "ada@example.com"
        assert payload["role"] == "OWNER"
        assert payload["tenantId"] == IDENTITY.tenant_id
        assert payload["sid"] == "sess-1"
        assert payload["typ"] == "access"
        assert "jti" not in payload

    def test_ttl_is_access_ttl(self, codec):
        payload = jwt.decode(
            codec.issue_access(IDENTITY), ACCESS_SECRET, algorithms=["HS256"]
        )
        assert payload["exp"] - payload["iat"] == 15 * 60

    def test_session_id_optional(self, codec):
        claims = codec.verify_access(codec.issue_access(IDENTITY))
        assert claims.sid is None


class TestIssueRefresh:
    def test_claims(self, codec):
        token = codec.issue_refresh(IDENTITY, session_id="sess-1", token_id="jti-1")
        payload = jwt.decode(token, REFRESH_SECRET, algorithms=["HS256"])

        assert payload["typ"] == "refresh"
        assert payload["sid"] == "sess-1"
        assert payload["jti"] == "jti-1"
        assert payload["exp"] - payload["iat"] == 7 * 24 * 3600

    def test_requires_jti(self, codec):
        with pytest.raises(InvalidPayloadError) as exc:
            codec.issue_refresh(IDENTITY, session_id="sess-1", token_id=None)
        assert exc.value.details["missing"] == ["jti"]

    def test_requires_sid(self, codec):
        with pytest.raises(InvalidPayloadError) as exc:
            codec.issue_refresh(IDENTITY, session_id="", token_id="jti-1")
        assert exc.value.details["missing"] == ["sid"]

    def test_requires_both(self, codec):
        with pytest.raises(InvalidPayloadError) as exc:
            codec.issue_refresh(IDENTITY, session_id=None, token_id=None)
        assert exc.value.details["missing"] == ["jti", "sid"]


class TestIssuePair:
    def test_pair(self, codec):
        pair = codec.issue_pair(IDENTITY, session_id="sess-1", token_id="jti-1")

        assert isinstance(pair, TokenPair)
        assert pair.session_id == "sess-1"
        assert pair.refresh_token_id == "jti-1"
        assert codec.verify_access(pair.access_token).sid == "sess-1"
        assert codec.verify_refresh(pair.refresh_token).jti == "jti-1"

    def test_expires_in_is_milliseconds(self, codec):
        pair = codec.issue_pair(IDENTITY, session_id="sess-1", token_id="jti-1")
        assert 14 * 60 * 1000 < pair.expires_in <= 15 * 60 * 1000

    def test_to_dict_hides_internal_ids(self, codec):
        pair = codec.issue_pair(IDENTITY, session_id="sess-1", token_id="jti-1")
        assert set(pair.to_dict()) == {"accessToken", "refreshToken", "expiresIn"}


class TestVerify:
    def test_round_trip_claims(self, codec):
        claims = codec.verify_refresh(
            codec.issue_refresh(IDENTITY, session_id="sess-1", token_id="jti-1")
        )

        assert isinstance(claims, TokenClaims)
        assert claims.sub == IDENTITY.user_id
        assert claims.tenant_id == IDENTITY.tenant_id
        assert claims.typ == TokenType.REFRESH
        assert claims.exp > claims.iat

    def test_secrets_are_not_interchangeable(self, codec):
        access = codec.issue_access(IDENTITY, session_id="sess-1")
        refresh = codec.issue_refresh(IDENTITY, session_id="sess-1", token_id="jti-1")

        with pytest.raises(TokenInvalidError):
            codec.verify_refresh(access)
        with pytest.raises(TokenInvalidError):
            codec.verify_access(refresh)

    def test_expired(self, security_settings):
        past = datetime.now(UTC) - timedelta(hours=1)
        old_codec = TokenCodec(security_settings, clock=lambda: past)
        token = old_codec.issue_access(IDENTITY)

        with pytest.raises(TokenExpiredError):
            TokenCodec(security_settings).verify_access(token)

    def test_malformed(self, codec):
        with pytest.raises(TokenInvalidError) as exc:
            codec.verify_access("a.b.c")
        assert exc.value.message == "Invalid token"

    def test_missing_subject(self, codec):
        token = jwt.encode(
            {"typ": "access", "exp": datetime.now(UTC) + timedelta(minutes=5)},
            ACCESS_SECRET,
            algorithm="HS256",
        )
        with pytest.raises(TokenInvalidError):
            codec.verify_access(token)

    def test_unsigned_token_rejected(self, codec):
        token = jwt.encode(
            {"sub": "x", "exp": datetime.now(UTC) + timedelta(minutes=5)},
            key=None,
            algorithm="none",
        )
        with pytest.raises(TokenInvalidError):
            codec.verify_access(token)
