"""
Unit tests for password hashing, tokens and the auth dependencies.
"""

from unittest.mock import patch

import pytest
from fastapi import HTTPException

from rtb_assets.core.auth import (
    ROLE_ADMIN,
    ROLE_RTB_STAFF,
    ROLE_SCHOOL,
    ROLE_TECHNICIAN,
    CurrentUser,
    _validate_jwt_token,
    require_roles,
)
from rtb_assets.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    generate_otp,
    hash_password,
    verify_password,
)
from rtb_assets.core.token_blacklist import blacklist_token, is_token_blacklisted


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("Secret@123")
        assert hashed != "Secret@123"
        assert verify_password("Secret@123", hashed) is True
        assert verify_password("wrong", hashed) is False


class TestGenerateOtp:
    def test_six_digits(self):
        otp = generate_otp()
        assert len(otp) == 6
        assert otp.isdigit()


class TestTokens:
    """Tests for JWT creation and decoding."""

    def test_access_token_round_trip_claims(self):
        token = create_access_token("42", {"email": "a@b.rw", "role": ROLE_SCHOOL})
        claims = decode_token(token)
        assert claims["sub"] == "42"
        assert claims["type"] == "access"
        assert claims["role"] == ROLE_SCHOOL

    def test_refresh_token_type(self):
        claims = decode_token(create_refresh_token("42"))
        assert claims["type"] == "refresh"
        assert "jti" in claims

    def test_tampered_token_is_rejected(self):
        token = create_access_token("42")
        assert decode_token(token[:-2] + "xx") is None


class TestValidateJwtToken:
    """Tests for _validate_jwt_token."""

    @pytest.mark.asyncio
    async def test_valid_access_token(self):
        token = create_access_token("7", {"email": "tech@rtb.rw", "role": ROLE_TECHNICIAN})
        with patch("rtb_assets.core.token_blacklist.get_redis_client", return_value=None):
            user = await _validate_jwt_token(token)

        assert user.id == 7
        assert user.role == ROLE_TECHNICIAN
        assert user.token == token

    @pytest.mark.asyncio
    async def test_refresh_token_is_not_accepted(self):
        token = create_refresh_token("7")
        with patch("rtb_assets.core.token_blacklist.get_redis_client", return_value=None):
            with pytest.raises(HTTPException) as exc_info:
                await _validate_jwt_token(token)

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail["error"] == "INVALID_TOKEN_TYPE"

    @pytest.mark.asyncio
    async def test_revoked_token_is_rejected(self):
        token = create_access_token("7")
        with patch("rtb_assets.core.token_blacklist.get_redis_client", return_value=None):
            await blacklist_token(token)
            assert await is_token_blacklisted(token) is True

            with pytest.raises(HTTPException) as exc_info:
                await _validate_jwt_token(token)

        assert exc_info.value.detail["error"] == "TOKEN_REVOKED"


class TestRequireRoles:
    """Tests for require_roles."""

    @pytest.mark.asyncio
    async def test_allowed_role_passes(self):
        dependency = require_roles(ROLE_RTB_STAFF)
        user = CurrentUser(id=1, email="staff@rtb.rw", role=ROLE_RTB_STAFF)
        assert await dependency(user=user) is user

    @pytest.mark.asyncio
    async def test_admin_always_passes(self):
        dependency = require_roles(ROLE_TECHNICIAN)
        user = CurrentUser(id=1, email="admin@rtb.rw", role=ROLE_ADMIN)
        assert await dependency(user=user) is user

    @pytest.mark.asyncio
    async def test_other_role_is_forbidden(self):
        dependency = require_roles(ROLE_RTB_STAFF)
        user = CurrentUser(id=3, email="school@rtb.rw", role=ROLE_SCHOOL)

        with pytest.raises(HTTPException) as exc_info:
            await dependency(user=user)

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail["error"] == "INSUFFICIENT_ROLE"
