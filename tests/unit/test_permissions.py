"""
Tests for JWT authentication and role permissions.
"""

from datetime import timedelta

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from src.core.auth import (
    AuthenticatedUser,
    Permission,
    authorize,
    create_access_token,
    get_current_user,
    verify_token,
)
from src.core.errors import AuthorizationError


class TestTokens:
    """Access token creation and verification."""

    def test_round_trip_user_id_and_role(self):
        token = create_access_token({"sub": "17", "user_id": 17, "role": "admin"})
        user = verify_token(token)
        assert user == AuthenticatedUser(id=17, role="admin")

    def test_sub_used_when_user_id_missing(self):
        user = verify_token(create_access_token({"sub": "23"}))
        assert user is not None
        assert user.id == 23
        assert user.role == "user"

    def test_expired_token_rejected(self):
        token = create_access_token({"user_id": 1}, expires_delta=timedelta(seconds=-1))
        assert verify_token(token) is None

    def test_garbage_token_rejected(self):
        assert verify_token("not.a.token") is None

    def test_non_numeric_subject_rejected(self):
        assert verify_token(create_access_token({"sub": "alice"})) is None

    @pytest.mark.asyncio
    async def test_get_current_user_rejects_invalid_token(self):
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials="bad")
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(credentials)
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_get_current_user_accepts_valid_token(self):
        token = create_access_token({"user_id": 4, "role": "user"})
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)
        user = await get_current_user(credentials)
        assert user.id == 4


class TestAuthorize:
    """Role permission checks."""

    def test_user_can_create_payments(self):
        authorize(AuthenticatedUser(id=1, role="user"), Permission.PAYMENTS_CREATE)

    def test_user_cannot_update_exchange_rates(self):
        with pytest.raises(AuthorizationError) as exc_info:
            authorize(AuthenticatedUser(id=1, role="user"), Permission.EXCHANGE_RATES_UPDATE)
        assert exc_info.value.status_code == 403

    @pytest.mark.parametrize("role", ["admin", "supergod"])
    def test_admin_roles_can_update_exchange_rates(self, role):
        authorize(AuthenticatedUser(id=1, role=role), Permission.EXCHANGE_RATES_UPDATE)

    def test_unknown_role_has_no_permissions(self):
        with pytest.raises(AuthorizationError):
            authorize(AuthenticatedUser(id=1, role="guest"), Permission.WALLETS_READ)
