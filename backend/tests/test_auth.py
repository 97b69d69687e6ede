"""
CustomTees Backend — Authentication Unit Tests
================================================

What we test:
    ✅ Token read from Authorization (Bearer or bare), X-Admin-Token, X-Access-Token
    ✅ Tokens round-trip; wrong secret / no secret → None
    ✅ get_current_user: missing token, unknown user, valid caller
    ✅ require_admin refuses regular users
"""

import uuid
from unittest.mock import MagicMock, patch

import pytest
from jose import jwt

from app.dependencies import get_current_user, require_admin
from app.exceptions import AuthenticationError, AuthorizationError
from app.security import create_access_token, decode_token, extract_token, user_id_from_claims


def request_with(headers):
    request = MagicMock()
    request.headers = headers
    return request


class TestExtractToken:

    def test_bearer(self):
        assert extract_token({"authorization": "Bearer abc.def"}) == "abc.def"

    def test_bare_authorization(self):
        assert extract_token({"authorization": "abc.def"}) == "abc.def"

    def test_admin_header(self):
        assert extract_token({"x-admin-token": "Bearer admin.jwt"}) == "admin.jwt"

    def test_access_header(self):
        assert extract_token({"x-access-token": "access.jwt"}) == "access.jwt"

    def test_authorization_wins(self):
        headers = {"authorization": "Bearer first", "x-admin-token": "second"}
        assert extract_token(headers) == "first"

    def test_empty_bearer_falls_through(self):
        assert extract_token({"authorization": "Bearer ", "x-access-token": "next"}) == "next"

    def test_none(self):
        assert extract_token({}) is None


class TestTokens:

    def test_round_trip(self):
        user_id = uuid.uuid4()
        claims = decode_token(create_access_token(user_id))
        assert user_id_from_claims(claims) == user_id

    def test_wrong_secret(self):
        token = jwt.encode({"id": str(uuid.uuid4())}, "someone-else", algorithm="HS256")
        assert decode_token(token) is None

    def test_no_secret_configured(self):
        token = create_access_token(uuid.uuid4())
        with patch("app.security.settings.jwt_secret", ""):
            assert decode_token(token) is None

    def test_sub_claim_and_bad_ids(self):
        user_id = uuid.uuid4()
        assert user_id_from_claims({"sub": str(user_id)}) == user_id
        assert user_id_from_claims({"id": "42"}) is None
        assert user_id_from_claims({}) is None


class TestCurrentUser:

    @pytest.mark.asyncio
    async def test_missing_token(self, mock_db_session):
        with pytest.raises(AuthenticationError):
            await get_current_user(request_with({}), mock_db_session)
        mock_db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_garbage_token(self, mock_db_session):
        with pytest.raises(AuthenticationError):
            await get_current_user(request_with({"authorization": "Bearer nope"}), mock_db_session)

    @pytest.mark.asyncio
    async def test_deleted_user(self, mock_db_session, result_with):
        mock_db_session.execute.return_value = result_with(None)
        token = create_access_token(uuid.uuid4())
        with pytest.raises(AuthenticationError):
            await get_current_user(request_with({"authorization": f"Bearer {token}"}), mock_db_session)

    @pytest.mark.asyncio
    async def test_valid_caller(self, mock_db_session, result_with, customer):
        mock_db_session.execute.return_value = result_with(customer)
        request = request_with({"x-access-token": create_access_token(customer.id)})

        assert await get_current_user(request, mock_db_session) is customer
        assert request.state.user_id == str(customer.id)


class TestRequireAdmin:

    @pytest.mark.asyncio
    async def test_admin(self, admin_user):
        assert await require_admin(admin_user) is admin_user

    @pytest.mark.asyncio
    async def test_regular_user(self, customer):
        with pytest.raises(AuthorizationError, match="Admin access required"):
            await require_admin(customer)
