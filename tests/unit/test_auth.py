"""
Unit tests for copydesk.auth.

A plain dict stands in for the Flask session and the AuthClient is mocked.
"""

from unittest.mock import MagicMock

import pytest

from copydesk.api_client import ApiClient, ApiError, AuthClient
from copydesk.auth import TOKEN_KEY, USER_KEY, AuthContext, SessionTokenStore
from copydesk.schemas import ApiResponse, AuthPayload, User


@pytest.fixture
def user():
    return User(id=1, name="Admin", email="admin@example.com")


@pytest.fixture
def session():
    return {}


@pytest.fixture
def store(session):
    return SessionTokenStore(session)


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def auth(store, client):
    return AuthContext(store, client)


class TestSessionTokenStore:
    """Tests for SessionTokenStore."""

    def test_save_and_read(self, store, session, user):
        store.save("tok", user)

        assert session[TOKEN_KEY] == "tok"
        assert session[USER_KEY] == {"id": 1, "name": "Admin", "email": "admin@example.com",
                                     "created_at": None, "updated_at": None}
        assert store.get_token() == "tok"
        assert store.get_user() == user

    def test_clear(self, store, session, user):
        store.save("tok", user)
        store.clear()
        assert session == {}
        assert store.get_token() is None
        assert store.get_user() is None


class TestInit:
    """Tests for AuthContext.init()."""

    def test_no_token(self, auth, client):
        assert auth.init() is None
        assert auth.loading is False
        assert not auth.is_authenticated
        client.get_user.assert_not_called()

    def test_cached_user_skips_backend(self, auth, store, client, user):
        store.save("tok", user)

        assert auth.init() == user
        assert auth.is_authenticated
        client.get_user.assert_not_called()

    def test_token_without_user_asks_backend(self, auth, session, client, user):
        session[TOKEN_KEY] = "tok"
        client.get_user.return_value = ApiResponse(data=user)

        assert auth.init() == user
        assert session[USER_KEY]["email"] == "admin@example.com"

    def test_rejected_token_is_cleared(self, auth, session, client):
        session[TOKEN_KEY] = "expired"
        client.get_user.side_effect = ApiError(401, "Unauthenticated.")

        assert auth.init() is None
        assert TOKEN_KEY not in session
        assert auth.loading is False


class TestLoginRegister:
    """Tests for login / register."""

    def test_login_persists_token(self, auth, client, session, user):
        client.login.return_value = ApiResponse(data=AuthPayload(user=user, token="new-token"))

        assert auth.login("admin@example.com", "secret") == user

        client.login.assert_called_once_with("admin@example.com", "secret")
        assert session[TOKEN_KEY] == "new-token"
        assert auth.is_authenticated

    def test_login_failure_leaves_store_empty(self, auth, client, session):
        client.login.side_effect = ApiError(401, "Invalid credentials")

        with pytest.raises(ApiError):
            auth.login("admin@example.com", "wrong")

        assert session == {}
        assert auth.user is None

    def test_register_logs_in(self, auth, client, session, user):
        client.register.return_value = ApiResponse(data=AuthPayload(user=user, token="reg-token"))

        auth.register("Admin", "admin@example.com", "secret1", "secret1")

        client.register.assert_called_once_with("Admin", "admin@example.com", "secret1", "secret1")
        assert session[TOKEN_KEY] == "reg-token"


class TestLogout:
    """Tests for logout / invalidate."""

    def test_logout_clears_even_if_backend_fails(self, auth, store, client, session, user):
        store.save("tok", user)
        auth.user = user
        client.logout.side_effect = ApiError(503, "Cannot connect to backend service")

        auth.logout()

        client.logout.assert_called_once()
        assert session == {}
        assert auth.user is None

    def test_logout_without_token_skips_backend(self, auth, client):
        auth.logout()
        client.logout.assert_not_called()

    def test_invalidate(self, auth, store, session, user):
        store.save("tok", user)
        auth.user = user

        auth.invalidate()

        assert session == {}
        assert not auth.is_authenticated


class TestLogoutResponses:
    """Logout against the real AuthClient with a mocked HTTP session."""

    @pytest.fixture
    def http_session(self):
        return MagicMock()

    @pytest.fixture
    def real_auth(self, store, http_session):
        api = ApiClient("http://backend.test/api", token_provider=store.get_token, session=http_session)
        return AuthContext(store, AuthClient(api))

    def respond(self, http_session, body):
        response = MagicMock()
        response.ok = True
        response.status_code = 200
        response.json.return_value = body
        http_session.request.return_value = response

    def test_message_only_body(self, real_auth, store, session, http_session, user):
        store.save("tok", user)
        self.respond(http_session, {"status": "success", "message": "Logged out"})

        real_auth.logout()

        assert http_session.request.call_args[0] == ("POST", "http://backend.test/api/logout")
        assert session == {}

    def test_unexpected_body_still_clears(self, real_auth, store, session, http_session, user):
        store.save("tok", user)
        self.respond(http_session, ["not", "an", "envelope"])

        real_auth.logout()

        assert session == {}
        assert real_auth.user is None
