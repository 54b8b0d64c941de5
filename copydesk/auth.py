"""
Authentication context.

The bearer token issued by the backend is the only state that outlives a
request. It lives in a `TokenStore` (the signed Flask session cookie in
production) and `AuthContext` manages its lifecycle:

    init     -> restore the user from the stored token, drop it if invalid
    login    -> exchange credentials for a token and persist both
    register -> same as login for a new account
    logout   -> best-effort backend logout, then always clear local state
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, MutableMapping, Optional

from .api_client import ApiError, AuthClient
from .schemas import AuthPayload, User

logger = logging.getLogger(__name__)

TOKEN_KEY = "auth_token"
USER_KEY = "auth_user"


class TokenStore(ABC):
    """Persistent slot for the auth token and the cached user."""

    @abstractmethod
    def get_token(self) -> Optional[str]:
        pass

    @abstractmethod
    def get_user(self) -> Optional[User]:
        pass

    @abstractmethod
    def save(self, token: str, user: User) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass


class SessionTokenStore(TokenStore):
    """
    Token store backed by a session mapping.

    Args:
        session: Mapping to persist into; defaults to `flask.session`
    """

    def __init__(self, session: Optional[MutableMapping[str, Any]] = None):
        if session is None:
            from flask import session as flask_session
            session = flask_session
        self._session = session

    def get_token(self) -> Optional[str]:
        return self._session.get(TOKEN_KEY) or None

    def get_user(self) -> Optional[User]:
        data = self._session.get(USER_KEY)
        if not data:
            return None
        return User.model_validate(data)

    def save(self, token: str, user: User) -> None:
        self._session[TOKEN_KEY] = token
        self._session[USER_KEY] = user.model_dump(mode="json")
        if hasattr(self._session, "permanent"):
            self._session.permanent = True

    def clear(self) -> None:
        self._session.pop(TOKEN_KEY, None)
        self._session.pop(USER_KEY, None)


class AuthContext:
    """Current user and token, injected into everything that talks to the backend."""

    def __init__(self, store: TokenStore, client: AuthClient):
        self.store = store
        self.client = client
        self.user: Optional[User] = None
        self.loading = True

    @property
    def token(self) -> Optional[str]:
        return self.store.get_token()

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and self.token is not None

    def init(self) -> Optional[User]:
        """
        Restore the session from the stored token.

        The backend is only asked (`GET /user`) when there is a token but no
        cached user. Any backend error invalidates the stored token.
        """
        try:
            if not self.store.get_token():
                self.user = None
                return None

            cached = self.store.get_user()
            if cached is not None:
                self.user = cached
                return cached

            try:
                response = self.client.get_user()
            except ApiError as e:
                logger.warning(f"Stored token rejected ({e.status_code}); clearing session")
                self.store.clear()
                self.user = None
                return None

            self.user = response.data
            self.store.save(self.store.get_token(), self.user)
            return self.user
        finally:
            self.loading = False

    def _accept(self, payload: AuthPayload) -> User:
        self.store.save(payload.token, payload.user)
        self.user = payload.user
        return payload.user

    def login(self, email: str, password: str) -> User:
        """
        Log in and persist the token.

        Raises:
            ApiError: invalid credentials or backend failure
        """
        response = self.client.login(email, password)
        logger.info(f"User {response.data.user.email} logged in")
        return self._accept(response.data)

    def register(self, name: str, email: str, password: str, password_confirmation: str) -> User:
        """
        Create an account and log in with it.

        Raises:
            ApiError: validation failure (field errors) or backend failure
        """
        response = self.client.register(name, email, password, password_confirmation)
        logger.info(f"User {response.data.user.email} registered")
        return self._accept(response.data)

    def logout(self) -> None:
        """Log out; local state is cleared even if the backend call fails."""
        try:
            if self.store.get_token():
                self.client.logout()
        except ApiError as e:
            logger.warning(f"Backend logout failed ({e.status_code}): {e.message}")
        finally:
            self.store.clear()
            self.user = None

    def invalidate(self) -> None:
        """Drop local state after the backend rejected the token."""
        self.store.clear()
        self.user = None
