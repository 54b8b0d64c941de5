"""
Request-scoped helpers shared by the app and its blueprints.

Every request gets its own `BackendClient` and `AuthContext`, cached on
`flask.g`. The token provider reads the session object directly (not the
`flask.session` proxy) so backend calls may run on worker threads.
"""

import logging
from functools import wraps

from flask import g, make_response, redirect, request, session, url_for

from .api_client import ApiClient, BackendClient
from .auth import AuthContext, SessionTokenStore
from .config import get_settings

logger = logging.getLogger(__name__)


def get_store() -> SessionTokenStore:
    if "token_store" not in g:
        g.token_store = SessionTokenStore(session._get_current_object())
    return g.token_store


def get_backend() -> BackendClient:
    """Backend client authorized with the current session's token."""
    if "backend" not in g:
        settings = get_settings()
        api = ApiClient(
            settings.api_base_url,
            token_provider=get_store().get_token,
            timeout=settings.request_timeout,
            report_timeout=settings.report_timeout,
        )
        g.backend = BackendClient(api)
    return g.backend


def get_auth() -> AuthContext:
    if "auth" not in g:
        g.auth = AuthContext(get_store(), get_backend().auth)
    return g.auth


def is_htmx() -> bool:
    return request.headers.get("HX-Request") == "true"


def redirect_to_login():
    """Full-page redirect to the login page, also from inside HTMX requests."""
    target = url_for("login_page")
    if is_htmx():
        response = make_response("", 204)
        response.headers["HX-Redirect"] = target
        return response
    return redirect(target)


def login_required(f):
    """
    Decorator to require an authenticated backend session.

    Restores the user from the session token (asking the backend only when
    no user is cached) and redirects to the login page otherwise.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth = get_auth()
        auth.init()
        if not auth.is_authenticated:
            return redirect_to_login()
        return f(*args, **kwargs)
    return decorated_function
