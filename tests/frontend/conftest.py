"""
Pytest fixtures for frontend/Flask tests.

The backend is never contacted: `copydesk.web.get_backend` is patched to
return the shared `mock_backend` fixture.
"""

import pytest

from copydesk.auth import TOKEN_KEY, USER_KEY


@pytest.fixture
def app():
    """Flask app fixture with test configuration."""
    from copydesk.app import app
    app.config["TESTING"] = True
    app.config["SECRET_KEY"] = "test-secret-key"
    return app


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def authenticated_client(client):
    """Flask test client with a backend token and cached user in the session."""
    with client.session_transaction() as sess:
        sess[TOKEN_KEY] = "test-token"
        sess[USER_KEY] = {"id": 1, "name": "Test Admin", "email": "admin@example.com"}
    return client


@pytest.fixture
def backend(mocker, mock_backend, make_page, make_response):
    """
    Patch the request-scoped backend client.

    List and option endpoints return empty envelopes by default; tests
    override what they need.
    """
    for resource in (
        mock_backend.requesters,
        mock_backend.approvers,
        mock_backend.authors,
        mock_backend.publishers,
        mock_backend.books,
        mock_backend.print_requests,
    ):
        resource.get_all.return_value = make_page([])
        resource.get_all_unpaginated.return_value = make_response([])
    mocker.patch("copydesk.web.get_backend", return_value=mock_backend)
    return mock_backend
