"""
Shared fixtures for all Copydesk tests.

Sets a deterministic environment before the package is imported and
provides sample entities, response-envelope factories and a mocked
`BackendClient` whose resource clients are plain MagicMocks.
"""

import math
import os
from datetime import datetime
from unittest.mock import MagicMock

import pytest

# Set test environment BEFORE any imports so Settings never sees real values
os.environ["ENVIRONMENT"] = "testing"
os.environ["FLASK_SECRET_KEY"] = "test-secret-key"
os.environ["API_BASE_URL"] = "http://backend.test/api"

from copydesk.schemas import (  # noqa: E402
    ApiResponse,
    Approver,
    Author,
    Book,
    PaginatedApiResponse,
    PaginationInfo,
    PrintRequest,
    Publisher,
    Requester,
)

# URL slug -> BackendClient attribute
RESOURCE_ATTRS = {
    "requesters": "requesters",
    "approvers": "approvers",
    "authors": "authors",
    "publishers": "publishers",
    "books": "books",
    "print-requests": "print_requests",
}


@pytest.fixture
def mock_backend():
    """MagicMock BackendClient; `resource(slug)` returns the matching attribute mock."""
    backend = MagicMock()
    clients = {slug: getattr(backend, attr) for slug, attr in RESOURCE_ATTRS.items()}

    def resource(entity):
        try:
            return clients[entity]
        except KeyError:
            raise ValueError(f"Unknown entity: {entity}")

    backend.resource.side_effect = resource
    return backend


@pytest.fixture
def notify():
    return MagicMock()


@pytest.fixture
def make_page():
    """Factory for paginated list envelopes."""
    def _make_page(items, page=1, per_page=10, total=None):
        total = len(items) if total is None else total
        total_pages = max(math.ceil(total / per_page), 1)
        return PaginatedApiResponse(
            data=list(items),
            pagination=PaginationInfo(
                current_page=page,
                per_page=per_page,
                total=total,
                total_pages=total_pages,
                has_next_page=page < total_pages,
            ),
        )
    return _make_page


@pytest.fixture
def make_response():
    """Factory for single-entity / unpaginated envelopes."""
    def _make_response(data, message=""):
        return ApiResponse(data=data, message=message)
    return _make_response


@pytest.fixture
def requester():
    return Requester(id=1, name="Ayşe Yılmaz", created_at=datetime(2024, 3, 1, 9, 30))


@pytest.fixture
def approver():
    return Approver(id=2, name="Mehmet Demir", created_at=datetime(2024, 3, 1, 9, 45))


@pytest.fixture
def make_print_request(requester, approver):
    """Factory for print requests with both relations loaded."""
    def _make_print_request(id=1, color_copies=10, bw_copies=20, description=None,
                            requested_at=datetime(2024, 3, 15)):
        return PrintRequest(
            id=id,
            requester_id=requester.id,
            approver_id=approver.id,
            color_copies=color_copies,
            bw_copies=bw_copies,
            requested_at=requested_at,
            description=description,
            requester=requester,
            approver=approver,
        )
    return _make_print_request


@pytest.fixture
def book():
    return Book(
        id=3,
        name="Küçük Prens",
        language="Turkish",
        page_count=96,
        is_donation=True,
        shelf_code="A-12",
        author_id=4,
        publisher_id=5,
        level="ilkokul",
        author=Author(id=4, name="Antoine de Saint-Exupéry"),
        publisher=Publisher(id=5, name="Can Yayınları"),
    )
