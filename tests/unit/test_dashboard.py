"""
Unit tests for copydesk.dashboard.
"""

import pytest

from copydesk.api_client import ApiError
from copydesk.dashboard import COPIES_SAMPLE_SIZE, load_dashboard
from copydesk.schemas import SortParams


class TestLoadDashboard:
    """Tests for load_dashboard()."""

    def test_statistics(self, mock_backend, make_page, make_print_request):
        requests_page = [make_print_request(id=i, color_copies=i, bw_copies=10) for i in range(8, 0, -1)]
        mock_backend.print_requests.get_all.return_value = make_page(requests_page, per_page=100, total=42)
        mock_backend.requesters.get_all.return_value = make_page([], per_page=1, total=7)
        mock_backend.approvers.get_all.return_value = make_page([], per_page=1, total=3)

        stats = load_dashboard(mock_backend)

        assert stats.failed is False
        assert stats.total_requests == 42
        assert stats.total_requesters == 7
        assert stats.total_approvers == 3
        assert stats.total_copies == sum(range(1, 9)) + 80
        assert [item.id for item in stats.recent_requests] == [8, 7, 6, 5, 4]

    def test_newest_requests_requested(self, mock_backend, make_page):
        mock_backend.print_requests.get_all.return_value = make_page([])
        mock_backend.requesters.get_all.return_value = make_page([])
        mock_backend.approvers.get_all.return_value = make_page([])

        load_dashboard(mock_backend)

        mock_backend.print_requests.get_all.assert_called_once_with(
            page=1, limit=COPIES_SAMPLE_SIZE, sort=SortParams("id", "desc")
        )
        mock_backend.requesters.get_all.assert_called_once_with(page=1, limit=1)

    def test_failure_returns_zeros(self, mock_backend, make_page):
        mock_backend.print_requests.get_all.return_value = make_page([])
        mock_backend.requesters.get_all.side_effect = ApiError(503, "Cannot connect to backend service")
        mock_backend.approvers.get_all.return_value = make_page([])

        stats = load_dashboard(mock_backend)

        assert stats.failed is True
        assert stats.total_requests == 0
        assert stats.recent_requests == []

    def test_unauthorized_propagates(self, mock_backend, make_page):
        mock_backend.print_requests.get_all.side_effect = ApiError(401, "Unauthenticated.")
        mock_backend.requesters.get_all.return_value = make_page([])
        mock_backend.approvers.get_all.return_value = make_page([])

        with pytest.raises(ApiError):
            load_dashboard(mock_backend)
