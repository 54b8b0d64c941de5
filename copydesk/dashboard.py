"""
Dashboard statistics.

The four counters and the recent-request list come from independent backend
calls, fetched in parallel.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List

from .api_client import ApiError, BackendClient
from .schemas import PrintRequest, SortParams

logger = logging.getLogger(__name__)

RECENT_REQUESTS = 5
# Total copies is summed over the newest requests only
COPIES_SAMPLE_SIZE = 100

NEWEST_FIRST = SortParams(sort_by="id", sort_direction="desc")


@dataclass
class DashboardStats:
    total_requests: int = 0
    total_requesters: int = 0
    total_approvers: int = 0
    total_copies: int = 0
    recent_requests: List[PrintRequest] = field(default_factory=list)
    failed: bool = False


def load_dashboard(backend: BackendClient) -> DashboardStats:
    """
    Collect dashboard statistics.

    A failing call leaves zeros in place and marks the result as `failed`;
    a 401 propagates.
    """
    with ThreadPoolExecutor(max_workers=3) as executor:
        requests_future = executor.submit(
            backend.print_requests.get_all, page=1, limit=COPIES_SAMPLE_SIZE, sort=NEWEST_FIRST
        )
        requesters_future = executor.submit(backend.requesters.get_all, page=1, limit=1)
        approvers_future = executor.submit(backend.approvers.get_all, page=1, limit=1)

        stats = DashboardStats()
        try:
            print_requests = requests_future.result()
            requesters = requesters_future.result()
            approvers = approvers_future.result()
        except ApiError as e:
            if e.is_unauthorized:
                raise
            logger.warning(f"Failed to load dashboard statistics: {e.status_code} {e.message}")
            stats.failed = True
            return stats

    stats.total_requests = print_requests.pagination.total
    stats.total_requesters = requesters.pagination.total
    stats.total_approvers = approvers.pagination.total
    stats.total_copies = sum(request.total_copies for request in print_requests.data)
    stats.recent_requests = print_requests.data[:RECENT_REQUESTS]
    return stats
