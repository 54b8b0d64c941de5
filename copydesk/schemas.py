"""
Pydantic models for the backend REST API.

These models define the entity shapes and the response envelopes
(`{status, data, message[, pagination]}`) returned by the backend.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

SortDirection = Literal["asc", "desc"]
BookLevel = Literal["ilkokul", "ortaokul", "ortak"]

# Display labels for book levels
BOOK_LEVELS: Dict[str, str] = {
    "ilkokul": "Primary school",
    "ortaokul": "Middle school",
    "ortak": "Shared",
}


# =============================================================================
# Entities
# =============================================================================


class User(BaseModel):
    """Dashboard user as returned by the backend."""

    id: int
    name: str
    email: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class NamedEntity(BaseModel):
    """Reference entity that only carries a name."""

    id: int
    name: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Requester(NamedEntity):
    """Person who asks for photocopies."""


class Approver(NamedEntity):
    """Person who signs off photocopy requests."""


class Author(NamedEntity):
    deleted_at: Optional[datetime] = None


class Publisher(NamedEntity):
    deleted_at: Optional[datetime] = None


class Book(BaseModel):
    """Catalog entry. Relations are present only with `with_relations=true`."""

    id: int
    name: str
    type: Optional[str] = None
    language: Optional[str] = None
    page_count: Optional[int] = None
    is_donation: bool = False
    barcode: Optional[str] = None
    shelf_code: Optional[str] = None
    fixture_no: Optional[str] = None
    author_id: int
    publisher_id: int
    level: BookLevel
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    author: Optional[Author] = None
    publisher: Optional[Publisher] = None


class PrintRequest(BaseModel):
    """Photocopy request."""

    id: int
    requester_id: int
    approver_id: int
    color_copies: int = 0
    bw_copies: int = 0
    requested_at: datetime
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    requester: Optional[Requester] = None
    approver: Optional[Approver] = None

    @property
    def total_copies(self) -> int:
        return self.color_copies + self.bw_copies


class AuthPayload(BaseModel):
    """Body of a successful login/register call."""

    user: User
    token: str


# =============================================================================
# Envelopes
# =============================================================================


class PaginationInfo(BaseModel):
    """Server-supplied pagination block."""

    current_page: int = Field(1, ge=1)
    per_page: int = Field(10, ge=1)
    total: int = Field(0, ge=0)
    total_pages: int = Field(1, ge=0)
    has_next_page: bool = False

    @property
    def first_item(self) -> int:
        """1-based index of the first record on the current page."""
        if self.total == 0:
            return 0
        return (self.current_page - 1) * self.per_page + 1

    @property
    def last_item(self) -> int:
        """1-based index of the last record on the current page."""
        return min(self.current_page * self.per_page, self.total)


class ApiResponse(BaseModel, Generic[T]):
    """Single-entity / unpaginated-list envelope."""

    status: str = "success"
    data: T
    message: str = ""


class MessageResponse(BaseModel):
    """Envelope of endpoints that only acknowledge (delete, logout); `data` may be absent."""

    status: str = "success"
    data: Optional[Any] = None
    message: str = ""


class PaginatedApiResponse(BaseModel, Generic[T]):
    """Paginated-list envelope."""

    status: str = "success"
    data: List[T] = Field(default_factory=list)
    message: str = ""
    pagination: PaginationInfo


# =============================================================================
# Query state
# =============================================================================


@dataclass(frozen=True)
class SortParams:
    """
    Sort state of a list view.

    `sort_direction` only means something when `sort_by` is set.
    """

    sort_by: Optional[str] = None
    sort_direction: SortDirection = "asc"

    def to_query(self) -> Dict[str, Any]:
        """Query-string parameters for the backend; empty when unsorted."""
        if not self.sort_by:
            return {}
        return {"sort_by": self.sort_by, "sort_direction": self.sort_direction or "asc"}

    def is_active(self, sort_key: str) -> bool:
        return self.sort_by is not None and self.sort_by == sort_key
