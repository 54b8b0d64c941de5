"""
Backend REST client.

Typed wrapper over the backend API: one resource client per entity, query
string construction for pagination/sort/filters, bearer-token authorization
and translation of failures into `ApiError`.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, Type, TypeVar
from urllib.parse import unquote

import requests
from pydantic import BaseModel, ValidationError

from .filters import active_filters
from .schemas import (
    ApiResponse,
    Approver,
    Author,
    AuthPayload,
    Book,
    MessageResponse,
    PaginatedApiResponse,
    PrintRequest,
    Publisher,
    Requester,
    SortParams,
    User,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
EnvelopeT = TypeVar("EnvelopeT", bound=BaseModel)

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

_FILENAME_RE = re.compile(r'filename="(.+)"')
_FILENAME_STAR_RE = re.compile(r"filename\*=UTF-8''(.+)")


class ApiError(Exception):
    """
    Failed backend call.

    Attributes:
        status_code: HTTP status (504 timeout, 503 unreachable, else backend's)
        message: Backend `message` or a transport description
        errors: Optional field -> [messages] mapping from validation failures
    """

    def __init__(self, status_code: int, message: str, errors: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.errors = errors or {}

    @classmethod
    def from_response(cls, response: requests.Response) -> "ApiError":
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        errors = payload.get("errors")
        return cls(
            response.status_code,
            payload.get("message") or response.reason or f"HTTP {response.status_code}",
            errors if isinstance(errors, dict) else None,
        )

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401

    def user_message(self, fallback: str = "An error occurred") -> str:
        """
        Message suitable for a notification.

        Field errors are flattened one per line; otherwise the backend
        message, otherwise `fallback`.
        """
        lines: List[str] = []
        for messages in self.errors.values():
            if isinstance(messages, (list, tuple)):
                lines.extend(str(message) for message in messages)
            elif messages:
                lines.append(str(messages))
        if lines:
            return "\n".join(lines)
        return self.message or fallback


def build_list_query(
    page: Optional[int] = None,
    limit: Optional[int] = None,
    sort: Optional[SortParams] = None,
    filters: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Query parameters for a list endpoint.

    `sort_by`/`sort_direction` only when a sort field is set; filters only
    when their value is active (not None, "", False).
    """
    params: Dict[str, Any] = {}
    if page is not None:
        params["page"] = page
    if limit is not None:
        params["limit"] = limit
    if sort is not None:
        params.update(sort.to_query())
    for key, value in active_filters(filters or {}).items():
        params[key] = "true" if value is True else value
    return params


def parse_envelope(envelope: Type[EnvelopeT], payload: Any) -> EnvelopeT:
    """
    Validate a backend JSON body against its envelope model.

    Raises:
        ApiError: 502 when the body does not have the expected shape
    """
    try:
        return envelope.model_validate(payload)
    except ValidationError as e:
        logger.error(f"Unexpected backend response for {envelope.__name__}: {e.error_count()} validation error(s)")
        raise ApiError(502, "Unexpected response from backend service")


def filename_from_disposition(header: Optional[str], default: str) -> str:
    """Extract the download file name from a Content-Disposition header."""
    if header:
        match = _FILENAME_RE.search(header) or _FILENAME_STAR_RE.search(header)
        if match:
            return unquote(match.group(1))
    return default


@dataclass
class Report:
    """Binary spreadsheet returned by a report endpoint."""

    filename: str
    content: bytes
    content_type: str = XLSX_CONTENT_TYPE


class ApiClient:
    """Low-level HTTP access to the backend."""

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], Optional[str]] = lambda: None,
        timeout: int = 30,
        report_timeout: int = 120,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self.timeout = timeout
        self.report_timeout = report_timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

    def get_headers(self) -> Dict[str, str]:
        """Authorization header for the current session, if logged in."""
        token = self.token_provider()
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        json: Optional[Any] = None,
        timeout: Optional[int] = None,
    ) -> requests.Response:
        """
        Send a request and return the response.

        Raises:
            ApiError: on timeout (504), connection failure (503) or non-2xx
        """
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json,
                headers=self.get_headers(),
                timeout=timeout or self.timeout,
            )
        except requests.exceptions.Timeout:
            logger.error(f"Backend timeout: {method} {path}")
            raise ApiError(504, "Backend service timeout")
        except requests.exceptions.ConnectionError:
            logger.error(f"Cannot connect to backend: {method} {path}")
            raise ApiError(503, "Cannot connect to backend service")

        if not response.ok:
            error = ApiError.from_response(response)
            logger.warning(f"Backend returned {error.status_code} for {method} {path}: {error.message}")
            raise error
        return response

    @staticmethod
    def json_body(response: requests.Response) -> Any:
        """Decoded JSON body; an empty body (e.g. 204) is an empty object."""
        try:
            return response.json()
        except ValueError:
            if not response.content:
                return {}
            logger.error(f"Backend returned a non-JSON body ({response.status_code})")
            raise ApiError(502, "Unexpected response from backend service")

    def get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return self.json_body(self.request("GET", path, params=params))

    def post(self, path: str, json: Optional[Any] = None) -> Any:
        return self.json_body(self.request("POST", path, json=json))

    def put(self, path: str, json: Optional[Any] = None) -> Any:
        return self.json_body(self.request("PUT", path, json=json))

    def delete(self, path: str) -> Any:
        return self.json_body(self.request("DELETE", path))

    def download(self, path: str, params: Mapping[str, Any], default_filename: str) -> Report:
        """Fetch a binary report using the longer report timeout."""
        response = self.request("GET", path, params=params, timeout=self.report_timeout)
        return Report(
            filename=filename_from_disposition(response.headers.get("Content-Disposition"), default_filename),
            content=response.content,
            content_type=response.headers.get("Content-Type") or XLSX_CONTENT_TYPE,
        )


class AuthClient:
    """Login / register / logout / current-user endpoints."""

    def __init__(self, api: ApiClient):
        self.api = api

    def login(self, email: str, password: str) -> ApiResponse[AuthPayload]:
        payload = self.api.post("/login", {"email": email, "password": password})
        return parse_envelope(ApiResponse[AuthPayload], payload)

    def register(
        self, name: str, email: str, password: str, password_confirmation: str
    ) -> ApiResponse[AuthPayload]:
        payload = self.api.post("/register", {
            "name": name,
            "email": email,
            "password": password,
            "password_confirmation": password_confirmation,
        })
        return parse_envelope(ApiResponse[AuthPayload], payload)

    def logout(self) -> MessageResponse:
        return parse_envelope(MessageResponse, self.api.post("/logout"))

    def get_user(self) -> ApiResponse[User]:
        return parse_envelope(ApiResponse[User], self.api.get("/user"))


class ResourceClient(Generic[T]):
    """CRUD + list endpoints of one entity collection."""

    def __init__(self, api: ApiClient, path: str, model: Type[T]):
        self.api = api
        self.path = path
        self.model = model

    def get_all(
        self,
        page: int = 1,
        limit: int = 10,
        sort: Optional[SortParams] = None,
        filters: Optional[Mapping[str, Any]] = None,
    ) -> PaginatedApiResponse[T]:
        params = build_list_query(page, limit, sort, filters)
        return parse_envelope(PaginatedApiResponse[self.model], self.api.get(self.path, params))

    def get_all_unpaginated(self, filters: Optional[Mapping[str, Any]] = None) -> ApiResponse[List[T]]:
        """Full list, optionally narrowed by `search` or other filters."""
        params = build_list_query(filters=filters)
        return parse_envelope(ApiResponse[List[self.model]], self.api.get(self.path, params or None))

    def search(self, query: str) -> ApiResponse[List[T]]:
        return self.get_all_unpaginated({"search": query})

    def get_by_id(self, item_id: int, **params: Any) -> ApiResponse[T]:
        query = build_list_query(filters=params)
        return parse_envelope(ApiResponse[self.model], self.api.get(f"{self.path}/{item_id}", query or None))

    def create(self, data: Mapping[str, Any]) -> ApiResponse[T]:
        return parse_envelope(ApiResponse[self.model], self.api.post(self.path, dict(data)))

    def update(self, item_id: int, data: Mapping[str, Any]) -> ApiResponse[T]:
        return parse_envelope(ApiResponse[self.model], self.api.put(f"{self.path}/{item_id}", dict(data)))

    def delete(self, item_id: int) -> MessageResponse:
        return parse_envelope(MessageResponse, self.api.delete(f"{self.path}/{item_id}"))


class BooksClient(ResourceClient[Book]):
    def get_by_id(self, item_id: int, with_relations: bool = False) -> ApiResponse[Book]:
        return super().get_by_id(item_id, with_relations=with_relations)


class PrintRequestsClient(ResourceClient[PrintRequest]):
    """Print requests plus their Excel report exports."""

    def get_report(self, start_date: str, end_date: str) -> Report:
        """Per-requester report for one date range."""
        return self.api.download(
            f"{self.path}/export/by-requester",
            {"start_date": start_date, "end_date": end_date},
            f"photocopy_report_{start_date}_{end_date}.xlsx",
        )

    def get_comparison_report(
        self,
        first_start_date: str,
        first_end_date: str,
        second_start_date: str,
        second_end_date: str,
    ) -> Report:
        """Report comparing two date ranges."""
        return self.api.download(
            f"{self.path}/export/comparison",
            {
                "first_start_date": first_start_date,
                "first_end_date": first_end_date,
                "second_start_date": second_start_date,
                "second_end_date": second_end_date,
            },
            f"photocopy_comparison_report_{first_start_date}_{first_end_date}"
            f"_vs_{second_start_date}_{second_end_date}.xlsx",
        )

    def export_all(self) -> Report:
        return self.api.download(f"{self.path}/export/all", {}, "photocopy_requests_all.xlsx")


class BackendClient:
    """All resource clients sharing one authenticated `ApiClient`."""

    def __init__(self, api: ApiClient):
        self.api = api
        self.auth = AuthClient(api)
        self.requesters = ResourceClient(api, "/requesters", Requester)
        self.approvers = ResourceClient(api, "/approvers", Approver)
        self.authors = ResourceClient(api, "/authors", Author)
        self.publishers = ResourceClient(api, "/publishers", Publisher)
        self.books = BooksClient(api, "/books", Book)
        self.print_requests = PrintRequestsClient(api, "/print-requests", PrintRequest)

    def resource(self, entity: str) -> ResourceClient:
        """Resource client by URL slug (e.g. 'print-requests')."""
        clients = {
            "requesters": self.requesters,
            "approvers": self.approvers,
            "authors": self.authors,
            "publishers": self.publishers,
            "books": self.books,
            "print-requests": self.print_requests,
        }
        try:
            return clients[entity]
        except KeyError:
            raise ValueError(f"Unknown entity: {entity}")
