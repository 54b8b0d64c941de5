"""
Page controllers.

One controller per entity page. A controller owns the page state (items,
pagination, current page, page size, sort, filters, dialog and editing item),
talks to the entity's REST client, refetches after every mutation and reports
outcomes through `notify` (Flask `flash` by default). It feeds a `DataTable`
and the `SearchableSelect` relation pickers of its dialog and filter panel.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, Type, TypeVar

from flask import flash
from markupsafe import Markup

from .api_client import ApiError, BackendClient, ResourceClient
from .config import PAGE_SIZE_CHOICES, get_settings
from .data_table import ActionsColumn, Column, DataColumn, DataTable
from .filters import BookFilterPanel, FilterPanel, PrintRequestFilterPanel
from .forms import BaseForm, BookForm, NameForm, PrintRequestForm, form_data, validate_form
from .schemas import BOOK_LEVELS, PaginationInfo, SortParams
from .searchable_select import Option, SearchableSelect, options_from

logger = logging.getLogger(__name__)

T = TypeVar("T")

Notify = Callable[[str, str], None]

LOAD_FAILED_MESSAGE = "Failed to load data"


def _format_date(value: Any, row: Any = None) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.strftime("%d.%m.%Y")
    return str(value)


def _format_datetime(value: Any, row: Any = None) -> Optional[str]:
    if isinstance(value, datetime):
        return value.strftime("%d.%m.%Y %H:%M")
    return _format_date(value)


def _parse_int(raw: Optional[str], default: int) -> int:
    try:
        return int(raw) if raw not in (None, "") else default
    except ValueError:
        return default


class PageController(Generic[T]):
    """
    Base controller for a CRUD list page.

    Subclasses set `entity` (URL slug) and the display texts, and override
    `columns()` and, if needed, the form hooks.
    """

    entity: str = ""
    title: str = ""
    description: str = ""
    singular: str = "Record"
    add_button_text: str = "Add"
    empty_state_text: str = "No records found."
    form_class: Type[BaseForm] = NameForm
    form_template: str = "partials/forms/name_form.html"
    filter_panel_class: Optional[Type[FilterPanel]] = None
    default_sort = SortParams(sort_by="id", sort_direction="desc")

    def __init__(
        self,
        backend: BackendClient,
        notify: Notify = flash,
        current_page: int = 1,
        items_per_page: Optional[int] = None,
        sort_params: Optional[SortParams] = None,
        filters: Optional[Mapping[str, Any]] = None,
        link_builder: Optional[Callable[..., str]] = None,
    ):
        self.backend = backend
        self.resource: ResourceClient = backend.resource(self.entity)
        self.notify = notify
        self.link_builder = link_builder

        self.items: List[T] = []
        self.pagination: Optional[PaginationInfo] = None
        self.current_page = current_page
        self.items_per_page = items_per_page or get_settings().default_page_size
        self.sort_params = sort_params or self.default_sort
        self.filters: Dict[str, Any] = dict(filters) if filters is not None else self._default_filters()
        self.loading = False

        self.dialog_open = False
        self.editing_item: Optional[T] = None
        self.form_values: Dict[str, Any] = {}
        self.form_errors: Dict[str, str] = {}

        self._request_seq = 0

    # -------------------------------------------------------------------------
    # Construction from request state
    # -------------------------------------------------------------------------

    def _default_filters(self) -> Dict[str, Any]:
        if self.filter_panel_class is None:
            return {}
        return self.filter_panel_class().values

    def load_args(self, args: Mapping[str, str]) -> "PageController[T]":
        """Restore page / page size / sort / filters from query-string state."""
        self.current_page = max(_parse_int(args.get("page"), 1), 1)

        per_page = _parse_int(args.get("per_page"), self.items_per_page)
        if per_page in PAGE_SIZE_CHOICES:
            self.items_per_page = per_page

        sort_by = args.get("sort_by")
        if sort_by and sort_by in self.sort_keys():
            direction = args.get("sort_direction", "asc")
            self.sort_params = SortParams(sort_by=sort_by, sort_direction="desc" if direction == "desc" else "asc")
        elif sort_by:
            logger.warning(f"Ignoring unknown sort field {sort_by!r} for {self.entity}")

        if self.filter_panel_class is not None:
            self.filters = self.filter_panel_class.from_args(args).values
        return self

    def sort_keys(self) -> List[str]:
        return [
            column.effective_sort_key
            for column in self.columns()
            if isinstance(column, DataColumn) and column.sortable
        ]

    def state_params(self, **overrides: Any) -> Dict[str, Any]:
        """Query-string form of the current table state."""
        params: Dict[str, Any] = {"page": self.current_page, "per_page": self.items_per_page}
        params.update(self.sort_params.to_query())
        ignored = self.filter_panel_class.defaults.keys() if self.filter_panel_class else ()
        for key, value in self.filter_panel.query().items():
            if key not in ignored:
                params[key] = "true" if value is True else value
        params.update(overrides)
        return params

    @property
    def filter_panel(self) -> FilterPanel:
        panel_class = self.filter_panel_class or FilterPanel
        return panel_class(self.filters)

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    @property
    def fetched(self) -> bool:
        return self._request_seq > 0

    def begin_request(self) -> int:
        """Mark the table as loading and issue a new request number."""
        self.loading = True
        self._request_seq += 1
        return self._request_seq

    def apply_response(self, seq: int, items: List[T], pagination: Optional[PaginationInfo]) -> bool:
        """Store a list response unless a newer request has been issued since."""
        if seq != self._request_seq:
            logger.debug(f"Discarding stale {self.entity} response #{seq} (latest #{self._request_seq})")
            return False
        self.items = items
        self.pagination = pagination
        if pagination is not None:
            self.current_page = pagination.current_page
        self.loading = False
        return True

    def apply_failure(self, seq: int, error: ApiError) -> None:
        if seq != self._request_seq:
            return
        logger.warning(f"Failed to load {self.entity}: {error.status_code} {error.message}")
        self.loading = False
        self.notify(LOAD_FAILED_MESSAGE, "error")

    def fetch(self) -> bool:
        """
        Load the current page.

        On failure the previous items stay in place and a notification is
        emitted. A 401 propagates so the web layer can end the session.
        """
        seq = self.begin_request()
        try:
            response = self.resource.get_all(
                page=self.current_page,
                limit=self.items_per_page,
                sort=self.sort_params,
                filters=self.filters,
            )
        except ApiError as e:
            if e.is_unauthorized:
                raise
            self.apply_failure(seq, e)
            return False
        return self.apply_response(seq, response.data, response.pagination)

    def change_page(self, page: int) -> None:
        self.current_page = page
        self.fetch()

    def change_sort(self, sort_params: SortParams) -> None:
        self.sort_params = sort_params
        self.current_page = 1
        self.fetch()

    def change_items_per_page(self, items_per_page: int) -> None:
        self.items_per_page = items_per_page
        self.current_page = 1
        self.fetch()

    def change_filters(self, filters: Mapping[str, Any]) -> None:
        self.filters = dict(filters)
        self.current_page = 1
        self.fetch()

    # -------------------------------------------------------------------------
    # Dialog & mutations
    # -------------------------------------------------------------------------

    def initial_form_values(self) -> Dict[str, Any]:
        return {}

    def form_values_for(self, item: T) -> Dict[str, Any]:
        return {"name": getattr(item, "name", "")}

    def open_add(self) -> None:
        self.editing_item = None
        self.form_values = self.initial_form_values()
        self.form_errors = {}
        self.dialog_open = True

    def open_edit(self, item: T) -> None:
        self.editing_item = item
        self.form_values = self.form_values_for(item)
        self.form_errors = {}
        self.dialog_open = True

    def close_dialog(self) -> None:
        self.dialog_open = False
        self.editing_item = None
        self.form_values = {}
        self.form_errors = {}

    def load_item(self, item_id: int) -> T:
        return self.resource.get_by_id(item_id).data

    def _validate(self, data: Mapping[str, Any]) -> Optional[BaseForm]:
        form, errors = validate_form(self.form_class, data)
        if errors:
            self.form_values = form_data(data)
            self.form_errors = errors
            return None
        return form

    def _mutation_failed(self, error: ApiError, data: Optional[Mapping[str, Any]], fallback: str) -> bool:
        if error.is_unauthorized:
            raise error
        logger.warning(f"{self.entity} mutation failed: {error.status_code} {error.message}")
        if data is not None:
            self.form_values = form_data(data)
        self.notify(error.user_message(fallback), "error")
        return False

    def create(self, data: Mapping[str, Any]) -> bool:
        """Validate and create; refetch the current page on success."""
        form = self._validate(data)
        if form is None:
            return False
        try:
            self.resource.create(form.payload())
        except ApiError as e:
            return self._mutation_failed(e, data, "An error occurred")
        self.notify(f"{self.singular} created successfully", "success")
        self.close_dialog()
        self.fetch()
        return True

    def update(self, item: Any, data: Mapping[str, Any]) -> bool:
        """Validate and update `item` (an entity or its id)."""
        self.editing_item = item
        form = self._validate(data)
        if form is None:
            return False
        try:
            self.resource.update(getattr(item, "id", item), form.payload())
        except ApiError as e:
            return self._mutation_failed(e, data, "An error occurred")
        self.notify(f"{self.singular} updated successfully", "success")
        self.close_dialog()
        self.fetch()
        return True

    def delete(self, item: Any, confirmed: bool = False) -> bool:
        """Delete `item` (an entity or its id); nothing is sent unless confirmed."""
        if not confirmed:
            return False
        item_id = getattr(item, "id", item)
        try:
            self.resource.delete(item_id)
        except ApiError as e:
            return self._mutation_failed(e, None, "Delete failed")
        logger.info(f"Deleted {self.entity} #{item_id}")
        self.notify(f"{self.singular} deleted successfully", "success")
        self.fetch()
        return True

    @property
    def dialog_title(self) -> str:
        verb = "Edit" if self.editing_item is not None else "New"
        return f"{verb} {self.singular.lower()}"

    # -------------------------------------------------------------------------
    # Relation pickers
    # -------------------------------------------------------------------------

    def load_options(self, source: str, query: str = "", value_field: str = "id") -> List[Option]:
        """Options for a picker, searched on the backend; empty on failure."""
        try:
            response = self.backend.resource(source).get_all_unpaginated({"search": query})
        except ApiError as e:
            if e.is_unauthorized:
                raise
            logger.warning(f"Option search on {source} failed: {e.message}")
            return []
        return options_from(response.data, value_field=value_field)

    def picker(
        self,
        name: str,
        source: str,
        value: Any,
        placeholder: str,
        value_field: str = "id",
        url_builder: Optional[Callable[..., str]] = None,
    ) -> SearchableSelect:
        search_url = select_url = None
        if url_builder is not None:
            search_url = url_builder(source, "options", name=name, value_field=value_field, placeholder=placeholder)
            select_url = url_builder(source, "select", name=name, value_field=value_field, placeholder=placeholder)
        return SearchableSelect(
            name=name,
            value="" if value is None else str(value),
            options=self.load_options(source, value_field=value_field),
            placeholder=placeholder,
            search_placeholder="Search... (3+ characters)",
            search_url=search_url,
            select_url=select_url,
        )

    def form_pickers(self, url_builder: Optional[Callable[..., str]] = None) -> Dict[str, SearchableSelect]:
        return {}

    def filter_pickers(self, url_builder: Optional[Callable[..., str]] = None) -> Dict[str, SearchableSelect]:
        pickers = {}
        for field in self.filter_panel.searchable_fields():
            pickers[field.name] = self.picker(
                field.name,
                field.source,
                self.filters.get(field.name),
                field.placeholder,
                value_field=field.value_field,
                url_builder=url_builder,
            )
        return pickers

    # -------------------------------------------------------------------------
    # Table
    # -------------------------------------------------------------------------

    def columns(self) -> List[Column]:
        return [
            DataColumn("id", "ID", sortable=True),
            DataColumn("name", "Name", sortable=True),
            DataColumn("created_at", "Created", sortable=True, render=_format_datetime),
            ActionsColumn(),
        ]

    def table(self) -> DataTable:
        return DataTable(
            data=self.items,
            columns=self.columns(),
            pagination=self.pagination,
            current_page=self.current_page,
            items_per_page=self.items_per_page,
            sort_params=self.sort_params,
            on_sort_change=self.change_sort,
            on_page_change=self.change_page,
            on_items_per_page_change=self.change_items_per_page,
            on_add=self.open_add,
            on_edit=self.open_edit,
            on_delete=self.delete,
            loading=self.loading,
            empty_state_text=self.empty_state_text,
            title=self.title,
            description=self.description,
            add_button_text=self.add_button_text,
            dialog_open=self.dialog_open,
            dialog_title=self.dialog_title,
            link_builder=self.link_builder,
        )


# =============================================================================
# Reference entities
# =============================================================================


class RequesterController(PageController):
    entity = "requesters"
    title = "Requesters"
    description = "People who request photocopies"
    singular = "Requester"
    add_button_text = "Add requester"
    empty_state_text = "No requesters yet."


class ApproverController(PageController):
    entity = "approvers"
    title = "Approvers"
    description = "People who approve photocopy requests"
    singular = "Approver"
    add_button_text = "Add approver"
    empty_state_text = "No approvers yet."


class AuthorController(PageController):
    entity = "authors"
    title = "Authors"
    description = "Book authors in the catalog"
    singular = "Author"
    add_button_text = "Add author"
    empty_state_text = "No authors yet."


class PublisherController(PageController):
    entity = "publishers"
    title = "Publishers"
    description = "Book publishers in the catalog"
    singular = "Publisher"
    add_button_text = "Add publisher"
    empty_state_text = "No publishers yet."


# =============================================================================
# Print requests
# =============================================================================


QUICK_CREATE_SOURCES = {"requester_id": "requesters", "approver_id": "approvers"}

# Value format of `<input type="datetime-local">`
DATETIME_LOCAL_FORMAT = "%Y-%m-%dT%H:%M"


class PrintRequestController(PageController):
    entity = "print-requests"
    title = "Print Requests"
    description = "Photocopy requests and their approvals"
    singular = "Print request"
    add_button_text = "New request"
    empty_state_text = "No print requests found."
    form_class = PrintRequestForm
    form_template = "partials/forms/print_request_form.html"
    filter_panel_class = PrintRequestFilterPanel

    def columns(self) -> List[Column]:
        return [
            DataColumn("requester_id", "Requester", sortable=True,
                       render=lambda _, row: row.requester.name if row.requester else "Unknown"),
            DataColumn("approver_id", "Approver", sortable=True,
                       render=lambda _, row: row.approver.name if row.approver else "Unknown"),
            DataColumn("color_copies", "Color", sortable=True),
            DataColumn("bw_copies", "B/W", sortable=True),
            DataColumn("description", "Description"),
            DataColumn("total_copies", "Total",
                       render=lambda _, row: Markup('<span class="font-medium">{}</span>').format(row.total_copies)),
            DataColumn("requested_at", "Requested", sortable=True, render=_format_date),
            ActionsColumn(),
        ]

    def initial_form_values(self) -> Dict[str, Any]:
        return {
            "requester_id": "",
            "approver_id": "",
            "color_copies": "",
            "bw_copies": "",
            "requested_at": datetime.now().strftime(DATETIME_LOCAL_FORMAT),
            "description": "",
        }

    def form_values_for(self, item: Any) -> Dict[str, Any]:
        return {
            "requester_id": str(item.requester_id),
            "approver_id": str(item.approver_id),
            "color_copies": str(item.color_copies),
            "bw_copies": str(item.bw_copies),
            "requested_at": item.requested_at.strftime(DATETIME_LOCAL_FORMAT),
            "description": item.description or "",
        }

    def form_pickers(self, url_builder: Optional[Callable[..., str]] = None) -> Dict[str, SearchableSelect]:
        return {
            "requester_id": self.picker("requester_id", "requesters", self.form_values.get("requester_id"),
                                        "Select requester", url_builder=url_builder),
            "approver_id": self.picker("approver_id", "approvers", self.form_values.get("approver_id"),
                                       "Select approver", url_builder=url_builder),
        }

    def quick_create(self, field: str, data: Mapping[str, Any]) -> Optional[SearchableSelect]:
        """
        Create a requester/approver from inside the request dialog.

        Returns the relation picker with the new record selected, or None
        when validation or the backend call failed (errors in `form_errors`).
        """
        source = QUICK_CREATE_SOURCES.get(field)
        if source is None:
            raise ValueError(f"Quick-create not supported for {field}")

        form, errors = validate_form(NameForm, data)
        if errors:
            self.form_errors = errors
            return None
        try:
            created = self.backend.resource(source).create(form.payload()).data
        except ApiError as e:
            self._mutation_failed(e, None, "An error occurred")
            return None

        label = "Requester" if source == "requesters" else "Approver"
        self.notify(f"{label} created successfully", "success")
        self.form_values[field] = str(created.id)
        select = SearchableSelect(
            name=field,
            options=options_from([created]),
            placeholder=f"Select {label.lower()}",
        )
        select.select(str(created.id))
        return select


# =============================================================================
# Books
# =============================================================================


class BookController(PageController):
    entity = "books"
    title = "Books"
    description = "Library book catalog"
    singular = "Book"
    add_button_text = "Add book"
    empty_state_text = "No books found."
    form_class = BookForm
    form_template = "partials/forms/book_form.html"
    filter_panel_class = BookFilterPanel

    def columns(self) -> List[Column]:
        return [
            DataColumn("id", "ID", sortable=True),
            DataColumn("name", "Name", sortable=True),
            DataColumn("author.name", "Author", sortable=True, sort_key="author_id"),
            DataColumn("publisher.name", "Publisher", sortable=True, sort_key="publisher_id"),
            DataColumn("level", "Level", sortable=True, render=lambda value, _: BOOK_LEVELS.get(value, value)),
            DataColumn("language", "Language"),
            DataColumn("page_count", "Pages", sortable=True),
            DataColumn("is_donation", "Donation", render=lambda value, _: "Yes" if value else "No"),
            DataColumn("shelf_code", "Shelf"),
            ActionsColumn(),
        ]

    def initial_form_values(self) -> Dict[str, Any]:
        return {"level": "ortak", "is_donation": False}

    def form_values_for(self, item: Any) -> Dict[str, Any]:
        values = {
            field: "" if getattr(item, field) is None else str(getattr(item, field))
            for field in ("name", "type", "language", "page_count", "barcode", "shelf_code",
                          "fixture_no", "author_id", "publisher_id", "level")
        }
        values["is_donation"] = item.is_donation
        return values

    def load_item(self, item_id: int) -> Any:
        return self.backend.books.get_by_id(item_id, with_relations=True).data

    def form_pickers(self, url_builder: Optional[Callable[..., str]] = None) -> Dict[str, SearchableSelect]:
        return {
            "author_id": self.picker("author_id", "authors", self.form_values.get("author_id"),
                                     "Select author", url_builder=url_builder),
            "publisher_id": self.picker("publisher_id", "publishers", self.form_values.get("publisher_id"),
                                        "Select publisher", url_builder=url_builder),
        }


CONTROLLERS: Dict[str, Type[PageController]] = {
    controller.entity: controller
    for controller in (
        PrintRequestController,
        RequesterController,
        ApproverController,
        BookController,
        AuthorController,
        PublisherController,
    )
}
