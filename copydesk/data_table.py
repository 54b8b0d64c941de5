"""
Generic server-paginated data table.

`DataTable` is a view model over one page of records of any shape. It owns no
data and never talks to the backend: the owning page controller supplies the
rows, pagination and sort state plus callbacks, and the table turns user
interactions (page / sort / page-size clicks, add / edit / delete / view) into
callback invocations. Rendering goes through `components/data_table.html`;
interaction links come from the owner's `link_builder`.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Mapping, Optional, Sequence, TypeVar, Union

from markupsafe import Markup
from pydantic import BaseModel

from .config import PAGE_SIZE_CHOICES
from .schemas import PaginationInfo, SortParams

logger = logging.getLogger(__name__)

RowT = TypeVar("RowT")

EMPTY_CELL = "-"
MAX_PAGE_BUTTONS = 5
LOADING_SKELETON_ROWS = 5

SORT_ICONS = {None: "↕", "asc": "↑", "desc": "↓"}


# =============================================================================
# Columns
# =============================================================================


@dataclass(frozen=True)
class DataColumn(Generic[RowT]):
    """
    Column bound to a record field.

    Attributes:
        key: Field name; dotted paths reach into relations ("requester.name")
        label: Header text
        sortable: Whether clicking the header changes the sort
        sort_key: Backend sort field when it differs from `key`
        render: Pure `(value, row) -> display` override
    """

    key: str
    label: str
    sortable: bool = False
    sort_key: Optional[str] = None
    render: Optional[Callable[[Any, RowT], Any]] = None

    @property
    def effective_sort_key(self) -> str:
        return self.sort_key or self.key


@dataclass(frozen=True)
class ActionsColumn:
    """Per-row action buttons (edit / delete / view or custom)."""

    label: str = "Actions"


Column = Union[DataColumn, ActionsColumn]


@dataclass(frozen=True)
class ActionButton:
    """One synthesized row action."""

    event: str
    label: str
    href: Optional[str]
    method: str = "get"
    confirm: Optional[str] = None
    variant: str = "default"


# =============================================================================
# Pure helpers
# =============================================================================


def page_window(current_page: int, total_pages: int, max_buttons: int = MAX_PAGE_BUTTONS) -> List[int]:
    """
    Page numbers to show as buttons.

    Keeps the current page centered when possible and clamps the window at
    both ends of the sequence.

    >>> page_window(1, 10), page_window(5, 10), page_window(10, 10)
    ([1, 2, 3, 4, 5], [3, 4, 5, 6, 7], [6, 7, 8, 9, 10])
    """
    if total_pages <= 0:
        return []
    if total_pages <= max_buttons:
        return list(range(1, total_pages + 1))

    half = max_buttons // 2
    if current_page <= half + 1:
        start = 1
    elif current_page >= total_pages - half:
        start = total_pages - max_buttons + 1
    else:
        start = current_page - half
    return list(range(start, start + max_buttons))


def next_sort(current: Optional[SortParams], sort_key: str) -> SortParams:
    """
    Sort state after clicking a header.

    The active column flips asc -> desc; anything else (another column, or
    the active column already descending) sorts that column ascending.
    """
    if current is not None and current.is_active(sort_key) and current.sort_direction == "asc":
        return SortParams(sort_by=sort_key, sort_direction="desc")
    return SortParams(sort_by=sort_key, sort_direction="asc")


def get_value(row: Any, key: str) -> Any:
    """Read `key` (dotted for nested relations) from a dict or object row."""
    value = row
    for part in key.split("."):
        if value is None:
            return None
        if isinstance(value, Mapping):
            value = value.get(part)
        else:
            value = getattr(value, part, None)
    return value


def format_cell(value: Any) -> Union[str, Markup]:
    """Display text for a raw cell value."""
    if value is None:
        return EMPTY_CELL
    if isinstance(value, Markup):
        return value
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str, ensure_ascii=False)
    return str(value)


def row_id(row: Any) -> Any:
    return get_value(row, "id")


# =============================================================================
# DataTable
# =============================================================================


class DataTable(Generic[RowT]):
    """
    Sortable, paginated table over owner-supplied records.

    Args:
        data: Records of the current page
        columns: Column descriptors; at most one `ActionsColumn`
        pagination: Server pagination block, None hides all pagination UI
        current_page: Owner-controlled current page
        items_per_page: Owner-controlled page size
        sort_params: Active sort, if any
        link_builder: `(event, **params) -> url` for interaction requests
        loading: Render title and skeleton only
        empty_state_text: Message shown instead of the table when empty
    """

    def __init__(
        self,
        data: Sequence[RowT],
        columns: Sequence[Column],
        pagination: Optional[PaginationInfo] = None,
        current_page: int = 1,
        items_per_page: int = 10,
        sort_params: Optional[SortParams] = None,
        on_sort_change: Optional[Callable[[SortParams], None]] = None,
        on_page_change: Optional[Callable[[int], None]] = None,
        on_items_per_page_change: Optional[Callable[[int], None]] = None,
        on_add: Optional[Callable[[], None]] = None,
        on_edit: Optional[Callable[[RowT], None]] = None,
        on_delete: Optional[Callable[[RowT], None]] = None,
        on_view: Optional[Callable[[RowT], None]] = None,
        custom_actions: Optional[Callable[[RowT], Markup]] = None,
        loading: bool = False,
        empty_state_text: str = "No records found.",
        title: str = "",
        description: str = "",
        add_button_text: str = "Add",
        dialog_open: bool = False,
        dialog_title: str = "",
        dialog_description: str = "",
        dialog_content: Optional[Markup] = None,
        link_builder: Optional[Callable[..., str]] = None,
        table_id: str = "table-container",
    ):
        actions_columns = [column for column in columns if isinstance(column, ActionsColumn)]
        if len(actions_columns) > 1:
            raise ValueError("A table may have at most one actions column")

        self.data = list(data)
        self.columns = list(columns)
        self.pagination = pagination
        self.current_page = current_page
        self.items_per_page = items_per_page
        self.sort_params = sort_params
        self.on_sort_change = on_sort_change
        self.on_page_change = on_page_change
        self.on_items_per_page_change = on_items_per_page_change
        self.on_add = on_add
        self.on_edit = on_edit
        self.on_delete = on_delete
        self.on_view = on_view
        self.custom_actions = custom_actions
        self.loading = loading
        self.empty_state_text = empty_state_text
        self.title = title
        self.description = description
        self.add_button_text = add_button_text
        self.dialog_open = dialog_open
        self.dialog_title = dialog_title
        self.dialog_description = dialog_description
        self.dialog_content = dialog_content
        self.link_builder = link_builder
        self.table_id = table_id

    # -------------------------------------------------------------------------
    # Interactions
    # -------------------------------------------------------------------------

    def handle_sort(self, column: Column) -> Optional[SortParams]:
        """Apply a header click; no-op for unsortable columns or without a callback."""
        if not isinstance(column, DataColumn) or not column.sortable or self.on_sort_change is None:
            return None
        params = next_sort(self.sort_params, column.effective_sort_key)
        self.on_sort_change(params)
        return params

    def handle_page_change(self, page: int) -> None:
        if self.on_page_change is None:
            return
        if page < 1 or (self.pagination is not None and page > max(self.pagination.total_pages, 1)):
            logger.warning(f"Ignoring out-of-range page {page}")
            return
        self.on_page_change(page)

    def handle_items_per_page_change(self, items_per_page: int) -> None:
        if self.on_items_per_page_change is None:
            return
        if items_per_page not in PAGE_SIZE_CHOICES:
            logger.warning(f"Ignoring unsupported page size {items_per_page}")
            return
        self.on_items_per_page_change(items_per_page)

    def handle_add(self) -> None:
        if self.on_add is not None:
            self.on_add()

    def handle_edit(self, row: RowT) -> None:
        if self.on_edit is not None:
            self.on_edit(row)

    def handle_delete(self, row: RowT) -> None:
        if self.on_delete is not None:
            self.on_delete(row)

    def handle_view(self, row: RowT) -> None:
        if self.on_view is not None:
            self.on_view(row)

    def column_for_sort_key(self, sort_key: str) -> Optional[DataColumn]:
        for column in self.data_columns:
            if column.effective_sort_key == sort_key:
                return column
        return None

    def dispatch(self, event: Optional[str], value: Optional[str]) -> None:
        """
        Replay a browser interaction.

        Events: "page" (page number), "sort" (column sort key),
        "per_page" (page size). Unknown events and bad values are ignored.
        """
        if not event:
            return
        if event == "sort":
            column = self.column_for_sort_key(value or "")
            if column is None:
                logger.warning(f"Ignoring sort on unknown column {value!r}")
                return
            self.handle_sort(column)
        elif event in ("page", "per_page"):
            try:
                number = int(value or "")
            except ValueError:
                logger.warning(f"Ignoring non-numeric {event} value {value!r}")
                return
            if event == "page":
                self.handle_page_change(number)
            else:
                self.handle_items_per_page_change(number)
        else:
            logger.debug(f"Unhandled table event {event!r}")

    # -------------------------------------------------------------------------
    # Rendering state
    # -------------------------------------------------------------------------

    @property
    def data_columns(self) -> List[DataColumn]:
        return [column for column in self.columns if isinstance(column, DataColumn)]

    @property
    def is_empty(self) -> bool:
        return not self.loading and not self.data

    @property
    def skeleton_rows(self) -> range:
        return range(LOADING_SKELETON_ROWS)

    @property
    def page_size_choices(self) -> Sequence[int]:
        return PAGE_SIZE_CHOICES

    @property
    def show_page_size(self) -> bool:
        return self.pagination is not None

    @property
    def show_pagination(self) -> bool:
        return self.pagination is not None and self.pagination.total_pages > 1

    @property
    def page_numbers(self) -> List[int]:
        if self.pagination is None:
            return []
        return page_window(self.current_page, self.pagination.total_pages)

    @property
    def has_previous(self) -> bool:
        return self.current_page > 1

    @property
    def has_next(self) -> bool:
        return self.pagination is not None and self.pagination.has_next_page

    def is_actions_column(self, column: Column) -> bool:
        return isinstance(column, ActionsColumn)

    def is_sortable(self, column: Column) -> bool:
        return isinstance(column, DataColumn) and column.sortable and self.on_sort_change is not None

    def sort_icon(self, column: DataColumn) -> str:
        if self.sort_params is None or not self.sort_params.is_active(column.effective_sort_key):
            return SORT_ICONS[None]
        return SORT_ICONS[self.sort_params.sort_direction]

    def cell(self, column: DataColumn, row: RowT) -> Union[str, Markup]:
        value = get_value(row, column.key)
        if column.render is not None:
            return format_cell(column.render(value, row))
        return format_cell(value)

    def href(self, event: str, **params: Any) -> Optional[str]:
        if self.link_builder is None:
            return None
        return self.link_builder(event, **params)

    def row_actions(self, row: RowT) -> Union[Markup, List[ActionButton]]:
        """Custom renderer output, or the synthesized view/edit/delete buttons."""
        if self.custom_actions is not None:
            return self.custom_actions(row)
        buttons = []
        item_id = row_id(row)
        if self.on_view is not None:
            buttons.append(ActionButton("view", "View", self.href("view", id=item_id)))
        if self.on_edit is not None:
            buttons.append(ActionButton("edit", "Edit", self.href("edit", id=item_id)))
        if self.on_delete is not None:
            buttons.append(ActionButton(
                "delete",
                "Delete",
                self.href("delete", id=item_id),
                method="post",
                confirm="Are you sure you want to delete this record?",
                variant="danger",
            ))
        return buttons

    def render(self, oob: bool = False) -> Markup:
        """Render the table; `oob` marks it as an HTMX out-of-band swap."""
        from flask import render_template

        return Markup(render_template("components/data_table.html", table=self, oob=oob))
