"""
Filter panels for list pages.

A filter state is an open key -> value mapping. `None`, empty strings and
`False` are inactive: they are never sent to the backend and do not light
up the "Active" badge.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .schemas import BOOK_LEVELS

logger = logging.getLogger(__name__)

TRUE_VALUES = {"1", "true", "on", "yes"}


def is_active_value(value: Any) -> bool:
    """Whether a filter value should be sent to the backend."""
    return value is not None and value is not False and value != ""


def active_filters(filters: Mapping[str, Any]) -> Dict[str, Any]:
    """Drop inactive entries from a filter mapping."""
    return {key: value for key, value in filters.items() if is_active_value(value)}


def has_active_filters(filters: Mapping[str, Any], ignore: Iterable[str] = ()) -> bool:
    ignored = set(ignore)
    return any(is_active_value(value) for key, value in filters.items() if key not in ignored)


@dataclass(frozen=True)
class FilterField:
    """
    One input of a filter panel.

    kind: text | number | date | select | checkbox | searchable
    source: entity slug whose option search feeds a `searchable` field
    value_field: attribute of the source entity used as the option value
    """

    name: str
    label: str
    kind: str = "text"
    placeholder: str = ""
    choices: Tuple[Tuple[str, str], ...] = ()
    source: Optional[str] = None
    value_field: str = "id"

    def parse(self, raw: Optional[str]) -> Any:
        """Convert a raw query-string value into the filter's typed value."""
        if raw is None:
            return False if self.kind == "checkbox" else None
        raw = raw.strip()
        if self.kind == "checkbox":
            return raw.lower() in TRUE_VALUES
        if raw == "" or raw == "all":
            return None
        if self.kind == "number" or (self.kind == "searchable" and self.value_field == "id"):
            try:
                return int(raw)
            except ValueError:
                logger.warning(f"Ignoring non-numeric value for filter '{self.name}': {raw!r}")
                return None
        if self.kind == "select" and self.choices and raw not in dict(self.choices):
            logger.warning(f"Ignoring unknown choice for filter '{self.name}': {raw!r}")
            return None
        return raw


class FilterPanel:
    """Collapsible panel of filter inputs above a table."""

    fields: Sequence[FilterField] = ()
    # Values that stay set after "clear" and never count as active
    defaults: Mapping[str, Any] = {}
    title = "Filters"

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self.values: Dict[str, Any] = dict(self.defaults)
        if values:
            self.values.update(values)

    @classmethod
    def from_args(cls, args: Mapping[str, str]) -> "FilterPanel":
        """Build a panel from request arguments."""
        return cls({field.name: field.parse(args.get(field.name)) for field in cls.fields})

    def change(self, key: str, value: Any) -> Dict[str, Any]:
        """Return the filter state with one value replaced."""
        return {**self.values, key: value}

    def cleared(self) -> Dict[str, Any]:
        return dict(self.defaults)

    @property
    def has_active_filters(self) -> bool:
        return has_active_filters(self.values, ignore=self.defaults.keys())

    def query(self) -> Dict[str, Any]:
        """Active filters, as sent to the backend."""
        return active_filters(self.values)

    def field_names(self) -> List[str]:
        return [field.name for field in self.fields]

    def searchable_fields(self) -> List[FilterField]:
        return [field for field in self.fields if field.kind == "searchable"]


class PrintRequestFilterPanel(FilterPanel):
    fields = (
        FilterField("requester_names", "Requester", kind="searchable",
                    placeholder="Select requester", source="requesters", value_field="name"),
        FilterField("approver_names", "Approver", kind="searchable",
                    placeholder="Select approver", source="approvers", value_field="name"),
        FilterField("description", "Description", placeholder="Search description..."),
        FilterField("color_copies_min", "Color copies (min)", kind="number", placeholder="Min"),
        FilterField("color_copies_max", "Color copies (max)", kind="number", placeholder="Max"),
        FilterField("bw_copies_min", "B/W copies (min)", kind="number", placeholder="Min"),
        FilterField("bw_copies_max", "B/W copies (max)", kind="number", placeholder="Max"),
        FilterField("requested_at_from", "Requested from", kind="date"),
        FilterField("requested_at_to", "Requested until", kind="date"),
    )


class BookFilterPanel(FilterPanel):
    fields = (
        FilterField("author_id", "Author", kind="searchable",
                    placeholder="Select author", source="authors"),
        FilterField("publisher_id", "Publisher", kind="searchable",
                    placeholder="Select publisher", source="publishers"),
        FilterField("name", "Book name", placeholder="Search book name..."),
        FilterField("level", "Level", kind="select", choices=tuple(BOOK_LEVELS.items())),
        FilterField("is_donation", "Donations only", kind="checkbox"),
    )
    defaults = {"with_relations": True}
