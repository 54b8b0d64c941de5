"""
Debounced, server-searchable single-value select.

The widget never owns its option set: the owner performs the search and
passes the resulting options back in. `SearchableSelect` only decides when
a search should be requested and what a selection click means.

Debounce rule: a query of 0 or >= 3 characters is searched immediately;
1-2 characters wait `SEARCH_DEBOUNCE_SECONDS`, restarted by each keystroke.
In the browser the same rule is applied by `SearchableSelect.hx_trigger`
(`SEARCH_HX_TRIGGER`) on the search input; `handle_search` and `Debouncer`
apply it to server-side owners.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional

from markupsafe import Markup

logger = logging.getLogger(__name__)

SEARCH_DEBOUNCE_SECONDS = 0.5
MIN_IMMEDIATE_QUERY_LENGTH = 3

# Browser-side equivalent of `handle_search`, for the widget's search input
SEARCH_HX_TRIGGER = (
    "input[this.value.length == 0 || this.value.length >= 3], "
    "input[this.value.length > 0 && this.value.length < 3] changed delay:500ms"
)


@dataclass(frozen=True)
class Option:
    value: str
    label: str

    @classmethod
    def from_entity(cls, entity: Any, value_field: str = "id", label_field: str = "name") -> "Option":
        return cls(value=str(getattr(entity, value_field)), label=str(getattr(entity, label_field)))


def options_from(entities: Iterable[Any], value_field: str = "id", label_field: str = "name") -> List[Option]:
    return [Option.from_entity(entity, value_field, label_field) for entity in entities]


class Debouncer:
    """
    Run a callable after a quiet period; a new call cancels the pending one.

    Each scheduled timer carries a token. A timer that fires after it was
    superseded or cancelled does nothing, even when its thread was already
    past `Timer.cancel()`'s reach.

    Args:
        delay: Quiet period in seconds
        timer_factory: `threading.Timer`-compatible factory, injectable for tests
    """

    def __init__(self, delay: float = SEARCH_DEBOUNCE_SECONDS, timer_factory: Callable[..., Any] = threading.Timer):
        self.delay = delay
        self.timer_factory = timer_factory
        self._timer = None
        self._token = 0
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def call(self, fn: Callable[..., None], *args: Any) -> None:
        with self._lock:
            self._cancel_locked()
            token = self._token
            timer = self.timer_factory(self.delay, self._fire, args=(token, fn, args))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _fire(self, token: int, fn: Callable[..., None], args: tuple) -> None:
        with self._lock:
            if token != self._token or self._timer is None:
                logger.debug("Dropping superseded debounced call")
                return
            self._timer = None
            self._token += 1
        fn(*args)

    def cancel(self) -> None:
        with self._lock:
            self._cancel_locked()

    def _cancel_locked(self) -> None:
        self._token += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class SearchableSelect:
    """
    Combobox over `{value, label}` options.

    Args:
        name: Form field name the selected value is submitted under
        value: Currently selected value ("" for none)
        options: Options currently materialized by the owner
        on_search: Called with the query when a search should run
        on_value_change: Called with the new value on selection ("" clears)
        loading: A search is in flight; the list shows a spinner
        search_url: Endpoint returning the option list for `?q=`
        select_url: Endpoint re-rendering the widget after a click
    """

    def __init__(
        self,
        name: str,
        value: Optional[str] = "",
        options: Iterable[Option] = (),
        on_search: Optional[Callable[[str], None]] = None,
        on_value_change: Optional[Callable[[str], None]] = None,
        loading: bool = False,
        placeholder: str = "Select an option...",
        search_placeholder: str = "Search...",
        empty_text: str = "No results found.",
        disabled: bool = False,
        search_url: Optional[str] = None,
        select_url: Optional[str] = None,
        debouncer: Optional[Debouncer] = None,
    ):
        self.name = name
        self.value = "" if value is None else str(value)
        self.options = list(options)
        self.on_search = on_search
        self.on_value_change = on_value_change
        self.loading = loading
        self.placeholder = placeholder
        self.search_placeholder = search_placeholder
        self.empty_text = empty_text
        self.disabled = disabled
        self.search_url = search_url
        self.select_url = select_url
        self.debouncer = debouncer or Debouncer()
        self.query = ""
        self.is_open = False

    @property
    def widget_id(self) -> str:
        return f"{self.name}-select"

    @property
    def hx_trigger(self) -> str:
        return SEARCH_HX_TRIGGER

    @property
    def selected_option(self) -> Optional[Option]:
        for option in self.options:
            if option.value == self.value:
                return option
        return None

    @property
    def display_label(self) -> str:
        selected = self.selected_option
        return selected.label if selected is not None else self.placeholder

    def is_selected(self, option: Option) -> bool:
        return option.value == self.value

    def open(self) -> None:
        if not self.disabled:
            self.is_open = True

    def handle_search(self, query: str) -> None:
        """
        Record the query and request a search now or after the debounce window.

        Mirrors `hx_trigger`, which the rendered widget uses in the browser.
        """
        self.query = query
        self.debouncer.cancel()
        if self.on_search is None:
            return
        if len(query) == 0 or len(query) >= MIN_IMMEDIATE_QUERY_LENGTH:
            self.on_search(query)
        else:
            self.debouncer.call(self.on_search, query)

    def select(self, value: str) -> str:
        """
        Apply a click on an option and return the new value.

        Clicking the selected option clears the selection.
        """
        new_value = "" if value == self.value else value
        self.value = new_value
        if self.on_value_change is not None:
            self.on_value_change(new_value)
        self.is_open = False
        self.query = ""
        return new_value

    def close(self) -> None:
        """Close the popover and drop any pending search."""
        self.debouncer.cancel()
        self.is_open = False

    def render(self) -> Markup:
        from flask import render_template

        return Markup(render_template("components/searchable_select.html", select=self))
