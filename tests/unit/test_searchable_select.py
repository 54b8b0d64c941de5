"""
Unit tests for copydesk.searchable_select.

Timers are replaced by a fake factory so the debounce rule can be checked
without sleeping.
"""

from unittest.mock import MagicMock

import pytest

from copydesk.schemas import Requester
from copydesk.searchable_select import (
    MIN_IMMEDIATE_QUERY_LENGTH,
    SEARCH_DEBOUNCE_SECONDS,
    Debouncer,
    Option,
    SearchableSelect,
    options_from,
)


class FakeTimer:
    """threading.Timer stand-in that only fires when told to."""

    def __init__(self, delay, function, args=()):
        self.delay = delay
        self.function = function
        self.args = args
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function(*self.args)


@pytest.fixture
def timers():
    return []


@pytest.fixture
def debouncer(timers):
    def factory(delay, function, args=()):
        timer = FakeTimer(delay, function, args)
        timers.append(timer)
        return timer
    return Debouncer(timer_factory=factory)


@pytest.fixture
def on_search():
    return MagicMock()


@pytest.fixture
def select(debouncer, on_search):
    return SearchableSelect(
        name="requester_id",
        options=[Option("1", "Ayşe Yılmaz"), Option("2", "Mehmet Demir")],
        on_search=on_search,
        placeholder="Select requester",
        debouncer=debouncer,
    )


# =============================================================================
# SEARCH DEBOUNCE
# =============================================================================


class TestSearchDebounce:
    """Tests for SearchableSelect.handle_search()."""

    def test_empty_query_searches_immediately(self, select, on_search, timers):
        select.handle_search("")
        on_search.assert_called_once_with("")
        assert timers == []

    def test_long_query_searches_immediately(self, select, on_search, timers):
        select.handle_search("ayş")
        on_search.assert_called_once_with("ayş")
        assert timers == []

    def test_short_query_waits_for_quiet_period(self, select, on_search, timers):
        select.handle_search("ay")

        on_search.assert_not_called()
        assert len(timers) == 1
        assert timers[0].delay == SEARCH_DEBOUNCE_SECONDS
        assert timers[0].started
        assert timers[0].daemon

        timers[0].fire()
        on_search.assert_called_once_with("ay")

    def test_keystroke_restarts_the_wait(self, select, on_search, timers):
        select.handle_search("a")
        select.handle_search("ay")

        assert timers[0].cancelled
        assert not timers[1].cancelled
        timers[1].fire()
        on_search.assert_called_once_with("ay")

    def test_long_query_cancels_pending_short_query(self, select, on_search, timers):
        select.handle_search("ay")
        select.handle_search("ayş")

        assert timers[0].cancelled
        on_search.assert_called_once_with("ayş")

    def test_close_drops_pending_search(self, select, timers, debouncer):
        select.open()
        select.handle_search("m")
        select.close()

        assert timers[0].cancelled
        assert not debouncer.pending
        assert select.is_open is False

    def test_query_is_recorded(self, select):
        select.handle_search("me")
        assert select.query == "me"

    def test_hx_trigger_matches_server_rule(self, select):
        immediate, debounced = [part.strip() for part in select.hx_trigger.split(",")]

        assert f">= {MIN_IMMEDIATE_QUERY_LENGTH}]" in immediate
        assert "this.value.length == 0" in immediate
        assert f"< {MIN_IMMEDIATE_QUERY_LENGTH}]" in debounced
        assert debounced.endswith(f"delay:{int(SEARCH_DEBOUNCE_SECONDS * 1000)}ms")

    def test_without_callback_nothing_is_scheduled(self, debouncer, timers):
        widget = SearchableSelect(name="x", debouncer=debouncer)
        widget.handle_search("a")
        assert timers == []


class TestDebouncer:
    """Tests for Debouncer."""

    def test_pending_until_fired(self, debouncer, timers):
        fn = MagicMock()
        debouncer.call(fn, "a", "b")
        assert debouncer.pending

        timers[0].fire()
        fn.assert_called_once_with("a", "b")
        assert not debouncer.pending

    def test_superseded_timer_firing_late_is_dropped(self, debouncer, timers):
        """A timer thread that already passed cancel() must not run its stale call."""
        fn = MagicMock()
        debouncer.call(fn, "a")
        debouncer.call(fn, "ab")

        timers[0].fire()

        fn.assert_not_called()
        assert debouncer.pending

        timers[1].fire()
        fn.assert_called_once_with("ab")
        assert not debouncer.pending

    def test_cancelled_timer_firing_late_is_dropped(self, debouncer, timers):
        fn = MagicMock()
        debouncer.call(fn, "a")
        debouncer.cancel()

        timers[0].fire()

        fn.assert_not_called()
        assert not debouncer.pending

    def test_late_fire_keeps_newer_timer_cancellable(self, debouncer, timers):
        fn = MagicMock()
        debouncer.call(fn, "a")
        debouncer.call(fn, "ab")
        timers[0].fire()

        debouncer.cancel()

        assert timers[1].cancelled
        timers[1].fire()
        fn.assert_not_called()

    def test_fires_only_once(self, debouncer, timers):
        fn = MagicMock()
        debouncer.call(fn, "ab")

        timers[0].fire()
        timers[0].fire()

        fn.assert_called_once_with("ab")


# =============================================================================
# SELECTION
# =============================================================================


class TestSelection:
    """Tests for SearchableSelect.select() and display state."""

    def test_select_new_value(self, select):
        on_change = MagicMock()
        select.on_value_change = on_change
        select.open()

        assert select.select("2") == "2"

        on_change.assert_called_once_with("2")
        assert select.value == "2"
        assert select.is_open is False
        assert select.display_label == "Mehmet Demir"

    def test_reselecting_clears(self, select):
        on_change = MagicMock()
        select.value = "1"
        select.on_value_change = on_change

        assert select.select("1") == ""
        on_change.assert_called_once_with("")
        assert select.selected_option is None

    def test_select_resets_query(self, select):
        select.handle_search("mehmet")
        select.select("2")
        assert select.query == ""

    def test_placeholder_when_value_not_in_options(self, select):
        select.value = "99"
        assert select.display_label == "Select requester"

    def test_disabled_does_not_open(self, debouncer):
        widget = SearchableSelect(name="approver_id", disabled=True, debouncer=debouncer)
        widget.open()
        assert widget.is_open is False

    def test_widget_id_and_value_normalization(self, debouncer):
        widget = SearchableSelect(name="author_id", value=None, debouncer=debouncer)
        assert widget.widget_id == "author_id-select"
        assert widget.value == ""


class TestOptions:
    """Tests for option construction."""

    def test_options_from_entities(self):
        entities = [Requester(id=1, name="Ayşe"), Requester(id=2, name="Mehmet")]
        assert options_from(entities) == [Option("1", "Ayşe"), Option("2", "Mehmet")]

    def test_name_as_value(self):
        assert options_from([Requester(id=1, name="Ayşe")], value_field="name") == [Option("Ayşe", "Ayşe")]
