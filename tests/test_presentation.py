"""Tests for the text rendering helpers."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Iterator

import pytest

from psqmon.activity import BackendAction, ProcessRegistry
from psqmon.controller import SessionController
from psqmon.events import KeyPress, QuerySucceeded, TerminalResize
from psqmon.home import HomeHistory, HomeSample
from psqmon.models import ActiveProcess, ConnectionProfile, SavedQuery
from psqmon.presentation import (
    is_scrollable,
    render_body,
    render_confirm,
    render_detail,
    render_header,
    render_help,
    render_home,
    render_process_list,
    render_result,
    render_search,
    render_status,
    render_table,
    sparkline,
    tab_labels,
    window,
)
from psqmon.query import QueryResult
from psqmon.search import SearchState
from psqmon.store import QueryStore
from psqmon.widgets.tab_strip import render_markup

PROFILE = ConnectionProfile(name="prod")


@pytest.fixture
def controller(tmp_path: Path) -> Iterator[SessionController]:
    store = QueryStore.open(":memory:")
    for query in store.list_queries(visible_only=False):
        store.delete(query.name)
    store.save(SavedQuery("Locks", "Lock list", "SELECT 1", 1))
    store.save(SavedQuery("Scratch", "Ad hoc", "SELECT 3", None))
    controller = SessionController(PROFILE, store, dump_path=tmp_path / "dump.db", clock=lambda: 0.0)
    controller.handle(TerminalResize(100, 30))
    yield controller
    store.close()


def _procs(count: int) -> tuple[ActiveProcess, ...]:
    return tuple(
        ActiveProcess(pid=100 + i, username="app", state="active", duration="00:00:01", query=f"SELECT\n{i}")
        for i in range(count)
    )


def test_header_and_status(controller: SessionController) -> None:
    state = controller.state
    assert render_header(state) == "psqmon@prod"
    assert render_status(state) == "Profile: prod | Mode: normal | Loading…"

    state.loading = False
    state.refreshed_at = datetime(2024, 1, 1, 12, 30, 5)
    state.error = "boom\nsecond line"

    assert render_status(state) == "Profile: prod | Mode: normal | Refreshed: 12:30:05 | Error: boom"


def test_tab_labels_mark_selected_and_temporary(controller: SessionController) -> None:
    controller.state.temporary_orders["Locks"] = 9

    labels = tab_labels(controller.state)

    assert [label.name for label in labels] == ["Home", "Active", "Locks"]
    assert labels[0].selected and not labels[1].selected
    assert labels[2].temporary


def test_tab_markup_is_clickable(controller: SessionController) -> None:
    markup = render_markup(tab_labels(controller.state))

    assert "[@click=app.select_tab(0)][b reverse] Home [/b reverse][/]" in markup
    assert "[@click=app.select_tab(2)] Locks [/]" in markup


def test_render_table_clips_wide_columns() -> None:
    lines = render_table(("id", "query"), (("1", "x" * 80),), 200)

    assert lines[0] == "id │ query"
    assert lines[2] == "1  │ " + "x" * 49 + "~"


def test_render_table_respects_total_width() -> None:
    lines = render_table(("a", "b"), (("1" * 30, "2" * 30),), 20)

    assert all(len(line) <= 20 for line in lines)


def test_render_result_for_command_without_rows() -> None:
    result = QueryResult(columns=(), rows=(), status="UPDATE 3", elapsed_ms=7)

    assert render_result(result, 80) == ["UPDATE 3", "", "UPDATE 3 in 7 ms"]


def test_sparkline_scales_to_peak() -> None:
    assert sparkline([0, 5, 10], 10) == "▁▄█"
    assert sparkline([0, 0], 10) == "▁▁"
    assert sparkline([1, 2, 3], 2) == "▅█"
    assert sparkline([], 10) == ""


def test_render_home_shows_rates_and_activity() -> None:
    history = HomeHistory()
    activity = QueryResult(columns=("pid",), rows=(("1",),), status="1 row(s)", elapsed_ms=1)
    history.add(HomeSample((("active", 2), ("idle", 4)), 10.0, 1.0, activity))
    history.add(HomeSample((("active", 2), ("idle", 4)), 30.0, 2.0, activity))

    lines = render_home(history, 60)

    assert "Transactions/sec: 20.0" in lines
    assert any(line.startswith("idle   ") for line in lines)
    assert lines[-3:] == ["pid", "───", "1"]


def test_body_for_home_before_first_sample(controller: SessionController) -> None:
    assert render_body(controller.state) == ["Loading dashboard…"]


def test_body_shows_error_above_result(controller: SessionController) -> None:
    controller.handle(KeyPress("right"))
    controller.handle(KeyPress("right"))
    controller.state.error = "permission denied"

    body = render_body(controller.state)

    assert body[:2] == ["Error: permission denied", ""]
    assert is_scrollable(controller.state)


def test_process_list_window_and_footer() -> None:
    registry = ProcessRegistry(page_size=2)
    registry.update_selection(_procs(5))
    registry.move(2)

    lines = render_process_list(registry, 120)

    assert lines[0].startswith("  PID")
    assert lines[1].startswith("  101")
    assert lines[2].startswith("▶ 102")
    assert lines[2].endswith("SELECT 2")
    assert "showing 2-3 of 5" in lines


def test_process_list_empty_and_loading() -> None:
    registry = ProcessRegistry()
    assert render_process_list(registry, 80) == ["Loading active processes…"]

    registry.update_selection(())

    assert render_process_list(registry, 80)[0] == "No active processes."


def test_detail_marks_completed_process() -> None:
    registry = ProcessRegistry()
    registry.update_selection(_procs(1))
    registry.open_detail()
    registry.update_selection(())

    lines = render_detail(registry, 80)

    assert lines[0] == "Process 100 (process completed)"
    assert "  SELECT 0" in lines
    assert lines[-1] == "y copy • esc back"


def test_confirm_prompts() -> None:
    registry = ProcessRegistry()
    registry.update_selection(_procs(1))

    registry.request_action(BackendAction.TERMINATE)
    assert render_confirm(registry)[0] == "Terminate PID 100? (y/n)"
    registry.dismiss()
    registry.request_action(BackendAction.CANCEL)
    assert render_confirm(registry)[0] == "Cancel query on PID 100? (y/n)"


def test_active_tab_body_is_not_windowed(controller: SessionController) -> None:
    controller.handle(KeyPress("right"))
    controller.handle(QuerySucceeded(controller.generation, _procs(1)))

    assert not is_scrollable(controller.state)
    assert render_body(controller.state)[0].startswith("  PID")


def test_search_marks_hidden_queries(controller: SessionController) -> None:
    search = SearchState(list(controller.state.all_queries))

    lines = render_search(search, 80)

    assert lines[0] == "Search: ▏"
    assert "▶ Home - Connection states and transaction throughput" in lines
    assert "  Scratch - Ad hoc (hidden)" in lines
    assert "  Locks - Lock list" in lines


def test_editor_body_shows_cursor(controller: SessionController) -> None:
    controller.handle(KeyPress("n", "n"))
    controller.handle(KeyPress("a", "a"))

    body = render_body(controller.state)

    assert body[0] == "Create New Query"
    assert "> Name:" in body
    assert "    a▏" in body


def test_help_lists_sections() -> None:
    lines = render_help()

    assert "Query Navigation:" in lines
    assert "Active View:" in lines


def test_window_slices_lines() -> None:
    assert window(["a", "b", "c", "d"], 1, 2) == ["b", "c"]
    assert window(["a"], 0, 0) == []
