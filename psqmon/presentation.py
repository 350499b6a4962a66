"""Pure functions turning session state into display text.

Nothing here mutates the state it is given; the Textual widgets only ever
show what these functions return.
"""

from __future__ import annotations

from dataclasses import dataclass
import textwrap
from typing import Sequence

from .activity import BackendAction, ProcessRegistry, RegistryMode
from .controller import Mode, SessionState
from .editor import EditField, EditorState, FieldBuffer
from .formatting import scrub_newlines, truncate
from .home import HomeHistory
from .models import ACTIVE_QUERY, HOME_QUERY, ActiveProcess, is_builtin
from .query import QueryResult
from .search import SearchState

MAX_COLUMN_WIDTH = 50
SPARK_CHARS = "▁▂▃▄▅▆▇█"
CURSOR = "▏"

HELP_SECTIONS: tuple[tuple[str, tuple[tuple[str, str], ...]], ...] = (
    (
        "Query Navigation",
        (
            ("←/h", "previous query"),
            ("→/l", "next query"),
            ("click", "select query"),
            ("enter/space/r", "execute query"),
        ),
    ),
    (
        "Viewport Navigation",
        (
            ("↑/k", "scroll up"),
            ("↓/j", "scroll down"),
            ("pgup", "page up"),
            ("pgdn", "page down"),
            ("home", "go to top"),
            ("end", "go to bottom"),
        ),
    ),
    (
        "Query Operations",
        (
            ("s", "search queries (type to filter, ↑/↓ navigate, enter select, esc cancel)"),
            ("e", "edit query"),
            ("n", "new query"),
            ("ctrl+s", "save query (in edit mode)"),
            ("ctrl+d", "delete query (in edit mode)"),
            ("ctrl+g", "ask the assistant for SQL (in edit mode)"),
            ("d", "dump queries"),
            ("i", "import dumped queries"),
            ("x", "psql prompt"),
        ),
    ),
    (
        "Active View",
        (
            ("↑/k", "select previous process"),
            ("↓/j", "select next process"),
            ("enter", "view process details"),
            ("t", "terminate backend"),
            ("c", "cancel query"),
            ("y", "copy query to clipboard (detail view)"),
            ("esc", "back to list / quit"),
        ),
    ),
    (
        "System",
        (
            ("?", "toggle help"),
            ("c", "return to connection picker"),
            ("esc", "quit"),
        ),
    ),
)


@dataclass(frozen=True, slots=True)
class TabLabel:
    index: int
    name: str
    selected: bool
    temporary: bool


def render_header(state: SessionState) -> str:
    return f"psqmon@{state.profile.name}"


def tab_labels(state: SessionState) -> list[TabLabel]:
    return [
        TabLabel(
            index=index,
            name=query.name,
            selected=index == state.selected,
            temporary=query.name in state.temporary_orders,
        )
        for index, query in enumerate(state.tabs)
    ]


def is_scrollable(state: SessionState) -> bool:
    """Whether the body is windowed by the session viewport."""

    current = state.current_tab
    return state.mode is Mode.NORMAL and (current is None or current.name != ACTIVE_QUERY.name)


def render_body(state: SessionState) -> list[str]:
    """Full body text for the current mode, before viewport windowing."""

    width = max(state.width - 2, 20)
    if state.mode is Mode.HELP:
        return render_help()
    if state.mode is Mode.SEARCH and state.search is not None:
        return render_search(state.search, width)
    if state.mode is Mode.EDIT and state.editor is not None:
        return render_editor(state.editor, state.error, width)

    current = state.current_tab
    if current is None:
        return ["No queries available. Press n to create one."]
    if current.name == ACTIVE_QUERY.name and state.registry is not None:
        return render_registry(state.registry, width)

    lines: list[str] = []
    if state.error:
        lines.extend(f"Error: {line}" for line in state.error.splitlines() or [""])
        lines.append("")
    if current.name == HOME_QUERY.name:
        if state.home.latest is None:
            lines.append("Loading dashboard…" if state.loading else "No dashboard data yet.")
        else:
            lines.extend(render_home(state.home, width))
        return lines
    if state.result is None:
        lines.append("Loading…" if state.loading else "Press enter to run this query.")
        return lines
    lines.extend(render_result(state.result, width))
    return lines


def window(lines: Sequence[str], offset: int, height: int) -> list[str]:
    return list(lines[offset : offset + max(height, 0)])


def render_hint(state: SessionState) -> str:
    if state.mode is Mode.SEARCH:
        return "type to filter • ↑/↓ navigate • enter select • esc cancel"
    if state.mode is Mode.EDIT:
        return "Tab to switch fields, Ctrl+S to save, Ctrl+D to delete, Esc to cancel"
    if state.mode is Mode.HELP:
        return "? or esc to close help"
    current = state.current_tab
    if current is not None and current.description:
        return f"{current.name}: {current.description} • press ? for help"
    return "Press ? for help"


def render_status(state: SessionState) -> str:
    parts = [f"Profile: {state.profile.name}", f"Mode: {state.mode.value}"]
    if state.loading:
        parts.append("Loading…")
    elif state.refreshed_at is not None:
        parts.append(f"Refreshed: {state.refreshed_at.strftime('%H:%M:%S')}")
    if state.status:
        parts.append(state.status)
    if state.error:
        reason = state.error.splitlines()[0][:80] if state.error.strip() else state.error
        parts.append(f"Error: {reason}")
    return " | ".join(parts)


def render_table(columns: Sequence[str], rows: Sequence[Sequence[str]], width: int) -> list[str]:
    """Lay out rows under a header, clipping columns and the total width."""

    if not columns:
        return []
    widths = [len(column) for column in columns]
    for row in rows:
        for index, cell in enumerate(row[: len(widths)]):
            widths[index] = max(widths[index], len(cell))
    widths = [min(value, MAX_COLUMN_WIDTH) for value in widths]

    def line(cells: Sequence[str]) -> str:
        padded = [truncate(cell, size).ljust(size) for cell, size in zip(cells, widths)]
        return truncate(" │ ".join(padded).rstrip(), width)

    lines = [line(columns), truncate("─┼─".join("─" * size for size in widths), width)]
    lines.extend(line(row) for row in rows)
    return lines


def render_result(result: QueryResult, width: int) -> list[str]:
    lines = render_table(result.columns, result.rows, width)
    if not lines:
        lines = [result.status]
    elif not result.rows:
        lines.append("(no rows)")
    lines.append("")
    lines.append(f"{result.status} in {result.elapsed_ms} ms")
    return lines


def sparkline(values: Sequence[float], width: int) -> str:
    points = list(values)[-width:] if width > 0 else []
    if not points:
        return ""
    top = max(points)
    if top <= 0:
        return SPARK_CHARS[0] * len(points)
    last = len(SPARK_CHARS) - 1
    return "".join(SPARK_CHARS[min(int(value / top * last), last)] for value in points)


def render_home(history: HomeHistory, width: int) -> list[str]:
    sample = history.latest
    if sample is None:
        return []
    lines = ["Connections by state", ""]
    if sample.state_counts:
        label_width = max(len(state) for state, _ in sample.state_counts)
        peak = max(count for _, count in sample.state_counts) or 1
        bar_room = max(width - label_width - 10, 5)
        for state, count in sample.state_counts:
            bar = "█" * max(int(count / peak * bar_room), 1 if count else 0)
            lines.append(f"{state.ljust(label_width)} {bar} {count}")
    else:
        lines.append("(no connections)")
    lines.append("")
    rate = history.current_rate
    rate_text = f"{rate:.1f}" if rate is not None else "—"
    lines.append(f"Transactions/sec: {rate_text}")
    lines.append(sparkline(history.rates, width) or "(collecting samples)")
    lines.append("")
    lines.append("Query Activity")
    lines.extend(render_table(sample.activity.columns, sample.activity.rows, width) or ["(no active queries)"])
    return lines


_LIST_COLUMNS = (("PID", 8), ("User", 12), ("State", 12), ("Duration", 12), ("Wait", 16))


def _process_row(process: ActiveProcess, query_width: int) -> str:
    wait = process.wait_event_type
    if process.wait_event:
        wait = f"{wait}:{process.wait_event}" if wait else process.wait_event
    cells = (str(process.pid), process.username, process.state, process.duration, wait)
    fixed = "".join(truncate(cell, size - 1).ljust(size) for cell, (_, size) in zip(cells, _LIST_COLUMNS))
    return fixed + truncate(scrub_newlines(process.query), query_width)


def render_registry(registry: ProcessRegistry, width: int) -> list[str]:
    if registry.mode is RegistryMode.CONFIRM:
        return render_confirm(registry)
    if registry.mode is RegistryMode.DETAIL:
        return render_detail(registry, width)
    return render_process_list(registry, width)


def render_process_list(registry: ProcessRegistry, width: int) -> list[str]:
    lines: list[str] = []
    if registry.last_error:
        lines.append(f"Error: {registry.last_error}")
        lines.append("")
    if not registry.loaded:
        lines.append("Loading active processes…")
        return lines
    if not registry.processes:
        lines.append("No active processes.")
        lines.append("")
        lines.append("esc: quit • r: refresh")
        return lines

    fixed_width = sum(size for _, size in _LIST_COLUMNS)
    query_width = max(width - fixed_width - 2, 20)
    header = "".join(title.ljust(size) for title, size in _LIST_COLUMNS) + "Query"
    lines.append("  " + header)
    start, end = registry.visible_window()
    for index in range(start, end):
        marker = "▶ " if index == registry.selected_index else "  "
        lines.append(marker + _process_row(registry.processes[index], query_width))
    lines.append("")
    lines.append(f"showing {start + 1}-{end} of {len(registry.processes)}")
    lines.append("↑/↓ select • enter detail • t terminate • c cancel • esc quit")
    return lines


def render_detail(registry: ProcessRegistry, width: int) -> list[str]:
    process = registry.detail
    if process is None:
        return []
    title = f"Process {process.pid}"
    if not registry.detail_live:
        title += " (process completed)"
    lines = [title, ""]
    fields = (
        ("User", process.username),
        ("Database", process.database),
        ("Client", process.client_address),
        ("State", process.state),
        ("Backend", process.backend_type),
        ("Started", process.query_start),
        ("Duration", process.duration),
        ("Wait event", process.wait_event),
        ("Wait type", process.wait_event_type),
    )
    for label, value in fields:
        lines.append(f"{label + ':':<12}{value or '-'}")
    lines.append("")
    lines.append("Query:")
    text = scrub_newlines(process.query) or "-"
    lines.extend("  " + part for part in textwrap.wrap(text, max(width - 4, 10)))
    lines.append("")
    if registry.last_error:
        lines.append(f"Error: {registry.last_error}")
    if registry.copy_status:
        lines.append(registry.copy_status)
    actions = "y copy • esc back"
    if registry.detail_live:
        actions = "y copy • t terminate • c cancel • esc back"
    lines.append(actions)
    return lines


def render_confirm(registry: ProcessRegistry) -> list[str]:
    process = registry.detail
    if process is None or registry.pending_action is None:
        return []
    if registry.pending_action is BackendAction.TERMINATE:
        prompt = f"Terminate PID {process.pid}? (y/n)"
    else:
        prompt = f"Cancel query on PID {process.pid}? (y/n)"
    lines = [prompt, "", f"User: {process.username or '-'}  Database: {process.database or '-'}"]
    lines.append(f"Query: {truncate(scrub_newlines(process.query), 100)}")
    if registry.action_in_flight:
        lines.append("")
        lines.append("Working…")
    return lines


def render_search(search: SearchState, width: int) -> list[str]:
    lines = [f"Search: {search.text}{CURSOR}", ""]
    if not search.matches:
        lines.append("No matching queries.")
        return lines
    for index, query in enumerate(search.matches):
        marker = "▶ " if index == search.highlighted else "  "
        suffix = " (hidden)" if query.hidden and not is_builtin(query.name) else ""
        text = f"{query.name} - {query.description}" if query.description else query.name
        lines.append(truncate(marker + text + suffix, width))
    return lines


def _field_text(buffer: FieldBuffer, focused: bool, placeholder: str = "") -> str:
    if not focused:
        return buffer.text or placeholder
    return buffer.text[: buffer.cursor] + CURSOR + buffer.text[buffer.cursor :]


def render_editor(editor: EditorState, error: str | None, width: int) -> list[str]:
    lines = ["Create New Query" if editor.is_new else "Edit Query", ""]
    if error:
        lines.append(f"Error: {error}")
        lines.append("")

    def block(label: str, target: EditField, placeholder: str = "") -> None:
        focused = editor.focus is target
        marker = "> " if focused else "  "
        lines.append(marker + label)
        text = _field_text(editor.buffer(target), focused, placeholder)
        lines.extend("    " + part for part in (text.split("\n") or [""]))
        lines.append("")

    block("Name:", EditField.NAME)
    block("Description:", EditField.DESCRIPTION)
    block("Order Position (empty to hide from tabs):", EditField.ORDER, "Order position (empty to hide)")
    block("SQL:", EditField.SQL)
    if editor.assist_enabled:
        block("Ask the assistant (ctrl+g):", EditField.ASSIST, "Describe the query you want")
        assist = editor.assist
        if assist.in_flight:
            lines.append("    Generating…")
        elif assist.pending_sql is not None:
            lines.append("    Suggested SQL (enter to apply, esc to discard):")
            for part in assist.pending_sql.split("\n"):
                lines.append("      " + truncate(part, max(width - 6, 10)))
    return lines


def render_help() -> list[str]:
    lines = ["Help", ""]
    for title, entries in HELP_SECTIONS:
        lines.append(f"{title}:")
        key_width = max(len(key) for key, _ in entries)
        lines.extend(f"  {key.ljust(key_width)}  {description}" for key, description in entries)
        lines.append("")
    return lines


__all__ = [
    "HELP_SECTIONS",
    "TabLabel",
    "is_scrollable",
    "render_body",
    "render_confirm",
    "render_detail",
    "render_editor",
    "render_header",
    "render_help",
    "render_hint",
    "render_home",
    "render_process_list",
    "render_registry",
    "render_result",
    "render_search",
    "render_status",
    "render_table",
    "sparkline",
    "tab_labels",
    "window",
]
