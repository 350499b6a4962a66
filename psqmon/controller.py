"""Session controller: the single writer of all session state.

The controller is a synchronous state machine. :meth:`SessionController.handle`
applies one event and returns the effects the caller must perform; effects
resolve to new events that are fed back through ``handle``. Nothing in here
awaits or touches the network, which keeps every transition testable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import logging
from pathlib import Path
import time
from typing import Callable

from .activity import BackendAction, ProcessRegistry, RegistryMode, page_size_for
from .editor import EditField, EditorState
from .errors import StorageError
from .events import (
    AssistFailed,
    AssistSucceeded,
    BackendActionCompleted,
    ClipboardCompleted,
    CopyText,
    Effect,
    Event,
    ExitSession,
    GenerateSql,
    KeyPress,
    MouseClick,
    OpenShell,
    QueryFailed,
    QuerySucceeded,
    ReturnToPickerRequested,
    RunQuery,
    ShellExited,
    SignalBackend,
    TerminalResize,
    Tick,
)
from .home import HomeHistory, HomeSample
from .models import ACTIVE_QUERY, BUILTIN_QUERIES, ConnectionProfile, SavedQuery, is_builtin
from .query import QueryResult
from .search import SearchState
from .store import QueryStore

LOG = logging.getLogger(__name__)

DEFAULT_COOLDOWN = 0.5
# header, tab strip, rule, hint line and status bar
VIEWPORT_CHROME_LINES = 5


class Mode(str, Enum):
    NORMAL = "normal"
    SEARCH = "search"
    EDIT = "edit"
    HELP = "help"


class Viewport:
    """Scroll position over the rendered body of the current tab."""

    def __init__(self, height: int = 10) -> None:
        self.offset = 0
        self.height = height
        self.content_height = 0

    @property
    def max_offset(self) -> int:
        return max(self.content_height - self.height, 0)

    def scroll(self, delta: int) -> None:
        self.offset = max(0, min(self.offset + delta, self.max_offset))

    def top(self) -> None:
        self.offset = 0

    def bottom(self) -> None:
        self.offset = self.max_offset

    def fit(self, content_height: int) -> None:
        """Record the rendered body height, clamping the offset to it."""

        self.content_height = max(content_height, 0)
        self.offset = min(self.offset, self.max_offset)

    def reset(self) -> None:
        self.offset = 0
        self.content_height = 0


@dataclass
class SessionState:
    profile: ConnectionProfile
    tabs: list[SavedQuery] = field(default_factory=list)
    all_queries: list[SavedQuery] = field(default_factory=list)
    temporary_orders: dict[str, int] = field(default_factory=dict)
    selected: int = 0
    previous_selected: int = 0
    mode: Mode = Mode.NORMAL
    result: QueryResult | None = None
    home: HomeHistory = field(default_factory=HomeHistory)
    error: str | None = None
    status: str | None = None
    loading: bool = False
    last_query: SavedQuery | None = None
    last_refresh_at: float | None = None
    refreshed_at: datetime | None = None
    width: int = 80
    height: int = 24
    ready: bool = False
    viewport: Viewport = field(default_factory=Viewport)
    registry: ProcessRegistry | None = None
    search: SearchState | None = None
    editor: EditorState | None = None

    @property
    def current_tab(self) -> SavedQuery | None:
        if 0 <= self.selected < len(self.tabs):
            return self.tabs[self.selected]
        return None

    def clamp_index(self, index: int) -> int:
        if not self.tabs:
            return 0
        return max(0, min(index, len(self.tabs) - 1))


class SessionController:
    """Interprets events against the current mode and schedules work."""

    def __init__(
        self,
        profile: ConnectionProfile,
        store: QueryStore,
        *,
        dump_path: Path,
        clock: Callable[[], float] = time.monotonic,
        cooldown: float = DEFAULT_COOLDOWN,
        assist_enabled: bool = True,
    ) -> None:
        self._store = store
        self._dump_path = Path(dump_path)
        self._clock = clock
        self._cooldown = cooldown
        self._assist_enabled = assist_enabled
        self._generation = 0
        self._assist_requests = 0
        self._visible: list[SavedQuery] = []
        self._stored: dict[str, SavedQuery] = {}
        self.state = SessionState(profile=profile)
        self._event_handlers: dict[type, Callable[..., list[Effect]]] = {
            KeyPress: self._on_key,
            MouseClick: self._on_click,
            TerminalResize: self._on_resize,
            Tick: self._on_tick,
            QuerySucceeded: self._on_query_succeeded,
            QueryFailed: self._on_query_failed,
            AssistSucceeded: self._on_assist_succeeded,
            AssistFailed: self._on_assist_failed,
            BackendActionCompleted: self._on_backend_action,
            ClipboardCompleted: self._on_clipboard,
            ShellExited: self._on_shell_exited,
            ReturnToPickerRequested: self._on_return_to_picker,
        }
        self._mode_handlers: dict[Mode, Callable[[KeyPress], list[Effect]]] = {
            Mode.NORMAL: self._normal_key,
            Mode.SEARCH: self._search_key,
            Mode.EDIT: self._edit_key,
            Mode.HELP: self._help_key,
        }
        self._normal_keys: dict[str, Callable[[], list[Effect]]] = {
            "?": self._open_help,
            "escape": self._quit,
            "ctrl+c": self._quit,
            "c": self._on_return_to_picker,
            "s": self._open_search,
            "left": lambda: self._step_tab(-1),
            "h": lambda: self._step_tab(-1),
            "right": lambda: self._step_tab(1),
            "l": lambda: self._step_tab(1),
            "up": lambda: self._scroll(-1),
            "k": lambda: self._scroll(-1),
            "down": lambda: self._scroll(1),
            "j": lambda: self._scroll(1),
            "pageup": lambda: self._scroll(-self.state.viewport.height),
            "pagedown": lambda: self._scroll(self.state.viewport.height),
            "home": self._scroll_top,
            "end": self._scroll_bottom,
            "enter": self.refresh,
            " ": self.refresh,
            "r": self.refresh,
            "e": self._edit_current,
            "n": self._new_query,
            "d": self._dump_queries,
            "i": self._import_queries,
            "x": self._open_shell,
        }
        try:
            self._reload_queries()
        except StorageError as exc:
            self.state.error = f"Failed to load queries: {exc}"
            self.state.tabs = list(BUILTIN_QUERIES)
            self.state.all_queries = list(BUILTIN_QUERIES)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def dump_path(self) -> Path:
        return self._dump_path

    def handle(self, event: Event) -> list[Effect]:
        """Apply one event and return the effects to perform."""

        handler = self._event_handlers.get(type(event))
        if handler is None:
            raise TypeError(f"Unsupported event: {event!r}")
        return handler(event)

    def can_refresh(self) -> bool:
        last = self.state.last_refresh_at
        return last is None or self._clock() - last >= self._cooldown

    def fit_viewport(self, content_height: int) -> None:
        """Record how tall the rendered body is so scrolling stays in range."""

        self.state.viewport.fit(content_height)

    def refresh(self) -> list[Effect]:
        """Re-run the current tab unless the cooldown is still running."""

        current = self.state.current_tab
        if current is None or not self.can_refresh():
            return []
        return self._dispatch(current)

    # query list management

    def _reload_queries(self) -> None:
        everything = [
            query
            for query in self._store.list_queries(visible_only=False)
            if not is_builtin(query.name)
        ]
        self._visible = [query for query in everything if query.display_order is not None]
        self._stored = {query.name: query for query in everything}
        self.state.all_queries = [*BUILTIN_QUERIES, *everything]
        self._rebuild_tabs()

    def _rebuild_tabs(self) -> None:
        """Recompute the tab strip, keeping the selection on the same query names."""

        state = self.state
        selected_name = self._tab_name(state.selected)
        previous_name = self._tab_name(state.previous_selected)
        temps = state.temporary_orders
        for name in list(temps):
            stored = self._stored.get(name)
            if stored is None or stored.display_order is not None:
                del temps[name]
        promoted = sorted((order, name) for name, order in temps.items())
        state.tabs = [
            *BUILTIN_QUERIES,
            *self._visible,
            *(self._stored[name].with_order(order) for order, name in promoted),
        ]
        state.selected = self._anchored_index(selected_name, state.selected)
        state.previous_selected = self._anchored_index(previous_name, state.previous_selected)

    def _tab_name(self, index: int) -> str | None:
        if 0 <= index < len(self.state.tabs):
            return self.state.tabs[index].name
        return None

    def _anchored_index(self, name: str | None, fallback: int) -> int:
        index = self._index_of(name) if name is not None else None
        return index if index is not None else self.state.clamp_index(fallback)

    def _next_temporary_order(self) -> int:
        orders = [query.display_order for query in self.state.tabs if query.display_order is not None]
        orders.extend(self.state.temporary_orders.values())
        return max(orders, default=0) + 1

    def _promote(self, query: SavedQuery) -> None:
        """Give a hidden query a session-only order so it joins the tab strip."""

        if is_builtin(query.name) or query.name in self.state.temporary_orders:
            return
        stored = self._stored.get(query.name)
        if stored is None or stored.display_order is not None:
            return
        self.state.temporary_orders[query.name] = self._next_temporary_order()
        self._rebuild_tabs()

    def _index_of(self, name: str) -> int | None:
        for index, query in enumerate(self.state.tabs):
            if query.name == name:
                return index
        return None

    def _on_active_tab(self) -> bool:
        current = self.state.current_tab
        return current is not None and current.name == ACTIVE_QUERY.name

    def _sync_registry(self) -> None:
        state = self.state
        if self._on_active_tab():
            if state.registry is None:
                state.registry = ProcessRegistry(page_size=page_size_for(state.height))
        else:
            state.registry = None

    # dispatch

    def _dispatch(self, query: SavedQuery) -> list[Effect]:
        self._generation += 1
        state = self.state
        state.loading = True
        state.last_query = query
        state.last_refresh_at = self._clock()
        return [RunQuery(self._generation, query)]

    def _select_tab(self, index: int) -> list[Effect]:
        state = self.state
        state.selected = state.clamp_index(index)
        state.viewport.reset()
        state.result = None
        state.error = None
        state.status = None
        self._sync_registry()
        current = state.current_tab
        if current is None:
            return []
        return self._dispatch(current)

    def _step_tab(self, step: int) -> list[Effect]:
        target = self.state.selected + step
        if not 0 <= target < len(self.state.tabs):
            return []
        return self._select_tab(target)

    # event handlers

    def _on_key(self, event: KeyPress) -> list[Effect]:
        return self._mode_handlers[self.state.mode](event)

    def _on_click(self, event: MouseClick) -> list[Effect]:
        if self.state.mode is not Mode.NORMAL:
            return []
        if not 0 <= event.tab_index < len(self.state.tabs):
            return []
        return self._select_tab(event.tab_index)

    def _on_resize(self, event: TerminalResize) -> list[Effect]:
        state = self.state
        state.width = event.width
        state.height = event.height
        state.viewport.height = max(event.height - VIEWPORT_CHROME_LINES, 1)
        state.viewport.fit(state.viewport.content_height)
        if state.registry is not None:
            state.registry.set_page_size(page_size_for(event.height))
        if state.ready:
            return []
        state.ready = True
        self._sync_registry()
        current = state.current_tab
        if current is None:
            return []
        return self._dispatch(current)

    def _on_tick(self, _event: Tick) -> list[Effect]:
        state = self.state
        if not state.ready or state.mode is not Mode.NORMAL:
            return []
        if state.last_query is None or state.loading or not self.can_refresh():
            return []
        index = self._index_of(state.last_query.name)
        query = state.tabs[index] if index is not None else state.last_query
        return self._dispatch(query)

    def _on_query_succeeded(self, event: QuerySucceeded) -> list[Effect]:
        if event.generation != self._generation:
            LOG.debug("Dropping stale result", extra={"generation": event.generation})
            return []
        state = self.state
        state.loading = False
        state.last_refresh_at = self._clock()
        state.refreshed_at = datetime.now()
        payload = event.payload
        if isinstance(payload, QueryResult):
            state.result = payload
            state.error = None
        elif isinstance(payload, HomeSample):
            state.home.add(payload)
            state.error = None
        elif state.registry is not None:
            state.registry.update_selection(payload)
        return []

    def _on_query_failed(self, event: QueryFailed) -> list[Effect]:
        if event.generation != self._generation:
            LOG.debug("Dropping stale failure", extra={"generation": event.generation})
            return []
        state = self.state
        state.loading = False
        if state.registry is not None and self._on_active_tab():
            state.registry.fetch_failed(event.reason)
        else:
            state.error = event.reason
        return []

    def _on_assist_succeeded(self, event: AssistSucceeded) -> list[Effect]:
        editor = self.state.editor
        if editor is None or not editor.assist.in_flight or editor.assist.request_id != event.request_id:
            return []
        editor.assist.in_flight = False
        editor.assist.pending_sql = event.sql
        return []

    def _on_assist_failed(self, event: AssistFailed) -> list[Effect]:
        editor = self.state.editor
        if editor is None or not editor.assist.in_flight or editor.assist.request_id != event.request_id:
            return []
        self.state.error = f"Assist failed: {event.reason}"
        editor.assist.reset()
        if editor.focus is EditField.ASSIST:
            editor.focus = EditField.SQL
        return []

    def _on_backend_action(self, event: BackendActionCompleted) -> list[Effect]:
        registry = self.state.registry
        if registry is None:
            return []
        if not registry.action_completed(event.pid, event.action, event.error):
            return []
        if event.error is None and self._on_active_tab():
            return self._dispatch(ACTIVE_QUERY)
        return []

    def _on_clipboard(self, event: ClipboardCompleted) -> list[Effect]:
        registry = self.state.registry
        if registry is not None:
            registry.copy_completed(event.error)
        elif event.error:
            self.state.error = f"Copy failed: {event.error}"
        return []

    def _on_shell_exited(self, event: ShellExited) -> list[Effect]:
        if event.error:
            self.state.error = f"Failed to open psql: {event.error}"
        return []

    def _on_return_to_picker(self, _event: ReturnToPickerRequested | None = None) -> list[Effect]:
        return [ExitSession(return_to_picker=True)]

    # normal mode

    def _normal_key(self, event: KeyPress) -> list[Effect]:
        key = event.name
        if self.state.registry is not None and self._on_active_tab():
            handled, effects = self._registry_key(key)
            if handled:
                return effects
        action = self._normal_keys.get(key)
        if action is None:
            return []
        return action()

    def _registry_key(self, key: str) -> tuple[bool, list[Effect]]:
        registry = self.state.registry
        if registry is None:
            return False, []
        if registry.mode is RegistryMode.LIST:
            if key in ("up", "k"):
                registry.move(-1)
            elif key in ("down", "j"):
                registry.move(1)
            elif key == "pageup":
                registry.move(-registry.page_size)
            elif key == "pagedown":
                registry.move(registry.page_size)
            elif key == "home":
                registry.move(-len(registry.processes))
            elif key == "end":
                registry.move(len(registry.processes))
            elif key == "enter":
                return registry.open_detail(), []
            elif key == "t":
                registry.request_action(BackendAction.TERMINATE)
            elif key == "c":
                registry.request_action(BackendAction.CANCEL)
            else:
                return False, []
            return True, []

        if registry.mode is RegistryMode.DETAIL:
            if key == "escape":
                registry.close_detail()
            elif key == "y":
                text = registry.copy_target()
                return True, [CopyText(text)] if text is not None else []
            elif key == "t":
                registry.request_action(BackendAction.TERMINATE)
            elif key == "c":
                registry.request_action(BackendAction.CANCEL)
            elif key in ("up", "down", "k", "j", "enter", "pageup", "pagedown", "home", "end"):
                pass
            else:
                return False, []
            return True, []

        if key == "ctrl+c":
            return False, []
        if key == "y":
            target = registry.confirm()
            if target is None:
                return True, []
            pid, action = target
            return True, [SignalBackend(pid, action)]
        if key in ("n", "escape"):
            registry.dismiss()
        return True, []

    def _quit(self) -> list[Effect]:
        return [ExitSession(return_to_picker=False)]

    def _scroll(self, delta: int) -> list[Effect]:
        self.state.viewport.scroll(delta)
        return []

    def _scroll_top(self) -> list[Effect]:
        self.state.viewport.top()
        return []

    def _scroll_bottom(self) -> list[Effect]:
        self.state.viewport.bottom()
        return []

    def _dump_queries(self) -> list[Effect]:
        try:
            self._store.export_all(self._dump_path)
        except StorageError as exc:
            self.state.error = str(exc)
            return []
        self.state.status = f"Queries dumped to: {self._dump_path}"
        return []

    def _import_queries(self) -> list[Effect]:
        try:
            count = self._store.import_all(self._dump_path)
            self._reload_queries()
        except StorageError as exc:
            self.state.error = str(exc)
            return []
        self.state.status = f"Imported {count} queries from: {self._dump_path}"
        return []

    def _open_shell(self) -> list[Effect]:
        return [OpenShell(self.state.profile)]

    # help

    def _open_help(self) -> list[Effect]:
        self.state.previous_selected = self.state.selected
        self.state.mode = Mode.HELP
        return []

    def _help_key(self, event: KeyPress) -> list[Effect]:
        key = event.name
        if key == "ctrl+c":
            return self._quit()
        if key in ("?", "escape"):
            state = self.state
            state.mode = Mode.NORMAL
            state.selected = state.clamp_index(state.previous_selected)
        return []

    # search

    def _open_search(self) -> list[Effect]:
        state = self.state
        state.previous_selected = state.selected
        state.search = SearchState(candidates=list(state.all_queries))
        state.mode = Mode.SEARCH
        return []

    def _search_key(self, event: KeyPress) -> list[Effect]:
        search = self.state.search
        if search is None:
            return self._close_search()
        key = event.name
        if key == "escape":
            return self._close_search()
        if key == "enter":
            return self._commit_search()
        if key in ("up", "ctrl+k"):
            search.move(-1)
        elif key in ("down", "ctrl+j"):
            search.move(1)
        elif key in ("backspace", "ctrl+h"):
            search.backspace()
        elif event.character is not None and key == event.character:
            search.type(event.character)
        return []

    def _close_search(self) -> list[Effect]:
        state = self.state
        state.search = None
        state.mode = Mode.NORMAL
        state.selected = state.clamp_index(state.previous_selected)
        return []

    def _commit_search(self) -> list[Effect]:
        state = self.state
        search = state.search
        if search is None:
            return []
        candidate = search.current
        if candidate is None:
            return []
        state.search = None
        state.mode = Mode.NORMAL
        self._promote(candidate)
        index = self._index_of(candidate.name)
        if index is None:
            state.selected = state.clamp_index(state.previous_selected)
            return []
        return self._select_tab(index)

    # edit

    def _edit_current(self) -> list[Effect]:
        current = self.state.current_tab
        if current is None or is_builtin(current.name):
            return []
        return self._open_editor(current)

    def _new_query(self) -> list[Effect]:
        return self._open_editor(None)

    def _open_editor(self, query: SavedQuery | None) -> list[Effect]:
        state = self.state
        state.previous_selected = state.selected
        state.editor = EditorState.for_query(query, assist_enabled=self._assist_enabled)
        state.error = None
        state.status = None
        state.mode = Mode.EDIT
        return []

    def _close_editor(self) -> list[Effect]:
        state = self.state
        state.editor = None
        state.mode = Mode.NORMAL
        state.selected = state.clamp_index(state.previous_selected)
        return []

    def _edit_key(self, event: KeyPress) -> list[Effect]:
        editor = self.state.editor
        if editor is None:
            return self._close_editor()
        key = event.name
        if editor.focus is EditField.ASSIST:
            handled, effects = self._assist_key(editor, event)
            if handled:
                return effects
        if key in ("escape", "ctrl+c"):
            return self._close_editor()
        if key == "ctrl+s":
            return self._save_editor()
        if key == "ctrl+d":
            return self._delete_from_editor()
        if key == "tab":
            editor.cycle(1)
        elif key == "shift+tab":
            editor.cycle(-1)
        elif key == "ctrl+g" and editor.assist_enabled:
            editor.focus = EditField.ASSIST
        else:
            editor.buffer().handle_key(event.key, event.character)
        return []

    def _assist_key(self, editor: EditorState, event: KeyPress) -> tuple[bool, list[Effect]]:
        assist = editor.assist
        key = event.name
        if key == "escape":
            assist.reset()
            editor.focus = EditField.SQL
            return True, []
        if key in ("tab", "shift+tab", "ctrl+s", "ctrl+d", "ctrl+c"):
            return False, []
        if assist.pending_sql is not None:
            if key in ("enter", "c"):
                editor.sql.set_text(assist.pending_sql)
                assist.reset()
                editor.focus = EditField.SQL
            return True, []
        if assist.in_flight:
            return True, []
        if key == "enter":
            prompt = assist.prompt.text.strip()
            if not prompt:
                return True, []
            self._assist_requests += 1
            assist.request_id = self._assist_requests
            assist.in_flight = True
            self.state.error = None
            return True, [GenerateSql(assist.request_id, prompt, editor.sql.text.strip())]
        assist.prompt.handle_key(event.key, event.character)
        return True, []

    def _save_editor(self) -> list[Effect]:
        state = self.state
        editor = state.editor
        if editor is None:
            return []
        name = editor.name.text.strip()
        if not name:
            state.error = "Query name is required."
            return []
        if is_builtin(name):
            state.error = f"'{name}' is a built-in tab and cannot be saved over."
            return []
        temporary = None if editor.is_new else state.temporary_orders.get(editor.original.name)
        query = editor.to_query(temporary)
        try:
            self._store.save(query)
            self._reload_queries()
        except StorageError as exc:
            state.error = f"Failed to save query: {exc}"
            return []
        if query.display_order is None and query.name not in state.temporary_orders:
            state.temporary_orders[query.name] = self._next_temporary_order()
            self._rebuild_tabs()
        state.editor = None
        state.mode = Mode.NORMAL
        index = self._index_of(query.name)
        if index is None:
            state.selected = state.clamp_index(state.previous_selected)
            return []
        effects = self._select_tab(index)
        state.status = f"Saved '{query.name}'."
        return effects

    def _delete_from_editor(self) -> list[Effect]:
        state = self.state
        editor = state.editor
        if editor is None:
            return []
        if editor.is_new:
            return []
        name = editor.original.name
        try:
            self._store.delete(name)
            self._reload_queries()
        except StorageError as exc:
            state.error = f"Failed to delete query: {exc}"
            return []
        state.temporary_orders.pop(name, None)
        state.editor = None
        state.mode = Mode.NORMAL
        effects = self._select_tab(state.clamp_index(state.previous_selected))
        state.status = f"Deleted '{name}'."
        return effects


__all__ = ["Mode", "SessionController", "SessionState", "Viewport"]
