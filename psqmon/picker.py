"""Profile picker shown when no profile was given on the command line."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess

from textual import events
from textual.app import App, ComposeResult, SuspendNotSupported
from textual.binding import Binding
from textual.markup import escape
from textual.widgets import Static

from .connections import ServiceFileResolver
from .errors import ConfigurationError

LOG = logging.getLogger(__name__)

PICKER_HELP = (
    "↑/k ↓/j move • enter/space connect • e edit service file • ? help • esc quit",
    "Profiles come from the pg_service.conf file; each [section] is one profile.",
)


class PickerState:
    """Profile names plus the highlighted row."""

    def __init__(self, profiles: list[str], *, preselect: str | None = None) -> None:
        self.profiles = profiles
        self.selected = profiles.index(preselect) if preselect in profiles else 0
        self.show_help = False

    def reload(self, profiles: list[str]) -> None:
        current = self.current
        self.profiles = profiles
        if current in profiles:
            self.selected = profiles.index(current)
        else:
            self.selected = min(self.selected, max(len(profiles) - 1, 0))

    def move(self, delta: int) -> None:
        if self.profiles:
            self.selected = max(0, min(self.selected + delta, len(self.profiles) - 1))

    @property
    def current(self) -> str | None:
        if 0 <= self.selected < len(self.profiles):
            return self.profiles[self.selected]
        return None


class ProfilePickerApp(App[str | None]):
    """Lists service-file profiles and returns the chosen name."""

    TITLE = "psqmon - Service Picker"
    CSS = """
    Screen {
        layout: vertical;
        padding: 1 2;
    }
    #picker-title {
        text-style: bold;
        height: 2;
    }
    #profiles {
        height: 1fr;
    }
    #picker-message {
        color: $error;
        height: auto;
    }
    #picker-hint {
        color: $text-muted;
        height: auto;
    }
    """

    BINDINGS = [Binding("ctrl+c", "cancel", "Quit", show=False, priority=True)]

    def __init__(
        self,
        resolver: ServiceFileResolver,
        *,
        preselect: str | None = None,
        message: str | None = None,
    ) -> None:
        super().__init__()
        self._resolver = resolver
        self._message = message
        self.state = PickerState([], preselect=None)
        self._preselect = preselect

    def compose(self) -> ComposeResult:
        yield Static(self.TITLE, id="picker-title", markup=False)
        yield Static("", id="profiles")
        yield Static("", id="picker-message", markup=False)
        yield Static("", id="picker-hint", markup=False)

    def on_mount(self) -> None:
        self.state = PickerState(self._load_profiles(), preselect=self._preselect)
        self._render_state()

    def on_key(self, event: events.Key) -> None:
        key = event.character if event.is_printable and event.character else event.key
        event.stop()
        if key in ("up", "k"):
            self.state.move(-1)
        elif key in ("down", "j"):
            self.state.move(1)
        elif key in ("enter", " "):
            self.action_choose(self.state.selected)
            return
        elif key == "e":
            self._edit_service_file()
        elif key == "?":
            self.state.show_help = not self.state.show_help
        elif key == "escape":
            self.exit(None)
            return
        self._render_state()

    def action_choose(self, index: int) -> None:
        if not 0 <= index < len(self.state.profiles):
            return
        self.state.selected = index
        self.exit(self.state.profiles[index])

    def action_cancel(self) -> None:
        self.exit(None)

    def _load_profiles(self) -> list[str]:
        try:
            return self._resolver.list_profiles()
        except ConfigurationError as exc:
            self._message = str(exc)
            return []

    def _edit_service_file(self) -> None:
        editor = os.environ.get("EDITOR") or "vi"
        path = self._resolver.path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with self.suspend():
                subprocess.run([*shlex.split(editor), str(path)], check=False)
        except (OSError, SuspendNotSupported) as exc:
            LOG.warning("Could not launch editor", extra={"editor": editor, "error": str(exc)})
            self._message = f"Failed to launch {editor}: {exc}"
        else:
            self._message = None
        self.state.reload(self._load_profiles())

    def _render_state(self) -> None:
        profiles = self.query_one("#profiles", Static)
        if self.state.profiles:
            rows = []
            for index, name in enumerate(self.state.profiles):
                marker = "▶ " if index == self.state.selected else "  "
                text = escape(marker + name)
                if index == self.state.selected:
                    text = f"[b]{text}[/b]"
                rows.append(f"[@click=app.choose({index})]{text}[/]")
            profiles.update("\n".join(rows))
        else:
            profiles.update(
                escape(
                    f"No services found in {self._resolver.path}\n"
                    "Press 'e' to edit the configuration file."
                )
            )
        self.query_one("#picker-message", Static).update(self._message or "")
        hint = "\n".join(PICKER_HELP) if self.state.show_help else "Press ? for help"
        self.query_one("#picker-hint", Static).update(hint)


__all__ = ["PickerState", "ProfilePickerApp"]
