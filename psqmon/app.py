"""Textual application entry point for psqmon."""

from __future__ import annotations

import argparse
from enum import Enum
import logging
from pathlib import Path
import subprocess
from typing import Sequence

from textual import events
from textual.app import App, ComposeResult, SuspendNotSupported
from textual.binding import Binding
from textual.widgets import Static

from .activity import AsyncpgActivityBackend
from .assist import SqlAssistant
from .config import AppConfig, load_config, save_config
from .connections import ServiceFileResolver, psql_invocation
from .controller import SessionController
from .effects import EffectRunner
from .errors import ConfigurationError, StorageError
from .events import Effect, Event, ExitSession, KeyPress, MouseClick, OpenShell, ShellExited, TerminalResize, Tick
from .home import HomeSampler
from .models import ConnectionProfile
from .picker import ProfilePickerApp
from .presentation import (
    is_scrollable,
    render_body,
    render_header,
    render_hint,
    render_status,
    tab_labels,
    window,
)
from .query import AsyncpgQueryExecutor
from .store import QueryStore
from .widgets import ResultsView, StatusBar, TabStrip

LOG = logging.getLogger(__name__)


class SessionOutcome(str, Enum):
    QUIT = "quit"
    PICKER = "picker"


def _load_app_config() -> AppConfig:
    """Load configuration with a small wrapper for future overrides."""

    return load_config()


class SessionApp(App[SessionOutcome]):
    """Monitoring session for one connection profile.

    Every input is translated into a controller event; the effects returned
    by the controller run as workers and post their outcome back the same way.
    """

    CSS = """
    Screen {
        layout: vertical;
    }
    #session-header {
        height: 1;
        padding: 0 1;
        text-style: bold;
        color: $accent;
    }
    #hint {
        height: 1;
        padding: 0 1;
        color: $text-muted;
    }
    """

    BINDINGS = [
        Binding("tab", "forward_key('tab')", show=False, priority=True),
        Binding("shift+tab", "forward_key('shift+tab')", show=False, priority=True),
        Binding("ctrl+c", "forward_key('ctrl+c')", show=False, priority=True),
    ]

    def __init__(self, profile: ConnectionProfile, store: QueryStore, config: AppConfig) -> None:
        super().__init__()
        self._config = config
        self._ui_ready = False
        assistant = SqlAssistant(
            api_key=config.assist.api_key(),
            model=config.assist.model,
            endpoint=config.assist.endpoint,
            timeout=config.assist.timeout_seconds,
            api_key_env=config.assist.api_key_env,
        )
        timeouts = {
            "connect_timeout": config.database.connect_timeout,
            "command_timeout": config.database.command_timeout,
        }
        self.controller = SessionController(
            profile,
            store,
            dump_path=config.dump_path,
            cooldown=config.refresh.cooldown_seconds,
        )
        self.runner = EffectRunner(
            profile,
            executor=AsyncpgQueryExecutor(**timeouts),
            activity=AsyncpgActivityBackend(**timeouts),
            home=HomeSampler(**timeouts),
            assistant=assistant,
            fallback_copy=self.copy_to_clipboard,
        )

    def compose(self) -> ComposeResult:
        yield Static("", id="session-header", markup=False)
        yield TabStrip()
        yield Static("", id="hint", markup=False)
        yield ResultsView()
        yield StatusBar()

    def on_mount(self) -> None:
        self._ui_ready = True
        self.set_interval(self._config.refresh.interval_seconds, self._tick)
        self.apply_event(TerminalResize(self.size.width, self.size.height))

    def on_resize(self, event: events.Resize) -> None:
        self.apply_event(TerminalResize(event.size.width, event.size.height))

    def on_key(self, event: events.Key) -> None:
        event.stop()
        character = event.character if event.is_printable else None
        self.apply_event(KeyPress(event.key, character))

    def action_forward_key(self, key: str) -> None:
        self.apply_event(KeyPress(key))

    def action_select_tab(self, index: int) -> None:
        self.apply_event(MouseClick(index))

    def apply_event(self, event: Event) -> None:
        """Feed one event to the controller, start its effects, then redraw."""

        for effect in self.controller.handle(event):
            self._start(effect)
        self._render_state()

    def _tick(self) -> None:
        self.apply_event(Tick())

    def _start(self, effect: Effect) -> None:
        if isinstance(effect, ExitSession):
            self.exit(SessionOutcome.PICKER if effect.return_to_picker else SessionOutcome.QUIT)
        elif isinstance(effect, OpenShell):
            self.call_later(self._open_shell, effect.profile)
        else:
            self.run_worker(self._perform(effect), group="effects", exit_on_error=False)

    async def _perform(self, effect: Effect) -> None:
        event = await self.runner.perform(effect)
        if event is not None:
            self.apply_event(event)

    def _open_shell(self, profile: ConnectionProfile) -> None:
        command, env = psql_invocation(profile, self._config.psql_command)
        error: str | None = None
        try:
            with self.suspend():
                completed = subprocess.run(command, env=env, check=False)
        except (OSError, SuspendNotSupported) as exc:
            LOG.warning("Could not launch psql", extra={"command": command[0], "error": str(exc)})
            error = str(exc)
        else:
            if completed.returncode not in (0, None):
                error = f"psql exited with status {completed.returncode}"
        self.apply_event(ShellExited(error))

    def _render_state(self) -> None:
        if not self._ui_ready:
            return
        state = self.controller.state
        self.query_one("#session-header", Static).update(render_header(state))
        self.query_one(TabStrip).show(tab_labels(state))
        self.query_one("#hint", Static).update(render_hint(state))
        lines = render_body(state)
        if is_scrollable(state):
            self.controller.fit_viewport(len(lines))
            lines = window(lines, state.viewport.offset, state.viewport.height)
        self.query_one(ResultsView).show(lines)
        self.query_one(StatusBar).show(render_status(state))


def run_session(
    name: str,
    resolver: ServiceFileResolver,
    store: QueryStore,
    config: AppConfig,
) -> tuple[SessionOutcome, str | None]:
    """Run one session; returns the outcome and an error for the picker."""

    try:
        profile = resolver.resolve(name)
    except ConfigurationError as exc:
        LOG.warning("Profile resolution failed", extra={"profile": name, "error": str(exc)})
        return SessionOutcome.PICKER, str(exc)
    outcome = SessionApp(profile, store, config).run()
    return outcome or SessionOutcome.QUIT, None


def run(profile: str | None, config: AppConfig, store: QueryStore) -> None:
    """Run the requested session, then the picker loop until it is cancelled."""

    resolver = ServiceFileResolver(config.service_file)
    message: str | None = None
    if profile:
        outcome, message = run_session(profile, resolver, store, config)
        if outcome is SessionOutcome.QUIT:
            return
    while True:
        chosen = ProfilePickerApp(resolver, preselect=config.active_profile, message=message).run()
        if chosen is None:
            return
        config = config.with_active_profile(chosen)
        try:
            save_config(config)
        except OSError as exc:
            LOG.warning("Could not persist active profile", extra={"error": str(exc)})
        _, message = run_session(chosen, resolver, store, config)


def _open_store(config: AppConfig) -> QueryStore:
    try:
        return QueryStore.open(config.query_store, legacy_dir=config.legacy_queries_dir)
    except StorageError as exc:
        LOG.warning("Falling back to an in-memory query store", extra={"error": str(exc)})
        return QueryStore.open(":memory:")


def _configure_logging(log_file: Path | None) -> None:
    if log_file is None:
        return
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=str(log_file),
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="psqmon", description="Terminal dashboard for PostgreSQL.")
    parser.add_argument("profile", nargs="?", help="service name from pg_service.conf")
    parser.add_argument("-s", "--service", help="service name from pg_service.conf")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> None:
    """Run the Textual app."""

    args = _parse_args(argv)
    config = _load_app_config()
    _configure_logging(config.log_file)
    store = _open_store(config)
    try:
        run(args.profile or args.service, config, store)
    finally:
        store.close()


__all__ = ["SessionApp", "SessionOutcome", "main", "run", "run_session"]
