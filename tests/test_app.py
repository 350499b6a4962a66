"""Tests for session wiring and the picker loop."""

from __future__ import annotations

from pathlib import Path

import pytest

from psqmon import app as app_module
from psqmon.app import SessionApp, SessionOutcome, run, run_session
from psqmon.config import AppConfig
from psqmon.connections import ServiceFileResolver
from psqmon.models import ConnectionProfile
from psqmon.store import QueryStore


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        service_file=tmp_path / "pg_service.conf",
        query_store=tmp_path / "queries.db",
        dump_path=tmp_path / "dump.db",
        legacy_queries_dir=tmp_path / "queries",
    )


class _ScriptedPicker:
    choices: list[str | None] = []
    seen: list[tuple[str | None, str | None]] = []

    def __init__(self, resolver: ServiceFileResolver, *, preselect: str | None, message: str | None) -> None:
        _ScriptedPicker.seen.append((preselect, message))

    def run(self) -> str | None:
        return _ScriptedPicker.choices.pop(0)


@pytest.fixture
def picker(monkeypatch: pytest.MonkeyPatch) -> type[_ScriptedPicker]:
    _ScriptedPicker.choices = []
    _ScriptedPicker.seen = []
    monkeypatch.setattr(app_module, "ProfilePickerApp", _ScriptedPicker)
    return _ScriptedPicker


@pytest.mark.anyio
async def test_session_app_wires_controller(config: AppConfig) -> None:
    store = QueryStore.open(":memory:")

    app = SessionApp(ConnectionProfile(name="prod"), store, config)

    try:
        assert app.controller.state.profile.name == "prod"
        assert app.controller.dump_path == config.dump_path
        assert [tab.name for tab in app.controller.state.tabs][:2] == ["Home", "Active"]
    finally:
        store.close()


def test_run_session_reports_unknown_profile(config: AppConfig) -> None:
    resolver = ServiceFileResolver(config.service_file)
    store = QueryStore.open(":memory:")

    outcome, message = run_session("ghost", resolver, store, config)

    assert outcome is SessionOutcome.PICKER
    assert message == "Profile 'ghost' not found."
    store.close()


def test_explicit_profile_quits_without_picker(
    config: AppConfig, monkeypatch: pytest.MonkeyPatch, picker: type[_ScriptedPicker]
) -> None:
    calls: list[str] = []

    def fake_session(name, resolver, store, cfg):  # type: ignore[no-untyped-def]
        calls.append(name)
        return SessionOutcome.QUIT, None

    monkeypatch.setattr(app_module, "run_session", fake_session)

    run("prod", config, store=None)  # type: ignore[arg-type]

    assert calls == ["prod"]
    assert picker.seen == []


def test_picker_loop_saves_choice_and_returns_on_cancel(
    config: AppConfig, monkeypatch: pytest.MonkeyPatch, picker: type[_ScriptedPicker]
) -> None:
    calls: list[str] = []
    saved: list[str | None] = []

    def fake_session(name, resolver, store, cfg):  # type: ignore[no-untyped-def]
        calls.append(name)
        if name == "ghost":
            return SessionOutcome.PICKER, "Profile 'ghost' not found."
        return SessionOutcome.PICKER, None

    monkeypatch.setattr(app_module, "run_session", fake_session)
    monkeypatch.setattr(app_module, "save_config", lambda cfg: saved.append(cfg.active_profile))
    picker.choices = ["local", None]

    run("ghost", config, store=None)  # type: ignore[arg-type]

    assert calls == ["ghost", "local"]
    assert saved == ["local"]
    assert picker.seen == [(None, "Profile 'ghost' not found."), ("local", None)]
