"""Tests for the profile picker state."""

from __future__ import annotations

from pathlib import Path

import pytest

from psqmon.connections import ServiceFileResolver
from psqmon.picker import PickerState, ProfilePickerApp


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def test_preselect_highlights_known_profile() -> None:
    state = PickerState(["local", "prod", "staging"], preselect="prod")

    assert state.current == "prod"


def test_unknown_preselect_falls_back_to_first() -> None:
    state = PickerState(["local", "prod"], preselect="gone")

    assert state.selected == 0


def test_move_is_clamped() -> None:
    state = PickerState(["a", "b"])

    state.move(-1)
    assert state.current == "a"
    state.move(5)
    assert state.current == "b"


def test_reload_keeps_current_profile() -> None:
    state = PickerState(["a", "b", "c"], preselect="c")

    state.reload(["c", "a"])

    assert state.current == "c"
    assert state.selected == 0


def test_reload_clamps_when_profile_removed() -> None:
    state = PickerState(["a", "b", "c"], preselect="c")

    state.reload(["a"])

    assert state.current == "a"


def test_empty_picker_has_no_current() -> None:
    state = PickerState([])

    state.move(1)

    assert state.current is None


@pytest.mark.anyio
async def test_picker_app_exposes_resolver_path(tmp_path: Path) -> None:
    resolver = ServiceFileResolver(tmp_path / "pg_service.conf")

    app = ProfilePickerApp(resolver, preselect="prod", message="Profile 'prod' not found.")

    assert app.TITLE == "psqmon - Service Picker"
    assert app.state.profiles == []
