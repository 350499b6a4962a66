"""Tests for editor buffers and state."""

from __future__ import annotations

import pytest

from psqmon.editor import EditField, EditorState, FieldBuffer, parse_order, resolve_order
from psqmon.models import SavedQuery


def test_insert_respects_limit() -> None:
    buffer = FieldBuffer("abc", limit=5)

    buffer.insert("defgh")

    assert buffer.text == "abcde"
    assert buffer.cursor == 5


def test_single_line_buffer_flattens_newlines() -> None:
    buffer = FieldBuffer()

    assert buffer.handle_key("enter", None) is False
    buffer.insert("a\nb")

    assert buffer.text == "a b"


def test_cursor_editing() -> None:
    buffer = FieldBuffer("held")

    buffer.handle_key("left", None)
    buffer.handle_key("left", None)
    buffer.handle_key("x", "x")
    buffer.handle_key("backspace", None)
    buffer.handle_key("delete", None)

    assert buffer.text == "hed"
    assert buffer.cursor == 2


def test_multiline_home_end_work_per_line() -> None:
    buffer = FieldBuffer("SELECT 1\nFROM t", multiline=True)

    buffer.handle_key("home", None)
    assert buffer.cursor == len("SELECT 1\n")
    buffer.handle_key("enter", None)

    assert buffer.text == "SELECT 1\n\nFROM t"


def test_unknown_key_is_not_consumed() -> None:
    assert FieldBuffer().handle_key("f5", None) is False


def test_for_existing_query_prefills_fields() -> None:
    state = EditorState.for_query(SavedQuery("Locks", "Lock list", "SELECT 1", 3))

    assert not state.is_new
    assert state.name.text == "Locks"
    assert state.order.text == "3"
    assert state.to_query(None) == SavedQuery("Locks", "Lock list", "SELECT 1", 3)


def test_new_query_starts_blank() -> None:
    state = EditorState.for_query(None)

    assert state.is_new
    assert state.focus is EditField.NAME


def test_cycle_wraps_and_skips_assist_when_disabled() -> None:
    state = EditorState.for_query(None, assist_enabled=False)

    state.cycle(-1)
    assert state.focus is EditField.SQL
    state.cycle(1)
    assert state.focus is EditField.NAME


def test_cycle_reaches_assist_field() -> None:
    state = EditorState.for_query(None)

    state.cycle(4)

    assert state.focus is EditField.ASSIST
    assert state.buffer() is state.assist.prompt


@pytest.mark.parametrize(("text", "expected"), [("", None), (" 4 ", 4), ("abc", None), ("-2", -2)])
def test_parse_order(text: str, expected: int | None) -> None:
    assert parse_order(text) == expected


def test_untouched_temporary_order_is_not_persisted() -> None:
    assert resolve_order("7", 7) is None
    assert resolve_order("2", 7) == 2
    assert resolve_order("", None) is None
