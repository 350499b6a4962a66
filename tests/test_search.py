"""Tests for incremental query search."""

from __future__ import annotations

from psqmon.models import SavedQuery
from psqmon.search import SearchState, filter_queries

QUERIES = [
    SavedQuery("Lock Information", "Show current locks", "SELECT 1", 1),
    SavedQuery("Replication Lag", "Standby delay", "SELECT 2", 2),
    SavedQuery("Bloat", "Table bloat estimate", "SELECT 3", None),
]


def test_filter_matches_name_or_description_case_insensitively() -> None:
    assert [q.name for q in filter_queries(QUERIES, "LOCK")] == ["Lock Information"]
    assert [q.name for q in filter_queries(QUERIES, "table")] == ["Bloat"]
    assert filter_queries(QUERIES, "") == QUERIES


def test_typing_narrows_and_resets_highlight() -> None:
    state = SearchState(list(QUERIES))
    state.move(2)

    state.type("rep")

    assert [q.name for q in state.matches] == ["Replication Lag"]
    assert state.highlighted == 0


def test_backspace_widens_matches() -> None:
    state = SearchState(list(QUERIES))
    state.type("blx")
    assert state.matches == []

    state.backspace()

    assert state.current == QUERIES[2]


def test_move_is_clamped() -> None:
    state = SearchState(list(QUERIES))

    state.move(-1)
    assert state.highlighted == 0
    state.move(10)
    assert state.highlighted == 2


def test_current_is_none_without_matches() -> None:
    state = SearchState(list(QUERIES), text="zzz")

    assert state.current is None
