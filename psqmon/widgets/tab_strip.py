"""Clickable strip of query tabs."""

from __future__ import annotations

from typing import Sequence

from textual.markup import escape
from textual.widgets import Static

from psqmon.presentation import TabLabel


class TabStrip(Static):
    """One line of tab names; clicking a name runs ``app.select_tab``."""

    DEFAULT_CSS = """
    TabStrip {
        height: 1;
        padding: 0 1;
        border-bottom: none;
    }
    """

    def __init__(self) -> None:
        super().__init__("", id="tab-strip")

    def show(self, labels: Sequence[TabLabel]) -> None:
        self.update(render_markup(labels))


def render_markup(labels: Sequence[TabLabel]) -> str:
    parts: list[str] = []
    for label in labels:
        text = f" {escape(label.name)} "
        if label.temporary:
            text = f"[i]{text}[/i]"
        if label.selected:
            text = f"[b reverse]{text}[/b reverse]"
        parts.append(f"[@click=app.select_tab({label.index})]{text}[/]")
    return "│".join(parts)


__all__ = ["TabStrip", "render_markup"]
