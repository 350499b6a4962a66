"""Status bar widget that mirrors session information."""

from __future__ import annotations

from textual.widgets import Static


class StatusBar(Static):
    """Compact status strip pinned to the bottom of the screen."""

    DEFAULT_CSS = """
    StatusBar {
        height: 1;
        padding: 0 1;
        background: $surface-darken-3;
        color: $text;
    }
    """

    def __init__(self) -> None:
        super().__init__("", id="status-bar", markup=False)

    def show(self, text: str) -> None:
        self.update(text)


__all__ = ["StatusBar"]
