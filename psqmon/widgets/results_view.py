"""Body pane showing the rendered text for the current tab or mode."""

from __future__ import annotations

from typing import Sequence

from textual.widgets import Static


class ResultsView(Static):
    """Plain-text body; the session viewport decides which lines arrive here."""

    DEFAULT_CSS = """
    ResultsView {
        height: 1fr;
        padding: 0 1;
    }
    """

    def __init__(self) -> None:
        super().__init__("", id="results", markup=False)

    def show(self, lines: Sequence[str]) -> None:
        self.update("\n".join(lines))


__all__ = ["ResultsView"]
