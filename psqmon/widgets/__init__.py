"""Widget library for the Textual UI."""

from __future__ import annotations

from .results_view import ResultsView
from .status_bar import StatusBar
from .tab_strip import TabStrip

__all__ = ["ResultsView", "StatusBar", "TabStrip"]
