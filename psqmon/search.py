"""Incremental search over the full query list."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from .models import SavedQuery


def filter_queries(queries: Sequence[SavedQuery], text: str) -> list[SavedQuery]:
    """Case-insensitive substring match on name or description."""

    if not text:
        return list(queries)
    needle = text.lower()
    return [
        query
        for query in queries
        if needle in query.name.lower() or needle in query.description.lower()
    ]


@dataclass
class SearchState:
    candidates: list[SavedQuery]
    text: str = ""
    highlighted: int = 0
    matches: list[SavedQuery] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.refilter()

    def refilter(self) -> None:
        self.matches = filter_queries(self.candidates, self.text)
        if self.highlighted >= len(self.matches):
            self.highlighted = 0

    def type(self, chars: str) -> None:
        self.text += chars
        self.refilter()

    def backspace(self) -> None:
        if self.text:
            self.text = self.text[:-1]
            self.refilter()

    def move(self, delta: int) -> None:
        if not self.matches:
            return
        self.highlighted = max(0, min(self.highlighted + delta, len(self.matches) - 1))

    @property
    def current(self) -> SavedQuery | None:
        if 0 <= self.highlighted < len(self.matches):
            return self.matches[self.highlighted]
        return None


__all__ = ["SearchState", "filter_queries"]
