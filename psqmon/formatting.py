"""Text helpers shared by the runner and the presentation layer."""

from __future__ import annotations

import re

ELLIPSIS = "~"
NULL_MARKER = "NULL"

_WHITESPACE_RUN = re.compile(r"\s{2,}")
_LINE_BREAKS = re.compile(r"[\r\n]+")


def scrub_newlines(text: str) -> str:
    """Flatten text onto one line, collapsing whitespace runs and trimming."""

    flattened = text.replace("\n", " ").replace("\r", " ")
    return _WHITESPACE_RUN.sub(" ", flattened).strip()


def truncate(text: str, width: int) -> str:
    """Clip text to at most ``width`` characters, marking the cut."""

    if width <= 0:
        return ""
    if len(text) <= width:
        return text
    if width <= 1:
        return ELLIPSIS
    return text[: width - 1] + ELLIPSIS


def format_cell(value: object) -> str:
    """Render a database value as single-line display text."""

    if value is None:
        return NULL_MARKER
    if isinstance(value, memoryview):
        value = value.tobytes()
    if isinstance(value, (bytes, bytearray)):
        text = bytes(value).decode("utf-8", errors="replace")
    elif isinstance(value, bool):
        text = "true" if value else "false"
    else:
        text = str(value)
    return _LINE_BREAKS.sub(" ", text)


__all__ = ["ELLIPSIS", "NULL_MARKER", "format_cell", "scrub_newlines", "truncate"]
