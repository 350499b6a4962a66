"""Line-editing buffers and the state behind the query editor."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .models import SavedQuery

NAME_LIMIT = 50
DESCRIPTION_LIMIT = 100
ORDER_LIMIT = 10
PROMPT_LIMIT = 200


class FieldBuffer:
    """Editable text with a cursor; ``multiline`` lets Enter insert breaks."""

    def __init__(self, text: str = "", *, limit: int | None = None, multiline: bool = False) -> None:
        self.limit = limit
        self.multiline = multiline
        self.text = text if limit is None else text[:limit]
        self.cursor = len(self.text)

    def set_text(self, text: str) -> None:
        self.text = text if self.limit is None else text[: self.limit]
        self.cursor = len(self.text)

    def insert(self, chars: str) -> None:
        if not self.multiline:
            chars = chars.replace("\n", " ")
        if self.limit is not None:
            room = self.limit - len(self.text)
            if room <= 0:
                return
            chars = chars[:room]
        self.text = self.text[: self.cursor] + chars + self.text[self.cursor :]
        self.cursor += len(chars)

    def backspace(self) -> None:
        if self.cursor == 0:
            return
        self.text = self.text[: self.cursor - 1] + self.text[self.cursor :]
        self.cursor -= 1

    def delete(self) -> None:
        self.text = self.text[: self.cursor] + self.text[self.cursor + 1 :]

    def handle_key(self, key: str, character: str | None) -> bool:
        """Apply one key press; returns False when the key means nothing here."""

        if key == "backspace":
            self.backspace()
        elif key == "delete":
            self.delete()
        elif key == "left":
            self.cursor = max(self.cursor - 1, 0)
        elif key == "right":
            self.cursor = min(self.cursor + 1, len(self.text))
        elif key == "home":
            self.cursor = self.text.rfind("\n", 0, self.cursor) + 1
        elif key == "end":
            end = self.text.find("\n", self.cursor)
            self.cursor = len(self.text) if end == -1 else end
        elif key == "enter" and self.multiline:
            self.insert("\n")
        elif character is not None and len(character) == 1 and character.isprintable():
            self.insert(character)
        else:
            return False
        return True


class EditField(int, Enum):
    NAME = 0
    DESCRIPTION = 1
    ORDER = 2
    SQL = 3
    ASSIST = 4


@dataclass
class AssistState:
    """Prompt, in-flight flag and the response awaiting confirmation."""

    prompt: FieldBuffer = field(default_factory=lambda: FieldBuffer(limit=PROMPT_LIMIT))
    in_flight: bool = False
    request_id: int = 0
    pending_sql: str | None = None

    @property
    def read_only(self) -> bool:
        return self.in_flight or self.pending_sql is not None

    def reset(self) -> None:
        self.prompt.set_text("")
        self.in_flight = False
        self.pending_sql = None


@dataclass
class EditorState:
    original: SavedQuery
    name: FieldBuffer
    description: FieldBuffer
    order: FieldBuffer
    sql: FieldBuffer
    focus: EditField = EditField.NAME
    assist_enabled: bool = True
    assist: AssistState = field(default_factory=AssistState)

    @classmethod
    def for_query(cls, query: SavedQuery | None, *, assist_enabled: bool = True) -> EditorState:
        original = query or SavedQuery(name="")
        order = "" if original.display_order is None else str(original.display_order)
        return cls(
            original=original,
            name=FieldBuffer(original.name, limit=NAME_LIMIT),
            description=FieldBuffer(original.description, limit=DESCRIPTION_LIMIT),
            order=FieldBuffer(order, limit=ORDER_LIMIT),
            sql=FieldBuffer(original.sql, multiline=True),
            assist_enabled=assist_enabled,
        )

    @property
    def is_new(self) -> bool:
        return not self.original.name

    @property
    def field_count(self) -> int:
        return 5 if self.assist_enabled else 4

    def cycle(self, step: int) -> None:
        self.focus = EditField((self.focus + step) % self.field_count)

    def buffer(self, target: EditField | None = None) -> FieldBuffer:
        target = self.focus if target is None else target
        return {
            EditField.NAME: self.name,
            EditField.DESCRIPTION: self.description,
            EditField.ORDER: self.order,
            EditField.SQL: self.sql,
            EditField.ASSIST: self.assist.prompt,
        }[target]

    def to_query(self, temporary_order: int | None) -> SavedQuery:
        return SavedQuery(
            name=self.name.text.strip(),
            description=self.description.text.strip(),
            sql=self.sql.text,
            display_order=resolve_order(self.order.text, temporary_order),
        )


def parse_order(text: str) -> int | None:
    """Parse the order field; empty or non-integer input yields None."""

    text = text.strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        return None


def resolve_order(text: str, temporary_order: int | None) -> int | None:
    """Order to persist, ignoring an untouched session-only temporary value."""

    if temporary_order is not None and text.strip() == str(temporary_order):
        return None
    return parse_order(text)


__all__ = [
    "AssistState",
    "EditField",
    "EditorState",
    "FieldBuffer",
    "parse_order",
    "resolve_order",
]
