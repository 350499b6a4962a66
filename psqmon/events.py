"""Events consumed by the session controller and the effects it requests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .activity import BackendAction
from .home import HomeSample
from .models import ActiveProcess, ConnectionProfile, SavedQuery
from .query import QueryResult

QueryPayload = Union[QueryResult, HomeSample, tuple[ActiveProcess, ...]]


@dataclass(frozen=True, slots=True)
class KeyPress:
    key: str
    character: str | None = None

    @property
    def name(self) -> str:
        """Printable keys by their character, everything else by key name."""

        if self.character is not None and len(self.character) == 1 and self.character.isprintable():
            return self.character
        return self.key


@dataclass(frozen=True, slots=True)
class MouseClick:
    tab_index: int


@dataclass(frozen=True, slots=True)
class TerminalResize:
    width: int
    height: int


@dataclass(frozen=True, slots=True)
class Tick:
    pass


@dataclass(frozen=True, slots=True)
class QuerySucceeded:
    generation: int
    payload: QueryPayload


@dataclass(frozen=True, slots=True)
class QueryFailed:
    generation: int
    reason: str


@dataclass(frozen=True, slots=True)
class AssistSucceeded:
    request_id: int
    sql: str


@dataclass(frozen=True, slots=True)
class AssistFailed:
    request_id: int
    reason: str


@dataclass(frozen=True, slots=True)
class BackendActionCompleted:
    pid: int
    action: BackendAction
    error: str | None = None


@dataclass(frozen=True, slots=True)
class ClipboardCompleted:
    error: str | None = None


@dataclass(frozen=True, slots=True)
class ShellExited:
    error: str | None = None


@dataclass(frozen=True, slots=True)
class ReturnToPickerRequested:
    pass


Event = Union[
    KeyPress,
    MouseClick,
    TerminalResize,
    Tick,
    QuerySucceeded,
    QueryFailed,
    AssistSucceeded,
    AssistFailed,
    BackendActionCompleted,
    ClipboardCompleted,
    ShellExited,
    ReturnToPickerRequested,
]


@dataclass(frozen=True, slots=True)
class RunQuery:
    generation: int
    query: SavedQuery


@dataclass(frozen=True, slots=True)
class SignalBackend:
    pid: int
    action: BackendAction


@dataclass(frozen=True, slots=True)
class CopyText:
    text: str


@dataclass(frozen=True, slots=True)
class GenerateSql:
    request_id: int
    prompt: str
    current_sql: str


@dataclass(frozen=True, slots=True)
class OpenShell:
    profile: ConnectionProfile


@dataclass(frozen=True, slots=True)
class ExitSession:
    return_to_picker: bool = False


Effect = Union[RunQuery, SignalBackend, CopyText, GenerateSql, OpenShell, ExitSession]


__all__ = [
    "AssistFailed",
    "AssistSucceeded",
    "BackendActionCompleted",
    "ClipboardCompleted",
    "CopyText",
    "Effect",
    "Event",
    "ExitSession",
    "GenerateSql",
    "KeyPress",
    "MouseClick",
    "OpenShell",
    "QueryFailed",
    "QueryPayload",
    "QuerySucceeded",
    "ReturnToPickerRequested",
    "RunQuery",
    "ShellExited",
    "SignalBackend",
    "TerminalResize",
    "Tick",
]
