"""Tests for the effect runner."""

from __future__ import annotations

import pyperclip
import pytest

from psqmon import effects as effects_module
from psqmon.activity import BackendAction, BackendActionError
from psqmon.effects import EffectRunner
from psqmon.errors import DatabaseConnectionError, ExternalServiceError
from psqmon.events import (
    AssistFailed,
    AssistSucceeded,
    BackendActionCompleted,
    ClipboardCompleted,
    CopyText,
    ExitSession,
    GenerateSql,
    QueryFailed,
    QuerySucceeded,
    RunQuery,
    SignalBackend,
)
from psqmon.home import HomeSample
from psqmon.models import ACTIVE_QUERY, HOME_QUERY, ActiveProcess, ConnectionProfile, SavedQuery
from psqmon.query import QueryResult

PROFILE = ConnectionProfile(name="prod")
RESULT = QueryResult(columns=("x",), rows=(("1",),), status="1 row(s)", elapsed_ms=1, row_count=1)
SAMPLE = HomeSample(state_counts=(), commits=0.0, sampled_at=0.0, activity=RESULT)


class _FakeExecutor:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.statements: list[str] = []

    async def execute(self, profile: ConnectionProfile, sql: str) -> QueryResult:
        self.statements.append(sql)
        if self.error:
            raise self.error
        return RESULT


class _FakeActivity:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.signals: list[tuple[int, BackendAction]] = []

    async def fetch_processes(self, profile: ConnectionProfile) -> tuple[ActiveProcess, ...]:
        return (ActiveProcess(pid=7),)

    async def signal(self, profile: ConnectionProfile, pid: int, action: BackendAction) -> None:
        self.signals.append((pid, action))
        if self.error:
            raise self.error


class _FakeHome:
    async def sample(self, profile: ConnectionProfile) -> HomeSample:
        return SAMPLE


class _FakeAssistant:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def generate(self, request: str, current_sql: str = "") -> str:
        self.calls.append((request, current_sql))
        if self.error:
            raise self.error
        return "SELECT 1"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def _runner(**overrides: object) -> EffectRunner:
    parts: dict[str, object] = {
        "executor": _FakeExecutor(),
        "activity": _FakeActivity(),
        "home": _FakeHome(),
        "assistant": _FakeAssistant(),
    }
    parts.update(overrides)
    return EffectRunner(PROFILE, **parts)  # type: ignore[arg-type]


@pytest.mark.anyio
async def test_run_query_routes_builtins_and_saved_queries() -> None:
    executor = _FakeExecutor()
    runner = _runner(executor=executor)

    home = await runner.perform(RunQuery(1, HOME_QUERY))
    active = await runner.perform(RunQuery(2, ACTIVE_QUERY))
    saved = await runner.perform(RunQuery(3, SavedQuery("Locks", sql="SELECT 1", display_order=1)))

    assert home == QuerySucceeded(1, SAMPLE)
    assert active == QuerySucceeded(2, (ActiveProcess(pid=7),))
    assert saved == QuerySucceeded(3, RESULT)
    assert executor.statements == ["SELECT 1"]


@pytest.mark.anyio
async def test_query_errors_become_failure_events() -> None:
    runner = _runner(executor=_FakeExecutor(DatabaseConnectionError("Cannot connect to 'prod': refused")))

    event = await runner.perform(RunQuery(4, SavedQuery("Locks", sql="SELECT 1")))

    assert event == QueryFailed(4, "Cannot connect to 'prod': refused")


@pytest.mark.anyio
async def test_unexpected_errors_are_folded_into_events() -> None:
    runner = _runner(executor=_FakeExecutor(ValueError("bad")))

    event = await runner.perform(RunQuery(5, SavedQuery("Locks", sql="SELECT 1")))

    assert event == QueryFailed(5, "Unexpected error: bad")


@pytest.mark.anyio
async def test_signal_reports_outcome() -> None:
    ok = await _runner().perform(SignalBackend(9, BackendAction.CANCEL))
    failed = await _runner(activity=_FakeActivity(BackendActionError("refused"))).perform(
        SignalBackend(9, BackendAction.TERMINATE)
    )

    assert ok == BackendActionCompleted(9, BackendAction.CANCEL)
    assert failed == BackendActionCompleted(9, BackendAction.TERMINATE, "refused")


@pytest.mark.anyio
async def test_generate_reports_sql_or_failure() -> None:
    assistant = _FakeAssistant()
    ok = await _runner(assistant=assistant).perform(GenerateSql(3, "list locks", "SELECT 0"))
    failed = await _runner(assistant=_FakeAssistant(ExternalServiceError("API error (status 500): x"))).perform(
        GenerateSql(4, "list locks", "")
    )

    assert ok == AssistSucceeded(3, "SELECT 1")
    assert assistant.calls == [("list locks", "SELECT 0")]
    assert failed == AssistFailed(4, "API error (status 500): x")


@pytest.mark.anyio
async def test_copy_uses_system_clipboard(monkeypatch: pytest.MonkeyPatch) -> None:
    copied: list[str] = []
    monkeypatch.setattr(effects_module.pyperclip, "copy", copied.append)

    event = await _runner().perform(CopyText("SELECT 1"))

    assert event == ClipboardCompleted()
    assert copied == ["SELECT 1"]


@pytest.mark.anyio
async def test_copy_falls_back_when_clipboard_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken(text: str) -> None:
        raise pyperclip.PyperclipException("no clipboard mechanism")

    monkeypatch.setattr(effects_module.pyperclip, "copy", broken)
    fallback: list[str] = []

    with_fallback = await _runner(fallback_copy=fallback.append).perform(CopyText("SELECT 1"))
    without = await _runner().perform(CopyText("SELECT 1"))

    assert with_fallback == ClipboardCompleted()
    assert fallback == ["SELECT 1"]
    assert without == ClipboardCompleted("no clipboard mechanism")


@pytest.mark.anyio
async def test_synchronous_effects_produce_no_event() -> None:
    assert await _runner().perform(ExitSession()) is None
