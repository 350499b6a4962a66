"""Process registry for the Active tab.

Fetches non-idle backends, keeps the selection anchored to a PID across
refreshes and drives the list / detail / confirmation sub-state-machine.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

from .connections import close_quietly, open_connection
from .errors import ExecutionError
from .models import ActiveProcess, ConnectionProfile

LOG = logging.getLogger(__name__)

ACTIVITY_SQL = """
    SELECT
        pid,
        COALESCE(usename, '') AS usename,
        COALESCE(datname, '') AS datname,
        COALESCE(client_addr::text, '') AS client_addr,
        COALESCE(state, '') AS state,
        COALESCE(query_start::text, '') AS query_start,
        COALESCE(LEFT((NOW() - query_start)::text, 15), '') AS duration,
        COALESCE(wait_event, '') AS wait_event,
        COALESCE(wait_event_type, '') AS wait_event_type,
        COALESCE(query, '') AS query,
        COALESCE(backend_type, '') AS backend_type
    FROM pg_stat_activity
    WHERE pid != pg_backend_pid()
      AND state IS NOT NULL
      AND state != 'idle'
    ORDER BY query_start ASC NULLS LAST
"""

MIN_PAGE_SIZE = 5
PAGE_CHROME_LINES = 10


class BackendActionError(ExecutionError):
    """Raised when pg_terminate_backend / pg_cancel_backend refuse a PID."""


class BackendAction(str, Enum):
    TERMINATE = "terminate"
    CANCEL = "cancel"

    @property
    def function(self) -> str:
        return f"pg_{self.value}_backend"


class RegistryMode(str, Enum):
    LIST = "list"
    DETAIL = "detail"
    CONFIRM = "confirm"


class ActivityBackend(Protocol):
    async def fetch_processes(self, profile: ConnectionProfile) -> tuple[ActiveProcess, ...]: ...

    async def signal(self, profile: ConnectionProfile, pid: int, action: BackendAction) -> None: ...


class AsyncpgActivityBackend:
    """Reads pg_stat_activity and signals backends through asyncpg."""

    def __init__(self, *, connect_timeout: float = 5.0, command_timeout: float | None = 30.0) -> None:
        self._connect_timeout = connect_timeout
        self._command_timeout = command_timeout

    async def fetch_processes(self, profile: ConnectionProfile) -> tuple[ActiveProcess, ...]:
        conn = await self._connect(profile)
        try:
            records = await conn.fetch(ACTIVITY_SQL)
        except Exception as exc:
            raise ExecutionError(f"Failed to query pg_stat_activity: {exc}") from exc
        finally:
            await close_quietly(conn)
        return tuple(_record_to_process(record) for record in records)

    async def signal(self, profile: ConnectionProfile, pid: int, action: BackendAction) -> None:
        conn = await self._connect(profile)
        try:
            accepted = await conn.fetchval(f"SELECT {action.function}($1)", pid)
        except Exception as exc:
            raise BackendActionError(f"Failed to {action.value} PID {pid}: {exc}") from exc
        finally:
            await close_quietly(conn)
        if not accepted:
            raise BackendActionError(f"{action.function} returned false for PID {pid}")
        LOG.info("Signalled backend", extra={"pid": pid, "action": action.value, "profile": profile.name})

    async def _connect(self, profile: ConnectionProfile):
        return await open_connection(
            profile,
            connect_timeout=self._connect_timeout,
            command_timeout=self._command_timeout,
        )


def _record_to_process(record) -> ActiveProcess:  # type: ignore[no-untyped-def]
    return ActiveProcess(
        pid=int(record["pid"]),
        username=record["usename"],
        database=record["datname"],
        client_address=record["client_addr"],
        state=record["state"],
        query_start=record["query_start"],
        duration=record["duration"],
        wait_event=record["wait_event"],
        wait_event_type=record["wait_event_type"],
        query=record["query"],
        backend_type=record["backend_type"],
    )


def page_size_for(height: int) -> int:
    """Rows of the process list that fit a terminal of ``height`` lines."""

    return max(height - PAGE_CHROME_LINES, MIN_PAGE_SIZE)


class ProcessRegistry:
    """Transient state of the Active tab.

    ``selected_pid`` is the identity anchor: after every refresh the index is
    re-derived from it, never the other way round.
    """

    def __init__(self, *, page_size: int = MIN_PAGE_SIZE) -> None:
        self.processes: tuple[ActiveProcess, ...] = ()
        self.selected_index = 0
        self.selected_pid = 0
        self.mode = RegistryMode.LIST
        self.detail: ActiveProcess | None = None
        self.detail_live = True
        self.pending_action: BackendAction | None = None
        self.action_in_flight = False
        self.last_error: str | None = None
        self.copy_status: str | None = None
        self.scroll_offset = 0
        self.page_size = page_size
        self.loaded = False
        self._error_from_fetch = False

    @property
    def selected(self) -> ActiveProcess | None:
        if 0 <= self.selected_index < len(self.processes):
            return self.processes[self.selected_index]
        return None

    def update_selection(self, processes: tuple[ActiveProcess, ...]) -> None:
        """Apply a fresh fetch, keeping the selection on the same PID."""

        self.processes = tuple(processes)
        self.loaded = True
        if self._error_from_fetch:
            self.last_error = None
            self._error_from_fetch = False

        if self.detail is not None:
            live = next((proc for proc in self.processes if proc.pid == self.detail.pid), None)
            if live is None:
                self.detail_live = False
            else:
                self.detail = live
                self.detail_live = True

        if not self.processes:
            self.selected_index = 0
            self.scroll_offset = 0
            return

        if self.selected_pid:
            for index, proc in enumerate(self.processes):
                if proc.pid == self.selected_pid:
                    self.selected_index = index
                    break
            else:
                self.selected_index = min(self.selected_index, len(self.processes) - 1)
                self.selected_pid = self.processes[self.selected_index].pid
        else:
            self.selected_index = min(self.selected_index, len(self.processes) - 1)
            self.selected_pid = self.processes[self.selected_index].pid
        self._ensure_visible()

    def fetch_failed(self, reason: str) -> None:
        self.last_error = reason
        self._error_from_fetch = True

    def set_page_size(self, page_size: int) -> None:
        self.page_size = max(page_size, 1)
        self._ensure_visible()

    def move(self, delta: int) -> None:
        if not self.processes:
            return
        index = max(0, min(self.selected_index + delta, len(self.processes) - 1))
        self.selected_index = index
        self.selected_pid = self.processes[index].pid
        self._ensure_visible()

    def open_detail(self) -> bool:
        process = self.selected
        if process is None:
            return False
        self.detail = process
        self.detail_live = True
        self.copy_status = None
        self.mode = RegistryMode.DETAIL
        return True

    def close_detail(self) -> None:
        self.detail = None
        self.detail_live = True
        self.copy_status = None
        self.mode = RegistryMode.LIST

    def request_action(self, action: BackendAction) -> bool:
        """Move to confirmation for the pinned or selected process."""

        if self.mode is RegistryMode.DETAIL:
            if self.detail is None or not self.detail_live:
                return False
            target = self.detail
        else:
            target = self.selected
            if target is None:
                return False
            self.detail = target
            self.detail_live = True
        self.pending_action = action
        self.last_error = None
        self._error_from_fetch = False
        self.mode = RegistryMode.CONFIRM
        return True

    def confirm(self) -> tuple[int, BackendAction] | None:
        """Return the action to fire, or None if nothing is awaiting a yes."""

        if self.mode is not RegistryMode.CONFIRM or self.action_in_flight:
            return None
        if self.detail is None or self.pending_action is None:
            return None
        self.action_in_flight = True
        return self.detail.pid, self.pending_action

    def dismiss(self) -> None:
        self.pending_action = None
        self.action_in_flight = False
        self.close_detail()

    def action_completed(self, pid: int, action: BackendAction, error: str | None) -> bool:
        """Apply the outcome of the confirmed action; False if none was in flight."""

        if not self.action_in_flight:
            LOG.debug("Ignoring completion with no action in flight", extra={"pid": pid, "action": action.value})
            return False
        if error:
            self.last_error = error
            self._error_from_fetch = False
            LOG.warning("Backend action failed", extra={"pid": pid, "action": action.value, "error": error})
        self.dismiss()
        return True

    def copy_target(self) -> str | None:
        if self.mode is not RegistryMode.DETAIL or self.detail is None:
            return None
        return self.detail.query

    def copy_completed(self, error: str | None) -> None:
        self.copy_status = f"Copy failed: {error}" if error else "Copied!"

    def visible_window(self) -> tuple[int, int]:
        """Return the ``[start, end)`` slice of processes on screen."""

        end = min(self.scroll_offset + self.page_size, len(self.processes))
        return self.scroll_offset, end

    def _ensure_visible(self) -> None:
        if self.selected_index < self.scroll_offset:
            self.scroll_offset = self.selected_index
        elif self.selected_index >= self.scroll_offset + self.page_size:
            self.scroll_offset = self.selected_index - self.page_size + 1
        max_offset = max(len(self.processes) - self.page_size, 0)
        self.scroll_offset = max(0, min(self.scroll_offset, max_offset))


__all__ = [
    "ACTIVITY_SQL",
    "ActivityBackend",
    "AsyncpgActivityBackend",
    "BackendAction",
    "BackendActionError",
    "ProcessRegistry",
    "RegistryMode",
    "page_size_for",
]
