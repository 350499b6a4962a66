"""Query execution runner used by the session's result tabs."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Iterable, Protocol

import asyncpg

from .connections import close_quietly, open_connection
from .errors import ExecutionError
from .formatting import format_cell
from .models import ConnectionProfile


class QueryExecutionError(ExecutionError):
    """Raised when a query fails to execute."""


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Render-ready query output: every cell is already display text."""

    columns: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]
    status: str
    elapsed_ms: int
    row_count: int | None = None


class QueryExecutor(Protocol):
    """Interface implemented by query executors."""

    async def execute(self, profile: ConnectionProfile, sql: str) -> QueryResult: ...


class AsyncpgQueryExecutor:
    """Runs SQL statements against PostgreSQL via asyncpg.

    A fresh connection is opened for every execution and closed afterwards,
    so concurrent executions never share a protocol stream.
    """

    def __init__(self, *, connect_timeout: float = 5.0, command_timeout: float | None = 30.0) -> None:
        self._connect_timeout = connect_timeout
        self._command_timeout = command_timeout

    async def execute(self, profile: ConnectionProfile, sql: str) -> QueryResult:
        statement = sql.strip()
        if not statement:
            raise QueryExecutionError("Provide SQL to execute.")
        started = time.perf_counter()
        conn = await open_connection(
            profile,
            connect_timeout=self._connect_timeout,
            command_timeout=self._command_timeout,
        )
        try:
            prepared = await conn.prepare(statement)
            attributes = prepared.get_attributes()
            if attributes:
                records = await prepared.fetch()
                _, rows = records_to_rows(records)
                columns = tuple(attribute.name for attribute in attributes)
                row_count: int | None = len(rows)
                status = f"{row_count} row(s)"
            else:
                status = await conn.execute(statement)
                columns, rows, row_count = (), (), None
        except Exception as exc:
            raise QueryExecutionError(str(exc)) from exc
        finally:
            await close_quietly(conn)
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        return QueryResult(
            columns=columns,
            rows=rows,
            status=status,
            elapsed_ms=elapsed_ms,
            row_count=row_count,
        )


def records_to_rows(
    records: Iterable[asyncpg.Record],
) -> tuple[tuple[str, ...], tuple[tuple[str, ...], ...]]:
    rows: list[tuple[str, ...]] = []
    columns: tuple[str, ...] = ()
    for record in records:
        if not columns:
            columns = tuple(str(key) for key in record.keys())
        rows.append(tuple(format_cell(value) for value in record.values()))
    return columns, tuple(rows)


__all__ = [
    "AsyncpgQueryExecutor",
    "QueryExecutionError",
    "QueryExecutor",
    "QueryResult",
    "records_to_rows",
]
