"""Home dashboard sampling: connection states and transaction throughput."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
import time

from .connections import close_quietly, open_connection
from .errors import ExecutionError
from .models import HOME_QUERY, ConnectionProfile
from .query import QueryResult, records_to_rows

HISTORY_POINTS = 60

COMMITS_SQL = "SELECT COALESCE(SUM(xact_commit), 0)::float8 FROM pg_stat_database"

ACTIVITY_TABLE_SQL = """
    SELECT pid, LEFT(query, 50) AS query, LEFT(usename, 8) AS name, LEFT(state, 10) AS state,
           LEFT((NOW() - query_start)::text, 8) AS age, wait_event_type
    FROM pg_stat_activity
    WHERE state IS NOT NULL AND state != 'idle'
    ORDER BY NOW() - query_start DESC
"""


@dataclass(frozen=True, slots=True)
class HomeSample:
    """One poll of the dashboard queries."""

    state_counts: tuple[tuple[str, int], ...]
    commits: float
    sampled_at: float
    activity: QueryResult


class HomeHistory:
    """Turns successive commit counters into a transactions/sec series."""

    def __init__(self, max_points: int = HISTORY_POINTS) -> None:
        self.rates: deque[float] = deque(maxlen=max_points)
        self.latest: HomeSample | None = None
        self._previous: HomeSample | None = None

    def add(self, sample: HomeSample) -> None:
        previous = self._previous
        if previous is not None:
            elapsed = sample.sampled_at - previous.sampled_at
            if elapsed > 0:
                delta = max(sample.commits - previous.commits, 0.0)
                self.rates.append(delta / elapsed)
        self._previous = sample
        self.latest = sample

    @property
    def current_rate(self) -> float | None:
        return self.rates[-1] if self.rates else None


class HomeSampler:
    """Collects a :class:`HomeSample` over a single connection."""

    def __init__(self, *, connect_timeout: float = 5.0, command_timeout: float | None = 30.0) -> None:
        self._connect_timeout = connect_timeout
        self._command_timeout = command_timeout

    async def sample(self, profile: ConnectionProfile) -> HomeSample:
        started = time.perf_counter()
        conn = await open_connection(
            profile,
            connect_timeout=self._connect_timeout,
            command_timeout=self._command_timeout,
        )
        try:
            states = await conn.fetch(HOME_QUERY.sql)
            commits = await conn.fetchval(COMMITS_SQL)
            activity = await conn.fetch(ACTIVITY_TABLE_SQL)
        except Exception as exc:
            raise ExecutionError(f"Failed to sample dashboard: {exc}") from exc
        finally:
            await close_quietly(conn)
        columns, rows = records_to_rows(activity)
        return HomeSample(
            state_counts=tuple((str(record["state"]), int(record["count"])) for record in states),
            commits=float(commits or 0.0),
            sampled_at=time.monotonic(),
            activity=QueryResult(
                columns=columns,
                rows=rows,
                status=f"{len(rows)} row(s)",
                elapsed_ms=int((time.perf_counter() - started) * 1000),
                row_count=len(rows),
            ),
        )


__all__ = ["HISTORY_POINTS", "HomeHistory", "HomeSample", "HomeSampler"]
