"""Shared dataclasses used across the resolver, store and session modules."""

from __future__ import annotations

from dataclasses import dataclass, replace

DEFAULT_PORT = "5432"


@dataclass(frozen=True, slots=True)
class ConnectionProfile:
    """Connection parameters resolved from a named service entry."""

    name: str
    host: str = ""
    port: str = DEFAULT_PORT
    database: str = ""
    user: str = ""
    password: str = ""
    sslmode: str | None = None


@dataclass(frozen=True, slots=True)
class SavedQuery:
    """A named diagnostic statement; no display order means hidden."""

    name: str
    description: str = ""
    sql: str = ""
    display_order: int | None = None

    @property
    def hidden(self) -> bool:
        return self.display_order is None

    def with_order(self, order: int | None) -> SavedQuery:
        return replace(self, display_order=order)


@dataclass(frozen=True, slots=True)
class ActiveProcess:
    """One non-idle backend as reported by pg_stat_activity."""

    pid: int
    username: str = ""
    database: str = ""
    client_address: str = ""
    state: str = ""
    query_start: str = ""
    duration: str = ""
    wait_event: str = ""
    wait_event_type: str = ""
    query: str = ""
    backend_type: str = ""


HOME_QUERY = SavedQuery(
    name="Home",
    description="Connection states and transaction throughput",
    sql=(
        "SELECT state, COUNT(*) AS count FROM pg_stat_activity "
        "WHERE state IS NOT NULL GROUP BY state ORDER BY count DESC"
    ),
)

ACTIVE_QUERY = SavedQuery(
    name="Active",
    description="Non-idle backend processes",
    sql="SELECT * FROM pg_stat_activity WHERE state IS NOT NULL AND state != 'idle'",
)

BUILTIN_QUERIES: tuple[SavedQuery, ...] = (HOME_QUERY, ACTIVE_QUERY)
BUILTIN_NAMES = frozenset(query.name for query in BUILTIN_QUERIES)


def is_builtin(name: str) -> bool:
    """Return True for the synthesized Home and Active tabs."""

    return name in BUILTIN_NAMES


__all__ = [
    "ACTIVE_QUERY",
    "ActiveProcess",
    "BUILTIN_NAMES",
    "BUILTIN_QUERIES",
    "ConnectionProfile",
    "DEFAULT_PORT",
    "HOME_QUERY",
    "SavedQuery",
    "is_builtin",
]
