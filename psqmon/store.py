"""SQLite-backed store for saved diagnostic queries."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Iterable

from .errors import StorageError
from .models import SavedQuery

LOG = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS queries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    description TEXT NOT NULL DEFAULT '',
    sql TEXT NOT NULL DEFAULT '',
    order_position INTEGER,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_queries_name ON queries(name);
"""

_UPSERT = """
INSERT INTO queries (name, description, sql, order_position, updated_at)
VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP)
ON CONFLICT(name) DO UPDATE SET
    description = excluded.description,
    sql = excluded.sql,
    order_position = excluded.order_position,
    updated_at = CURRENT_TIMESTAMP
"""

_SELECT_VISIBLE = """
SELECT name, description, sql, order_position FROM queries
WHERE order_position IS NOT NULL
ORDER BY order_position, name
"""

_SELECT_ALL = """
SELECT name, description, sql, order_position FROM queries
ORDER BY order_position IS NULL, order_position, name
"""

DEFAULT_QUERIES: tuple[SavedQuery, ...] = (
    SavedQuery(
        name="Lock Information",
        description="Show current locks",
        sql=(
            "SELECT l.pid, l.mode, l.granted, a.usename, a.query FROM pg_locks l "
            "JOIN pg_stat_activity a ON l.pid = a.pid WHERE NOT l.granted ORDER BY l.pid;"
        ),
        display_order=1,
    ),
    SavedQuery(
        name="Replication Lag",
        description="Show replication lag information",
        sql=(
            "SELECT application_name, pg_wal_lsn_diff(sent_lsn, replay_lsn) AS lag_bytes, client_addr, "
            "state, sent_lsn, write_lsn, flush_lsn, replay_lsn FROM pg_stat_replication;"
        ),
        display_order=2,
    ),
    SavedQuery(
        name="Top Queries",
        description="Requires pg_stat_statements; identifies heavy hitters",
        sql=(
            "SELECT LEFT(query, 40) AS query, calls, total_exec_time, mean_exec_time, rows, "
            "shared_blks_hit, shared_blks_read, temp_blks_written FROM pg_stat_statements "
            "ORDER BY total_exec_time DESC LIMIT 25;"
        ),
        display_order=3,
    ),
    SavedQuery(
        name="Index Creation",
        description="Show progress of index creation operations",
        sql=(
            "SELECT p.pid, c.relname AS table_name, ic.relname AS index_name, p.phase, "
            "p.lockers_done || '/' || p.lockers_total AS locks, "
            "p.blocks_done || '/' || p.blocks_total AS blocks, "
            "p.tuples_done || '/' || p.tuples_total AS tuples, "
            "p.partitions_done || '/' || p.partitions_total AS parts "
            "FROM pg_stat_progress_create_index p JOIN pg_class c ON p.relid = c.oid "
            "JOIN pg_class ic ON p.index_relid = ic.oid;"
        ),
        display_order=4,
    ),
    SavedQuery(
        name="Table Replication State",
        description="The state of logical replication for each table in the public schema",
        sql=(
            "SELECT s.subname AS subscription, r.srsubstate AS table_state, "
            "ARRAY_AGG(c.relname ORDER BY c.relname) AS tables FROM pg_class c "
            "JOIN pg_namespace n ON n.oid = c.relnamespace "
            "LEFT JOIN pg_subscription_rel r ON r.srrelid = c.oid "
            "LEFT JOIN pg_subscription s ON s.oid = r.srsubid "
            "WHERE n.nspname = 'public' AND c.relkind IN ('r','p','f') "
            "GROUP BY s.subname, r.srsubstate ORDER BY s.subname, r.srsubstate;"
        ),
        display_order=5,
    ),
    SavedQuery(
        name="Configuration Settings",
        description="All current PostgreSQL configuration settings",
        sql="SELECT name, setting, unit, category, short_desc FROM pg_settings ORDER BY category, name;",
        display_order=6,
    ),
)


class QueryStore:
    """CRUD over saved queries plus snapshot export and import.

    One instance is opened per process and handed to each session; it is
    only ever used from the UI thread.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._conn.row_factory = sqlite3.Row

    @classmethod
    def open(cls, path: Path | str, *, legacy_dir: Path | None = None) -> QueryStore:
        """Open (creating if needed) the store at ``path``.

        An empty store is populated from legacy ``.sql`` files when
        ``legacy_dir`` holds any, otherwise from :data:`DEFAULT_QUERIES`.
        """

        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(str(path))
            conn.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to open query store {path}: {exc}") from exc
        store = cls(conn)
        if store.count() == 0:
            store.seed(legacy_dir=legacy_dir)
        return store

    def close(self) -> None:
        self._conn.close()

    def count(self) -> int:
        try:
            (total,) = self._conn.execute("SELECT COUNT(*) FROM queries").fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to count queries: {exc}") from exc
        return int(total)

    def seed(self, *, legacy_dir: Path | None = None) -> int:
        """Populate an empty store; returns the number of queries written."""

        queries: list[SavedQuery] = []
        if legacy_dir is not None and legacy_dir.is_dir():
            try:
                queries = load_sql_directory(legacy_dir)
            except StorageError as exc:
                LOG.warning("Skipping legacy query migration", extra={"path": str(legacy_dir), "error": str(exc)})
                queries = []
        if not queries:
            queries = list(DEFAULT_QUERIES)
        self._save_many(queries)
        LOG.info("Seeded query store", extra={"count": len(queries)})
        return len(queries)

    def list_queries(self, *, visible_only: bool) -> list[SavedQuery]:
        statement = _SELECT_VISIBLE if visible_only else _SELECT_ALL
        try:
            rows = self._conn.execute(statement).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to load queries: {exc}") from exc
        return [_row_to_query(row) for row in rows]

    def get(self, name: str) -> SavedQuery | None:
        try:
            row = self._conn.execute(
                "SELECT name, description, sql, order_position FROM queries WHERE name = ?",
                (name,),
            ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to load query '{name}': {exc}") from exc
        return _row_to_query(row) if row is not None else None

    def save(self, query: SavedQuery) -> None:
        """Insert or fully replace the query with the same name."""

        self._save_many([query])

    def delete(self, name: str) -> None:
        try:
            with self._conn:
                self._conn.execute("DELETE FROM queries WHERE name = ?", (name,))
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to delete query '{name}': {exc}") from exc

    def export_all(self, path: Path) -> None:
        """Write every record, hidden ones included, to a snapshot file."""

        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.unlink(missing_ok=True)
            target = sqlite3.connect(str(path))
            try:
                self._conn.backup(target)
            finally:
                target.close()
        except (OSError, sqlite3.Error) as exc:
            raise StorageError(f"Failed to export queries to {path}: {exc}") from exc

    def import_all(self, path: Path) -> int:
        """Upsert every record from a snapshot file; returns the record count."""

        path = Path(path)
        if not path.is_file():
            raise StorageError(f"No query snapshot found at {path}")
        try:
            source = sqlite3.connect(str(path))
            source.row_factory = sqlite3.Row
            try:
                columns = {row["name"] for row in source.execute("PRAGMA table_info(queries)")}
                order_column = "order_position" if "order_position" in columns else "NULL AS order_position"
                rows = source.execute(
                    f"SELECT name, description, sql, {order_column} FROM queries"
                ).fetchall()
            finally:
                source.close()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to read query snapshot {path}: {exc}") from exc
        queries = [_row_to_query(row) for row in rows]
        self._save_many(queries)
        return len(queries)

    def _save_many(self, queries: Iterable[SavedQuery]) -> None:
        params = []
        for query in queries:
            name = query.name.strip()
            if not name:
                raise StorageError("Query name must not be empty.")
            params.append((name, query.description, query.sql, query.display_order))
        try:
            with self._conn:
                self._conn.executemany(_UPSERT, params)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to save queries: {exc}") from exc


def parse_sql_file(text: str) -> SavedQuery:
    """Parse the legacy ``-- Title`` / ``-- Description`` / SQL file layout."""

    lines = text.split("\n")
    if len(lines) < 3:
        raise StorageError("Invalid SQL file: expected title, description and query.")
    title = lines[0].strip().removeprefix("--").strip()
    if not title:
        raise StorageError("Invalid SQL file: missing title on the first line.")
    description = lines[1].strip().removeprefix("--").strip()
    if not description:
        raise StorageError("Invalid SQL file: missing description on the second line.")
    body = [line.strip() for line in lines[2:]]
    body = [line for line in body if line and not line.startswith("--")]
    if not body:
        raise StorageError("Invalid SQL file: no SQL content found.")
    return SavedQuery(name=title, description=description, sql=" ".join(body))


def load_sql_directory(directory: Path) -> list[SavedQuery]:
    queries: list[SavedQuery] = []
    for path in sorted(directory.glob("*.sql")):
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Failed to read {path}: {exc}") from exc
        try:
            query = parse_sql_file(text)
        except StorageError as exc:
            raise StorageError(f"{path.name}: {exc}") from exc
        queries.append(query.with_order(len(queries) + 1))
    return queries


def _row_to_query(row: sqlite3.Row) -> SavedQuery:
    order = row["order_position"]
    return SavedQuery(
        name=row["name"],
        description=row["description"] or "",
        sql=row["sql"] or "",
        display_order=int(order) if order is not None else None,
    )


__all__ = ["DEFAULT_QUERIES", "QueryStore", "load_sql_directory", "parse_sql_file"]
