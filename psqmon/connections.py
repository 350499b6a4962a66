"""Connection profile resolution and asyncpg connection helpers."""

from __future__ import annotations

import configparser
import logging
import os
from pathlib import Path
from typing import Protocol

import asyncpg

from .errors import ConfigurationError, DatabaseConnectionError, ProfileNotFoundError
from .models import DEFAULT_PORT, ConnectionProfile

LOG = logging.getLogger(__name__)


class ProfileResolver(Protocol):
    """Interface used by the picker and the CLI to look up profiles."""

    def list_profiles(self) -> list[str]: ...

    def resolve(self, name: str) -> ConnectionProfile: ...


class ServiceFileResolver:
    """Reads profiles from a pg_service.conf style file.

    Sections name the profiles and keep their declaration order. The file is
    re-read on every call so edits made from the picker are picked up.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def list_profiles(self) -> list[str]:
        parser = self._read()
        return parser.sections() if parser is not None else []

    def resolve(self, name: str) -> ConnectionProfile:
        parser = self._read()
        if parser is None or not parser.has_section(name):
            raise ProfileNotFoundError(name)
        section = parser[name]
        return ConnectionProfile(
            name=name,
            host=section.get("host", "").strip(),
            port=section.get("port", "").strip() or DEFAULT_PORT,
            database=section.get("dbname", "").strip(),
            user=section.get("user", "").strip(),
            password=section.get("password", "").strip(),
            sslmode=section.get("sslmode", "").strip() or None,
        )

    def _read(self) -> configparser.ConfigParser | None:
        parser = configparser.ConfigParser(
            interpolation=None,
            strict=False,
            default_section="psqmon:defaults",
            comment_prefixes=("#", ";"),
        )
        try:
            with self._path.open(encoding="utf-8") as handle:
                parser.read_file(handle)
        except FileNotFoundError:
            return None
        except (OSError, configparser.Error) as exc:
            raise ConfigurationError(f"Cannot read {self._path}: {exc}") from exc
        return parser


def connect_kwargs(
    profile: ConnectionProfile,
    *,
    connect_timeout: float,
    command_timeout: float | None = None,
) -> dict[str, object]:
    """Translate a profile into keyword arguments for ``asyncpg.connect``."""

    kwargs: dict[str, object] = {"timeout": connect_timeout}
    if profile.host:
        kwargs["host"] = profile.host
    try:
        kwargs["port"] = int(profile.port or DEFAULT_PORT)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid port '{profile.port}' for profile '{profile.name}'.") from exc
    if profile.user:
        kwargs["user"] = profile.user
    if profile.password:
        kwargs["password"] = profile.password
    if profile.database:
        kwargs["database"] = profile.database
    if profile.sslmode:
        kwargs["ssl"] = profile.sslmode
    if command_timeout is not None:
        kwargs["command_timeout"] = command_timeout
    return kwargs


async def open_connection(
    profile: ConnectionProfile,
    *,
    connect_timeout: float = 5.0,
    command_timeout: float | None = None,
) -> asyncpg.Connection:
    """Open a fresh connection for one unit of work."""

    kwargs = connect_kwargs(profile, connect_timeout=connect_timeout, command_timeout=command_timeout)
    try:
        return await asyncpg.connect(**kwargs)
    except Exception as exc:
        LOG.warning(
            "Connection attempt failed",
            extra={"profile": profile.name, "host": profile.host, "error": str(exc)},
        )
        raise DatabaseConnectionError(f"Cannot connect to '{profile.name}': {exc}") from exc


def psql_invocation(profile: ConnectionProfile, executable: str = "psql") -> tuple[list[str], dict[str, str]]:
    """Command line and environment for handing the terminal to psql."""

    command = [executable]
    for flag, value in (("-h", profile.host), ("-p", profile.port), ("-d", profile.database), ("-U", profile.user)):
        if value:
            command.extend((flag, value))
    env = dict(os.environ)
    if profile.password:
        env["PGPASSWORD"] = profile.password
    return command, env


async def close_quietly(conn: asyncpg.Connection) -> None:
    try:
        await conn.close()
    except Exception:  # pragma: no cover - best effort cleanup
        LOG.debug("Ignoring error while closing connection", exc_info=True)


__all__ = [
    "ProfileResolver",
    "ServiceFileResolver",
    "close_quietly",
    "connect_kwargs",
    "open_connection",
    "psql_invocation",
]
