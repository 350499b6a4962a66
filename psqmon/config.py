"""App configuration loading helpers."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import tomllib

from pydantic import BaseModel, Field, ValidationError

LOG = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "psqmon"
CONFIG_FILE = CONFIG_DIR / "config.toml"

OPENAI_CHAT_COMPLETIONS = "https://api.openai.com/v1/chat/completions"


def _default_service_file() -> Path:
    override = os.environ.get("PGSERVICEFILE")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".pg_service.conf"


class RefreshSettings(BaseModel):
    """Auto-refresh cadence and manual refresh throttling."""

    interval_seconds: float = 1.0
    cooldown_ms: int = 500

    @property
    def cooldown_seconds(self) -> float:
        return self.cooldown_ms / 1000


class DatabaseSettings(BaseModel):
    """Timeouts applied to every asyncpg connection."""

    connect_timeout: float = 5.0
    command_timeout: float = 30.0


class AssistSettings(BaseModel):
    """Assisted SQL generation endpoint settings."""

    model: str = "gpt-4o-mini"
    endpoint: str = OPENAI_CHAT_COMPLETIONS
    api_key_env: str = "OPENAI_API_KEY"
    timeout_seconds: float = 30.0

    def api_key(self) -> str | None:
        return os.environ.get(self.api_key_env) or None


class AppConfig(BaseModel):
    """Shape of the application configuration file."""

    active_profile: str | None = None
    service_file: Path = Field(default_factory=_default_service_file)
    query_store: Path = Field(default_factory=lambda: CONFIG_DIR / "queries.db")
    dump_path: Path = Field(default_factory=lambda: CONFIG_DIR / "default_queries.db")
    legacy_queries_dir: Path = Field(default_factory=lambda: CONFIG_DIR / "queries")
    psql_command: str = "psql"
    log_file: Path | None = None
    refresh: RefreshSettings = Field(default_factory=RefreshSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    assist: AssistSettings = Field(default_factory=AssistSettings)

    def with_active_profile(self, name: str) -> AppConfig:
        """Return a copy with the active profile updated."""

        return self.model_copy(update={"active_profile": name})


def load_config() -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        with CONFIG_FILE.open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError:
        return AppConfig()
    except (tomllib.TOMLDecodeError, OSError) as exc:
        LOG.warning("Ignoring unreadable config file", extra={"path": str(CONFIG_FILE), "error": str(exc)})
        return AppConfig()

    try:
        return AppConfig.model_validate(_expand_paths(raw))
    except ValidationError as exc:
        LOG.warning("Ignoring invalid config file", extra={"path": str(CONFIG_FILE), "error": str(exc)})
        return AppConfig()


def save_config(config: AppConfig) -> None:
    """Persist configuration to disk."""

    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = []
    if config.active_profile:
        lines.append(f"active_profile = {_quote(config.active_profile)}")
    lines.append(f"service_file = {_quote(str(config.service_file))}")
    lines.append(f"query_store = {_quote(str(config.query_store))}")
    lines.append(f"dump_path = {_quote(str(config.dump_path))}")
    lines.append(f"legacy_queries_dir = {_quote(str(config.legacy_queries_dir))}")
    lines.append(f"psql_command = {_quote(config.psql_command)}")
    if config.log_file is not None:
        lines.append(f"log_file = {_quote(str(config.log_file))}")
    lines.append("")
    lines.append("[refresh]")
    lines.append(f"interval_seconds = {config.refresh.interval_seconds}")
    lines.append(f"cooldown_ms = {config.refresh.cooldown_ms}")
    lines.append("")
    lines.append("[database]")
    lines.append(f"connect_timeout = {config.database.connect_timeout}")
    lines.append(f"command_timeout = {config.database.command_timeout}")
    lines.append("")
    lines.append("[assist]")
    lines.append(f"model = {_quote(config.assist.model)}")
    lines.append(f"endpoint = {_quote(config.assist.endpoint)}")
    lines.append(f"api_key_env = {_quote(config.assist.api_key_env)}")
    lines.append(f"timeout_seconds = {config.assist.timeout_seconds}")
    CONFIG_FILE.write_text("\n".join(lines) + "\n")


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _expand_paths(raw: dict[str, object]) -> dict[str, object]:
    data = dict(raw)
    for key in ("service_file", "query_store", "dump_path", "legacy_queries_dir", "log_file"):
        value = data.get(key)
        if isinstance(value, str):
            data[key] = Path(value).expanduser()
    return data


__all__ = [
    "AppConfig",
    "AssistSettings",
    "CONFIG_FILE",
    "DatabaseSettings",
    "RefreshSettings",
    "load_config",
    "save_config",
]
