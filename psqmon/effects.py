"""Performs controller effects and converts their outcomes into events."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

import pyperclip

from .activity import ActivityBackend
from .assist import SqlAssistant
from .errors import PsqmonError
from .events import (
    AssistFailed,
    AssistSucceeded,
    BackendActionCompleted,
    ClipboardCompleted,
    CopyText,
    Effect,
    Event,
    GenerateSql,
    QueryFailed,
    QueryPayload,
    QuerySucceeded,
    RunQuery,
    SignalBackend,
)
from .home import HomeSampler
from .models import ACTIVE_QUERY, HOME_QUERY, ConnectionProfile, SavedQuery
from .query import QueryExecutor

LOG = logging.getLogger(__name__)


class EffectRunner:
    """Runs one effect to completion and reports exactly one event.

    Every failure is folded into the returned event, so a caller awaiting
    :meth:`perform` never sees an exception from the work itself.
    """

    def __init__(
        self,
        profile: ConnectionProfile,
        *,
        executor: QueryExecutor,
        activity: ActivityBackend,
        home: HomeSampler,
        assistant: SqlAssistant,
        fallback_copy: Callable[[str], None] | None = None,
    ) -> None:
        self._profile = profile
        self._executor = executor
        self._activity = activity
        self._home = home
        self._assistant = assistant
        self._fallback_copy = fallback_copy

    async def perform(self, effect: Effect) -> Event | None:
        if isinstance(effect, RunQuery):
            return await self._run_query(effect)
        if isinstance(effect, SignalBackend):
            return await self._signal(effect)
        if isinstance(effect, CopyText):
            return await self._copy(effect)
        if isinstance(effect, GenerateSql):
            return await self._generate(effect)
        LOG.debug("Effect is not asynchronous", extra={"effect": type(effect).__name__})
        return None

    async def fetch(self, query: SavedQuery) -> QueryPayload:
        """Run the work behind one tab: dashboard, process list or plain SQL."""

        if query.name == HOME_QUERY.name:
            return await self._home.sample(self._profile)
        if query.name == ACTIVE_QUERY.name:
            return await self._activity.fetch_processes(self._profile)
        return await self._executor.execute(self._profile, query.sql)

    async def _run_query(self, effect: RunQuery) -> Event:
        try:
            payload = await self.fetch(effect.query)
        except PsqmonError as exc:
            LOG.warning(
                "Query failed",
                extra={"query": effect.query.name, "profile": self._profile.name, "error": str(exc)},
            )
            return QueryFailed(effect.generation, str(exc))
        except Exception as exc:
            LOG.exception("Unexpected error running query", extra={"query": effect.query.name})
            return QueryFailed(effect.generation, f"Unexpected error: {exc}")
        return QuerySucceeded(effect.generation, payload)

    async def _signal(self, effect: SignalBackend) -> Event:
        try:
            await self._activity.signal(self._profile, effect.pid, effect.action)
        except PsqmonError as exc:
            return BackendActionCompleted(effect.pid, effect.action, str(exc))
        except Exception as exc:
            LOG.exception("Unexpected error signalling backend", extra={"pid": effect.pid})
            return BackendActionCompleted(effect.pid, effect.action, f"Unexpected error: {exc}")
        return BackendActionCompleted(effect.pid, effect.action)

    async def _copy(self, effect: CopyText) -> Event:
        try:
            await asyncio.to_thread(pyperclip.copy, effect.text)
        except pyperclip.PyperclipException as exc:
            if self._fallback_copy is None:
                return ClipboardCompleted(str(exc))
            LOG.debug("System clipboard unavailable, using terminal clipboard", extra={"error": str(exc)})
            self._fallback_copy(effect.text)
        return ClipboardCompleted()

    async def _generate(self, effect: GenerateSql) -> Event:
        try:
            sql = await self._assistant.generate(effect.prompt, effect.current_sql)
        except PsqmonError as exc:
            LOG.warning("Assisted generation failed", extra={"error": str(exc)})
            return AssistFailed(effect.request_id, str(exc))
        except Exception as exc:
            LOG.exception("Unexpected error during assisted generation")
            return AssistFailed(effect.request_id, f"Unexpected error: {exc}")
        return AssistSucceeded(effect.request_id, sql)


__all__ = ["EffectRunner"]
