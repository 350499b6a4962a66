"""Natural-language to SQL generation through a chat completions API."""

from __future__ import annotations

import logging

import httpx

from .errors import ConfigurationError, ExternalServiceError

LOG = logging.getLogger(__name__)

_GUIDANCE = (
    "Return only the SQL statement, without explanation or markdown. "
    "Use pg_size_pretty() for sizes, left() to keep long text columns short, "
    "and explicit joins against the pg_catalog views where useful."
)


class AssistNotConfiguredError(ConfigurationError):
    """No API credential is available for assisted generation."""


def build_prompt(request: str, current_sql: str = "") -> str:
    """Compose the user message for a new or revised statement."""

    request = request.strip()
    current_sql = current_sql.strip()
    if current_sql:
        return (
            f"Modify the following PostgreSQL query based on this request: {request}\n\n"
            f"Current query:\n{current_sql}\n\n{_GUIDANCE}"
        )
    return f"Generate a PostgreSQL query for the following request: {request}\n\n{_GUIDANCE}"


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```sql ... ``` block, if any."""

    cleaned = text.strip()
    if cleaned.startswith("```sql"):
        cleaned = cleaned[len("```sql"):]
    elif cleaned.startswith("```"):
        cleaned = cleaned[len("```"):]
    if cleaned.endswith("```"):
        cleaned = cleaned[: -len("```")]
    return cleaned.strip()


class SqlAssistant:
    """Client for the chat completions endpoint."""

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str = "gpt-4o-mini",
        endpoint: str = "https://api.openai.com/v1/chat/completions",
        timeout: float = 30.0,
        api_key_env: str = "OPENAI_API_KEY",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_key_env = api_key_env
        self._model = model
        self._endpoint = endpoint
        self._timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def generate(self, request: str, current_sql: str = "") -> str:
        if not self._api_key:
            raise AssistNotConfiguredError(f"{self._api_key_env} environment variable not set")
        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": "You are a PostgreSQL expert who writes monitoring queries."},
                {"role": "user", "content": build_prompt(request, current_sql)},
            ],
            "temperature": 0.2,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._endpoint, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise ExternalServiceError(f"Request timed out after {self._timeout:g}s") from exc
        except httpx.HTTPError as exc:
            raise ExternalServiceError(f"Request failed: {exc}") from exc

        if response.status_code != httpx.codes.OK:
            LOG.warning("Assist request rejected", extra={"status": response.status_code})
            raise ExternalServiceError(f"API error (status {response.status_code}): {response.text}")
        try:
            body = response.json()
            content = body["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ExternalServiceError("No response from the assistant") from exc
        sql = strip_code_fences(content or "")
        if not sql:
            raise ExternalServiceError("No response from the assistant")
        return sql


__all__ = ["AssistNotConfiguredError", "SqlAssistant", "build_prompt", "strip_code_fences"]
