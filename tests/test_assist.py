"""Tests for assisted SQL generation."""

from __future__ import annotations

import json

import httpx
import pytest

from psqmon.assist import AssistNotConfiguredError, SqlAssistant, build_prompt, strip_code_fences
from psqmon.errors import ExternalServiceError


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def _assistant(handler, *, api_key: str | None = "sk-test") -> SqlAssistant:  # type: ignore[no-untyped-def]
    return SqlAssistant(
        api_key=api_key,
        model="gpt-test",
        endpoint="https://llm.example/v1/chat/completions",
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


def _completion(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


def test_build_prompt_for_new_query() -> None:
    prompt = build_prompt("  show table sizes ")

    assert prompt.startswith("Generate a PostgreSQL query for the following request: show table sizes")


def test_build_prompt_includes_current_sql() -> None:
    prompt = build_prompt("add a where clause for active state", "SELECT * FROM pg_stat_activity")

    assert prompt.startswith("Modify the following PostgreSQL query based on this request:")
    assert "Current query:\nSELECT * FROM pg_stat_activity" in prompt


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("```sql\nSELECT 1;\n```", "SELECT 1;"),
        ("```\nSELECT 1;\n```", "SELECT 1;"),
        ("  SELECT 1;  ", "SELECT 1;"),
    ],
)
def test_strip_code_fences(text: str, expected: str) -> None:
    assert strip_code_fences(text) == expected


@pytest.mark.anyio
async def test_generate_modifies_current_query() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return _completion("```sql\nSELECT * FROM pg_stat_activity WHERE state = 'active'\n```")

    sql = await _assistant(handler).generate(
        "add a where clause for active state",
        "SELECT * FROM pg_stat_activity",
    )

    assert sql == "SELECT * FROM pg_stat_activity WHERE state = 'active'"
    assert seen["auth"] == "Bearer sk-test"
    body = seen["body"]
    assert isinstance(body, dict)
    assert body["model"] == "gpt-test"
    assert "SELECT * FROM pg_stat_activity" in body["messages"][-1]["content"]


@pytest.mark.anyio
async def test_generate_without_key_is_not_configured() -> None:
    assistant = _assistant(lambda request: _completion("SELECT 1"), api_key=None)

    assert not assistant.configured
    with pytest.raises(AssistNotConfiguredError, match="OPENAI_API_KEY environment variable not set"):
        await assistant.generate("anything")


@pytest.mark.anyio
async def test_generate_reports_api_errors() -> None:
    assistant = _assistant(lambda request: httpx.Response(401, text="invalid key"))

    with pytest.raises(ExternalServiceError, match=r"API error \(status 401\): invalid key"):
        await assistant.generate("anything")


@pytest.mark.anyio
async def test_generate_reports_timeouts() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    with pytest.raises(ExternalServiceError, match="Request timed out after 5s"):
        await _assistant(handler).generate("anything")


@pytest.mark.anyio
async def test_generate_rejects_empty_choices() -> None:
    assistant = _assistant(lambda request: httpx.Response(200, json={"choices": []}))

    with pytest.raises(ExternalServiceError, match="No response from the assistant"):
        await assistant.generate("anything")
