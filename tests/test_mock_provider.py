"""MockProvider wire format tests."""

from __future__ import annotations

import json

import pytest

from aicall.body import Agent, BodyBuilder
from aicall.providers import MockProvider, ProviderRegistry
from aicall.registries import Registries
from tests.helpers import make_request

pytestmark = pytest.mark.unit


@pytest.fixture
def mock_registries() -> Registries:
    return Registries(providers=ProviderRegistry(MockProvider()))


def test_encode_renders_chat_messages(mock_registries: Registries) -> None:
    body = (
        BodyBuilder.create()
        .add_system("Be brief.")
        .add_text(Agent.CONTEXT, "Today is Monday.")
        .add_user("What day is it?")
        .add_text(Agent.ERROR, "internal note")
        .add_tool_call("c1", "calendar", {"tz": "UTC"})
        .add_tool_result({"day": "Monday"}, "c1", "calendar")
        .build()
    )
    request = make_request(
        mock_registries, provider="mock", requested_model="echo-1", body=body
    )

    payload = json.loads(MockProvider().encode(request))

    assert payload["model"] == "echo-1"
    assert payload["stream"] is False
    assert [m["role"] for m in payload["messages"]] == [
        "system",
        "system",
        "user",
        "assistant",
        "tool",
    ]
    call = payload["messages"][3]["tool_calls"][0]
    assert call["function"] == {"name": "calendar", "arguments": '{"tz": "UTC"}'}
    assert json.loads(payload["messages"][4]["content"]) == {"day": "Monday"}
    assert "response_format" not in payload


def test_encode_attaches_provider_schema(mock_registries: Registries) -> None:
    request = make_request(mock_registries, provider="mock")
    request.provider_schema = {"type": "object"}

    payload = json.loads(MockProvider().encode(request))

    assert payload["response_format"]["json_schema"]["schema"] == {"type": "object"}


def test_decode_reads_content_reasoning_and_finish_reason() -> None:
    raw = '{"content": "hi", "reasoning": "greeting", "finish_reason": "stop"}'

    body = MockProvider().decode(raw)

    last = body.last_text()
    assert last is not None
    assert (last.content, last.reasoning) == ("hi", "greeting")
    assert body.metrics.finish_reason == "stop"


@pytest.mark.parametrize("raw", ["[]", '{"content": 3}', "{}"])
def test_decode_rejects_unexpected_payloads(raw: str) -> None:
    with pytest.raises(ValueError):
        MockProvider().decode(raw)


@pytest.mark.asyncio
async def test_call_uses_fixed_reply(mock_registries: Registries) -> None:
    provider = MockProvider(reply='{"ok": true}', finish_reason="length")
    request = make_request(mock_registries, provider="mock")

    result = await provider.call(request)

    assert result.success
    assert [i.content for i in result.body.interactions_new] == ['{"ok": true}']
    assert result.metrics is not None
    assert result.metrics.finish_reason == "length"
    assert result.metrics.provider == "mock"
