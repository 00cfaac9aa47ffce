"""Streaming execution and coalescing tests."""

from __future__ import annotations

from functools import partial

import pytest

from aicall.body import Agent, BodyBuilder, TextInteraction
from aicall.capability import Capability
from aicall.executor import CallExecutor
from aicall.models import ModelCapabilities, ModelRegistry
from aicall.providers import MockProvider, ProviderRegistry, StreamingOptions
from aicall.registries import Registries
from aicall.request import CallRequest
from aicall.returns import CallStatus, ErrorKind
from aicall.streaming import (
    coalesce_fragments,
    coalesce_interaction,
    coalesce_text,
    is_terminal,
)
from tests.conftest import FAKE_MODELS
from tests.helpers import StreamingFakeProvider, aiter_of, delta, make_request

pytestmark = pytest.mark.unit


def _streaming_registries(provider: StreamingFakeProvider) -> Registries:
    return Registries(
        providers=ProviderRegistry(provider), models=ModelRegistry(list(FAKE_MODELS))
    )


# =============================================================================
# Termination
# =============================================================================


@pytest.mark.asyncio
async def test_stream_stops_at_first_complete_text() -> None:
    provider = StreamingFakeProvider(
        deltas=[
            partial(delta, text="He"),
            partial(delta, text="Hello"),
            partial(delta, text="Hello world", partial=False, finish_reason="stop"),
            partial(delta, text="never read"),
        ]
    )
    request = make_request(_streaming_registries(provider))

    result = await CallExecutor().execute(request, stream=True)

    assert result.success
    assert result.status is CallStatus.FINISHED
    last = result.body.last_text()
    assert last is not None and last.content == "Hello world"
    assert provider.consumed == 3
    assert provider.closed
    assert provider.calls == 0


@pytest.mark.asyncio
async def test_final_flag_ends_partial_stream() -> None:
    provider = StreamingFakeProvider(
        deltas=[
            partial(delta, text="Hel"),
            partial(delta, text="Hello", final=True, finish_reason="stop"),
            partial(delta, text="never read"),
        ]
    )
    request = make_request(_streaming_registries(provider))

    result = await CallExecutor().execute(request, stream=True)

    assert result.success
    assert provider.consumed == 2
    assert result.body.interactions[-1].content == "Hello"


@pytest.mark.asyncio
async def test_adapter_failure_becomes_provider_error() -> None:
    provider = StreamingFakeProvider(
        deltas=[partial(delta, text="Hel"), RuntimeError("socket closed")]
    )
    request = make_request(_streaming_registries(provider))

    result = await CallExecutor().execute(request, stream=True)

    assert not result.success
    assert result.error_kind is ErrorKind.PROVIDER
    assert result.error_message == "Streaming failed: socket closed"
    assert provider.closed


@pytest.mark.asyncio
async def test_provider_without_adapter_falls_back_to_call(
    registries: Registries, fake_provider
) -> None:
    request = make_request(registries)

    result = await CallExecutor().execute(request, stream=True)

    assert result.success
    assert request.wants_streaming
    assert fake_provider.calls == 1


def test_is_terminal_ignores_blank_and_partial_text() -> None:
    request = make_request(Registries())

    assert not is_terminal(delta(request, "partial"))
    assert not is_terminal(delta(request, "   ", partial=False))
    assert is_terminal(delta(request, "done", partial=False))
    assert is_terminal(delta(request, "", final=True))


# =============================================================================
# Mock provider streaming
# =============================================================================


@pytest.mark.asyncio
async def test_mock_provider_streams_to_the_same_answer() -> None:
    registries = Registries(
        providers=ProviderRegistry(MockProvider()),
        models=ModelRegistry(
            [
                ModelCapabilities(
                    "mock",
                    "echo-1",
                    Capability.TEXT2TEXT | Capability.STREAMING,
                    default_for=Capability.TEXT2TEXT,
                )
            ]
        ),
    )
    body = BodyBuilder.create().add_user("stream this sentence please").build()
    request = CallRequest(
        provider="mock", endpoint="chat", body=body, registries=registries
    )

    result = await CallExecutor().execute(request, stream=True)

    assert result.success
    last = result.body.last_text()
    assert last is not None
    assert last.content == "echo: stream this sentence please"
    assert not last.is_partial
    assert result.metrics is not None
    assert result.metrics.finish_reason == "stop"


@pytest.mark.asyncio
async def test_mock_adapter_yields_partials_before_final() -> None:
    provider = MockProvider(reply="one two three four five six seven eight")
    request = make_request(Registries(), provider="mock")
    options = StreamingOptions(coalesce_tokens=True, preferred_chunk_size=8)

    deltas = [d async for d in provider.streaming_adapter().stream(request, options)]

    assert len(deltas) > 2
    assert all(d.body.interactions[-1].is_partial for d in deltas[:-1])
    assert deltas[-1].is_final
    contents = [d.body.interactions[-1].content for d in deltas]
    assert contents[-1] == "one two three four five six seven eight"
    assert all(contents[-1].startswith(c) for c in contents)


# =============================================================================
# Coalescing
# =============================================================================


@pytest.mark.parametrize(
    ("current", "incoming", "expected"),
    [
        ("", "Hel", "Hel"),
        ("Hel", "Hello", "Hello"),
        ("Hello", "Hel", "Hello"),
        ("Hello", " world", "Hello world"),
        ("Hello", "", "Hello"),
    ],
)
def test_coalesce_text(current: str, incoming: str, expected: str) -> None:
    assert coalesce_text(current, incoming) == expected


def test_coalesce_interaction_merges_content_and_reasoning() -> None:
    first = TextInteraction(Agent.ASSISTANT, "The", reasoning="Think", is_partial=True)
    second = TextInteraction(
        Agent.ASSISTANT, " answer", reasoning="Thinking", is_partial=False
    )

    merged = coalesce_interaction(coalesce_interaction(None, first), second)

    assert merged.content == "The answer"
    assert merged.reasoning == "Thinking"
    assert not merged.is_partial


@pytest.mark.asyncio
async def test_fragments_are_batched_to_chunk_size() -> None:
    options = StreamingOptions(
        coalesce_tokens=True, coalesce_delay_ms=60_000, preferred_chunk_size=5
    )

    fragments = aiter_of(["ab", "cd", "", "ef", "g"])

    chunks = [c async for c in coalesce_fragments(fragments, options)]

    assert chunks == ["abcdef", "g"]


@pytest.mark.asyncio
async def test_fragments_pass_through_when_coalescing_is_off() -> None:
    options = StreamingOptions(coalesce_tokens=False)

    chunks = [c async for c in coalesce_fragments(aiter_of(["a", "", "b"]), options)]

    assert chunks == ["a", "b"]
