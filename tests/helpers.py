"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: it exists to prevent test suites from
growing lots of one-off provider subclasses as coverage expands.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from aicall.body import Agent, BodyBuilder, Metrics, TextInteraction
from aicall.request import CallRequest
from aicall.returns import CallReturn, CallStatus
from aicall.tools import ToolDefinition
from tests.conftest import FakeProvider

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable

    from aicall.providers.base import StreamingOptions
    from aicall.registries import Registries
    from aicall.request import RequestBase
    from aicall.tool_call import ToolCallRequest


def make_request(
    registries: Registries, text: str | None = "Hello", **kwargs: Any
) -> CallRequest:
    """A chat request to the fake provider; ``text=None`` leaves the body empty."""
    builder = BodyBuilder.create()
    if text is not None:
        builder.add_user(text)
    kwargs.setdefault("body", builder.build())
    kwargs.setdefault("provider", "fake")
    kwargs.setdefault("endpoint", "chat")
    return CallRequest(registries=registries, **kwargs)


def delta(
    request: RequestBase,
    text: str,
    *,
    partial: bool = True,
    final: bool = False,
    finish_reason: str | None = None,
) -> CallReturn:
    """One cumulative streaming delta carrying *text*."""
    interaction = TextInteraction(
        agent=Agent.ASSISTANT,
        content=text,
        is_partial=partial,
        metrics=Metrics(finish_reason=finish_reason),
    )
    body = BodyBuilder.from_body(request.body).clear_new_markers().add(interaction)
    result = CallReturn.from_body(body.build(), request, status=CallStatus.STREAMING)
    result.is_final = final
    return result


async def aiter_of(items: Iterable[Any]) -> AsyncIterator[Any]:
    for item in items:
        yield item


@dataclass
class StreamingFakeProvider(FakeProvider):
    """FakeProvider with a streaming adapter replaying scripted deltas.

    ``deltas`` holds factories taking the request, so deltas can embed it;
    an exception instance is raised at its position instead.
    """

    deltas: list[Any] = field(default_factory=list)
    consumed: int = 0
    closed: bool = False

    def streaming_adapter(self) -> StreamingFakeProvider:
        return self

    async def stream(
        self, request: RequestBase, options: StreamingOptions
    ) -> AsyncIterator[CallReturn]:
        del options
        try:
            for item in self.deltas:
                if isinstance(item, BaseException):
                    raise item
                self.consumed += 1
                yield item(request)
        finally:
            self.closed = True


@dataclass
class GateTool:
    """Tool handler that blocks until ``release()`` is called."""

    started: asyncio.Event = field(default_factory=asyncio.Event)
    gate: asyncio.Event = field(default_factory=asyncio.Event)
    finished: bool = False

    async def __call__(self, tool_call: ToolCallRequest) -> CallReturn | None:
        self.started.set()
        await self.gate.wait()
        self.finished = True
        return None

    def release(self) -> None:
        self.gate.set()


def answering_tool(name: str, result: Any, **kwargs: Any) -> ToolDefinition:
    """A tool that answers its pending call with *result*."""

    async def handler(tool_call: ToolCallRequest) -> CallReturn:
        call = tool_call.pending_tool_call
        assert call is not None
        body = (
            BodyBuilder.from_body(tool_call.body)
            .add_tool_result(result, call.id, call.name)
            .build()
        )
        return CallReturn.from_body(body, tool_call)

    return ToolDefinition(
        name=name, description=f"{name} test tool", execute=handler, **kwargs
    )


def failing_tool(name: str, exc: BaseException) -> ToolDefinition:
    async def handler(tool_call: ToolCallRequest) -> CallReturn:
        raise exc

    return ToolDefinition(name=name, description="always fails", execute=handler)
