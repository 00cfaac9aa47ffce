"""Mock provider for testing."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from aicall.body import (
    Agent,
    Body,
    BodyBuilder,
    Metrics,
    TextInteraction,
    ToolCallInteraction,
    ToolResultInteraction,
)
from aicall.returns import CallReturn, CallStatus
from aicall.streaming import coalesce_fragments, coalesce_interaction

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from aicall.providers.base import StreamingOptions
    from aicall.request import RequestBase


class MockProvider:
    """Mock provider for testing without API calls.

    Echoes the last user message. ``reply`` replaces the echo with a fixed
    answer, which is handy for JSON output tests.
    """

    def __init__(
        self,
        *,
        name: str = "mock",
        reply: str | None = None,
        finish_reason: str = "stop",
    ) -> None:
        self._name = name
        self.reply = reply
        self.finish_reason = finish_reason

    @property
    def name(self) -> str:
        return self._name

    def answer_for(self, request: RequestBase) -> str:
        """Return a deterministic answer for *request*."""
        if self.reply is not None:
            return self.reply
        last = request.body.last_text(Agent.USER)
        text = last.content if last is not None else ""
        return f"echo: {text[:100]}"

    def metrics_for(self, request: RequestBase, answer: str) -> Metrics:
        return Metrics(
            provider=self.name,
            model=request.model,
            finish_reason=self.finish_reason,
            input_tokens_prompt=10,
            output_tokens_generation=max(1, len(answer.split())),
        )

    async def call(self, request: RequestBase) -> CallReturn:
        answer = self.answer_for(request)
        body = (
            BodyBuilder.from_body(request.body)
            .clear_new_markers()
            .add_assistant(answer, metrics=self.metrics_for(request, answer))
            .build()
        )
        return CallReturn.from_body(body, request)

    def encode(self, request: RequestBase) -> str:
        """Render the request as a chat-completions style JSON payload."""
        payload: dict[str, Any] = {
            "model": request.model,
            "messages": [
                message
                for item in request.body.interactions
                if (message := _encode_interaction(item)) is not None
            ],
            "stream": request.wants_streaming,
        }
        if request.provider_schema is not None:
            payload["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "output", "schema": request.provider_schema},
            }
        return json.dumps(payload)

    def decode(self, raw: str) -> Body:
        """Parse ``{"content": ..., "reasoning": ..., "finish_reason": ...}``.

        Raises ``ValueError`` for anything else.
        """
        data = json.loads(raw)
        if not isinstance(data, dict) or not isinstance(data.get("content"), str):
            raise ValueError("expected an object with a string 'content'")
        metrics = Metrics(finish_reason=data.get("finish_reason"))
        return (
            BodyBuilder.create()
            .add_assistant(
                data["content"], reasoning=data.get("reasoning") or "", metrics=metrics
            )
            .build()
        )

    def streaming_adapter(self) -> MockStreamingAdapter:
        return MockStreamingAdapter(self)


class MockStreamingAdapter:
    """Streams the mock answer word by word as partial deltas."""

    def __init__(self, provider: MockProvider) -> None:
        self.provider = provider

    async def stream(
        self, request: RequestBase, options: StreamingOptions
    ) -> AsyncIterator[CallReturn]:
        answer = self.provider.answer_for(request)
        current: TextInteraction | None = None
        text = ""
        async for chunk in coalesce_fragments(_words(answer), options):
            text += chunk
            current = coalesce_interaction(
                current,
                TextInteraction(agent=Agent.ASSISTANT, content=text, is_partial=True),
            )
            yield self._delta(request, current, CallStatus.STREAMING)

        final = TextInteraction(
            agent=Agent.ASSISTANT,
            content=answer,
            metrics=self.provider.metrics_for(request, answer),
        )
        delta = self._delta(request, final, CallStatus.FINISHED)
        delta.is_final = True
        yield delta

    @staticmethod
    def _delta(
        request: RequestBase, interaction: TextInteraction, status: CallStatus
    ) -> CallReturn:
        body = (
            BodyBuilder.from_body(request.body)
            .clear_new_markers()
            .add(interaction)
            .build()
        )
        return CallReturn.from_body(body, request, status=status)


async def _words(text: str) -> AsyncIterator[str]:
    for i, word in enumerate(text.split(" ")):
        yield word if i == 0 else f" {word}"


def _encode_interaction(item: Any) -> dict[str, Any] | None:
    if isinstance(item, ToolCallInteraction):
        return {
            "role": "assistant",
            "tool_calls": [
                {
                    "id": item.id,
                    "type": "function",
                    "function": {
                        "name": item.name,
                        "arguments": json.dumps(dict(item.arguments or {})),
                    },
                }
            ],
        }
    if isinstance(item, ToolResultInteraction):
        return {
            "role": "tool",
            "tool_call_id": item.id,
            "content": json.dumps(item.result, default=str),
        }
    if isinstance(item, TextInteraction) and item.agent is not Agent.ERROR:
        role = "system" if item.agent is Agent.CONTEXT else str(item.agent)
        return {"role": role, "content": item.content}
    return None
