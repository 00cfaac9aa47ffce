"""Conversation bodies: immutable interaction sequences plus their builder.

A ``Body`` is never edited in place. ``BodyBuilder`` copies a body, applies
changes and produces a new one, so a body that was handed to a provider or
stored on a return cannot change under its holder.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import StrEnum
from functools import reduce
import json
from typing import Any, Self

from pydantic import BaseModel

from aicall.diagnostics import RuntimeMessage
from aicall.errors import InternalError

#: Filter value that selects nothing; the meaning of an unset filter.
NO_SELECTION = "-*"

type SchemaInput = str | Mapping[str, Any] | type[BaseModel]


class Agent(StrEnum):
    """Who produced an interaction."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool_result"
    #: Injected context; providers render it ahead of the conversation.
    CONTEXT = "context"
    #: Diagnostic note; providers skip it when encoding.
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class Metrics:
    """Usage and completion data for one interaction or a whole body."""

    provider: str | None = None
    model: str | None = None
    finish_reason: str | None = None
    #: Seconds from request start to completion.
    completion_time: float = 0.0
    input_tokens_prompt: int = 0
    input_tokens_cached: int = 0
    output_tokens_reasoning: int = 0
    output_tokens_generation: int = 0

    @property
    def input_tokens(self) -> int:
        return self.input_tokens_prompt + self.input_tokens_cached

    @property
    def output_tokens(self) -> int:
        return self.output_tokens_reasoning + self.output_tokens_generation

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def combine(self, other: Metrics) -> Metrics:
        """Add *other*'s counters; its identifying fields win when set."""
        return Metrics(
            provider=other.provider or self.provider,
            model=other.model or self.model,
            finish_reason=other.finish_reason or self.finish_reason,
            completion_time=self.completion_time + other.completion_time,
            input_tokens_prompt=self.input_tokens_prompt + other.input_tokens_prompt,
            input_tokens_cached=self.input_tokens_cached + other.input_tokens_cached,
            output_tokens_reasoning=(
                self.output_tokens_reasoning + other.output_tokens_reasoning
            ),
            output_tokens_generation=(
                self.output_tokens_generation + other.output_tokens_generation
            ),
        )


@dataclass(frozen=True, slots=True)
class TextInteraction:
    """Plain text turn, optionally with model reasoning."""

    agent: Agent
    content: str = ""
    reasoning: str = ""
    #: True while a streamed turn is still being produced.
    is_partial: bool = False
    metrics: Metrics = field(default_factory=Metrics)


@dataclass(frozen=True, slots=True)
class ToolCallInteraction:
    """A model's request to invoke a tool."""

    id: str
    name: str
    arguments: Mapping[str, Any] | None = None
    agent: Agent = Agent.ASSISTANT
    metrics: Metrics = field(default_factory=Metrics)


@dataclass(frozen=True, slots=True)
class ToolResultInteraction:
    """The outcome of a tool invocation, matched to its call by ``id``."""

    id: str
    name: str
    result: Any = None
    messages: tuple[RuntimeMessage, ...] = ()
    agent: Agent = Agent.TOOL_RESULT
    metrics: Metrics = field(default_factory=Metrics)


@dataclass(frozen=True, slots=True)
class ErrorInteraction:
    """An error note recorded in the conversation."""

    content: str
    agent: Agent = Agent.ERROR
    metrics: Metrics = field(default_factory=Metrics)


type Interaction = (
    TextInteraction | ToolCallInteraction | ToolResultInteraction | ErrorInteraction
)


@dataclass(frozen=True, slots=True)
class Body:
    """Immutable conversation body.

    ``None`` filters mean "not set" and resolve to ``"-*"`` (select nothing)
    through the ``effective_*`` properties.
    """

    interactions: tuple[Interaction, ...] = ()
    tool_filter: str | None = None
    context_filter: str | None = None
    #: JSON Schema text the final assistant answer must satisfy.
    json_output_schema: str | None = None
    #: Positions of interactions produced by the step that built this body.
    new_indices: frozenset[int] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not self.interactions

    @property
    def requires_json_output(self) -> bool:
        return bool(self.json_output_schema and self.json_output_schema.strip())

    @property
    def effective_tool_filter(self) -> str:
        return self.tool_filter or NO_SELECTION

    @property
    def effective_context_filter(self) -> str:
        return self.context_filter or NO_SELECTION

    @property
    def interactions_new(self) -> tuple[Interaction, ...]:
        return tuple(
            item for i, item in enumerate(self.interactions) if i in self.new_indices
        )

    @property
    def metrics(self) -> Metrics:
        """Aggregate of every interaction's metrics."""
        return reduce(
            lambda acc, item: acc.combine(item.metrics), self.interactions, Metrics()
        )

    @property
    def messages(self) -> list[RuntimeMessage]:
        """Runtime messages carried by tool results in this body."""
        return [
            msg
            for item in self.interactions
            if isinstance(item, ToolResultInteraction)
            for msg in item.messages
        ]

    def pending_tool_calls(self) -> list[ToolCallInteraction]:
        """Tool calls with no tool result of the same id."""
        answered = {
            item.id
            for item in self.interactions
            if isinstance(item, ToolResultInteraction)
        }
        return [
            item
            for item in self.interactions
            if isinstance(item, ToolCallInteraction) and item.id not in answered
        ]

    def last(self, agent: Agent | None = None) -> Interaction | None:
        """Return the last interaction, optionally restricted to *agent*."""
        for item in reversed(self.interactions):
            if agent is None or item.agent is agent:
                return item
        return None

    def last_text(self, agent: Agent = Agent.ASSISTANT) -> TextInteraction | None:
        """Return the last non-empty text interaction from *agent*."""
        for item in reversed(self.interactions):
            if (
                isinstance(item, TextInteraction)
                and item.agent is agent
                and item.content.strip()
            ):
                return item
        return None


EMPTY_BODY = Body()


def schema_to_text(schema: SchemaInput | None) -> str | None:
    """Serialize a schema given as text, a mapping or a Pydantic model class."""
    if schema is None:
        return None
    if isinstance(schema, str):
        return schema if schema.strip() else None
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        return json.dumps(schema.model_json_schema())
    return json.dumps(dict(schema))


class BodyBuilder:
    """Copy-on-write editor for ``Body``.

    Interactions added through the builder are marked new unless
    ``mark_new=False`` is passed; copied interactions keep their marker.
    Every mutator returns the builder so calls can be chained.
    """

    def __init__(self, body: Body | None = None) -> None:
        source = body or EMPTY_BODY
        self._items: list[tuple[Interaction, bool]] = [
            (item, i in source.new_indices)
            for i, item in enumerate(source.interactions)
        ]
        self._tool_filter = source.tool_filter
        self._context_filter = source.context_filter
        self._json_output_schema = source.json_output_schema

    @classmethod
    def create(cls) -> Self:
        return cls()

    @classmethod
    def from_body(cls, body: Body) -> Self:
        return cls(body)

    # --- Filters and schema ---

    def with_tool_filter(self, tool_filter: str | None) -> Self:
        self._tool_filter = tool_filter if tool_filter and tool_filter.strip() else None
        return self

    def with_context_filter(self, context_filter: str | None) -> Self:
        self._context_filter = (
            context_filter if context_filter and context_filter.strip() else None
        )
        return self

    def with_json_output_schema(self, schema: SchemaInput | None) -> Self:
        self._json_output_schema = schema_to_text(schema)
        return self

    # --- Adding interactions ---

    def add(self, interaction: Interaction, *, mark_new: bool = True) -> Self:
        self._items.append((interaction, mark_new))
        return self

    def add_text(
        self,
        agent: Agent,
        content: str,
        *,
        reasoning: str = "",
        metrics: Metrics | None = None,
    ) -> Self:
        return self.add(
            TextInteraction(
                agent=agent,
                content=content,
                reasoning=reasoning,
                metrics=metrics or Metrics(),
            )
        )

    def add_user(self, content: str) -> Self:
        return self.add_text(Agent.USER, content)

    def add_system(self, content: str) -> Self:
        return self.add_text(Agent.SYSTEM, content)

    def add_assistant(
        self, content: str, *, reasoning: str = "", metrics: Metrics | None = None
    ) -> Self:
        return self.add_text(
            Agent.ASSISTANT, content, reasoning=reasoning, metrics=metrics
        )

    def add_tool_call(
        self, id: str, name: str, arguments: Mapping[str, Any] | None = None
    ) -> Self:
        return self.add(ToolCallInteraction(id=id, name=name, arguments=arguments))

    def add_tool_result(
        self,
        result: Any,
        id: str,
        name: str,
        messages: Iterable[RuntimeMessage] = (),
    ) -> Self:
        return self.add(
            ToolResultInteraction(
                id=id, name=name, result=result, messages=tuple(messages)
            )
        )

    def add_error(self, content: str) -> Self:
        return self.add(ErrorInteraction(content=content))

    def prepend(self, interaction: Interaction, *, mark_new: bool = True) -> Self:
        self._items.insert(0, (interaction, mark_new))
        return self

    # --- Editing ---

    def replace_last(self, interaction: Interaction) -> Self:
        """Swap the last interaction, keeping its new-marker."""
        if not self._items:
            raise InternalError("Cannot replace the last interaction of an empty body")
        _, is_new = self._items[-1]
        self._items[-1] = (interaction, is_new)
        return self

    def replace_at(self, index: int, interaction: Interaction) -> Self:
        _, is_new = self._items[index]
        self._items[index] = (interaction, is_new)
        return self

    def remove_agent(self, agent: Agent) -> Self:
        self._items = [
            (item, new) for item, new in self._items if item.agent is not agent
        ]
        return self

    def stamp_metrics(self, *, provider: str | None, model: str | None) -> Self:
        """Fill in missing provider/model on every interaction's metrics."""
        stamped: list[tuple[Interaction, bool]] = []
        for item, is_new in self._items:
            metrics = replace(
                item.metrics,
                provider=item.metrics.provider or provider,
                model=item.metrics.model or model,
            )
            stamped.append((replace(item, metrics=metrics), is_new))
        self._items = stamped
        return self

    def clear_new_markers(self) -> Self:
        self._items = [(item, False) for item, _ in self._items]
        return self

    def build(self) -> Body:
        return Body(
            interactions=tuple(item for item, _ in self._items),
            tool_filter=self._tool_filter,
            context_filter=self._context_filter,
            json_output_schema=self._json_output_schema,
            new_indices=frozenset(i for i, (_, new) in enumerate(self._items) if new),
        )
