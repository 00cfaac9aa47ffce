"""Tool-call requests: one pending tool invocation, validated before it runs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from aicall.body import Body, BodyBuilder
from aicall.diagnostics import (
    MessageCode,
    Origin,
    RuntimeMessage,
    has_errors,
    merge_messages,
)
from aicall.registries import Registries
from aicall.request import RequestBase
from aicall.tools import DEFAULT_TOOL_VALIDATORS, ToolValidationContext, ToolValidator

if TYPE_CHECKING:
    from aicall.body import ToolCallInteraction


@dataclass(eq=False)
class ToolCallRequest(RequestBase):
    """Request to execute the single pending tool call in ``body``.

    ``provider`` and ``requested_model`` describe the model that asked for the
    call; they are optional and only feed the capability validator.
    """

    validators: tuple[ToolValidator, ...] = DEFAULT_TOOL_VALIDATORS

    @classmethod
    def for_call(
        cls,
        call: ToolCallInteraction,
        *,
        registries: Registries,
        provider: str = "",
        model: str = "",
        timeout_seconds: int = 0,
        body: Body | None = None,
    ) -> ToolCallRequest:
        """Build a request for *call*, by default in a body of its own."""
        return cls(
            provider=provider,
            requested_model=model,
            body=body or BodyBuilder.create().add(call).build(),
            timeout_seconds=timeout_seconds,
            registries=registries,
        )

    @property
    def pending_tool_call(self) -> ToolCallInteraction | None:
        pending = self.body.pending_tool_calls()
        return pending[0] if pending else None

    def is_valid(self) -> tuple[bool, list[RuntimeMessage]]:
        messages = self.base_messages()

        pending = self.body.pending_tool_calls()
        if len(pending) != 1:
            messages.append(
                RuntimeMessage.error(
                    Origin.TOOL,
                    "Body must have exactly one pending tool call",
                    MessageCode.TOOL_VALIDATION_ERROR,
                )
            )
        else:
            context = ToolValidationContext(
                tools=self.registries.tools,
                models=self.registries.models,
                provider=self.provider,
                model=self.model,
            )
            for validator in self.validators:
                messages.extend(validator.validate(pending[0], context))

        merged = merge_messages(messages)
        return not has_errors(merged), merged
