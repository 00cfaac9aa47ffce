"""Tool definitions, the tool registry, and tool-call validators."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from fnmatch import fnmatchcase
import logging
from typing import TYPE_CHECKING, Any, Protocol

from aicall.capability import Capability, describe
from aicall.diagnostics import MessageCode, Origin, RuntimeMessage
from aicall.errors import RegistrationError
from aicall.filters import Filter
from aicall.result_primitives import Failure
from aicall.returns import CallReturn
from aicall.schema import parse_schema, validate_instance

if TYPE_CHECKING:
    from aicall.body import ToolCallInteraction
    from aicall.models import ModelRegistry
    from aicall.tool_call import ToolCallRequest

log = logging.getLogger(__name__)

type ToolHandler = Callable[[ToolCallRequest], Awaitable[CallReturn | None]]


@dataclass(frozen=True)
class ToolDefinition:
    """An externally implemented tool the model may invoke."""

    name: str
    description: str
    execute: ToolHandler
    #: JSON Schema (text or mapping) for the call arguments; None skips checks.
    parameters_schema: str | Mapping[str, Any] | None = None
    category: str = "general"
    required_capabilities: Capability = Capability.NONE
    #: ``provider/model`` glob patterns allowed to use the tool; empty allows all.
    allowed_models: tuple[str, ...] = ()

    def allows(self, provider: str, model: str) -> bool:
        if not self.allowed_models:
            return True
        target = f"{provider}/{model}".lower()
        return any(fnmatchcase(target, p.lower()) for p in self.allowed_models)


class ToolRegistry:
    """Explicitly registered tools, keyed by name."""

    def __init__(self, *tools: ToolDefinition) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: ToolDefinition, *, replace: bool = False) -> None:
        if not tool.name.strip():
            raise RegistrationError("Tool registration needs a non-empty name")
        if tool.name in self._tools and not replace:
            raise RegistrationError(
                f"Tool {tool.name!r} is already registered",
                hint="Pass replace=True to swap the existing definition.",
            )
        self._tools[tool.name] = tool

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def get_tools(self, tool_filter: str | None = None) -> list[ToolDefinition]:
        """List tools, optionally narrowed by a filter expression."""
        if tool_filter is None:
            return list(self._tools.values())
        selected = Filter.parse(tool_filter)
        return [t for t in self._tools.values() if selected.should_include(t.name)]

    async def execute_tool(self, tool_call: ToolCallRequest) -> CallReturn | None:
        """Run the tool named by the request's pending call.

        Exceptions raised by the tool propagate; the executor classifies them.
        """
        pending = tool_call.pending_tool_call
        if pending is None:
            return CallReturn.tool_error("No pending tool call to execute", tool_call)
        tool = self.get(pending.name)
        if tool is None:
            return CallReturn.tool_error(
                f"Tool '{pending.name}' is not registered", tool_call
            )
        log.debug("Executing tool %r (call id %s)", tool.name, pending.id)
        return await tool.execute(tool_call)


# =============================================================================
# Validators
# =============================================================================


@dataclass(frozen=True)
class ToolValidationContext:
    tools: ToolRegistry
    models: ModelRegistry
    provider: str = ""
    model: str = ""


class ToolValidator(Protocol):
    def validate(
        self, call: ToolCallInteraction, context: ToolValidationContext
    ) -> list[RuntimeMessage]: ...


def _tool_error(message: str) -> RuntimeMessage:
    return RuntimeMessage.error(Origin.TOOL, message, MessageCode.TOOL_VALIDATION_ERROR)


class ToolExistsValidator:
    """The called tool must be registered."""

    def validate(
        self, call: ToolCallInteraction, context: ToolValidationContext
    ) -> list[RuntimeMessage]:
        if context.tools.get(call.name) is None:
            return [_tool_error(f"Tool '{call.name}' is not registered")]
        return []


class ToolJsonSchemaValidator:
    """Call arguments must satisfy the tool's parameter schema."""

    def validate(
        self, call: ToolCallInteraction, context: ToolValidationContext
    ) -> list[RuntimeMessage]:
        tool = context.tools.get(call.name)
        if tool is None or tool.parameters_schema is None:
            return []
        if call.arguments is None:
            return [_tool_error(f"Arguments for tool '{call.name}' are missing")]

        schema = parse_schema(tool.parameters_schema)
        if isinstance(schema, Failure):
            return [
                _tool_error(
                    f"Tool '{call.name}' has an invalid parameters schema: "
                    f"{schema.error}"
                )
            ]
        outcome = validate_instance(schema.value, dict(call.arguments))
        if isinstance(outcome, Failure):
            return [
                _tool_error(
                    f"Arguments for tool '{call.name}' do not match schema: "
                    f"{outcome.error}"
                )
            ]
        return []


class ToolCapabilityValidator:
    """The selected provider/model must be allowed and capable for the tool.

    Skipped when the call carries no provider or model.
    """

    def validate(
        self, call: ToolCallInteraction, context: ToolValidationContext
    ) -> list[RuntimeMessage]:
        tool = context.tools.get(call.name)
        if tool is None or not context.provider or not context.model:
            return []

        messages: list[RuntimeMessage] = []
        if not tool.allows(context.provider, context.model):
            messages.append(
                _tool_error(
                    f"Tool '{call.name}' is not available for model "
                    f"'{context.model}' on provider '{context.provider}'"
                )
            )
        required = tool.required_capabilities
        if required and not context.models.validate_capabilities(
            context.provider, context.model, required
        ):
            messages.append(
                _tool_error(
                    f"Selected model '{context.model}' on provider "
                    f"'{context.provider}' does not support required capabilities "
                    f"({describe(required)}) for tool '{call.name}'"
                )
            )
        return messages


DEFAULT_TOOL_VALIDATORS: tuple[ToolValidator, ...] = (
    ToolExistsValidator(),
    ToolJsonSchemaValidator(),
    ToolCapabilityValidator(),
)
