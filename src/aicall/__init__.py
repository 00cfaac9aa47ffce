"""aicall: provider-agnostic model calls with validation and policies.

Public API:
    - execute(): Run one request through the default executor
    - CallExecutor: Policy pipeline, provider call and tool execution
    - CallRequest / ToolCallRequest: What to call
    - BodyBuilder: Conversation bodies
    - Registries: Injected providers, models, tools, context and schemas
    - Config: Configuration dataclass
"""

from __future__ import annotations

import logging

from aicall.body import Agent, Body, BodyBuilder, Metrics
from aicall.capability import Capability
from aicall.config import Config, resolve_config
from aicall.context import ContextProvider, ContextRegistry
from aicall.diagnostics import MessageCode, Origin, RuntimeMessage, Severity
from aicall.errors import (
    AicallError,
    ConfigurationError,
    InternalError,
    RegistrationError,
    SchemaError,
)
from aicall.executor import CallExecutor
from aicall.models import ModelCapabilities, ModelRegistry
from aicall.providers import MockProvider, Provider, ProviderRegistry
from aicall.registries import Registries
from aicall.request import CallRequest, RequestKind
from aicall.returns import CallReturn, CallStatus, ErrorKind
from aicall.tool_call import ToolCallRequest
from aicall.tools import ToolDefinition, ToolRegistry

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("aicall-core")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("aicall").addHandler(logging.NullHandler())


async def execute(
    request: CallRequest,
    *,
    stream: bool = False,
    config: Config | None = None,
) -> CallReturn:
    """Execute a single request with the default policy pipeline.

    Args:
        request: The request, carrying its provider, model and registries.
        stream: Use the provider's streaming adapter when it has one.
        config: Timeout and streaming settings; defaults to ``Config()``.

    Returns:
        The final ``CallReturn``. Failures are reported through
        ``error_message`` and ``messages``, never raised.

    Example:
        registries = Registries(providers=ProviderRegistry(MockProvider()))
        request = CallRequest(
            provider="mock",
            requested_model="echo-1",
            endpoint="chat",
            body=BodyBuilder.create().add_user("Hello").build(),
            registries=registries,
        )
        result = await execute(request)
        print(result.body.last_text().content)
    """
    return await CallExecutor(config=config).execute(request, stream=stream)


__all__ = [
    "Agent",
    "AicallError",
    "Body",
    "BodyBuilder",
    "CallExecutor",
    "CallRequest",
    "CallReturn",
    "CallStatus",
    "Capability",
    "Config",
    "ConfigurationError",
    "ContextProvider",
    "ContextRegistry",
    "ErrorKind",
    "InternalError",
    "MessageCode",
    "Metrics",
    "MockProvider",
    "ModelCapabilities",
    "ModelRegistry",
    "Origin",
    "Provider",
    "ProviderRegistry",
    "Registries",
    "RegistrationError",
    "RequestKind",
    "RuntimeMessage",
    "SchemaError",
    "Severity",
    "ToolCallRequest",
    "ToolDefinition",
    "ToolRegistry",
    "execute",
    "resolve_config",
]
