"""Registry bundle handed to requests.

Registries are injected explicitly; nothing in aicall reads process-wide
state. Tests and hosts build one ``Registries`` per configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from aicall.context import ContextRegistry
from aicall.models import ModelRegistry
from aicall.providers.base import ProviderRegistry
from aicall.schema import SchemaAdapterRegistry
from aicall.tools import ToolRegistry


@dataclass(frozen=True)
class Registries:
    providers: ProviderRegistry = field(default_factory=ProviderRegistry)
    models: ModelRegistry = field(default_factory=ModelRegistry)
    tools: ToolRegistry = field(default_factory=ToolRegistry)
    contexts: ContextRegistry = field(default_factory=ContextRegistry)
    schemas: SchemaAdapterRegistry = field(default_factory=SchemaAdapterRegistry)
