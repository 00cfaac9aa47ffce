"""Context providers: key/value facts injected ahead of a conversation."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Protocol, runtime_checkable

from aicall.errors import RegistrationError
from aicall.filters import Filter

log = logging.getLogger(__name__)


@runtime_checkable
class ContextProvider(Protocol):
    """Supplies named context values (time, environment, document state...)."""

    @property
    def provider_id(self) -> str: ...

    def get_context(self) -> Mapping[str, str]: ...


class ContextRegistry:
    """Explicitly registered context providers."""

    def __init__(self, *providers: ContextProvider) -> None:
        self._providers: dict[str, ContextProvider] = {}
        for provider in providers:
            self.register(provider)

    def register(self, provider: ContextProvider) -> None:
        if not provider.provider_id.strip():
            raise RegistrationError(
                "Context provider needs a non-empty provider_id",
                hint="The id is what context filters select, e.g. 'time'.",
            )
        self._providers[provider.provider_id] = provider

    def get_context(self, context_filter: str | None) -> dict[str, str]:
        """Collect values from providers selected by *context_filter*.

        Keys without an underscore are namespaced as ``<provider_id>_<key>``.
        Empty values are dropped.
        """
        selected = Filter.parse(context_filter)
        result: dict[str, str] = {}
        for provider_id, provider in self._providers.items():
            if not selected.should_include(provider_id):
                continue
            for key, value in provider.get_context().items():
                if not value:
                    continue
                name = key if "_" in key else f"{provider_id}_{key}"
                result[name] = value
        log.debug("Collected %d context value(s)", len(result))
        return result
