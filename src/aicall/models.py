"""Model capability registry.

Entries are keyed by ``provider.model`` (lowercased). A model name ending in
``*`` registers a prefix pattern: ``("openai", "gpt-4*")`` answers for every
``gpt-4...`` model that has no exact entry.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

from aicall.capability import Capability, describe, has_capability
from aicall.errors import RegistrationError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelCapabilities:
    """What one model (or model pattern) of a provider supports."""

    provider: str
    model: str
    capabilities: Capability = Capability.NONE
    #: Capabilities for which this model is the provider's default choice.
    default_for: Capability = Capability.NONE

    @property
    def key(self) -> str:
        return f"{self.provider.lower()}.{self.model.lower()}"

    @property
    def is_wildcard(self) -> bool:
        return "*" in self.model

    def has_capability(self, required: Capability) -> bool:
        return has_capability(self.capabilities, required)


class ModelRegistry:
    """Registry answering capability and default-model questions.

    Registration order matters: when several models qualify as defaults, the
    first registered one wins.
    """

    def __init__(self, models: list[ModelCapabilities] | None = None) -> None:
        self._models: dict[str, ModelCapabilities] = {}
        for entry in models or ():
            self.register(entry)

    def register(self, entry: ModelCapabilities) -> None:
        if not entry.provider.strip() or not entry.model.strip():
            raise RegistrationError(
                "Model registration needs a provider and a model name",
                hint="Pass ModelCapabilities(provider='openai', model='gpt-4o', ...).",
            )
        self._models[entry.key] = entry

    def models(self, provider: str | None = None) -> list[ModelCapabilities]:
        return [
            m
            for m in self._models.values()
            if provider is None or m.provider.lower() == provider.lower()
        ]

    def get_capabilities(self, provider: str, model: str) -> ModelCapabilities | None:
        """Exact entry first, then the first wildcard pattern matching *model*."""
        if not provider or not model:
            return None
        key = f"{provider.lower()}.{model.lower()}"
        exact = self._models.get(key)
        if exact is not None:
            return exact

        prefix = f"{provider.lower()}."
        model_lower = model.lower()
        for stored_key, entry in self._models.items():
            if stored_key.startswith(prefix) and stored_key.endswith("*"):
                pattern = stored_key[len(prefix) : -1]
                if model_lower.startswith(pattern):
                    log.debug("Model %r matched wildcard entry %r", key, stored_key)
                    return entry
        return None

    def is_known(self, provider: str, model: str) -> bool:
        return self.get_capabilities(provider, model) is not None

    def validate_capabilities(
        self, provider: str, model: str, required: Capability
    ) -> bool:
        """Return True when the registered model covers *required*.

        Unregistered models never validate.
        """
        entry = self.get_capabilities(provider, model)
        return entry is not None and entry.has_capability(required)

    def supports_streaming(self, provider: str, model: str) -> bool:
        return self.validate_capabilities(provider, model, Capability.STREAMING)

    def find_models(self, required: Capability) -> list[ModelCapabilities]:
        return [m for m in self._models.values() if m.has_capability(required)]

    def get_default_model(
        self, provider: str, required: Capability = Capability.TEXT2TEXT
    ) -> str | None:
        """Pick the provider's default model for *required*.

        Concrete names win over wildcard patterns, and models whose default
        flags cover *required* win over models that are merely capable and
        marked default for something else. Wildcard winners resolve to the
        first matching concrete model name.
        """
        if not provider:
            return None
        candidates = self.models(provider)
        concrete = [m for m in candidates if not m.is_wildcard]
        wildcards = [m for m in candidates if m.is_wildcard]

        for group, resolve in ((concrete, False), (wildcards, True)):
            exact = next(
                (m for m in group if has_capability(m.default_for, required)), None
            )
            compatible = next(
                (m for m in group if m.default_for and m.has_capability(required)),
                None,
            )
            chosen = exact or compatible
            if chosen is not None:
                model = chosen.model
                if resolve:
                    model = self._resolve_pattern(provider, model)
                log.debug(
                    "Default model for %s with [%s]: %s",
                    provider,
                    describe(required),
                    model,
                )
                return model

        log.debug("No default model for %s with [%s]", provider, describe(required))
        return None

    def _resolve_pattern(self, provider: str, pattern: str) -> str:
        prefix = pattern.replace("*", "").lower()
        matches = sorted(
            m.model
            for m in self.models(provider)
            if not m.is_wildcard and m.model.lower().startswith(prefix)
        )
        return matches[0] if matches else pattern
