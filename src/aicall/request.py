"""Requests: what to call, with which capabilities, and pre-flight validation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
import logging
from typing import TYPE_CHECKING, Any

from aicall.body import EMPTY_BODY, Body
from aicall.capability import Capability, describe
from aicall.diagnostics import (
    MessageCode,
    Origin,
    RuntimeMessage,
    has_errors,
    merge_messages,
)
from aicall.registries import Registries
from aicall.resolver import ModelSelection, effective_capability, select_model

if TYPE_CHECKING:
    from aicall.providers.base import Provider
    from aicall.schema import SchemaWrapperInfo

log = logging.getLogger(__name__)


class RequestKind(StrEnum):
    #: A model generation call; model and body are validated.
    GENERATION = "generation"
    #: Provider housekeeping (listing models, ...); only provider and endpoint matter.
    BACKOFFICE = "backoffice"


@dataclass(eq=False)
class RequestBase:
    """State and checks shared by model calls and tool calls.

    ``requested_model`` is what the caller asked for; ``model`` is the
    concrete model after resolution against the model registry, computed
    lazily and memoized per (provider, requested model, capability).
    """

    provider: str = ""
    requested_model: str = ""
    capability: Capability = Capability.NONE
    body: Body = EMPTY_BODY
    #: Zero or less means "use the configured default".
    timeout_seconds: int = 0
    wants_streaming: bool = False
    registries: Registries = field(default_factory=Registries)
    #: Diagnostics gathered while preparing the request.
    messages: list[RuntimeMessage] = field(default_factory=list)
    #: Provider-ready JSON schema, set by the schema attach policy.
    provider_schema: dict[str, Any] | None = None
    schema_wrapper: SchemaWrapperInfo | None = None
    _selections: dict[tuple[str, str, int], ModelSelection] = field(
        default_factory=dict, init=False, repr=False
    )

    @property
    def provider_instance(self) -> Provider | None:
        return self.registries.providers.get(self.provider)

    def resolution_capability(self) -> Capability:
        """Capability used to pick the concrete model."""
        return self.capability

    def model_selection(self) -> ModelSelection:
        capability = self.resolution_capability()
        key = (self.provider.lower(), self.requested_model, int(capability))
        selection = self._selections.get(key)
        if selection is None:
            selection = select_model(
                self.registries.models,
                self.provider,
                capability,
                self.requested_model,
            )
            self._selections[key] = selection
        return selection

    @property
    def model(self) -> str:
        return self.model_selection().model

    def add_message(self, message: RuntimeMessage) -> None:
        self.messages.append(message)

    def add_messages(self, messages: list[RuntimeMessage]) -> None:
        self.messages.extend(messages)

    def base_messages(self) -> list[RuntimeMessage]:
        """Checks every request kind shares: default model use and streaming."""
        messages: list[RuntimeMessage] = []
        if self.provider_instance is None:
            return messages

        model = self.model
        if not self.requested_model and self.capability and model:
            messages.append(
                RuntimeMessage.info(
                    Origin.REQUEST,
                    f"Model is not specified; using default model '{model}'.",
                )
            )

        if self.wants_streaming:
            if not self.registries.providers.is_streaming_enabled(self.provider):
                messages.append(
                    RuntimeMessage.error(
                        Origin.REQUEST,
                        f"Streaming is disabled for provider '{self.provider}'",
                        MessageCode.STREAMING_DISABLED_PROVIDER,
                    )
                )
            elif (
                model
                and self.registries.models.is_known(self.provider, model)
                and not self.registries.models.supports_streaming(self.provider, model)
            ):
                messages.append(
                    RuntimeMessage.error(
                        Origin.REQUEST,
                        f"Model '{model}' on provider '{self.provider}' "
                        "does not support streaming",
                        MessageCode.STREAMING_UNSUPPORTED_MODEL,
                    )
                )
        return messages

    def is_valid(self) -> tuple[bool, list[RuntimeMessage]]:
        messages = merge_messages(self.base_messages())
        return not has_errors(messages), messages


@dataclass(eq=False)
class CallRequest(RequestBase):
    """A model call against one provider endpoint."""

    capability: Capability = Capability.TEXT2TEXT
    endpoint: str = ""
    kind: RequestKind = RequestKind.GENERATION

    def effective_capability(self) -> tuple[Capability, list[RuntimeMessage]]:
        """Declared capability widened by the body's requirements."""
        return effective_capability(self.capability, self.body)

    def resolution_capability(self) -> Capability:
        if self.kind is RequestKind.GENERATION:
            return self.effective_capability()[0]
        return self.capability

    @property
    def encoded_body(self) -> str:
        """The provider's wire encoding, or an empty string when invalid."""
        ok, _ = self.is_valid()
        provider = self.provider_instance
        if not ok or provider is None:
            return ""
        return provider.encode(self)

    def is_valid(self) -> tuple[bool, list[RuntimeMessage]]:
        """Run pre-flight validation.

        Returns ``(ok, messages)``; ``ok`` is False exactly when a message
        has error severity. Info and warning messages never block.
        """
        messages: list[RuntimeMessage] = []

        if not self.provider.strip():
            messages.append(
                RuntimeMessage.error(
                    Origin.VALIDATION,
                    "Provider is required",
                    MessageCode.PROVIDER_MISSING,
                )
            )
        if self.provider_instance is None:
            messages.append(
                RuntimeMessage.error(
                    Origin.VALIDATION,
                    f"Unknown provider '{self.provider}'",
                    MessageCode.UNKNOWN_PROVIDER,
                )
            )
        if not self.endpoint.strip():
            messages.append(
                RuntimeMessage.error(
                    Origin.VALIDATION,
                    "Endpoint is required",
                    MessageCode.BODY_INVALID,
                )
            )

        if self.kind is RequestKind.GENERATION:
            messages.extend(self._generation_messages())

        messages.extend(self.base_messages())
        merged = merge_messages(messages)
        return not has_errors(merged), merged

    def _generation_messages(self) -> list[RuntimeMessage]:
        capability, messages = self.effective_capability()

        if self.provider.strip():
            selection = self.model_selection()
            if not selection.model:
                messages.append(
                    RuntimeMessage.error(
                        Origin.VALIDATION,
                        f"No capable model found for provider '{self.provider}' "
                        f"with capability {describe(capability)}",
                        MessageCode.NO_CAPABLE_MODEL,
                    )
                )
            messages.extend(self._requested_model_messages(selection, capability))

        if self.body.is_empty:
            messages.append(
                RuntimeMessage.error(
                    Origin.VALIDATION,
                    "At least one interaction is required",
                    MessageCode.BODY_INVALID,
                )
            )
        if capability & Capability.JSON_OUTPUT and not self.body.requires_json_output:
            messages.append(
                RuntimeMessage.error(
                    Origin.VALIDATION,
                    "JsonOutput capability requires a non-empty JsonOutputSchema",
                    MessageCode.BODY_INVALID,
                )
            )
        return messages

    def _requested_model_messages(
        self, selection: ModelSelection, capability: Capability
    ) -> list[RuntimeMessage]:
        requested = selection.requested
        if not requested:
            return []
        if not selection.requested_known:
            return [
                RuntimeMessage.info(
                    Origin.VALIDATION,
                    f"Model '{requested}' is not registered for provider "
                    f"'{self.provider}'; its capabilities cannot be verified.",
                    MessageCode.UNKNOWN_MODEL,
                )
            ]
        if selection.requested_capable:
            return []
        if selection.substituted and selection.model:
            return [
                RuntimeMessage.info(
                    Origin.VALIDATION,
                    f"Model '{requested}' lacks required capabilities "
                    f"({describe(capability)}); selected '{selection.model}' instead.",
                    MessageCode.CAPABILITY_MISMATCH,
                )
            ]
        return [
            RuntimeMessage.warning(
                Origin.VALIDATION,
                f"Model '{requested}' lacks required capabilities "
                f"({describe(capability)}).",
                MessageCode.CAPABILITY_MISMATCH,
            )
        ]
