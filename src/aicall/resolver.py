"""Effective capability computation and concrete model selection."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING

from aicall.capability import Capability, has_capability
from aicall.diagnostics import MessageCode, Origin, RuntimeMessage
from aicall.filters import Filter

if TYPE_CHECKING:
    from aicall.body import Body
    from aicall.models import ModelRegistry

log = logging.getLogger(__name__)


def effective_capability(
    declared: Capability, body: Body
) -> tuple[Capability, list[RuntimeMessage]]:
    """Widen *declared* with what the body's shape demands.

    A body with a JSON output schema needs ``JSON_OUTPUT``; a body with an
    active tool filter needs ``FUNCTION_CALLING``. Each widening is reported
    as an info message so callers can see the request was upgraded.
    """
    capability = declared
    notes: list[RuntimeMessage] = []

    if body.requires_json_output and not capability & Capability.JSON_OUTPUT:
        capability |= Capability.JSON_OUTPUT
        notes.append(
            RuntimeMessage.info(
                Origin.VALIDATION,
                "Body requires JSON output but Capability lacks JsonOutput - "
                "treating request as JsonOutput",
                MessageCode.CAPABILITY_MISMATCH,
            )
        )

    if body.tool_filter and not Filter.parse(body.tool_filter).exclude_all:
        if not capability & Capability.FUNCTION_CALLING:
            capability |= Capability.FUNCTION_CALLING
            notes.append(
                RuntimeMessage.info(
                    Origin.VALIDATION,
                    "Tool filter provided but Capability lacks FunctionCalling - "
                    "treating request as requiring FunctionCalling",
                    MessageCode.CAPABILITY_MISMATCH,
                )
            )

    return capability, notes


@dataclass(frozen=True)
class ModelSelection:
    """Outcome of resolving a requested model against the registry."""

    model: str
    requested: str
    #: Whether the requested model has a registry entry.
    requested_known: bool = False
    #: Whether the requested model's entry covers the capability.
    requested_capable: bool = False

    @property
    def substituted(self) -> bool:
        return bool(self.requested) and self.model.lower() != self.requested.lower()


def select_model(
    models: ModelRegistry, provider: str, capability: Capability, requested: str
) -> ModelSelection:
    """Resolve the concrete model to use for *provider* and *capability*.

    With no capability requirement the requested name is used verbatim. A
    requested model is kept when it is registered and capable, or when the
    registry does not know it at all (the provider may carry newer models).
    Otherwise the provider's default for the capability is used, then the
    first registered concrete model that is capable. An empty ``model``
    means nothing qualified.
    """
    requested = (requested or "").strip()
    if capability == Capability.NONE:
        return ModelSelection(model=requested, requested=requested)

    entry = models.get_capabilities(provider, requested) if requested else None
    known = entry is not None
    capable = known and has_capability(entry.capabilities, capability)

    if requested and (capable or not known):
        return ModelSelection(
            model=requested,
            requested=requested,
            requested_known=known,
            requested_capable=capable,
        )

    fallback = models.get_default_model(provider, capability)
    if not fallback:
        fallback = next(
            (
                m.model
                for m in models.models(provider)
                if not m.is_wildcard and m.has_capability(capability)
            ),
            "",
        )
    if requested:
        log.debug(
            "Model %r cannot serve the request on %s; selected %r",
            requested,
            provider,
            fallback,
        )
    return ModelSelection(
        model=fallback,
        requested=requested,
        requested_known=known,
        requested_capable=capable,
    )
