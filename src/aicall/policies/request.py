"""Request policies: normalize a request before it is validated and sent."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from aicall.body import Agent, BodyBuilder, TextInteraction
from aicall.diagnostics import Origin, RuntimeMessage
from aicall.filters import canonicalize
from aicall.result_primitives import Failure
from aicall.schema import parse_schema

if TYPE_CHECKING:
    from aicall.policies.base import PolicyContext

log = logging.getLogger(__name__)


class RequestTimeoutPolicy:
    """Apply the default timeout and clamp explicit ones to the configured bounds."""

    async def apply(self, context: PolicyContext) -> None:
        request, config = context.request, context.config
        original = request.timeout_seconds
        normalized = config.clamp_timeout(original)
        if normalized == original:
            return

        request.timeout_seconds = normalized
        if original <= 0:
            note = f"Timeout applied: {normalized}s (default)"
        elif normalized > original:
            note = f"Timeout increased from {original}s to {normalized}s (minimum)"
        else:
            note = f"Timeout reduced from {original}s to {normalized}s (maximum)"
        request.add_message(RuntimeMessage.info(Origin.REQUEST, note))


class ToolFilterNormalizationPolicy:
    """Rewrite the tool filter into its canonical form.

    Canonical forms are ``-*``, ``*``, ``* -a -b`` and ``a,b -c``. An unset
    filter stays unset.
    """

    async def apply(self, context: PolicyContext) -> None:
        request = context.request
        raw = request.body.tool_filter
        if raw is None:
            return
        normalized = canonicalize(raw)
        if normalized == raw:
            return

        request.body = (
            BodyBuilder.from_body(request.body).with_tool_filter(normalized).build()
        )
        request.add_message(
            RuntimeMessage.info(
                Origin.REQUEST,
                f"Tool filter normalized from '{raw}' to '{normalized}'.",
            )
        )


class ContextInjectionPolicy:
    """Prepend one context interaction built from the selected context providers.

    Any earlier context interaction is dropped, so re-running the policy on
    the same body does not stack context blocks.
    """

    async def apply(self, context: PolicyContext) -> None:
        request = context.request
        context_filter = request.body.effective_context_filter
        if context_filter.strip() == "-*":
            return

        values = request.registries.contexts.get_context(context_filter)
        if not values:
            return

        lines = "".join(f"- {key}: {value}\n" for key, value in values.items())
        interaction = TextInteraction(
            agent=Agent.CONTEXT, content=f"Conversation context:\n\n{lines}"
        )
        request.body = (
            BodyBuilder.from_body(request.body)
            .remove_agent(Agent.CONTEXT)
            .prepend(interaction)
            .build()
        )
        log.debug("Injected %d context value(s)", len(values))


class SchemaAttachPolicy:
    """Wrap the body's JSON output schema for the target provider.

    The wrapped schema and the wrapper info are stored on the request; the
    provider encodes ``provider_schema`` and response policies use
    ``schema_wrapper`` to unwrap the answer.
    """

    async def apply(self, context: PolicyContext) -> None:
        request = context.request
        schema_text = request.body.json_output_schema
        if not request.body.requires_json_output or schema_text is None:
            return

        parsed = parse_schema(schema_text)
        if isinstance(parsed, Failure):
            request.add_message(
                RuntimeMessage.warning(
                    Origin.REQUEST,
                    f"JSON output schema could not be attached: {parsed.error}",
                )
            )
            return

        wrapped, info = request.registries.schemas.wrap_for_provider(
            parsed.value, request.provider
        )
        request.provider_schema = wrapped
        request.schema_wrapper = info
        if info.is_wrapped:
            log.debug(
                "Wrapped %s schema under %r for %s",
                info.wrapper_type,
                info.property_name,
                request.provider,
            )
