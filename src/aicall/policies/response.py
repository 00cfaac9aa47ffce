"""Response policies: decode, normalize and validate provider results."""

from __future__ import annotations

from dataclasses import dataclass, replace
import logging
from typing import TYPE_CHECKING

from aicall.body import Agent, BodyBuilder, TextInteraction
from aicall.diagnostics import MessageCode, Origin, RuntimeMessage
from aicall.result_primitives import Failure, Result
from aicall.schema import parse_schema, validate_instance, validate_json_text

if TYPE_CHECKING:
    from aicall.errors import SchemaError
    from aicall.policies.base import PolicyContext

log = logging.getLogger(__name__)

DEFAULT_FINISH_REASON = "stop"

_FINISH_REASONS: dict[str, str] = {
    **dict.fromkeys(
        (
            "stop",
            "stopped",
            "completed",
            "complete",
            "end",
            "end_turn",
            "eos",
            "eos_token",
            "stop_sequence",
        ),
        "stop",
    ),
    **dict.fromkeys(
        (
            "length",
            "max_tokens",
            "max_token",
            "max_tokens_exceeded",
            "max_output_tokens",
            "content_length",
            "length_finish",
        ),
        "length",
    ),
    **dict.fromkeys(("timeout", "time_out", "deadline_exceeded"), "timeout"),
    **dict.fromkeys(
        ("cancelled", "canceled", "cancel", "user_cancelled", "aborted", "abort"),
        "cancelled",
    ),
    **dict.fromkeys(
        ("tool_call", "tool_calls", "tool_use", "function_call", "function_calls"),
        "tool_calls",
    ),
    **dict.fromkeys(
        ("content_filter", "safety", "filtered", "recitation", "prohibited_content"),
        "content_filter",
    ),
    **dict.fromkeys(("error", "failed"), "error"),
}


@dataclass(frozen=True)
class FinishReason:
    """Result of normalizing a provider finish reason."""

    value: str
    #: The provider gave no finish reason; ``value`` is the default.
    missing: bool = False
    #: No mapping exists; ``value`` is the provider's text, trimmed.
    unrecognized: bool = False
    original: str | None = None

    @property
    def changed(self) -> bool:
        return not self.missing and self.original != self.value


def normalize_finish_reason(raw: str | None) -> FinishReason:
    """Map a provider finish reason onto the canonical vocabulary.

    Lookup ignores case and treats ``-`` and spaces as ``_``. Canonical values
    map to themselves, so normalizing twice changes nothing.
    """
    if raw is None or not raw.strip():
        return FinishReason(DEFAULT_FINISH_REASON, missing=True, original=raw)
    trimmed = raw.strip()
    key = trimmed.lower().replace("-", "_").replace(" ", "_")
    mapped = _FINISH_REASONS.get(key)
    if mapped is None:
        return FinishReason(trimmed, unrecognized=True, original=raw)
    return FinishReason(mapped, original=raw)


class CompatibilityDecodePolicy:
    """Decode a raw provider payload when the provider left the body empty."""

    async def apply(self, context: PolicyContext) -> None:
        response = context.response
        if response is None or not response.body.is_empty or not response.raw:
            return
        provider = context.request.provider_instance
        if provider is None:
            return
        try:
            decoded = provider.decode(response.raw)
        except Exception as e:
            log.debug("Decoding raw payload from %s failed: %s", provider.name, e)
            response.add_message(
                RuntimeMessage.warning(
                    Origin.PROVIDER, f"Failed to decode provider response: {e}"
                )
            )
            return
        if decoded.is_empty:
            return
        body = (
            BodyBuilder.from_body(decoded)
            .stamp_metrics(
                provider=context.request.provider, model=context.request.model
            )
            .build()
        )
        response.set_body(body)


class FinishReasonNormalizePolicy:
    """Normalize the finish reason and flag truncated answers.

    A ``length`` finish reason leaves the call successful but adds an error
    message, since the answer was cut off.
    """

    async def apply(self, context: PolicyContext) -> None:
        response = context.response
        if response is None or not response.success:
            return
        metrics = response.metrics
        raw = metrics.finish_reason if metrics is not None else None
        if not raw:
            last = response.body.last(Agent.ASSISTANT)
            raw = last.metrics.finish_reason if last is not None else None

        reason = normalize_finish_reason(raw)
        if reason.missing:
            response.add_message(
                RuntimeMessage.warning(
                    Origin.RETURN,
                    f"Finish reason missing; defaulted to '{reason.value}'.",
                )
            )
        elif reason.unrecognized:
            response.add_message(
                RuntimeMessage.warning(
                    Origin.RETURN,
                    f"Unrecognized finish reason '{reason.value}'. "
                    "Keeping original value.",
                )
            )
        elif reason.changed:
            response.add_message(
                RuntimeMessage.info(
                    Origin.RETURN,
                    f"Normalized finish reason '{reason.original}' -> "
                    f"'{reason.value}'.",
                )
            )

        if metrics is not None:
            response.metrics = replace(metrics, finish_reason=reason.value)

        if reason.value == "length":
            provider = context.request.provider or "the provider"
            response.add_message(
                RuntimeMessage.error(
                    Origin.RETURN,
                    "The response was truncated because the model reached its "
                    f"output token limit. Increase the max tokens setting for "
                    f"{provider} and try again.",
                    MessageCode.OUTPUT_TRUNCATED,
                )
            )


class SchemaUnwrapPolicy:
    """Give the caller the schema shape they asked for.

    When the schema was wrapped for the provider, the last assistant text is
    replaced by the wrapped property's value.
    """

    async def apply(self, context: PolicyContext) -> None:
        response, request = context.response, context.request
        info = request.schema_wrapper
        if response is None or info is None or not info.is_wrapped:
            return
        context.schema_unwrapped = True

        body = response.body
        for index in range(len(body.interactions) - 1, -1, -1):
            item = body.interactions[index]
            if (
                isinstance(item, TextInteraction)
                and item.agent is Agent.ASSISTANT
                and item.content.strip()
            ):
                break
        else:
            return

        unwrapped = request.registries.schemas.unwrap(item.content, info)
        if unwrapped == item.content:
            return
        response.body = (
            BodyBuilder.from_body(body)
            .replace_at(index, replace(item, content=unwrapped))
            .build()
        )


class SchemaValidationPolicy:
    """Check the final JSON answer against the body's schema.

    Mismatches are warnings: the answer is still returned.
    """

    async def apply(self, context: PolicyContext) -> None:
        response, request = context.response, context.request
        schema = request.body.json_output_schema
        if (
            response is None
            or not response.success
            or not request.body.requires_json_output
            or schema is None
        ):
            return

        last = response.body.last_text(Agent.ASSISTANT)
        if last is None:
            response.add_message(
                RuntimeMessage.warning(
                    Origin.VALIDATION,
                    "Expected JSON structured output from the assistant, "
                    "but the content is missing",
                )
            )
            return

        info = request.schema_wrapper
        content = last.content
        if not context.schema_unwrapped:
            content = request.registries.schemas.unwrap(content, info)
        if info is not None and info.is_wrapped and info.wrapper_type == "string":
            # unwrapped string answers are raw text, not JSON literals
            outcome = _validate_raw_string(schema, content)
        else:
            outcome = validate_json_text(schema, content)
        if isinstance(outcome, Failure):
            response.add_message(
                RuntimeMessage.warning(
                    Origin.VALIDATION,
                    f"Response does not match the JSON output schema: {outcome.error}",
                    MessageCode.RETURN_INVALID,
                )
            )


def _validate_raw_string(schema: str, content: str) -> Result[None, SchemaError]:
    parsed = parse_schema(schema)
    if isinstance(parsed, Failure):
        return parsed
    return validate_instance(parsed.value, content)
