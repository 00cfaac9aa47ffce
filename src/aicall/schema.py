"""JSON output schemas: provider wrapping, unwrapping and validation.

Several providers only accept an object at the root of a structured-output
schema. Adapters wrap other roots in a one-property object before the
request goes out and unwrap the property from the response, so callers get
back the shape they asked for.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
import json
import logging
from typing import Any, Protocol, runtime_checkable

from jsonschema import SchemaError as JsonSchemaDefinitionError
from jsonschema.exceptions import best_match
from jsonschema.validators import validator_for

from aicall.errors import RegistrationError, SchemaError
from aicall.result_primitives import Failure, Result, Success

log = logging.getLogger(__name__)

_PRIMITIVE_TYPES = frozenset({"string", "number", "integer", "boolean"})


@dataclass(frozen=True)
class SchemaWrapperInfo:
    """How a schema was wrapped for a provider, needed to unwrap responses."""

    is_wrapped: bool = False
    #: "array", the primitive type name, or "unknown".
    wrapper_type: str = ""
    property_name: str = ""
    provider_name: str = ""


NOT_WRAPPED = SchemaWrapperInfo()


def parse_json(text: str) -> Result[Any, SchemaError]:
    """Parse JSON text into Python data."""
    try:
        return Success(json.loads(text))
    except (json.JSONDecodeError, TypeError) as e:
        return Failure(SchemaError(f"Invalid JSON: {e}"))


def parse_schema(
    schema: str | Mapping[str, Any],
) -> Result[dict[str, Any], SchemaError]:
    """Parse a schema given as text or mapping and require an object root."""
    if isinstance(schema, Mapping):
        return Success(dict(schema))
    parsed = parse_json(schema)
    if isinstance(parsed, Failure):
        return Failure(SchemaError(f"Invalid schema JSON: {parsed.error}"))
    if not isinstance(parsed.value, dict):
        return Failure(SchemaError("JSON schema must be a JSON object"))
    return Success(parsed.value)


def validate_instance(
    schema: Mapping[str, Any], instance: Any
) -> Result[None, SchemaError]:
    """Validate *instance* against *schema* using its declared draft."""
    validator_cls = validator_for(schema)
    try:
        validator_cls.check_schema(schema)
    except JsonSchemaDefinitionError as e:
        return Failure(SchemaError(f"Invalid schema: {e.message}"))
    error = best_match(validator_cls(schema).iter_errors(instance))
    if error is None:
        return Success(None)
    location = "/".join(str(p) for p in error.absolute_path)
    detail = f"{error.message} (at '{location}')" if location else error.message
    return Failure(SchemaError(detail))


def validate_json_text(
    schema: str | Mapping[str, Any], text: str
) -> Result[None, SchemaError]:
    """Parse *schema* and *text*, then validate one against the other."""
    parsed_schema = parse_schema(schema)
    if isinstance(parsed_schema, Failure):
        return parsed_schema
    instance = parse_json(text)
    if isinstance(instance, Failure):
        return instance
    return validate_instance(parsed_schema.value, instance.value)


def _wrap_under(schema: dict[str, Any], prop: str) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {prop: schema},
        "required": [prop],
        "additionalProperties": False,
    }


@runtime_checkable
class SchemaAdapter(Protocol):
    """Provider-specific schema wrapping."""

    provider_name: str

    def wrap(
        self, schema: dict[str, Any]
    ) -> tuple[dict[str, Any], SchemaWrapperInfo]:
        """Return the provider-ready schema and how it was wrapped."""
        ...

    def preprocess(self, content: str, info: SchemaWrapperInfo) -> str:
        """Clean provider quirks out of a response before unwrapping."""
        ...


class DefaultSchemaAdapter:
    """Object roots pass through; other roots go under a single property.

    Arrays are wrapped as ``items``, primitives as ``value`` and anything
    else as ``data``.
    """

    provider_name = ""

    def wrap(
        self, schema: dict[str, Any]
    ) -> tuple[dict[str, Any], SchemaWrapperInfo]:
        schema_type = schema.get("type")
        kind = schema_type.lower() if isinstance(schema_type, str) else None

        if kind == "object":
            return schema, SchemaWrapperInfo(provider_name=self.provider_name)
        if kind == "array":
            prop, wrapper_type = "items", "array"
        elif kind in _PRIMITIVE_TYPES:
            prop, wrapper_type = "value", kind
        else:
            prop, wrapper_type = "data", "unknown"
        info = SchemaWrapperInfo(
            is_wrapped=True,
            wrapper_type=wrapper_type,
            property_name=prop,
            provider_name=self.provider_name,
        )
        return _wrap_under(schema, prop), info

    def preprocess(self, content: str, info: SchemaWrapperInfo) -> str:  # noqa: ARG002
        return content


class SchemaAdapterRegistry:
    """Per-provider schema adapters with a default fallback."""

    def __init__(self, default: SchemaAdapter | None = None) -> None:
        self.default: SchemaAdapter = default or DefaultSchemaAdapter()
        self._adapters: dict[str, SchemaAdapter] = {}

    def register(self, adapter: SchemaAdapter) -> None:
        if not adapter.provider_name.strip():
            raise RegistrationError(
                "Schema adapter needs a provider_name",
                hint="Set provider_name to the provider id the adapter serves.",
            )
        self._adapters[adapter.provider_name.lower()] = adapter

    def get(self, provider: str | None) -> SchemaAdapter:
        if not provider:
            return self.default
        return self._adapters.get(provider.lower(), self.default)

    def wrap_for_provider(
        self, schema: dict[str, Any], provider: str
    ) -> tuple[dict[str, Any], SchemaWrapperInfo]:
        wrapped, info = self.get(provider).wrap(schema)
        if not info.provider_name:
            info = replace(info, provider_name=provider)
        return wrapped, info

    def unwrap(self, content: str, info: SchemaWrapperInfo | None) -> str:
        """Extract the wrapped property from *content*.

        Content that is not wrapped, not a JSON object, or lacks the property
        comes back unchanged (after provider preprocessing). Arrays and
        objects are returned as compact JSON, strings as their raw text and
        other scalars as JSON literals.
        """
        if info is None or not info.is_wrapped or not content.strip():
            return content
        cleaned = self.get(info.provider_name).preprocess(content, info)

        parsed = parse_json(cleaned)
        if (
            isinstance(parsed, Failure)
            or not isinstance(parsed.value, dict)
            or info.property_name not in parsed.value
        ):
            log.debug("Unwrap skipped: property %r not found", info.property_name)
            return cleaned
        value = parsed.value[info.property_name]

        if isinstance(value, str):
            return value
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
