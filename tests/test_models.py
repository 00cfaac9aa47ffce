"""Capability flags, model registry and model selection tests."""

from __future__ import annotations

import pytest

from aicall.body import BodyBuilder
from aicall.capability import Capability, describe, has_capability
from aicall.diagnostics import MessageCode, Severity
from aicall.errors import RegistrationError
from aicall.models import ModelCapabilities, ModelRegistry
from aicall.resolver import effective_capability, select_model

pytestmark = pytest.mark.unit

# =============================================================================
# Capability flags
# =============================================================================


def test_has_capability_requires_every_flag() -> None:
    assert has_capability(Capability.TOOL_CHAT, Capability.TEXT2TEXT)
    assert not has_capability(Capability.TEXT2TEXT, Capability.TOOL_CHAT)
    assert has_capability(Capability.TEXT2TEXT, Capability.NONE)


@pytest.mark.parametrize(
    ("capability", "expected"),
    [
        (Capability.NONE, "NONE"),
        (Capability.TEXT2TEXT, "TEXT_INPUT, TEXT_OUTPUT"),
        (Capability.TEXT2JSON, "TEXT_INPUT, JSON_OUTPUT"),
        (
            Capability.TOOL_CHAT,
            "TEXT_INPUT, TEXT_OUTPUT, FUNCTION_CALLING",
        ),
    ],
)
def test_describe_lists_single_flags(capability: Capability, expected: str) -> None:
    assert describe(capability) == expected


# =============================================================================
# Registry
# =============================================================================


def test_register_rejects_empty_names() -> None:
    registry = ModelRegistry()

    with pytest.raises(RegistrationError) as exc:
        registry.register(ModelCapabilities("fake", "  ", Capability.TEXT2TEXT))
    assert exc.value.hint is not None


def test_lookup_is_case_insensitive_and_exact_beats_wildcard() -> None:
    registry = ModelRegistry(
        [
            ModelCapabilities("acme", "gpt-4*", Capability.TEXT2TEXT),
            ModelCapabilities("acme", "gpt-4o", Capability.TOOL_CHAT),
        ]
    )

    exact = registry.get_capabilities("ACME", "GPT-4o")
    pattern = registry.get_capabilities("acme", "gpt-4-turbo")

    assert exact is not None and exact.model == "gpt-4o"
    assert pattern is not None and pattern.model == "gpt-4*"
    assert registry.get_capabilities("acme", "claude") is None


def test_unregistered_models_never_validate() -> None:
    registry = ModelRegistry()

    assert not registry.validate_capabilities("acme", "x", Capability.NONE)
    assert not registry.supports_streaming("acme", "x")


def test_default_model_prefers_exact_default_flags(models: ModelRegistry) -> None:
    assert models.get_default_model("fake", Capability.TEXT2TEXT) == "chat-1"
    assert models.get_default_model("fake", Capability.TEXT2JSON) == "json-1"


def test_default_model_falls_back_to_capable_default(models: ModelRegistry) -> None:
    required = Capability.TEXT2TEXT | Capability.JSON_OUTPUT

    assert models.get_default_model("fake", required) == "json-1"


def test_default_model_prefers_concrete_over_wildcard() -> None:
    registry = ModelRegistry(
        [
            ModelCapabilities(
                "acme", "gpt-*", Capability.TEXT2TEXT, Capability.TEXT2TEXT
            ),
            ModelCapabilities(
                "acme", "mini", Capability.TEXT2TEXT, Capability.TEXT2TEXT
            ),
        ]
    )

    assert registry.get_default_model("acme") == "mini"


def test_wildcard_default_resolves_to_concrete_name() -> None:
    registry = ModelRegistry(
        [
            ModelCapabilities(
                "acme", "gpt-4*", Capability.TEXT2TEXT, Capability.TEXT2TEXT
            ),
            ModelCapabilities("acme", "gpt-4o-mini", Capability.TEXT2TEXT),
            ModelCapabilities("acme", "gpt-4o", Capability.TEXT2TEXT),
        ]
    )

    assert registry.get_default_model("acme") == "gpt-4o"


def test_find_models_filters_by_capability(models: ModelRegistry) -> None:
    found = {m.model for m in models.find_models(Capability.JSON_OUTPUT)}

    assert found == {"json-1"}


# =============================================================================
# Selection
# =============================================================================


def test_no_capability_uses_requested_model_verbatim(models: ModelRegistry) -> None:
    selection = select_model(models, "fake", Capability.NONE, "  whatever ")

    assert selection.model == "whatever"
    assert not selection.substituted


def test_capable_requested_model_is_kept(models: ModelRegistry) -> None:
    selection = select_model(models, "fake", Capability.TEXT2TEXT, "basic-1")

    assert selection.model == "basic-1"
    assert selection.requested_known and selection.requested_capable


def test_unregistered_requested_model_passes_through(models: ModelRegistry) -> None:
    selection = select_model(models, "fake", Capability.TEXT2TEXT, "brand-new")

    assert selection.model == "brand-new"
    assert not selection.requested_known


def test_incapable_requested_model_is_substituted(models: ModelRegistry) -> None:
    selection = select_model(models, "fake", Capability.TOOL_CHAT, "basic-1")

    assert selection.model == "chat-1"
    assert selection.substituted
    assert selection.requested_known and not selection.requested_capable


def test_missing_model_uses_first_capable_when_no_default() -> None:
    registry = ModelRegistry(
        [
            ModelCapabilities("acme", "a", Capability.TEXT_INPUT),
            ModelCapabilities("acme", "b", Capability.TEXT2TEXT),
        ]
    )

    assert select_model(registry, "acme", Capability.TEXT2TEXT, "").model == "b"


def test_nothing_capable_selects_empty(models: ModelRegistry) -> None:
    selection = select_model(models, "fake", Capability.TEXT2IMAGE, "")

    assert selection.model == ""


# =============================================================================
# Effective capability
# =============================================================================


def test_json_schema_widens_capability_with_info_note() -> None:
    body = (
        BodyBuilder.create()
        .add_user("hi")
        .with_json_output_schema({"type": "object"})
        .build()
    )

    capability, notes = effective_capability(Capability.TEXT2TEXT, body)

    assert capability & Capability.JSON_OUTPUT
    assert [n.severity for n in notes] == [Severity.INFO]
    assert notes[0].code is MessageCode.CAPABILITY_MISMATCH
    assert notes[0].message.startswith("Body requires JSON output")


def test_active_tool_filter_widens_capability() -> None:
    body = BodyBuilder.create().add_user("hi").with_tool_filter("search").build()

    capability, notes = effective_capability(Capability.TEXT2TEXT, body)

    assert capability & Capability.FUNCTION_CALLING
    assert notes[0].message.startswith("Tool filter provided")


@pytest.mark.parametrize("tool_filter", [None, "-*", "  -*  ", "search -*"])
def test_inactive_tool_filter_leaves_capability(tool_filter: str | None) -> None:
    body = BodyBuilder.create().add_user("hi").with_tool_filter(tool_filter).build()

    capability, notes = effective_capability(Capability.TEXT2TEXT, body)

    assert capability == Capability.TEXT2TEXT
    assert notes == []
