"""Capability flags shared by models, requests and tools."""

from __future__ import annotations

from enum import IntFlag


class Capability(IntFlag):
    """What a model can consume and produce.

    Composite members name the common request shapes; they are ordinary flag
    unions and can be combined further with ``|``.
    """

    NONE = 0
    TEXT_INPUT = 1 << 0
    IMAGE_INPUT = 1 << 1
    AUDIO_INPUT = 1 << 2
    JSON_INPUT = 1 << 3
    TEXT_OUTPUT = 1 << 4
    IMAGE_OUTPUT = 1 << 5
    AUDIO_OUTPUT = 1 << 6
    JSON_OUTPUT = 1 << 7
    FUNCTION_CALLING = 1 << 8
    REASONING = 1 << 9
    STREAMING = 1 << 10

    TEXT2TEXT = TEXT_INPUT | TEXT_OUTPUT
    TOOL_CHAT = TEXT2TEXT | FUNCTION_CALLING
    REASONING_CHAT = TEXT2TEXT | REASONING
    TOOL_REASONING_CHAT = TOOL_CHAT | REASONING
    TEXT2JSON = TEXT_INPUT | JSON_OUTPUT
    TEXT2IMAGE = TEXT_INPUT | IMAGE_OUTPUT
    TEXT2SPEECH = TEXT_INPUT | AUDIO_OUTPUT
    SPEECH2TEXT = AUDIO_INPUT | TEXT_OUTPUT
    IMAGE2TEXT = IMAGE_INPUT | TEXT_OUTPUT


_ATOMIC = tuple(
    flag
    for flag in Capability
    if flag and (flag & (flag - 1)) == 0  # single-bit members only
)


def has_capability(available: Capability, required: Capability) -> bool:
    """Return True when *available* includes every flag in *required*."""
    return (available & required) == required


def describe(capability: Capability) -> str:
    """Render a flag set as a readable list of its single-bit members."""
    names = [flag.name for flag in _ATOMIC if flag in capability and flag.name]
    return ", ".join(names) if names else "NONE"
