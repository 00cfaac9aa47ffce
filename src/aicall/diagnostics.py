"""Structured runtime diagnostics.

Validation and execution report problems as ``RuntimeMessage`` values instead
of raising. Only ``Severity.ERROR`` blocks a call; info and warning messages
travel alongside the result for display or logging.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable


class Severity(IntEnum):
    """Message severity; higher values sort first."""

    INFO = 0
    WARNING = 1
    ERROR = 2


class Origin(StrEnum):
    """Pipeline stage that produced a message."""

    REQUEST = "request"
    RETURN = "return"
    PROVIDER = "provider"
    TOOL = "tool"
    NETWORK = "network"
    VALIDATION = "validation"


class MessageCode(IntEnum):
    """Stable machine-readable message codes."""

    UNKNOWN = 0
    PROVIDER_MISSING = 1
    UNKNOWN_PROVIDER = 2
    UNKNOWN_MODEL = 3
    NO_CAPABLE_MODEL = 4
    CAPABILITY_MISMATCH = 5
    STREAMING_DISABLED_PROVIDER = 6
    STREAMING_UNSUPPORTED_MODEL = 7
    TOOL_VALIDATION_ERROR = 8
    BODY_INVALID = 9
    RETURN_INVALID = 10
    NETWORK_TIMEOUT = 11
    AUTHENTICATION_MISSING = 12
    AUTHORIZATION_FAILED = 13
    RATE_LIMITED = 14
    OUTPUT_TRUNCATED = 15


@dataclass(frozen=True, slots=True)
class RuntimeMessage:
    """A single diagnostic emitted while preparing or executing a call."""

    severity: Severity
    origin: Origin
    message: str
    code: MessageCode = MessageCode.UNKNOWN
    #: Whether the message is meant for end users (as opposed to logs only).
    surfaceable: bool = True

    @classmethod
    def info(
        cls, origin: Origin, message: str, code: MessageCode = MessageCode.UNKNOWN
    ) -> RuntimeMessage:
        return cls(Severity.INFO, origin, message, code)

    @classmethod
    def warning(
        cls, origin: Origin, message: str, code: MessageCode = MessageCode.UNKNOWN
    ) -> RuntimeMessage:
        return cls(Severity.WARNING, origin, message, code)

    @classmethod
    def error(
        cls, origin: Origin, message: str, code: MessageCode = MessageCode.UNKNOWN
    ) -> RuntimeMessage:
        return cls(Severity.ERROR, origin, message, code)

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable view for UI and log consumers."""
        return {
            "severity": self.severity.name.lower(),
            "origin": str(self.origin),
            "code": self.code.name,
            "message": self.message,
            "surfaceable": self.surfaceable,
        }


def merge_messages(*groups: Iterable[RuntimeMessage]) -> list[RuntimeMessage]:
    """Combine message groups, dropping repeats and sorting errors first.

    The first occurrence of a (severity, code, text) triple wins. The sort
    is stable, so messages of equal severity keep their emission order.
    """
    seen: set[tuple[Severity, MessageCode, str]] = set()
    merged: list[RuntimeMessage] = []
    for group in groups:
        for msg in group:
            key = (msg.severity, msg.code, msg.message)
            if key in seen:
                continue
            seen.add(key)
            merged.append(msg)
    merged.sort(key=lambda m: m.severity, reverse=True)
    return merged


def has_errors(messages: Iterable[RuntimeMessage]) -> bool:
    """Return True when any message carries ``Severity.ERROR``."""
    return any(m.is_error for m in messages)
