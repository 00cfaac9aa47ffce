"""Call results.

``CallReturn.error_message`` is the single source of truth for success: it is
empty exactly when the call succeeded. Runtime messages may still carry
errors on a successful return (a truncated answer, for example); those are
diagnostics, not failure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from aicall.body import EMPTY_BODY, Body, BodyBuilder, Metrics
from aicall.diagnostics import (
    MessageCode,
    Origin,
    RuntimeMessage,
    has_errors,
    merge_messages,
)

if TYPE_CHECKING:
    from aicall.request import RequestBase


class CallStatus(StrEnum):
    IDLE = "idle"
    STREAMING = "streaming"
    FINISHED = "finished"


class ErrorKind(StrEnum):
    """Failure classification of a return."""

    VALIDATION = "validation"
    PROVIDER = "provider"
    NETWORK = "network"
    TOOL = "tool"
    #: Cancelled or timed out.
    TIMEOUT = "timeout"


@dataclass(eq=False)
class CallReturn:
    """The outcome of executing a request (or one streaming delta of it)."""

    request: RequestBase | None = None
    body: Body = EMPTY_BODY
    status: CallStatus = CallStatus.IDLE
    #: Defaults to the body's aggregated metrics.
    metrics: Metrics | None = None
    error_message: str = ""
    error_kind: ErrorKind | None = None
    #: Undecoded provider payload, decoded later by the compatibility policy.
    raw: str | None = None
    #: Set by streaming adapters on the last delta.
    is_final: bool = False
    runtime_messages: list[RuntimeMessage] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.metrics is None:
            self.metrics = self.body.metrics

    # --- Factories ---

    @classmethod
    def from_body(
        cls,
        body: Body,
        request: RequestBase | None = None,
        *,
        raw: str | None = None,
        status: CallStatus = CallStatus.FINISHED,
    ) -> CallReturn:
        return cls(request=request, body=body, status=status, raw=raw)

    @classmethod
    def validation_error(
        cls, message: str, request: RequestBase | None = None
    ) -> CallReturn:
        return cls._failed(
            ErrorKind.VALIDATION, message, message, Origin.RETURN, request
        )

    @classmethod
    def provider_error(
        cls, raw: str, request: RequestBase | None = None
    ) -> CallReturn:
        return cls._failed(
            ErrorKind.PROVIDER,
            raw,
            f"Provider error: {raw}",
            Origin.PROVIDER,
            request,
        )

    @classmethod
    def network_error(
        cls,
        raw: str,
        request: RequestBase | None = None,
        *,
        code: MessageCode = MessageCode.UNKNOWN,
    ) -> CallReturn:
        return cls._failed(
            ErrorKind.NETWORK,
            raw,
            f"Network error: {raw}",
            Origin.NETWORK,
            request,
            code=code,
        )

    @classmethod
    def tool_error(cls, raw: str, request: RequestBase | None = None) -> CallReturn:
        return cls._failed(
            ErrorKind.TOOL, raw, f"Tool error: {raw}", Origin.TOOL, request
        )

    @classmethod
    def timeout_error(
        cls,
        message: str,
        request: RequestBase | None = None,
        *,
        origin: Origin = Origin.PROVIDER,
    ) -> CallReturn:
        return cls._failed(
            ErrorKind.TIMEOUT,
            message,
            message,
            origin,
            request,
            code=MessageCode.NETWORK_TIMEOUT,
        )

    @classmethod
    def _failed(
        cls,
        kind: ErrorKind,
        raw: str,
        text: str,
        origin: Origin,
        request: RequestBase | None,
        *,
        code: MessageCode = MessageCode.UNKNOWN,
    ) -> CallReturn:
        raw = raw or "Unknown error"
        return cls(
            request=request,
            body=BodyBuilder.create().add_error(text).build(),
            status=CallStatus.FINISHED,
            error_message=raw,
            error_kind=kind,
            runtime_messages=[RuntimeMessage.error(origin, text, code)],
        )

    # --- State ---

    @property
    def success(self) -> bool:
        return not self.error_message

    @property
    def messages(self) -> list[RuntimeMessage]:
        """Own, body and request messages; de-duplicated, errors first."""
        request_messages = self.request.messages if self.request is not None else []
        return merge_messages(
            self.runtime_messages, self.body.messages, request_messages
        )

    @property
    def has_errors(self) -> bool:
        return has_errors(self.messages)

    def add_message(self, message: RuntimeMessage) -> None:
        self.runtime_messages.append(message)

    def set_body(self, body: Body) -> None:
        """Replace the body and recompute metrics from it."""
        self.body = body
        self.metrics = body.metrics

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable summary for hosts and logs."""
        metrics = self.metrics or Metrics()
        last = self.body.last_text()
        return {
            "success": self.success,
            "status": str(self.status),
            "error_message": self.error_message,
            "error_kind": str(self.error_kind) if self.error_kind else None,
            "content": last.content if last is not None else None,
            "finish_reason": metrics.finish_reason,
            "provider": metrics.provider,
            "model": metrics.model,
            "total_tokens": metrics.total_tokens,
            "messages": [m.as_dict() for m in self.messages],
        }
