"""Call and tool-call execution.

``CallExecutor`` runs the policy pipeline around a provider call and turns
every failure into a ``CallReturn``. No exception raised by a provider, a
streaming adapter or a tool crosses ``execute``/``execute_tool``;
cancellation of the executing task itself is the one thing re-raised.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from functools import partial
import logging
import socket
import time
from typing import TYPE_CHECKING

import httpx

from aicall.config import Config
from aicall.diagnostics import MessageCode, Origin
from aicall.policies import PolicyPipeline, default_pipeline
from aicall.providers.base import StreamingOptions
from aicall.returns import CallReturn, ErrorKind
from aicall.streaming import stream_to_completion
from aicall.telemetry import TelemetryContext, TelemetryReporter

if TYPE_CHECKING:
    from collections.abc import Callable

    from aicall.request import CallRequest, RequestBase
    from aicall.tool_call import ToolCallRequest

log = logging.getLogger(__name__)

CALL_TIMEOUT_MESSAGE = "Call cancelled or timed out"
TOOL_TIMEOUT_MESSAGE = "Tool execution cancelled or timed out"
NO_RESPONSE_MESSAGE = "Provider returned no response"
NO_TOOL_RESULT_MESSAGE = "Tool execution returned no result"

_TIMEOUT_ERRORS = (TimeoutError, httpx.TimeoutException)
_NETWORK_ERRORS = (httpx.HTTPError, ConnectionError, socket.gaierror)
_STATUS_CODES = {
    401: MessageCode.AUTHENTICATION_MISSING,
    403: MessageCode.AUTHORIZATION_FAILED,
    429: MessageCode.RATE_LIMITED,
}


class CallExecutor:
    """Executes requests and tool calls against injected registries.

    Example:
        executor = CallExecutor()
        result = await executor.execute(request)
        if not result.success:
            print(result.error_message)
    """

    def __init__(
        self,
        *,
        pipeline: PolicyPipeline | None = None,
        config: Config | None = None,
        reporters: tuple[TelemetryReporter, ...] = (),
    ) -> None:
        self.pipeline = pipeline if pipeline is not None else default_pipeline()
        self.config = config or Config()
        self._telemetry = TelemetryContext(*reporters)
        # Tool tasks that outlived their timeout; kept referenced until done.
        self._detached: set[asyncio.Task[CallReturn | None]] = set()

    # --- Model calls ---

    async def execute(
        self, request: CallRequest, *, stream: bool = False
    ) -> CallReturn:
        """Run policies, validate, call the provider and normalize the result."""
        if stream:
            request.wants_streaming = True
        ctx = self._telemetry
        with ctx("aicall.execute", provider=request.provider):
            try:
                result = await self._execute(request)
            except asyncio.CancelledError:
                if _current_task_cancelling():
                    raise
                result = CallReturn.timeout_error(CALL_TIMEOUT_MESSAGE, request)
            except Exception as e:
                result = self._failure_from_exception(
                    e, request, fallback=CallReturn.provider_error
                )
        if not result.success:
            ctx.count("aicall.errors", kind=str(result.error_kind))
        return result

    async def _execute(self, request: CallRequest) -> CallReturn:
        started = time.perf_counter()
        ctx = self._telemetry

        with ctx("aicall.request_policies"):
            await self.pipeline.apply_request_policies(request, self.config)

        ok, messages = request.is_valid()
        request.add_messages(messages)
        if not ok:
            log.debug(
                "Request to %s failed validation: %s",
                request.provider or "<none>",
                "; ".join(m.message for m in messages if m.is_error),
            )
            return CallReturn.validation_error("Request validation failed", request)

        provider = request.provider_instance
        if provider is None:
            return CallReturn.provider_error("Provider is missing", request)

        log.debug(
            "Calling %s model %r (streaming=%s)",
            request.provider,
            request.model,
            request.wants_streaming,
        )
        with ctx("aicall.provider_call"):
            if request.wants_streaming:
                options = StreamingOptions.from_config(self.config)
                result = await stream_to_completion(provider, request, options)
            else:
                result = await provider.call(request)

        empty = result is not None and result.body.is_empty and not result.raw
        if result is None or (empty and result.success):
            return CallReturn.provider_error(NO_RESPONSE_MESSAGE, request)
        if result.request is None:
            result.request = request
        if result.metrics is not None and not result.metrics.completion_time:
            result.metrics = replace(
                result.metrics, completion_time=time.perf_counter() - started
            )

        with ctx("aicall.response_policies"):
            await self.pipeline.apply_response_policies(result, request, self.config)
        return result

    # --- Tool calls ---

    async def execute_tool(self, tool_call: ToolCallRequest) -> CallReturn:
        """Validate and run the request's single pending tool call.

        The tool races a timer of ``timeout_seconds`` (default and bounds from
        config). When the timer wins, the tool task is left running and only
        the caller stops waiting; its eventual outcome is logged.
        """
        ctx = self._telemetry
        with ctx("aicall.execute_tool"):
            try:
                result = await self._execute_tool(tool_call)
            except asyncio.CancelledError:
                if _current_task_cancelling():
                    raise
                result = CallReturn.timeout_error(
                    TOOL_TIMEOUT_MESSAGE, tool_call, origin=Origin.TOOL
                )
            except Exception as e:
                result = self._failure_from_exception(
                    e, tool_call, fallback=CallReturn.tool_error, tool=True
                )
        if not result.success:
            ctx.count("aicall.tool_errors", kind=str(result.error_kind))
        return result

    async def _execute_tool(self, tool_call: ToolCallRequest) -> CallReturn:
        ok, messages = tool_call.is_valid()
        tool_call.add_messages(messages)
        if not ok:
            return CallReturn.validation_error("Tool call validation failed", tool_call)

        timeout_s = self.config.clamp_timeout(tool_call.timeout_seconds)
        pending = tool_call.pending_tool_call
        name = pending.name if pending is not None else "<none>"
        task = asyncio.ensure_future(tool_call.registries.tools.execute_tool(tool_call))
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout_s)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            log.warning(
                "Tool %r did not finish within %ss; detaching it", name, timeout_s
            )
            self._detach(task, name)
            return CallReturn.timeout_error(
                TOOL_TIMEOUT_MESSAGE, tool_call, origin=Origin.TOOL
            )

        result = task.result()
        if result is None or (result.body.is_empty and result.success):
            return CallReturn.tool_error(NO_TOOL_RESULT_MESSAGE, tool_call)
        if result.request is None:
            result.request = tool_call
        return result

    def _detach(self, task: asyncio.Task[CallReturn | None], name: str) -> None:
        self._detached.add(task)
        task.add_done_callback(partial(self._on_detached_done, name))

    def _on_detached_done(
        self, name: str, task: asyncio.Task[CallReturn | None]
    ) -> None:
        self._detached.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.warning("Detached tool %r failed after its timeout: %s", name, exc)
        else:
            log.debug("Detached tool %r finished after its timeout", name)

    # --- Failure classification ---

    def _failure_from_exception(
        self,
        exc: Exception,
        request: RequestBase,
        *,
        fallback: Callable[[str, RequestBase], CallReturn],
        tool: bool = False,
    ) -> CallReturn:
        kind, culprit = _classify(exc)
        raw = _raw_message(exc)
        label = "Tool" if tool else "Call"
        log.debug("%s failed (%s): %s", label, kind, raw, exc_info=exc)

        if kind is ErrorKind.TIMEOUT:
            if tool:
                return CallReturn.timeout_error(
                    TOOL_TIMEOUT_MESSAGE, request, origin=Origin.TOOL
                )
            return CallReturn.timeout_error(CALL_TIMEOUT_MESSAGE, request)
        if kind is ErrorKind.NETWORK:
            return CallReturn.network_error(raw, request, code=_network_code(culprit))
        return fallback(raw, request)


def _current_task_cancelling() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


def _classify(exc: BaseException) -> tuple[ErrorKind | None, BaseException]:
    """Classify *exc* by itself or by the exceptions it was raised from."""
    current: BaseException | None = exc
    seen: set[int] = set()
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, (*_TIMEOUT_ERRORS, asyncio.CancelledError)):
            return ErrorKind.TIMEOUT, current
        if isinstance(current, _NETWORK_ERRORS):
            return ErrorKind.NETWORK, current
        current = current.__cause__
    return None, exc


def _raw_message(exc: BaseException) -> str:
    """The wrapped exception's message when there is one, else *exc*'s own."""
    for candidate in (exc.__cause__, exc):
        if candidate is not None and str(candidate).strip():
            return str(candidate)
    return "Unknown error"


def _network_code(exc: BaseException) -> MessageCode:
    if isinstance(exc, httpx.HTTPStatusError):
        return _STATUS_CODES.get(exc.response.status_code, MessageCode.UNKNOWN)
    return MessageCode.UNKNOWN
