"""Policy pipeline: ordered middleware around the provider call.

Request policies run before validation and may rewrite the request.
Response policies run after the provider returns and may rewrite the result.
A policy that raises never aborts the call; its failure is recorded as a
warning and the remaining policies still run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import TYPE_CHECKING, Protocol

from aicall.config import Config
from aicall.diagnostics import Origin, RuntimeMessage

if TYPE_CHECKING:
    from collections.abc import Sequence

    from aicall.request import CallRequest
    from aicall.returns import CallReturn

log = logging.getLogger(__name__)


@dataclass
class PolicyContext:
    """What a policy may read and rewrite."""

    request: CallRequest
    response: CallReturn | None = None
    config: Config = field(default_factory=Config)
    #: Set once the response text has been unwrapped to the caller's schema.
    schema_unwrapped: bool = False


class RequestPolicy(Protocol):
    async def apply(self, context: PolicyContext) -> None: ...


class ResponsePolicy(Protocol):
    async def apply(self, context: PolicyContext) -> None: ...


class PolicyPipeline:
    """Runs request and response policies strictly in order."""

    def __init__(
        self,
        request_policies: Sequence[RequestPolicy] = (),
        response_policies: Sequence[ResponsePolicy] = (),
    ) -> None:
        self.request_policies: list[RequestPolicy] = list(request_policies)
        self.response_policies: list[ResponsePolicy] = list(response_policies)

    async def apply_request_policies(
        self, request: CallRequest, config: Config | None = None
    ) -> None:
        context = PolicyContext(request=request, config=config or Config())
        for policy in self.request_policies:
            try:
                await policy.apply(context)
            except Exception as e:
                name = type(policy).__name__
                log.warning("Request policy %s failed: %s", name, e, exc_info=True)
                request.add_message(
                    RuntimeMessage.warning(
                        Origin.REQUEST, f"Request policy {name} failed: {e}"
                    )
                )

    async def apply_response_policies(
        self,
        response: CallReturn,
        request: CallRequest,
        config: Config | None = None,
    ) -> None:
        context = PolicyContext(
            request=request, response=response, config=config or Config()
        )
        for policy in self.response_policies:
            try:
                await policy.apply(context)
            except Exception as e:
                name = type(policy).__name__
                log.warning("Response policy %s failed: %s", name, e, exc_info=True)
                response.add_message(
                    RuntimeMessage.warning(
                        Origin.RETURN, f"Response policy {name} failed: {e}"
                    )
                )
