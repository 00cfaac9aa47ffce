"""Policy pipeline and the default request/response policies."""

from aicall.policies.base import (
    PolicyContext,
    PolicyPipeline,
    RequestPolicy,
    ResponsePolicy,
)
from aicall.policies.request import (
    ContextInjectionPolicy,
    RequestTimeoutPolicy,
    SchemaAttachPolicy,
    ToolFilterNormalizationPolicy,
)
from aicall.policies.response import (
    CompatibilityDecodePolicy,
    FinishReason,
    FinishReasonNormalizePolicy,
    SchemaUnwrapPolicy,
    SchemaValidationPolicy,
    normalize_finish_reason,
)


def default_pipeline() -> PolicyPipeline:
    """Build the standard pipeline.

    Requests: timeout, tool filter, context injection, schema attach.
    Responses: decode, finish reason, schema unwrap, schema validation.
    """
    return PolicyPipeline(
        request_policies=[
            RequestTimeoutPolicy(),
            ToolFilterNormalizationPolicy(),
            ContextInjectionPolicy(),
            SchemaAttachPolicy(),
        ],
        response_policies=[
            CompatibilityDecodePolicy(),
            FinishReasonNormalizePolicy(),
            SchemaUnwrapPolicy(),
            SchemaValidationPolicy(),
        ],
    )


__all__ = [
    "CompatibilityDecodePolicy",
    "ContextInjectionPolicy",
    "FinishReason",
    "FinishReasonNormalizePolicy",
    "PolicyContext",
    "PolicyPipeline",
    "RequestPolicy",
    "RequestTimeoutPolicy",
    "ResponsePolicy",
    "SchemaAttachPolicy",
    "SchemaUnwrapPolicy",
    "SchemaValidationPolicy",
    "ToolFilterNormalizationPolicy",
    "default_pipeline",
    "normalize_finish_reason",
]
