"""Provider protocol, registry and bundled providers."""

from aicall.providers.base import (
    Provider,
    ProviderRegistry,
    StreamingAdapter,
    StreamingOptions,
    get_streaming_adapter,
)
from aicall.providers.http import build_url, iter_sse_data, open_sse_stream
from aicall.providers.mock import MockProvider, MockStreamingAdapter

__all__ = [
    "MockProvider",
    "MockStreamingAdapter",
    "Provider",
    "ProviderRegistry",
    "StreamingAdapter",
    "StreamingOptions",
    "build_url",
    "get_streaming_adapter",
    "iter_sse_data",
    "open_sse_stream",
]
