"""Streaming execution and delta coalescing helpers."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from aicall.body import Metrics, TextInteraction
from aicall.providers.base import StreamingOptions, get_streaming_adapter
from aicall.returns import CallReturn, CallStatus

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator

    from aicall.providers.base import Provider
    from aicall.request import RequestBase

log = logging.getLogger(__name__)


def is_terminal(delta: CallReturn) -> bool:
    """Whether *delta* completes the stream.

    True for an explicit ``is_final`` flag, or when the newest interaction of
    the delta is a complete (non-partial, non-empty) text interaction.
    """
    if delta.is_final:
        return True
    new = delta.body.interactions_new
    if not new:
        return False
    last = new[-1]
    return (
        isinstance(last, TextInteraction)
        and not last.is_partial
        and bool(last.content.strip())
    )


async def stream_to_completion(
    provider: Provider, request: RequestBase, options: StreamingOptions
) -> CallReturn | None:
    """Drive the provider's streaming adapter and return the final aggregate.

    Without an adapter the provider's ``call`` is used instead. Each delta
    replaces the aggregate; the stream is closed as soon as a terminal delta
    arrives. An adapter failure becomes a provider error.
    """
    adapter = get_streaming_adapter(provider)
    if adapter is None:
        log.debug("Provider %s has no streaming adapter; using call()", provider.name)
        return await provider.call(request)

    aggregate: CallReturn | None = None
    deltas = 0
    stream = adapter.stream(request, options)
    try:
        async for delta in stream:
            if delta is None:
                continue
            deltas += 1
            aggregate = delta
            if is_terminal(delta):
                break
    except Exception as e:
        log.debug(
            "Streaming from %s failed after %d delta(s): %s", provider.name, deltas, e
        )
        return CallReturn.provider_error(f"Streaming failed: {e}", request)
    finally:
        aclose = getattr(stream, "aclose", None)
        if aclose is not None:
            await aclose()

    log.debug("Stream from %s finished after %d delta(s)", provider.name, deltas)
    if aggregate is not None:
        aggregate.status = CallStatus.FINISHED
    return aggregate


def coalesce_text(current: str, incoming: str) -> str:
    """Merge a text delta into the accumulated text.

    Providers differ: some send the whole text so far, others only the new
    piece. A delta that extends the accumulated text replaces it, a delta
    that is a prefix of it is stale and ignored, anything else is appended.
    """
    if not incoming:
        return current
    if not current or incoming.startswith(current):
        return incoming
    if current.startswith(incoming):
        return current
    return current + incoming


def coalesce_interaction(
    current: TextInteraction | None, incoming: TextInteraction
) -> TextInteraction:
    """Merge a streamed text interaction into the one being built."""
    if current is None:
        return incoming
    metrics = incoming.metrics if incoming.metrics != Metrics() else current.metrics
    return TextInteraction(
        agent=incoming.agent,
        content=coalesce_text(current.content, incoming.content),
        reasoning=coalesce_text(current.reasoning, incoming.reasoning),
        is_partial=incoming.is_partial,
        metrics=metrics,
    )


async def coalesce_fragments(
    fragments: AsyncIterable[str], options: StreamingOptions
) -> AsyncIterator[str]:
    """Batch small token fragments into larger chunks.

    A chunk is emitted once it reaches ``preferred_chunk_size`` characters or
    once ``coalesce_delay_ms`` has passed since its first fragment, checked as
    fragments arrive. Whatever remains is flushed when the source ends.
    """
    if not options.coalesce_tokens:
        async for fragment in fragments:
            if fragment:
                yield fragment
        return

    delay_s = options.coalesce_delay_ms / 1000
    buffer: list[str] = []
    size = 0
    started = 0.0
    async for fragment in fragments:
        if not fragment:
            continue
        if not buffer:
            started = time.monotonic()
        buffer.append(fragment)
        size += len(fragment)
        elapsed = time.monotonic() - started
        if size >= options.preferred_chunk_size or elapsed >= delay_s:
            yield "".join(buffer)
            buffer.clear()
            size = 0
    if buffer:
        yield "".join(buffer)
