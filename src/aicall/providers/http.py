"""HTTP helpers for providers that speak JSON over server-sent events."""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import TYPE_CHECKING

import httpx

from aicall.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

log = logging.getLogger(__name__)

_DONE = "[DONE]"


def build_url(endpoint: str, base_url: str | None = None) -> str:
    """Join *endpoint* onto *base_url* unless it is already absolute."""
    endpoint = endpoint.strip()
    if endpoint.startswith(("http://", "https://")) or not base_url:
        return endpoint
    return f"{base_url.rstrip('/')}/{endpoint.lstrip('/')}"


@asynccontextmanager
async def open_sse_stream(
    client: httpx.AsyncClient,
    url: str,
    body: str,
    *,
    api_key: str | None,
) -> AsyncIterator[httpx.Response]:
    """POST *body* to *url* and hold the streamed response open.

    Raises ``ConfigurationError`` before any request is sent when no API key
    is available.
    """
    if not api_key:
        raise ConfigurationError(
            f"No API key configured for {url}",
            hint="Set the provider's API key in the environment or a .env file.",
        )
    headers = {
        "Accept": "text/event-stream",
        "Content-Type": "application/json",
        "Authorization": f"Bearer {api_key}",
    }
    async with client.stream("POST", url, headers=headers, content=body) as response:
        yield response


async def iter_sse_data(response: httpx.Response) -> AsyncIterator[str]:
    """Yield the payload of each ``data:`` line until ``[DONE]``.

    A non-success status raises ``httpx.HTTPStatusError`` before anything is
    yielded; the response body is read first so the error carries it.
    """
    if response.is_error:
        await response.aread()
        response.raise_for_status()

    async for line in response.aiter_lines():
        line = line.strip()
        if not line or not line.startswith("data:"):
            continue
        data = line[len("data:") :].strip()
        if data == _DONE:
            return
        if data:
            yield data
    log.debug("SSE stream ended without [DONE]")
