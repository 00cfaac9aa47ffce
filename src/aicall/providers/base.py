"""Provider protocol: the black-box adapter behind every call."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from aicall.errors import RegistrationError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from aicall.body import Body
    from aicall.config import Config
    from aicall.request import RequestBase
    from aicall.returns import CallReturn

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamingOptions:
    """Hints passed to a streaming adapter about delta granularity."""

    #: Merge small token fragments before emitting a delta.
    coalesce_tokens: bool = True
    coalesce_delay_ms: int = 40
    preferred_chunk_size: int = 24

    @classmethod
    def from_config(cls, config: Config) -> StreamingOptions:
        return cls(
            coalesce_tokens=config.coalesce_tokens,
            coalesce_delay_ms=config.coalesce_delay_ms,
            preferred_chunk_size=config.preferred_chunk_size,
        )


@runtime_checkable
class StreamingAdapter(Protocol):
    """Produces incremental returns for one request.

    Each yielded return replaces the previous one as the aggregate result, so
    adapters yield cumulative bodies, not fragments. Setting ``is_final`` on
    a return ends the stream.
    """

    def stream(
        self, request: RequestBase, options: StreamingOptions
    ) -> AsyncIterator[CallReturn]:
        """Yield returns in order until the provider finishes."""
        ...


@runtime_checkable
class Provider(Protocol):
    """Minimal provider protocol: call, encode, decode.

    Providers may also define ``streaming_adapter()`` returning a
    ``StreamingAdapter`` (or ``None``); see :func:`get_streaming_adapter`.
    """

    @property
    def name(self) -> str:
        """Provider id used in requests and registries."""
        ...

    async def call(self, request: RequestBase) -> CallReturn | None:
        """Execute the request and return the provider's result."""
        ...

    def encode(self, request: RequestBase) -> str:
        """Render the request in the provider's wire format."""
        ...

    def decode(self, raw: str) -> Body:
        """Parse a raw provider payload into a body."""
        ...


def get_streaming_adapter(provider: Provider) -> StreamingAdapter | None:
    """Return the provider's streaming adapter, if it offers one."""
    factory = getattr(provider, "streaming_adapter", None)
    if factory is None or not callable(factory):
        return None
    return factory()


class ProviderRegistry:
    """Explicitly registered providers, looked up case-insensitively."""

    def __init__(self, *providers: Provider) -> None:
        self._providers: dict[str, Provider] = {}
        self._streaming_disabled: set[str] = set()
        for provider in providers:
            self.register(provider)

    def register(self, provider: Provider, *, streaming_enabled: bool = True) -> None:
        name = (provider.name or "").strip()
        if not name:
            raise RegistrationError(
                "Provider registration needs a non-empty name",
                hint="Expose a `name` property on the provider, e.g. 'openai'.",
            )
        key = name.lower()
        if key in self._providers:
            log.debug("Replacing registered provider %r", name)
        self._providers[key] = provider
        self.set_streaming_enabled(name, streaming_enabled)

    def get(self, name: str | None) -> Provider | None:
        if not name:
            return None
        return self._providers.get(name.strip().lower())

    def names(self) -> list[str]:
        return [p.name for p in self._providers.values()]

    def set_streaming_enabled(self, name: str, enabled: bool) -> None:
        if enabled:
            self._streaming_disabled.discard(name.lower())
        else:
            self._streaming_disabled.add(name.lower())

    def is_streaming_enabled(self, name: str) -> bool:
        return name.lower() not in self._streaming_disabled
