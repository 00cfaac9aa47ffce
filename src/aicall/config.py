"""Configuration: frozen Config with validated execution bounds."""

from __future__ import annotations

from dataclasses import dataclass, fields
import os
from typing import Any

from dotenv import load_dotenv

from aicall.errors import ConfigurationError

# Environment variable per Config field; values are parsed with the field's type.
_ENV_VARS: dict[str, str] = {
    "default_timeout_s": "AICALL_DEFAULT_TIMEOUT_S",
    "min_timeout_s": "AICALL_MIN_TIMEOUT_S",
    "max_timeout_s": "AICALL_MAX_TIMEOUT_S",
    "coalesce_tokens": "AICALL_COALESCE_TOKENS",
    "coalesce_delay_ms": "AICALL_COALESCE_DELAY_MS",
    "preferred_chunk_size": "AICALL_PREFERRED_CHUNK_SIZE",
}

_TRUTHY = frozenset({"1", "true", "yes", "on"})


@dataclass(frozen=True)
class Config:
    """Immutable execution settings.

    Timeouts bound both provider calls (through the request timeout policy)
    and tool execution. A request timeout of zero or less means "use the
    default".

    Example:
        config = Config(default_timeout_s=60)
    """

    default_timeout_s: int = 120
    min_timeout_s: int = 1
    max_timeout_s: int = 600
    #: Streaming: merge small token fragments before emitting a delta.
    coalesce_tokens: bool = True
    coalesce_delay_ms: int = 40
    preferred_chunk_size: int = 24

    def __post_init__(self) -> None:
        """Validate bounds."""
        if self.min_timeout_s < 1:
            raise ConfigurationError(
                f"min_timeout_s must be ≥ 1, got {self.min_timeout_s}",
                hint="Calls need at least one second to complete.",
            )
        if self.max_timeout_s < self.min_timeout_s:
            raise ConfigurationError(
                f"max_timeout_s ({self.max_timeout_s}) must be ≥ "
                f"min_timeout_s ({self.min_timeout_s})",
                hint="Raise max_timeout_s or lower min_timeout_s.",
            )
        if not self.min_timeout_s <= self.default_timeout_s <= self.max_timeout_s:
            raise ConfigurationError(
                f"default_timeout_s must lie in [{self.min_timeout_s}, "
                f"{self.max_timeout_s}], got {self.default_timeout_s}",
                hint="Pick a default inside the configured timeout bounds.",
            )
        if self.coalesce_delay_ms < 0:
            raise ConfigurationError(
                f"coalesce_delay_ms must be ≥ 0, got {self.coalesce_delay_ms}",
                hint="Use 0 to flush fragments as soon as they reach the chunk size.",
            )
        if self.preferred_chunk_size < 1:
            raise ConfigurationError(
                f"preferred_chunk_size must be ≥ 1, got {self.preferred_chunk_size}",
                hint="This is the character count a coalesced delta aims for.",
            )

    def clamp_timeout(self, seconds: int | float | None) -> int:
        """Apply the default for non-positive values, then clamp to bounds."""
        if seconds is None or seconds <= 0:
            return self.default_timeout_s
        return int(max(self.min_timeout_s, min(seconds, self.max_timeout_s)))


def _parse(name: str, raw: str, kind: type) -> Any:
    if kind is bool:
        return raw.strip().lower() in _TRUTHY
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"{_ENV_VARS[name]} must be an integer, got {raw!r}",
            hint=f"Unset {_ENV_VARS[name]} or give it a whole number.",
        ) from e


def resolve_config(**overrides: Any) -> Config:
    """Build a Config from ``AICALL_*`` environment variables and overrides.

    A ``.env`` file is loaded first when present. Explicit keyword overrides
    win over the environment.
    """
    load_dotenv()
    kinds = {
        f.name: (bool if f.type in ("bool", bool) else int) for f in fields(Config)
    }
    values: dict[str, Any] = {}
    for name, env_var in _ENV_VARS.items():
        raw = os.environ.get(env_var)
        if raw is not None and raw.strip():
            values[name] = _parse(name, raw, kinds[name])
    unknown = set(overrides) - set(kinds)
    if unknown:
        raise ConfigurationError(
            f"Unknown config field(s): {', '.join(sorted(unknown))}",
            hint=f"Known fields: {', '.join(sorted(kinds))}",
        )
    values.update(overrides)
    return Config(**values)
