"""Result values for expected failure paths.

Schema parsing and unwrapping return ``Success``/``Failure`` rather than
raising, so callers branch on the variant instead of catching exceptions.
"""

from __future__ import annotations

import dataclasses
import typing

TSuccess = typing.TypeVar("TSuccess")
TFailure = typing.TypeVar("TFailure", bound=Exception)


@dataclasses.dataclass(frozen=True, slots=True)
class Success[TSuccess]:
    """A successful result."""

    value: TSuccess


@dataclasses.dataclass(frozen=True, slots=True)
class Failure[TFailure]:
    """A failed result, carrying the error."""

    error: TFailure


Result = Success[TSuccess] | Failure[TFailure]
