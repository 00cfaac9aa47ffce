"""Exception hierarchy for aicall.

Calls never raise these: provider, network and tool failures travel back as
``CallReturn`` values. The exceptions below signal library misuse (bad
configuration, broken registrations) and are raised eagerly.
"""

from __future__ import annotations


class AicallError(Exception):
    """Base exception for all aicall errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(AicallError):
    """Configuration validation or resolution failed."""


class RegistrationError(AicallError):
    """A provider, model, tool or context provider could not be registered."""


class InternalError(AicallError):
    """An aicall internal error (bug) or invariant violation."""


class SchemaError(AicallError):
    """A JSON schema or JSON document could not be parsed or validated.

    Carried inside ``Failure`` values by :mod:`aicall.schema`; not raised
    across the call boundary.
    """
