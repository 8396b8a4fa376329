"""
core/errors.py
--------------
Hard-failure exception hierarchy for the conversion engine.

Anything that prevents producing a structurally valid model is raised as
one of these; imperfect-but-usable conversions are recorded as ``Issue``
objects on the model instead.
"""
from __future__ import annotations


class ConversionError(Exception):
    """Base class for every hard failure raised by the engine."""


class SourceParseError(ConversionError):
    """
    Raised when the source schema is malformed or unreadable.

    Attributes:
        obj: The offending statement or object name, when known.
    """

    def __init__(self, message: str, obj: str | None = None) -> None:
        self.obj = obj
        if obj:
            message = f"{message} [in: {obj[:200]}]"
        super().__init__(message)


class SessionError(ConversionError):
    """Base class for unusable session files."""


class SchemaVersionError(SessionError):
    """Raised when a session file was written by a newer format version."""


class CorruptSessionError(SessionError):
    """Raised when a session file is structurally invalid."""


class PartialSessionError(SessionError):
    """Raised when saving an aborted model without ``allow_partial``."""


class TargetUnavailableError(ConversionError):
    """Raised when the verification endpoint cannot be reached."""
