"""core/__init__.py"""
from core.cancellation import CancellationToken
from core.ddl_writer import DdlWriter
from core.errors import (
    ConversionError,
    CorruptSessionError,
    PartialSessionError,
    SchemaVersionError,
    SessionError,
    SourceParseError,
    TargetUnavailableError,
)
from core.mapper import map_conv
from core.pipeline import convert_from_session, convert_from_source
from core.report import ConversionReport, ReportAssembler
from core.session_store import SessionStore
from core.verifier import ExpressionVerifier

__all__ = [
    "CancellationToken",
    "ConversionError",
    "ConversionReport",
    "CorruptSessionError",
    "DdlWriter",
    "ExpressionVerifier",
    "PartialSessionError",
    "ReportAssembler",
    "SchemaVersionError",
    "SessionError",
    "SessionStore",
    "SourceParseError",
    "TargetUnavailableError",
    "convert_from_session",
    "convert_from_source",
    "map_conv",
]
