"""core/dialects/__init__.py"""
from __future__ import annotations

from core.dialects.base import ProgressCallback, ReadContext, SourceDialect, SqlDumpDialect
from core.dialects.dynamodb import DynamoDBDialect
from core.dialects.mysql import MySQLDialect
from core.dialects.postgres import PostgresDialect
from models.profiles import Dialect, resolve_dialect

_DIALECTS: dict[Dialect, type[SourceDialect]] = {
    Dialect.MYSQL: MySQLDialect,
    Dialect.POSTGRESQL: PostgresDialect,
    Dialect.DYNAMODB: DynamoDBDialect,
}


def get_dialect(tag: str | Dialect) -> SourceDialect:
    """
    Return the dialect implementation for *tag* (``"mysql"``, ``"pg_dump"`` ...).

    Raises:
        ProfileError: If the tag names no supported dialect.
    """
    dialect = tag if isinstance(tag, Dialect) else resolve_dialect(tag)
    return _DIALECTS[dialect]()


__all__ = [
    "DynamoDBDialect",
    "MySQLDialect",
    "PostgresDialect",
    "ProgressCallback",
    "ReadContext",
    "SourceDialect",
    "SqlDumpDialect",
    "get_dialect",
]
