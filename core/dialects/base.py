"""
core/dialects/base.py
---------------------
The source-dialect capability interface.

A dialect knows how to *read* a source into a :class:`~models.schema.Conv`
(``parse``) and how to *map* one of its types to the target
(``map_type``).  The pipeline picks one by tag and never branches on the
dialect itself.

Design Decision:
    One small abstract base plus a shared implementation for SQL dumps,
    rather than a deep class tree: MySQL and PostgreSQL only differ in
    their lexing flags, their live catalog queries and their type tables.
"""
from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from typing import Callable

from core.cancellation import CancellationToken
from core.ddl_parser import (
    AlterTableDef,
    DdlParser,
    EnumTypeDef,
    IndexDef,
    NamespaceDef,
    TableDef,
    UnsupportedDef,
)
from core.errors import SourceParseError
from core.schema_builder import SchemaBuilder
from core.sql_lexer import LexError, split_statements
from core.type_mapper import TypeMapping
from logger import get_logger
from models.issues import IssueStage
from models.profiles import SourceMode, SourceProfile
from models.schema import Conv, Table, TypeDescriptor

log = get_logger(__name__)

ProgressCallback = Callable[[int, str], None]


class SourceDialect(ABC):
    """Capability interface implemented once per source dialect."""

    tag: str = ""
    default_namespace: str | None = None

    def parse(
        self,
        profile: SourceProfile,
        conv: Conv | None = None,
        cancel: CancellationToken | None = None,
        progress_cb: ProgressCallback | None = None,
    ) -> Conv:
        """
        Read the source described by *profile* into *conv*.

        Args:
            profile:     Validated source profile.
            conv:        Model to populate (a fresh one when omitted).
            cancel:      Checked between tables.
            progress_cb: Called after each table with ``(tables_read, table_name)``.

        Returns:
            The populated model; partial (with one ``aborted`` issue) when
            *cancel* fired.

        Raises:
            SourceParseError: If the source is unreadable or malformed.
        """
        conv = conv if conv is not None else Conv()
        conv.source_dialect = self.tag
        conv.audit.source_dialect = self.tag
        builder = SchemaBuilder(
            conv,
            policy=profile.collision,
            default_namespace=self._default_namespace(profile),
        )
        reader = ReadContext(builder, cancel, progress_cb)
        if profile.mode is SourceMode.LIVE:
            self._read_live(profile, reader)
        else:
            self._read_file(profile, reader)
        builder.finish()
        log.info("Read %d table(s) from %s source.", len(conv.tables), self.tag)
        return conv

    def _default_namespace(self, profile: SourceProfile) -> str | None:
        return self.default_namespace

    @abstractmethod
    def _read_file(self, profile: SourceProfile, reader: "ReadContext") -> None:
        """Populate the model from ``profile.file`` (piped stdin for dumps without one)."""

    def _read_live(self, profile: SourceProfile, reader: "ReadContext") -> None:
        raise SourceParseError(f"{self.tag} sources cannot be read from a live connection.")

    @abstractmethod
    def map_type(self, source: TypeDescriptor) -> TypeMapping:
        """Map one source type to the target type system."""


class ReadContext:
    """
    Wraps a :class:`SchemaBuilder` with the between-table cancellation check
    and progress reporting every reader needs.
    """

    def __init__(
        self,
        builder: SchemaBuilder,
        cancel: CancellationToken | None,
        progress_cb: ProgressCallback | None,
    ) -> None:
        self.builder = builder
        self._cancel = cancel
        self._progress_cb = progress_cb
        self.count = 0

    def should_stop(self) -> bool:
        """True (and the abort recorded) once cancellation was requested."""
        if self._cancel is None or not self._cancel.is_cancelled():
            return False
        reason = self._cancel.reason or "cancelled"
        self.builder.conv.mark_aborted(
            f"Source reading aborted after {self.count} table(s): {reason}.", IssueStage.PARSE
        )
        log.warning("Source reading cancelled after %d table(s).", self.count)
        return True

    def add_table(self, definition: TableDef) -> Table | None:
        table = self.builder.add_table(definition)
        self.count += 1
        if self._progress_cb is not None:
            self._progress_cb(self.count, table.name if table else definition.name.name)
        return table


class SqlDumpDialect(SourceDialect):
    """Shared dump reader for the relational dialects."""

    def __init__(self) -> None:
        self.parser = DdlParser(self.tag)

    def _read_file(self, profile: SourceProfile, reader: ReadContext) -> None:
        if profile.file is None:
            # no file: the dump is piped in
            data = sys.stdin.buffer.read()
        else:
            try:
                data = profile.file.read_bytes()
            except OSError as exc:
                raise SourceParseError(f"Cannot read dump file: {exc}", obj=str(profile.file)) from exc
        reader.builder.conv.audit.bytes_read += len(data)
        log.info("Reading %s dump %s (%d bytes)", self.tag, profile.file or "from stdin", len(data))
        self.read_dump(data.decode("utf-8", errors="replace"), reader)

    def read_dump(self, text: str, reader: ReadContext) -> None:
        """Feed every statement of *text* to the builder, in file order."""
        builder = reader.builder
        try:
            statements = list(split_statements(text, self.tag))
        except LexError as exc:
            raise SourceParseError(f"Cannot tokenize dump: {exc}") from exc

        for stmt in statements:
            item = self.parser.parse_statement(stmt)
            if item is None:
                continue
            if isinstance(item, TableDef):
                if reader.should_stop():
                    return
                reader.add_table(item)
            elif isinstance(item, AlterTableDef):
                builder.apply_alter(item)
            elif isinstance(item, IndexDef):
                builder.apply_index(item)
            elif isinstance(item, NamespaceDef):
                builder.set_namespace(item.name)
            elif isinstance(item, EnumTypeDef):
                builder.register_enum(item.name)
            elif isinstance(item, UnsupportedDef):
                log.info("Unsupported statement at line %d: %s", item.line, item.head)
                builder.unsupported_statement(item.head, item.line)
