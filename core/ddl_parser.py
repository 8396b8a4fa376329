"""
core/ddl_parser.py
------------------
Parses DDL statements from MySQL / PostgreSQL dumps into plain definitions.

Supported statements::

    CREATE TABLE t (col TYPE [constraints], ..., [table constraints]) [options]
    ALTER TABLE [ONLY] t ADD [CONSTRAINT c] PRIMARY KEY / UNIQUE / FOREIGN KEY / CHECK ...
    ALTER TABLE [ONLY] t ALTER COLUMN c SET DEFAULT nextval(...)
    CREATE [UNIQUE] INDEX i ON t [USING m] (cols)
    CREATE TYPE t AS ENUM (...)
    USE db / SET search_path = ns, ...

Design Decisions:
    * The parser is pure: it returns definitions and never touches the
      model, so namespace flattening and id allocation stay in one place
      (:mod:`core.schema_builder`).
    * Statements that change the schema in ways the model cannot hold
      (views, triggers, routines) come back as :class:`UnsupportedDef`
      so the reader can record them; data statements return ``None``.
    * Anything the tokenizer or parser cannot follow inside a table
      statement raises :class:`SourceParseError` naming the statement.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from core.errors import SourceParseError
from core.sql_lexer import LexError, Statement, Token, TokenKind, TokenStream, tokenize
from models.schema import SortOrder, TypeDescriptor


class ConstraintKind(str, Enum):
    PRIMARY_KEY = "primary_key"
    UNIQUE = "unique"
    INDEX = "index"
    FOREIGN_KEY = "foreign_key"
    CHECK = "check"


@dataclass(frozen=True)
class QualifiedName:
    namespace: str | None
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}.{self.name}" if self.namespace else self.name


@dataclass
class KeyPart:
    column: str
    order: SortOrder = SortOrder.ASC


@dataclass
class ColumnDef:
    name: str
    type: TypeDescriptor
    nullable: bool = True
    default: str | None = None
    generated: str | None = None
    stored: bool = True
    auto_increment: bool = False
    on_update: str | None = None


@dataclass
class ConstraintDef:
    """
    A key, index, foreign key or check, inline or table-level.

    ``problem`` marks a definition the target cannot express at all (it is
    dropped with an issue); ``note`` marks one kept with a lossy change.
    """
    kind: ConstraintKind
    name: str | None = None
    keys: list[KeyPart] = field(default_factory=list)
    ref_table: QualifiedName | None = None
    ref_columns: list[str] = field(default_factory=list)
    on_delete: str = "NO ACTION"
    on_update: str = "NO ACTION"
    expression: str | None = None
    problem: str | None = None
    note: str | None = None


@dataclass
class TableDef:
    name: QualifiedName
    columns: list[ColumnDef] = field(default_factory=list)
    constraints: list[ConstraintDef] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)


@dataclass
class AlterTableDef:
    table: QualifiedName
    columns: list[ColumnDef] = field(default_factory=list)
    constraints: list[ConstraintDef] = field(default_factory=list)
    auto_increment_columns: list[str] = field(default_factory=list)


@dataclass
class IndexDef:
    table: QualifiedName
    constraint: ConstraintDef


@dataclass
class NamespaceDef:
    name: str


@dataclass
class EnumTypeDef:
    name: QualifiedName


@dataclass
class UnsupportedDef:
    head: str
    line: int


DdlItem = TableDef | AlterTableDef | IndexDef | NamespaceDef | EnumTypeDef | UnsupportedDef

# Words that end a DEFAULT / ON UPDATE expression inside a column definition.
_COLUMN_STOP_WORDS = frozenset({
    "NOT", "NULL", "PRIMARY", "UNIQUE", "CHECK", "REFERENCES", "CONSTRAINT",
    "AUTO_INCREMENT", "COMMENT", "GENERATED", "ON", "COLLATE", "CHARACTER",
    "KEY", "VISIBLE", "INVISIBLE", "STORED", "VIRTUAL", "AS", "DEFAULT",
    "SRID", "COLUMN_FORMAT", "STORAGE",
})

_MULTIWORD_TYPES = {
    "DOUBLE": ("PRECISION",),
    "CHARACTER": ("VARYING",),
    "CHAR": ("VARYING",),
    "BIT": ("VARYING",),
    "NATIONAL": ("CHARACTER", "CHAR", "VARCHAR"),
}

_UNSUPPORTED_CREATES = (
    "VIEW", "TRIGGER", "FUNCTION", "PROCEDURE", "RULE", "EVENT",
    "AGGREGATE", "OPERATOR", "POLICY", "MATERIALIZED",
)

_SERIAL_TYPES = frozenset({"smallserial", "serial", "bigserial", "serial2", "serial4", "serial8"})

_FK_ACTIONS = ("CASCADE", "RESTRICT", "SET NULL", "SET DEFAULT", "NO ACTION")


class DdlParser:
    """
    Stateless statement parser for one source dialect.

    Args:
        dialect: ``"mysql"`` or ``"postgresql"``; affects lexing and the
                 handful of dialect-only clauses.
    """

    def __init__(self, dialect: str) -> None:
        self.dialect = dialect

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def parse_statement(self, stmt: Statement) -> DdlItem | None:
        """
        Parse one statement.

        Raises:
            SourceParseError: If a schema statement cannot be parsed.
        """
        ts = TokenStream(stmt.tokens, stmt.text)
        try:
            if ts.accept_word("CREATE"):
                return self._parse_create(ts, stmt)
            if ts.accept_words("ALTER", "TABLE"):
                return self._parse_alter_table(ts)
            if ts.accept_word("USE"):
                return NamespaceDef(ts.expect_name())
            if ts.accept_word("SET") and ts.accept_word("SEARCH_PATH"):
                if not ts.accept_punct("="):
                    ts.accept_word("TO")
                tok = ts.peek()
                if tok is not None and tok.is_name:
                    return NamespaceDef(tok.value)
        except LexError as exc:
            raise SourceParseError(f"Cannot parse {stmt.head or 'statement'} at line {stmt.line}: {exc}",
                                   obj=stmt.text) from exc
        return None

    def parse_type(self, text: str) -> TypeDescriptor:
        """Parse a standalone type such as ``decimal(10,2) unsigned`` from a catalog."""
        ts = TokenStream(list(tokenize(text, self.dialect)), text)
        try:
            return self._parse_type(ts)
        except LexError as exc:
            raise SourceParseError(f"Cannot parse column type: {exc}", obj=text) from exc

    def parse_constraint(self, text: str, name: str | None = None) -> list[ConstraintDef]:
        """
        Parse a table-level constraint body such as ``FOREIGN KEY (a) REFERENCES t(id)``.

        Catalog functions (``pg_get_constraintdef``) return exactly this form.
        """
        ts = TokenStream(list(tokenize(text, self.dialect)), text)
        holder = TableDef(name=QualifiedName(None, ""))
        try:
            self._parse_table_element(ts, holder)
        except LexError as exc:
            raise SourceParseError(f"Cannot parse constraint: {exc}", obj=text) from exc
        for constraint in holder.constraints:
            constraint.name = constraint.name or name
        return holder.constraints

    def _parse_create(self, ts: TokenStream, stmt: Statement) -> DdlItem | None:
        ts.accept_words("OR", "REPLACE")
        ts.accept_word("TEMPORARY", "TEMP", "UNLOGGED", "GLOBAL", "LOCAL")
        ts.accept_word("TEMPORARY", "TEMP")
        if ts.accept_word("TABLE"):
            return self._parse_create_table(ts, stmt)
        unique = ts.accept_word("UNIQUE") is not None
        if ts.accept_word("INDEX"):
            return self._parse_create_index(ts, unique)
        if ts.accept_word("TYPE"):
            name = self._qualified_name(ts)
            if ts.accept_word("AS") and ts.accept_word("ENUM"):
                return EnumTypeDef(name)
            return UnsupportedDef(stmt.head, stmt.line)
        # mysqldump puts ALGORITHM= / DEFINER= / SQL SECURITY before the object kind
        for tok in stmt.tokens[ts.pos:ts.pos + 16]:
            if tok.is_word(*_UNSUPPORTED_CREATES):
                return UnsupportedDef(f"CREATE {tok.value.upper()}", stmt.line)
        return None

    # ------------------------------------------------------------------
    # CREATE TABLE
    # ------------------------------------------------------------------

    def _parse_create_table(self, ts: TokenStream, stmt: Statement) -> TableDef | UnsupportedDef:
        ts.accept_words("IF", "NOT", "EXISTS")
        table = TableDef(name=self._qualified_name(ts))
        if ts.accept_word("PARTITION", "AS", "LIKE"):
            return UnsupportedDef(stmt.head, stmt.line)
        ts.expect_punct("(")
        if ts.accept_punct(")"):
            return table
        while True:
            self._parse_table_element(ts, table)
            if ts.accept_punct(","):
                continue
            ts.expect_punct(")")
            break
        if any(t.is_word("PARTITION") for t in stmt.tokens[ts.pos:]):
            table.notes.append("table partitioning is not carried over")
        return table

    def _parse_table_element(self, ts: TokenStream, table: TableDef) -> None:
        name = None
        if ts.accept_word("CONSTRAINT"):
            tok = ts.peek()
            if tok is not None and tok.is_name and not tok.is_word(
                "PRIMARY", "UNIQUE", "FOREIGN", "CHECK"
            ):
                name = ts.expect_name()
        tok = ts.peek()
        if tok is None:
            raise LexError("Unexpected end of table definition.")

        if tok.is_word("PRIMARY"):
            ts.next()
            ts.accept_word("KEY")
            self._skip_index_type(ts)
            table.constraints.append(
                ConstraintDef(ConstraintKind.PRIMARY_KEY, name, self._key_list(ts))
            )
        elif tok.is_word("UNIQUE"):
            ts.next()
            ts.accept_word("KEY", "INDEX")
            name = self._optional_index_name(ts) or name
            self._skip_index_type(ts)
            keys, problem = self._index_keys(ts)
            table.constraints.append(
                ConstraintDef(ConstraintKind.UNIQUE, name, keys, problem=problem)
            )
        elif tok.is_word("KEY", "INDEX", "FULLTEXT", "SPATIAL"):
            ts.next()
            special = tok.value.lower() if tok.is_word("FULLTEXT", "SPATIAL") else None
            if special:
                ts.accept_word("KEY", "INDEX")
            name = self._optional_index_name(ts)
            self._skip_index_type(ts)
            keys, problem = self._index_keys(ts)
            if special:
                problem = f"{special} indexes are not supported"
            table.constraints.append(ConstraintDef(ConstraintKind.INDEX, name, keys, problem=problem))
        elif tok.is_word("FOREIGN"):
            ts.next()
            ts.accept_word("KEY")
            name = self._optional_index_name(ts) or name
            keys = self._key_list(ts)
            fk = self._references(ts, name, keys)
            table.constraints.append(fk)
        elif tok.is_word("CHECK"):
            ts.next()
            table.constraints.append(self._check(ts, name))
        elif tok.is_word("LIKE") or tok.is_word("EXCLUDE"):
            table.notes.append(f"{tok.value.upper()} clause in table definition is not supported")
            ts.skip_until(",", ")")
        else:
            self._parse_column(ts, table)

    def _parse_column(self, ts: TokenStream, table: TableDef) -> None:
        col_name = ts.expect_name()
        col = ColumnDef(name=col_name, type=self._parse_type(ts))
        if col.type.name in _SERIAL_TYPES:
            col.auto_increment = True
            col.nullable = False
        pending_name: str | None = None
        while not ts.at_end():
            tok = ts.peek()
            if tok.is_punct(",", ")"):
                break
            if ts.accept_words("NOT", "NULL"):
                col.nullable = False
            elif ts.accept_word("NULL"):
                col.nullable = True
            elif ts.accept_word("CONSTRAINT"):
                pending_name = ts.expect_name()
                continue
            elif ts.accept_word("DEFAULT"):
                text = self._expression_until_stop(ts)
                if text.upper().startswith("NEXTVAL("):
                    col.auto_increment = True
                elif text.upper() != "NULL":
                    col.default = text
            elif ts.accept_words("PRIMARY", "KEY"):
                col.nullable = False
                table.constraints.append(
                    ConstraintDef(ConstraintKind.PRIMARY_KEY, pending_name, [KeyPart(col_name)])
                )
            elif ts.accept_word("UNIQUE"):
                ts.accept_word("KEY")
                table.constraints.append(
                    ConstraintDef(ConstraintKind.UNIQUE, pending_name, [KeyPart(col_name)])
                )
            elif ts.accept_word("KEY"):
                table.constraints.append(
                    ConstraintDef(ConstraintKind.PRIMARY_KEY, pending_name, [KeyPart(col_name)])
                )
            elif ts.accept_word("AUTO_INCREMENT", "AUTOINCREMENT"):
                col.auto_increment = True
            elif ts.accept_word("CHECK"):
                table.constraints.append(self._check(ts, pending_name))
            elif tok.is_word("REFERENCES"):
                table.constraints.append(self._references(ts, pending_name, [KeyPart(col_name)]))
            elif ts.accept_word("GENERATED"):
                self._generated(ts, col)
            elif ts.peek().is_word("AS") and ts.peek(1) is not None and ts.peek(1).is_punct("("):
                ts.next()
                self._generated_expression(ts, col)
            elif ts.accept_words("ON", "UPDATE"):
                col.on_update = self._expression_until_stop(ts)
            elif ts.accept_word("COMMENT", "COLLATE", "SRID", "COLUMN_FORMAT", "STORAGE"):
                ts.next()
            elif ts.accept_words("CHARACTER", "SET"):
                ts.next()
            else:
                ts.next()
            pending_name = None
        table.columns.append(col)

    def _generated(self, ts: TokenStream, col: ColumnDef) -> None:
        ts.accept_word("ALWAYS")
        if ts.accept_words("BY", "DEFAULT"):
            pass
        if not ts.accept_word("AS"):
            raise LexError("Expected AS after GENERATED.")
        if ts.accept_word("IDENTITY"):
            col.auto_increment = True
            if ts.peek() is not None and ts.peek().is_punct("("):
                ts.skip_parenthesized()
            return
        self._generated_expression(ts, col)

    def _generated_expression(self, ts: TokenStream, col: ColumnDef) -> None:
        start, end = ts.skip_parenthesized()
        col.generated = ts.source[start:end].strip()
        if ts.accept_word("VIRTUAL"):
            col.stored = False
        else:
            ts.accept_word("STORED", "PERSISTENT")

    def _expression_until_stop(self, ts: TokenStream) -> str:
        """Consume a DEFAULT-style expression up to the next column keyword."""
        first = ts.peek()
        if first is None:
            raise LexError("Missing expression.")
        start = first.start
        end = first.end
        depth = 0
        consumed = 0
        while not ts.at_end():
            tok = ts.peek()
            if depth == 0:
                if tok.is_punct(",", ")"):
                    break
                # a cast target such as ::character varying is part of the expression
                prev = ts.peek(-1)
                after_cast = prev is not None and prev.is_punct("::")
                if consumed and not after_cast and tok.is_word(*_COLUMN_STOP_WORDS):
                    break
            if tok.is_punct("("):
                depth += 1
            elif tok.is_punct(")"):
                depth -= 1
            end = tok.end
            ts.next()
            consumed += 1
        return ts.source[start:end].strip()

    # ------------------------------------------------------------------
    # Types
    # ------------------------------------------------------------------

    def _parse_type(self, ts: TokenStream) -> TypeDescriptor:
        first = ts.peek()
        if first is None or not first.is_name:
            raise LexError("Expected a column type.")
        name = ts.expect_name()
        while ts.accept_punct("."):
            name = ts.expect_name()  # schema-qualified user type
        upper = name.upper()
        for follower in _MULTIWORD_TYPES.get(upper, ()):
            if ts.accept_word(follower):
                name = f"{name} {follower.lower()}"
                if upper == "NATIONAL":
                    ts.accept_word("VARYING")
                break

        params: list[int] = []
        modifiers: list[str] = []
        last = first
        tok = ts.peek()
        if tok is not None and tok.is_punct("("):
            ts.next()
            while True:
                item = ts.next()
                if item.is_punct(")"):
                    last = item
                    break
                if item.kind is TokenKind.NUMBER:
                    params.append(int(float(item.value)))
                elif item.kind is TokenKind.STRING:
                    modifiers.append(f"value:{item.value}")
                elif item.is_word("MAX"):
                    params.append(-1)
        else:
            last = ts.peek(-1) or first

        while True:
            if ts.accept_words("WITH", "TIME", "ZONE"):
                modifiers.append("with time zone")
            elif ts.accept_words("WITHOUT", "TIME", "ZONE"):
                modifiers.append("without time zone")
            elif ts.peek() is not None and ts.peek().is_word("UNSIGNED", "SIGNED", "ZEROFILL"):
                modifiers.append(ts.next().value.lower())
            else:
                break
            last = ts.peek(-1)

        array_dims = 0
        while True:
            if ts.accept_punct("["):
                while not ts.next().is_punct("]"):
                    pass
                array_dims += 1
            elif ts.accept_word("ARRAY"):
                array_dims += 1
            else:
                break
            last = ts.peek(-1)

        raw = ts.source[first.start:last.end] if ts.source else name
        return TypeDescriptor(
            name=name.lower(),
            params=params,
            array_dims=array_dims,
            modifiers=modifiers,
            raw=raw,
        )

    # ------------------------------------------------------------------
    # Keys, references, checks
    # ------------------------------------------------------------------

    def _optional_index_name(self, ts: TokenStream) -> str | None:
        tok = ts.peek()
        if tok is not None and tok.is_name and not tok.is_word("USING"):
            return ts.expect_name()
        return None

    def _skip_index_type(self, ts: TokenStream) -> None:
        if ts.accept_word("USING"):
            ts.next()

    def _key_list(self, ts: TokenStream) -> list[KeyPart]:
        keys, problem = self._index_keys(ts)
        if problem:
            raise LexError(problem)
        return keys

    def _index_keys(self, ts: TokenStream) -> tuple[list[KeyPart], str | None]:
        """
        Parse ``(a, b DESC, c(10))``.

        Returns:
            The key parts and, for expression keys, a reason the index
            cannot be converted.
        """
        ts.expect_punct("(")
        keys: list[KeyPart] = []
        problem: str | None = None
        while True:
            tok = ts.peek()
            if tok is None:
                raise LexError("Unterminated key list.")
            if tok.is_punct("("):
                ts.skip_parenthesized()
                problem = "expression index keys are not supported"
            else:
                column = ts.expect_name()
                nxt = ts.peek()
                if nxt is not None and nxt.is_punct("("):
                    inner = ts.peek(1)
                    ts.skip_parenthesized()
                    if inner is None or inner.kind is not TokenKind.NUMBER:
                        problem = "expression index keys are not supported"
                order = SortOrder.ASC
                while True:
                    mod = ts.peek()
                    if mod is None or mod.is_punct(",", ")"):
                        break
                    if mod.is_word("DESC"):
                        order = SortOrder.DESC
                    ts.next()
                keys.append(KeyPart(column, order))
            if ts.accept_punct(","):
                continue
            ts.expect_punct(")")
            return keys, problem

    def _references(self, ts: TokenStream, name: str | None, keys: list[KeyPart]) -> ConstraintDef:
        if not ts.accept_word("REFERENCES"):
            raise LexError("Expected REFERENCES.")
        fk = ConstraintDef(ConstraintKind.FOREIGN_KEY, name, keys)
        fk.ref_table = self._qualified_name(ts)
        tok = ts.peek()
        if tok is not None and tok.is_punct("("):
            fk.ref_columns = [k.column for k in self._key_list(ts)]
        while True:
            if ts.accept_words("ON", "DELETE"):
                fk.on_delete = self._fk_action(ts)
            elif ts.accept_words("ON", "UPDATE"):
                fk.on_update = self._fk_action(ts)
            elif ts.accept_word("MATCH"):
                ts.next()
            elif ts.accept_word("DEFERRABLE", "NOT", "INITIALLY", "DEFERRED", "IMMEDIATE"):
                continue
            else:
                return fk

    def _fk_action(self, ts: TokenStream) -> str:
        for action in _FK_ACTIONS:
            if ts.accept_words(*action.split()):
                return action
        tok = ts.peek()
        raise LexError(f"Unknown referential action '{tok.text if tok else ''}'.")

    def _check(self, ts: TokenStream, name: str | None) -> ConstraintDef:
        start, end = ts.skip_parenthesized()
        check = ConstraintDef(ConstraintKind.CHECK, name, expression=ts.source[start:end].strip())
        if ts.accept_words("NOT", "ENFORCED"):
            check.note = "check constraint is not enforced in the source"
        ts.accept_words("NOT", "VALID")
        ts.accept_word("ENFORCED")
        return check

    def _qualified_name(self, ts: TokenStream) -> QualifiedName:
        first = ts.expect_name()
        if ts.accept_punct("."):
            return QualifiedName(first, ts.expect_name())
        return QualifiedName(None, first)

    # ------------------------------------------------------------------
    # ALTER TABLE / CREATE INDEX
    # ------------------------------------------------------------------

    def _parse_alter_table(self, ts: TokenStream) -> AlterTableDef:
        ts.accept_words("IF", "EXISTS")
        ts.accept_word("ONLY")
        alter = AlterTableDef(table=self._qualified_name(ts))
        while not ts.at_end():
            if ts.accept_word("ADD"):
                ts.accept_word("COLUMN")
                holder = TableDef(name=alter.table)
                self._parse_table_element(ts, holder)
                alter.columns.extend(holder.columns)
                alter.constraints.extend(holder.constraints)
            elif ts.accept_words("ALTER", "COLUMN") or ts.accept_word("ALTER"):
                column = ts.expect_name()
                if ts.accept_words("SET", "DEFAULT"):
                    if self._expression_until_stop(ts).upper().startswith("NEXTVAL("):
                        alter.auto_increment_columns.append(column)
                elif ts.accept_word("ADD") and ts.accept_word("GENERATED"):
                    alter.auto_increment_columns.append(column)
            ts.skip_until(",")
            if not ts.accept_punct(","):
                break
        return alter

    def _parse_create_index(self, ts: TokenStream, unique: bool) -> IndexDef:
        ts.accept_word("CONCURRENTLY")
        ts.accept_words("IF", "NOT", "EXISTS")
        name = None
        tok = ts.peek()
        if tok is not None and not tok.is_word("ON"):
            name = ts.expect_name()
        if not ts.accept_word("ON"):
            raise LexError("Expected ON in CREATE INDEX.")
        ts.accept_word("ONLY")
        table = self._qualified_name(ts)
        method = None
        if ts.accept_word("USING"):
            method = ts.next().value.lower()
        keys, problem = self._index_keys(ts)
        kind = ConstraintKind.UNIQUE if unique else ConstraintKind.INDEX
        constraint = ConstraintDef(kind, name, keys, problem=problem)
        if method and method not in ("btree", "hash"):
            constraint.problem = f"{method} indexes are not supported"
        rest: list[Token] = []
        while not ts.at_end():
            rest.append(ts.next())
        if any(t.is_word("WHERE") for t in rest):
            if unique:
                constraint.problem = "partial unique indexes are not supported"
            else:
                constraint.note = "partial index predicate dropped; the index covers all rows"
        return IndexDef(table=table, constraint=constraint)
