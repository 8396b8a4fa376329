"""
core/ddl_writer.py
------------------
Renders a mapped model as a GoogleSQL DDL script.

Output order:
    1. ``CREATE TABLE`` per table (columns, checks, ``PRIMARY KEY``),
    2. ``CREATE [UNIQUE] INDEX`` statements,
    3. ``ALTER TABLE ... ADD CONSTRAINT ... FOREIGN KEY`` statements, after
       every table exists so reference order never matters.

Design Decisions:
    * Expressions the target rejected are not emitted as live DDL; they are
      kept as ``--`` comments next to the statement so nothing is silently
      lost.
    * The script carries no timestamp, so the same model always renders to
      the same text.
"""
from __future__ import annotations

from pathlib import Path

from config import CONFIG
from core.dialects import get_dialect
from core.expression_translator import ExpressionTranslator, TranslationError
from logger import get_logger
from models.schema import Column, Conv, Expression, Table, VerificationStatus

log = get_logger(__name__)

_INDENT = "  "


class DdlWriter:
    """
    Args:
        conv: A mapped (and usually verified) model.
    """

    def __init__(self, conv: Conv) -> None:
        self.conv = conv
        self._translator = ExpressionTranslator(get_dialect(conv.source_dialect))

    def render(self) -> str:
        """Return the full DDL script."""
        parts = [
            f"-- {CONFIG.app_name} {CONFIG.app_version}",
            f"-- Source dialect: {self.conv.source_dialect or 'unknown'}",
        ]
        if self.conv.is_partial:
            parts.append("-- WARNING: the conversion was aborted; this schema is incomplete.")
        parts.append("")

        for table in self.conv.tables.values():
            parts.append(self.create_table(table))
            parts.append("")
        for table in self.conv.tables.values():
            for statement in self.create_indexes(table):
                parts.append(statement)
        for table in self.conv.tables.values():
            for statement in self.foreign_keys(table):
                parts.append(statement)
        return "\n".join(parts).rstrip() + "\n"

    def write(self, path: Path | str) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render(), encoding="utf-8")
        log.info("Wrote DDL for %d table(s) to '%s'.", len(self.conv.tables), path)
        return path

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def create_table(self, table: Table) -> str:
        entries: list[str] = []
        trailer: list[str] = []
        for column in table.columns.values():
            entries.append(self._column(table, column))

        for check in table.check_constraints:
            expr_sql, problem = self._expression_sql(check.expression, table)
            name = check.target_name or check.name
            if problem:
                trailer.append(f"-- CHECK {name} not emitted ({problem}): {check.expression.source_text}")
                continue
            entries.append(f"{_INDENT}CONSTRAINT {name} CHECK ({expr_sql})")

        key = ", ".join(
            self._key_part(table, key.column_id, key.order.value) for key in table.primary_key
        )
        statement = (
            f"CREATE TABLE {self._table_name(table)} (\n"
            + ",\n".join(entries)
            + f"\n) PRIMARY KEY ({key});"
        )
        return "\n".join([statement] + trailer)

    def create_indexes(self, table: Table) -> list[str]:
        statements = []
        for index in table.indexes:
            keys = ", ".join(self._key_part(table, k.column_id, k.order.value) for k in index.keys)
            unique = "UNIQUE " if index.unique else ""
            statements.append(
                f"CREATE {unique}INDEX {index.target_name or index.name} "
                f"ON {self._table_name(table)} ({keys});"
            )
        return statements

    def foreign_keys(self, table: Table) -> list[str]:
        statements = []
        for fk in table.active_foreign_keys:
            ref = self.conv.tables.get(fk.referenced_table_id) if fk.referenced_table_id else None
            if ref is None:
                continue
            cols = ", ".join(self._column_name(table.columns[c]) for c in fk.column_ids)
            ref_cols = ", ".join(self._column_name(ref.columns[c]) for c in fk.referenced_column_ids)
            statement = (
                f"ALTER TABLE {self._table_name(table)} ADD CONSTRAINT {fk.target_name or fk.name} "
                f"FOREIGN KEY ({cols}) REFERENCES {self._table_name(ref)} ({ref_cols})"
            )
            on_delete = fk.target_on_delete or "NO ACTION"
            if on_delete != "NO ACTION":
                statement += f" ON DELETE {on_delete}"
            statements.append(statement + ";")
        return statements

    # ------------------------------------------------------------------
    # Pieces
    # ------------------------------------------------------------------

    def _column(self, table: Table, column: Column) -> str:
        target_type = column.target_type.render() if column.target_type else "STRING(MAX)"
        line = f"{_INDENT}{self._column_name(column)} {target_type}"
        if not column.nullable:
            line += " NOT NULL"
        notes: list[str] = []

        if column.generated is not None:
            sql, problem = self._expression_sql(column.generated, table)
            if problem:
                notes.append(f"generated expression not emitted ({problem}): "
                             f"{column.generated.source_text}")
            else:
                line += f" AS ({sql})" + (" STORED" if column.generated_stored else "")
        elif column.default is not None:
            sql, problem = self._expression_sql(column.default, table)
            if problem:
                notes.append(f"default not emitted ({problem}): {column.default.source_text}")
            else:
                line += f" DEFAULT ({sql})"

        return "".join(f"{_INDENT}-- {note}\n" for note in notes) + line

    def _expression_sql(self, expression: Expression, table: Table) -> tuple[str, str | None]:
        """Return ``(sql, problem)``; *problem* is set when the expression must be left out."""
        if expression.status is VerificationStatus.REJECTED:
            return "", f"rejected by target: {expression.rejection_reason}"
        if expression.status is VerificationStatus.VERIFIED and expression.translated_text:
            return expression.translated_text, None
        try:
            return self._translator.translate(expression.source_text, table), None
        except TranslationError as exc:
            return "", f"cannot translate: {exc}"

    def _key_part(self, table: Table, column_id: str, order: str) -> str:
        name = self._column_name(table.columns[column_id])
        return f"{name} DESC" if order == "DESC" else name

    @staticmethod
    def _table_name(table: Table) -> str:
        return table.target_name or table.name

    @staticmethod
    def _column_name(column: Column) -> str:
        return column.target_name or column.name
