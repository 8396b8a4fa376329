"""
core/dialects/postgres.py
-------------------------
PostgreSQL source: pg_dump files, live ``pg_catalog`` reads, and the
PostgreSQL → GoogleSQL type table.

Design Decision:
    The live reader asks the catalog for definitions in DDL form
    (``format_type``, ``pg_get_constraintdef``, ``pg_get_indexdef``) and
    feeds them to the same parser the dump reader uses, so a live source
    and its pg_dump produce the same model.
"""
from __future__ import annotations

from dataclasses import replace

from core.database import CatalogConnection
from core.ddl_parser import ColumnDef, IndexDef, QualifiedName, TableDef
from core.dialects.base import ReadContext, SqlDumpDialect
from core.sql_lexer import split_statements
from core.type_mapper import (
    TypeMapping,
    array_of,
    bool_,
    bytes_,
    date,
    decimal_mapping,
    exact,
    float64,
    int64,
    json_,
    length_param,
    lossy,
    numeric,
    string,
    timestamp,
    unknown,
    unsupported,
)
from logger import get_logger
from models.profiles import SourceProfile
from models.schema import MappingConfidence, TypeDescriptor

log = get_logger(__name__)

_INTEGER_TYPES = frozenset({
    "smallint", "integer", "int", "bigint", "int2", "int4", "int8",
    "smallserial", "serial", "bigserial", "serial2", "serial4", "serial8",
})
_FLOAT_TYPES = frozenset({"real", "float4", "double precision", "float8", "float"})
_CHAR_TYPES = frozenset({"varchar", "character varying", "char", "character", "bpchar"})
_TEXT_TYPES = frozenset({"text", "citext", "name"})
_TEXTUAL_LOSSY = {
    "time": "TIME has no target equivalent; stored as text",
    "timetz": "TIME WITH TIME ZONE has no target equivalent; stored as text",
    "interval": "INTERVAL has no target equivalent; stored as text",
    "inet": "network addresses are stored as text",
    "cidr": "network addresses are stored as text",
    "macaddr": "MAC addresses are stored as text",
    "macaddr8": "MAC addresses are stored as text",
    "xml": "XML is stored as text without validation",
    "enum": "enum values are stored as text without the value list",
}
_UNSUPPORTED_TYPES = frozenset({
    "point", "line", "lseg", "box", "path", "polygon", "circle",
    "geometry", "geography", "tsvector", "tsquery",
    "int4range", "int8range", "numrange", "tsrange", "tstzrange", "daterange",
})

_SYSTEM_SCHEMAS = "('pg_catalog', 'information_schema')"

_TABLES_SQL = f"""
SELECT n.nspname, c.relname
FROM pg_class c JOIN pg_namespace n ON n.oid = c.relnamespace
WHERE c.relkind IN ('r', 'p') AND NOT c.relispartition
  AND n.nspname NOT IN {_SYSTEM_SCHEMAS} AND n.nspname NOT LIKE 'pg_toast%'
ORDER BY n.nspname, c.relname
"""

_ENUMS_SQL = """
SELECT n.nspname, t.typname
FROM pg_type t JOIN pg_namespace n ON n.oid = t.typnamespace
WHERE t.typtype = 'e'
"""

_COLUMNS_SQL = f"""
SELECT n.nspname, c.relname, a.attname, format_type(a.atttypid, a.atttypmod),
       a.attnotnull, pg_get_expr(d.adbin, d.adrelid), a.attidentity, a.attgenerated
FROM pg_attribute a
JOIN pg_class c ON c.oid = a.attrelid
JOIN pg_namespace n ON n.oid = c.relnamespace
LEFT JOIN pg_attrdef d ON d.adrelid = a.attrelid AND d.adnum = a.attnum
WHERE c.relkind IN ('r', 'p') AND a.attnum > 0 AND NOT a.attisdropped
  AND n.nspname NOT IN {_SYSTEM_SCHEMAS}
ORDER BY n.nspname, c.relname, a.attnum
"""

_CONSTRAINTS_SQL = f"""
SELECT n.nspname, c.relname, con.conname, pg_get_constraintdef(con.oid)
FROM pg_constraint con
JOIN pg_class c ON c.oid = con.conrelid
JOIN pg_namespace n ON n.oid = c.relnamespace
WHERE con.contype IN ('p', 'u', 'f', 'c') AND n.nspname NOT IN {_SYSTEM_SCHEMAS}
ORDER BY n.nspname, c.relname, con.conname
"""

_INDEXES_SQL = f"""
SELECT n.nspname, c.relname, pg_get_indexdef(ix.indexrelid)
FROM pg_index ix
JOIN pg_class c ON c.oid = ix.indrelid
JOIN pg_namespace n ON n.oid = c.relnamespace
WHERE n.nspname NOT IN {_SYSTEM_SCHEMAS}
  AND NOT EXISTS (SELECT 1 FROM pg_constraint k WHERE k.conindid = ix.indexrelid)
ORDER BY n.nspname, c.relname, ix.indexrelid
"""

_VIEWS_SQL = f"""
SELECT schemaname, viewname FROM pg_views
WHERE schemaname NOT IN {_SYSTEM_SCHEMAS}
ORDER BY schemaname, viewname
"""


class PostgresDialect(SqlDumpDialect):
    """pg_dump / live PostgreSQL reader."""

    tag = "postgresql"
    default_namespace = "public"

    # ------------------------------------------------------------------
    # Live
    # ------------------------------------------------------------------

    def _read_live(self, profile: SourceProfile, reader: ReadContext) -> None:
        with CatalogConnection.from_profile(profile) as db:
            self.read_catalog(db, reader)

    def read_catalog(self, db: CatalogConnection, reader: ReadContext) -> None:
        builder = reader.builder
        for namespace, name in db.query(_ENUMS_SQL):
            builder.register_enum(QualifiedName(namespace, name))

        tables: dict[tuple[str, str], TableDef] = {}
        for namespace, name in db.query(_TABLES_SQL):
            tables[(namespace, name)] = TableDef(name=QualifiedName(namespace, name))

        for namespace, table, column, type_text, not_null, default, identity, generated in db.query(
            _COLUMNS_SQL
        ):
            definition = tables.get((namespace, table))
            if definition is not None:
                definition.columns.append(
                    self._column(column, type_text, not_null, default, identity, generated)
                )

        for namespace, table, conname, condef in db.query(_CONSTRAINTS_SQL):
            definition = tables.get((namespace, table))
            if definition is not None:
                definition.constraints.extend(self.parser.parse_constraint(condef, conname))

        log.info("Found %d table(s) in PostgreSQL catalog", len(tables))
        for definition in tables.values():
            if reader.should_stop():
                return
            reader.add_table(definition)

        for namespace, table, indexdef in db.query(_INDEXES_SQL):
            if (namespace, table) not in tables:
                continue
            for stmt in split_statements(indexdef, self.tag):
                item = self.parser.parse_statement(stmt)
                if isinstance(item, IndexDef):
                    builder.apply_index(item)

        for namespace, view in db.query(_VIEWS_SQL):
            builder.unsupported_statement(f"CREATE VIEW {namespace}.{view}", 0)

    def _column(self, name: str, type_text: str, not_null: bool, default: str | None,
                identity: str, generated: str) -> ColumnDef:
        column = ColumnDef(name=name, type=self.parser.parse_type(type_text), nullable=not not_null)
        if identity in ("a", "d"):
            column.auto_increment = True
        if default is None:
            return column
        if generated == "s":
            column.generated = default
        elif default.lower().startswith("nextval("):
            column.auto_increment = True
        else:
            column.default = default
        return column

    # ------------------------------------------------------------------
    # Types
    # ------------------------------------------------------------------

    def map_type(self, source: TypeDescriptor) -> TypeMapping:
        """
        Map a PostgreSQL column type.

        Arrays map element-wise to ``ARRAY<...>``; the target has no nested
        arrays, so multi-dimensional arrays fall back to ``JSON``.
        """
        if source.array_dims == 0:
            return self._map_scalar(source)
        if source.array_dims > 1:
            return unsupported("multi-dimensional arrays are stored as JSON", json_())
        element = self._map_scalar(replace(source, array_dims=0))
        if not element.known:
            return unknown(source)
        if element.confidence is MappingConfidence.UNSUPPORTED:
            return unsupported(f"arrays of {source.name} are not supported", string())
        return TypeMapping(array_of(element.target), element.confidence, element.note)

    def _map_scalar(self, source: TypeDescriptor) -> TypeMapping:
        name = source.name
        if name in _INTEGER_TYPES:
            return exact(int64())
        if name in _FLOAT_TYPES:
            return exact(float64())
        if name in ("numeric", "decimal"):
            return decimal_mapping(source)
        if name == "money":
            return lossy(numeric(), "MONEY is stored as NUMERIC without currency formatting")
        if name in ("boolean", "bool"):
            return exact(bool_())
        if name in _CHAR_TYPES:
            return exact(string(length_param(source)))
        if name in _TEXT_TYPES:
            return exact(string())
        if name == "bytea":
            return exact(bytes_())
        if name == "date":
            return exact(date())
        if name == "timestamptz" or (name == "timestamp" and "with time zone" in source.modifiers):
            return exact(timestamp())
        if name == "timestamp":
            return lossy(timestamp(), "TIMESTAMP WITHOUT TIME ZONE values are read as UTC")
        if name == "time" and "with time zone" in source.modifiers:
            return lossy(string(), _TEXTUAL_LOSSY["timetz"])
        if name in _TEXTUAL_LOSSY:
            return lossy(string(), _TEXTUAL_LOSSY[name])
        if name in ("json", "jsonb"):
            return exact(json_())
        if name == "uuid":
            return exact(string(36))
        if name in ("bit", "bit varying", "varbit"):
            if name == "bit" and source.params in ([], [1]):
                return exact(bool_())
            return lossy(string(), "bit strings are stored as text")
        if name in _UNSUPPORTED_TYPES:
            return unsupported(f"{name} has no target equivalent; stored as text")
        return unknown(source)
