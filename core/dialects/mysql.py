"""
core/dialects/mysql.py
----------------------
MySQL source: mysqldump files, live ``information_schema`` reads, and the
MySQL → GoogleSQL type table.
"""
from __future__ import annotations

from core.database import CatalogConnection
from core.ddl_parser import TableDef
from core.dialects.base import ReadContext, SqlDumpDialect
from core.errors import SourceParseError
from core.sql_lexer import split_statements
from core.type_mapper import (
    TypeMapping,
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
from models.schema import TypeDescriptor

log = get_logger(__name__)

_INTEGER_TYPES = frozenset({"tinyint", "smallint", "mediumint", "int", "integer", "bigint"})
_FLOAT_TYPES = frozenset({"float", "double", "double precision", "real"})
_DECIMAL_TYPES = frozenset({"decimal", "numeric", "dec", "fixed"})
_CHAR_TYPES = frozenset({"char", "varchar", "character", "character varying",
                         "national char", "national varchar", "nchar", "nvarchar"})
_TEXT_TYPES = frozenset({"tinytext", "text", "mediumtext", "longtext"})
_BINARY_TYPES = frozenset({"binary", "varbinary"})
_BLOB_TYPES = frozenset({"tinyblob", "blob", "mediumblob", "longblob"})
_SPATIAL_TYPES = frozenset({
    "geometry", "point", "linestring", "polygon", "multipoint",
    "multilinestring", "multipolygon", "geometrycollection", "geomcollection",
})

_TABLES_SQL = (
    "SELECT TABLE_NAME FROM information_schema.TABLES "
    "WHERE TABLE_SCHEMA = %s AND TABLE_TYPE = 'BASE TABLE' ORDER BY TABLE_NAME"
)
_VIEWS_SQL = (
    "SELECT TABLE_NAME FROM information_schema.VIEWS "
    "WHERE TABLE_SCHEMA = %s ORDER BY TABLE_NAME"
)


class MySQLDialect(SqlDumpDialect):
    """mysqldump / live MySQL reader."""

    tag = "mysql"

    def _default_namespace(self, profile: SourceProfile) -> str | None:
        return profile.dbname

    # ------------------------------------------------------------------
    # Live
    # ------------------------------------------------------------------

    def _read_live(self, profile: SourceProfile, reader: ReadContext) -> None:
        """
        List tables from ``information_schema`` and read each definition with
        ``SHOW CREATE TABLE``, which returns the same DDL mysqldump writes.
        """
        with CatalogConnection.from_profile(profile) as db:
            self.read_catalog(db, profile.dbname, reader)

    def read_catalog(self, db: CatalogConnection, schema: str, reader: ReadContext) -> None:
        builder = reader.builder
        builder.set_namespace(schema)
        names = [row[0] for row in db.query(_TABLES_SQL, (schema,))]
        log.info("Found %d table(s) in MySQL schema '%s'", len(names), schema)
        for name in names:
            if reader.should_stop():
                return
            rows = db.query(f"SHOW CREATE TABLE `{name.replace('`', '``')}`")
            if not rows:
                raise SourceParseError(f"SHOW CREATE TABLE returned nothing for '{name}'.", obj=name)
            for stmt in split_statements(rows[0][1], self.tag):
                item = self.parser.parse_statement(stmt)
                if isinstance(item, TableDef):
                    reader.add_table(item)
        for (view,) in db.query(_VIEWS_SQL, (schema,)):
            builder.unsupported_statement(f"CREATE VIEW {view}", 0)

    # ------------------------------------------------------------------
    # Types
    # ------------------------------------------------------------------

    def map_type(self, source: TypeDescriptor) -> TypeMapping:
        """
        Map a MySQL column type.

        Examples::

            int(11)          → INT64          exact
            decimal(10,2)    → NUMERIC        exact
            datetime         → TIMESTAMP      lossy (no time zone in source)
            geometry         → STRING(MAX)    unsupported
        """
        name = source.name
        if source.array_dims:
            return unknown(source)
        if name in _INTEGER_TYPES:
            if name == "bigint" and "unsigned" in source.modifiers:
                return lossy(int64(), "BIGINT UNSIGNED values above 2^63-1 do not fit INT64")
            return exact(int64())
        if name in ("bool", "boolean"):
            return exact(bool_())
        if name in _FLOAT_TYPES:
            return exact(float64())
        if name in _DECIMAL_TYPES:
            if not source.params:
                return exact(numeric())  # DECIMAL means DECIMAL(10,0)
            return decimal_mapping(source)
        if name in _CHAR_TYPES:
            return exact(string(length_param(source)))
        if name in _TEXT_TYPES:
            return exact(string())
        if name in _BINARY_TYPES:
            return exact(bytes_(length_param(source)))
        if name in _BLOB_TYPES:
            return exact(bytes_())
        if name == "bit":
            if not source.params or source.params == [1]:
                return exact(bool_())
            return lossy(int64(), "BIT(n) is stored as an integer")
        if name == "date":
            return exact(date())
        if name == "datetime":
            return lossy(timestamp(), "DATETIME has no time zone; values are read as UTC")
        if name == "timestamp":
            return exact(timestamp())
        if name == "time":
            return lossy(string(), "TIME has no target equivalent; stored as text")
        if name == "year":
            return lossy(int64(), "YEAR is stored as an integer")
        if name == "json":
            return exact(json_())
        if name in ("enum", "set"):
            return lossy(string(), f"{name.upper()} values are stored as text without the value list")
        if name in _SPATIAL_TYPES:
            return unsupported(f"spatial type {name.upper()} has no target equivalent; stored as text")
        return unknown(source)
