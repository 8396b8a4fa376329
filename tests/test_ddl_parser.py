"""
tests/test_ddl_parser.py
------------------------
Unit tests for core/ddl_parser.py.
Run with: python -m pytest tests/
"""
from __future__ import annotations

import pytest

from core.ddl_parser import (
    AlterTableDef,
    ConstraintKind,
    DdlParser,
    EnumTypeDef,
    IndexDef,
    NamespaceDef,
    TableDef,
    UnsupportedDef,
)
from core.errors import SourceParseError
from core.sql_lexer import split_statements
from models.schema import SortOrder


def parse(text: str, dialect: str = "mysql"):
    stmt = next(split_statements(text, dialect))
    return DdlParser(dialect).parse_statement(stmt)


def column(table: TableDef, name: str):
    return next(c for c in table.columns if c.name == name)


class TestCreateTable:
    def test_columns_in_order(self) -> None:
        table = parse("CREATE TABLE `t` (`a` int NOT NULL, `b` varchar(20), `c` text);")
        assert isinstance(table, TableDef)
        assert table.name.name == "t"
        assert [c.name for c in table.columns] == ["a", "b", "c"]
        assert not column(table, "a").nullable
        assert column(table, "b").nullable

    def test_type_parameters_and_modifiers(self) -> None:
        table = parse("CREATE TABLE t (amount decimal(10,2) unsigned, code char(3));")
        amount = column(table, "amount").type
        assert amount.name == "decimal"
        assert amount.params == [10, 2]
        assert amount.modifiers == ["unsigned"]
        assert amount.raw == "decimal(10,2) unsigned"

    def test_enum_values_are_kept_as_modifiers(self) -> None:
        table = parse("CREATE TABLE t (s enum('a','b'));")
        assert column(table, "s").type.modifiers == ["value:a", "value:b"]

    def test_defaults(self) -> None:
        table = parse(
            "CREATE TABLE t (a int DEFAULT '0', b datetime DEFAULT CURRENT_TIMESTAMP "
            "ON UPDATE CURRENT_TIMESTAMP, c int DEFAULT NULL);"
        )
        assert column(table, "a").default == "'0'"
        assert column(table, "b").default == "CURRENT_TIMESTAMP"
        assert column(table, "b").on_update == "CURRENT_TIMESTAMP"
        assert column(table, "c").default is None

    def test_inline_primary_key_makes_column_not_null(self) -> None:
        table = parse("CREATE TABLE t (id INT PRIMARY KEY, v int);")
        pk = table.constraints[0]
        assert pk.kind is ConstraintKind.PRIMARY_KEY
        assert [k.column for k in pk.keys] == ["id"]
        assert not column(table, "id").nullable

    def test_auto_increment(self) -> None:
        table = parse("CREATE TABLE t (id int NOT NULL AUTO_INCREMENT);")
        assert column(table, "id").auto_increment

    def test_table_level_keys(self) -> None:
        table = parse(
            "CREATE TABLE t (a int, b int, PRIMARY KEY (a), UNIQUE KEY uq_b (b), "
            "KEY idx_ab (a, b DESC));"
        )
        kinds = [(c.kind, c.name) for c in table.constraints]
        assert kinds == [
            (ConstraintKind.PRIMARY_KEY, None),
            (ConstraintKind.UNIQUE, "uq_b"),
            (ConstraintKind.INDEX, "idx_ab"),
        ]
        assert table.constraints[2].keys[1].order is SortOrder.DESC

    def test_prefix_index_length_is_ignored(self) -> None:
        table = parse("CREATE TABLE t (a text, KEY idx_a (a(10)));")
        index = table.constraints[0]
        assert index.problem is None
        assert [k.column for k in index.keys] == ["a"]

    def test_fulltext_index_is_flagged(self) -> None:
        table = parse("CREATE TABLE t (a text, FULLTEXT KEY ft (a));")
        assert table.constraints[0].problem == "fulltext indexes are not supported"

    def test_foreign_key_with_actions(self) -> None:
        table = parse(
            "CREATE TABLE t (a int, CONSTRAINT fk_a FOREIGN KEY (a) REFERENCES p (id) "
            "ON DELETE SET NULL ON UPDATE CASCADE);"
        )
        fk = table.constraints[0]
        assert fk.kind is ConstraintKind.FOREIGN_KEY
        assert fk.name == "fk_a"
        assert fk.ref_table.name == "p"
        assert fk.ref_columns == ["id"]
        assert fk.on_delete == "SET NULL"
        assert fk.on_update == "CASCADE"

    def test_named_check_keeps_source_text(self) -> None:
        table = parse("CREATE TABLE t (total int, CONSTRAINT chk CHECK ((`total` >= 0)));")
        check = table.constraints[0]
        assert check.kind is ConstraintKind.CHECK
        assert check.name == "chk"
        assert check.expression == "(`total` >= 0)"

    def test_not_enforced_check_is_noted(self) -> None:
        table = parse("CREATE TABLE t (a int, CHECK (a > 0) NOT ENFORCED);")
        assert table.constraints[0].note is not None

    def test_generated_columns(self) -> None:
        table = parse(
            "CREATE TABLE t (p int, q int, "
            "s int GENERATED ALWAYS AS ((`p` * `q`)) STORED, "
            "v int AS (p + q) VIRTUAL);"
        )
        assert column(table, "s").generated == "(`p` * `q`)"
        assert column(table, "s").stored
        assert column(table, "v").generated == "p + q"
        assert not column(table, "v").stored

    def test_partitioning_is_noted(self) -> None:
        table = parse("CREATE TABLE t (a int) PARTITION BY HASH (a) PARTITIONS 4;")
        assert table.notes == ["table partitioning is not carried over"]

    def test_create_table_as_select_is_unsupported(self) -> None:
        assert isinstance(parse("CREATE TABLE t AS SELECT 1;"), UnsupportedDef)

    def test_truncated_definition_raises(self) -> None:
        with pytest.raises(SourceParseError, match="line 1"):
            parse("CREATE TABLE t (a int,")


class TestPostgresSyntax:
    def test_qualified_name_and_types(self) -> None:
        table = parse(
            "CREATE TABLE public.t (a character varying(20), b timestamp with time zone, "
            "c integer[], d double precision);",
            "postgresql",
        )
        assert table.name.namespace == "public"
        a, b, c, d = table.columns
        assert (a.type.name, a.type.params) == ("character varying", [20])
        assert b.type.modifiers == ["with time zone"]
        assert c.type.array_dims == 1
        assert d.type.name == "double precision"

    def test_serial_is_auto_increment(self) -> None:
        table = parse("CREATE TABLE t (id serial, n bigserial);", "postgresql")
        assert all(c.auto_increment and not c.nullable for c in table.columns)

    def test_identity_column(self) -> None:
        table = parse(
            "CREATE TABLE t (id integer GENERATED ALWAYS AS IDENTITY (START WITH 1), v int);",
            "postgresql",
        )
        assert column(table, "id").auto_increment
        assert column(table, "id").generated is None

    def test_cast_default_is_kept_whole(self) -> None:
        table = parse(
            "CREATE TABLE t (s character varying(10) DEFAULT 'x'::character varying NOT NULL);",
            "postgresql",
        )
        s = column(table, "s")
        assert s.default == "'x'::character varying"
        assert not s.nullable

    def test_nextval_default_means_auto_increment(self) -> None:
        table = parse(
            "CREATE TABLE t (id integer DEFAULT nextval('t_id_seq'::regclass) NOT NULL);",
            "postgresql",
        )
        assert column(table, "id").auto_increment
        assert column(table, "id").default is None

    def test_alter_table_add_constraint(self) -> None:
        alter = parse("ALTER TABLE ONLY public.t ADD CONSTRAINT t_pkey PRIMARY KEY (id);",
                      "postgresql")
        assert isinstance(alter, AlterTableDef)
        assert alter.table.name == "t"
        assert alter.constraints[0].kind is ConstraintKind.PRIMARY_KEY
        assert alter.constraints[0].name == "t_pkey"

    def test_alter_column_set_nextval_default(self) -> None:
        alter = parse(
            "ALTER TABLE ONLY public.t ALTER COLUMN id SET DEFAULT "
            "nextval('public.t_id_seq'::regclass);",
            "postgresql",
        )
        assert alter.auto_increment_columns == ["id"]

    def test_create_index(self) -> None:
        item = parse("CREATE UNIQUE INDEX t_a_idx ON public.t USING btree (a, b DESC);",
                     "postgresql")
        assert isinstance(item, IndexDef)
        assert item.constraint.kind is ConstraintKind.UNIQUE
        assert item.constraint.name == "t_a_idx"
        assert [k.order for k in item.constraint.keys] == [SortOrder.ASC, SortOrder.DESC]

    def test_gin_index_is_flagged(self) -> None:
        item = parse("CREATE INDEX t_doc_idx ON public.t USING gin (doc);", "postgresql")
        assert item.constraint.problem == "gin indexes are not supported"

    def test_partial_index_is_noted(self) -> None:
        item = parse("CREATE INDEX t_a_idx ON t (a) WHERE a > 0;", "postgresql")
        assert item.constraint.problem is None
        assert item.constraint.note is not None

    def test_expression_index_is_flagged(self) -> None:
        item = parse("CREATE INDEX t_lower_idx ON t (lower(name));", "postgresql")
        assert item.constraint.problem == "expression index keys are not supported"

    def test_enum_type(self) -> None:
        item = parse("CREATE TYPE public.mood AS ENUM ('happy', 'sad');", "postgresql")
        assert isinstance(item, EnumTypeDef)
        assert item.name.name == "mood"


class TestOtherStatements:
    def test_use_switches_namespace(self) -> None:
        item = parse("USE `shop`;")
        assert isinstance(item, NamespaceDef)
        assert item.name == "shop"

    def test_search_path(self) -> None:
        item = parse("SET search_path = sales, public;", "postgresql")
        assert item == NamespaceDef("sales")

    def test_view_is_unsupported(self) -> None:
        item = parse("CREATE ALGORITHM=UNDEFINED DEFINER=`root`@`%` VIEW v AS SELECT 1;")
        assert isinstance(item, UnsupportedDef)
        assert item.head == "CREATE VIEW"

    def test_data_statements_are_ignored(self) -> None:
        assert parse("INSERT INTO t VALUES (1);") is None
        assert parse("DROP TABLE IF EXISTS t;") is None
        assert parse("SET NAMES utf8mb4;") is None


class TestStandaloneParsing:
    def test_parse_type(self) -> None:
        desc = DdlParser("postgresql").parse_type("numeric(12,2)")
        assert (desc.name, desc.params) == ("numeric", [12, 2])

    def test_parse_constraint_uses_given_name(self) -> None:
        constraints = DdlParser("postgresql").parse_constraint(
            "FOREIGN KEY (a) REFERENCES other(id) ON DELETE CASCADE", "t_a_fkey"
        )
        assert constraints[0].name == "t_a_fkey"
        assert constraints[0].on_delete == "CASCADE"

    def test_parse_constraint_error(self) -> None:
        with pytest.raises(SourceParseError):
            DdlParser("postgresql").parse_constraint("PRIMARY KEY")
