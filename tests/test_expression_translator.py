"""
tests/test_expression_translator.py
-----------------------------------
Unit tests for core/expression_translator.py.
Run with: python -m pytest tests/
"""
from __future__ import annotations

import pytest

from core.dialects import get_dialect
from core.expression_translator import ExpressionTranslator, TranslationError, quote_string
from core.mapper import map_conv


@pytest.fixture
def mysql_table(parse_source):
    conv = map_conv(parse_source(
        "mysql", "CREATE TABLE t (`total` decimal(10,2), `status` varchar(10), `id` int PRIMARY KEY);"
    ))
    return conv.table_by_name("t")


@pytest.fixture
def pg_table(parse_source):
    conv = map_conv(parse_source(
        "postgresql",
        'CREATE TABLE t (id integer PRIMARY KEY, price numeric(12,2), status varchar(10), "select" integer);',
    ))
    return conv.table_by_name("t")


def mysql(text: str, table) -> str:
    return ExpressionTranslator(get_dialect("mysql")).translate(text, table)


def postgres(text: str, table) -> str:
    return ExpressionTranslator(get_dialect("postgresql")).translate(text, table)


class TestMySQLExpressions:
    def test_backquoted_columns(self, mysql_table) -> None:
        assert mysql("(`total` >= 0)", mysql_table) == "(total >= 0)"

    def test_function_renames(self, mysql_table) -> None:
        assert mysql("NOW()", mysql_table) == "CURRENT_TIMESTAMP()"
        assert mysql("uuid()", mysql_table) == "GENERATE_UUID()"

    def test_niladic_timestamp(self, mysql_table) -> None:
        assert mysql("CURRENT_TIMESTAMP", mysql_table) == "CURRENT_TIMESTAMP()"

    def test_double_quoted_string(self, mysql_table) -> None:
        assert mysql('"abc"', mysql_table) == "'abc'"

    def test_in_list(self, mysql_table) -> None:
        assert mysql("`status` in ('a','b')", mysql_table) == "status in ('a', 'b')"


class TestPostgresExpressions:
    def test_string_cast_is_dropped(self, pg_table) -> None:
        assert postgres("'x'::character varying", pg_table) == "'x'"

    def test_numeric_cast(self, pg_table) -> None:
        assert postgres("(price > (0)::numeric)", pg_table) == "(price > CAST((0) AS NUMERIC))"

    def test_any_array(self, pg_table) -> None:
        source = ("(status)::text = ANY ((ARRAY['a'::character varying, "
                  "'b'::character varying])::text[])")
        assert postgres(source, pg_table) == (
            "CAST((status) AS STRING(MAX)) IN UNNEST(CAST((['a', 'b']) AS ARRAY<STRING(MAX)>))"
        )

    def test_renamed_column_uses_target_name(self, pg_table) -> None:
        assert postgres('"select" > 0', pg_table) == "select_ > 0"

    def test_unknown_identifier_is_backquoted(self, pg_table) -> None:
        assert postgres('"other" > 0', pg_table) == "`other` > 0"


class TestErrors:
    def test_unbalanced_parenthesis(self, mysql_table) -> None:
        with pytest.raises(TranslationError, match="Unclosed"):
            mysql("(a > 1", mysql_table)

    def test_stray_closing_bracket(self, mysql_table) -> None:
        with pytest.raises(TranslationError, match="Unbalanced"):
            mysql("a > 1)", mysql_table)

    def test_unterminated_string(self, mysql_table) -> None:
        with pytest.raises(TranslationError):
            mysql("status = 'abc", mysql_table)

    def test_cast_without_type(self, pg_table) -> None:
        with pytest.raises(TranslationError, match="Missing type"):
            postgres("price::", pg_table)


class TestQuoteString:
    def test_escapes(self) -> None:
        assert quote_string("it's") == "'it\\'s'"
        assert quote_string("a\\b") == "'a\\\\b'"
