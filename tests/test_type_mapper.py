"""
tests/test_type_mapper.py
-------------------------
Unit tests for core/type_mapper.py and the per-dialect type tables.
Run with: python -m pytest tests/
"""
from __future__ import annotations

import pytest

from core.ddl_parser import DdlParser
from core.dialects import DynamoDBDialect, MySQLDialect, PostgresDialect
from core.type_mapper import decimal_mapping, fits_numeric, string
from models.schema import MappingConfidence, TypeDescriptor

EXACT = MappingConfidence.EXACT
LOSSY = MappingConfidence.LOSSY
UNSUPPORTED = MappingConfidence.UNSUPPORTED


def mysql(type_text: str):
    return MySQLDialect().map_type(DdlParser("mysql").parse_type(type_text))


def postgres(type_text: str):
    return PostgresDialect().map_type(DdlParser("postgresql").parse_type(type_text))


class TestTargetTypes:
    def test_string_sizes(self) -> None:
        assert string(100).render() == "STRING(100)"
        assert string().render() == "STRING(MAX)"
        assert string(0).render() == "STRING(MAX)"
        assert string(10_000_000).render() == "STRING(MAX)"

    def test_array_render(self) -> None:
        assert TypeDescriptor("INT64", array_dims=1).render() == "ARRAY<INT64>"


class TestDecimalRule:
    @pytest.mark.parametrize("precision, scale, fits", [
        (10, 2, True),
        (38, 9, True),
        (38, 10, False),
        (40, 2, False),
        (None, None, False),
    ])
    def test_fits_numeric(self, precision, scale, fits) -> None:
        assert fits_numeric(precision, scale) is fits

    def test_oversized_decimal_becomes_text(self) -> None:
        mapping = decimal_mapping(TypeDescriptor("decimal", params=[65, 30]))
        assert mapping.confidence is LOSSY
        assert mapping.target.render() == "STRING(MAX)"

    def test_unbounded_numeric_is_lossy(self) -> None:
        mapping = decimal_mapping(TypeDescriptor("numeric"))
        assert (mapping.target.render(), mapping.confidence) == ("NUMERIC", LOSSY)


class TestMySQLTypes:
    @pytest.mark.parametrize("source, target, confidence", [
        ("int", "INT64", EXACT),
        ("int(11)", "INT64", EXACT),
        ("bigint unsigned", "INT64", LOSSY),
        ("tinyint(1)", "INT64", EXACT),
        ("decimal(10,2)", "NUMERIC", EXACT),
        ("decimal", "NUMERIC", EXACT),
        ("double", "FLOAT64", EXACT),
        ("varchar(255)", "STRING(255)", EXACT),
        ("longtext", "STRING(MAX)", EXACT),
        ("varbinary(16)", "BYTES(16)", EXACT),
        ("blob", "BYTES(MAX)", EXACT),
        ("bit(1)", "BOOL", EXACT),
        ("bit(8)", "INT64", LOSSY),
        ("date", "DATE", EXACT),
        ("datetime", "TIMESTAMP", LOSSY),
        ("timestamp", "TIMESTAMP", EXACT),
        ("time", "STRING(MAX)", LOSSY),
        ("json", "JSON", EXACT),
        ("enum('a','b')", "STRING(MAX)", LOSSY),
        ("point", "STRING(MAX)", UNSUPPORTED),
        ("geometry", "STRING(MAX)", UNSUPPORTED),
    ])
    def test_table(self, source, target, confidence) -> None:
        mapping = mysql(source)
        assert mapping.target.render() == target
        assert mapping.confidence is confidence
        assert mapping.known

    def test_unknown_type(self) -> None:
        mapping = mysql("hyperloglog")
        assert not mapping.known
        assert mapping.target.render() == "STRING(MAX)"
        assert "hyperloglog" in mapping.note


class TestPostgresTypes:
    @pytest.mark.parametrize("source, target, confidence", [
        ("integer", "INT64", EXACT),
        ("bigserial", "INT64", EXACT),
        ("numeric(12,2)", "NUMERIC", EXACT),
        ("character varying(20)", "STRING(20)", EXACT),
        ("text", "STRING(MAX)", EXACT),
        ("boolean", "BOOL", EXACT),
        ("bytea", "BYTES(MAX)", EXACT),
        ("timestamp with time zone", "TIMESTAMP", EXACT),
        ("timestamp without time zone", "TIMESTAMP", LOSSY),
        ("jsonb", "JSON", EXACT),
        ("uuid", "STRING(36)", EXACT),
        ("interval", "STRING(MAX)", LOSSY),
        ("money", "NUMERIC", LOSSY),
        ("text[]", "ARRAY<STRING(MAX)>", EXACT),
        ("integer[][]", "JSON", UNSUPPORTED),
        ("point", "STRING(MAX)", UNSUPPORTED),
        ("point[]", "STRING(MAX)", UNSUPPORTED),
        ("tsvector", "STRING(MAX)", UNSUPPORTED),
    ])
    def test_table(self, source, target, confidence) -> None:
        mapping = postgres(source)
        assert mapping.target.render() == target
        assert mapping.confidence is confidence

    def test_enum_marker(self) -> None:
        mapping = PostgresDialect().map_type(TypeDescriptor("enum", raw="mood"))
        assert (mapping.target.render(), mapping.confidence) == ("STRING(MAX)", LOSSY)

    def test_unknown_array_element(self) -> None:
        assert not postgres("widget[]").known


class TestDynamoDBTypes:
    @pytest.mark.parametrize("code, target, confidence", [
        ("S", "STRING(MAX)", EXACT),
        ("N", "NUMERIC", LOSSY),
        ("B", "BYTES(MAX)", EXACT),
        ("BOOL", "BOOL", EXACT),
        ("M", "JSON", EXACT),
        ("L", "JSON", EXACT),
        ("SS", "ARRAY<STRING(MAX)>", EXACT),
        ("NS", "ARRAY<NUMERIC>", LOSSY),
        ("NULL", "STRING(MAX)", LOSSY),
    ])
    def test_table(self, code, target, confidence) -> None:
        mapping = DynamoDBDialect().map_type(TypeDescriptor(code, raw=code))
        assert mapping.target.render() == target
        assert mapping.confidence is confidence

    def test_mixed_is_ambiguous(self) -> None:
        mapping = DynamoDBDialect().map_type(TypeDescriptor("mixed", modifiers=["N", "S"]))
        assert mapping.ambiguous
        assert "N, S" in mapping.note

    def test_minority_types_make_exact_lossy(self) -> None:
        mapping = DynamoDBDialect().map_type(TypeDescriptor("S", modifiers=["also:N"]))
        assert mapping.confidence is LOSSY
        assert "N" in mapping.note

    def test_fresh_descriptor_per_lookup(self) -> None:
        dialect = DynamoDBDialect()
        first = dialect.map_type(TypeDescriptor("SS"))
        second = dialect.map_type(TypeDescriptor("SS"))
        assert first.target is not second.target
        assert second.target.array_dims == 1
