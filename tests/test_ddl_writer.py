"""
tests/test_ddl_writer.py
------------------------
Unit tests for core/ddl_writer.py.
Run with: python -m pytest tests/
"""
from __future__ import annotations

from core.ddl_writer import DdlWriter
from core.mapper import map_conv
from core.verifier import ExpressionVerifier
from models.issues import IssueStage


def lines(conv) -> list[str]:
    return DdlWriter(conv).render().splitlines()


class TestCreateTable:
    def test_columns_and_key(self, mysql_conv) -> None:
        ddl = lines(mysql_conv)
        start = ddl.index("CREATE TABLE customers (")
        assert ddl[start + 1] == "  id INT64 NOT NULL,"
        assert ddl[start + 2] == "  email STRING(255) NOT NULL,"
        assert "  created_at TIMESTAMP DEFAULT (CURRENT_TIMESTAMP())" in ddl
        assert ") PRIMARY KEY (id);" in ddl

    def test_check_constraint(self, mysql_conv) -> None:
        assert "  CONSTRAINT chk_total CHECK ((total >= 0))" in lines(mysql_conv)

    def test_synthetic_key(self, mysql_conv) -> None:
        ddl = lines(mysql_conv)
        assert "  synth_id STRING(50) NOT NULL" in ddl
        assert ") PRIMARY KEY (synth_id);" in ddl

    def test_postgres_types(self, pg_conv) -> None:
        ddl = lines(pg_conv)
        assert "  tags ARRAY<STRING(MAX)>," in ddl
        assert "  CONSTRAINT products_price_check CHECK ((price > CAST((0) AS NUMERIC)))" in ddl


class TestIndexesAndForeignKeys:
    def test_indexes(self, mysql_conv) -> None:
        ddl = lines(mysql_conv)
        assert "CREATE UNIQUE INDEX uq_email ON customers (email);" in ddl
        assert "CREATE INDEX idx_customer ON orders (customer_id);" in ddl

    def test_foreign_keys_follow_tables(self, mysql_conv) -> None:
        ddl = lines(mysql_conv)
        fk = ("ALTER TABLE orders ADD CONSTRAINT fk_orders_customer FOREIGN KEY (customer_id) "
              "REFERENCES customers (id) ON DELETE CASCADE;")
        assert fk in ddl
        assert ddl.index(fk) > max(i for i, line in enumerate(ddl) if line.startswith("CREATE"))

    def test_no_action_is_implicit(self, pg_conv) -> None:
        ddl = lines(pg_conv)
        fk = [line for line in ddl if "FOREIGN KEY" in line]
        assert fk == [
            "ALTER TABLE sales_products ADD CONSTRAINT products_product_id_fkey "
            "FOREIGN KEY (product_id) REFERENCES products (id);"
        ]

    def test_dropped_foreign_key_is_left_out(self, parse_source) -> None:
        conv = map_conv(parse_source(
            "mysql",
            "CREATE TABLE a (code varchar(10) PRIMARY KEY);\n"
            "CREATE TABLE b (id int PRIMARY KEY, a_code int REFERENCES a (code));",
        ))
        assert conv.table_by_name("b").foreign_keys[0].dropped
        assert "FOREIGN KEY" not in DdlWriter(conv).render()


class TestRejectedExpressions:
    def test_rejected_check_is_commented_out(self, mysql_conv, accessor) -> None:
        accessor.rejections["total >="] = "bad check"
        ExpressionVerifier(accessor).verify(mysql_conv)
        text = DdlWriter(mysql_conv).render()
        assert "CONSTRAINT chk_total" not in text
        assert "-- CHECK chk_total not emitted (rejected by target: bad check)" in text

    def test_verified_text_is_used(self, mysql_conv, accessor) -> None:
        ExpressionVerifier(accessor).verify(mysql_conv)
        assert "  CONSTRAINT chk_total CHECK ((total >= 0))" in lines(mysql_conv)


class TestScript:
    def test_deterministic(self, mysql_conv) -> None:
        assert DdlWriter(mysql_conv).render() == DdlWriter(mysql_conv).render()

    def test_partial_header(self, mysql_conv) -> None:
        mysql_conv.mark_aborted("stopped", IssueStage.PARSE)
        assert "-- WARNING: the conversion was aborted; this schema is incomplete." in lines(mysql_conv)

    def test_write(self, mysql_conv, tmp_path) -> None:
        path = DdlWriter(mysql_conv).write(tmp_path / "out" / "shop.schema.ddl")
        assert path.read_text(encoding="utf-8") == DdlWriter(mysql_conv).render()
