"""
tests/test_dialects.py
----------------------
Reader tests for core/dialects: sample dumps, live catalogs (mocked
connections), DynamoDB exports and cancellation.
Run with: python -m pytest tests/
"""
from __future__ import annotations

import io
import json
from unittest.mock import MagicMock, patch

import pytest

from core.cancellation import CancellationToken
from core.dialects import DynamoDBDialect, MySQLDialect, PostgresDialect, get_dialect
from core.dialects.dynamodb import infer_attribute_types
from core.errors import SourceParseError
from models.issues import IssueCategory
from models.profiles import Dialect, ProfileError, SourceMode, SourceProfile
from samples import MYSQL_DUMP, PG_DUMP


class TestGetDialect:
    @pytest.mark.parametrize("tag, cls", [
        ("mysql", MySQLDialect),
        ("pg_dump", PostgresDialect),
        ("postgresql", PostgresDialect),
        ("dynamodb", DynamoDBDialect),
    ])
    def test_by_tag(self, tag, cls) -> None:
        assert isinstance(get_dialect(tag), cls)

    def test_unknown_tag(self) -> None:
        with pytest.raises(ProfileError):
            get_dialect("oracle")


class TestMySQLDump:
    def test_tables_and_columns(self, parse_source) -> None:
        conv = parse_source("mysql", MYSQL_DUMP)
        assert conv.source_dialect == "mysql"
        assert [t.name for t in conv.tables.values()] == ["customers", "orders", "audit_log"]
        orders = conv.table_by_name("orders")
        assert [c.name for c in orders.columns.values()] == [
            "id", "customer_id", "total", "status", "notes", "location",
        ]

    def test_keys_and_constraints(self, parse_source) -> None:
        conv = parse_source("mysql", MYSQL_DUMP)
        customers = conv.table_by_name("customers")
        orders = conv.table_by_name("orders")
        assert [customers.columns[c].name for c in customers.primary_key_ids] == ["id"]
        assert [(i.name, i.unique) for i in customers.indexes] == [("uq_email", True)]
        assert [(i.name, i.unique) for i in orders.indexes] == [("idx_customer", False)]
        fk = orders.foreign_keys[0]
        assert (fk.name, fk.on_delete, fk.on_update) == ("fk_orders_customer", "CASCADE", "RESTRICT")
        assert fk.referenced_table_id == customers.id
        assert orders.check_constraints[0].expression.source_text == "(`total` >= 0)"

    def test_defaults_and_auto_increment(self, parse_source) -> None:
        conv = parse_source("mysql", MYSQL_DUMP)
        customers = conv.table_by_name("customers")
        assert customers.column_by_name("id").auto_increment
        assert customers.column_by_name("name").default is None
        assert customers.column_by_name("created_at").default.source_text == "CURRENT_TIMESTAMP"
        assert conv.table_by_name("orders").column_by_name("total").default.source_text == "'0.00'"

    def test_view_is_recorded_not_converted(self, parse_source) -> None:
        conv = parse_source("mysql", MYSQL_DUMP)
        assert [i.category for i in conv.issues] == [IssueCategory.UNSUPPORTED_STATEMENT]
        assert conv.issues[0].detail.startswith("CREATE VIEW")

    def test_bytes_read_is_recorded(self, parse_source) -> None:
        conv = parse_source("mysql", MYSQL_DUMP)
        assert conv.audit.bytes_read == len(MYSQL_DUMP.encode("utf-8"))

    def test_missing_file_raises(self, tmp_path) -> None:
        profile = SourceProfile(dialect=Dialect.MYSQL, file=tmp_path / "missing.sql")
        with pytest.raises(SourceParseError, match="Cannot read dump file"):
            MySQLDialect().parse(profile)

    def test_dump_piped_to_stdin(self, monkeypatch) -> None:
        data = MYSQL_DUMP.encode("utf-8")
        monkeypatch.setattr("sys.stdin", io.TextIOWrapper(io.BytesIO(data)))
        profile = SourceProfile.from_string("mysql", "")
        assert profile.file is None
        conv = MySQLDialect().parse(profile)
        assert len(conv.tables) == 3
        assert conv.audit.bytes_read == len(data)


class TestPostgresDump:
    def test_namespaces_are_flattened(self, parse_source) -> None:
        conv = parse_source("postgresql", PG_DUMP)
        assert [t.name for t in conv.tables.values()] == ["products", "sales_products"]

    def test_alter_statements_are_applied(self, parse_source) -> None:
        conv = parse_source("postgresql", PG_DUMP)
        products = conv.table_by_name("products")
        sales = conv.table_by_name("sales_products")
        assert products.column_by_name("id").auto_increment
        assert [products.columns[c].name for c in products.primary_key_ids] == ["id"]
        assert [sales.columns[c].name for c in sales.primary_key_ids] == ["sku"]
        assert [i.name for i in products.indexes] == ["products_name_idx"]
        fk = sales.foreign_keys[0]
        assert fk.referenced_table_id == products.id
        assert fk.on_delete == "SET NULL"

    def test_enum_type_columns(self, parse_source) -> None:
        conv = parse_source("postgresql", PG_DUMP)
        feeling = conv.table_by_name("products").column_by_name("feeling")
        assert feeling.type.name == "enum"
        assert feeling.type.raw == "public.mood"

    def test_expressions(self, parse_source) -> None:
        conv = parse_source("postgresql", PG_DUMP)
        products = conv.table_by_name("products")
        assert products.column_by_name("created_at").default.source_text == "now()"
        assert products.column_by_name("price").default.source_text == "0"
        assert products.check_constraints[0].name == "products_price_check"
        assert products.check_constraints[0].expression.source_text == "(price > (0)::numeric)"

    def test_no_statement_issues(self, parse_source) -> None:
        conv = parse_source("postgresql", PG_DUMP)
        assert list(conv.all_issues()) == []


class TestLiveReaders:
    def _patched(self, module: str, rows: list):
        db = MagicMock()
        db.query.side_effect = rows
        patcher = patch(f"core.dialects.{module}.CatalogConnection")
        connection = patcher.start()
        connection.from_profile.return_value.__enter__.return_value = db
        return patcher, db

    def test_mysql_catalog(self) -> None:
        rows = [
            [("customers",), ("orders",)],
            [("customers", "CREATE TABLE `customers` (\n  `id` int NOT NULL,\n"
                           "  PRIMARY KEY (`id`)\n) ENGINE=InnoDB")],
            [("orders", "CREATE TABLE `orders` (\n  `id` int NOT NULL,\n  `customer_id` int,\n"
                        "  PRIMARY KEY (`id`),\n  CONSTRAINT `fk_c` FOREIGN KEY (`customer_id`) "
                        "REFERENCES `customers` (`id`)\n) ENGINE=InnoDB")],
            [("v_orders",)],
        ]
        patcher, db = self._patched("mysql", rows)
        try:
            profile = SourceProfile(dialect=Dialect.MYSQL, mode=SourceMode.LIVE,
                                    user="reader", dbname="shop")
            conv = MySQLDialect().parse(profile)
        finally:
            patcher.stop()

        assert db.query.call_count == 4
        assert db.query.call_args_list[1].args[0] == "SHOW CREATE TABLE `customers`"
        assert [t.name for t in conv.tables.values()] == ["customers", "orders"]
        assert all(t.namespace == "shop" for t in conv.tables.values())
        orders = conv.table_by_name("orders")
        assert orders.foreign_keys[0].referenced_table_id == conv.table_by_name("customers").id
        assert conv.issues[0].detail.startswith("CREATE VIEW v_orders")

    def test_postgres_catalog(self) -> None:
        rows = [
            [("public", "mood")],
            [("public", "products")],
            [
                ("public", "products", "id", "integer", True,
                 "nextval('products_id_seq'::regclass)", "", ""),
                ("public", "products", "name", "character varying(100)", True, None, "", ""),
                ("public", "products", "feeling", "mood", False, None, "", ""),
                ("public", "products", "price", "numeric(12,2)", True, "0", "", ""),
                ("public", "products", "gross", "numeric(12,2)", False, "(price * 1.2)", "", "s"),
            ],
            [
                ("public", "products", "products_pkey", "PRIMARY KEY (id)"),
                ("public", "products", "products_price_check", "CHECK ((price > (0)::numeric))"),
            ],
            [("public", "products", "CREATE INDEX products_name_idx ON public.products USING btree (name)")],
            [],
        ]
        patcher, db = self._patched("postgres", rows)
        try:
            profile = SourceProfile(dialect=Dialect.POSTGRESQL, mode=SourceMode.LIVE,
                                    user="reader", dbname="shop")
            conv = PostgresDialect().parse(profile)
        finally:
            patcher.stop()

        products = conv.table_by_name("products")
        assert [c.name for c in products.columns.values()] == ["id", "name", "feeling", "price", "gross"]
        assert products.column_by_name("id").auto_increment
        assert not products.column_by_name("name").nullable
        assert products.column_by_name("feeling").type.name == "enum"
        assert products.column_by_name("price").default.source_text == "0"
        assert products.column_by_name("gross").generated.source_text == "(price * 1.2)"
        assert [products.columns[c].name for c in products.primary_key_ids] == ["id"]
        assert products.check_constraints[0].name == "products_price_check"
        assert [i.name for i in products.indexes] == ["products_name_idx"]

    def test_dynamodb_has_no_live_mode(self) -> None:
        with pytest.raises(ProfileError):
            SourceProfile.from_string("dynamodb", "host=aws,user=u,dbname=x")


def dynamodb_export() -> dict:
    return {"tables": [{
        "Table": {
            "TableName": "Orders",
            "KeySchema": [
                {"AttributeName": "sk", "KeyType": "RANGE"},
                {"AttributeName": "pk", "KeyType": "HASH"},
            ],
            "AttributeDefinitions": [
                {"AttributeName": "pk", "AttributeType": "S"},
                {"AttributeName": "sk", "AttributeType": "N"},
                {"AttributeName": "gsi_key", "AttributeType": "S"},
            ],
            "GlobalSecondaryIndexes": [{
                "IndexName": "by_gsi",
                "KeySchema": [{"AttributeName": "gsi_key", "KeyType": "HASH"}],
            }],
        },
        "Items": [
            {"pk": {"S": "a"}, "sk": {"N": "1"}, "amount": {"N": "3.5"},
             "tags": {"SS": ["x"]}, "meta": {"M": {}}, "flag": {"BOOL": True}},
            {"pk": {"S": "b"}, "sk": {"N": "2"}, "amount": {"S": "n/a"}, "meta": {"M": {}}},
        ],
    }]}


class TestDynamoDBExport:
    def test_columns_and_keys(self, parse_source) -> None:
        conv = parse_source("dynamodb", json.dumps(dynamodb_export()), name="export.json")
        table = conv.table_by_name("Orders")
        assert [c.name for c in table.columns.values()] == [
            "pk", "sk", "gsi_key", "amount", "flag", "meta", "tags",
        ]
        assert [table.columns[c].name for c in table.primary_key_ids] == ["pk", "sk"]
        assert [i.name for i in table.indexes] == ["by_gsi"]

    def test_inferred_types_and_nullability(self, parse_source) -> None:
        conv = parse_source("dynamodb", json.dumps(dynamodb_export()), name="export.json")
        table = conv.table_by_name("Orders")
        amount = table.column_by_name("amount")
        assert amount.type.name == "mixed"
        assert amount.type.modifiers == ["N", "S"]
        assert table.column_by_name("flag").nullable
        assert not table.column_by_name("meta").nullable
        assert not table.column_by_name("pk").nullable

    def test_bare_describe_table_output(self, parse_source) -> None:
        export = dynamodb_export()["tables"][0]
        del export["Items"]
        conv = parse_source("dynamodb", json.dumps(export), name="export.json")
        assert [c.name for c in conv.table_by_name("Orders").columns.values()] == [
            "pk", "sk", "gsi_key",
        ]

    def test_invalid_json(self, parse_source) -> None:
        with pytest.raises(SourceParseError, match="not valid JSON"):
            parse_source("dynamodb", "{nope", name="export.json")

    def test_missing_key_schema(self, parse_source) -> None:
        with pytest.raises(SourceParseError, match="Malformed"):
            parse_source("dynamodb", json.dumps({"Table": {"TableName": "x"}}), name="export.json")

    def test_dominant_type_within_threshold(self) -> None:
        items = [{"n": {"N": str(i)}} for i in range(9)] + [{"n": {"S": "x"}}]
        desc, nullable = infer_attribute_types(items, threshold=0.9)["n"]
        assert desc.name == "N"
        assert desc.modifiers == ["also:S"]
        assert not nullable

    def test_unknown_attribute_code(self) -> None:
        with pytest.raises(SourceParseError, match="Unknown DynamoDB attribute type"):
            infer_attribute_types([{"a": {"X": "1"}}], threshold=0.9)


class TestCancellation:
    def test_cancel_mid_parse_of_hundred_tables(self, parse_source) -> None:
        dump = "\n".join(f"CREATE TABLE t{i} (id INT PRIMARY KEY);" for i in range(100))
        cancel = CancellationToken()

        def progress(count: int, name: str) -> None:
            if count == 50:
                cancel.cancel("stop requested")

        conv = parse_source("mysql", dump, cancel=cancel, progress_cb=progress)
        assert len(conv.tables) == 50
        aborted = [i for i in conv.all_issues() if i.category is IssueCategory.ABORTED]
        assert len(aborted) == 1
        assert "stop requested" in aborted[0].detail
        assert conv.is_partial

    def test_progress_callback_sees_every_table(self, parse_source) -> None:
        progress = MagicMock()
        parse_source("mysql", MYSQL_DUMP, progress_cb=progress)
        assert [c.args for c in progress.call_args_list] == [
            (1, "customers"), (2, "orders"), (3, "audit_log"),
        ]
