"""
core/dialects/dynamodb.py
-------------------------
DynamoDB source read from an export file.

Export format (JSON)::

    {"tables": [
        {"Table": {<DescribeTable output>},
         "Items": [{"attr": {"S": "x"}, ...}, ...]}      # optional samples
    ]}

A bare ``{"Table": {...}}`` (the output of ``aws dynamodb describe-table``)
or a list of such entries is also accepted.

Design Decisions:
    * Key attributes take their type from ``AttributeDefinitions``; other
      attributes are inferred from the sampled items.  The most common type
      wins when it covers at least ``DYNAMODB_TYPE_THRESHOLD`` of the items
      that carry the attribute; otherwise the column is typed ``mixed`` and
      the mapper reports an ``ambiguous-mapping``.
    * Attributes missing from some samples are nullable.
"""
from __future__ import annotations

import json
from collections import Counter
from typing import Any

from config import CONFIG
from core.ddl_parser import ColumnDef, ConstraintDef, ConstraintKind, KeyPart, QualifiedName, TableDef
from core.dialects.base import ReadContext, SourceDialect
from core.errors import SourceParseError
from core.type_mapper import (
    TypeMapping,
    array_of,
    bool_,
    bytes_,
    exact,
    json_,
    lossy,
    numeric,
    string,
    unknown,
)
from logger import get_logger
from models.profiles import SourceProfile
from models.schema import MappingConfidence, TypeDescriptor

log = get_logger(__name__)

_TYPE_CODES = ("S", "N", "B", "BOOL", "NULL", "M", "L", "SS", "NS", "BS")
_NUMBER_NOTE = "DynamoDB numbers carry 38 significant digits; NUMERIC keeps only 9 after the point"


def _attribute_type(value: dict[str, Any]) -> str:
    if not isinstance(value, dict) or len(value) != 1:
        raise SourceParseError(f"Malformed DynamoDB attribute value {value!r}.")
    code = next(iter(value))
    if code not in _TYPE_CODES:
        raise SourceParseError(f"Unknown DynamoDB attribute type '{code}'.")
    return code


def infer_attribute_types(
    items: list[dict[str, Any]], threshold: float
) -> dict[str, tuple[TypeDescriptor, bool]]:
    """
    Infer ``{attribute: (type, nullable)}`` from sampled items.

    Attributes are returned in name order so the inferred schema does not
    depend on sample order.
    """
    counts: dict[str, Counter] = {}
    for item in items:
        if not isinstance(item, dict):
            raise SourceParseError(f"Malformed DynamoDB item {item!r}.")
        for attr, value in item.items():
            counts.setdefault(attr, Counter())[_attribute_type(value)] += 1

    result: dict[str, tuple[TypeDescriptor, bool]] = {}
    for attr in sorted(counts):
        seen = counts[attr]
        present = sum(seen.values())
        non_null = {code: n for code, n in seen.items() if code != "NULL"}
        nullable = present < len(items) or "NULL" in seen
        if not non_null:
            result[attr] = (TypeDescriptor("NULL", raw="NULL"), True)
            continue
        total = sum(non_null.values())
        # ties resolve alphabetically so inference is deterministic
        code, hits = sorted(non_null.items(), key=lambda kv: (-kv[1], kv[0]))[0]
        others = sorted(c for c in non_null if c != code)
        if hits / total >= threshold:
            desc = TypeDescriptor(code, modifiers=[f"also:{c}" for c in others], raw=code)
        else:
            seen_codes = sorted(non_null)
            desc = TypeDescriptor("mixed", modifiers=seen_codes, raw="|".join(seen_codes))
        result[attr] = (desc, nullable)
    return result


class DynamoDBDialect(SourceDialect):
    """Reads DescribeTable exports with optional item samples."""

    tag = "dynamodb"

    def __init__(self, threshold: float | None = None) -> None:
        self.threshold = CONFIG.source.dynamodb_type_threshold if threshold is None else threshold

    def _read_file(self, profile: SourceProfile, reader: ReadContext) -> None:
        try:
            data = profile.file.read_bytes()
        except OSError as exc:
            raise SourceParseError(f"Cannot read DynamoDB export: {exc}", obj=str(profile.file)) from exc
        reader.builder.conv.audit.bytes_read += len(data)
        try:
            document = json.loads(data)
        except json.JSONDecodeError as exc:
            raise SourceParseError(f"DynamoDB export is not valid JSON: {exc}",
                                   obj=str(profile.file)) from exc
        self.read_export(document, reader)

    def read_export(self, document: Any, reader: ReadContext) -> None:
        if isinstance(document, dict) and "tables" in document:
            entries = document["tables"]
        elif isinstance(document, dict):
            entries = [document]
        else:
            entries = document
        if not isinstance(entries, list):
            raise SourceParseError("DynamoDB export must hold a list of tables.")
        log.info("Reading %d DynamoDB table description(s)", len(entries))
        for entry in entries:
            if reader.should_stop():
                return
            reader.add_table(self.table_definition(entry))

    def table_definition(self, entry: dict[str, Any]) -> TableDef:
        """Build a table definition from one export entry."""
        try:
            table = entry.get("Table", entry)
            name = table["TableName"]
            key_schema = table["KeySchema"]
            attr_defs = {a["AttributeName"]: a["AttributeType"]
                         for a in table.get("AttributeDefinitions", [])}
        except (KeyError, TypeError, AttributeError) as exc:
            raise SourceParseError(f"Malformed DynamoDB table description: missing {exc}",
                                   obj=str(entry)[:200]) from exc

        definition = TableDef(name=QualifiedName(None, name))
        keys = self._key_parts(key_schema)
        key_names = {k.column for k in keys}
        for key in keys:
            code = attr_defs.get(key.column)
            if code is None:
                raise SourceParseError(f"Key attribute '{key.column}' of '{name}' has no definition.",
                                       obj=name)
            definition.columns.append(
                ColumnDef(key.column, TypeDescriptor(code, raw=code), nullable=False)
            )
        definition.constraints.append(ConstraintDef(ConstraintKind.PRIMARY_KEY, keys=keys))

        for attr in sorted(attr_defs):
            if attr not in key_names:
                code = attr_defs[attr]
                definition.columns.append(ColumnDef(attr, TypeDescriptor(code, raw=code)))
                key_names.add(attr)

        items = entry.get("Items") or []
        for attr, (desc, nullable) in infer_attribute_types(items, self.threshold).items():
            if attr not in key_names:
                definition.columns.append(ColumnDef(attr, desc, nullable=nullable))

        for kind in ("GlobalSecondaryIndexes", "LocalSecondaryIndexes"):
            for index in table.get(kind, []) or []:
                definition.constraints.append(ConstraintDef(
                    ConstraintKind.INDEX,
                    name=index.get("IndexName"),
                    keys=self._key_parts(index.get("KeySchema", [])),
                ))
        return definition

    @staticmethod
    def _key_parts(key_schema: list[dict[str, str]]) -> list[KeyPart]:
        ordered = sorted(key_schema, key=lambda k: 0 if k.get("KeyType") == "HASH" else 1)
        return [KeyPart(k["AttributeName"]) for k in ordered]

    def map_type(self, source: TypeDescriptor) -> TypeMapping:
        """
        Map a DynamoDB attribute type.

        Examples::

            S    → STRING(MAX)         exact
            N    → NUMERIC             lossy
            SS   → ARRAY<STRING(MAX)>  exact
            M, L → JSON                exact
        """
        code = source.name
        if code == "mixed":
            return TypeMapping(
                string(), MappingConfidence.LOSSY,
                f"sampled values have no dominant type ({', '.join(source.modifiers)}); stored as text",
                ambiguous=True,
            )
        if code == "S":
            mapping = exact(string())
        elif code == "N":
            mapping = lossy(numeric(), _NUMBER_NOTE)
        elif code == "B":
            mapping = exact(bytes_())
        elif code == "BOOL":
            mapping = exact(bool_())
        elif code in ("M", "L"):
            mapping = exact(json_())
        elif code == "SS":
            mapping = exact(array_of(string()))
        elif code == "NS":
            mapping = lossy(array_of(numeric()), _NUMBER_NOTE)
        elif code == "BS":
            mapping = exact(array_of(bytes_()))
        elif code == "NULL":
            return lossy(string(), "only NULL values were sampled; stored as text")
        else:
            return unknown(source)

        others = [m.split(":", 1)[1] for m in source.modifiers if m.startswith("also:")]
        if others:
            note = f"some sampled values are {', '.join(others)}, which may not convert"
            if mapping.note:
                note = f"{mapping.note}; {note}"
            return lossy(mapping.target, note)
        return mapping
