"""
models/schema.py
----------------
Canonical schema model ("Conv") shared by every conversion stage.

Design Decision:
    Using ``@dataclass`` and ``Enum`` instead of plain dicts ensures:
    * Type checking / IDE auto-complete throughout the codebase.
    * Structural equality, so a reloaded session can be compared field by
      field with the model that was saved.
    * Easy serialisation / deserialisation with explicit to_dict / from_dict
      methods.  ``from_dict`` lets ``KeyError`` / ``ValueError`` /
      ``TypeError`` escape; the session store turns them into
      ``CorruptSessionError``.

Identifiers (``t1``, ``c2`` ...) are allocated from a counter owned by the
``Conv`` so allocation is deterministic and survives a save / load.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterator

from models.issues import Issue, IssueCategory, IssueStage, Severity


class VerificationStatus(str, Enum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    REJECTED = "rejected"


class MappingConfidence(str, Enum):
    EXACT = "exact"
    LOSSY = "lossy"
    UNSUPPORTED = "unsupported"


class SortOrder(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


# ---------------------------------------------------------------------------
# Types and expressions
# ---------------------------------------------------------------------------

@dataclass
class TypeDescriptor:
    """
    A source or target column type.

    Attributes:
        name:       Base type keyword (``"decimal"`` / ``"NUMERIC"``).
        params:     Length or precision/scale parameters, in source order.
        is_max:     True for target types sized ``(MAX)``.
        array_dims: Number of array levels wrapping the base type.
        modifiers:  Extra keywords such as ``unsigned`` or ``with time zone``.
        raw:        Source text as written, kept for reports.
    """
    name: str
    params: list[int] = field(default_factory=list)
    is_max: bool = False
    array_dims: int = 0
    modifiers: list[str] = field(default_factory=list)
    raw: str = ""

    def render(self) -> str:
        """Render in target DDL syntax, e.g. ``ARRAY<STRING(MAX)>``."""
        base = self.name
        if self.is_max:
            base += "(MAX)"
        elif self.params:
            base += "(" + ",".join(str(p) for p in self.params) + ")"
        for _ in range(self.array_dims):
            base = f"ARRAY<{base}>"
        return base

    def __str__(self) -> str:
        return self.raw or self.render()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "params": list(self.params),
            "is_max": self.is_max,
            "array_dims": self.array_dims,
            "modifiers": list(self.modifiers),
            "raw": self.raw,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "TypeDescriptor":
        return TypeDescriptor(
            name=data["name"],
            params=[int(p) for p in data.get("params", [])],
            is_max=bool(data.get("is_max", False)),
            array_dims=int(data.get("array_dims", 0)),
            modifiers=list(data.get("modifiers", [])),
            raw=data.get("raw", ""),
        )


@dataclass
class Expression:
    """
    A check / generated / default expression and its verification state.

    Status only moves forward: ``UNVERIFIED → VERIFIED`` or
    ``UNVERIFIED → REJECTED``.  Re-verification calls :meth:`reset` first.
    """
    id: str
    source_text: str
    translated_text: str | None = None
    status: VerificationStatus = VerificationStatus.UNVERIFIED
    rejection_reason: str | None = None

    def reset(self) -> None:
        self.status = VerificationStatus.UNVERIFIED
        self.rejection_reason = None

    def mark_verified(self, translated_text: str) -> None:
        self._require_unverified()
        self.translated_text = translated_text
        self.status = VerificationStatus.VERIFIED

    def mark_rejected(self, translated_text: str, reason: str) -> None:
        self._require_unverified()
        self.translated_text = translated_text
        self.status = VerificationStatus.REJECTED
        self.rejection_reason = reason

    def _require_unverified(self) -> None:
        if self.status is not VerificationStatus.UNVERIFIED:
            raise ValueError(
                f"Expression {self.id} is already {self.status.value}; reset it first."
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_text": self.source_text,
            "translated_text": self.translated_text,
            "status": self.status.value,
            "rejection_reason": self.rejection_reason,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Expression":
        return Expression(
            id=data["id"],
            source_text=data["source_text"],
            translated_text=data.get("translated_text"),
            status=VerificationStatus(data.get("status", "unverified")),
            rejection_reason=data.get("rejection_reason"),
        )


# ---------------------------------------------------------------------------
# Schema objects
# ---------------------------------------------------------------------------

@dataclass
class Column:
    id: str
    name: str
    type: TypeDescriptor
    nullable: bool = True
    default: Expression | None = None
    generated: Expression | None = None
    generated_stored: bool = True
    auto_increment: bool = False
    synthetic: bool = False
    target_name: str | None = None
    target_type: TypeDescriptor | None = None
    confidence: MappingConfidence | None = None
    issues: list[Issue] = field(default_factory=list)

    def expressions(self) -> Iterator[Expression]:
        if self.default is not None:
            yield self.default
        if self.generated is not None:
            yield self.generated

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.to_dict(),
            "nullable": self.nullable,
            "default": self.default.to_dict() if self.default else None,
            "generated": self.generated.to_dict() if self.generated else None,
            "generated_stored": self.generated_stored,
            "auto_increment": self.auto_increment,
            "synthetic": self.synthetic,
            "target_name": self.target_name,
            "target_type": self.target_type.to_dict() if self.target_type else None,
            "confidence": self.confidence.value if self.confidence else None,
            "issues": [i.to_dict() for i in self.issues],
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Column":
        default = data.get("default")
        generated = data.get("generated")
        target_type = data.get("target_type")
        confidence = data.get("confidence")
        return Column(
            id=data["id"],
            name=data["name"],
            type=TypeDescriptor.from_dict(data["type"]),
            nullable=bool(data.get("nullable", True)),
            default=Expression.from_dict(default) if default else None,
            generated=Expression.from_dict(generated) if generated else None,
            generated_stored=bool(data.get("generated_stored", True)),
            auto_increment=bool(data.get("auto_increment", False)),
            synthetic=bool(data.get("synthetic", False)),
            target_name=data.get("target_name"),
            target_type=TypeDescriptor.from_dict(target_type) if target_type else None,
            confidence=MappingConfidence(confidence) if confidence else None,
            issues=[Issue.from_dict(i) for i in data.get("issues", [])],
        )


@dataclass
class IndexKey:
    column_id: str
    order: SortOrder = SortOrder.ASC

    def to_dict(self) -> dict[str, Any]:
        return {"column_id": self.column_id, "order": self.order.value}

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "IndexKey":
        return IndexKey(column_id=data["column_id"], order=SortOrder(data.get("order", "ASC")))


@dataclass
class Index:
    id: str
    name: str
    keys: list[IndexKey] = field(default_factory=list)
    unique: bool = False
    target_name: str | None = None

    @property
    def column_ids(self) -> list[str]:
        return [k.column_id for k in self.keys]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "keys": [k.to_dict() for k in self.keys],
            "unique": self.unique,
            "target_name": self.target_name,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Index":
        return Index(
            id=data["id"],
            name=data["name"],
            keys=[IndexKey.from_dict(k) for k in data.get("keys", [])],
            unique=bool(data.get("unique", False)),
            target_name=data.get("target_name"),
        )


@dataclass
class ForeignKey:
    """
    A referential constraint.

    The reader records the referenced table and columns by name; once every
    table is known it resolves them to ids.  A foreign key whose reference
    cannot be resolved keeps ``referenced_table_id = None`` and is dropped by
    the mapper with an issue.  A dropped key stays in the model flagged
    ``dropped`` so mapping the model again reaches the same verdict; the DDL
    writer and the report leave it out.
    """
    id: str
    name: str
    column_ids: list[str]
    referenced_table_name: str
    referenced_column_names: list[str]
    referenced_table_id: str | None = None
    referenced_column_ids: list[str] = field(default_factory=list)
    on_delete: str = "NO ACTION"
    on_update: str = "NO ACTION"
    target_on_delete: str | None = None
    target_on_update: str | None = None
    target_name: str | None = None
    dropped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "column_ids": list(self.column_ids),
            "referenced_table_name": self.referenced_table_name,
            "referenced_column_names": list(self.referenced_column_names),
            "referenced_table_id": self.referenced_table_id,
            "referenced_column_ids": list(self.referenced_column_ids),
            "on_delete": self.on_delete,
            "on_update": self.on_update,
            "target_on_delete": self.target_on_delete,
            "target_on_update": self.target_on_update,
            "target_name": self.target_name,
            "dropped": self.dropped,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ForeignKey":
        return ForeignKey(
            id=data["id"],
            name=data["name"],
            column_ids=list(data["column_ids"]),
            referenced_table_name=data["referenced_table_name"],
            referenced_column_names=list(data["referenced_column_names"]),
            referenced_table_id=data.get("referenced_table_id"),
            referenced_column_ids=list(data.get("referenced_column_ids", [])),
            on_delete=data.get("on_delete", "NO ACTION"),
            on_update=data.get("on_update", "NO ACTION"),
            target_on_delete=data.get("target_on_delete"),
            target_on_update=data.get("target_on_update"),
            target_name=data.get("target_name"),
            dropped=data.get("dropped", False),
        )


@dataclass
class CheckConstraint:
    id: str
    name: str
    expression: Expression
    target_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "expression": self.expression.to_dict(),
            "target_name": self.target_name,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "CheckConstraint":
        return CheckConstraint(
            id=data["id"],
            name=data["name"],
            expression=Expression.from_dict(data["expression"]),
            target_name=data.get("target_name"),
        )


@dataclass
class Table:
    """
    One source table and its converted form.

    Attributes:
        columns:     Ordered ``{column_id: Column}``; order is DDL order.
        primary_key: Ordered primary-key columns (empty until declared or
                     synthesised by the mapper).
        namespace:   Source schema / database the table came from.
    """
    id: str
    name: str
    namespace: str | None = None
    target_name: str | None = None
    columns: dict[str, Column] = field(default_factory=dict)
    primary_key: list[IndexKey] = field(default_factory=list)
    indexes: list[Index] = field(default_factory=list)
    foreign_keys: list[ForeignKey] = field(default_factory=list)
    check_constraints: list[CheckConstraint] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)

    def add_column(self, column: Column) -> Column:
        self.columns[column.id] = column
        return column

    def column_by_name(self, name: str) -> Column | None:
        """Case-insensitive lookup by source column name."""
        lowered = name.lower()
        for col in self.columns.values():
            if col.name.lower() == lowered:
                return col
        return None

    @property
    def primary_key_ids(self) -> list[str]:
        return [k.column_id for k in self.primary_key]

    @property
    def active_foreign_keys(self) -> list[ForeignKey]:
        """Foreign keys the mapper kept."""
        return [fk for fk in self.foreign_keys if not fk.dropped]

    def unique_key_sets(self) -> list[set[str]]:
        """Column-id sets of the primary key and every unique index."""
        keys = [set(self.primary_key_ids)] if self.primary_key else []
        keys.extend(set(idx.column_ids) for idx in self.indexes if idx.unique)
        return keys

    def expressions(self) -> Iterator[Expression]:
        for col in self.columns.values():
            yield from col.expressions()
        for check in self.check_constraints:
            yield check.expression

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "namespace": self.namespace,
            "target_name": self.target_name,
            "columns": [c.to_dict() for c in self.columns.values()],
            "primary_key": [k.to_dict() for k in self.primary_key],
            "indexes": [i.to_dict() for i in self.indexes],
            "foreign_keys": [f.to_dict() for f in self.foreign_keys],
            "check_constraints": [c.to_dict() for c in self.check_constraints],
            "issues": [i.to_dict() for i in self.issues],
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Table":
        columns = [Column.from_dict(c) for c in data["columns"]]
        return Table(
            id=data["id"],
            name=data["name"],
            namespace=data.get("namespace"),
            target_name=data.get("target_name"),
            columns={c.id: c for c in columns},
            primary_key=[IndexKey.from_dict(k) for k in data.get("primary_key", [])],
            indexes=[Index.from_dict(i) for i in data.get("indexes", [])],
            foreign_keys=[ForeignKey.from_dict(f) for f in data.get("foreign_keys", [])],
            check_constraints=[
                CheckConstraint.from_dict(c) for c in data.get("check_constraints", [])
            ],
            issues=[Issue.from_dict(i) for i in data.get("issues", [])],
        )


# ---------------------------------------------------------------------------
# Audit + aggregate
# ---------------------------------------------------------------------------

def _dt_to_str(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dt_from_str(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class Audit:
    """Run metadata carried alongside the schema for reporting."""
    migration_request_id: str | None = None
    source_dialect: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_seconds: float = 0.0
    issue_counts: dict[str, int] = field(default_factory=dict)
    tool_version: str | None = None
    bytes_read: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "migration_request_id": self.migration_request_id,
            "source_dialect": self.source_dialect,
            "started_at": _dt_to_str(self.started_at),
            "finished_at": _dt_to_str(self.finished_at),
            "duration_seconds": self.duration_seconds,
            "issue_counts": dict(self.issue_counts),
            "tool_version": self.tool_version,
            "bytes_read": self.bytes_read,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Audit":
        return Audit(
            migration_request_id=data.get("migration_request_id"),
            source_dialect=data.get("source_dialect"),
            started_at=_dt_from_str(data.get("started_at")),
            finished_at=_dt_from_str(data.get("finished_at")),
            duration_seconds=float(data.get("duration_seconds", 0.0)),
            issue_counts={k: int(v) for k, v in data.get("issue_counts", {}).items()},
            tool_version=data.get("tool_version"),
            bytes_read=int(data.get("bytes_read", 0)),
        )


@dataclass
class Conv:
    """
    The canonical schema model passed through the pipeline.

    Attributes:
        tables:          Ordered ``{table_id: Table}``.
        source_dialect:  Dialect tag of the source that populated the model.
        issues:          Conversion-wide issues (no owning table).
        audit:           Run metadata.
        id_counter:      Last allocated identifier number.
    """
    source_dialect: str = ""
    tables: dict[str, Table] = field(default_factory=dict)
    issues: list[Issue] = field(default_factory=list)
    audit: Audit = field(default_factory=Audit)
    id_counter: int = 0

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def next_id(self, prefix: str) -> str:
        self.id_counter += 1
        return f"{prefix}{self.id_counter}"

    def add_table(self, table: Table) -> Table:
        self.tables[table.id] = table
        return table

    def table_by_name(self, name: str) -> Table | None:
        lowered = name.lower()
        for table in self.tables.values():
            if table.name.lower() == lowered:
                return table
        return None

    # ------------------------------------------------------------------
    # Issues
    # ------------------------------------------------------------------

    def add_issue(self, issue: Issue) -> Issue:
        """Attach *issue* to the column, table or conversion it references."""
        table = self.tables.get(issue.table_id) if issue.table_id else None
        if table is None:
            self.issues.append(issue)
        elif issue.column_id and issue.column_id in table.columns:
            table.columns[issue.column_id].issues.append(issue)
        else:
            table.issues.append(issue)
        return issue

    def all_issues(self) -> Iterator[Issue]:
        yield from self.issues
        for table in self.tables.values():
            yield from table.issues
            for col in table.columns.values():
                yield from col.issues

    def clear_issues(self, stage: IssueStage, table_id: str | None = None,
                     constraint_id: str | None = None) -> None:
        """Drop issues recorded by *stage*, optionally only for one owner."""
        def keep(issue: Issue) -> bool:
            if issue.stage is not stage:
                return True
            if constraint_id is not None and issue.constraint_id != constraint_id:
                return True
            return False

        if table_id is None and constraint_id is None:
            self.issues = [i for i in self.issues if keep(i)]
        tables = [self.tables[table_id]] if table_id else list(self.tables.values())
        for table in tables:
            table.issues = [i for i in table.issues if keep(i)]
            for col in table.columns.values():
                col.issues = [i for i in col.issues if keep(i)]

    @property
    def is_partial(self) -> bool:
        return any(i.category is IssueCategory.ABORTED for i in self.issues)

    def mark_aborted(self, detail: str, stage: IssueStage) -> None:
        """Record the cancellation once; later calls are no-ops."""
        if self.is_partial:
            return
        self.issues.append(Issue(
            category=IssueCategory.ABORTED,
            severity=Severity.ERROR,
            detail=detail,
            stage=stage,
        ))

    def issue_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for issue in self.all_issues():
            counts[issue.category.value] = counts.get(issue.category.value, 0) + 1
        return dict(sorted(counts.items()))

    # ------------------------------------------------------------------
    # Consistency
    # ------------------------------------------------------------------

    def dangling_references(self) -> list[str]:
        """
        Return a description of every reference that points nowhere.

        Used by the session store to reject structurally invalid files.
        """
        problems: list[str] = []
        seen_ids: set[str] = set()

        def claim(obj_id: str) -> None:
            if obj_id in seen_ids:
                problems.append(f"duplicate identifier '{obj_id}'")
            seen_ids.add(obj_id)

        for table_id, table in self.tables.items():
            if table_id != table.id:
                problems.append(f"table key '{table_id}' does not match id '{table.id}'")
            claim(table.id)
            cols = table.columns
            for col in cols.values():
                claim(col.id)
                for expr in col.expressions():
                    claim(expr.id)
            for key in table.primary_key:
                if key.column_id not in cols:
                    problems.append(f"{table.name}: primary key column '{key.column_id}' missing")
            for idx in table.indexes:
                claim(idx.id)
                for key in idx.keys:
                    if key.column_id not in cols:
                        problems.append(f"{table.name}.{idx.name}: column '{key.column_id}' missing")
            for check in table.check_constraints:
                claim(check.id)
                claim(check.expression.id)
            for fk in table.foreign_keys:
                claim(fk.id)
                for cid in fk.column_ids:
                    if cid not in cols:
                        problems.append(f"{table.name}.{fk.name}: column '{cid}' missing")
                if fk.referenced_table_id is None:
                    continue
                ref = self.tables.get(fk.referenced_table_id)
                if ref is None:
                    problems.append(
                        f"{table.name}.{fk.name}: referenced table '{fk.referenced_table_id}' missing"
                    )
                    continue
                for cid in fk.referenced_column_ids:
                    if cid not in ref.columns:
                        problems.append(f"{table.name}.{fk.name}: referenced column '{cid}' missing")

        for issue in self.all_issues():
            if issue.table_id and issue.table_id not in self.tables:
                problems.append(f"issue references unknown table '{issue.table_id}'")
        return problems

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_dialect": self.source_dialect,
            "id_counter": self.id_counter,
            "tables": [t.to_dict() for t in self.tables.values()],
            "issues": [i.to_dict() for i in self.issues],
            "audit": self.audit.to_dict(),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Conv":
        tables = [Table.from_dict(t) for t in data["tables"]]
        return Conv(
            source_dialect=data["source_dialect"],
            tables={t.id: t for t in tables},
            issues=[Issue.from_dict(i) for i in data.get("issues", [])],
            audit=Audit.from_dict(data.get("audit", {})),
            id_counter=int(data["id_counter"]),
        )
