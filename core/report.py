"""
core/report.py
--------------
Report Assembler: a read-only summary of a converted model.

Design Decision:
    The report is derived from the model alone (no clock, no randomness),
    so assembling it twice from the same model gives equal reports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from models.issues import Severity
from models.schema import Conv, MappingConfidence, Table, VerificationStatus


@dataclass
class TableSummary:
    name: str
    target_name: str | None
    columns: int
    indexes: int
    foreign_keys: int
    check_constraints: int
    synthetic_key: bool
    issues: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "target_name": self.target_name,
            "columns": self.columns,
            "indexes": self.indexes,
            "foreign_keys": self.foreign_keys,
            "check_constraints": self.check_constraints,
            "synthetic_key": self.synthetic_key,
            "issues": dict(self.issues),
        }


@dataclass
class ExpressionSummary:
    id: str
    table: str
    owner: str
    source_text: str
    translated_text: str | None
    status: str
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "table": self.table,
            "owner": self.owner,
            "source_text": self.source_text,
            "translated_text": self.translated_text,
            "status": self.status,
            "reason": self.reason,
        }


@dataclass
class ConversionReport:
    source_dialect: str
    partial: bool
    totals: dict[str, int]
    issues_by_category: dict[str, int]
    issues_by_severity: dict[str, int]
    confidence: dict[str, int]
    synthetic_keys: list[dict[str, str]] = field(default_factory=list)
    rejected_expressions: list[ExpressionSummary] = field(default_factory=list)
    unverified_expressions: list[ExpressionSummary] = field(default_factory=list)
    tables: list[TableSummary] = field(default_factory=list)
    audit: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_dialect": self.source_dialect,
            "partial": self.partial,
            "totals": dict(self.totals),
            "issues_by_category": dict(self.issues_by_category),
            "issues_by_severity": dict(self.issues_by_severity),
            "confidence": dict(self.confidence),
            "synthetic_keys": [dict(s) for s in self.synthetic_keys],
            "rejected_expressions": [e.to_dict() for e in self.rejected_expressions],
            "unverified_expressions": [e.to_dict() for e in self.unverified_expressions],
            "tables": [t.to_dict() for t in self.tables],
            "audit": dict(self.audit),
        }

    def render_text(self) -> str:
        """Short human-readable summary for the console."""
        lines = [
            f"Conversion report ({self.source_dialect or 'unknown source'})"
            + (" [PARTIAL]" if self.partial else ""),
            f"  Tables: {self.totals['tables']}  Columns: {self.totals['columns']}  "
            f"Indexes: {self.totals['indexes']}  Foreign keys: {self.totals['foreign_keys']}  "
            f"Checks: {self.totals['check_constraints']}",
            "  Type mappings: " + ", ".join(f"{k}={v}" for k, v in self.confidence.items()),
        ]
        if self.issues_by_category:
            lines.append("  Issues:")
            for category, count in self.issues_by_category.items():
                lines.append(f"    {category:<24} {count}")
        else:
            lines.append("  Issues: none")
        if self.synthetic_keys:
            lines.append("  Synthetic keys: " + ", ".join(
                f"{s['table']}.{s['column']}" for s in self.synthetic_keys
            ))
        if self.rejected_expressions:
            lines.append("  Rejected expressions:")
            for expr in self.rejected_expressions:
                lines.append(f"    {expr.owner}: {expr.source_text}  ({expr.reason})")
        if self.unverified_expressions:
            lines.append(f"  Unverified expressions: {len(self.unverified_expressions)}")
        return "\n".join(lines)


class ReportAssembler:
    """Builds a :class:`ConversionReport`; never modifies the model."""

    def assemble(self, conv: Conv) -> ConversionReport:
        by_category: dict[str, int] = {}
        by_severity = {s.value: 0 for s in Severity}
        for issue in conv.all_issues():
            by_category[issue.category.value] = by_category.get(issue.category.value, 0) + 1
            by_severity[issue.severity.value] += 1

        confidence = {c.value: 0 for c in MappingConfidence}
        confidence["unmapped"] = 0
        synthetic: list[dict[str, str]] = []
        rejected: list[ExpressionSummary] = []
        unverified: list[ExpressionSummary] = []
        tables: list[TableSummary] = []
        totals = dict.fromkeys(
            ("tables", "columns", "indexes", "foreign_keys", "check_constraints", "expressions"), 0
        )

        for table in conv.tables.values():
            totals["tables"] += 1
            totals["columns"] += len(table.columns)
            totals["indexes"] += len(table.indexes)
            totals["foreign_keys"] += len(table.active_foreign_keys)
            totals["check_constraints"] += len(table.check_constraints)
            for column in table.columns.values():
                key = column.confidence.value if column.confidence else "unmapped"
                confidence[key] += 1
                if column.synthetic:
                    synthetic.append({"table": table.name,
                                      "column": column.target_name or column.name})
            for owner, expr in self._expressions(table):
                totals["expressions"] += 1
                summary = ExpressionSummary(
                    id=expr.id,
                    table=table.name,
                    owner=owner,
                    source_text=expr.source_text,
                    translated_text=expr.translated_text,
                    status=expr.status.value,
                    reason=expr.rejection_reason,
                )
                if expr.status is VerificationStatus.REJECTED:
                    rejected.append(summary)
                elif expr.status is VerificationStatus.UNVERIFIED:
                    unverified.append(summary)
            tables.append(self._table_summary(table))

        audit = conv.audit.to_dict()
        audit["issue_counts"] = dict(sorted(by_category.items()))
        return ConversionReport(
            source_dialect=conv.source_dialect,
            partial=conv.is_partial,
            totals=totals,
            issues_by_category=dict(sorted(by_category.items())),
            issues_by_severity=by_severity,
            confidence=confidence,
            synthetic_keys=synthetic,
            rejected_expressions=rejected,
            unverified_expressions=unverified,
            tables=tables,
            audit=audit,
        )

    @staticmethod
    def _expressions(table: Table):
        for column in table.columns.values():
            if column.default is not None:
                yield f"{table.name}.{column.name} default", column.default
            if column.generated is not None:
                yield f"{table.name}.{column.name} generated", column.generated
        for check in table.check_constraints:
            yield f"{table.name} check {check.name}", check.expression

    @staticmethod
    def _table_summary(table: Table) -> TableSummary:
        issues: dict[str, int] = {}
        owned = list(table.issues)
        for column in table.columns.values():
            owned.extend(column.issues)
        for issue in owned:
            issues[issue.severity.value] = issues.get(issue.severity.value, 0) + 1
        return TableSummary(
            name=table.name,
            target_name=table.target_name,
            columns=len(table.columns),
            indexes=len(table.indexes),
            foreign_keys=len(table.active_foreign_keys),
            check_constraints=len(table.check_constraints),
            synthetic_key=any(c.synthetic for c in table.columns.values()),
            issues=dict(sorted(issues.items())),
        )
