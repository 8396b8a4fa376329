"""
models/issues.py
----------------
Typed records for soft conversion problems.

Design Decision:
    Anything that represents an imperfect-but-usable conversion is an
    :class:`Issue` attached to the model, never an exception.  Each issue
    carries references to the table / column / constraint it concerns so the
    report can group them, and the pipeline stage that produced it so a stage
    can clear its own output before re-running.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class IssueCategory(str, Enum):
    TYPE_MISMATCH = "type-mismatch"
    LOSSY_TYPE = "lossy-type"
    UNSUPPORTED_CONSTRAINT = "unsupported-constraint"
    AMBIGUOUS_MAPPING = "ambiguous-mapping"
    EXPRESSION_REJECTED = "expression-rejected"
    VERIFICATION_SKIPPED = "verification-skipped"
    ABORTED = "aborted"
    NAME_COLLISION = "name-collision"
    ILLEGAL_NAME = "illegal-name"
    SYNTHETIC_KEY = "synthetic-key"
    UNSUPPORTED_STATEMENT = "unsupported-statement"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class IssueStage(str, Enum):
    """Pipeline stage that recorded an issue."""
    PARSE = "parse"
    MAP = "map"
    VERIFY = "verify"


@dataclass
class Issue:
    """
    One soft problem found during conversion.

    Attributes:
        category:      What kind of problem this is.
        severity:      How much attention it needs.
        detail:        Human-readable explanation.
        stage:         Stage that produced it.
        table_id:      Owning table, or None for conversion-wide issues.
        column_id:     Owning column, if the issue concerns one.
        constraint_id: Owning index / foreign key / check / expression id.
    """
    category: IssueCategory
    severity: Severity
    detail: str
    stage: IssueStage = IssueStage.PARSE
    table_id: str | None = None
    column_id: str | None = None
    constraint_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "detail": self.detail,
            "stage": self.stage.value,
            "table_id": self.table_id,
            "column_id": self.column_id,
            "constraint_id": self.constraint_id,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Issue":
        return Issue(
            category=IssueCategory(data["category"]),
            severity=Severity(data["severity"]),
            detail=data["detail"],
            stage=IssueStage(data.get("stage", IssueStage.PARSE.value)),
            table_id=data.get("table_id"),
            column_id=data.get("column_id"),
            constraint_id=data.get("constraint_id"),
        )
