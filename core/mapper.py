"""
core/mapper.py
--------------
Type & constraint mapping: turns a parsed source model into its target form
in place.

For every table, in model order:
    1. target identifiers (tables first, so foreign keys can name them),
    2. column target types through the dialect's type table,
    3. a synthetic ``synth_id STRING(50)`` key where the source has none,
    4. indexes, then foreign keys (after every key is settled) and checks.

Design Decisions:
    * The mapper owns every issue it records (stage ``map``) and clears
      them first, so mapping the same parsed input always yields the same
      target types and the same issues.
    * A foreign key the target cannot enforce as declared is flagged
      ``dropped`` with an error issue rather than kept half-valid: after
      mapping, every active foreign key references exactly a primary or
      unique key.  Dropped keys stay in the model so a second mapping
      reports them again.
    * Referential actions only ever degrade to ``NO ACTION``, and every
      degradation is recorded.
"""
from __future__ import annotations

from config import CONFIG
from core.dialects import SourceDialect, get_dialect
from core.naming import NameScope, sanitize
from core.schema_builder import resolve_foreign_keys
from core.type_mapper import string
from logger import get_logger
from models.issues import Issue, IssueCategory, IssueStage, Severity
from models.schema import (
    Column,
    Conv,
    ForeignKey,
    IndexKey,
    MappingConfidence,
    Table,
    TypeDescriptor,
)

log = get_logger(__name__)

_SUPPORTED_DELETE_ACTIONS = frozenset({"CASCADE", "NO ACTION"})
_UNKEYABLE_TYPES = frozenset({"JSON"})


def map_conv(conv: Conv, dialect: SourceDialect | None = None) -> Conv:
    """
    Map every table of *conv* to the target, in place.

    Args:
        conv:    A model populated by a reader (or loaded from a session).
        dialect: Type table to use; defaults to the model's source dialect.

    Returns:
        The same model, for chaining.
    """
    dialect = dialect or get_dialect(conv.source_dialect)
    conv.clear_issues(IssueStage.MAP)
    resolve_foreign_keys(conv)
    mapper = _Mapper(conv, dialect)

    for table in conv.tables.values():
        mapper.name_table(table)
    for table in conv.tables.values():
        mapper.map_columns(table)
        mapper.ensure_primary_key(table)
        mapper.map_indexes(table)
    for table in conv.tables.values():
        mapper.map_foreign_keys(table)
        mapper.map_checks(table)

    log.info(
        "Mapped %d table(s); %d mapping issue(s).",
        len(conv.tables),
        sum(1 for i in conv.all_issues() if i.stage is IssueStage.MAP),
    )
    return conv


class _Mapper:

    def __init__(self, conv: Conv, dialect: SourceDialect) -> None:
        self.conv = conv
        self.dialect = dialect
        self.schema_scope = NameScope()

    # ------------------------------------------------------------------
    # Issues
    # ------------------------------------------------------------------

    def _issue(self, table: Table, category: IssueCategory, severity: Severity, detail: str,
               column_id: str | None = None, constraint_id: str | None = None) -> None:
        self.conv.add_issue(Issue(
            category=category,
            severity=severity,
            detail=detail,
            stage=IssueStage.MAP,
            table_id=table.id,
            column_id=column_id,
            constraint_id=constraint_id,
        ))

    def _target_name(self, scope: NameScope, name: str, what: str, table: Table,
                     column_id: str | None = None, constraint_id: str | None = None) -> str:
        legal, reason = sanitize(name)
        target = scope.claim(legal)
        if target != legal:
            reason = f"{reason}; name already used" if reason else "name already used"
        if reason:
            self._issue(
                table, IssueCategory.ILLEGAL_NAME, Severity.WARNING,
                f"{what} '{name}' renamed to '{target}' ({reason}).",
                column_id=column_id, constraint_id=constraint_id,
            )
        return target

    # ------------------------------------------------------------------
    # Tables and columns
    # ------------------------------------------------------------------

    def name_table(self, table: Table) -> None:
        table.target_name = self._target_name(self.schema_scope, table.name, "Table", table)

    def map_columns(self, table: Table) -> None:
        scope = NameScope()
        for column in table.columns.values():
            column.target_name = self._target_name(
                scope, column.name, "Column", table, column_id=column.id
            )
            self._map_column_type(table, column)

    def _map_column_type(self, table: Table, column: Column) -> None:
        if column.synthetic:
            column.target_type = string(50)
            column.confidence = MappingConfidence.EXACT
            return
        mapping = self.dialect.map_type(column.type)
        column.target_type = mapping.target
        column.confidence = mapping.confidence
        where = f"{table.name}.{column.name} ({column.type})"

        if not mapping.known:
            self._issue(table, IssueCategory.TYPE_MISMATCH, Severity.ERROR,
                        f"{where}: {mapping.note}.", column_id=column.id)
        elif mapping.ambiguous:
            self._issue(table, IssueCategory.AMBIGUOUS_MAPPING, Severity.WARNING,
                        f"{where}: {mapping.note}.", column_id=column.id)
        elif mapping.confidence is MappingConfidence.UNSUPPORTED:
            self._issue(table, IssueCategory.LOSSY_TYPE, Severity.ERROR,
                        f"{where}: {mapping.note}.", column_id=column.id)
        elif mapping.confidence is MappingConfidence.LOSSY:
            self._issue(table, IssueCategory.LOSSY_TYPE, Severity.WARNING,
                        f"{where} → {column.target_type.render()}: {mapping.note}.",
                        column_id=column.id)

        if column.auto_increment:
            self._issue(
                table, IssueCategory.UNSUPPORTED_CONSTRAINT, Severity.WARNING,
                f"{table.name}.{column.name}: auto-increment is not supported by the target; "
                f"values must be supplied by the application.",
                column_id=column.id,
            )

    def ensure_primary_key(self, table: Table) -> None:
        synthetic = next((c for c in table.columns.values() if c.synthetic), None)
        if synthetic is None and table.primary_key:
            for key in table.primary_key:
                column = table.columns[key.column_id]
                if column.target_type.name in _UNKEYABLE_TYPES or column.target_type.array_dims:
                    self._issue(
                        table, IssueCategory.UNSUPPORTED_CONSTRAINT, Severity.ERROR,
                        f"{table.name}.{column.name}: {column.target_type.render()} columns cannot "
                        f"be part of a primary key.",
                        column_id=column.id,
                    )
            return

        if synthetic is None:
            used = {c.target_name.lower() for c in table.columns.values()}
            name = CONFIG.conversion.synthetic_key_name
            while name.lower() in used:
                name += "_"
            synthetic = table.add_column(Column(
                id=self.conv.next_id("c"),
                name=name,
                type=TypeDescriptor("STRING", params=[50]),
                nullable=False,
                synthetic=True,
                target_name=name,
            ))
            self._map_column_type(table, synthetic)
            table.primary_key = [IndexKey(synthetic.id)]
            log.debug("Added synthetic key %s to %s", name, table.name)
        self._issue(
            table, IssueCategory.SYNTHETIC_KEY, Severity.INFO,
            f"{table.name} has no primary key; added synthetic key column "
            f"'{synthetic.target_name}' STRING(50).",
            column_id=synthetic.id,
        )

    # ------------------------------------------------------------------
    # Indexes and constraints
    # ------------------------------------------------------------------

    def map_indexes(self, table: Table) -> None:
        for index in table.indexes:
            index.target_name = self._target_name(
                self.schema_scope, index.name, "Index", table, constraint_id=index.id
            )

    def map_foreign_keys(self, table: Table) -> None:
        for fk in table.foreign_keys:
            problem = self._foreign_key_problem(table, fk)
            fk.dropped = problem is not None
            if problem:
                fk.target_name = fk.target_on_delete = fk.target_on_update = None
                self._issue(
                    table, IssueCategory.UNSUPPORTED_CONSTRAINT, Severity.ERROR,
                    f"Foreign key {fk.name} on {table.name} dropped: {problem}.",
                    constraint_id=fk.id,
                )
                continue
            fk.target_name = self._target_name(
                self.schema_scope, fk.name, "Foreign key", table, constraint_id=fk.id
            )
            fk.target_on_delete = self._map_action(table, fk, "ON DELETE", fk.on_delete,
                                                   _SUPPORTED_DELETE_ACTIONS)
            fk.target_on_update = self._map_action(table, fk, "ON UPDATE", fk.on_update,
                                                   frozenset({"NO ACTION"}))

    def _foreign_key_problem(self, table: Table, fk: ForeignKey) -> str | None:
        ref = self.conv.tables.get(fk.referenced_table_id) if fk.referenced_table_id else None
        if ref is None:
            return f"referenced table '{fk.referenced_table_name}' does not exist"
        if len(fk.referenced_column_ids) != len(fk.column_ids):
            return (f"referenced columns ({', '.join(fk.referenced_column_names)}) "
                    f"do not match {len(fk.column_ids)} referencing column(s)")
        if set(fk.referenced_column_ids) not in ref.unique_key_sets():
            return (f"referenced columns ({', '.join(fk.referenced_column_names)}) are not "
                    f"a primary or unique key of '{ref.name}'")
        for cid, ref_cid in zip(fk.column_ids, fk.referenced_column_ids):
            ours = table.columns[cid].target_type
            theirs = ref.columns[ref_cid].target_type
            if ours.name != theirs.name or ours.array_dims != theirs.array_dims:
                return (f"column '{table.columns[cid].name}' is {ours.render()} but "
                        f"'{ref.columns[ref_cid].name}' is {theirs.render()}")
        return None

    def _map_action(self, table: Table, fk: ForeignKey, clause: str, action: str,
                    supported: frozenset[str]) -> str:
        action = (action or "NO ACTION").upper()
        if action in supported:
            return action
        severity = Severity.INFO if action == "RESTRICT" else Severity.WARNING
        self._issue(
            table, IssueCategory.UNSUPPORTED_CONSTRAINT, severity,
            f"Foreign key {fk.name} on {table.name}: {clause} {action} is not supported; "
            f"using NO ACTION.",
            constraint_id=fk.id,
        )
        return "NO ACTION"

    def map_checks(self, table: Table) -> None:
        for check in table.check_constraints:
            check.target_name = self._target_name(
                self.schema_scope, check.name, "Check constraint", table, constraint_id=check.id
            )
