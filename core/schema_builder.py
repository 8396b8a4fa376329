"""
core/schema_builder.py
----------------------
Turns parsed definitions into tables of a :class:`~models.schema.Conv`.

Every reader (dump, live catalog, DynamoDB export) describes its tables as
:mod:`core.ddl_parser` definitions and hands them to a ``SchemaBuilder``,
which owns the rules they all share:

* identifier allocation from the model's counter,
* flattening of non-default namespaces to ``<namespace>_<table>``,
* the table-name collision policy,
* attaching reader-stage issues to the right owner,
* resolving foreign-key references once every table is known.

Design Decision:
    Collisions are a policy, not a guess.  ``rename`` (default) keeps both
    tables, ``skip`` keeps the first one seen, ``error`` stops the run.  Each
    non-error outcome leaves a ``name-collision`` issue behind.
"""
from __future__ import annotations

from core.ddl_parser import (
    AlterTableDef,
    ColumnDef,
    ConstraintDef,
    ConstraintKind,
    IndexDef,
    QualifiedName,
    TableDef,
)
from core.errors import SourceParseError
from logger import get_logger
from models.issues import Issue, IssueCategory, IssueStage, Severity
from models.profiles import CollisionPolicy
from models.schema import (
    CheckConstraint,
    Column,
    Conv,
    Expression,
    ForeignKey,
    Index,
    IndexKey,
    Table,
)

log = get_logger(__name__)


class SchemaBuilder:
    """
    Stateful helper used by one reader run.

    Args:
        conv:              Model to populate.
        policy:            What to do when two tables flatten to one name.
        default_namespace: Namespace whose tables keep their bare name.  When
                           None the first namespace seen becomes the default
                           (mysqldump files name their database with USE).
    """

    def __init__(
        self,
        conv: Conv,
        policy: CollisionPolicy = CollisionPolicy.RENAME,
        default_namespace: str | None = None,
    ) -> None:
        self.conv = conv
        self.policy = policy
        self.default_namespace = default_namespace
        self.current_namespace = default_namespace
        self._by_source: dict[tuple[str, str], str | None] = {}
        self._fk_targets: dict[str, tuple[str, str]] = {}
        self._enum_types: set[str] = set()

    # ------------------------------------------------------------------
    # Namespaces
    # ------------------------------------------------------------------

    def set_namespace(self, namespace: str) -> None:
        if self.default_namespace is None:
            self.default_namespace = namespace
        self.current_namespace = namespace

    def register_enum(self, name: QualifiedName) -> None:
        self._enum_types.add(name.name.lower())

    def _namespace_of(self, name: QualifiedName) -> str | None:
        namespace = name.namespace or self.current_namespace
        if namespace and self.default_namespace is None:
            self.default_namespace = namespace
        return namespace

    def flat_name(self, name: QualifiedName) -> str:
        namespace = self._namespace_of(name)
        if namespace is None or namespace.lower() == (self.default_namespace or "").lower():
            return name.name
        return f"{namespace}_{name.name}"

    def _source_key(self, name: QualifiedName) -> tuple[str, str]:
        return ((self._namespace_of(name) or "").lower(), name.name.lower())

    def lookup(self, name: QualifiedName) -> Table | None:
        """
        Find the table created for *name*.

        Raises:
            SourceParseError: If the table was never declared.
        """
        key = self._source_key(name)
        if key not in self._by_source:
            raise SourceParseError(f"Reference to undeclared table '{name}'.")
        table_id = self._by_source[key]
        return self.conv.tables.get(table_id) if table_id else None

    # ------------------------------------------------------------------
    # Tables and columns
    # ------------------------------------------------------------------

    def add_table(self, definition: TableDef) -> Table | None:
        """
        Create a table from *definition*.

        Returns:
            The new table, or None when the collision policy skipped it.

        Raises:
            SourceParseError: On a collision under the ``error`` policy, or on
                              a definition that references unknown columns.
        """
        namespace = self._namespace_of(definition.name)
        name = self.flat_name(definition.name)
        key = self._source_key(definition.name)
        existing = self.conv.table_by_name(name)
        rename_note = None
        if existing is not None:
            if self.policy is CollisionPolicy.ERROR:
                raise SourceParseError(
                    f"Table '{definition.name}' collides with existing table '{existing.name}'.",
                    obj=str(definition.name),
                )
            if self.policy is CollisionPolicy.SKIP:
                self.conv.add_issue(Issue(
                    category=IssueCategory.NAME_COLLISION,
                    severity=Severity.WARNING,
                    detail=f"Table '{definition.name}' skipped: name '{name}' is already taken by "
                           f"table {existing.id}.",
                    stage=IssueStage.PARSE,
                ))
                log.warning("Skipping table %s: name collision on '%s'", definition.name, name)
                self._by_source.setdefault(key, None)
                return None
            renamed = self._free_name(name)
            rename_note = f"Table '{definition.name}' renamed to '{renamed}': name '{name}' is already taken."
            name = renamed

        table = self.conv.add_table(Table(id=self.conv.next_id("t"), name=name, namespace=namespace))
        self._by_source[key] = table.id
        if rename_note:
            self._issue(table, IssueCategory.NAME_COLLISION, Severity.WARNING, rename_note)
            log.warning(rename_note)

        for column in definition.columns:
            self.add_column(table, column)
        for constraint in definition.constraints:
            self.add_constraint(table, constraint)
        for note in definition.notes:
            self._issue(table, IssueCategory.UNSUPPORTED_CONSTRAINT, Severity.WARNING, note)
        return table

    def _free_name(self, name: str) -> str:
        suffix = 2
        while self.conv.table_by_name(f"{name}_{suffix}") is not None:
            suffix += 1
        return f"{name}_{suffix}"

    def add_column(self, table: Table, definition: ColumnDef) -> Column:
        if table.column_by_name(definition.name) is not None:
            raise SourceParseError(
                f"Duplicate column '{definition.name}' in table '{table.name}'.", obj=table.name
            )
        source_type = definition.type
        if source_type.name in self._enum_types:
            source_type.name = "enum"
        column = table.add_column(Column(
            id=self.conv.next_id("c"),
            name=definition.name,
            type=source_type,
            nullable=definition.nullable,
            auto_increment=definition.auto_increment,
            generated_stored=definition.stored,
        ))
        if definition.default is not None:
            column.default = Expression(id=self.conv.next_id("e"), source_text=definition.default)
        if definition.generated is not None:
            column.generated = Expression(id=self.conv.next_id("e"), source_text=definition.generated)
        if definition.on_update is not None:
            self._issue(
                table, IssueCategory.UNSUPPORTED_CONSTRAINT, Severity.WARNING,
                f"ON UPDATE {definition.on_update} on column '{column.name}' is not carried over.",
                column_id=column.id,
            )
        return column

    # ------------------------------------------------------------------
    # Keys, indexes, constraints
    # ------------------------------------------------------------------

    def _column_ids(self, table: Table, names: list[str]) -> list[str]:
        ids = []
        for name in names:
            column = table.column_by_name(name)
            if column is None:
                raise SourceParseError(
                    f"Constraint on table '{table.name}' references unknown column '{name}'.",
                    obj=table.name,
                )
            ids.append(column.id)
        return ids

    def add_constraint(self, table: Table, definition: ConstraintDef) -> None:
        label = definition.name or definition.kind.value.replace("_", " ")
        if definition.problem:
            self._issue(
                table, IssueCategory.UNSUPPORTED_CONSTRAINT, Severity.WARNING,
                f"Dropped {label} on '{table.name}': {definition.problem}.",
            )
            return

        kind = definition.kind
        column_ids = self._column_ids(table, [k.column for k in definition.keys])
        keys = [IndexKey(cid, k.order) for cid, k in zip(column_ids, definition.keys)]
        constraint_id = None

        if kind is ConstraintKind.PRIMARY_KEY:
            if table.primary_key and table.primary_key_ids != column_ids:
                raise SourceParseError(f"Table '{table.name}' declares more than one primary key.",
                                       obj=table.name)
            table.primary_key = keys
            for cid in column_ids:
                table.columns[cid].nullable = False
        elif kind in (ConstraintKind.UNIQUE, ConstraintKind.INDEX):
            unique = kind is ConstraintKind.UNIQUE
            for idx in table.indexes:
                if idx.column_ids == column_ids and idx.unique == unique:
                    return
            names = "_".join(table.columns[cid].name for cid in column_ids)
            index = Index(
                id=self.conv.next_id("i"),
                name=definition.name or f"{table.name}_{names}_{'key' if unique else 'idx'}",
                keys=keys,
                unique=unique,
            )
            table.indexes.append(index)
            constraint_id = index.id
        elif kind is ConstraintKind.FOREIGN_KEY:
            fk = ForeignKey(
                id=self.conv.next_id("f"),
                name=definition.name or f"{table.name}_{definition.keys[0].column}_fkey",
                column_ids=column_ids,
                referenced_table_name=self.flat_name(definition.ref_table),
                referenced_column_names=list(definition.ref_columns),
                on_delete=definition.on_delete,
                on_update=definition.on_update,
            )
            table.foreign_keys.append(fk)
            self._fk_targets[fk.id] = self._source_key(definition.ref_table)
            constraint_id = fk.id
        else:
            check = CheckConstraint(
                id=self.conv.next_id("k"),
                name=definition.name or f"{table.name}_check{len(table.check_constraints) + 1}",
                expression=Expression(id=self.conv.next_id("e"), source_text=definition.expression or ""),
            )
            table.check_constraints.append(check)
            constraint_id = check.id

        if definition.note:
            self._issue(
                table, IssueCategory.UNSUPPORTED_CONSTRAINT, Severity.WARNING,
                f"{label} on '{table.name}': {definition.note}.",
                constraint_id=constraint_id,
            )

    def apply_alter(self, definition: AlterTableDef) -> None:
        if not (definition.columns or definition.constraints or definition.auto_increment_columns):
            return  # OWNER TO, sequences and the like
        table = self.lookup(definition.table)
        if table is None:
            return
        for column in definition.columns:
            self.add_column(table, column)
        for name in definition.auto_increment_columns:
            column = table.column_by_name(name)
            if column is not None:
                column.auto_increment = True
        for constraint in definition.constraints:
            self.add_constraint(table, constraint)

    def apply_index(self, definition: IndexDef) -> None:
        table = self.lookup(definition.table)
        if table is not None:
            self.add_constraint(table, definition.constraint)

    def unsupported_statement(self, head: str, line: int) -> None:
        self.conv.add_issue(Issue(
            category=IssueCategory.UNSUPPORTED_STATEMENT,
            severity=Severity.WARNING,
            detail=f"{head} at line {line} is not converted.",
            stage=IssueStage.PARSE,
        ))

    def finish(self) -> Conv:
        """
        Resolve foreign-key references; call once after the last table.

        A reference follows the table it was declared against, so it points
        at the renamed table after a collision.  A foreign key whose table
        was skipped by the collision policy is dropped with an issue.
        """
        for table in self.conv.tables.values():
            for fk in list(table.foreign_keys):
                key = self._fk_targets.get(fk.id)
                if key is None or key not in self._by_source:
                    continue
                target_id = self._by_source[key]
                if target_id is not None:
                    fk.referenced_table_name = self.conv.tables[target_id].name
                    continue
                table.foreign_keys.remove(fk)
                detail = (f"Foreign key {fk.name} on {table.name} dropped: referenced table "
                          f"'{'.'.join(p for p in key if p)}' was skipped by the collision policy.")
                self._issue(table, IssueCategory.NAME_COLLISION, Severity.WARNING, detail)
                log.warning(detail)
        resolve_foreign_keys(self.conv)
        return self.conv

    def _issue(self, table: Table, category: IssueCategory, severity: Severity, detail: str,
               column_id: str | None = None, constraint_id: str | None = None) -> None:
        self.conv.add_issue(Issue(
            category=category,
            severity=severity,
            detail=detail,
            stage=IssueStage.PARSE,
            table_id=table.id,
            column_id=column_id,
            constraint_id=constraint_id,
        ))


def resolve_foreign_keys(conv: Conv) -> None:
    """
    Point every foreign key at the ids of the table / columns it names.

    A reference that omits its column list targets the primary key.
    Unresolvable references are left with ``referenced_table_id = None``
    (or no column ids) for the mapper to drop with an issue.
    """
    for table in conv.tables.values():
        for fk in table.foreign_keys:
            ref = conv.table_by_name(fk.referenced_table_name)
            fk.referenced_table_id = ref.id if ref else None
            fk.referenced_column_ids = []
            if ref is None:
                continue
            if not fk.referenced_column_names:
                fk.referenced_column_names = [ref.columns[cid].name for cid in ref.primary_key_ids]
            resolved = [ref.column_by_name(name) for name in fk.referenced_column_names]
            if resolved and all(col is not None for col in resolved):
                fk.referenced_column_ids = [col.id for col in resolved]
