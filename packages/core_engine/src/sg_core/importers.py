"""Lower a parsed DDL script into the schema model.

Pass 1 registers schemas and tables and applies everything declared inside a
CREATE TABLE body. Pass 2 applies ALTER TABLE ... ADD CONSTRAINT and CREATE
INDEX statements, wherever they appear in the text. The final pass names
foreign keys, optionally promotes referenced columns into primary keys and
derives the column flags from the table-level structures.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sg_core.issues import Issue, has_errors, line_path, warning
from sg_core.model import (
    CHARACTER_TYPES,
    DEFAULT_SCHEMA,
    EXACT_NUMERIC_TYPES,
    IDENTITY_MARKER,
    MAX_LENGTH,
    Column,
    Database,
    ForeignKeyRef,
    Index,
    PrimaryKey,
    Table,
    UniqueConstraint,
    clustered_structures,
    default_fk_name,
    default_index_name,
    default_pk_name,
    default_unique_name,
    is_referenceable,
    iter_columns,
    iter_tables,
    sync_flags_from_structures,
)
from sg_core.parser import parse_script
from sg_core.statements import (
    AlterTableAddConstraint,
    ColumnDef,
    CreateIndex,
    CreateSchema,
    CreateTable,
    ForeignKeyConstraint,
    KeyConstraint,
    QualifiedName,
    Skipped,
)

logger = logging.getLogger(__name__)


@dataclass
class ParseResult:
    database: Database
    issues: List[Issue] = field(default_factory=list)
    skipped: List[Skipped] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return has_errors(self.issues)


@dataclass
class _PendingReference:
    """REFERENCES t without a column list; resolved once every table exists."""

    schema: str
    table: str
    column: str
    target: QualifiedName
    line: int


class _Lowering:
    def __init__(self, database_name: str, default_schema: str) -> None:
        self.default_schema = default_schema
        self.database = Database.empty(database_name, default_schema)
        self.issues: List[Issue] = []
        self.pending: List[_PendingReference] = []

    def warn(self, code: str, message: str, line: int = 0) -> None:
        self.issues.append(warning(code, message, line_path(line)))

    def schema_of(self, name: QualifiedName) -> str:
        return name.schema or self.default_schema

    def locate(self, name: QualifiedName, line: int) -> Optional[Table]:
        table = self.database.find_table(self.schema_of(name), name.name)
        if table is None:
            self.warn(
                "CONSTRAINT_TARGET_NOT_FOUND",
                f"Table '{self.schema_of(name)}.{name.name}' is not defined.",
                line,
            )
        return table

    def known_columns(self, table: Table, columns: List[str], line: int) -> List[str]:
        known = []
        for name in columns:
            if table.find_column(name) is None:
                self.warn(
                    "CONSTRAINT_TARGET_NOT_FOUND",
                    f"Column '{name}' does not exist on table '{table.name}'.",
                    line,
                )
                continue
            known.append(name)
        return known

    # --- Pass 1 ---

    def create_table(self, statement: CreateTable) -> None:
        schema_name = self.schema_of(statement.table)
        schema = self.database.ensure_schema(schema_name)
        if schema.find_table(statement.table.name) is not None:
            self.warn(
                "DUPLICATE_TABLE",
                f"Table '{schema_name}.{statement.table.name}' is declared more than once; "
                "the first definition is kept.",
                statement.line,
            )
            return

        table = Table(name=statement.table.name)
        schema.tables.append(table)
        inline_fks: List[ForeignKeyConstraint] = []
        for definition in statement.columns:
            if table.find_column(definition.name) is not None:
                self.warn(
                    "DUPLICATE_COLUMN",
                    f"Column '{definition.name}' is declared more than once on '{table.name}'.",
                    statement.line,
                )
                continue
            table.columns.append(_lower_column(definition))
            if definition.primary_key is not None:
                self.add_key(table, definition.primary_key, statement.line)
            if definition.unique is not None:
                self.add_key(table, definition.unique, statement.line)
            if definition.references is not None:
                inline_fks.append(definition.references)

        for constraint in inline_fks:
            self.add_foreign_key(schema_name, table, constraint, statement.line)
        # Table-level foreign keys override inline REFERENCES on the same column.
        for constraint in statement.constraints:
            if isinstance(constraint, KeyConstraint):
                self.add_key(table, constraint, statement.line)
            elif isinstance(constraint, ForeignKeyConstraint):
                self.add_foreign_key(schema_name, table, constraint, statement.line, replace_name=True)
        logger.debug("Lowered table %s.%s (%d columns)", schema_name, table.name, len(table.columns))

    def add_key(self, table: Table, constraint: KeyConstraint, line: int) -> None:
        columns = self.known_columns(table, constraint.columns, line)
        if not columns:
            return
        if constraint.kind == "PRIMARY KEY":
            if table.primary_key is not None:
                self.warn(
                    "DUPLICATE_PRIMARY_KEY",
                    f"Table '{table.name}' already has primary key '{table.primary_key.name}'.",
                    line,
                )
                return
            clustered = constraint.clustered is not False
            if clustered and clustered_structures(table):
                clustered = False
            table.primary_key = PrimaryKey(
                name=constraint.name or default_pk_name(table.name),
                columns=columns,
                is_clustered=clustered,
            )
            return

        name = constraint.name or default_unique_name(table.name, columns)
        if any(uc.name == name for uc in table.unique_constraints):
            self.warn("DUPLICATE_CONSTRAINT", f"Constraint '{name}' is declared more than once.", line)
            return
        table.unique_constraints.append(UniqueConstraint(name=name, columns=columns))

    def add_foreign_key(
        self,
        schema_name: str,
        table: Table,
        constraint: ForeignKeyConstraint,
        line: int,
        replace_name: bool = False,
    ) -> None:
        clause = constraint.clause
        if len(clause.columns) > 1:
            self.warn(
                "COMPOSITE_FOREIGN_KEY",
                f"Composite foreign key on '{table.name}' is stored as one reference per column.",
                line,
            )
        target_schema = self.schema_of(clause.ref_table)
        for position, column_name in enumerate(clause.columns):
            column = table.find_column(column_name)
            if column is None:
                self.known_columns(table, [column_name], line)
                continue
            if position < len(clause.ref_columns):
                column.foreign_key_ref = ForeignKeyRef(
                    target_schema, clause.ref_table.name, clause.ref_columns[position]
                )
            elif not clause.ref_columns:
                self.pending.append(
                    _PendingReference(schema_name, table.name, column_name, clause.ref_table, line)
                )
            else:
                self.warn(
                    "CONSTRAINT_TARGET_NOT_FOUND",
                    f"Foreign key column '{column_name}' has no matching referenced column.",
                    line,
                )
                continue
            # Names from ALTER TABLE never replace one declared inline.
            if replace_name:
                column.fk_constraint_name = constraint.name
            elif constraint.name and not column.fk_constraint_name:
                column.fk_constraint_name = constraint.name

    # --- Pass 2 ---

    def alter_table(self, statement: AlterTableAddConstraint) -> None:
        table = self.locate(statement.table, statement.line)
        if table is None:
            return
        constraint = statement.constraint
        if isinstance(constraint, KeyConstraint):
            self.add_key(table, constraint, statement.line)
        elif isinstance(constraint, ForeignKeyConstraint):
            self.add_foreign_key(self.schema_of(statement.table), table, constraint, statement.line)

    def create_index(self, statement: CreateIndex) -> None:
        table = self.locate(statement.table, statement.line)
        if table is None:
            return
        columns = self.known_columns(table, statement.columns, statement.line)
        if not columns:
            return
        name = statement.name or default_index_name(table.name, columns, statement.is_unique)
        if table.find_index(name) is not None:
            self.warn("DUPLICATE_INDEX", f"Index '{name}' is declared more than once.", statement.line)
            return
        clustered = statement.clustered is True
        if clustered and clustered_structures(table):
            self.warn(
                "CLUSTERED_INDEX_CONFLICT",
                f"Table '{table.name}' already has a clustered structure; "
                f"index '{name}' is kept as nonclustered.",
                statement.line,
            )
            clustered = False
        table.indexes.append(
            Index(name=name, columns=columns, is_clustered=clustered, is_unique=statement.is_unique)
        )

    # --- Final pass ---

    def resolve_pending(self) -> None:
        for pending in self.pending:
            column = self.database.find_column(pending.schema, pending.table, pending.column)
            target_schema = self.schema_of(pending.target)
            target = self.database.find_table(target_schema, pending.target.name)
            if column is None:
                continue
            if target is None or target.primary_key is None or len(target.primary_key.columns) != 1:
                self.warn(
                    "CONSTRAINT_TARGET_NOT_FOUND",
                    f"Cannot resolve the referenced column of '{pending.table}.{pending.column}'.",
                    pending.line,
                )
                column.clear_foreign_key()
                continue
            column.foreign_key_ref = ForeignKeyRef(
                target_schema, target.name, target.primary_key.columns[0]
            )

    def finish(self, infer_referenced_primary_keys: bool) -> None:
        self.resolve_pending()
        for _schema, table, column in iter_columns(self.database):
            ref = column.foreign_key_ref
            if ref is None:
                continue
            if not column.fk_constraint_name:
                column.fk_constraint_name = default_fk_name(table.name, column.name)
            target = self.database.find_table(ref.schema, ref.table)
            if target is None or target.find_column(ref.column) is None:
                self.warn(
                    "FOREIGN_KEY_TARGET_NOT_FOUND",
                    f"'{table.name}.{column.name}' references missing column "
                    f"'{ref.schema}.{ref.table}.{ref.column}'.",
                )
                continue
            if infer_referenced_primary_keys and not is_referenceable(target, ref.column):
                _promote_to_primary_key(target, ref.column)
                logger.debug("Promoted %s.%s.%s into the primary key", ref.schema, ref.table, ref.column)

        for _schema, table in iter_tables(self.database):
            sync_flags_from_structures(table)


def _promote_to_primary_key(table: Table, column_name: str) -> None:
    if table.primary_key is None:
        table.primary_key = PrimaryKey(
            name=default_pk_name(table.name),
            columns=[column_name],
            is_clustered=not clustered_structures(table),
        )
    else:
        table.primary_key.columns.append(column_name)


def _int_arg(value: str) -> Optional[int]:
    return int(value) if value.isdigit() else None


def _lower_column(definition: ColumnDef) -> Column:
    column = Column(name=definition.name, type=definition.data_type)
    args = definition.type_args
    if args:
        if definition.data_type in CHARACTER_TYPES:
            column.length = MAX_LENGTH if args[0] == "MAX" else _int_arg(args[0])
        elif definition.data_type in EXACT_NUMERIC_TYPES:
            column.precision = _int_arg(args[0])
            if len(args) > 1:
                column.scale = _int_arg(args[1])
        else:
            column.precision = _int_arg(args[0])

    column.is_nullable = definition.nullable is not False
    if definition.default is not None:
        column.default_value = definition.default
    elif definition.identity:
        column.default_value = IDENTITY_MARKER
    return column


def import_sql_ddl(
    ddl_text: str,
    database_name: str,
    default_schema: str = DEFAULT_SCHEMA,
    infer_referenced_primary_keys: bool = True,
) -> ParseResult:
    script = parse_script(ddl_text)
    lowering = _Lowering(database_name, default_schema)

    for statement in script.statements:
        if isinstance(statement, CreateSchema):
            lowering.database.ensure_schema(statement.name)
        elif isinstance(statement, CreateTable):
            lowering.create_table(statement)

    for statement in script.statements:
        if isinstance(statement, AlterTableAddConstraint):
            lowering.alter_table(statement)
        elif isinstance(statement, CreateIndex):
            lowering.create_index(statement)

    lowering.finish(infer_referenced_primary_keys)

    skip_issues = [
        warning(
            "PARSE_SKIPPED",
            f"Unrecognized DDL ignored ({skipped.reason}): {_preview(skipped.text)}",
            line_path(skipped.line),
        )
        for skipped in script.skipped
    ]
    issues = skip_issues + lowering.issues
    table_count = sum(1 for _ in iter_tables(lowering.database))
    logger.info(
        "Parsed database %s: %d schemas, %d tables, %d skipped regions",
        database_name,
        len(lowering.database.schemas),
        table_count,
        len(script.skipped),
    )
    return ParseResult(database=lowering.database, issues=issues, skipped=list(script.skipped))


def parse_ddl(ddl_text: str, database_name: str, **options) -> Database:
    return import_sql_ddl(ddl_text, database_name, **options).database


def _preview(text: str, limit: int = 60) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else flat[: limit - 3] + "..."
