"""Lint a whole model against the structural rules.

The consistency engine keeps edited models valid; models read from YAML or
assembled by hand go through here instead.
"""

from typing import List, Set

from sg_core.issues import Issue, error, warning
from sg_core.model import (
    Database,
    Schema,
    Table,
    clustered_structures,
    is_referenceable,
    iter_columns,
)


def _table_path(schema: Schema, table: Table) -> str:
    return f"/schemas/{schema.name}/tables/{table.name}"


def _lint_structures(schema: Schema, table: Table) -> List[Issue]:
    issues: List[Issue] = []
    path = _table_path(schema, table)
    column_names = set(table.column_names())

    structures = []
    if table.primary_key is not None:
        structures.append((table.primary_key.name, table.primary_key.columns))
    structures.extend((uc.name, uc.columns) for uc in table.unique_constraints)
    structures.extend((index.name, index.columns) for index in table.indexes)
    for name, columns in structures:
        for column_name in columns:
            if column_name not in column_names:
                issues.append(
                    error(
                        "STRUCTURE_COLUMN_NOT_FOUND",
                        f"'{name}' references non-existent column '{table.name}.{column_name}'.",
                        path,
                    )
                )

    seen_indexes: Set[str] = set()
    for index in table.indexes:
        if index.name in seen_indexes:
            issues.append(
                error("DUPLICATE_INDEX", f"Duplicate index name '{index.name}' on '{table.name}'.", path)
            )
        seen_indexes.add(index.name)

    clustered = clustered_structures(table)
    if len(clustered) > 1:
        issues.append(
            error(
                "MULTIPLE_CLUSTERED_INDEXES",
                f"Table '{table.name}' has more than one clustered structure: {', '.join(clustered)}.",
                path,
            )
        )

    if table.primary_key is None:
        issues.append(
            warning("MISSING_PRIMARY_KEY", f"Table '{schema.name}.{table.name}' has no primary key.", path)
        )

    # Flags are caches of the structures above.
    pk_columns = set(table.primary_key.columns) if table.primary_key is not None else set()
    unique_columns: Set[str] = set()
    for constraint in table.unique_constraints:
        unique_columns.update(constraint.columns)
    for column in table.columns:
        if (
            column.is_primary_key != (column.name in pk_columns)
            or column.is_unique_constraint != (column.name in unique_columns)
            or column.is_foreign_key != (column.foreign_key_ref is not None)
        ):
            issues.append(
                warning(
                    "FLAGS_OUT_OF_SYNC",
                    f"Key flags on '{table.name}.{column.name}' disagree with the table structures.",
                    path,
                )
            )
    return issues


def _lint_references(database: Database) -> List[Issue]:
    issues: List[Issue] = []
    for schema, table, column in iter_columns(database):
        ref = column.foreign_key_ref
        if ref is None:
            continue
        path = _table_path(schema, table)
        label = f"{schema.name}.{table.name}.{column.name}"
        target_table = database.find_table(ref.schema, ref.table)
        target = database.resolve(ref)
        if target is None:
            issues.append(
                error(
                    "FOREIGN_KEY_TARGET_NOT_FOUND",
                    f"'{label}' references missing column '{ref.schema}.{ref.table}.{ref.column}'.",
                    path,
                )
            )
            continue

        if column.base_type != target.base_type:
            issues.append(
                error(
                    "FOREIGN_KEY_TYPE_MISMATCH",
                    f"'{label}' is {column.base_type} but references "
                    f"'{ref.table}.{ref.column}' of type {target.base_type}.",
                    path,
                )
            )
        if not is_referenceable(target_table, ref.column):
            issues.append(
                warning(
                    "FOREIGN_KEY_TARGET_NOT_KEY",
                    f"'{ref.table}.{ref.column}' is referenced by '{label}' but is not PRIMARY KEY or UNIQUE.",
                    path,
                )
            )
        back = target.foreign_key_ref
        if back is not None and back.targets(schema.name, table.name, column.name):
            issues.append(
                error(
                    "CIRCULAR_FOREIGN_KEY",
                    f"'{label}' and '{ref.schema}.{ref.table}.{ref.column}' reference each other.",
                    path,
                )
            )
    return issues


def lint_issues(database: Database) -> List[Issue]:
    issues: List[Issue] = []
    seen_schemas: Set[str] = set()

    for schema in database.schemas:
        if schema.name in seen_schemas:
            issues.append(error("DUPLICATE_SCHEMA", f"Duplicate schema name '{schema.name}'.", "/schemas"))
        seen_schemas.add(schema.name)

        seen_tables: Set[str] = set()
        for table in schema.tables:
            if table.name in seen_tables:
                issues.append(
                    error(
                        "DUPLICATE_TABLE",
                        f"Duplicate table name '{schema.name}.{table.name}'.",
                        f"/schemas/{schema.name}/tables",
                    )
                )
            seen_tables.add(table.name)

            seen_columns: Set[str] = set()
            for column in table.columns:
                if column.name in seen_columns:
                    issues.append(
                        error(
                            "DUPLICATE_COLUMN",
                            f"Duplicate column '{column.name}' in table '{table.name}'.",
                            _table_path(schema, table),
                        )
                    )
                seen_columns.add(column.name)

            issues.extend(_lint_structures(schema, table))

    issues.extend(_lint_references(database))
    return issues
