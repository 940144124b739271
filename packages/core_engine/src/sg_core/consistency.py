"""Structural edits that keep a :class:`~sg_core.model.Database` consistent.

Every operation validates completely before it touches the model. A rejected
operation raises a :class:`~sg_core.errors.ValidationError` subclass and leaves
the database exactly as it was.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from sg_core.errors import (
    AmbiguousRelationshipError,
    CircularForeignKeyError,
    ClusteredIndexConflictError,
    ColumnNotFoundError,
    DuplicateForeignKeyError,
    DuplicateNameError,
    ForeignKeyNotFoundError,
    IndexNotFoundError,
    InvalidDefinitionError,
    NoReferenceableColumnError,
    SchemaNotFoundError,
    TableNotFoundError,
    TypeMismatchError,
)
from sg_core.model import (
    Column,
    ColumnEndpoint,
    Database,
    ForeignKeyRef,
    Index,
    Schema,
    Table,
    clustered_structures,
    default_fk_name,
    default_index_name,
    is_referenceable,
    iter_columns,
    reconcile_table,
    referencing_columns,
    sync_flags_from_structures,
)

logger = logging.getLogger(__name__)


# --- Lookups ---

def _require_schema(database: Database, schema_name: str) -> Schema:
    schema = database.find_schema(schema_name)
    if schema is None:
        raise SchemaNotFoundError(f'Schema "{schema_name}" not found', schema=schema_name)
    return schema


def _require_table(database: Database, schema_name: str, table_name: str) -> Table:
    table = _require_schema(database, schema_name).find_table(table_name)
    if table is None:
        raise TableNotFoundError(
            f'Table "{schema_name}.{table_name}" not found', schema=schema_name, table=table_name
        )
    return table


def _require_column(database: Database, endpoint: ColumnEndpoint) -> Tuple[Table, Column]:
    table = _require_table(database, endpoint.schema, endpoint.table)
    column = table.find_column(endpoint.column)
    if column is None:
        raise ColumnNotFoundError(
            f'Column "{endpoint}" not found',
            schema=endpoint.schema,
            table=endpoint.table,
            column=endpoint.column,
        )
    return table, column


# --- Table validation ---

def _prepare_table(schema_name: str, table: Table) -> Table:
    """Copy, reconcile and structurally validate a table definition."""
    if not table.name:
        raise InvalidDefinitionError("Table name is required", schema=schema_name)
    candidate = copy.deepcopy(table)

    seen = set()
    for column in candidate.columns:
        if not column.name:
            raise InvalidDefinitionError(
                f'Table "{candidate.name}" has a column without a name',
                schema=schema_name,
                table=candidate.name,
            )
        if column.name in seen:
            raise DuplicateNameError(
                f'Column "{column.name}" appears more than once in table "{candidate.name}"',
                schema=schema_name,
                table=candidate.name,
                column=column.name,
            )
        seen.add(column.name)
        if column.is_foreign_key and column.foreign_key_ref is None:
            raise InvalidDefinitionError(
                f'Column "{column.name}" is marked as a foreign key but has no reference',
                schema=schema_name,
                table=candidate.name,
                column=column.name,
            )

    reconcile_table(candidate)

    structures: List[Tuple[str, List[str]]] = []
    if candidate.primary_key is not None:
        structures.append((candidate.primary_key.name, candidate.primary_key.columns))
    structures.extend((uc.name, uc.columns) for uc in candidate.unique_constraints)
    structures.extend((index.name, index.columns) for index in candidate.indexes)
    for name, columns in structures:
        for column_name in columns:
            if column_name not in seen:
                raise ColumnNotFoundError(
                    f'"{name}" refers to unknown column "{column_name}"',
                    schema=schema_name,
                    table=candidate.name,
                    column=column_name,
                )

    clustered = clustered_structures(candidate)
    if len(clustered) > 1:
        raise ClusteredIndexConflictError(
            f'Table "{candidate.name}" can only have one clustered index '
            f"(found: {', '.join(clustered)})",
            schema=schema_name,
            table=candidate.name,
        )

    for column in candidate.columns:
        if column.foreign_key_ref is not None and not column.fk_constraint_name:
            column.fk_constraint_name = default_fk_name(candidate.name, column.name)
    return candidate


def _check_reference(
    database: Database, schema_name: str, candidate: Table, column: Column
) -> None:
    """A new or changed reference must point at a referenceable column of the same base type."""
    ref = column.foreign_key_ref
    if ref.targets_table(schema_name, candidate.name):
        target_table: Optional[Table] = candidate
    else:
        target_table = database.find_table(ref.schema, ref.table)
    if target_table is None:
        raise TableNotFoundError(
            f'Referenced table "{ref.schema}.{ref.table}" not found',
            schema=ref.schema,
            table=ref.table,
        )
    target = target_table.find_column(ref.column)
    if target is None:
        raise ColumnNotFoundError(
            f'Referenced column "{ref.schema}.{ref.table}.{ref.column}" not found',
            schema=ref.schema,
            table=ref.table,
            column=ref.column,
        )
    if target is column:
        raise CircularForeignKeyError(
            f'Column "{column.name}" cannot reference itself',
            schema=schema_name,
            table=candidate.name,
            column=column.name,
        )
    if not is_referenceable(target_table, ref.column):
        raise NoReferenceableColumnError(
            f'Referenced column "{ref.table}.{ref.column}" must be PRIMARY KEY or UNIQUE',
            schema=ref.schema,
            table=ref.table,
            column=ref.column,
        )
    back = target.foreign_key_ref
    if back is not None and back.targets(schema_name, candidate.name, column.name):
        raise CircularForeignKeyError(
            f'Circular reference: "{ref.table}.{ref.column}" already references '
            f'"{candidate.name}.{column.name}"',
            schema=schema_name,
            table=candidate.name,
            column=column.name,
        )
    if column.base_type != target.base_type:
        raise TypeMismatchError(
            f'Type mismatch: "{candidate.name}.{column.name}" is {column.base_type} '
            f'but "{ref.table}.{ref.column}" is {target.base_type}',
            schema=schema_name,
            table=candidate.name,
            column=column.name,
        )


# --- Operations ---

def add_schema(database: Database, name: str) -> Schema:
    if not name:
        raise InvalidDefinitionError("Schema name is required")
    if database.find_schema(name) is not None:
        raise DuplicateNameError(f'Schema "{name}" already exists', schema=name)
    schema = Schema(name=name)
    database.schemas.append(schema)
    logger.info("Added schema %s", name)
    return schema


def add_table(database: Database, schema_name: str, table: Table) -> Table:
    schema = _require_schema(database, schema_name)
    if schema.find_table(table.name) is not None:
        raise DuplicateNameError(
            f'Table "{schema_name}.{table.name}" already exists', schema=schema_name, table=table.name
        )
    candidate = _prepare_table(schema_name, table)
    for column in candidate.columns:
        if column.foreign_key_ref is not None:
            _check_reference(database, schema_name, candidate, column)

    schema.tables.append(candidate)
    logger.info("Added table %s.%s", schema_name, candidate.name)
    return candidate


@dataclass
class _ReferenceChange:
    schema: str
    table: Table
    column: Column
    ref: Optional[ForeignKeyRef]
    rename_to: Optional[str] = None


def _rename_column(database: Database, schema_name: str, table: Table, old: str, new: str) -> None:
    """Rename a column and every structure or reference that names it."""
    table.find_column(old).name = new
    if table.primary_key is not None:
        table.primary_key.columns = [new if c == old else c for c in table.primary_key.columns]
    for constraint in table.unique_constraints:
        constraint.columns = [new if c == old else c for c in constraint.columns]
    for index in table.indexes:
        index.columns = [new if c == old else c for c in index.columns]
    for _schema, _table, column in iter_columns(database):
        ref = column.foreign_key_ref
        if ref is not None and ref.targets(schema_name, table.name, old):
            column.foreign_key_ref = ForeignKeyRef(ref.schema, ref.table, new)


def update_table(
    database: Database,
    schema_name: str,
    old_name: str,
    new_table: Table,
    rename_referencing_columns: bool = True,
) -> Table:
    """Replace a table wholesale, cascading primary-key and table renames.

    When a primary-key column disappears from the new definition while the
    table still declares a primary key, every reference to the old column is
    repointed to the first column of the new key. The referencing column is
    renamed to match unless ``rename_referencing_columns`` is False. A renamed
    table drags its incoming references along; references to columns that no
    longer exist are cleared.
    """
    schema = _require_schema(database, schema_name)
    old_table = _require_table(database, schema_name, old_name)
    new_name = new_table.name
    if new_name != old_name and schema.find_table(new_name) is not None:
        raise DuplicateNameError(
            f'Table "{schema_name}.{new_name}" already exists', schema=schema_name, table=new_name
        )

    candidate = _prepare_table(schema_name, new_table)
    if candidate.x is None and candidate.y is None:
        candidate.x, candidate.y = old_table.x, old_table.y

    # Self references written against the old name follow the rename.
    for column in candidate.columns:
        ref = column.foreign_key_ref
        if ref is not None and ref.targets_table(schema_name, old_name):
            column.foreign_key_ref = ForeignKeyRef(schema_name, new_name, ref.column)

    old_pk = (
        list(old_table.primary_key.columns)
        if old_table.primary_key is not None
        else [c.name for c in old_table.columns if c.is_primary_key]
    )
    new_columns = set(candidate.column_names())
    renamed_keys: Dict[str, str] = {}
    if candidate.primary_key is not None and candidate.primary_key.columns:
        for column_name in old_pk:
            if column_name not in new_columns:
                renamed_keys[column_name] = candidate.primary_key.columns[0]

    changes: List[_ReferenceChange] = []
    pending_names: Dict[Tuple[str, str], set] = {}
    for ref_schema, ref_table, column in iter_columns(database):
        ref = column.foreign_key_ref
        if ref_table is old_table or ref is None or not ref.targets_table(schema_name, old_name):
            continue
        if ref.column in renamed_keys:
            target_column = renamed_keys[ref.column]
            target = candidate.find_column(target_column)
            if column.base_type != target.base_type:
                raise TypeMismatchError(
                    f'Type mismatch: "{ref_table.name}.{column.name}" is {column.base_type} '
                    f'but new key "{new_name}.{target_column}" is {target.base_type}',
                    schema=ref_schema.name,
                    table=ref_table.name,
                    column=column.name,
                )
            rename_to = None
            if rename_referencing_columns and column.name != target_column:
                taken = pending_names.setdefault((ref_schema.name, ref_table.name), set())
                if ref_table.find_column(target_column) is not None or target_column in taken:
                    raise DuplicateNameError(
                        f'Cannot rename "{ref_table.name}.{column.name}" to "{target_column}": '
                        "a column with that name already exists",
                        schema=ref_schema.name,
                        table=ref_table.name,
                        column=column.name,
                    )
                taken.add(target_column)
                rename_to = target_column
            changes.append(
                _ReferenceChange(
                    ref_schema.name,
                    ref_table,
                    column,
                    ForeignKeyRef(schema_name, new_name, target_column),
                    rename_to,
                )
            )
        elif ref.column not in new_columns:
            changes.append(_ReferenceChange(ref_schema.name, ref_table, column, None))
        elif new_name != old_name:
            changes.append(
                _ReferenceChange(
                    ref_schema.name, ref_table, column, ForeignKeyRef(schema_name, new_name, ref.column)
                )
            )

    previous_refs = {c.name: c.foreign_key_ref for c in old_table.columns}
    for column in candidate.columns:
        ref = column.foreign_key_ref
        if ref is None:
            continue
        previous = previous_refs.get(column.name)
        if previous is not None and previous.targets_table(schema_name, old_name):
            previous = ForeignKeyRef(schema_name, new_name, previous.column)
        if ref != previous:
            _check_reference(database, schema_name, candidate, column)

    # Validated; apply.
    position = schema.tables.index(old_table)
    schema.tables[position] = candidate
    for change in changes:
        if change.ref is None:
            change.column.clear_foreign_key()
        else:
            change.column.foreign_key_ref = change.ref
        if change.rename_to is not None:
            _rename_column(database, change.schema, change.table, change.column.name, change.rename_to)
        sync_flags_from_structures(change.table)

    logger.info(
        "Updated table %s.%s%s (%d references adjusted)",
        schema_name,
        old_name,
        f" -> {new_name}" if new_name != old_name else "",
        len(changes),
    )
    return candidate


def delete_table(database: Database, schema_name: str, table_name: str) -> Table:
    schema = _require_schema(database, schema_name)
    table = _require_table(database, schema_name, table_name)

    incoming = [
        column
        for _schema, other, column in referencing_columns(database, schema_name, table_name)
        if other is not table
    ]
    for column in incoming:
        column.clear_foreign_key()

    schema.tables.remove(table)
    cleared = len(incoming)
    logger.info("Deleted table %s.%s (%d references cleared)", schema_name, table_name, cleared)
    return table


def connect_columns(
    database: Database, endpoint_a: ColumnEndpoint, endpoint_b: ColumnEndpoint
) -> ColumnEndpoint:
    """Draw a foreign key between two columns, whichever way round they were picked.

    Exactly one endpoint must be referenceable; it becomes the target and the
    other endpoint becomes the foreign-key column, which is returned.
    """
    table_a, column_a = _require_column(database, endpoint_a)
    table_b, column_b = _require_column(database, endpoint_b)
    if column_a is column_b:
        raise InvalidDefinitionError(
            "Cannot create relationship: a column cannot reference itself.",
            schema=endpoint_a.schema,
            table=endpoint_a.table,
            column=endpoint_a.column,
        )

    a_referenceable = is_referenceable(table_a, column_a.name)
    b_referenceable = is_referenceable(table_b, column_b.name)
    if not a_referenceable and not b_referenceable:
        raise NoReferenceableColumnError(
            "Cannot create relationship: one column must be PRIMARY KEY or UNIQUE.",
            schema=endpoint_a.schema,
            table=endpoint_a.table,
            column=endpoint_a.column,
        )
    if a_referenceable and b_referenceable:
        raise AmbiguousRelationshipError(
            "Cannot create relationship: ambiguous relationship. "
            "Both columns are PRIMARY KEY or UNIQUE.",
            schema=endpoint_a.schema,
            table=endpoint_a.table,
            column=endpoint_a.column,
        )

    if a_referenceable:
        source, source_table, source_column = endpoint_b, table_b, column_b
        target, target_column = endpoint_a, column_a
    else:
        source, source_table, source_column = endpoint_a, table_a, column_a
        target, target_column = endpoint_b, column_b

    existing = source_column.foreign_key_ref
    if existing is not None:
        same = existing == target.as_ref()
        if same:
            message = f'Foreign key "{source}" -> "{target}" already exists.'
        else:
            message = (
                f'Column "{source}" already references '
                f'"{existing.schema}.{existing.table}.{existing.column}".'
            )
        raise DuplicateForeignKeyError(
            message,
            schema=source.schema,
            table=source.table,
            column=source.column,
            same_relationship=same,
        )

    back = target_column.foreign_key_ref
    if back is not None and back == source.as_ref():
        raise CircularForeignKeyError(
            f'Circular reference: "{target}" already references "{source}".',
            schema=source.schema,
            table=source.table,
            column=source.column,
        )

    if source_column.base_type != target_column.base_type:
        raise TypeMismatchError(
            f'Type mismatch: "{source}" is {source_column.base_type} '
            f'but "{target}" is {target_column.base_type}.',
            schema=source.schema,
            table=source.table,
            column=source.column,
        )

    source_column.foreign_key_ref = target.as_ref()
    source_column.is_foreign_key = True
    if not source_column.fk_constraint_name:
        source_column.fk_constraint_name = default_fk_name(source_table.name, source_column.name)
    logger.info("Connected %s -> %s", source, target)
    return source


def disconnect_columns(
    database: Database, endpoint_a: ColumnEndpoint, endpoint_b: ColumnEndpoint
) -> ColumnEndpoint:
    _table_a, column_a = _require_column(database, endpoint_a)
    _table_b, column_b = _require_column(database, endpoint_b)

    if column_a.foreign_key_ref == endpoint_b.as_ref():
        column_a.clear_foreign_key()
        logger.info("Disconnected %s -> %s", endpoint_a, endpoint_b)
        return endpoint_a
    if column_b.foreign_key_ref == endpoint_a.as_ref():
        column_b.clear_foreign_key()
        logger.info("Disconnected %s -> %s", endpoint_b, endpoint_a)
        return endpoint_b
    raise ForeignKeyNotFoundError(
        f'No foreign key between "{endpoint_a}" and "{endpoint_b}".',
        schema=endpoint_a.schema,
        table=endpoint_a.table,
        column=endpoint_a.column,
    )


def add_index(database: Database, schema_name: str, table_name: str, index: Index) -> Index:
    table = _require_table(database, schema_name, table_name)
    if not index.columns:
        raise InvalidDefinitionError(
            "An index needs at least one column", schema=schema_name, table=table_name
        )
    if len(set(index.columns)) != len(index.columns):
        raise InvalidDefinitionError(
            "An index cannot list the same column twice", schema=schema_name, table=table_name
        )
    for column_name in index.columns:
        if table.find_column(column_name) is None:
            raise ColumnNotFoundError(
                f'Column "{column_name}" not found in table "{table_name}"',
                schema=schema_name,
                table=table_name,
                column=column_name,
            )

    name = index.name or default_index_name(table_name, index.columns, index.is_unique)
    if table.find_index(name) is not None:
        raise DuplicateNameError(
            f'Index "{name}" already exists on table "{table_name}"',
            schema=schema_name,
            table=table_name,
        )
    if index.is_clustered:
        clustered = clustered_structures(table)
        if clustered:
            raise ClusteredIndexConflictError(
                f'Table "{table_name}" already has a clustered index ({clustered[0]}). '
                "Only one clustered index is allowed per table.",
                schema=schema_name,
                table=table_name,
            )

    created = Index(
        name=name,
        columns=list(index.columns),
        is_clustered=index.is_clustered,
        is_unique=index.is_unique,
    )
    table.indexes.append(created)
    logger.info("Added index %s on %s.%s", name, schema_name, table_name)
    return created


def remove_index(database: Database, schema_name: str, table_name: str, index_name: str) -> Index:
    table = _require_table(database, schema_name, table_name)
    index = table.find_index(index_name)
    if index is None:
        raise IndexNotFoundError(
            f'Index "{index_name}" not found on table "{table_name}"',
            schema=schema_name,
            table=table_name,
        )
    table.indexes.remove(index)
    logger.info("Removed index %s from %s.%s", index_name, schema_name, table_name)
    return index
