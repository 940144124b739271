from datetime import datetime, timezone
from typing import Dict, List, Optional

from sg_core.model import (
    CHARACTER_TYPES,
    DEFAULT_SCHEMA,
    EXACT_NUMERIC_TYPES,
    IDENTITY_MARKER,
    MAX_LENGTH,
    PRECISION_ONLY_TYPES,
    Column,
    Database,
    Index,
    Table,
    default_fk_name,
    default_index_name,
    default_pk_name,
    default_unique_name,
    multi_column_unique_members,
)

BATCH_SEPARATOR = "GO"
SECTION_RULE = "-- ===================================="


def _quote(name: str) -> str:
    return "[" + name.replace("]", "]]") + "]"


def _literal(text: str) -> str:
    return "N'" + text.replace("'", "''") + "'"


def _qualified(schema_name: str, table_name: str) -> str:
    return f"{_quote(schema_name)}.{_quote(table_name)}"


def _column_list(columns: List[str]) -> str:
    return ", ".join(_quote(column) for column in columns)


def _section(title: str) -> str:
    return f"{SECTION_RULE}\n-- {title}\n{SECTION_RULE}\n\n"


def _guard(condition: str, body: str) -> str:
    indented = "\n".join(("    " + line) if line else line for line in body.split("\n"))
    return f"IF NOT EXISTS ({condition})\nBEGIN\n{indented}\nEND"


def _batch(statement: str) -> str:
    return f"{statement}\n{BATCH_SEPARATOR}\n\n"


def render_type(column: Column) -> str:
    base = column.type.upper()
    if "(" in base:
        return base
    if base in CHARACTER_TYPES and column.length is not None:
        size = "MAX" if column.length == MAX_LENGTH else str(column.length)
        return f"{base}({size})"
    if base in EXACT_NUMERIC_TYPES and column.precision is not None:
        if column.scale is not None:
            return f"{base}({column.precision},{column.scale})"
        return f"{base}({column.precision})"
    if base in PRECISION_ONLY_TYPES and column.precision is not None:
        return f"{base}({column.precision})"
    return base


def _column_definition(column: Column) -> str:
    parts = [_quote(column.name), render_type(column)]
    if column.default_value == IDENTITY_MARKER:
        parts.append("IDENTITY(1,1)")
    if not column.is_nullable or column.is_primary_key:
        parts.append("NOT NULL")
    if column.default_value is not None and column.default_value != IDENTITY_MARKER:
        parts.append(f"DEFAULT {column.default_value}")
    return "    " + " ".join(parts)


def _primary_key_clause(table: Table) -> Optional[str]:
    if table.primary_key is not None and table.primary_key.columns:
        name = table.primary_key.name or default_pk_name(table.name)
        columns = table.primary_key.columns
        clustered = table.primary_key.is_clustered is not False
    else:
        # Flag-only tables that were never reconciled.
        columns = [column.name for column in table.columns if column.is_primary_key]
        if not columns:
            return None
        name = next(
            (c.pk_name for c in table.columns if c.is_primary_key and c.pk_name),
            default_pk_name(table.name),
        )
        clustered = True
    kind = "CLUSTERED" if clustered else "NONCLUSTERED"
    return f"    CONSTRAINT {_quote(name)} PRIMARY KEY {kind} ({_column_list(columns)})"


def _create_table(schema_name: str, table: Table, idempotent: bool) -> str:
    lines = [_column_definition(column) for column in table.columns]
    pk_clause = _primary_key_clause(table)
    if pk_clause:
        lines.append(pk_clause)
    qualified = _qualified(schema_name, table.name)
    statement = f"CREATE TABLE {qualified} (\n" + ",\n".join(lines) + "\n);"
    if idempotent:
        statement = _guard(
            f"SELECT * FROM sys.objects WHERE object_id = OBJECT_ID({_literal(qualified)}) AND type = 'U'",
            statement,
        )
    return statement


def _single_column_uniques(table: Table) -> Dict[str, str]:
    """Column name -> constraint name for the per-column UNIQUE path."""
    excluded = multi_column_unique_members(table)
    structured = {
        uc.columns[0]: uc.name for uc in table.unique_constraints if len(uc.columns) == 1
    }
    singles: Dict[str, str] = {}
    for column in table.columns:
        if column.name in structured:
            singles[column.name] = structured[column.name]
        elif column.is_unique_constraint and column.name not in excluded:
            singles[column.name] = column.unique_constraint_name or default_unique_name(
                table.name, [column.name]
            )
    return singles


def _add_unique(schema_name: str, table_name: str, name: str, columns: List[str], idempotent: bool) -> str:
    qualified = _qualified(schema_name, table_name)
    statement = f"ALTER TABLE {qualified} ADD CONSTRAINT {_quote(name)} UNIQUE ({_column_list(columns)});"
    if idempotent:
        statement = _guard(
            f"SELECT * FROM sys.key_constraints WHERE name = {_literal(name)} "
            f"AND parent_object_id = OBJECT_ID({_literal(qualified)})",
            statement,
        )
    return statement


def _create_index(schema_name: str, table: Table, index: Index, idempotent: bool) -> str:
    qualified = _qualified(schema_name, table.name)
    name = index.name or default_index_name(table.name, index.columns, index.is_unique)
    unique_kw = "UNIQUE " if index.is_unique else ""
    kind = "CLUSTERED" if index.is_clustered else "NONCLUSTERED"
    statement = (
        f"CREATE {unique_kw}{kind} INDEX {_quote(name)} ON {qualified} ({_column_list(index.columns)});"
    )
    if idempotent:
        statement = _guard(
            f"SELECT * FROM sys.indexes WHERE name = {_literal(name)} "
            f"AND object_id = OBJECT_ID({_literal(qualified)})",
            statement,
        )
    return statement


def _add_foreign_key(schema_name: str, table: Table, column: Column, idempotent: bool) -> str:
    ref = column.foreign_key_ref
    qualified = _qualified(schema_name, table.name)
    name = column.fk_constraint_name or default_fk_name(table.name, column.name)
    statement = (
        f"ALTER TABLE {qualified}\n"
        f"    ADD CONSTRAINT {_quote(name)}\n"
        f"    FOREIGN KEY ({_quote(column.name)})\n"
        f"    REFERENCES {_qualified(ref.schema, ref.table)}({_quote(ref.column)});"
    )
    if idempotent:
        statement = _guard(
            f"SELECT * FROM sys.foreign_keys WHERE name = {_literal(name)} "
            f"AND parent_object_id = OBJECT_ID({_literal(qualified)})",
            statement,
        )
    return statement


def generate_sql_ddl(
    database: Database,
    idempotent: bool = False,
    generated_at: Optional[datetime] = None,
    default_schema: str = DEFAULT_SCHEMA,
) -> str:
    stamp = (generated_at or datetime.now(timezone.utc)).isoformat()

    sql = f"-- Database: {database.name}\n"
    sql += f"-- Generated by sqlgem at {stamp}\n"
    if idempotent:
        sql += "-- Idempotent DDL: Safe to run multiple times\n"
    sql += f"\nUSE {_quote(database.name)};\n{BATCH_SEPARATOR}\n\n"

    # --- Schemas ---
    extra_schemas = [schema for schema in database.schemas if schema.name != default_schema]
    if extra_schemas:
        sql += _section("Create Schemas")
        for schema in extra_schemas:
            if idempotent:
                dynamic = f"CREATE SCHEMA {_quote(schema.name)}".replace("'", "''")
                statement = _guard(
                    f"SELECT * FROM sys.schemas WHERE name = {_literal(schema.name)}",
                    f"EXEC('{dynamic}');",
                )
            else:
                statement = f"CREATE SCHEMA {_quote(schema.name)};"
            sql += _batch(statement)

    # --- Tables, with the per-column UNIQUE constraints right after each one ---
    multi_uniques: List[str] = []
    index_blocks: List[str] = []
    foreign_keys: List[str] = []
    for schema in database.schemas:
        if not schema.tables:
            continue
        sql += _section(f"Schema: {schema.name}")
        for table in schema.tables:
            sql += f"-- Table: {schema.name}.{table.name}\n\n"
            sql += _batch(_create_table(schema.name, table, idempotent))
            for column_name, name in _single_column_uniques(table).items():
                sql += _batch(_add_unique(schema.name, table.name, name, [column_name], idempotent))

            for constraint in table.unique_constraints:
                if len(constraint.columns) > 1:
                    multi_uniques.append(
                        _add_unique(
                            schema.name,
                            table.name,
                            constraint.name or default_unique_name(table.name, constraint.columns),
                            constraint.columns,
                            idempotent,
                        )
                    )
            for index in table.indexes:
                index_blocks.append(_create_index(schema.name, table, index, idempotent))
            for column in table.columns:
                if column.foreign_key_ref is not None:
                    foreign_keys.append(_add_foreign_key(schema.name, table, column, idempotent))

    for title, blocks in (
        ("Unique Constraints", multi_uniques),
        ("Indexes", index_blocks),
        ("Foreign Key Constraints", foreign_keys),
    ):
        if blocks:
            sql += _section(title)
            for block in blocks:
                sql += _batch(block)

    return sql
