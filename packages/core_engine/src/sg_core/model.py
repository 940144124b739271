"""Schema model: databases, schemas, tables, columns, keys and indexes.

Table-level structures (``primary_key``, ``unique_constraints``, ``indexes``)
and ``Column.foreign_key_ref`` are the source of truth. The ``is_*`` booleans
on columns are caches kept in step by :func:`sync_flags_from_structures`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

DEFAULT_SCHEMA = "dbo"
MAX_LENGTH = -1

CHARACTER_TYPES = {"CHAR", "VARCHAR", "NCHAR", "NVARCHAR", "BINARY", "VARBINARY"}
EXACT_NUMERIC_TYPES = {"DECIMAL", "NUMERIC"}
PRECISION_ONLY_TYPES = {"DATETIME2", "TIME", "DATETIMEOFFSET", "FLOAT"}

IDENTITY_MARKER = "IDENTITY"


class ConstraintRole(str, Enum):
    PRIMARY_KEY_MEMBER = "primary_key_member"
    FOREIGN_KEY = "foreign_key"
    UNIQUE_MEMBER = "unique_member"


@dataclass(frozen=True)
class ForeignKeyRef:
    schema: str
    table: str
    column: str

    def targets_table(self, schema: str, table: str) -> bool:
        return self.schema == schema and self.table == table

    def targets(self, schema: str, table: str, column: str) -> bool:
        return self.targets_table(schema, table) and self.column == column


@dataclass(frozen=True)
class ColumnEndpoint:
    """Address of a single column, e.g. one end of a drawn relationship."""

    schema: str
    table: str
    column: str

    @classmethod
    def parse(cls, text: str, default_schema: str = DEFAULT_SCHEMA) -> "ColumnEndpoint":
        parts = [part.strip().strip("[]\"") for part in text.split(".")]
        if len(parts) == 2:
            return cls(default_schema, parts[0], parts[1])
        if len(parts) == 3:
            return cls(parts[0], parts[1], parts[2])
        raise ValueError(f"Column reference must be [schema.]table.column, got '{text}'.")

    def as_ref(self) -> ForeignKeyRef:
        return ForeignKeyRef(self.schema, self.table, self.column)

    def __str__(self) -> str:
        return f"{self.schema}.{self.table}.{self.column}"


@dataclass
class PrimaryKey:
    name: str
    columns: List[str] = field(default_factory=list)
    is_clustered: bool = True


@dataclass
class UniqueConstraint:
    name: str
    columns: List[str] = field(default_factory=list)


@dataclass
class Index:
    name: str
    columns: List[str] = field(default_factory=list)
    is_clustered: bool = False
    is_unique: bool = False


@dataclass
class Column:
    name: str
    type: str
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    is_primary_key: bool = False
    is_foreign_key: bool = False
    is_nullable: bool = True
    is_unique_constraint: bool = False
    default_value: Optional[str] = None
    foreign_key_ref: Optional[ForeignKeyRef] = None
    pk_name: Optional[str] = None
    fk_constraint_name: Optional[str] = None
    unique_constraint_name: Optional[str] = None

    @property
    def base_type(self) -> str:
        return base_type(self.type)

    def clear_foreign_key(self) -> None:
        self.is_foreign_key = False
        self.foreign_key_ref = None
        self.fk_constraint_name = None


@dataclass
class Table:
    name: str
    columns: List[Column] = field(default_factory=list)
    primary_key: Optional[PrimaryKey] = None
    unique_constraints: List[UniqueConstraint] = field(default_factory=list)
    indexes: List[Index] = field(default_factory=list)
    # Diagram position, owned by the editing surface.
    x: Optional[float] = None
    y: Optional[float] = None

    def find_column(self, name: str) -> Optional[Column]:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]

    def find_index(self, name: str) -> Optional[Index]:
        for index in self.indexes:
            if index.name == name:
                return index
        return None


@dataclass
class Schema:
    name: str
    tables: List[Table] = field(default_factory=list)

    def find_table(self, name: str) -> Optional[Table]:
        for table in self.tables:
            if table.name == name:
                return table
        return None


@dataclass
class Database:
    name: str
    schemas: List[Schema] = field(default_factory=list)

    @classmethod
    def empty(cls, name: str, default_schema: str = DEFAULT_SCHEMA) -> "Database":
        return cls(name=name, schemas=[Schema(name=default_schema)])

    def find_schema(self, name: str) -> Optional[Schema]:
        for schema in self.schemas:
            if schema.name == name:
                return schema
        return None

    def ensure_schema(self, name: str) -> Schema:
        schema = self.find_schema(name)
        if schema is None:
            schema = Schema(name=name)
            self.schemas.append(schema)
        return schema

    def find_table(self, schema_name: str, table_name: str) -> Optional[Table]:
        schema = self.find_schema(schema_name)
        if schema is None:
            return None
        return schema.find_table(table_name)

    def find_column(self, schema_name: str, table_name: str, column_name: str) -> Optional[Column]:
        table = self.find_table(schema_name, table_name)
        if table is None:
            return None
        return table.find_column(column_name)

    def resolve(self, ref: "ForeignKeyRef | ColumnEndpoint") -> Optional[Column]:
        return self.find_column(ref.schema, ref.table, ref.column)


def base_type(type_token: str) -> str:
    """``nvarchar(50)`` -> ``NVARCHAR``; length/precision/scale are ignored."""
    return type_token.split("(", 1)[0].strip().upper()


def iter_tables(database: Database) -> Iterator[Tuple[Schema, Table]]:
    for schema in database.schemas:
        for table in schema.tables:
            yield schema, table


def iter_columns(database: Database) -> Iterator[Tuple[Schema, Table, Column]]:
    for schema, table in iter_tables(database):
        for column in table.columns:
            yield schema, table, column


def referencing_columns(
    database: Database,
    schema_name: str,
    table_name: str,
    column_name: Optional[str] = None,
) -> List[Tuple[Schema, Table, Column]]:
    """Columns whose foreign key points at the given table (or one of its columns)."""
    found = []
    for schema, table, column in iter_columns(database):
        ref = column.foreign_key_ref
        if ref is None or not ref.targets_table(schema_name, table_name):
            continue
        if column_name is not None and ref.column != column_name:
            continue
        found.append((schema, table, column))
    return found


def is_referenceable(table: Table, column_name: str) -> bool:
    """Primary key member, single-column UNIQUE constraint or single-column unique index."""
    if table.primary_key is not None and column_name in table.primary_key.columns:
        return True
    for constraint in table.unique_constraints:
        if constraint.columns == [column_name]:
            return True
    for index in table.indexes:
        if index.is_unique and index.columns == [column_name]:
            return True
    return False


def clustered_structures(table: Table) -> List[str]:
    names = []
    if table.primary_key is not None and table.primary_key.is_clustered:
        names.append(table.primary_key.name)
    names.extend(index.name for index in table.indexes if index.is_clustered)
    return names


def multi_column_unique_members(table: Table) -> Set[str]:
    members: Set[str] = set()
    for constraint in table.unique_constraints:
        if len(constraint.columns) > 1:
            members.update(constraint.columns)
    return members


def column_roles(table: Table, column: Column) -> Set[ConstraintRole]:
    roles: Set[ConstraintRole] = set()
    if table.primary_key is not None and column.name in table.primary_key.columns:
        roles.add(ConstraintRole.PRIMARY_KEY_MEMBER)
    if column.foreign_key_ref is not None:
        roles.add(ConstraintRole.FOREIGN_KEY)
    if any(column.name in uc.columns for uc in table.unique_constraints):
        roles.add(ConstraintRole.UNIQUE_MEMBER)
    return roles


def default_pk_name(table_name: str) -> str:
    return f"PK_{table_name}"


def default_unique_name(table_name: str, columns: List[str]) -> str:
    return f"UQ_{table_name}_" + "_".join(columns)


def default_fk_name(table_name: str, column_name: str) -> str:
    return f"FK_{table_name}_{column_name}"


def default_index_name(table_name: str, columns: List[str], is_unique: bool) -> str:
    prefix = "UX" if is_unique else "IX"
    return f"{prefix}_{table_name}_" + "_".join(columns)


def sync_structures_from_flags(table: Table) -> None:
    """Rebuild key structures from the column flags an editor toggles.

    Flags win when any are set; when none are set an existing structure is kept.
    Multi-column unique constraints are always kept as they are.
    """
    pk_columns = [column.name for column in table.columns if column.is_primary_key]
    if pk_columns:
        existing = table.primary_key
        named = next((c.pk_name for c in table.columns if c.is_primary_key and c.pk_name), None)
        name = named or (existing.name if existing else None) or default_pk_name(table.name)
        clustered = existing.is_clustered if existing is not None else True
        table.primary_key = PrimaryKey(name=name, columns=pk_columns, is_clustered=clustered)

    multi_members = multi_column_unique_members(table)
    flagged = [
        column
        for column in table.columns
        if column.is_unique_constraint
        and column.name not in multi_members
        and column.name not in pk_columns
    ]
    if flagged:
        existing_single = {
            uc.columns[0]: uc.name for uc in table.unique_constraints if len(uc.columns) == 1
        }
        flagged_names = {column.name for column in flagged}
        singles = []
        for column in table.columns:
            if column.name in flagged_names:
                name = (
                    column.unique_constraint_name
                    or existing_single.get(column.name)
                    or default_unique_name(table.name, [column.name])
                )
            elif column.name in multi_members and column.name in existing_single:
                # The multi-column flag cannot say whether its own constraint exists.
                name = existing_single[column.name]
            else:
                continue
            singles.append(UniqueConstraint(name=name, columns=[column.name]))
        multi = [uc for uc in table.unique_constraints if len(uc.columns) > 1]
        table.unique_constraints = singles + multi


def sync_flags_from_structures(table: Table) -> None:
    pk_columns = set(table.primary_key.columns) if table.primary_key is not None else set()
    unique_columns: Set[str] = set()
    for constraint in table.unique_constraints:
        unique_columns.update(constraint.columns)

    for column in table.columns:
        column.is_primary_key = column.name in pk_columns
        if column.is_primary_key:
            column.is_nullable = False
        column.is_unique_constraint = column.name in unique_columns
        column.is_foreign_key = column.foreign_key_ref is not None
        if not column.is_foreign_key:
            column.fk_constraint_name = None


def reconcile_table(table: Table) -> None:
    sync_structures_from_flags(table)
    sync_flags_from_structures(table)


# ---------------------------------------------------------------------------
# Plain-dict conversion (YAML / JSON documents)
# ---------------------------------------------------------------------------

def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


def column_to_dict(column: Column) -> Dict[str, Any]:
    ref = column.foreign_key_ref
    return _compact(
        {
            "name": column.name,
            "type": column.type,
            "length": column.length,
            "precision": column.precision,
            "scale": column.scale,
            "is_primary_key": column.is_primary_key,
            "is_foreign_key": column.is_foreign_key,
            "is_nullable": column.is_nullable,
            "is_unique_constraint": column.is_unique_constraint,
            "default_value": column.default_value,
            "foreign_key_ref": (
                {"schema": ref.schema, "table": ref.table, "column": ref.column} if ref else None
            ),
            "pk_name": column.pk_name,
            "fk_constraint_name": column.fk_constraint_name,
            "unique_constraint_name": column.unique_constraint_name,
        }
    )


def table_to_dict(table: Table) -> Dict[str, Any]:
    pk = table.primary_key
    return _compact(
        {
            "name": table.name,
            "columns": [column_to_dict(column) for column in table.columns],
            "primary_key": (
                {"name": pk.name, "columns": list(pk.columns), "is_clustered": pk.is_clustered}
                if pk
                else None
            ),
            "unique_constraints": [
                {"name": uc.name, "columns": list(uc.columns)} for uc in table.unique_constraints
            ],
            "indexes": [
                {
                    "name": index.name,
                    "columns": list(index.columns),
                    "is_clustered": index.is_clustered,
                    "is_unique": index.is_unique,
                }
                for index in table.indexes
            ],
            "x": table.x,
            "y": table.y,
        }
    )


def database_to_dict(database: Database) -> Dict[str, Any]:
    return {
        "database": {
            "name": database.name,
            "schemas": [
                {"name": schema.name, "tables": [table_to_dict(t) for t in schema.tables]}
                for schema in database.schemas
            ],
        }
    }


def column_from_dict(data: Dict[str, Any]) -> Column:
    ref = data.get("foreign_key_ref")
    return Column(
        name=str(data.get("name", "")),
        type=str(data.get("type", "")).upper(),
        length=data.get("length"),
        precision=data.get("precision"),
        scale=data.get("scale"),
        is_primary_key=bool(data.get("is_primary_key", False)),
        is_foreign_key=bool(data.get("is_foreign_key", False)),
        is_nullable=bool(data.get("is_nullable", True)),
        is_unique_constraint=bool(data.get("is_unique_constraint", False)),
        default_value=data.get("default_value"),
        foreign_key_ref=(
            ForeignKeyRef(str(ref["schema"]), str(ref["table"]), str(ref["column"]))
            if isinstance(ref, dict)
            else None
        ),
        pk_name=data.get("pk_name"),
        fk_constraint_name=data.get("fk_constraint_name"),
        unique_constraint_name=data.get("unique_constraint_name"),
    )


def table_from_dict(data: Dict[str, Any]) -> Table:
    pk = data.get("primary_key")
    return Table(
        name=str(data.get("name", "")),
        columns=[column_from_dict(c) for c in data.get("columns", [])],
        primary_key=(
            PrimaryKey(
                name=str(pk.get("name", "")),
                columns=list(pk.get("columns", [])),
                is_clustered=pk.get("is_clustered") is not False,
            )
            if isinstance(pk, dict)
            else None
        ),
        unique_constraints=[
            UniqueConstraint(name=str(uc.get("name", "")), columns=list(uc.get("columns", [])))
            for uc in data.get("unique_constraints", [])
        ],
        indexes=[
            Index(
                name=str(index.get("name", "")),
                columns=list(index.get("columns", [])),
                is_clustered=bool(index.get("is_clustered", False)),
                is_unique=bool(index.get("is_unique", False)),
            )
            for index in data.get("indexes", [])
        ],
        x=data.get("x"),
        y=data.get("y"),
    )


def database_from_dict(data: Dict[str, Any]) -> Database:
    body = data.get("database", data)
    return Database(
        name=str(body.get("name", "")),
        schemas=[
            Schema(
                name=str(schema.get("name", "")),
                tables=[table_from_dict(t) for t in schema.get("tables", [])],
            )
            for schema in body.get("schemas", [])
        ],
    )
