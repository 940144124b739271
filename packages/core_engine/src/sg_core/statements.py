"""Statement tree produced by :mod:`sg_core.parser`.

The tree records what the text says; :mod:`sg_core.importers` decides what it
means for the schema model.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Union


@dataclass(frozen=True)
class QualifiedName:
    schema: Optional[str]
    name: str

    def __str__(self) -> str:
        return f"{self.schema}.{self.name}" if self.schema else self.name


@dataclass
class ForeignKeyClause:
    columns: List[str]
    ref_table: QualifiedName
    ref_columns: List[str]


@dataclass
class KeyConstraint:
    """PRIMARY KEY or UNIQUE, declared at table level or inline on a column."""

    kind: str  # "PRIMARY KEY" | "UNIQUE"
    columns: List[str]
    name: Optional[str] = None
    clustered: Optional[bool] = None


@dataclass
class ForeignKeyConstraint:
    clause: ForeignKeyClause
    name: Optional[str] = None


@dataclass
class IgnoredConstraint:
    """CHECK / DEFAULT / anything else declared with CONSTRAINT."""

    kind: str
    name: Optional[str] = None


TableConstraint = Union[KeyConstraint, ForeignKeyConstraint, IgnoredConstraint]


@dataclass
class ColumnDef:
    name: str
    data_type: str
    type_args: List[str] = field(default_factory=list)
    identity: bool = False
    nullable: Optional[bool] = None
    default: Optional[str] = None
    primary_key: Optional[KeyConstraint] = None
    unique: Optional[KeyConstraint] = None
    references: Optional[ForeignKeyConstraint] = None


@dataclass
class CreateSchema:
    name: str
    line: int = 0


@dataclass
class CreateTable:
    table: QualifiedName
    columns: List[ColumnDef] = field(default_factory=list)
    constraints: List[TableConstraint] = field(default_factory=list)
    line: int = 0


@dataclass
class AlterTableAddConstraint:
    table: QualifiedName
    constraint: TableConstraint
    line: int = 0


@dataclass
class CreateIndex:
    name: str
    table: QualifiedName
    columns: List[str]
    is_unique: bool = False
    clustered: Optional[bool] = None
    line: int = 0


@dataclass
class Skipped:
    """A region the parser could not classify. It produces no model objects."""

    text: str
    line: int = 0
    reason: str = "unrecognized statement"


Statement = Union[CreateSchema, CreateTable, AlterTableAddConstraint, CreateIndex]


@dataclass
class Script:
    statements: List[Statement] = field(default_factory=list)
    skipped: List[Skipped] = field(default_factory=list)
