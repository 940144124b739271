"""Closed command set and the session that applies it.

A :class:`Session` owns the current database. Commands are applied one at a
time; each either replaces the database with an updated copy or returns a
typed error and leaves it untouched.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, List, Optional, Union

from sg_core import consistency
from sg_core.config import ProjectConfig
from sg_core.errors import NoDatabaseError, StaleCommandError, ValidationError
from sg_core.generators import generate_sql_ddl
from sg_core.importers import import_sql_ddl
from sg_core.issues import Issue
from sg_core.model import ColumnEndpoint, Database, Index, Table

logger = logging.getLogger(__name__)


class CommandKind(str, Enum):
    CREATE_DATABASE = "create_database"
    LOAD_DATABASE = "load_database"
    ADD_SCHEMA = "add_schema"
    ADD_TABLE = "add_table"
    UPDATE_TABLE = "update_table"
    DELETE_TABLE = "delete_table"
    CONNECT_COLUMNS = "connect_columns"
    DISCONNECT_COLUMNS = "disconnect_columns"
    ADD_INDEX = "add_index"
    REMOVE_INDEX = "remove_index"
    RENDER = "render"


@dataclass
class CreateDatabase:
    kind: ClassVar[CommandKind] = CommandKind.CREATE_DATABASE
    name: str
    expected_generation: Optional[int] = None


@dataclass
class LoadDatabase:
    kind: ClassVar[CommandKind] = CommandKind.LOAD_DATABASE
    ddl_text: str
    name: str
    expected_generation: Optional[int] = None


@dataclass
class AddSchema:
    kind: ClassVar[CommandKind] = CommandKind.ADD_SCHEMA
    name: str
    expected_generation: Optional[int] = None


@dataclass
class AddTable:
    kind: ClassVar[CommandKind] = CommandKind.ADD_TABLE
    schema: str
    table: Table
    expected_generation: Optional[int] = None


@dataclass
class UpdateTable:
    kind: ClassVar[CommandKind] = CommandKind.UPDATE_TABLE
    schema: str
    old_name: str
    table: Table
    expected_generation: Optional[int] = None


@dataclass
class DeleteTable:
    kind: ClassVar[CommandKind] = CommandKind.DELETE_TABLE
    schema: str
    name: str
    expected_generation: Optional[int] = None


@dataclass
class ConnectColumns:
    kind: ClassVar[CommandKind] = CommandKind.CONNECT_COLUMNS
    source: ColumnEndpoint
    target: ColumnEndpoint
    expected_generation: Optional[int] = None


@dataclass
class DisconnectColumns:
    kind: ClassVar[CommandKind] = CommandKind.DISCONNECT_COLUMNS
    source: ColumnEndpoint
    target: ColumnEndpoint
    expected_generation: Optional[int] = None


@dataclass
class AddIndex:
    kind: ClassVar[CommandKind] = CommandKind.ADD_INDEX
    schema: str
    table: str
    index: Index
    expected_generation: Optional[int] = None


@dataclass
class RemoveIndex:
    kind: ClassVar[CommandKind] = CommandKind.REMOVE_INDEX
    schema: str
    table: str
    index_name: str
    expected_generation: Optional[int] = None


@dataclass
class Render:
    kind: ClassVar[CommandKind] = CommandKind.RENDER
    idempotent: Optional[bool] = None
    generated_at: Optional[datetime] = None
    expected_generation: Optional[int] = None


Command = Union[
    CreateDatabase,
    LoadDatabase,
    AddSchema,
    AddTable,
    UpdateTable,
    DeleteTable,
    ConnectColumns,
    DisconnectColumns,
    AddIndex,
    RemoveIndex,
    Render,
]


@dataclass
class CommandResult:
    ok: bool
    database: Optional[Database]
    generation: int
    error: Optional[ValidationError] = None
    issues: List[Issue] = field(default_factory=list)
    text: Optional[str] = None
    # Operation-specific return value, e.g. the foreign-key column of a connect.
    value: Any = None


class Session:
    def __init__(self, config: Optional[ProjectConfig] = None, database: Optional[Database] = None) -> None:
        self.config = config or ProjectConfig()
        self.database = database
        self.generation = 0
        self._edits: Dict[CommandKind, Callable[[Database, Any], Any]] = {
            CommandKind.ADD_SCHEMA: lambda db, c: consistency.add_schema(db, c.name),
            CommandKind.ADD_TABLE: lambda db, c: consistency.add_table(db, c.schema, c.table),
            CommandKind.UPDATE_TABLE: lambda db, c: consistency.update_table(
                db,
                c.schema,
                c.old_name,
                c.table,
                rename_referencing_columns=self.config.rename_referencing_columns,
            ),
            CommandKind.DELETE_TABLE: lambda db, c: consistency.delete_table(db, c.schema, c.name),
            CommandKind.CONNECT_COLUMNS: lambda db, c: consistency.connect_columns(db, c.source, c.target),
            CommandKind.DISCONNECT_COLUMNS: lambda db, c: consistency.disconnect_columns(
                db, c.source, c.target
            ),
            CommandKind.ADD_INDEX: lambda db, c: consistency.add_index(db, c.schema, c.table, c.index),
            CommandKind.REMOVE_INDEX: lambda db, c: consistency.remove_index(
                db, c.schema, c.table, c.index_name
            ),
        }

    def _failure(self, error: ValidationError) -> CommandResult:
        return CommandResult(ok=False, database=self.database, generation=self.generation, error=error)

    def _replace(self, database: Database) -> None:
        self.database = database
        self.generation += 1

    def apply(self, command: Command) -> CommandResult:
        kind = command.kind
        expected = command.expected_generation
        if expected is not None and expected != self.generation:
            logger.info("Rejected stale %s (generation %d, expected %d)", kind.value, self.generation, expected)
            return self._failure(
                StaleCommandError(
                    f"The database was replaced (generation {self.generation}); "
                    f"command issued against generation {expected} was not applied."
                )
            )

        if kind == CommandKind.CREATE_DATABASE:
            self._replace(Database.empty(command.name, self.config.default_schema))
            logger.info("Created database %s", command.name)
            return CommandResult(ok=True, database=self.database, generation=self.generation)

        if kind == CommandKind.LOAD_DATABASE:
            result = import_sql_ddl(
                command.ddl_text,
                command.name,
                default_schema=self.config.default_schema,
                infer_referenced_primary_keys=self.config.infer_referenced_primary_keys,
            )
            self._replace(result.database)
            return CommandResult(
                ok=True, database=self.database, generation=self.generation, issues=result.issues
            )

        if self.database is None:
            return self._failure(NoDatabaseError("Create a database first"))

        if kind == CommandKind.RENDER:
            idempotent = self.config.idempotent if command.idempotent is None else command.idempotent
            text = generate_sql_ddl(
                self.database,
                idempotent=idempotent,
                generated_at=command.generated_at,
                default_schema=self.config.default_schema,
            )
            return CommandResult(ok=True, database=self.database, generation=self.generation, text=text)

        working = copy.deepcopy(self.database)
        try:
            value = self._edits[kind](working, command)
        except ValidationError as error:
            logger.info("Rejected %s: %s", kind.value, error)
            return self._failure(error)

        self.database = working
        return CommandResult(ok=True, database=self.database, generation=self.generation, value=value)
