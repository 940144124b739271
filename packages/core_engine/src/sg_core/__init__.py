from sg_core.commands import (
    AddIndex,
    AddSchema,
    AddTable,
    CommandKind,
    CommandResult,
    ConnectColumns,
    CreateDatabase,
    DeleteTable,
    DisconnectColumns,
    LoadDatabase,
    RemoveIndex,
    Render,
    Session,
    UpdateTable,
)
from sg_core.config import ProjectConfig, load_config
from sg_core.consistency import (
    add_index,
    add_schema,
    add_table,
    connect_columns,
    delete_table,
    disconnect_columns,
    remove_index,
    update_table,
)
from sg_core.errors import ErrorCode, ValidationError
from sg_core.generators import generate_sql_ddl
from sg_core.importers import ParseResult, import_sql_ddl, parse_ddl
from sg_core.loader import dump_yaml_model, load_database, load_yaml_model, save_database
from sg_core.model import (
    Column,
    ColumnEndpoint,
    ConstraintRole,
    Database,
    ForeignKeyRef,
    Index,
    PrimaryKey,
    Schema,
    Table,
    UniqueConstraint,
    column_roles,
    database_from_dict,
    database_to_dict,
)
from sg_core.parser import parse_script, split_top_level
from sg_core.schema import load_schema, schema_issues
from sg_core.semantic import lint_issues

__all__ = [
    "add_index",
    "add_schema",
    "add_table",
    "AddIndex",
    "AddSchema",
    "AddTable",
    "Column",
    "ColumnEndpoint",
    "column_roles",
    "CommandKind",
    "CommandResult",
    "connect_columns",
    "ConnectColumns",
    "ConstraintRole",
    "CreateDatabase",
    "Database",
    "database_from_dict",
    "database_to_dict",
    "delete_table",
    "DeleteTable",
    "disconnect_columns",
    "DisconnectColumns",
    "dump_yaml_model",
    "ErrorCode",
    "ForeignKeyRef",
    "generate_sql_ddl",
    "import_sql_ddl",
    "Index",
    "lint_issues",
    "load_config",
    "load_database",
    "load_schema",
    "load_yaml_model",
    "LoadDatabase",
    "parse_ddl",
    "parse_script",
    "ParseResult",
    "PrimaryKey",
    "ProjectConfig",
    "remove_index",
    "RemoveIndex",
    "Render",
    "save_database",
    "Schema",
    "schema_issues",
    "Session",
    "split_top_level",
    "Table",
    "UniqueConstraint",
    "update_table",
    "UpdateTable",
    "ValidationError",
]
