import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from sg_core import (
    AddIndex,
    AddSchema,
    AddTable,
    ColumnEndpoint,
    ConnectColumns,
    Database,
    DeleteTable,
    DisconnectColumns,
    Index,
    ProjectConfig,
    RemoveIndex,
    Session,
    UpdateTable,
    dump_yaml_model,
    generate_sql_ddl,
    import_sql_ddl,
    lint_issues,
    load_config,
    load_database,
    load_yaml_model,
    save_database,
    schema_issues,
)
from sg_core.config import CONFIG_FILE_NAME
from sg_core.issues import Issue, errors_only, has_errors, to_lines
from sg_core.model import table_from_dict

STARTER_CONFIG = """default_schema: dbo
idempotent: false
infer_referenced_primary_keys: true
rename_referencing_columns: true
"""


def _print_issues(issues: List[Issue]) -> None:
    if not issues:
        print("No issues found.")
        return
    for line in to_lines(issues):
        print(line)


def _print_issue_block(prefix: str, issues: List[Issue]) -> None:
    if not issues:
        print(f"{prefix}: No issues found.")
        return
    print(f"{prefix}:")
    for line in to_lines(issues):
        print(f"  {line}")


def _config(args: argparse.Namespace) -> ProjectConfig:
    return load_config(args.config)


def _load_table(path: str):
    data = load_yaml_model(path)
    return table_from_dict(data.get("table", data))


def _endpoint(text: str, config: ProjectConfig) -> ColumnEndpoint:
    return ColumnEndpoint.parse(text, default_schema=config.default_schema)


def _run_edit(args: argparse.Namespace, command, done: str) -> int:
    """Load the model file, apply one command and write the model back."""
    config = _config(args)
    loaded = load_database(args.model, config)
    session = Session(config, database=loaded.database)
    result = session.apply(command)
    if not result.ok:
        print(f"Error [{result.error.code.value}]: {result.error}", file=sys.stderr)
        return 1
    save_database(result.database, args.model, config)
    print(done)
    return 0


def cmd_init(args: argparse.Namespace) -> int:
    root = Path(args.path).resolve()
    root.mkdir(parents=True, exist_ok=True)
    config_dst = root / CONFIG_FILE_NAME
    model_dst = root / f"{args.name}.yaml"

    created = []
    if not config_dst.exists():
        config_dst.write_text(STARTER_CONFIG, encoding="utf-8")
        created.append(config_dst)
    if not model_dst.exists():
        model_dst.write_text(dump_yaml_model(Database.empty(args.name)), encoding="utf-8")
        created.append(model_dst)

    if not created:
        print(f"Workspace already initialized: {root}")
        return 0
    for path in created:
        print(f"Created {path}")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    config = _config(args)
    if Path(args.model).suffix.lower() == ".sql":
        result = load_database(args.model, config)
        issues = list(result.issues)
        issues.extend(lint_issues(result.database))
    else:
        document = load_yaml_model(args.model)
        issues = schema_issues(document)
        if not has_errors(issues):
            issues.extend(lint_issues(load_database(args.model, config).database))
    _print_issues(issues)
    return 1 if has_errors(issues) else 0


def cmd_import_sql(args: argparse.Namespace) -> int:
    config = _config(args)
    ddl_text = Path(args.input).read_text(encoding="utf-8")
    name = args.name or Path(args.input).stem
    result = import_sql_ddl(
        ddl_text,
        database_name=name,
        default_schema=config.default_schema,
        infer_referenced_primary_keys=config.infer_referenced_primary_keys,
    )

    issues = list(result.issues)
    issues.extend(lint_issues(result.database))
    _print_issue_block("Imported model checks", issues)

    output = dump_yaml_model(result.database)
    if args.out:
        Path(args.out).write_text(output, encoding="utf-8")
        print(f"Wrote imported YAML model: {args.out}")
    else:
        print(output)

    return 1 if has_errors(issues) else 0


def cmd_generate_sql(args: argparse.Namespace) -> int:
    config = _config(args)
    loaded = load_database(args.model, config)
    issues = lint_issues(loaded.database)
    if has_errors(issues):
        _print_issues(errors_only(issues))
        return 1

    ddl = generate_sql_ddl(
        loaded.database,
        idempotent=args.idempotent or config.idempotent,
        default_schema=config.default_schema,
    )
    if args.out:
        Path(args.out).write_text(ddl, encoding="utf-8")
        print(f"Wrote SQL DDL: {args.out}")
    else:
        print(ddl)
    return 0


def cmd_schema_add(args: argparse.Namespace) -> int:
    return _run_edit(args, AddSchema(name=args.name), f"Added schema {args.name}")


def cmd_table_add(args: argparse.Namespace) -> int:
    table = _load_table(args.definition)
    return _run_edit(args, AddTable(schema=args.schema, table=table), f"Added table {args.schema}.{table.name}")


def cmd_table_update(args: argparse.Namespace) -> int:
    table = _load_table(args.definition)
    command = UpdateTable(schema=args.schema, old_name=args.table, table=table)
    return _run_edit(args, command, f"Updated table {args.schema}.{args.table}")


def cmd_table_delete(args: argparse.Namespace) -> int:
    return _run_edit(
        args, DeleteTable(schema=args.schema, name=args.table), f"Deleted table {args.schema}.{args.table}"
    )


def cmd_connect(args: argparse.Namespace) -> int:
    config = _config(args)
    command = ConnectColumns(source=_endpoint(args.source, config), target=_endpoint(args.target, config))
    return _run_edit(args, command, f"Connected {args.source} and {args.target}")


def cmd_disconnect(args: argparse.Namespace) -> int:
    config = _config(args)
    command = DisconnectColumns(source=_endpoint(args.source, config), target=_endpoint(args.target, config))
    return _run_edit(args, command, f"Disconnected {args.source} and {args.target}")


def cmd_index_add(args: argparse.Namespace) -> int:
    columns = [column.strip() for column in args.columns.split(",") if column.strip()]
    index = Index(
        name=args.name or "",
        columns=columns,
        is_clustered=args.clustered,
        is_unique=args.unique,
    )
    command = AddIndex(schema=args.schema, table=args.table, index=index)
    return _run_edit(args, command, f"Added index on {args.schema}.{args.table}")


def cmd_index_remove(args: argparse.Namespace) -> int:
    command = RemoveIndex(schema=args.schema, table=args.table, index_name=args.name)
    return _run_edit(args, command, f"Removed index {args.name}")


def _add_model_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("model", help="Path to model file (.yaml or .sql)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sg", description="sqlgem schema modeling CLI")
    parser.add_argument("--config", help=f"Path to project config (default: ./{CONFIG_FILE_NAME})")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    init_parser = sub.add_parser("init", help="Initialize a new workspace")
    init_parser.add_argument("--path", default=".", help="Workspace path")
    init_parser.add_argument("--name", default="database", help="Database name for the starter model")
    init_parser.set_defaults(func=cmd_init)

    validate_parser = sub.add_parser("validate", help="Validate a model file")
    _add_model_args(validate_parser)
    validate_parser.set_defaults(func=cmd_validate)

    import_parser = sub.add_parser("import", help="Import a model from another format")
    import_sub = import_parser.add_subparsers(dest="import_command", required=True)
    import_sql_parser = import_sub.add_parser("sql", help="Import SQL Server DDL")
    import_sql_parser.add_argument("input", help="Path to .sql file")
    import_sql_parser.add_argument("--name", help="Database name (default: file stem)")
    import_sql_parser.add_argument("--out", help="Output YAML model path")
    import_sql_parser.set_defaults(func=cmd_import_sql)

    generate_parser = sub.add_parser("generate", help="Generate artifacts from a model")
    generate_sub = generate_parser.add_subparsers(dest="generate_command", required=True)
    gen_sql_parser = generate_sub.add_parser("sql", help="Generate SQL Server DDL")
    _add_model_args(gen_sql_parser)
    gen_sql_parser.add_argument("--idempotent", action="store_true", help="Wrap statements in existence checks")
    gen_sql_parser.add_argument("--out", help="Output SQL file path")
    gen_sql_parser.set_defaults(func=cmd_generate_sql)

    schema_parser = sub.add_parser("schema", help="Edit schemas")
    schema_sub = schema_parser.add_subparsers(dest="schema_command", required=True)
    schema_add_parser = schema_sub.add_parser("add", help="Add a schema")
    _add_model_args(schema_add_parser)
    schema_add_parser.add_argument("name", help="Schema name")
    schema_add_parser.set_defaults(func=cmd_schema_add)

    table_parser = sub.add_parser("table", help="Edit tables")
    table_sub = table_parser.add_subparsers(dest="table_command", required=True)
    table_add_parser = table_sub.add_parser("add", help="Add a table from a YAML definition")
    _add_model_args(table_add_parser)
    table_add_parser.add_argument("definition", help="Path to table YAML")
    table_add_parser.add_argument("--schema", default="dbo", help="Target schema")
    table_add_parser.set_defaults(func=cmd_table_add)

    table_update_parser = table_sub.add_parser("update", help="Replace a table with a YAML definition")
    _add_model_args(table_update_parser)
    table_update_parser.add_argument("table", help="Current table name")
    table_update_parser.add_argument("definition", help="Path to table YAML")
    table_update_parser.add_argument("--schema", default="dbo", help="Table schema")
    table_update_parser.set_defaults(func=cmd_table_update)

    table_delete_parser = table_sub.add_parser("delete", help="Delete a table")
    _add_model_args(table_delete_parser)
    table_delete_parser.add_argument("table", help="Table name")
    table_delete_parser.add_argument("--schema", default="dbo", help="Table schema")
    table_delete_parser.set_defaults(func=cmd_table_delete)

    connect_parser = sub.add_parser("connect", help="Create a foreign key between two columns")
    _add_model_args(connect_parser)
    connect_parser.add_argument("source", help="[schema.]table.column")
    connect_parser.add_argument("target", help="[schema.]table.column")
    connect_parser.set_defaults(func=cmd_connect)

    disconnect_parser = sub.add_parser("disconnect", help="Remove the foreign key between two columns")
    _add_model_args(disconnect_parser)
    disconnect_parser.add_argument("source", help="[schema.]table.column")
    disconnect_parser.add_argument("target", help="[schema.]table.column")
    disconnect_parser.set_defaults(func=cmd_disconnect)

    index_parser = sub.add_parser("index", help="Edit indexes")
    index_sub = index_parser.add_subparsers(dest="index_command", required=True)
    index_add_parser = index_sub.add_parser("add", help="Add an index")
    _add_model_args(index_add_parser)
    index_add_parser.add_argument("table", help="Table name")
    index_add_parser.add_argument("--columns", required=True, help="Comma-separated column names")
    index_add_parser.add_argument("--name", help="Index name (default: IX_/UX_<table>_<columns>)")
    index_add_parser.add_argument("--schema", default="dbo", help="Table schema")
    index_add_parser.add_argument("--clustered", action="store_true", help="Create a clustered index")
    index_add_parser.add_argument("--unique", action="store_true", help="Create a unique index")
    index_add_parser.set_defaults(func=cmd_index_add)

    index_remove_parser = index_sub.add_parser("remove", help="Remove an index")
    _add_model_args(index_remove_parser)
    index_remove_parser.add_argument("table", help="Table name")
    index_remove_parser.add_argument("name", help="Index name")
    index_remove_parser.add_argument("--schema", default="dbo", help="Table schema")
    index_remove_parser.set_defaults(func=cmd_index_remove)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
