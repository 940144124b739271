import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from sg_core.config import ProjectConfig
from sg_core.generators import generate_sql_ddl
from sg_core.importers import ParseResult, import_sql_ddl
from sg_core.issues import has_errors, to_lines
from sg_core.model import Database, database_from_dict, database_to_dict
from sg_core.schema import schema_issues

logger = logging.getLogger(__name__)

SQL_SUFFIXES = {".sql"}
YAML_SUFFIXES = {".yaml", ".yml"}


def load_yaml_model(path: str) -> Dict[str, Any]:
    model_path = Path(path)
    if not model_path.exists():
        raise FileNotFoundError(f"Model file not found: {path}")

    with model_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)

    if data is None:
        return {}

    if not isinstance(data, dict):
        raise ValueError("Model YAML must parse to an object/map at root.")

    return data


def dump_yaml_model(database: Database) -> str:
    return yaml.safe_dump(database_to_dict(database), sort_keys=False)


def load_database(path: str, config: Optional[ProjectConfig] = None) -> ParseResult:
    """Load a model from a ``.sql`` script or a YAML model document."""
    config = config or ProjectConfig()
    model_path = Path(path)
    suffix = model_path.suffix.lower()

    if suffix in SQL_SUFFIXES:
        if not model_path.exists():
            raise FileNotFoundError(f"SQL file not found: {path}")
        result = import_sql_ddl(
            model_path.read_text(encoding="utf-8"),
            database_name=model_path.stem,
            default_schema=config.default_schema,
            infer_referenced_primary_keys=config.infer_referenced_primary_keys,
        )
        logger.debug("Loaded %s with %d issues", path, len(result.issues))
        return result

    if suffix in YAML_SUFFIXES:
        document = load_yaml_model(path)
        issues = schema_issues(document)
        if has_errors(issues):
            raise ValueError(f"Model file {path} is invalid:\n" + "\n".join(to_lines(issues)))
        return ParseResult(database=database_from_dict(document), issues=issues)

    raise ValueError(f"Unsupported model file type '{suffix}'. Use .sql, .yaml or .yml.")


def save_database(
    database: Database, path: str, config: Optional[ProjectConfig] = None
) -> None:
    config = config or ProjectConfig()
    model_path = Path(path)
    if model_path.suffix.lower() in SQL_SUFFIXES:
        output = generate_sql_ddl(
            database, idempotent=config.idempotent, default_schema=config.default_schema
        )
    else:
        output = dump_yaml_model(database)
    model_path.write_text(output, encoding="utf-8")
    logger.debug("Wrote %s", path)
