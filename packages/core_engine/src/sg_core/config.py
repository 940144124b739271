from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from sg_core.model import DEFAULT_SCHEMA

CONFIG_FILE_NAME = "sqlgem.yaml"


@dataclass
class ProjectConfig:
    default_schema: str = DEFAULT_SCHEMA
    idempotent: bool = False
    # Promote a referenced column into its table's primary key when the DDL
    # never declared it as a key.
    infer_referenced_primary_keys: bool = True
    # Renaming a primary-key column also renames the columns that reference it.
    rename_referencing_columns: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {item.name: getattr(self, item.name) for item in fields(self)}


def load_config(path: Optional[str] = None) -> ProjectConfig:
    """Read ``sqlgem.yaml``; a missing file yields the defaults."""
    config_path = Path(path) if path else Path.cwd() / CONFIG_FILE_NAME
    if not config_path.exists():
        return ProjectConfig()

    with config_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)

    if data is None:
        return ProjectConfig()
    if not isinstance(data, dict):
        raise ValueError(f"{config_path.name} must parse to an object/map at root.")

    known = {item.name for item in fields(ProjectConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown keys in {config_path.name}: {', '.join(unknown)}")

    for key, value in data.items():
        expected = str if key == "default_schema" else bool
        if not isinstance(value, expected):
            raise ValueError(f"'{key}' in {config_path.name} must be a {expected.__name__}.")
    return ProjectConfig(**data)
