import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from jsonschema import Draft202012Validator

from sg_core.issues import Issue, error

BUNDLED_MODEL_SCHEMA = Path(__file__).resolve().parent / "schemas" / "model.schema.json"


def load_schema(schema_path: Optional[str] = None) -> Dict[str, Any]:
    """Load a JSON Schema; the bundled model schema when no path is given."""
    path = Path(schema_path) if schema_path else BUNDLED_MODEL_SCHEMA
    if not path.exists():
        raise FileNotFoundError(f"Schema file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


@lru_cache(maxsize=1)
def _model_validator() -> Draft202012Validator:
    schema = load_schema()
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def _pointer(parts: Iterable[Any]) -> str:
    return "/" + "/".join(str(part) for part in parts)


def schema_issues(document: Dict[str, Any], schema: Optional[Dict[str, Any]] = None) -> List[Issue]:
    """Validate a model document; one MODEL_SCHEMA_INVALID issue per violation."""
    validator = Draft202012Validator(schema) if schema is not None else _model_validator()
    violations = sorted(
        validator.iter_errors(document),
        key=lambda e: [str(part) for part in e.absolute_path],
    )
    return [error("MODEL_SCHEMA_INVALID", v.message, _pointer(v.absolute_path)) for v in violations]
