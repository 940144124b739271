from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    # --- Lookup ---
    SCHEMA_NOT_FOUND = "SCHEMA_NOT_FOUND"
    TABLE_NOT_FOUND = "TABLE_NOT_FOUND"
    COLUMN_NOT_FOUND = "COLUMN_NOT_FOUND"
    INDEX_NOT_FOUND = "INDEX_NOT_FOUND"
    FOREIGN_KEY_NOT_FOUND = "FOREIGN_KEY_NOT_FOUND"

    # --- Definitions ---
    DUPLICATE_NAME = "DUPLICATE_NAME"
    INVALID_DEFINITION = "INVALID_DEFINITION"
    CLUSTERED_INDEX_CONFLICT = "CLUSTERED_INDEX_CONFLICT"

    # --- Relationships ---
    NO_REFERENCEABLE_COLUMN = "NO_REFERENCEABLE_COLUMN"
    AMBIGUOUS_RELATIONSHIP = "AMBIGUOUS_RELATIONSHIP"
    DUPLICATE_FOREIGN_KEY = "DUPLICATE_FOREIGN_KEY"
    CIRCULAR_FOREIGN_KEY = "CIRCULAR_FOREIGN_KEY"
    TYPE_MISMATCH = "TYPE_MISMATCH"

    # --- Session ---
    NO_DATABASE = "NO_DATABASE"
    STALE_COMMAND = "STALE_COMMAND"


@dataclass
class ValidationError(Exception):
    """Base class for rejected edit commands.

    The model is never mutated when one of these is raised. ``message`` is the
    text a host shows verbatim; the identifiers locate the offending object.
    """

    message: str
    code: ErrorCode = ErrorCode.INVALID_DEFINITION
    schema: Optional[str] = None
    table: Optional[str] = None
    column: Optional[str] = None

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "schema": self.schema,
            "table": self.table,
            "column": self.column,
        }


# Lookup failures
@dataclass
class SchemaNotFoundError(ValidationError):
    code: ErrorCode = ErrorCode.SCHEMA_NOT_FOUND


@dataclass
class TableNotFoundError(ValidationError):
    code: ErrorCode = ErrorCode.TABLE_NOT_FOUND


@dataclass
class ColumnNotFoundError(ValidationError):
    code: ErrorCode = ErrorCode.COLUMN_NOT_FOUND


@dataclass
class IndexNotFoundError(ValidationError):
    code: ErrorCode = ErrorCode.INDEX_NOT_FOUND


@dataclass
class ForeignKeyNotFoundError(ValidationError):
    code: ErrorCode = ErrorCode.FOREIGN_KEY_NOT_FOUND


# Definition problems
@dataclass
class DuplicateNameError(ValidationError):
    code: ErrorCode = ErrorCode.DUPLICATE_NAME


@dataclass
class InvalidDefinitionError(ValidationError):
    code: ErrorCode = ErrorCode.INVALID_DEFINITION


@dataclass
class ClusteredIndexConflictError(ValidationError):
    code: ErrorCode = ErrorCode.CLUSTERED_INDEX_CONFLICT


# Relationship problems
@dataclass
class NoReferenceableColumnError(ValidationError):
    code: ErrorCode = ErrorCode.NO_REFERENCEABLE_COLUMN


@dataclass
class AmbiguousRelationshipError(ValidationError):
    code: ErrorCode = ErrorCode.AMBIGUOUS_RELATIONSHIP


@dataclass
class DuplicateForeignKeyError(ValidationError):
    code: ErrorCode = ErrorCode.DUPLICATE_FOREIGN_KEY
    same_relationship: bool = False


@dataclass
class CircularForeignKeyError(ValidationError):
    code: ErrorCode = ErrorCode.CIRCULAR_FOREIGN_KEY


@dataclass
class TypeMismatchError(ValidationError):
    code: ErrorCode = ErrorCode.TYPE_MISMATCH


# Session state
@dataclass
class NoDatabaseError(ValidationError):
    code: ErrorCode = ErrorCode.NO_DATABASE


@dataclass
class StaleCommandError(ValidationError):
    code: ErrorCode = ErrorCode.STALE_COMMAND
