"""Diagnostics that are reported rather than raised.

Parse skips, unresolved DDL targets, lint findings and model-document schema
violations all end up as :class:`Issue` records. Only ``error`` issues make a
CLI command fail.
"""

from dataclasses import dataclass
from typing import Iterable, List

ERROR = "error"
WARN = "warn"


@dataclass(frozen=True)
class Issue:
    severity: str
    code: str
    message: str
    # "/schemas/<s>/tables/<t>" for model findings, "line N" for DDL text.
    path: str = "/"


def error(code: str, message: str, path: str = "/") -> Issue:
    return Issue(severity=ERROR, code=code, message=message, path=path)


def warning(code: str, message: str, path: str = "/") -> Issue:
    return Issue(severity=WARN, code=code, message=message, path=path)


def line_path(line: int) -> str:
    return f"line {line}" if line else "/"


def has_errors(issues: Iterable[Issue]) -> bool:
    return any(issue.severity == ERROR for issue in issues)


def errors_only(issues: Iterable[Issue]) -> List[Issue]:
    return [issue for issue in issues if issue.severity == ERROR]


def to_lines(issues: Iterable[Issue]) -> List[str]:
    return [f"[{issue.severity.upper()}] {issue.code} {issue.path}: {issue.message}" for issue in issues]
