"""
Diagnostics channel.

Unresolved references, schema rejections and per-unit failures are reported
as Diagnostic values returned to the caller instead of aborting construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from codegraph_rs.ir.relations import Relation


class DiagnosticCode(str, Enum):
    """Machine-readable reason codes"""

    UNRESOLVED_TYPE = "unresolved_type"
    UNRESOLVED_TRAIT = "unresolved_trait"
    UNRESOLVED_IMPORT = "unresolved_import"
    UNRESOLVED_MACRO = "unresolved_macro"
    UNRESOLVED_MODULE = "unresolved_module"
    SCHEMA_VIOLATION = "schema_violation"
    INHERITANCE_CYCLE = "inheritance_cycle"
    TYPE_DEPTH_EXCEEDED = "type_depth_exceeded"
    CFG_DUPLICATE = "cfg_duplicate"
    PARSE_ERROR = "parse_error"
    UNIT_FAILED = "unit_failed"


class Severity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Diagnostic:
    """
    One reported problem.

    path is the qualified path of the offending declaration (or the module
    path of the unit for unit-level problems).
    """

    code: DiagnosticCode
    path: str
    message: str
    file_path: str | None = None
    relation: Relation | None = None
    severity: Severity = Severity.WARNING

    def __str__(self) -> str:
        location = f" ({self.file_path})" if self.file_path else ""
        return f"[{self.code.value}] {self.path}: {self.message}{location}"
