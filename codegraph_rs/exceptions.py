"""
Custom exceptions for codegraph_rs.

Hierarchy:
- CodeGraphError (base)
  - ConfigurationError (invalid build or logging configuration)
  - ParsingError (front-end could not read or parse a unit)
  - UnitBuildError (unexpected failure while building one unit)
  - RelationError (relation violates its kind's endpoint schema)
  - StructuralError (fatal for one compilation unit)
    - NamespaceExhaustedError
    - ModuleCycleError
    - PathCollisionError
  - ResolverStateError (illegal resolver lifecycle transition)
  - SnapshotVersionError (snapshot cannot be loaded by this version)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from codegraph_rs.ir.relations import Relation


class CodeGraphError(Exception):
    """Base exception for all codegraph_rs errors."""

    def __init__(self, message: str, context: dict | None = None):
        super().__init__(message)
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{super().__str__()} [{ctx_str}]"
        return super().__str__()


class ConfigurationError(CodeGraphError):
    """Invalid build or logging configuration."""

    pass


# ============================================================================
# Front-end Errors
# ============================================================================


class ParsingError(CodeGraphError):
    """Error while reading or parsing a source file."""

    def __init__(self, message: str, file_path: str | None = None, line: int | None = None):
        context = {}
        if file_path:
            context["file"] = file_path
        if line is not None:
            context["line"] = line
        super().__init__(message, context)
        self.file_path = file_path
        self.line = line


class UnitBuildError(CodeGraphError):
    """Unexpected failure while reading or traversing one unit."""

    def __init__(self, message: str, file_path: str, cause: BaseException):
        super().__init__(message, {"file": file_path, "error_type": type(cause).__name__})
        self.file_path = file_path
        self.cause = cause


# ============================================================================
# Validation Errors
# ============================================================================


class RelationError(CodeGraphError):
    """A relation violates the endpoint schema of its kind."""

    def __init__(self, message: str, relation: Relation, rule: str):
        super().__init__(message, {"kind": relation.kind.value, "rule": rule})
        self.relation = relation
        self.rule = rule


# ============================================================================
# Structural Errors (fatal for the affected compilation unit)
# ============================================================================


class StructuralError(CodeGraphError):
    """Base class for errors that abort construction of one compilation unit."""

    def __init__(self, message: str, context: dict | None = None, file_paths: tuple[str, ...] = ()):
        super().__init__(message, context)
        self.file_paths = file_paths


class NamespaceExhaustedError(StructuralError):
    """An identifier namespace ran past its configured range."""

    def __init__(self, namespace: str, max_id: int, file_path: str | None = None):
        super().__init__(
            f"Identifier namespace '{namespace}' exhausted",
            {"namespace": namespace, "max_id": max_id},
            (file_path,) if file_path else (),
        )
        self.namespace = namespace
        self.max_id = max_id


class ModuleCycleError(StructuralError):
    """Module containment forms a cycle."""

    def __init__(self, cycle: list[str], file_paths: tuple[str, ...] = ()):
        super().__init__(
            "Cyclic module containment",
            {"cycle": " -> ".join(cycle)},
            file_paths,
        )
        self.cycle = cycle


class PathCollisionError(StructuralError):
    """Two distinct declarations claim the same qualified path."""

    def __init__(self, path: str, existing_file: str | None = None, file_path: str | None = None):
        context = {"path": path}
        if existing_file:
            context["existing_file"] = existing_file
        if file_path:
            context["file"] = file_path
        super().__init__(
            f"Qualified path '{path}' declared twice",
            context,
            (file_path,) if file_path else (),
        )
        self.path = path
        self.existing_file = existing_file
        self.file_path = file_path


# ============================================================================
# Lifecycle Errors
# ============================================================================


class ResolverStateError(CodeGraphError):
    """Resolver operation called in the wrong lifecycle state."""

    def __init__(self, operation: str, state: str):
        super().__init__(f"'{operation}' not allowed in state {state}", {"state": state})
        self.operation = operation
        self.state = state


class SnapshotVersionError(CodeGraphError):
    """Snapshot schema version is not supported."""

    def __init__(self, found: str | None, supported: str):
        super().__init__(
            "Unsupported snapshot schema version",
            {"found": found, "supported": supported},
        )
        self.found = found
        self.supported = supported
