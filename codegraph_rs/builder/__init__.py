"""
Graph Builder

Per-unit traversal: scope tracking, symbol registration and type
canonicalization, producing one FileFragment per compilation unit.
"""

from codegraph_rs.builder.fragment import FileFragment
from codegraph_rs.builder.scope_stack import ScopeFrame, ScopeStack
from codegraph_rs.builder.symbol_table import PathResolution, ResolutionStatus, SymbolTable
from codegraph_rs.builder.traversal import FileTraversal, traverse
from codegraph_rs.builder.type_canonicalizer import TypeCanonicalizer

__all__ = [
    "FileFragment",
    "FileTraversal",
    "PathResolution",
    "ResolutionStatus",
    "ScopeFrame",
    "ScopeStack",
    "SymbolTable",
    "TypeCanonicalizer",
    "traverse",
]
