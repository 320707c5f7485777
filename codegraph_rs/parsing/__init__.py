"""
Parsing Layer

Tree-sitter based parsing for Rust source files.
"""

from codegraph_rs.parsing.ast_tree import AstTree
from codegraph_rs.parsing.parser_registry import ParserRegistry, get_registry
from codegraph_rs.parsing.source_file import SourceFile, module_path_for

__all__ = [
    "AstTree",
    "ParserRegistry",
    "SourceFile",
    "get_registry",
    "module_path_for",
]
