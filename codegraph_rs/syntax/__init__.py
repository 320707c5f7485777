"""
Syntax Layer

Abstract item/type syntax consumed by the builder, and the tree-sitter
front-end that produces it.
"""

from codegraph_rs.syntax.models import ITEM_TYPES, Item, SourceUnit, TypeExpr, simple_path
from codegraph_rs.syntax.rust_frontend import RustSyntaxReader

__all__ = [
    "ITEM_TYPES",
    "Item",
    "RustSyntaxReader",
    "SourceUnit",
    "TypeExpr",
    "simple_path",
]
