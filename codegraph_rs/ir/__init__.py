"""
Graph IR

Identifiers, declaration nodes, canonical types and schema-checked relations.
"""

from codegraph_rs.ir.ids import EntityId, IdAllocator, Namespace, NodeId, TraitId, TypeId, id_from_key
from codegraph_rs.ir.models import (
    NODE_CLASSES,
    Attribute,
    DeclarationNode,
    FieldNode,
    FunctionNode,
    ImplNode,
    ModuleNode,
    NodeKind,
    Span,
    StructNode,
    TraitNode,
    TypeKind,
    TypeNode,
    TypeResolution,
    Visibility,
    VisibilityKind,
)
from codegraph_rs.ir.relations import RELATION_SCHEMA, Relation, RelationKind, SymbolSpace, Unresolved, check, validate

__all__ = [
    # ids
    "EntityId",
    "IdAllocator",
    "Namespace",
    "NodeId",
    "TraitId",
    "TypeId",
    "id_from_key",
    # nodes
    "NODE_CLASSES",
    "Attribute",
    "DeclarationNode",
    "FieldNode",
    "FunctionNode",
    "ImplNode",
    "ModuleNode",
    "NodeKind",
    "Span",
    "StructNode",
    "TraitNode",
    "TypeKind",
    "TypeNode",
    "TypeResolution",
    "Visibility",
    "VisibilityKind",
    # relations
    "RELATION_SCHEMA",
    "Relation",
    "RelationKind",
    "SymbolSpace",
    "Unresolved",
    "check",
    "validate",
]
