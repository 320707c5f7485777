"""
Graph Store

The resolved graph handed to downstream consumers. Built once by the
resolver and never mutated afterwards: collections are exposed as read-only
mappings and tuples.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from codegraph_rs.diagnostics import Diagnostic, DiagnosticCode
from codegraph_rs.ir.ids import EntityId, NodeId, TraitId, TypeId
from codegraph_rs.ir.models import DeclarationNode, ModuleNode, NodeKind, TraitNode, TypeNode
from codegraph_rs.ir.relations import Relation, RelationKind


@dataclass
class GraphIndex:
    """Adjacency and path indexes for efficient queries."""

    by_path: dict[str, list[NodeId | TraitId]] = field(default_factory=dict)  # path -> declarations
    outgoing: dict[tuple, list[int]] = field(default_factory=dict)  # source key -> relation positions
    incoming: dict[tuple, list[int]] = field(default_factory=dict)  # target key -> relation positions
    by_kind: dict[RelationKind, list[int]] = field(default_factory=dict)


class GraphStore:
    """
    Immutable aggregate of nodes, traits, types, relations and diagnostics.

    Query results are always ordered: nodes by id, relations in admission
    order (which is deterministic for a given input set).
    """

    def __init__(
        self,
        nodes: Iterable[DeclarationNode] = (),
        traits: Iterable[TraitNode] = (),
        types: Iterable[TypeNode] = (),
        relations: Iterable[Relation] = (),
        diagnostics: Iterable[Diagnostic] = (),
    ):
        self._nodes: Mapping[NodeId, DeclarationNode] = MappingProxyType(
            {node.id: node for node in sorted(nodes, key=lambda n: n.id)}
        )
        self._traits: Mapping[TraitId, TraitNode] = MappingProxyType(
            {trait.id: trait for trait in sorted(traits, key=lambda t: t.id)}
        )
        self._types: Mapping[TypeId, TypeNode] = MappingProxyType(
            {type_node.id: type_node for type_node in sorted(types, key=lambda t: t.id)}
        )
        self._relations: tuple[Relation, ...] = tuple(relations)
        self._diagnostics: tuple[Diagnostic, ...] = tuple(diagnostics)
        self._index = self._build_index()

    def _build_index(self) -> GraphIndex:
        index = GraphIndex()
        for declaration in (*self._nodes.values(), *self._traits.values()):
            index.by_path.setdefault(declaration.path, []).append(declaration.id)
        for position, relation in enumerate(self._relations):
            index.outgoing.setdefault(relation.source.key, []).append(position)
            index.incoming.setdefault(relation.target.key, []).append(position)
            index.by_kind.setdefault(relation.kind, []).append(position)
        return index

    # ============================================================
    # Collections
    # ============================================================

    @property
    def nodes(self) -> Mapping[NodeId, DeclarationNode]:
        return self._nodes

    @property
    def traits(self) -> Mapping[TraitId, TraitNode]:
        return self._traits

    @property
    def types(self) -> Mapping[TypeId, TypeNode]:
        return self._types

    @property
    def diagnostics(self) -> tuple[Diagnostic, ...]:
        return self._diagnostics

    # ============================================================
    # Lookups
    # ============================================================

    def node(self, node_id: NodeId) -> DeclarationNode | None:
        return self._nodes.get(node_id)

    def type(self, type_id: TypeId) -> TypeNode | None:
        return self._types.get(type_id)

    def trait(self, trait_id: TraitId) -> TraitNode | None:
        return self._traits.get(trait_id)

    def get(self, entity: EntityId) -> DeclarationNode | TraitNode | TypeNode | None:
        if isinstance(entity, NodeId):
            return self.node(entity)
        if isinstance(entity, TraitId):
            return self.trait(entity)
        return self.type(entity)

    def lookup(self, path: str, kind: NodeKind | str | None = None) -> DeclarationNode | TraitNode | None:
        """
        Find the declaration registered under a qualified path.

        Args:
            path: Qualified path (`crate::shapes::Circle`)
            kind: Restrict to one node kind ("trait" for traits); the first
                declaration (lowest id) is returned otherwise
        """
        for entity in self._index.by_path.get(path, ()):
            declaration = self.get(entity)
            declared_kind = "trait" if isinstance(declaration, TraitNode) else declaration.kind.value
            if kind is None or declared_kind == getattr(kind, "value", kind):
                return declaration
        return None

    def lookup_all(self, path: str) -> list[DeclarationNode | TraitNode]:
        return [self.get(entity) for entity in self._index.by_path.get(path, ())]

    def nodes_of_kind(self, kind: NodeKind) -> list[DeclarationNode]:
        return [node for node in self._nodes.values() if node.kind == kind]

    # ============================================================
    # Relations
    # ============================================================

    def relations_of(self, kind: RelationKind) -> list[Relation]:
        return [self._relations[i] for i in self._index.by_kind.get(kind, ())]

    def relations(
        self,
        kind: RelationKind | None = None,
        source: EntityId | None = None,
        target: EntityId | None = None,
    ) -> list[Relation]:
        """All relations matching every given filter (all relations when none is given)."""
        if source is not None:
            positions = self._index.outgoing.get(source.key, [])
        elif target is not None:
            positions = self._index.incoming.get(target.key, [])
        elif kind is not None:
            positions = self._index.by_kind.get(kind, [])
        else:
            positions = range(len(self._relations))

        results = []
        for position in positions:
            relation = self._relations[position]
            if kind is not None and relation.kind != kind:
                continue
            if target is not None and relation.target.key != target.key:
                continue
            results.append(relation)
        return results

    def outgoing(self, source: EntityId, kind: RelationKind | None = None) -> list[Relation]:
        return self.relations(kind=kind, source=source)

    def incoming(self, target: EntityId, kind: RelationKind | None = None) -> list[Relation]:
        return self.relations(kind=kind, target=target)

    def implementations_of(self, trait_id: TraitId) -> list[DeclarationNode]:
        """Impl blocks implementing a trait, in id order."""
        impl_ids = {r.via for r in self.incoming(trait_id, RelationKind.IMPLEMENTS_TRAIT) if r.via is not None}
        return [self._nodes[impl_id] for impl_id in sorted(impl_ids) if impl_id in self._nodes]

    def impls_for(self, type_id: TypeId) -> list[DeclarationNode]:
        """Impl blocks (inherent and trait) whose self type is `type_id`."""
        return [self._nodes[r.source] for r in self.incoming(type_id, RelationKind.IMPLEMENTS_FOR)]

    def contained_items(self, module_id: NodeId) -> list[DeclarationNode | TraitNode]:
        """Items directly contained in a module (child modules included), or modules declared in a function body."""
        items = []
        for relation in self.outgoing(module_id, RelationKind.CONTAINS):
            if relation.unresolved:
                continue
            item = self.get(relation.target)
            if item is not None:
                items.append(item)
        return items

    def root_modules(self) -> list[ModuleNode]:
        """Modules no resolved CONTAINS relation points at."""
        contained = {
            r.target.key for r in self.relations_of(RelationKind.CONTAINS) if not r.unresolved
        }
        return [
            node
            for node in self._nodes.values()
            if isinstance(node, ModuleNode) and node.id.key not in contained
        ]

    def unresolved_relations(self) -> list[Relation]:
        return [relation for relation in self._relations if relation.unresolved]

    def diagnostics_of(self, code: DiagnosticCode) -> list[Diagnostic]:
        return [d for d in self._diagnostics if d.code == code]

    # ============================================================
    # Comparison
    # ============================================================

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GraphStore):
            return NotImplemented
        return (
            dict(self._nodes) == dict(other._nodes)
            and dict(self._traits) == dict(other._traits)
            and dict(self._types) == dict(other._types)
            and set(self._relations) == set(other._relations)
            and len(self._relations) == len(other._relations)
            and self._index.by_path == other._index.by_path
        )

    __hash__ = None

    def get_stats(self) -> dict[str, int]:
        return {
            "nodes": len(self._nodes),
            "traits": len(self._traits),
            "types": len(self._types),
            "relations": len(self._relations),
            "unresolved": len(self.unresolved_relations()),
            "diagnostics": len(self._diagnostics),
        }

    def __repr__(self) -> str:
        stats = ", ".join(f"{k}={v}" for k, v in self.get_stats().items())
        return f"GraphStore({stats})"
