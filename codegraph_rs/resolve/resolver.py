"""
Cross-Item Resolver

Second pass over the merged fragments. Lifecycle:

    COLLECTING  fragments are added (traversal running)
    RESOLVING   global symbol table complete; placeholders are rewritten
    RESOLVED    terminal; the GraphStore has been handed off

Resolution steps:
1. re-fingerprint UNRESOLVED types against the global symbol table and
   unify types that now share a fingerprint
2. rewrite provisional relations to concrete targets; targets that are
   genuinely absent stay in the graph marked unresolved and are reported
3. patch nodes whose fields mirror resolved relations (impl trait,
   super-traits, module children)
4. validate every relation against the schema with node kinds known
5. check containment (structural) and inheritance (diagnostic) for cycles
"""

from __future__ import annotations

import dataclasses
from enum import Enum

from codegraph_rs.builder.fragment import FileFragment
from codegraph_rs.builder.symbol_table import PathResolution, ResolutionStatus
from codegraph_rs.builder.type_canonicalizer import render_type
from codegraph_rs.config import GraphBuildConfig
from codegraph_rs.diagnostics import Diagnostic, DiagnosticCode
from codegraph_rs.exceptions import ModuleCycleError, ResolverStateError
from codegraph_rs.graph.store import GraphStore
from codegraph_rs.ir.ids import NodeId, TraitId, TypeId, id_from_key
from codegraph_rs.ir.models import ImplNode, ModuleNode, NodeKind, TypeKind, TypeNode, TypeResolution, remap_ids
from codegraph_rs.ir.relations import Relation, RelationKind, SymbolSpace, Unresolved, check
from codegraph_rs.observability import LogPerformance, get_logger
from codegraph_rs.resolve.merge import FragmentMerger, MergedGraph

logger = get_logger(__name__)

UNRESOLVED_CODES = {
    RelationKind.IMPLEMENTS_TRAIT: DiagnosticCode.UNRESOLVED_TRAIT,
    RelationKind.INHERITS: DiagnosticCode.UNRESOLVED_TRAIT,
    RelationKind.USES: DiagnosticCode.UNRESOLVED_IMPORT,
    RelationKind.MACRO_USE: DiagnosticCode.UNRESOLVED_MACRO,
    RelationKind.CONTAINS: DiagnosticCode.UNRESOLVED_MODULE,
}


class ResolverState(str, Enum):
    COLLECTING = "collecting"
    RESOLVING = "resolving"
    RESOLVED = "resolved"


def split_path(text: str) -> tuple[tuple[str, ...], bool]:
    """`::a::b` -> (("a", "b"), True)"""
    leading_colon = text.startswith("::")
    return tuple(part for part in text.lstrip(":").split("::") if part), leading_colon


class CrossItemResolver:
    """
    Resolves fragments into an immutable GraphStore.

    Usage:
        resolver = CrossItemResolver(config)
        for fragment in fragments:
            resolver.add_fragment(fragment)
        graph = resolver.resolve()

    Raises from resolve():
        ModuleCycleError: Module containment is cyclic; the error names the
            units involved so the caller can drop them and retry
    """

    def __init__(self, config: GraphBuildConfig | None = None):
        self.config = config or GraphBuildConfig()
        self.state = ResolverState.COLLECTING
        self._fragments: dict[str, FileFragment] = {}
        self._merged: MergedGraph | None = None

    @property
    def failed_units(self) -> dict:
        """Units dropped during merge (file path -> StructuralError)."""
        return dict(self._merged.failed_units) if self._merged is not None else {}

    def _require(self, operation: str, state: ResolverState) -> None:
        if self.state != state:
            raise ResolverStateError(operation, self.state.value)

    def add_fragment(self, fragment: FileFragment) -> None:
        """Add one unit's fragment; a fragment for the same file replaces the old one."""
        self._require("add_fragment", ResolverState.COLLECTING)
        self._fragments[fragment.file_path] = fragment

    def resolve(self) -> GraphStore:
        self._require("resolve", ResolverState.COLLECTING)
        self.state = ResolverState.RESOLVING

        with LogPerformance(logger, "resolve_graph", units=len(self._fragments)):
            merged = FragmentMerger(self.config).merge(self._fragments.values())
            self._merged = merged

            self._resolve_types(merged)
            self._resolve_relations(merged)
            self._validate(merged)
            self._check_containment(merged)
            self._check_inheritance(merged)

            store = GraphStore(
                nodes=merged.nodes.values(),
                traits=merged.traits.values(),
                types=merged.types.types(),
                relations=merged.relations,
                diagnostics=merged.diagnostics,
            )

        self.state = ResolverState.RESOLVED
        logger.info(
            "graph_resolved",
            units=len(merged.unit_files),
            failed_units=len(merged.failed_units),
            nodes=len(merged.nodes),
            traits=len(merged.traits),
            types=len(merged.types),
            relations=len(merged.relations),
            unresolved=sum(1 for r in merged.relations if r.unresolved),
            diagnostics=len(merged.diagnostics),
        )
        return store

    # ============================================================
    # Types
    # ============================================================

    def _resolve_types(self, merged: MergedGraph) -> None:
        """Re-fingerprint placeholder types and unify duplicates onto the smallest id."""
        canonical: dict[tuple, TypeId] = {}
        mapping: dict[TypeId, TypeId] = {}
        kept: dict[TypeId, TypeNode] = {}
        missing: set[TypeId] = set()

        # related types always carry lower ids than the types built from them
        for node in merged.types.types():
            related = tuple(mapping[t] for t in node.related_types)
            updated = dataclasses.replace(node, related_types=related)

            if node.kind == TypeKind.NAMED and node.resolution == TypeResolution.UNRESOLVED:
                segments, leading_colon = split_path(node.path or node.display)
                resolution = merged.symbols.resolve(
                    segments, node.scope or "", SymbolSpace.TYPE, final=True, leading_colon=leading_colon
                )
                if resolution.status == ResolutionStatus.LOCAL and resolution.entry is not None:
                    updated = dataclasses.replace(
                        updated,
                        resolution=TypeResolution.DECLARATION,
                        path=resolution.path,
                        scope=None,
                        declaration=resolution.entry.target,
                    )
                elif resolution.status == ResolutionStatus.EXTERNAL:
                    updated = dataclasses.replace(
                        updated, resolution=TypeResolution.EXTERNAL, path=resolution.path, scope=None
                    )

            updated = dataclasses.replace(updated, display=render_type(updated, [kept[t].display for t in related]))
            fingerprint = updated.fingerprint()
            target = canonical.setdefault(fingerprint, node.id)
            mapping[node.id] = target
            if target == node.id:
                kept[node.id] = updated
                if updated.resolution == TypeResolution.UNRESOLVED or any(t in missing for t in related):
                    missing.add(node.id)

        unified = len(mapping) - len(kept)
        if unified:
            logger.debug("types_unified", unified=unified)

        def remap_type(value):
            if isinstance(value, TypeId):
                return mapping[value]
            return value

        merged.types.replace_all(kept.values())
        merged.nodes = {nid: remap_ids(node, remap_type) for nid, node in merged.nodes.items()}
        merged.traits = {tid: remap_ids(node, remap_type) for tid, node in merged.traits.items()}
        merged.relations = [remap_ids(relation, remap_type) for relation in merged.relations]

        self._report_missing_types(merged, missing)

    def _report_missing_types(self, merged: MergedGraph, missing: set[TypeId]) -> None:
        reported: set[tuple] = set()
        for relation in merged.relations:
            if not isinstance(relation.target, TypeId) or relation.target not in missing:
                continue
            source = merged.nodes.get(relation.source) if isinstance(relation.source, NodeId) else None
            if source is None:
                continue
            type_node = merged.types.get(relation.target)
            key = (source.path, type_node.display)
            if key in reported:
                continue
            reported.add(key)
            merged.diagnostics.append(
                Diagnostic(
                    code=DiagnosticCode.UNRESOLVED_TYPE,
                    path=source.path,
                    message=f"Unresolved type in `{type_node.display}`",
                    file_path=source.file_path,
                    relation=relation,
                )
            )

    # ============================================================
    # Provisional relations
    # ============================================================

    def _lookup(self, merged: MergedGraph, placeholder: Unresolved) -> PathResolution:
        segments, leading_colon = split_path(placeholder.path)
        if placeholder.space == SymbolSpace.MACRO:
            return merged.symbols.resolve_macro(segments, placeholder.scope, final=True)
        return merged.symbols.resolve(
            segments, placeholder.scope, placeholder.space, final=True, leading_colon=leading_colon
        )

    def _resolve_relations(self, merged: MergedGraph) -> None:
        resolved: dict[tuple, Relation] = {}
        impl_traits: dict[NodeId, tuple[TraitId | None, str]] = {}
        super_traits: dict[TraitId, list[TraitId]] = {}
        children: dict[NodeId, list[NodeId]] = {}

        for relation in merged.relations:
            if not relation.is_provisional:
                resolved.setdefault(relation.key, relation)
                continue

            placeholder = relation.target
            resolution = self._lookup(merged, placeholder)

            if relation.kind == RelationKind.IMPLEMENTS_TRAIT and relation.via is not None and resolution.is_settled:
                target = resolution.entry.target if resolution.entry is not None else None
                impl_traits[relation.via] = (target if isinstance(target, TraitId) else None, resolution.path)

            if resolution.status == ResolutionStatus.EXTERNAL:
                continue
            if resolution.status == ResolutionStatus.LOCAL and resolution.entry is not None:
                candidate = dataclasses.replace(relation, target=resolution.entry.target)
                error = check(candidate)
                if error is not None:
                    self._reject(merged, candidate, str(error), placeholder.origin)
                    continue
                resolved.setdefault(candidate.key, candidate)
                if relation.kind == RelationKind.INHERITS and isinstance(candidate.target, TraitId):
                    super_traits.setdefault(relation.source, []).append(candidate.target)
                elif relation.kind == RelationKind.CONTAINS and isinstance(candidate.target, NodeId):
                    children.setdefault(relation.source, []).append(candidate.target)
                continue

            marked = dataclasses.replace(relation, unresolved=True)
            resolved.setdefault(marked.key, marked)
            merged.diagnostics.append(
                Diagnostic(
                    code=UNRESOLVED_CODES.get(relation.kind, DiagnosticCode.UNRESOLVED_TYPE),
                    path=placeholder.origin or self._path_of(merged, relation.source) or "",
                    message=f"Cannot resolve `{placeholder.path}` in {placeholder.scope}",
                    file_path=self._file_of(merged, relation.source),
                    relation=marked,
                )
            )

        merged.relations = list(resolved.values())
        self._patch_nodes(merged, impl_traits, super_traits, children)

    def _patch_nodes(self, merged, impl_traits, super_traits, children) -> None:
        for impl_id, (trait_id, trait_path) in impl_traits.items():
            impl = merged.nodes.get(impl_id)
            if isinstance(impl, ImplNode):
                merged.nodes[impl_id] = dataclasses.replace(
                    impl, trait_id=trait_id or impl.trait_id, trait_path=trait_path
                )

        for trait_id, supers in super_traits.items():
            trait = merged.traits[trait_id]
            merged.traits[trait_id] = dataclasses.replace(trait, super_traits=trait.super_traits + tuple(supers))

        for parent_id, child_ids in children.items():
            parent = merged.nodes[parent_id]
            merged.nodes[parent_id] = dataclasses.replace(parent, items=parent.items + tuple(child_ids))
            for child_id in child_ids:
                child = merged.nodes.get(child_id)
                if isinstance(child, ModuleNode):
                    merged.nodes[child_id] = dataclasses.replace(child, parent=parent_id)

    # ============================================================
    # Validation
    # ============================================================

    def _reject(self, merged: MergedGraph, relation: Relation, message: str, path: str = "") -> None:
        merged.diagnostics.append(
            Diagnostic(
                code=DiagnosticCode.SCHEMA_VIOLATION,
                path=path or self._path_of(merged, relation.source) or "",
                message=message,
                file_path=self._file_of(merged, relation.source),
                relation=relation,
            )
        )

    def _validate(self, merged: MergedGraph) -> None:
        def kind_of(node_id: NodeId) -> NodeKind | None:
            node = merged.nodes.get(node_id)
            return node.kind if node is not None else None

        admitted: list[Relation] = []
        for relation in merged.relations:
            error = check(relation, kind_of)
            if error is not None:
                self._reject(merged, relation, str(error))
                continue
            admitted.append(relation)
        merged.relations = admitted

    def _check_containment(self, merged: MergedGraph) -> None:
        edges = self._adjacency(merged, RelationKind.CONTAINS)
        for cycle in self._find_cycles(edges):
            paths = [self._path_of(merged, node_id) or str(node_id) for node_id in cycle]
            files = tuple(sorted({f for f in (self._file_of(merged, n) for n in cycle) if f}))
            raise ModuleCycleError(paths, files)

    def _check_inheritance(self, merged: MergedGraph) -> None:
        edges = self._adjacency(merged, RelationKind.INHERITS)
        dropped: set[tuple] = set()
        for cycle in self._find_cycles(edges):
            closing = (cycle[-1].key, cycle[0].key)
            dropped.add(closing)
            paths = [self._path_of(merged, trait_id) or str(trait_id) for trait_id in cycle]
            merged.diagnostics.append(
                Diagnostic(
                    code=DiagnosticCode.INHERITANCE_CYCLE,
                    path=paths[0],
                    message="Cyclic super-trait chain: " + " -> ".join(paths + paths[:1]),
                    file_path=self._file_of(merged, cycle[0]),
                )
            )
        if not dropped:
            return
        merged.relations = [
            r
            for r in merged.relations
            if not (r.kind == RelationKind.INHERITS and (r.source.key, r.target.key) in dropped)
        ]
        for trait_id, trait in list(merged.traits.items()):
            supers = tuple(s for s in trait.super_traits if (trait_id.key, s.key) not in dropped)
            if supers != trait.super_traits:
                merged.traits[trait_id] = dataclasses.replace(trait, super_traits=supers)

    @staticmethod
    def _adjacency(merged: MergedGraph, kind: RelationKind) -> dict:
        edges: dict = {}
        for relation in merged.relations:
            if relation.kind == kind and not relation.unresolved:
                edges.setdefault(relation.source.key, []).append(relation.target)
        return edges

    @staticmethod
    def _find_cycles(edges: dict) -> list[list]:
        """
        Depth-first search for cycles.

        Returns one cycle (as an ordered list of vertices) per back edge,
        visiting vertices in id order for deterministic output.
        """
        WHITE, GREY, BLACK = 0, 1, 2
        color: dict = {}
        cycles: list[list] = []

        for start_key in sorted(edges):
            if color.get(start_key, WHITE) != WHITE:
                continue
            start = id_from_key(start_key)
            stack = [(start, iter(sorted(edges.get(start_key, ()), key=lambda v: v.key)))]
            path = [start]
            color[start.key] = GREY
            while stack:
                vertex, children = stack[-1]
                child = next(children, None)
                if child is None:
                    stack.pop()
                    path.pop()
                    color[vertex.key] = BLACK
                    continue
                state = color.get(child.key, WHITE)
                if state == GREY:
                    keys = [v.key for v in path]
                    cycles.append(path[keys.index(child.key) :])
                elif state == WHITE:
                    color[child.key] = GREY
                    path.append(child)
                    stack.append((child, iter(sorted(edges.get(child.key, ()), key=lambda v: v.key))))
        return cycles

    # ============================================================
    # Helpers
    # ============================================================

    @staticmethod
    def _path_of(merged: MergedGraph, entity) -> str | None:
        if isinstance(entity, NodeId):
            node = merged.nodes.get(entity)
        elif isinstance(entity, TraitId):
            node = merged.traits.get(entity)
        else:
            return None
        return node.path if node is not None else None

    @staticmethod
    def _file_of(merged: MergedGraph, entity) -> str | None:
        if isinstance(entity, NodeId):
            node = merged.nodes.get(entity)
        elif isinstance(entity, TraitId):
            node = merged.traits.get(entity)
        else:
            return None
        return node.file_path if node is not None else None
