"""
Fragment Merge

The single writer of the global graph. Fragments are merged in sorted file
order so the final identifiers do not depend on worker scheduling:

1. check the fragment's symbols against the global table (a collision is
   structural and drops the whole unit before anything is written)
2. rewrite local node / trait ids to fresh global ids
3. re-intern local types into the global canonicalizer
4. copy nodes, relations, symbols, imports and diagnostics
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from dataclasses import dataclass, field

from codegraph_rs.builder.fragment import BlockScopeEvent, ExternCrateEvent, FileFragment
from codegraph_rs.builder.symbol_table import SymbolTable
from codegraph_rs.builder.type_canonicalizer import TypeCanonicalizer
from codegraph_rs.config import GraphBuildConfig
from codegraph_rs.diagnostics import Diagnostic, DiagnosticCode
from codegraph_rs.exceptions import PathCollisionError, StructuralError
from codegraph_rs.ir.ids import IdAllocator, NodeId, TraitId, _EntityId
from codegraph_rs.ir.models import DeclarationNode, TraitNode, remap_ids
from codegraph_rs.ir.relations import Relation
from codegraph_rs.observability import get_logger

logger = get_logger(__name__)


class IdRemapper:
    """Local -> global id table for one fragment."""

    def __init__(self, allocator: IdAllocator):
        self._allocator = allocator
        self._mapping: dict[tuple[str, int], _EntityId] = {}

    def allocate(self, local: NodeId | TraitId) -> NodeId | TraitId:
        key = local.key
        if key not in self._mapping:
            self._mapping[key] = self._allocator.next(local.namespace)
        return self._mapping[key]

    def bind(self, local: _EntityId, target: _EntityId) -> None:
        self._mapping[local.key] = target

    def __call__(self, local: _EntityId) -> _EntityId:
        try:
            return self._mapping[local.key]
        except KeyError:
            raise KeyError(f"Id {local} was never issued in this fragment") from None

    def __len__(self) -> int:
        return len(self._mapping)


@dataclass
class MergedGraph:
    """Mutable merge state owned by the resolver until the graph is frozen."""

    allocator: IdAllocator
    symbols: SymbolTable
    types: TypeCanonicalizer
    nodes: dict[NodeId, DeclarationNode] = field(default_factory=dict)
    traits: dict[TraitId, TraitNode] = field(default_factory=dict)
    relations: list[Relation] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    unit_files: list[str] = field(default_factory=list)
    failed_units: dict[str, StructuralError] = field(default_factory=dict)


class FragmentMerger:
    """
    Merges per-file fragments into one MergedGraph.

    Usage:
        merged = FragmentMerger(config).merge(fragments)
    """

    def __init__(self, config: GraphBuildConfig | None = None):
        self.config = config or GraphBuildConfig()

    def merge(self, fragments: Iterable[FileFragment]) -> MergedGraph:
        allocator = IdAllocator(self.config.max_id, owner="<merge>")
        symbols = SymbolTable(self.config.crate_name, self.config.resolve_prelude)
        merged = MergedGraph(
            allocator=allocator,
            symbols=symbols,
            types=TypeCanonicalizer(allocator, symbols, self.config.max_type_depth),
        )
        for fragment in sorted(fragments, key=lambda f: f.file_path):
            try:
                self._merge_one(merged, fragment)
            except StructuralError as e:
                merged.failed_units[fragment.file_path] = e
                merged.diagnostics.append(
                    Diagnostic(
                        code=DiagnosticCode.UNIT_FAILED,
                        path=fragment.module_path,
                        message=str(e),
                        file_path=fragment.file_path,
                    )
                )
                logger.warning("unit_failed", file_path=fragment.file_path, stage="merge", error=str(e))
                continue
            merged.unit_files.append(fragment.file_path)

        logger.debug(
            "fragments_merged",
            units=len(merged.unit_files),
            failed=len(merged.failed_units),
            nodes=len(merged.nodes),
            types=len(merged.types),
        )
        return merged

    def _check_symbols(self, merged: MergedGraph, fragment: FileFragment) -> set[tuple]:
        """
        Find symbols of the fragment that cannot be added.

        Returns:
            Keys of cfg-gated duplicates to skip

        Raises:
            PathCollisionError: A symbol collides with one from an earlier unit
        """
        skipped: set[tuple] = set()
        for entry in fragment.symbols:
            existing = merged.symbols.lookup(entry.path, entry.space)
            if existing is None:
                continue
            if existing.cfg_gated and entry.cfg_gated:
                skipped.add((entry.space, entry.path))
                continue
            raise PathCollisionError(entry.path, existing.file_path, fragment.file_path)
        return skipped

    def _merge_one(self, merged: MergedGraph, fragment: FileFragment) -> None:
        skipped = self._check_symbols(merged, fragment)

        remap = IdRemapper(merged.allocator)
        for node in sorted(fragment.nodes, key=lambda n: n.id.key):
            remap.allocate(node.id)

        for type_node in sorted(fragment.types, key=lambda t: t.id):
            own_key = type_node.id.key
            # related types have lower ids and are already bound
            rewritten = remap_ids(type_node, lambda local: local if local.key == own_key else remap(local))
            remap.bind(type_node.id, merged.types.intern_node(rewritten))

        for node in fragment.nodes:
            rewritten = remap_ids(node, remap)
            if isinstance(rewritten, TraitNode):
                merged.traits[rewritten.id] = rewritten
            else:
                merged.nodes[rewritten.id] = rewritten

        merged.relations.extend(remap_ids(relation, remap) for relation in fragment.relations)

        for entry in fragment.symbols:
            if (entry.space, entry.path) in skipped:
                merged.diagnostics.append(
                    Diagnostic(
                        code=DiagnosticCode.CFG_DUPLICATE,
                        path=entry.path,
                        message="cfg-gated duplicate; first declaration kept",
                        file_path=fragment.file_path,
                    )
                )
                continue
            merged.symbols.declare(dataclasses.replace(entry, target=remap(entry.target)))

        for binding in fragment.imports:
            merged.symbols.add_import(dataclasses.replace(binding, import_id=remap(binding.import_id)))
        for event in fragment.events:
            if isinstance(event, BlockScopeEvent):
                merged.symbols.add_block_scope(event.scope, event.parent)
            elif isinstance(event, ExternCrateEvent):
                merged.symbols.add_extern_crate(event.name, event.crate)

        for diagnostic in fragment.diagnostics:
            if diagnostic.relation is not None:
                diagnostic = dataclasses.replace(diagnostic, relation=remap_ids(diagnostic.relation, remap))
            merged.diagnostics.append(diagnostic)
