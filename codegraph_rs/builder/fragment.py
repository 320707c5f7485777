"""
File fragments.

A traversal produces an immutable, ordered stream of events for one
compilation unit. The merge stage is the only consumer and the only writer
of the global graph.
"""

from __future__ import annotations

from dataclasses import dataclass

from codegraph_rs.builder.symbol_table import ImportBinding, SymbolEntry
from codegraph_rs.diagnostics import Diagnostic
from codegraph_rs.ir.models import DeclarationNode, TraitNode, TypeNode
from codegraph_rs.ir.relations import Relation


@dataclass(frozen=True)
class NodeEvent:
    node: DeclarationNode | TraitNode


@dataclass(frozen=True)
class TypeEvent:
    type_node: TypeNode


@dataclass(frozen=True)
class RelationEvent:
    relation: Relation


@dataclass(frozen=True)
class SymbolEvent:
    entry: SymbolEntry


@dataclass(frozen=True)
class ImportEvent:
    binding: ImportBinding


@dataclass(frozen=True)
class BlockScopeEvent:
    scope: str
    parent: str


@dataclass(frozen=True)
class ExternCrateEvent:
    name: str
    crate: str


@dataclass(frozen=True)
class DiagnosticEvent:
    diagnostic: Diagnostic


FragmentEvent = (
    NodeEvent
    | TypeEvent
    | RelationEvent
    | SymbolEvent
    | ImportEvent
    | BlockScopeEvent
    | ExternCrateEvent
    | DiagnosticEvent
)


@dataclass(frozen=True)
class FileFragment:
    """
    Output of traversing one compilation unit.

    Ids inside a fragment are local to it; the merge stage rewrites them.
    """

    file_path: str
    module_path: str
    events: tuple[FragmentEvent, ...]

    def _of(self, event_type: type) -> list:
        return [event for event in self.events if isinstance(event, event_type)]

    @property
    def nodes(self) -> list[DeclarationNode | TraitNode]:
        return [event.node for event in self._of(NodeEvent)]

    @property
    def types(self) -> list[TypeNode]:
        return [event.type_node for event in self._of(TypeEvent)]

    @property
    def relations(self) -> list[Relation]:
        return [event.relation for event in self._of(RelationEvent)]

    @property
    def symbols(self) -> list[SymbolEntry]:
        return [event.entry for event in self._of(SymbolEvent)]

    @property
    def imports(self) -> list[ImportBinding]:
        return [event.binding for event in self._of(ImportEvent)]

    @property
    def diagnostics(self) -> list[Diagnostic]:
        return [event.diagnostic for event in self._of(DiagnosticEvent)]

    @property
    def provisional_relations(self) -> list[Relation]:
        return [relation for relation in self.relations if relation.is_provisional]

    def __len__(self) -> int:
        return len(self.events)
