"""
Relation Schema & Validator

The closed set of relation kinds and the endpoint contract of each kind.
Every relation passes through validate() before it is admitted to a graph.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum

from codegraph_rs.exceptions import RelationError
from codegraph_rs.ir.ids import EntityId, Namespace, NodeId, TraitId, TypeId
from codegraph_rs.ir.models import NodeKind


class RelationKind(str, Enum):
    """Relation kinds"""

    CONTAINS = "contains"
    DECLARES = "declares"
    STRUCT_FIELD = "struct_field"
    ENUM_VARIANT_FIELD = "enum_variant_field"
    FUNCTION_PARAMETER = "function_parameter"
    FUNCTION_RETURN = "function_return"
    IMPLEMENTS_TRAIT = "implements_trait"
    IMPLEMENTS_FOR = "implements_for"
    INHERITS = "inherits"
    USES = "uses"
    VALUE_TYPE = "value_type"
    ALIAS_OF = "alias_of"
    GENERIC_PARAMETER = "generic_parameter"
    MACRO_USE = "macro_use"
    MACRO_EXPANSION = "macro_expansion"


class SymbolSpace(str, Enum):
    """Rust namespaces a path can be looked up in"""

    TYPE = "type"
    VALUE = "value"
    MACRO = "macro"


@dataclass(frozen=True)
class Unresolved:
    """
    Placeholder target of a provisional relation.

    path is the path as written, scope the module it was written in.
    expected is the endpoint namespace the target must resolve to.
    origin is the qualified path of the declaration holding the reference.
    """

    path: str
    scope: str
    space: SymbolSpace | None
    expected: Namespace
    origin: str = ""

    @property
    def key(self) -> tuple:
        return ("unresolved", self.scope, self.path, self.space.value if self.space else None)

    def __str__(self) -> str:
        return f"?{self.path}"


Endpoint = NodeId | TypeId | TraitId
Target = NodeId | TypeId | TraitId | Unresolved


@dataclass(frozen=True, eq=False)
class Relation:
    """
    Directed, kind-tagged edge.

    Equality and hashing go through namespace-qualified keys so relations
    with endpoints of different namespaces compare without raising.
    `via` names the declaration the edge was derived from (the field of a
    StructField edge, the parameter of a FunctionParameter edge, the impl
    of an ImplementsTrait edge), so two fields of the same type stay two
    edges. `unresolved` marks a relation whose target stayed a placeholder
    after the resolve stage.
    """

    kind: RelationKind
    source: NodeId | TypeId | TraitId
    target: NodeId | TypeId | TraitId | Unresolved
    via: NodeId | None = None
    unresolved: bool = False

    @property
    def key(self) -> tuple:
        via = self.via.key if self.via is not None else None
        return (self.kind.value, self.source.key, self.target.key, via)

    @property
    def is_provisional(self) -> bool:
        return isinstance(self.target, Unresolved)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Relation):
            return NotImplemented
        return self.key == other.key and self.unresolved == other.unresolved

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        marker = " (unresolved)" if self.unresolved else ""
        return f"Relation({self.kind.value}: {self.source} -> {self.target}{marker})"


# ============================================================
# Schema
# ============================================================

NODE = Namespace.NODE
TYPE = Namespace.TYPE
TRAIT = Namespace.TRAIT

ITEM_KINDS = frozenset(
    {
        NodeKind.MODULE,
        NodeKind.FUNCTION,
        NodeKind.STRUCT,
        NodeKind.UNION,
        NodeKind.ENUM,
        NodeKind.IMPL,
        NodeKind.TYPE_ALIAS,
        NodeKind.VALUE,
        NodeKind.MACRO,
        NodeKind.IMPORT,
    }
)

GENERIC_OWNER_KINDS = frozenset(
    {
        NodeKind.FUNCTION,
        NodeKind.STRUCT,
        NodeKind.UNION,
        NodeKind.ENUM,
        NodeKind.IMPL,
        NodeKind.TYPE_ALIAS,
    }
)


@dataclass(frozen=True)
class EndpointRule:
    """Permitted endpoint shape of one relation kind."""

    sources: frozenset[Namespace]
    targets: frozenset[Namespace]
    source_kinds: frozenset[NodeKind] | None = None
    target_kinds: frozenset[NodeKind] | None = None
    acyclic: bool = False


def _rule(sources, targets, source_kinds=None, target_kinds=None, acyclic=False) -> EndpointRule:
    return EndpointRule(
        sources=frozenset(sources),
        targets=frozenset(targets),
        source_kinds=frozenset(source_kinds) if source_kinds is not None else None,
        target_kinds=frozenset(target_kinds) if target_kinds is not None else None,
        acyclic=acyclic,
    )


RELATION_SCHEMA: Mapping[RelationKind, EndpointRule] = {
    # a function contains the modules declared in its body
    RelationKind.CONTAINS: _rule({NODE}, {NODE, TRAIT}, {NodeKind.MODULE, NodeKind.FUNCTION}, ITEM_KINDS, acyclic=True),
    RelationKind.DECLARES: _rule(
        {NODE, TRAIT},
        {NODE},
        GENERIC_OWNER_KINDS | {NodeKind.VARIANT},
        set(NodeKind) - {NodeKind.MODULE},
    ),
    RelationKind.STRUCT_FIELD: _rule({NODE}, {TYPE}, {NodeKind.STRUCT, NodeKind.UNION}),
    RelationKind.ENUM_VARIANT_FIELD: _rule({NODE}, {TYPE}, {NodeKind.VARIANT}),
    RelationKind.FUNCTION_PARAMETER: _rule({NODE}, {TYPE}, {NodeKind.FUNCTION}),
    RelationKind.FUNCTION_RETURN: _rule({NODE}, {TYPE}, {NodeKind.FUNCTION}),
    RelationKind.IMPLEMENTS_TRAIT: _rule({TYPE}, {TRAIT}),
    RelationKind.IMPLEMENTS_FOR: _rule({NODE}, {TYPE}, {NodeKind.IMPL}),
    RelationKind.INHERITS: _rule({TRAIT}, {TRAIT}, acyclic=True),
    RelationKind.USES: _rule({NODE}, {NODE, TYPE, TRAIT}, {NodeKind.IMPORT}),
    RelationKind.VALUE_TYPE: _rule({NODE}, {TYPE}, {NodeKind.VALUE}),
    RelationKind.ALIAS_OF: _rule({NODE}, {TYPE}, {NodeKind.TYPE_ALIAS}),
    RelationKind.GENERIC_PARAMETER: _rule({NODE, TRAIT}, {TYPE}, GENERIC_OWNER_KINDS),
    RelationKind.MACRO_USE: _rule({NODE}, {NODE}, target_kinds={NodeKind.MACRO}),
    RelationKind.MACRO_EXPANSION: _rule({NODE}, {NODE}, {NodeKind.MACRO}, {NodeKind.MACRO_RULE}),
}

NodeKindLookup = Callable[[NodeId], NodeKind | None] | Mapping[NodeId, NodeKind]


def endpoint_namespace(endpoint: EntityId | Unresolved) -> Namespace:
    """Namespace of an endpoint; placeholders report the namespace they must resolve to."""
    if isinstance(endpoint, Unresolved):
        return endpoint.expected
    return endpoint.namespace


def is_allowed(kind: RelationKind, source: Namespace, target: Namespace) -> bool:
    """True when (kind, source variant, target variant) is in the schema."""
    rule = RELATION_SCHEMA[kind]
    return source in rule.sources and target in rule.targets


def check(relation: Relation, node_kinds: NodeKindLookup | None = None) -> RelationError | None:
    """
    Check a relation against its kind's endpoint rule.

    Args:
        relation: Relation to check (provisional relations are checked
            against the namespace their placeholder must resolve to)
        node_kinds: Optional NodeId -> NodeKind lookup; when given, node
            endpoints must exist and have a permitted node kind

    Returns:
        None when valid, otherwise the RelationError describing the violation
    """
    rule = RELATION_SCHEMA.get(relation.kind)
    if rule is None:
        return RelationError("Unknown relation kind", relation, "kind")

    source_ns = endpoint_namespace(relation.source)
    target_ns = endpoint_namespace(relation.target)
    if source_ns not in rule.sources:
        return RelationError(
            f"{relation.kind.value} cannot start at a {source_ns.value} endpoint", relation, "source_variant"
        )
    if target_ns not in rule.targets:
        return RelationError(
            f"{relation.kind.value} cannot end at a {target_ns.value} endpoint", relation, "target_variant"
        )
    if relation.unresolved and not relation.is_provisional:
        return RelationError("Resolved target carries an unresolved marker", relation, "unresolved_marker")

    if node_kinds is None:
        return None

    lookup = node_kinds.get if isinstance(node_kinds, Mapping) else node_kinds
    for role, endpoint, allowed in (
        ("source", relation.source, rule.source_kinds),
        ("target", relation.target, rule.target_kinds),
    ):
        if not isinstance(endpoint, NodeId):
            continue
        kind = lookup(endpoint)
        if kind is None:
            return RelationError(f"Dangling {role} node {endpoint}", relation, f"dangling_{role}")
        if allowed is not None and kind not in allowed:
            return RelationError(
                f"{relation.kind.value} {role} cannot be a {kind.value} node", relation, f"{role}_kind"
            )
    if relation.via is not None and lookup(relation.via) is None:
        return RelationError(f"Dangling via node {relation.via}", relation, "dangling_via")
    return None


def validate(relation: Relation, node_kinds: NodeKindLookup | None = None) -> None:
    """
    Validate a relation.

    Raises:
        RelationError: relation is outside its kind's schema
    """
    error = check(relation, node_kinds)
    if error is not None:
        raise error
