"""
Tests for the relation schema and validator
"""

import itertools

import pytest

from codegraph_rs.exceptions import RelationError
from codegraph_rs.ir.ids import ID_CLASSES, Namespace, NodeId, TraitId, TypeId
from codegraph_rs.ir.models import NodeKind
from codegraph_rs.ir.relations import (
    RELATION_SCHEMA,
    Relation,
    RelationKind,
    SymbolSpace,
    Unresolved,
    check,
    is_allowed,
    validate,
)


def _endpoint(namespace: Namespace, value: int = 1):
    return ID_CLASSES[namespace](value)


class TestSchemaClosure:
    """Every (kind, source variant, target variant) triple is accepted iff it is in the schema"""

    @pytest.mark.parametrize("kind", list(RelationKind))
    def test_schema_closure(self, kind):
        rule = RELATION_SCHEMA[kind]
        for source_ns, target_ns in itertools.product(Namespace, Namespace):
            relation = Relation(kind=kind, source=_endpoint(source_ns), target=_endpoint(target_ns, 2))
            allowed = source_ns in rule.sources and target_ns in rule.targets

            assert is_allowed(kind, source_ns, target_ns) == allowed
            if allowed:
                validate(relation)
            else:
                with pytest.raises(RelationError):
                    validate(relation)

    def test_every_kind_has_a_rule(self):
        assert set(RELATION_SCHEMA) == set(RelationKind)

    def test_acyclic_kinds(self):
        acyclic = {kind for kind, rule in RELATION_SCHEMA.items() if rule.acyclic}
        assert acyclic == {RelationKind.CONTAINS, RelationKind.INHERITS}


class TestNodeKindChecks:
    """Checks that need node kinds"""

    def test_struct_field_from_function_rejected(self):
        relation = Relation(RelationKind.STRUCT_FIELD, NodeId(1), TypeId(0))
        kinds = {NodeId(1): NodeKind.FUNCTION}

        error = check(relation, kinds)

        assert error is not None
        assert error.rule == "source_kind"

    def test_dangling_node_rejected(self):
        relation = Relation(RelationKind.CONTAINS, NodeId(0), NodeId(9))
        error = check(relation, {NodeId(0): NodeKind.MODULE})

        assert error is not None
        assert error.rule == "dangling_target"

    def test_dangling_via_rejected(self):
        relation = Relation(RelationKind.STRUCT_FIELD, NodeId(0), TypeId(0), via=NodeId(5))
        error = check(relation, {NodeId(0): NodeKind.STRUCT})

        assert error is not None
        assert error.rule == "dangling_via"

    def test_callable_lookup(self):
        relation = Relation(RelationKind.MACRO_EXPANSION, NodeId(0), NodeId(1))
        kinds = {NodeId(0): NodeKind.MACRO, NodeId(1): NodeKind.MACRO_RULE}

        assert check(relation, kinds.get) is None

    def test_contains_accepts_trait_target(self):
        relation = Relation(RelationKind.CONTAINS, NodeId(0), TraitId(0))
        assert check(relation, {NodeId(0): NodeKind.MODULE}) is None


class TestProvisionalRelations:
    """Relations whose target is still a placeholder"""

    def test_placeholder_checked_against_expected_namespace(self):
        placeholder = Unresolved("Shape", "crate", SymbolSpace.TYPE, Namespace.TRAIT)

        assert check(Relation(RelationKind.IMPLEMENTS_TRAIT, TypeId(0), placeholder)) is None
        assert check(Relation(RelationKind.STRUCT_FIELD, NodeId(0), placeholder)) is not None

    def test_unresolved_marker_requires_placeholder(self):
        relation = Relation(RelationKind.USES, NodeId(0), NodeId(1), unresolved=True)

        error = check(relation)

        assert error is not None
        assert error.rule == "unresolved_marker"


class TestRelationIdentity:
    """Equality and hashing"""

    def test_mixed_namespace_relations_compare(self):
        a = Relation(RelationKind.IMPLEMENTS_TRAIT, TypeId(1), TraitId(1))
        b = Relation(RelationKind.USES, NodeId(1), NodeId(1))

        assert a != b
        assert len({a, b}) == 2

    def test_via_distinguishes_edges(self):
        first = Relation(RelationKind.STRUCT_FIELD, NodeId(0), TypeId(3), via=NodeId(1))
        second = Relation(RelationKind.STRUCT_FIELD, NodeId(0), TypeId(3), via=NodeId(2))

        assert first != second
        assert first == Relation(RelationKind.STRUCT_FIELD, NodeId(0), TypeId(3), via=NodeId(1))

    def test_error_carries_context(self):
        relation = Relation(RelationKind.INHERITS, NodeId(0), TraitId(0))
        with pytest.raises(RelationError) as exc_info:
            validate(relation)

        assert exc_info.value.relation is relation
        assert "rule=source_variant" in str(exc_info.value)
