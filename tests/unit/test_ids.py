"""
Tests for identifier namespaces and the allocator
"""

import pickle

import pytest

from codegraph_rs.exceptions import NamespaceExhaustedError, StructuralError
from codegraph_rs.ir.ids import IdAllocator, Namespace, NodeId, TraitId, TypeId, id_from_key


class TestEntityIds:
    """Typed ids"""

    def test_same_namespace_compares_by_value(self):
        assert NodeId(3) == NodeId(3)
        assert NodeId(2) < NodeId(3)
        assert sorted([TypeId(5), TypeId(1), TypeId(3)]) == [TypeId(1), TypeId(3), TypeId(5)]

    def test_cross_namespace_equality_raises(self):
        """Test: NodeId(1) == TypeId(1) is a programming error"""
        with pytest.raises(TypeError):
            NodeId(1) == TypeId(1)  # noqa: B015

        with pytest.raises(TypeError):
            NodeId(1) < TraitId(2)  # noqa: B015

    def test_cross_namespace_keys_are_comparable(self):
        assert NodeId(1).key != TypeId(1).key
        assert sorted([TraitId(0).key, NodeId(4).key]) == [("node", 4), ("trait", 0)]

    def test_hash_differs_per_namespace(self):
        assert hash(NodeId(7)) != hash(TypeId(7))
        assert {NodeId(1), NodeId(1), NodeId(2)} == {NodeId(1), NodeId(2)}

    def test_ids_are_immutable(self):
        node_id = NodeId(1)
        with pytest.raises(AttributeError):
            node_id.value = 2

    def test_rejects_negative_and_bool(self):
        with pytest.raises(ValueError):
            NodeId(-1)
        with pytest.raises(ValueError):
            TypeId(True)

    def test_id_from_key(self):
        assert id_from_key(("trait", 4)) == TraitId(4)
        assert id_from_key(["type", 9]) == TypeId(9)

    def test_pickle(self):
        assert pickle.loads(pickle.dumps(TypeId(12))) == TypeId(12)

    def test_str(self):
        assert str(NodeId(5)) == "node:5"
        assert repr(TraitId(2)) == "TraitId(2)"


class TestIdAllocator:
    """Per-run counters"""

    def test_independent_counters(self):
        allocator = IdAllocator()

        assert allocator.next_node() == NodeId(0)
        assert allocator.next_node() == NodeId(1)
        assert allocator.next_type() == TypeId(0)
        assert allocator.next_trait() == TraitId(0)
        assert allocator.issued(Namespace.NODE) == 2
        assert allocator.issued(Namespace.TYPE) == 1

    def test_never_reuses(self):
        allocator = IdAllocator()
        issued = [allocator.next_node() for _ in range(100)]
        assert len(set(issued)) == 100

    def test_exhaustion_raises(self):
        """Test: running past max_id raises instead of wrapping"""
        allocator = IdAllocator(max_id=2, owner="src/lib.rs")
        for _ in range(3):
            allocator.next_type()

        with pytest.raises(NamespaceExhaustedError) as exc_info:
            allocator.next_type()

        assert exc_info.value.namespace == "type"
        assert exc_info.value.file_paths == ("src/lib.rs",)
        assert isinstance(exc_info.value, StructuralError)

    def test_exhaustion_is_per_namespace(self):
        allocator = IdAllocator(max_id=0)
        allocator.next_node()
        with pytest.raises(NamespaceExhaustedError):
            allocator.next_node()

        assert allocator.next_trait() == TraitId(0)
