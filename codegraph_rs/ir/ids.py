"""
Identifier namespaces.

Nodes, types and traits are numbered in three disjoint spaces. Each space
has its own id class, so a NodeId and a TypeId never compare equal: mixing
them is rejected by type checkers (non-overlapping nominal types) and raises
TypeError at runtime.
"""

from __future__ import annotations

from enum import Enum
from typing import ClassVar, overload, Literal

from codegraph_rs.exceptions import NamespaceExhaustedError


class Namespace(str, Enum):
    """Identifier namespace"""

    NODE = "node"
    TYPE = "type"
    TRAIT = "trait"


class _EntityId:
    """Immutable integer identifier bound to one namespace."""

    __slots__ = ("value",)

    namespace: ClassVar[Namespace]

    def __init__(self, value: int):
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValueError(f"{type(self).__name__} requires a non-negative int, got {value!r}")
        object.__setattr__(self, "value", value)

    def __setattr__(self, name, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    def _check(self, other: object) -> bool:
        if not isinstance(other, _EntityId):
            return False
        if type(other) is not type(self):
            raise TypeError(f"Cannot compare {type(self).__name__} with {type(other).__name__}")
        return True

    def __eq__(self, other: object) -> bool:
        if not self._check(other):
            return NotImplemented
        return self.value == other.value  # type: ignore[attr-defined]

    def __lt__(self, other: object) -> bool:
        if not self._check(other):
            return NotImplemented
        return self.value < other.value  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((self.namespace.value, self.value))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.value})"

    def __str__(self) -> str:
        return f"{self.namespace.value}:{self.value}"

    def __reduce__(self):
        return (type(self), (self.value,))

    @property
    def key(self) -> tuple[str, int]:
        """Namespace-qualified key, safe to compare across namespaces."""
        return (self.namespace.value, self.value)


class NodeId(_EntityId):
    """Identifier of a declaration node."""

    __slots__ = ()
    namespace = Namespace.NODE


class TypeId(_EntityId):
    """Identifier of a canonical type."""

    __slots__ = ()
    namespace = Namespace.TYPE


class TraitId(_EntityId):
    """Identifier of a trait declaration."""

    __slots__ = ()
    namespace = Namespace.TRAIT


EntityId = NodeId | TypeId | TraitId

ID_CLASSES: dict[Namespace, type[_EntityId]] = {
    Namespace.NODE: NodeId,
    Namespace.TYPE: TypeId,
    Namespace.TRAIT: TraitId,
}


def id_from_key(key: tuple[str, int] | list) -> EntityId:
    """Rebuild an id from its (namespace, value) key."""
    namespace, value = key
    return ID_CLASSES[Namespace(namespace)](int(value))  # type: ignore[return-value]


class IdAllocator:
    """
    Issues identifiers for one construction run.

    Each namespace has its own counter. Values are never reused; running past
    max_id raises NamespaceExhaustedError instead of wrapping.
    """

    def __init__(self, max_id: int = 2**32 - 1, owner: str | None = None):
        self._max_id = max_id
        self._owner = owner
        self._counters: dict[Namespace, int] = {ns: 0 for ns in Namespace}

    @overload
    def next(self, namespace: Literal[Namespace.NODE]) -> NodeId: ...

    @overload
    def next(self, namespace: Literal[Namespace.TYPE]) -> TypeId: ...

    @overload
    def next(self, namespace: Literal[Namespace.TRAIT]) -> TraitId: ...

    def next(self, namespace: Namespace) -> EntityId:
        value = self._counters[namespace]
        if value > self._max_id:
            raise NamespaceExhaustedError(namespace.value, self._max_id, self._owner)
        self._counters[namespace] = value + 1
        return ID_CLASSES[namespace](value)  # type: ignore[return-value]

    def next_node(self) -> NodeId:
        return self.next(Namespace.NODE)

    def next_type(self) -> TypeId:
        return self.next(Namespace.TYPE)

    def next_trait(self) -> TraitId:
        return self.next(Namespace.TRAIT)

    def issued(self, namespace: Namespace) -> int:
        """Number of ids issued so far in a namespace."""
        return self._counters[namespace]
