"""
Scope Stack

Tracks the current module path, the enclosing declarations, the generic
parameters in scope and the binding of `Self` during traversal.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from codegraph_rs.ir.ids import NodeId, TraitId, TypeId

MODULE_LIKE = ("module", "block")


@dataclass
class ScopeFrame:
    """One lexical scope."""

    kind: str
    name: str
    fqn: str
    node_id: NodeId | TraitId | None = None
    generics: dict[str, TypeId] = field(default_factory=dict)
    self_type: TypeId | None = None
    # interned on first use of `Self` inside a struct, union or enum
    self_binding: Callable[[], TypeId] | None = None

class ScopeStack:
    """
    Stack of scopes rooted at the file's module.

    The root module frame is never popped.
    """

    def __init__(self, module_fqn: str, module_id: NodeId | None = None):
        name = module_fqn.rsplit("::", 1)[-1]
        self._stack: list[ScopeFrame] = [ScopeFrame(kind="module", name=name, fqn=module_fqn, node_id=module_id)]

    @property
    def current(self) -> ScopeFrame:
        return self._stack[-1]

    @property
    def module(self) -> ScopeFrame:
        """Innermost enclosing module frame."""
        for frame in reversed(self._stack):
            if frame.kind in MODULE_LIKE:
                return frame
        return self._stack[0]

    @property
    def depth(self) -> int:
        return len(self._stack)

    def push(
        self,
        kind: str,
        name: str,
        fqn: str,
        node_id: NodeId | TraitId | None = None,
        self_type: TypeId | None = None,
    ) -> ScopeFrame:
        frame = ScopeFrame(kind=kind, name=name, fqn=fqn, node_id=node_id, self_type=self_type)
        self._stack.append(frame)
        return frame

    def pop(self) -> ScopeFrame | None:
        if len(self._stack) == 1:
            return None
        return self._stack.pop()

    def current_fqn(self) -> str:
        return self.current.fqn

    def module_fqn(self) -> str:
        return self.module.fqn

    def child_fqn(self, name: str) -> str:
        return f"{self.current.fqn}::{name}"

    def lookup_generic(self, name: str) -> TypeId | None:
        """Generic parameter type visible under name, innermost scope first."""
        for frame in reversed(self._stack):
            if name in frame.generics:
                return frame.generics[name]
            if frame.kind in MODULE_LIKE:
                break
        return None

    def generic_owner(self, name: str) -> ScopeFrame | None:
        for frame in reversed(self._stack):
            if name in frame.generics:
                return frame
            if frame.kind in MODULE_LIKE:
                break
        return None

    def self_type(self) -> TypeId | None:
        """Type bound to `Self` in the innermost impl, trait or type declaration."""
        for frame in reversed(self._stack):
            if frame.self_type is None and frame.self_binding is not None:
                frame.self_type = frame.self_binding()
            if frame.self_type is not None:
                return frame.self_type
            if frame.kind in MODULE_LIKE:
                break
        return None

    def enclosing(self, *kinds: str) -> ScopeFrame | None:
        for frame in reversed(self._stack):
            if frame.kind in kinds:
                return frame
        return None
