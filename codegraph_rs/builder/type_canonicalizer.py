"""
Type Canonicalizer

Maps syntactic type expressions to canonical TypeIds.

Types are memoized by structural fingerprint: the resolved identity of a
named type (qualified declaration path, external path, generic owner) plus
the ordered ids of its argument types. Spelling never enters the key, so
`Vec<Foo>`, `std::vec::Vec<crate::a::Foo>` and `Vec<a::Foo>` written in the
crate root all share one id once their paths resolve to the same
declarations. Generic argument order is significant.

Paths that cannot be resolved yet are interned as UNRESOLVED placeholders
(keyed by module + written path) and re-fingerprinted by the resolver.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass

from codegraph_rs.builder.scope_stack import ScopeStack
from codegraph_rs.builder.symbol_table import ResolutionStatus, SymbolTable
from codegraph_rs.diagnostics import Diagnostic, DiagnosticCode
from codegraph_rs.ir.ids import IdAllocator, NodeId, TraitId, TypeId
from codegraph_rs.ir.models import TypeKind, TypeNode, TypeResolution
from codegraph_rs.ir.relations import SymbolSpace
from codegraph_rs.observability import get_logger
from codegraph_rs.syntax.models import (
    ArrayType,
    FnPointerType,
    ImplTraitType,
    InferredType,
    MacroType,
    NeverType,
    PathType,
    PointerType,
    ReferenceType,
    SliceType,
    TraitObjectType,
    TupleType,
    TypeExpr,
    UnsupportedType,
)

logger = get_logger(__name__)

PRIMITIVES = frozenset(
    {
        "bool",
        "char",
        "str",
        "i8",
        "i16",
        "i32",
        "i64",
        "i128",
        "isize",
        "u8",
        "u16",
        "u32",
        "u64",
        "u128",
        "usize",
        "f32",
        "f64",
    }
)

# fingerprint ignores the id, so drafts share one placeholder id
_DRAFT_ID = TypeId(0)


@dataclass(frozen=True)
class _NamedIdentity:
    resolution: TypeResolution
    path: str
    scope: str | None = None
    declaration: NodeId | TraitId | None = None
    display: str | None = None


def render_named(base: str, arg_displays: list[str], binding_names: tuple[str, ...]) -> str:
    """Display form of a named type: `base<A, B, Item = C>`."""
    if not arg_displays:
        return base
    plain = len(arg_displays) - len(binding_names)
    parts = arg_displays[:plain] + [f"{name} = {disp}" for name, disp in zip(binding_names, arg_displays[plain:])]
    return f"{base}<{', '.join(parts)}>"


def render_type(node: TypeNode, related: list[str]) -> str:
    """
    Display form of a type given the displays of its related types.

    Generic parameters, primitives and leaf kinds keep their own display.
    """
    kind = node.kind
    if kind == TypeKind.NAMED:
        if node.resolution in (TypeResolution.GENERIC, TypeResolution.PRIMITIVE):
            return node.display
        return render_named(node.path or node.display, related, node.binding_names)
    if kind == TypeKind.REFERENCE:
        return ("&mut " if node.is_mutable else "&") + related[0]
    if kind == TypeKind.RAW_POINTER:
        return ("*mut " if node.is_mutable else "*const ") + related[0]
    if kind == TypeKind.SLICE:
        return f"[{related[0]}]"
    if kind == TypeKind.ARRAY:
        return f"[{related[0]}; {node.length}]"
    if kind == TypeKind.TUPLE:
        inner = ", ".join(related)
        return f"({inner},)" if len(related) == 1 else f"({inner})"
    if kind == TypeKind.FUNCTION:
        params = related[:-1] if node.has_output else related
        prefix = ("unsafe " if node.is_unsafe else "") + (f'extern "{node.abi}" ' if node.abi else "")
        display = f"{prefix}fn({', '.join(params)})"
        return f"{display} -> {related[-1]}" if node.has_output else display
    if kind == TypeKind.TRAIT_OBJECT:
        return "dyn " + " + ".join(related)
    if kind == TypeKind.IMPL_TRAIT:
        return "impl " + " + ".join(related)
    return node.display


class TypeCanonicalizer:
    """
    Interns TypeNodes by fingerprint.

    One instance per construction run: a traversal owns one for its file,
    the merge stage owns the global one.
    """

    def __init__(
        self,
        allocator: IdAllocator,
        symbols: SymbolTable | None = None,
        max_depth: int = 32,
        file_path: str | None = None,
    ):
        self._allocator = allocator
        self._symbols = symbols
        self._max_depth = max_depth
        self._file_path = file_path
        self._types: dict[TypeId, TypeNode] = {}
        self._by_fingerprint: dict[tuple, TypeId] = {}
        self.diagnostics: list[Diagnostic] = []

    # ============================================================
    # Interning
    # ============================================================

    def intern_node(self, node: TypeNode) -> TypeId:
        """Intern a finished TypeNode (its own id is ignored); returns the canonical id."""
        fingerprint = node.fingerprint()
        existing = self._by_fingerprint.get(fingerprint)
        if existing is not None:
            return existing
        type_id = self._allocator.next_type()
        self._types[type_id] = dataclasses.replace(node, id=type_id)
        self._by_fingerprint[fingerprint] = type_id
        return type_id

    def _intern(self, kind: TypeKind, display: str, **attrs) -> TypeId:
        return self.intern_node(TypeNode(id=_DRAFT_ID, kind=kind, display=display, **attrs))

    def get(self, type_id: TypeId) -> TypeNode:
        return self._types[type_id]

    def types(self) -> list[TypeNode]:
        """All interned types in id order."""
        return [self._types[type_id] for type_id in sorted(self._types)]

    def __len__(self) -> int:
        return len(self._types)

    def replace_all(self, types) -> None:
        """Swap the interned set for already-canonical nodes (used after unification)."""
        self._types = {node.id: node for node in types}
        self._by_fingerprint = {node.fingerprint(): type_id for type_id, node in self._types.items()}

    def generic_param(self, owner_fqn: str, name: str) -> TypeId:
        """Type standing for generic parameter `name` declared by `owner_fqn`."""
        return self._intern(
            TypeKind.NAMED,
            name,
            resolution=TypeResolution.GENERIC,
            path=f"{owner_fqn}::{name}",
        )

    def declaration_type(self, path: str, declaration: NodeId, args: tuple[TypeId, ...] = ()) -> TypeId:
        """Named type of a local declaration, as a path resolving to it would produce."""
        display = render_named(path, [self._types[t].display for t in args], ())
        return self._intern(
            TypeKind.NAMED,
            display,
            resolution=TypeResolution.DECLARATION,
            path=path,
            declaration=declaration,
            related_types=args,
        )

    def unit(self) -> TypeId:
        return self._intern(TypeKind.TUPLE, "()")

    # ============================================================
    # Canonicalization
    # ============================================================

    def canonicalize(self, type_expr: TypeExpr, scope: ScopeStack, origin: str = "", _depth: int = 0) -> TypeId:
        """
        Canonicalize a type expression written in `scope`.

        Args:
            type_expr: Syntactic type
            scope: Scope the type is written in (module, generics, Self)
            origin: Qualified path of the declaration holding the type,
                used in diagnostics

        Returns:
            Canonical TypeId
        """
        if _depth > self._max_depth:
            return self._truncate(type_expr, origin)
        depth = _depth + 1

        if isinstance(type_expr, PathType):
            return self._canonicalize_path(type_expr, scope, origin, depth)

        if isinstance(type_expr, ReferenceType):
            inner = self.canonicalize(type_expr.inner, scope, origin, depth)
            return self._intern_composite(TypeKind.REFERENCE, (inner,), is_mutable=type_expr.is_mutable)

        if isinstance(type_expr, PointerType):
            inner = self.canonicalize(type_expr.inner, scope, origin, depth)
            return self._intern_composite(TypeKind.RAW_POINTER, (inner,), is_mutable=type_expr.is_mutable)

        if isinstance(type_expr, SliceType):
            element = self.canonicalize(type_expr.element, scope, origin, depth)
            return self._intern_composite(TypeKind.SLICE, (element,))

        if isinstance(type_expr, ArrayType):
            element = self.canonicalize(type_expr.element, scope, origin, depth)
            return self._intern_composite(TypeKind.ARRAY, (element,), length=type_expr.length.strip())

        if isinstance(type_expr, TupleType):
            elements = tuple(self.canonicalize(e, scope, origin, depth) for e in type_expr.elements)
            return self._intern_composite(TypeKind.TUPLE, elements)

        if isinstance(type_expr, FnPointerType):
            params = tuple(self.canonicalize(p, scope, origin, depth) for p in type_expr.params)
            output = self.canonicalize(type_expr.output, scope, origin, depth) if type_expr.output else None
            return self._intern_composite(
                TypeKind.FUNCTION,
                params + ((output,) if output is not None else ()),
                is_unsafe=type_expr.is_unsafe,
                abi=type_expr.abi,
                has_output=output is not None,
            )

        if isinstance(type_expr, TraitObjectType):
            bounds = tuple(self.canonicalize(b, scope, origin, depth) for b in type_expr.bounds)
            return self._intern_composite(TypeKind.TRAIT_OBJECT, bounds)

        if isinstance(type_expr, ImplTraitType):
            bounds = tuple(self.canonicalize(b, scope, origin, depth) for b in type_expr.bounds)
            return self._intern_composite(TypeKind.IMPL_TRAIT, bounds)

        if isinstance(type_expr, NeverType):
            return self._intern(TypeKind.NEVER, "!")

        if isinstance(type_expr, InferredType):
            return self._intern(TypeKind.INFERRED, "_")

        if isinstance(type_expr, MacroType):
            return self._intern(TypeKind.MACRO, type_expr.text)

        if isinstance(type_expr, UnsupportedType):
            return self._intern(TypeKind.UNSUPPORTED, type_expr.text)

        raise TypeError(f"Unknown type expression: {type(type_expr).__name__}")

    def _intern_composite(self, kind: TypeKind, related: tuple[TypeId, ...], **attrs) -> TypeId:
        draft = TypeNode(id=_DRAFT_ID, kind=kind, display="", related_types=related, **attrs)
        display = render_type(draft, [self._types[t].display for t in related])
        return self.intern_node(dataclasses.replace(draft, display=display))

    def _truncate(self, type_expr: TypeExpr, origin: str) -> TypeId:
        text = getattr(type_expr, "text", "") or type(type_expr).__name__
        self.diagnostics.append(
            Diagnostic(
                code=DiagnosticCode.TYPE_DEPTH_EXCEEDED,
                path=origin,
                message=f"Type nesting deeper than {self._max_depth}; truncated at `{text}`",
                file_path=self._file_path,
            )
        )
        logger.debug("type_truncated", origin=origin, max_depth=self._max_depth)
        return self._intern(TypeKind.UNSUPPORTED, f"<truncated {text}>")

    def _canonicalize_path(self, path_type: PathType, scope: ScopeStack, origin: str, depth: int) -> TypeId:
        identity = self._named_identity(path_type, scope)
        if isinstance(identity, TypeId):
            return identity

        arg_ids: list[TypeId] = []
        binding_names: list[str] = []
        binding_ids: list[TypeId] = []
        for segment in path_type.segments:
            arg_ids.extend(self.canonicalize(arg, scope, origin, depth) for arg in segment.args)
            for name, bound in segment.bindings:
                binding_names.append(name)
                binding_ids.append(self.canonicalize(bound, scope, origin, depth))

        related = tuple(arg_ids + binding_ids)
        base = identity.display or identity.path
        display = render_named(base, [self._types[t].display for t in related], tuple(binding_names))
        return self._intern(
            TypeKind.NAMED,
            display,
            resolution=identity.resolution,
            path=identity.path,
            scope=identity.scope,
            declaration=identity.declaration,
            related_types=related,
            binding_names=tuple(binding_names),
        )

    def _named_identity(self, path_type: PathType, scope: ScopeStack) -> _NamedIdentity | TypeId:
        names = path_type.names
        first = names[0]
        module_fqn = scope.module_fqn()

        if not path_type.leading_colon:
            if len(names) == 1:
                if first == "Self":
                    self_type = scope.self_type()
                    if self_type is not None:
                        return self_type
                generic = scope.lookup_generic(first)
                if generic is not None:
                    return generic
                if first in PRIMITIVES:
                    return _NamedIdentity(TypeResolution.PRIMITIVE, first)
            else:
                # associated type projections: Self::Item, T::Output
                owner = None
                if first == "Self":
                    owner = scope.enclosing("impl", "trait")
                else:
                    owner = scope.generic_owner(first)
                if owner is not None:
                    projection = "::".join(names)
                    return _NamedIdentity(
                        TypeResolution.GENERIC, f"{owner.fqn}::{projection}", display=projection
                    )

        if self._symbols is None:
            return _NamedIdentity(TypeResolution.UNRESOLVED, path_type.path_text, scope=module_fqn)

        resolution = self._symbols.resolve(names, module_fqn, SymbolSpace.TYPE, leading_colon=path_type.leading_colon)
        if resolution.status == ResolutionStatus.LOCAL and resolution.entry is not None:
            return _NamedIdentity(
                TypeResolution.DECLARATION,
                resolution.path,
                declaration=resolution.entry.target,
            )
        if resolution.status == ResolutionStatus.EXTERNAL:
            return _NamedIdentity(TypeResolution.EXTERNAL, resolution.path)
        return _NamedIdentity(TypeResolution.UNRESOLVED, path_type.path_text, scope=module_fqn)
