"""
Abstract syntax interface.

The graph builder consumes these dataclasses, not a concrete parser tree.
Any front-end (tree-sitter, a test fixture built by hand) produces a
SourceUnit made of Item and TypeExpr values.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from codegraph_rs.ir.models import (
    Attribute,
    FieldsShape,
    GenericParamKind,
    Span,
    ValueKind,
    Visibility,
)

# ============================================================
# Type expressions
# ============================================================


@dataclass(frozen=True)
class PathSegment:
    """
    One path segment with its generic arguments.

    Parenthesized sugar (`Fn(A) -> B`) is stored as args=(A,) plus an
    `Output` binding.
    """

    name: str
    args: tuple[TypeExpr, ...] = ()
    bindings: tuple[tuple[str, TypeExpr], ...] = ()


@dataclass(frozen=True)
class PathType:
    segments: tuple[PathSegment, ...]
    leading_colon: bool = False
    text: str = ""

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(seg.name for seg in self.segments)

    @property
    def path_text(self) -> str:
        prefix = "::" if self.leading_colon else ""
        return prefix + "::".join(self.names)

    def unspecialized(self) -> PathType:
        """Same path with every generic argument stripped."""
        return PathType(tuple(PathSegment(seg.name) for seg in self.segments), self.leading_colon, self.path_text)


@dataclass(frozen=True)
class ReferenceType:
    inner: TypeExpr
    is_mutable: bool = False
    lifetime: str | None = None
    text: str = ""


@dataclass(frozen=True)
class PointerType:
    inner: TypeExpr
    is_mutable: bool = False
    text: str = ""


@dataclass(frozen=True)
class SliceType:
    element: TypeExpr
    text: str = ""


@dataclass(frozen=True)
class ArrayType:
    element: TypeExpr
    length: str
    text: str = ""


@dataclass(frozen=True)
class TupleType:
    elements: tuple[TypeExpr, ...] = ()
    text: str = ""


@dataclass(frozen=True)
class FnPointerType:
    params: tuple[TypeExpr, ...] = ()
    output: TypeExpr | None = None
    is_unsafe: bool = False
    abi: str | None = None
    text: str = ""


@dataclass(frozen=True)
class TraitObjectType:
    bounds: tuple[TypeExpr, ...]
    dyn_token: bool = True
    text: str = ""


@dataclass(frozen=True)
class ImplTraitType:
    bounds: tuple[TypeExpr, ...]
    text: str = ""


@dataclass(frozen=True)
class NeverType:
    text: str = "!"


@dataclass(frozen=True)
class InferredType:
    text: str = "_"


@dataclass(frozen=True)
class MacroType:
    text: str


@dataclass(frozen=True)
class UnsupportedType:
    """Type syntax the builder does not model (qualified projections, bare lifetimes ...)."""

    text: str


TypeExpr = (
    PathType
    | ReferenceType
    | PointerType
    | SliceType
    | ArrayType
    | TupleType
    | FnPointerType
    | TraitObjectType
    | ImplTraitType
    | NeverType
    | InferredType
    | MacroType
    | UnsupportedType
)


def simple_path(path: str, *args: TypeExpr) -> PathType:
    """Build a PathType from `a::b::C`, attaching args to the last segment."""
    leading = path.startswith("::")
    names = path.lstrip(":").split("::")
    segments = [PathSegment(name) for name in names[:-1]]
    segments.append(PathSegment(names[-1], tuple(args)))
    return PathType(tuple(segments), leading, path)


# ============================================================
# Items
# ============================================================


@dataclass(frozen=True)
class GenericParamSyntax:
    name: str
    kind: GenericParamKind = GenericParamKind.TYPE
    bounds: tuple[TypeExpr, ...] = ()
    lifetime_bounds: tuple[str, ...] = ()
    default: TypeExpr | None = None
    const_type: TypeExpr | None = None
    span: Span | None = None


@dataclass(frozen=True)
class MacroCallSyntax:
    """Macro invocation site (`path!(...)`)"""

    path: str
    span: Span | None = None


@dataclass(frozen=True, kw_only=True)
class ItemSyntax:
    """Attributes shared by every item."""

    name: str
    visibility: Visibility = field(default_factory=Visibility)
    attributes: tuple[Attribute, ...] = ()
    docstring: str | None = None
    span: Span | None = None


@dataclass(frozen=True, kw_only=True)
class ParamSyntax(ItemSyntax):
    type: TypeExpr | None = None
    is_self: bool = False
    is_mutable: bool = False


@dataclass(frozen=True, kw_only=True)
class FieldSyntax(ItemSyntax):
    type: TypeExpr


@dataclass(frozen=True, kw_only=True)
class VariantSyntax(ItemSyntax):
    fields: tuple[FieldSyntax, ...] = ()
    shape: FieldsShape = FieldsShape.UNIT
    discriminant: str | None = None


@dataclass(frozen=True, kw_only=True)
class MacroRuleSyntax:
    pattern: str
    expansion: str
    span: Span | None = None


@dataclass(frozen=True, kw_only=True)
class UseEntry:
    """One leaf of a flattened use tree (`use a::{b as c, d::*}` yields two)."""

    path: tuple[str, ...]
    alias: str | None = None
    is_glob: bool = False
    span: Span | None = None

    @property
    def visible_name(self) -> str:
        if self.is_glob:
            return "*"
        return self.alias or self.path[-1]


@dataclass(frozen=True, kw_only=True)
class FunctionItem(ItemSyntax):
    params: tuple[ParamSyntax, ...] = ()
    output: TypeExpr | None = None
    generics: tuple[GenericParamSyntax, ...] = ()
    is_unsafe: bool = False
    is_async: bool = False
    is_const: bool = False
    abi: str | None = None
    has_body: bool = True
    body_items: tuple[Item, ...] = ()
    macro_calls: tuple[MacroCallSyntax, ...] = ()


@dataclass(frozen=True, kw_only=True)
class StructItem(ItemSyntax):
    fields: tuple[FieldSyntax, ...] = ()
    generics: tuple[GenericParamSyntax, ...] = ()
    shape: FieldsShape = FieldsShape.NAMED


@dataclass(frozen=True, kw_only=True)
class UnionItem(ItemSyntax):
    fields: tuple[FieldSyntax, ...] = ()
    generics: tuple[GenericParamSyntax, ...] = ()


@dataclass(frozen=True, kw_only=True)
class EnumItem(ItemSyntax):
    variants: tuple[VariantSyntax, ...] = ()
    generics: tuple[GenericParamSyntax, ...] = ()


@dataclass(frozen=True, kw_only=True)
class TraitItem(ItemSyntax):
    generics: tuple[GenericParamSyntax, ...] = ()
    supertraits: tuple[TypeExpr, ...] = ()
    items: tuple[Item, ...] = ()
    is_unsafe: bool = False
    is_auto: bool = False


@dataclass(frozen=True, kw_only=True)
class ImplItem(ItemSyntax):
    self_type: TypeExpr
    trait: PathType | None = None
    generics: tuple[GenericParamSyntax, ...] = ()
    items: tuple[Item, ...] = ()
    is_negative: bool = False
    is_unsafe: bool = False
    name: str = ""


@dataclass(frozen=True, kw_only=True)
class ModuleItem(ItemSyntax):
    """Inline module (`mod a { ... }`) or file module declaration (`mod a;`, items=None)."""

    items: tuple[Item, ...] | None = None


@dataclass(frozen=True, kw_only=True)
class TypeAliasItem(ItemSyntax):
    type: TypeExpr | None = None
    generics: tuple[GenericParamSyntax, ...] = ()
    bounds: tuple[TypeExpr, ...] = ()


@dataclass(frozen=True, kw_only=True)
class ValueItem(ItemSyntax):
    kind: ValueKind = ValueKind.CONST
    type: TypeExpr | None = None
    value: str | None = None
    is_mutable: bool = False


@dataclass(frozen=True, kw_only=True)
class MacroRulesItem(ItemSyntax):
    rules: tuple[MacroRuleSyntax, ...] = ()
    is_exported: bool = False


@dataclass(frozen=True, kw_only=True)
class UseItem(ItemSyntax):
    entries: tuple[UseEntry, ...] = ()
    name: str = "use"


@dataclass(frozen=True, kw_only=True)
class ExternCrateItem(ItemSyntax):
    alias: str | None = None


@dataclass(frozen=True, kw_only=True)
class MacroCallItem(ItemSyntax):
    """Macro invoked in item position (`lazy_static! { ... }`); name is the macro path."""

    pass


Item = (
    FunctionItem
    | StructItem
    | UnionItem
    | EnumItem
    | TraitItem
    | ImplItem
    | ModuleItem
    | TypeAliasItem
    | ValueItem
    | MacroRulesItem
    | UseItem
    | ExternCrateItem
    | MacroCallItem
)

ITEM_TYPES: tuple[type, ...] = (
    FunctionItem,
    StructItem,
    UnionItem,
    EnumItem,
    TraitItem,
    ImplItem,
    ModuleItem,
    TypeAliasItem,
    ValueItem,
    MacroRulesItem,
    UseItem,
    ExternCrateItem,
    MacroCallItem,
)


@dataclass(frozen=True)
class SyntaxErrorInfo:
    line: int
    message: str


@dataclass(frozen=True)
class SourceUnit:
    """
    One compilation unit as seen by the builder.

    module_path is the qualified path of the file's root module
    (("crate",) for lib.rs, ("crate", "a", "b") for a/b.rs).
    """

    file_path: str
    module_path: tuple[str, ...]
    items: tuple[Item, ...] = ()
    docstring: str | None = None
    attributes: tuple[Attribute, ...] = ()
    errors: tuple[SyntaxErrorInfo, ...] = ()

    @property
    def module_fqn(self) -> str:
        return "::".join(self.module_path)


__all__ = [
    "ArrayType",
    "Attribute",
    "EnumItem",
    "ExternCrateItem",
    "FieldSyntax",
    "FieldsShape",
    "FnPointerType",
    "FunctionItem",
    "GenericParamKind",
    "GenericParamSyntax",
    "ITEM_TYPES",
    "ImplItem",
    "ImplTraitType",
    "InferredType",
    "Item",
    "MacroCallItem",
    "MacroCallSyntax",
    "MacroRuleSyntax",
    "MacroRulesItem",
    "MacroType",
    "ModuleItem",
    "NeverType",
    "ParamSyntax",
    "PathSegment",
    "PathType",
    "PointerType",
    "ReferenceType",
    "SliceType",
    "SourceUnit",
    "Span",
    "StructItem",
    "SyntaxErrorInfo",
    "TraitItem",
    "TraitObjectType",
    "TupleType",
    "TypeAliasItem",
    "TypeExpr",
    "UnionItem",
    "UnsupportedType",
    "UseEntry",
    "UseItem",
    "ValueItem",
    "ValueKind",
    "VariantSyntax",
    "Visibility",
    "simple_path",
]
