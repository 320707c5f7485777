"""
Graph IR Models

Declaration nodes, trait declarations and canonical type nodes.

All models are frozen dataclasses. Construction code never mutates a node in
place; the resolver produces patched copies with dataclasses.replace, and the
graph store only ever holds finished values.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ClassVar

from codegraph_rs.ir.ids import NodeId, TraitId, TypeId, _EntityId

# ============================================================
# Shared value types
# ============================================================


@dataclass(frozen=True)
class Span:
    """Source location (1-based lines, 0-based columns)"""

    start_line: int
    start_col: int
    end_line: int
    end_col: int


class VisibilityKind(str, Enum):
    PUBLIC = "public"
    CRATE = "crate"
    RESTRICTED = "restricted"
    INHERITED = "inherited"


@dataclass(frozen=True)
class Visibility:
    """
    Declared visibility.

    `path` is set only for RESTRICTED (`pub(super)`, `pub(in a::b)`).
    """

    kind: VisibilityKind = VisibilityKind.INHERITED
    path: str | None = None

    @property
    def is_public(self) -> bool:
        return self.kind == VisibilityKind.PUBLIC


@dataclass(frozen=True)
class Attribute:
    """Outer attribute such as #[derive(Debug)] or #[path = "x.rs"]. Doc comments are not attributes."""

    name: str
    args: tuple[str, ...] = ()
    value: str | None = None


class NodeKind(str, Enum):
    """Declaration node kinds"""

    MODULE = "module"
    FUNCTION = "function"
    PARAMETER = "parameter"
    STRUCT = "struct"
    UNION = "union"
    FIELD = "field"
    ENUM = "enum"
    VARIANT = "variant"
    IMPL = "impl"
    TYPE_ALIAS = "type_alias"
    VALUE = "value"
    MACRO = "macro"
    MACRO_RULE = "macro_rule"
    IMPORT = "import"
    GENERIC_PARAM = "generic_param"


class FieldsShape(str, Enum):
    """Shape of a struct or variant body"""

    NAMED = "named"
    TUPLE = "tuple"
    UNIT = "unit"


class ValueKind(str, Enum):
    CONST = "const"
    STATIC = "static"


class MacroKind(str, Enum):
    DECLARATIVE = "declarative"
    PROC_FUNCTION = "proc_function"
    PROC_DERIVE = "proc_derive"
    PROC_ATTRIBUTE = "proc_attribute"


class ImportKind(str, Enum):
    USE = "use"
    EXTERN_CRATE = "extern_crate"


class GenericParamKind(str, Enum):
    TYPE = "type"
    LIFETIME = "lifetime"
    CONST = "const"


# ============================================================
# Declarations
# ============================================================


@dataclass(frozen=True, kw_only=True)
class Declaration:
    """Attributes shared by every declaration."""

    name: str
    path: str
    visibility: Visibility = field(default_factory=Visibility)
    attributes: tuple[Attribute, ...] = ()
    docstring: str | None = None
    span: Span | None = None
    file_path: str | None = None

    def has_attribute(self, name: str) -> bool:
        return any(attr.name == name for attr in self.attributes)


@dataclass(frozen=True, kw_only=True)
class DeclarationNode(Declaration):
    id: NodeId

    kind: ClassVar[NodeKind]


@dataclass(frozen=True, kw_only=True)
class ModuleNode(DeclarationNode):
    kind = NodeKind.MODULE

    parent: NodeId | None = None
    items: tuple[NodeId | TraitId, ...] = ()
    is_file_root: bool = False
    is_inline: bool = True


@dataclass(frozen=True, kw_only=True)
class FunctionNode(DeclarationNode):
    kind = NodeKind.FUNCTION

    parameters: tuple[NodeId, ...] = ()
    return_type: TypeId | None = None
    generic_params: tuple[NodeId, ...] = ()
    is_unsafe: bool = False
    is_async: bool = False
    is_const: bool = False
    abi: str | None = None
    has_body: bool = True
    is_method: bool = False
    macro_calls: tuple[str, ...] = ()


@dataclass(frozen=True, kw_only=True)
class ParameterNode(DeclarationNode):
    kind = NodeKind.PARAMETER

    type_id: TypeId | None = None
    index: int = 0
    is_self: bool = False
    is_mutable: bool = False


@dataclass(frozen=True, kw_only=True)
class StructNode(DeclarationNode):
    kind = NodeKind.STRUCT

    fields: tuple[NodeId, ...] = ()
    generic_params: tuple[NodeId, ...] = ()
    shape: FieldsShape = FieldsShape.NAMED


@dataclass(frozen=True, kw_only=True)
class UnionNode(DeclarationNode):
    kind = NodeKind.UNION

    fields: tuple[NodeId, ...] = ()
    generic_params: tuple[NodeId, ...] = ()


@dataclass(frozen=True, kw_only=True)
class FieldNode(DeclarationNode):
    kind = NodeKind.FIELD

    type_id: TypeId
    index: int = 0


@dataclass(frozen=True, kw_only=True)
class EnumNode(DeclarationNode):
    kind = NodeKind.ENUM

    variants: tuple[NodeId, ...] = ()
    generic_params: tuple[NodeId, ...] = ()


@dataclass(frozen=True, kw_only=True)
class VariantNode(DeclarationNode):
    kind = NodeKind.VARIANT

    fields: tuple[NodeId, ...] = ()
    shape: FieldsShape = FieldsShape.UNIT
    discriminant: str | None = None


@dataclass(frozen=True, kw_only=True)
class ImplNode(DeclarationNode):
    """
    Implementation block.

    trait_id points at the unspecialized trait declaration; trait_type is the
    instantiation as written (`GenericTrait<T>`). trait_path is the canonical
    trait path, also set for external traits that have no TraitId.
    """

    kind = NodeKind.IMPL

    self_type: TypeId
    trait_id: TraitId | None = None
    trait_type: TypeId | None = None
    trait_path: str | None = None
    methods: tuple[NodeId, ...] = ()
    associated_items: tuple[NodeId, ...] = ()
    generic_params: tuple[NodeId, ...] = ()
    is_negative: bool = False
    is_unsafe: bool = False


@dataclass(frozen=True, kw_only=True)
class TypeAliasNode(DeclarationNode):
    kind = NodeKind.TYPE_ALIAS

    aliased_type: TypeId | None = None
    bounds: tuple[TypeId, ...] = ()
    generic_params: tuple[NodeId, ...] = ()


@dataclass(frozen=True, kw_only=True)
class ValueNode(DeclarationNode):
    """const or static item"""

    kind = NodeKind.VALUE

    value_kind: ValueKind = ValueKind.CONST
    type_id: TypeId | None = None
    value: str | None = None
    is_mutable: bool = False


@dataclass(frozen=True, kw_only=True)
class MacroNode(DeclarationNode):
    kind = NodeKind.MACRO

    macro_kind: MacroKind = MacroKind.DECLARATIVE
    rules: tuple[NodeId, ...] = ()
    implementation: NodeId | None = None
    is_exported: bool = False


@dataclass(frozen=True, kw_only=True)
class MacroRuleNode(DeclarationNode):
    kind = NodeKind.MACRO_RULE

    pattern: str
    expansion: str
    index: int = 0


@dataclass(frozen=True, kw_only=True)
class ImportNode(DeclarationNode):
    kind = NodeKind.IMPORT

    import_kind: ImportKind = ImportKind.USE
    source_path: str
    alias: str | None = None
    is_glob: bool = False


@dataclass(frozen=True, kw_only=True)
class GenericParamNode(DeclarationNode):
    kind = NodeKind.GENERIC_PARAM

    param_kind: GenericParamKind = GenericParamKind.TYPE
    type_id: TypeId | None = None
    bounds: tuple[TypeId, ...] = ()
    lifetime_bounds: tuple[str, ...] = ()
    default: TypeId | None = None


@dataclass(frozen=True, kw_only=True)
class TraitNode(Declaration):
    """Trait declaration (lives in the trait id namespace)"""

    id: TraitId
    methods: tuple[NodeId, ...] = ()
    associated_items: tuple[NodeId, ...] = ()
    generic_params: tuple[NodeId, ...] = ()
    super_traits: tuple[TraitId, ...] = ()
    super_trait_types: tuple[TypeId, ...] = ()
    is_unsafe: bool = False
    is_auto: bool = False


NODE_CLASSES: dict[NodeKind, type[DeclarationNode]] = {
    cls.kind: cls
    for cls in (
        ModuleNode,
        FunctionNode,
        ParameterNode,
        StructNode,
        UnionNode,
        FieldNode,
        EnumNode,
        VariantNode,
        ImplNode,
        TypeAliasNode,
        ValueNode,
        MacroNode,
        MacroRuleNode,
        ImportNode,
        GenericParamNode,
    )
}

# ============================================================
# Types
# ============================================================


class TypeKind(str, Enum):
    """Canonical type kinds (parenthesized types are transparent)"""

    NAMED = "named"
    REFERENCE = "reference"
    SLICE = "slice"
    ARRAY = "array"
    TUPLE = "tuple"
    TRAIT_OBJECT = "trait_object"
    IMPL_TRAIT = "impl_trait"
    FUNCTION = "function"
    NEVER = "never"
    RAW_POINTER = "raw_pointer"
    MACRO = "macro"
    INFERRED = "inferred"
    UNSUPPORTED = "unsupported"


class TypeResolution(str, Enum):
    """How a type's identity was established"""

    PRIMITIVE = "primitive"
    DECLARATION = "declaration"
    GENERIC = "generic"
    EXTERNAL = "external"
    UNRESOLVED = "unresolved"
    STRUCTURAL = "structural"


@dataclass(frozen=True)
class TypeNode:
    """
    One canonical type.

    `path` carries the identity of named types:
    - DECLARATION: qualified path of the local declaration
    - EXTERNAL: absolute path outside the crate (std::vec::Vec)
    - GENERIC: `<owner path>::<param>`
    - UNRESOLVED: path as written; `scope` is the module it was written in
    related_types order: referent/element, tuple members, generic arguments
    followed by associated bindings (named in binding_names), fn inputs then
    output, trait-object bounds.
    """

    id: TypeId
    kind: TypeKind
    display: str
    resolution: TypeResolution = TypeResolution.STRUCTURAL
    path: str | None = None
    scope: str | None = None
    declaration: NodeId | TraitId | None = None
    related_types: tuple[TypeId, ...] = ()
    binding_names: tuple[str, ...] = ()
    is_mutable: bool = False
    length: str | None = None
    is_unsafe: bool = False
    abi: str | None = None
    has_output: bool = False

    def fingerprint(self) -> tuple:
        """
        Structural identity key.

        Depends on the resolved identity and the ordered related type ids,
        never on the spelling the type was first seen with.
        """
        if self.kind in (TypeKind.MACRO, TypeKind.UNSUPPORTED):
            identity: Any = self.display
        elif self.resolution == TypeResolution.UNRESOLVED:
            identity = (self.scope, self.path)
        else:
            identity = self.path
        return (
            self.kind.value,
            self.resolution.value,
            identity,
            tuple(t.value for t in self.related_types),
            self.binding_names,
            self.is_mutable,
            self.length,
            self.is_unsafe,
            self.abi,
            self.has_output,
        )


# ============================================================
# Id rewriting
# ============================================================


def remap_ids(obj: Any, fn: Callable[[_EntityId], _EntityId]) -> Any:
    """
    Return a copy of a frozen dataclass with every id field passed through fn.

    Handles fields holding a single id or a tuple of ids; other values are
    left untouched.
    """
    changes = {}
    for f in dataclasses.fields(obj):
        value = getattr(obj, f.name)
        if isinstance(value, _EntityId):
            new_value = fn(value)
        elif isinstance(value, tuple) and value and any(isinstance(v, _EntityId) for v in value):
            new_value = tuple(fn(v) if isinstance(v, _EntityId) else v for v in value)
        else:
            continue
        if new_value is not value:
            changes[f.name] = new_value
    return dataclasses.replace(obj, **changes) if changes else obj
