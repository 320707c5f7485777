"""
AST Traversal / Dispatch

Single forward pass over one SourceUnit. For every declaration the
traversal allocates an id, canonicalizes the types it mentions, registers
its qualified path, and emits the relations that can be derived on the spot.
References to declarations not seen yet become provisional relations
carrying an Unresolved target.

The traversal only appends to its own event list; the result is an
immutable FileFragment handed to the merge stage.
"""

from __future__ import annotations

from collections.abc import Callable

from codegraph_rs.builder.fragment import (
    BlockScopeEvent,
    DiagnosticEvent,
    ExternCrateEvent,
    FileFragment,
    FragmentEvent,
    ImportEvent,
    NodeEvent,
    RelationEvent,
    SymbolEvent,
    TypeEvent,
)
from codegraph_rs.builder.scope_stack import MODULE_LIKE, ScopeFrame, ScopeStack
from codegraph_rs.builder.symbol_table import (
    SPACE_OF_KIND,
    TRAIT_KIND,
    ImportBinding,
    ResolutionStatus,
    SymbolEntry,
    SymbolTable,
)
from codegraph_rs.builder.type_canonicalizer import TypeCanonicalizer
from codegraph_rs.config import GraphBuildConfig
from codegraph_rs.diagnostics import Diagnostic, DiagnosticCode
from codegraph_rs.ir.ids import IdAllocator, Namespace, NodeId, TraitId, TypeId
from codegraph_rs.ir.models import (
    Attribute,
    EnumNode,
    FieldNode,
    FunctionNode,
    GenericParamKind,
    GenericParamNode,
    ImplNode,
    ImportKind,
    ImportNode,
    MacroKind,
    MacroNode,
    MacroRuleNode,
    ModuleNode,
    NodeKind,
    ParameterNode,
    StructNode,
    TraitNode,
    TypeAliasNode,
    UnionNode,
    ValueNode,
    VariantNode,
    Visibility,
    VisibilityKind,
)
from codegraph_rs.ir.relations import Relation, RelationKind, SymbolSpace, Unresolved, check
from codegraph_rs.observability import get_logger
from codegraph_rs.syntax.models import (
    EnumItem,
    ExternCrateItem,
    FieldSyntax,
    FunctionItem,
    GenericParamSyntax,
    ImplItem,
    Item,
    MacroCallItem,
    MacroRulesItem,
    ModuleItem,
    PathType,
    SourceUnit,
    StructItem,
    TraitItem,
    TypeAliasItem,
    UnionItem,
    UseItem,
    ValueItem,
)

logger = get_logger(__name__)

PROC_MACRO_ATTRIBUTES = {
    "proc_macro": MacroKind.PROC_FUNCTION,
    "proc_macro_derive": MacroKind.PROC_DERIVE,
    "proc_macro_attribute": MacroKind.PROC_ATTRIBUTE,
}

Target = NodeId | TypeId | TraitId | Unresolved


DECLARED_KINDS: dict[type, str] = {
    FunctionItem: NodeKind.FUNCTION.value,
    StructItem: NodeKind.STRUCT.value,
    UnionItem: NodeKind.UNION.value,
    EnumItem: NodeKind.ENUM.value,
    TraitItem: TRAIT_KIND,
    ModuleItem: NodeKind.MODULE.value,
    TypeAliasItem: NodeKind.TYPE_ALIAS.value,
    ValueItem: NodeKind.VALUE.value,
    MacroRulesItem: NodeKind.MACRO.value,
}


def is_cfg_gated(attributes: tuple[Attribute, ...]) -> bool:
    return any(attr.name == "cfg" for attr in attributes)


class FileTraversal:
    """
    Builds the fragment of one compilation unit.

    Usage:
        fragment = FileTraversal(unit, config).run()
    """

    def __init__(self, unit: SourceUnit, config: GraphBuildConfig | None = None):
        self.unit = unit
        self.config = config or GraphBuildConfig()
        self.allocator = IdAllocator(self.config.max_id, owner=unit.file_path)
        self.symbols = SymbolTable(self.config.crate_name, self.config.resolve_prelude)
        self.types = TypeCanonicalizer(self.allocator, self.symbols, self.config.max_type_depth, unit.file_path)
        self.scopes = ScopeStack(unit.module_fqn)

        self._events: list[FragmentEvent] = []
        self._relation_keys: set[tuple] = set()
        self._impl_counters: dict[str, int] = {}
        self._dispatch: dict[type, Callable[[Item], list[NodeId | TraitId]]] = {
            FunctionItem: self._visit_function,
            StructItem: self._visit_struct,
            UnionItem: self._visit_union,
            EnumItem: self._visit_enum,
            TraitItem: self._visit_trait,
            ImplItem: self._visit_impl,
            ModuleItem: self._visit_module,
            TypeAliasItem: self._visit_type_alias,
            ValueItem: self._visit_value,
            MacroRulesItem: self._visit_macro_rules,
            UseItem: self._visit_use,
            ExternCrateItem: self._visit_extern_crate,
            MacroCallItem: self._visit_macro_call,
        }

    # ============================================================
    # Entry point
    # ============================================================

    def run(self) -> FileFragment:
        """
        Traverse the unit.

        Raises:
            NamespaceExhaustedError: Id range exhausted
            PathCollisionError: Two declarations claim one qualified path
        """
        unit = self.unit
        module_fqn = unit.module_fqn
        module_id = self.allocator.next_node()
        self.scopes = ScopeStack(module_fqn, module_id)
        self._declare(module_fqn, NodeKind.MODULE.value, module_id, ())

        for error in unit.errors:
            self._diagnose(DiagnosticCode.PARSE_ERROR, module_fqn, f"line {error.line}: {error.message}")

        items = self._visit_items(unit.items)
        self._emit(
            NodeEvent(
                ModuleNode(
                    id=module_id,
                    name=unit.module_path[-1],
                    path=module_fqn,
                    attributes=unit.attributes,
                    docstring=unit.docstring,
                    file_path=unit.file_path,
                    items=tuple(items),
                    is_file_root=True,
                    is_inline=False,
                    visibility=Visibility(VisibilityKind.PUBLIC) if len(unit.module_path) == 1 else Visibility(),
                )
            )
        )

        for type_node in self.types.types():
            self._emit(TypeEvent(type_node))
        for diagnostic in self.types.diagnostics:
            self._emit(DiagnosticEvent(diagnostic))

        fragment = FileFragment(file_path=unit.file_path, module_path=module_fqn, events=tuple(self._events))
        logger.debug(
            "unit_traversed",
            file_path=unit.file_path,
            nodes=len(fragment.nodes),
            types=len(self.types),
            relations=len(fragment.relations),
            provisional=len(fragment.provisional_relations),
        )
        return fragment

    # ============================================================
    # Emission helpers
    # ============================================================

    def _emit(self, event: FragmentEvent) -> None:
        self._events.append(event)

    def _diagnose(self, code: DiagnosticCode, path: str, message: str, relation: Relation | None = None) -> None:
        self._emit(
            DiagnosticEvent(
                Diagnostic(code=code, path=path, message=message, file_path=self.unit.file_path, relation=relation)
            )
        )

    def _relate(
        self,
        kind: RelationKind,
        source: NodeId | TypeId | TraitId,
        target: Target,
        via: NodeId | None = None,
        origin: str = "",
    ) -> None:
        relation = Relation(kind=kind, source=source, target=target, via=via)
        error = check(relation)
        if error is not None:
            self._diagnose(DiagnosticCode.SCHEMA_VIOLATION, origin or self.scopes.current_fqn(), str(error), relation)
            return
        if relation.key in self._relation_keys:
            return
        self._relation_keys.add(relation.key)
        self._emit(RelationEvent(relation))

    def _declare(self, path: str, kind: str, target: NodeId | TraitId, attributes: tuple[Attribute, ...]) -> None:
        entry = SymbolEntry(
            path=path,
            space=SPACE_OF_KIND[kind],
            target=target,
            kind=kind,
            file_path=self.unit.file_path,
            cfg_gated=is_cfg_gated(attributes),
        )
        registered = self.symbols.declare(entry)
        if registered is None:
            self._diagnose(DiagnosticCode.CFG_DUPLICATE, path, "cfg-gated duplicate; first declaration kept")
        elif registered is entry:
            self._emit(SymbolEvent(entry))

    def _attach(self, child: NodeId | TraitId, origin: str, is_module: bool = False) -> None:
        """Link a new item to the enclosing module (CONTAINS) or declaration (DECLARES)."""
        frame = self.scopes.current
        if frame.node_id is None:
            return
        if frame.kind == "module" or (is_module and frame.kind == "block"):
            kind = RelationKind.CONTAINS
        else:
            kind = RelationKind.DECLARES
        self._relate(kind, frame.node_id, child, origin=origin)

    def _in_namespace_scope(self) -> bool:
        """Items directly inside a module or function body are path-addressable."""
        return self.scopes.current.kind in MODULE_LIKE

    def _common(self, item, path: str) -> dict:
        return {
            "name": item.name,
            "path": path,
            "visibility": item.visibility,
            "attributes": item.attributes,
            "docstring": item.docstring,
            "span": item.span,
            "file_path": self.unit.file_path,
        }

    # ============================================================
    # Dispatch
    # ============================================================

    def _visit_items(self, items) -> list[NodeId | TraitId]:
        created: list[NodeId | TraitId] = []
        for item in items:
            created.extend(self._visit_item(item))
        return created

    def _visit_item(self, item: Item) -> list[NodeId | TraitId]:
        handler = self._dispatch.get(type(item))
        if handler is None:
            raise TypeError(f"No traversal handler for {type(item).__name__}")
        if self._is_cfg_duplicate(item):
            return []
        return handler(item)

    def _is_cfg_duplicate(self, item: Item) -> bool:
        """A cfg-gated item whose path an earlier cfg-gated item holds; only the first is kept."""
        kind = DECLARED_KINDS.get(type(item))
        if kind is None or not is_cfg_gated(item.attributes) or not self._in_namespace_scope():
            return False
        if isinstance(item, ModuleItem) and item.items is None:
            return False
        path = self.scopes.child_fqn(item.name)
        existing = self.symbols.lookup(path, SPACE_OF_KIND[kind])
        if existing is None or not existing.cfg_gated:
            return False
        self._diagnose(DiagnosticCode.CFG_DUPLICATE, path, "cfg-gated duplicate; first declaration kept")
        return True

    # ============================================================
    # Generics
    # ============================================================

    def _visit_generics(
        self, generics: tuple[GenericParamSyntax, ...], frame: ScopeFrame, owner: NodeId | TraitId
    ) -> tuple[NodeId, ...]:
        # bind every type parameter first so bounds may mention siblings
        for param in generics:
            if param.kind == GenericParamKind.TYPE:
                frame.generics[param.name] = self.types.generic_param(frame.fqn, param.name)

        created: list[NodeId] = []
        for param in generics:
            param_id = self.allocator.next_node()
            path = f"{frame.fqn}::{param.name}"
            type_id: TypeId | None = None
            if param.kind == GenericParamKind.TYPE:
                type_id = frame.generics[param.name]
            elif param.kind == GenericParamKind.CONST and param.const_type is not None:
                type_id = self.types.canonicalize(param.const_type, self.scopes, path)
            bounds = tuple(self.types.canonicalize(bound, self.scopes, path) for bound in param.bounds)
            default = self.types.canonicalize(param.default, self.scopes, path) if param.default else None

            self._emit(
                NodeEvent(
                    GenericParamNode(
                        id=param_id,
                        name=param.name,
                        path=path,
                        span=param.span,
                        file_path=self.unit.file_path,
                        param_kind=param.kind,
                        type_id=type_id,
                        bounds=bounds,
                        lifetime_bounds=param.lifetime_bounds,
                        default=default,
                    )
                )
            )
            self._relate(RelationKind.DECLARES, owner, param_id, origin=path)
            if type_id is not None:
                self._relate(RelationKind.GENERIC_PARAMETER, owner, type_id, via=param_id, origin=path)
            created.append(param_id)
        return tuple(created)

    # ============================================================
    # Functions
    # ============================================================

    def _visit_function(self, item: FunctionItem) -> list[NodeId | TraitId]:
        fn_id = self.allocator.next_node()
        path = self.scopes.child_fqn(item.name)
        addressable = self._in_namespace_scope()
        is_method = self.scopes.current.kind in ("impl", "trait")
        module_fqn = self.scopes.module_fqn()

        frame = self.scopes.push("function", item.name, path, fn_id)
        generic_ids = self._visit_generics(item.generics, frame, fn_id)

        param_ids: list[NodeId] = []
        for index, param in enumerate(item.params):
            param_id = self.allocator.next_node()
            param_path = f"{path}::{param.name}"
            type_id = self.types.canonicalize(param.type, self.scopes, param_path) if param.type else None
            self._emit(
                NodeEvent(
                    ParameterNode(
                        id=param_id,
                        **self._common(param, param_path),
                        type_id=type_id,
                        index=index,
                        is_self=param.is_self,
                        is_mutable=param.is_mutable,
                    )
                )
            )
            self._relate(RelationKind.DECLARES, fn_id, param_id, origin=param_path)
            if type_id is not None:
                self._relate(RelationKind.FUNCTION_PARAMETER, fn_id, type_id, via=param_id, origin=param_path)
            param_ids.append(param_id)

        return_type = self.types.canonicalize(item.output, self.scopes, path) if item.output else None
        if return_type is not None:
            self._relate(RelationKind.FUNCTION_RETURN, fn_id, return_type, origin=path)

        for call in item.macro_calls:
            self._macro_use(fn_id, call.path, path)

        if item.body_items and self.config.include_block_items:
            # `{body}` cannot be an identifier, so block items never share a path with a sibling module
            block_path = f"{path}::{{body}}"
            self.scopes.push("block", item.name, block_path, fn_id)
            self.symbols.add_block_scope(block_path, module_fqn)
            self._emit(BlockScopeEvent(scope=block_path, parent=module_fqn))
            self._visit_items(item.body_items)
            self.scopes.pop()

        self.scopes.pop()

        self._emit(
            NodeEvent(
                FunctionNode(
                    id=fn_id,
                    **self._common(item, path),
                    parameters=tuple(param_ids),
                    return_type=return_type,
                    generic_params=generic_ids,
                    is_unsafe=item.is_unsafe,
                    is_async=item.is_async,
                    is_const=item.is_const,
                    abi=item.abi,
                    has_body=item.has_body,
                    is_method=is_method,
                    macro_calls=tuple(call.path for call in item.macro_calls),
                )
            )
        )
        self._attach(fn_id, path)
        if addressable:
            self._declare(path, NodeKind.FUNCTION.value, fn_id, item.attributes)
            return [fn_id, *self._proc_macro(item, fn_id)]
        return [fn_id]

    def _proc_macro(self, item: FunctionItem, fn_id: NodeId) -> list[NodeId]:
        """A function tagged #[proc_macro*] also defines a macro."""
        for attr in item.attributes:
            macro_kind = PROC_MACRO_ATTRIBUTES.get(attr.name)
            if macro_kind is None:
                continue
            name = attr.args[0] if macro_kind == MacroKind.PROC_DERIVE and attr.args else item.name
            path = f"{self.scopes.module_fqn()}::{name}"
            macro_id = self.allocator.next_node()
            self._emit(
                NodeEvent(
                    MacroNode(
                        id=macro_id,
                        name=name,
                        path=path,
                        visibility=item.visibility,
                        attributes=item.attributes,
                        docstring=item.docstring,
                        span=item.span,
                        file_path=self.unit.file_path,
                        macro_kind=macro_kind,
                        implementation=fn_id,
                        is_exported=True,
                    )
                )
            )
            self._attach(macro_id, path)
            self._declare(path, NodeKind.MACRO.value, macro_id, item.attributes)
            return [macro_id]
        return []

    # ============================================================
    # Structs, unions, enums
    # ============================================================

    def _visit_fields(
        self, fields: tuple[FieldSyntax, ...], owner: NodeId, owner_path: str, kind: RelationKind
    ) -> tuple[NodeId, ...]:
        created: list[NodeId] = []
        for index, field_syntax in enumerate(fields):
            field_id = self.allocator.next_node()
            path = f"{owner_path}::{field_syntax.name}"
            type_id = self.types.canonicalize(field_syntax.type, self.scopes, path)
            self._emit(NodeEvent(FieldNode(id=field_id, **self._common(field_syntax, path), type_id=type_id, index=index)))
            self._relate(RelationKind.DECLARES, owner, field_id, origin=path)
            self._relate(kind, owner, type_id, via=field_id, origin=path)
            created.append(field_id)
        return tuple(created)

    def _bind_self(self, frame: ScopeFrame, generics: tuple[GenericParamSyntax, ...], owner: NodeId) -> None:
        """`Self` in a type declaration is the declaration applied to its own type parameters."""
        args = tuple(frame.generics[p.name] for p in generics if p.kind == GenericParamKind.TYPE)
        frame.self_binding = lambda: self.types.declaration_type(frame.fqn, owner, args)

    def _visit_struct(self, item: StructItem) -> list[NodeId | TraitId]:
        struct_id = self.allocator.next_node()
        path = self.scopes.child_fqn(item.name)
        addressable = self._in_namespace_scope()
        if addressable:
            self._declare(path, NodeKind.STRUCT.value, struct_id, item.attributes)

        frame = self.scopes.push("struct", item.name, path, struct_id)
        generic_ids = self._visit_generics(item.generics, frame, struct_id)
        self._bind_self(frame, item.generics, struct_id)
        field_ids = self._visit_fields(item.fields, struct_id, path, RelationKind.STRUCT_FIELD)
        self.scopes.pop()

        self._emit(
            NodeEvent(
                StructNode(
                    id=struct_id,
                    **self._common(item, path),
                    fields=field_ids,
                    generic_params=generic_ids,
                    shape=item.shape,
                )
            )
        )
        self._attach(struct_id, path)
        return [struct_id]

    def _visit_union(self, item: UnionItem) -> list[NodeId | TraitId]:
        union_id = self.allocator.next_node()
        path = self.scopes.child_fqn(item.name)
        if self._in_namespace_scope():
            self._declare(path, NodeKind.UNION.value, union_id, item.attributes)

        frame = self.scopes.push("union", item.name, path, union_id)
        generic_ids = self._visit_generics(item.generics, frame, union_id)
        self._bind_self(frame, item.generics, union_id)
        field_ids = self._visit_fields(item.fields, union_id, path, RelationKind.STRUCT_FIELD)
        self.scopes.pop()

        self._emit(
            NodeEvent(UnionNode(id=union_id, **self._common(item, path), fields=field_ids, generic_params=generic_ids))
        )
        self._attach(union_id, path)
        return [union_id]

    def _visit_enum(self, item: EnumItem) -> list[NodeId | TraitId]:
        enum_id = self.allocator.next_node()
        path = self.scopes.child_fqn(item.name)
        addressable = self._in_namespace_scope()
        if addressable:
            self._declare(path, NodeKind.ENUM.value, enum_id, item.attributes)

        frame = self.scopes.push("enum", item.name, path, enum_id)
        generic_ids = self._visit_generics(item.generics, frame, enum_id)
        self._bind_self(frame, item.generics, enum_id)

        variant_ids: list[NodeId] = []
        for variant in item.variants:
            variant_id = self.allocator.next_node()
            variant_path = f"{path}::{variant.name}"
            field_ids = self._visit_fields(variant.fields, variant_id, variant_path, RelationKind.ENUM_VARIANT_FIELD)
            self._emit(
                NodeEvent(
                    VariantNode(
                        id=variant_id,
                        **self._common(variant, variant_path),
                        fields=field_ids,
                        shape=variant.shape,
                        discriminant=variant.discriminant,
                    )
                )
            )
            self._relate(RelationKind.DECLARES, enum_id, variant_id, origin=variant_path)
            if addressable:
                self._declare(variant_path, NodeKind.VARIANT.value, variant_id, variant.attributes)
            variant_ids.append(variant_id)
        self.scopes.pop()

        self._emit(
            NodeEvent(
                EnumNode(
                    id=enum_id,
                    **self._common(item, path),
                    variants=tuple(variant_ids),
                    generic_params=generic_ids,
                )
            )
        )
        self._attach(enum_id, path)
        return [enum_id]

    # ============================================================
    # Traits and impls
    # ============================================================

    def _trait_target(self, trait_path: PathType, origin: str) -> tuple[Target | None, str]:
        """
        Resolve the unspecialized declaration a trait path names.

        Returns:
            (target, canonical path). target is None for external traits and
            an Unresolved placeholder when the trait is not known yet.
        """
        plain = trait_path.unspecialized()
        module_fqn = self.scopes.module_fqn()
        resolution = self.symbols.resolve(
            plain.names, module_fqn, SymbolSpace.TYPE, leading_colon=plain.leading_colon
        )
        if resolution.status == ResolutionStatus.LOCAL and resolution.entry is not None:
            return resolution.entry.target, resolution.path
        if resolution.status == ResolutionStatus.EXTERNAL:
            return None, resolution.path
        placeholder = Unresolved(
            path=plain.path_text,
            scope=module_fqn,
            space=SymbolSpace.TYPE,
            expected=Namespace.TRAIT,
            origin=origin,
        )
        return placeholder, plain.path_text

    def _visit_trait(self, item: TraitItem) -> list[NodeId | TraitId]:
        trait_id = self.allocator.next_trait()
        path = self.scopes.child_fqn(item.name)
        if self._in_namespace_scope():
            self._declare(path, TRAIT_KIND, trait_id, item.attributes)

        self_type = self.types.generic_param(path, "Self")
        frame = self.scopes.push("trait", item.name, path, trait_id, self_type=self_type)
        generic_ids = self._visit_generics(item.generics, frame, trait_id)

        super_ids: list[TraitId] = []
        super_types: list[TypeId] = []
        for bound in item.supertraits:
            if not isinstance(bound, PathType):
                continue
            super_types.append(self.types.canonicalize(bound, self.scopes, path))
            target, _ = self._trait_target(bound, path)
            if target is None:
                continue
            if isinstance(target, TraitId):
                super_ids.append(target)
            self._relate(RelationKind.INHERITS, trait_id, target, origin=path)

        methods: list[NodeId] = []
        associated: list[NodeId] = []
        for member in item.items:
            created = [c for c in self._visit_item(member) if isinstance(c, NodeId)]
            if isinstance(member, FunctionItem):
                methods.extend(created)
            else:
                associated.extend(created)
        self.scopes.pop()

        self._emit(
            NodeEvent(
                TraitNode(
                    id=trait_id,
                    **self._common(item, path),
                    methods=tuple(methods),
                    associated_items=tuple(associated),
                    generic_params=generic_ids,
                    super_traits=tuple(super_ids),
                    super_trait_types=tuple(super_types),
                    is_unsafe=item.is_unsafe,
                    is_auto=item.is_auto,
                )
            )
        )
        self._attach(trait_id, path)
        return [trait_id]

    def _visit_impl(self, item: ImplItem) -> list[NodeId | TraitId]:
        impl_id = self.allocator.next_node()
        container = self.scopes.current_fqn()
        index = self._impl_counters.get(container, 0)
        self._impl_counters[container] = index + 1
        path = f"{container}::<impl#{index}>"

        frame = self.scopes.push("impl", f"<impl#{index}>", path, impl_id)
        generic_ids = self._visit_generics(item.generics, frame, impl_id)
        self_type = self.types.canonicalize(item.self_type, self.scopes, path)
        frame.self_type = self_type
        self._relate(RelationKind.IMPLEMENTS_FOR, impl_id, self_type, origin=path)

        trait_id: TraitId | None = None
        trait_type: TypeId | None = None
        trait_path: str | None = None
        if item.trait is not None:
            trait_type = self.types.canonicalize(item.trait, self.scopes, path)
            target, trait_path = self._trait_target(item.trait, path)
            if isinstance(target, TraitId):
                trait_id = target
            if target is not None and not item.is_negative:
                self._relate(RelationKind.IMPLEMENTS_TRAIT, self_type, target, via=impl_id, origin=path)

        methods: list[NodeId] = []
        associated: list[NodeId] = []
        for member in item.items:
            created = [c for c in self._visit_item(member) if isinstance(c, NodeId)]
            if isinstance(member, FunctionItem):
                methods.extend(created)
            else:
                associated.extend(created)
        self.scopes.pop()

        self_display = self.types.get(self_type).display
        if item.trait is not None:
            negation = "!" if item.is_negative else ""
            name = f"impl {negation}{self.types.get(trait_type).display} for {self_display}"
        else:
            name = f"impl {self_display}"

        self._emit(
            NodeEvent(
                ImplNode(
                    id=impl_id,
                    name=name,
                    path=path,
                    visibility=item.visibility,
                    attributes=item.attributes,
                    docstring=item.docstring,
                    span=item.span,
                    file_path=self.unit.file_path,
                    self_type=self_type,
                    trait_id=trait_id,
                    trait_type=trait_type,
                    trait_path=trait_path,
                    methods=tuple(methods),
                    associated_items=tuple(associated),
                    generic_params=generic_ids,
                    is_negative=item.is_negative,
                    is_unsafe=item.is_unsafe,
                )
            )
        )
        self._attach(impl_id, path)
        return [impl_id]

    # ============================================================
    # Modules
    # ============================================================

    def _visit_module(self, item: ModuleItem) -> list[NodeId | TraitId]:
        path = self.scopes.child_fqn(item.name)
        parent = self.scopes.current

        if item.items is None:
            # `mod a;` - the module body is another compilation unit
            if parent.node_id is not None and parent.kind == "module":
                placeholder = Unresolved(
                    path=f"self::{item.name}",
                    scope=self.scopes.module_fqn(),
                    space=SymbolSpace.TYPE,
                    expected=Namespace.NODE,
                    origin=path,
                )
                self._relate(RelationKind.CONTAINS, parent.node_id, placeholder, origin=path)
            return []

        module_id = self.allocator.next_node()
        self._declare(path, NodeKind.MODULE.value, module_id, item.attributes)
        self.scopes.push("module", item.name, path, module_id)
        items = self._visit_items(item.items)
        self.scopes.pop()

        self._emit(
            NodeEvent(
                ModuleNode(
                    id=module_id,
                    **self._common(item, path),
                    parent=parent.node_id if isinstance(parent.node_id, NodeId) else None,
                    items=tuple(items),
                    is_inline=True,
                )
            )
        )
        self._attach(module_id, path, is_module=True)
        return [module_id]

    # ============================================================
    # Aliases, values, macros
    # ============================================================

    def _visit_type_alias(self, item: TypeAliasItem) -> list[NodeId | TraitId]:
        alias_id = self.allocator.next_node()
        path = self.scopes.child_fqn(item.name)
        addressable = self._in_namespace_scope()

        frame = self.scopes.push("type_alias", item.name, path, alias_id)
        generic_ids = self._visit_generics(item.generics, frame, alias_id)
        aliased = self.types.canonicalize(item.type, self.scopes, path) if item.type else None
        bounds = tuple(self.types.canonicalize(bound, self.scopes, path) for bound in item.bounds)
        self.scopes.pop()

        if aliased is not None:
            self._relate(RelationKind.ALIAS_OF, alias_id, aliased, origin=path)
        self._emit(
            NodeEvent(
                TypeAliasNode(
                    id=alias_id,
                    **self._common(item, path),
                    aliased_type=aliased,
                    bounds=bounds,
                    generic_params=generic_ids,
                )
            )
        )
        self._attach(alias_id, path)
        if addressable:
            self._declare(path, NodeKind.TYPE_ALIAS.value, alias_id, item.attributes)
        return [alias_id]

    def _visit_value(self, item: ValueItem) -> list[NodeId | TraitId]:
        value_id = self.allocator.next_node()
        path = self.scopes.child_fqn(item.name)
        type_id = self.types.canonicalize(item.type, self.scopes, path) if item.type else None
        if type_id is not None:
            self._relate(RelationKind.VALUE_TYPE, value_id, type_id, origin=path)
        self._emit(
            NodeEvent(
                ValueNode(
                    id=value_id,
                    **self._common(item, path),
                    value_kind=item.kind,
                    type_id=type_id,
                    value=item.value,
                    is_mutable=item.is_mutable,
                )
            )
        )
        self._attach(value_id, path)
        if self._in_namespace_scope():
            self._declare(path, NodeKind.VALUE.value, value_id, item.attributes)
        return [value_id]

    def _visit_macro_rules(self, item: MacroRulesItem) -> list[NodeId | TraitId]:
        macro_id = self.allocator.next_node()
        path = self.scopes.child_fqn(item.name)

        rule_ids: list[NodeId] = []
        for index, rule in enumerate(item.rules):
            rule_id = self.allocator.next_node()
            rule_path = f"{path}::rule#{index}"
            self._emit(
                NodeEvent(
                    MacroRuleNode(
                        id=rule_id,
                        name=f"rule#{index}",
                        path=rule_path,
                        span=rule.span,
                        file_path=self.unit.file_path,
                        pattern=rule.pattern,
                        expansion=rule.expansion,
                        index=index,
                    )
                )
            )
            self._relate(RelationKind.MACRO_EXPANSION, macro_id, rule_id, origin=rule_path)
            rule_ids.append(rule_id)

        self._emit(
            NodeEvent(
                MacroNode(
                    id=macro_id,
                    **self._common(item, path),
                    macro_kind=MacroKind.DECLARATIVE,
                    rules=tuple(rule_ids),
                    is_exported=item.is_exported,
                )
            )
        )
        self._attach(macro_id, path)
        if self._in_namespace_scope():
            self._declare(path, NodeKind.MACRO.value, macro_id, item.attributes)
            crate_path = f"{self.config.crate_name}::{item.name}"
            if item.is_exported and crate_path != path:
                self._declare(crate_path, NodeKind.MACRO.value, macro_id, item.attributes)
        return [macro_id]

    def _visit_macro_call(self, item: MacroCallItem) -> list[NodeId | TraitId]:
        frame = self.scopes.current
        if isinstance(frame.node_id, NodeId):
            self._macro_use(frame.node_id, item.name, frame.fqn)
        return []

    def _macro_use(self, source: NodeId, macro_path: str, origin: str) -> None:
        module_fqn = self.scopes.module_fqn()
        names = tuple(macro_path.lstrip(":").split("::"))
        resolution = self.symbols.resolve_macro(names, module_fqn)
        if resolution.status == ResolutionStatus.EXTERNAL:
            return
        if resolution.status == ResolutionStatus.LOCAL and resolution.entry is not None:
            self._relate(RelationKind.MACRO_USE, source, resolution.entry.target, origin=origin)
            return
        placeholder = Unresolved(
            path=macro_path,
            scope=module_fqn,
            space=SymbolSpace.MACRO,
            expected=Namespace.NODE,
            origin=origin,
        )
        self._relate(RelationKind.MACRO_USE, source, placeholder, origin=origin)

    # ============================================================
    # Imports
    # ============================================================

    def _visit_use(self, item: UseItem) -> list[NodeId | TraitId]:
        scope = self.scopes.module_fqn()
        created: list[NodeId | TraitId] = []
        for entry in item.entries:
            import_id = self.allocator.next_node()
            source_text = "::".join(entry.path) + ("::*" if entry.is_glob else "")
            path = f"{scope}::{entry.visible_name}"

            resolution = self.symbols.resolve(entry.path, scope, None)
            if resolution.status == ResolutionStatus.LOCAL and resolution.entry is not None:
                self._relate(RelationKind.USES, import_id, resolution.entry.target, origin=path)
            elif resolution.status != ResolutionStatus.EXTERNAL:
                placeholder = Unresolved(
                    path="::".join(entry.path),
                    scope=scope,
                    space=None,
                    expected=Namespace.NODE,
                    origin=path,
                )
                self._relate(RelationKind.USES, import_id, placeholder, origin=path)

            binding = ImportBinding(
                scope=scope,
                name=entry.visible_name,
                target=entry.path,
                import_id=import_id,
                file_path=self.unit.file_path,
                is_glob=entry.is_glob,
            )
            self.symbols.add_import(binding)
            self._emit(ImportEvent(binding))

            self._emit(
                NodeEvent(
                    ImportNode(
                        id=import_id,
                        name=entry.visible_name,
                        path=path,
                        visibility=item.visibility,
                        attributes=item.attributes,
                        docstring=item.docstring,
                        span=entry.span or item.span,
                        file_path=self.unit.file_path,
                        import_kind=ImportKind.USE,
                        source_path=source_text,
                        alias=entry.alias,
                        is_glob=entry.is_glob,
                    )
                )
            )
            self._attach(import_id, path)
            created.append(import_id)
        return created

    def _visit_extern_crate(self, item: ExternCrateItem) -> list[NodeId | TraitId]:
        import_id = self.allocator.next_node()
        visible = item.alias or item.name
        path = f"{self.scopes.module_fqn()}::{visible}"
        if item.name != "self":
            self.symbols.add_extern_crate(visible, item.name)
            self._emit(ExternCrateEvent(name=visible, crate=item.name))
        self._emit(
            NodeEvent(
                ImportNode(
                    id=import_id,
                    **{**self._common(item, path), "name": visible},
                    import_kind=ImportKind.EXTERN_CRATE,
                    source_path=item.name,
                    alias=item.alias,
                )
            )
        )
        self._attach(import_id, path)
        return [import_id]


def traverse(unit: SourceUnit, config: GraphBuildConfig | None = None) -> FileFragment:
    """Traverse one compilation unit into a fragment."""
    return FileTraversal(unit, config).run()
