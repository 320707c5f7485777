"""
Rust front-end (tree-sitter)

Reads one Rust source file with tree-sitter-rust and produces the abstract
SourceUnit consumed by the traversal. Only declarations are modelled;
expressions are skipped except for macro invocation sites inside function
bodies.

Both the older (constrained_type_parameter / optional_type_parameter) and
the newer (type_parameter) generic parameter node shapes are accepted.
"""

from __future__ import annotations

import dataclasses

from tree_sitter import Node as TSNode

from codegraph_rs.ir.models import (
    Attribute,
    FieldsShape,
    GenericParamKind,
    ValueKind,
    Visibility,
    VisibilityKind,
)
from codegraph_rs.observability import get_logger
from codegraph_rs.parsing.ast_tree import AstTree
from codegraph_rs.parsing.parser_registry import ParserRegistry
from codegraph_rs.parsing.source_file import SourceFile
from codegraph_rs.syntax.models import (
    ArrayType,
    EnumItem,
    ExternCrateItem,
    FieldSyntax,
    FnPointerType,
    FunctionItem,
    GenericParamSyntax,
    ImplItem,
    ImplTraitType,
    InferredType,
    Item,
    MacroCallItem,
    MacroCallSyntax,
    MacroRuleSyntax,
    MacroRulesItem,
    MacroType,
    ModuleItem,
    NeverType,
    ParamSyntax,
    PathSegment,
    PathType,
    PointerType,
    ReferenceType,
    SliceType,
    SourceUnit,
    StructItem,
    SyntaxErrorInfo,
    TraitItem,
    TraitObjectType,
    TupleType,
    TypeAliasItem,
    TypeExpr,
    UnionItem,
    UnsupportedType,
    UseEntry,
    UseItem,
    ValueItem,
    VariantSyntax,
)

logger = get_logger(__name__)

ITEM_NODE_TYPES = frozenset(
    {
        "function_item",
        "function_signature_item",
        "struct_item",
        "union_item",
        "enum_item",
        "trait_item",
        "impl_item",
        "mod_item",
        "use_declaration",
        "const_item",
        "static_item",
        "type_item",
        "associated_type",
        "macro_definition",
        "extern_crate_declaration",
        "foreign_mod_item",
    }
)

COMMENT_TYPES = frozenset({"line_comment", "block_comment"})

SELF_TYPE = PathType((PathSegment("Self"),), False, "Self")


def _doc_text(comment: str) -> tuple[str, str] | None:
    """
    Classify a comment.

    Returns:
        ("outer" | "inner", text) for doc comments, None otherwise
    """
    comment = comment.rstrip()
    if comment.startswith("///") and not comment.startswith("////"):
        return "outer", _strip_marker(comment[3:])
    if comment.startswith("//!"):
        return "inner", _strip_marker(comment[3:])
    if comment.startswith("/**") and not comment.startswith("/***") and comment != "/**/":
        return "outer", _block_doc(comment[3:-2])
    if comment.startswith("/*!"):
        return "inner", _block_doc(comment[3:-2])
    return None


def _strip_marker(text: str) -> str:
    return text[1:] if text.startswith(" ") else text


def _block_doc(body: str) -> str:
    lines = []
    for line in body.strip().splitlines():
        line = line.strip()
        if line.startswith("*"):
            line = _strip_marker(line[1:])
        lines.append(line)
    return "\n".join(lines)


def _split_args(text: str) -> tuple[str, ...]:
    """Split `a, b(c, d), e` at top-level commas."""
    args: list[str] = []
    depth = 0
    current: list[str] = []
    for char in text:
        if char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
        if char == "," and depth == 0:
            args.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    tail = "".join(current).strip()
    if tail:
        args.append(tail)
    return tuple(arg for arg in args if arg)


def _unquote(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] == '"':
        return text[1:-1]
    return text


class RustSyntaxReader:
    """
    tree-sitter -> SourceUnit.

    Usage:
        reader = RustSyntaxReader(crate_name="crate")
        unit = reader.read(SourceFile.from_content("src/lib.rs", code))
    """

    def __init__(self, crate_name: str = "crate", registry: ParserRegistry | None = None):
        self.crate_name = crate_name
        self.registry = registry

    def read(self, source: SourceFile) -> SourceUnit:
        """
        Parse a file and build its SourceUnit.

        Raises:
            ParsingError: Parser could not produce a tree
        """
        ast = AstTree.parse(source, self.registry)
        unit = _UnitReader(ast).read(source.module_path(self.crate_name))
        logger.debug("unit_read", file_path=source.file_path, items=len(unit.items), errors=len(unit.errors))
        return unit


class _UnitReader:
    """Converts the tree of one file. Not shared between threads."""

    def __init__(self, ast: AstTree):
        self.ast = ast
        self._readers = {
            "function_item": self._function,
            "function_signature_item": self._function,
            "struct_item": self._struct,
            "union_item": self._union,
            "enum_item": self._enum,
            "trait_item": self._trait,
            "impl_item": self._impl,
            "mod_item": self._module,
            "use_declaration": self._use,
            "const_item": self._value,
            "static_item": self._value,
            "type_item": self._type_alias,
            "associated_type": self._type_alias,
            "macro_definition": self._macro_rules,
            "macro_invocation": self._macro_call,
            "extern_crate_declaration": self._extern_crate,
            "foreign_mod_item": self._foreign_mod,
        }

    def text(self, node: TSNode | None) -> str:
        return self.ast.get_text(node) if node is not None else ""

    def read(self, module_path: tuple[str, ...]) -> SourceUnit:
        root = self.ast.root
        inner_attrs: list[Attribute] = []
        inner_docs: list[str] = []
        for child in root.named_children:
            if child.type == "inner_attribute_item":
                attr = self._attribute(child)
                if attr is not None:
                    inner_attrs.append(attr)
            elif child.type in COMMENT_TYPES:
                doc = _doc_text(self.text(child))
                if doc is not None and doc[0] == "inner":
                    inner_docs.append(doc[1])

        errors = tuple(
            SyntaxErrorInfo(
                line=node.start_point[0] + 1,
                message=f"missing {node.type}" if node.is_missing else f"unexpected `{self.text(node)[:40]}`",
            )
            for node in self.ast.get_errors()
        )
        return SourceUnit(
            file_path=self.ast.source.file_path,
            module_path=module_path,
            items=tuple(self._items(root)),
            docstring="\n".join(inner_docs) or None,
            attributes=tuple(inner_attrs),
            errors=errors,
        )

    # ============================================================
    # Item lists
    # ============================================================

    def _items(self, container: TSNode, in_body: bool = False) -> list[Item]:
        """Read the items of a source_file / declaration_list / block."""
        items: list[Item] = []
        attrs: list[Attribute] = []
        docs: list[str] = []
        for child in container.named_children:
            kind = child.type
            if kind == "attribute_item":
                attr = self._attribute(child)
                if attr is not None:
                    if attr.name == "doc" and attr.value is not None:
                        docs.append(attr.value)
                    else:
                        attrs.append(attr)
                continue
            if kind in COMMENT_TYPES:
                doc = _doc_text(self.text(child))
                if doc is not None and doc[0] == "outer":
                    docs.append(doc[1])
                continue

            if kind == "expression_statement" and not in_body and child.named_children:
                # `foo! { ... }` at item level
                child = child.named_children[0]
                kind = child.type
            reader = self._readers.get(kind)
            if reader is not None and not (in_body and kind == "macro_invocation"):
                items.extend(reader(child, tuple(attrs), "\n".join(docs) or None))
            attrs, docs = [], []
        return items

    def _common(self, node: TSNode, attrs: tuple[Attribute, ...], doc: str | None, name: str | None = None) -> dict:
        if name is None:
            name = self.text(node.child_by_field_name("name"))
        return {
            "name": name,
            "visibility": self._visibility(node),
            "attributes": attrs,
            "docstring": doc,
            "span": self.ast.get_span(node),
        }

    # ============================================================
    # Attributes, visibility
    # ============================================================

    def _attribute(self, node: TSNode) -> Attribute | None:
        attribute = next((c for c in node.named_children if c.type == "attribute"), None)
        if attribute is None or not attribute.named_children:
            return None
        name = self.text(attribute.named_children[0])
        arguments = attribute.child_by_field_name("arguments")
        value = attribute.child_by_field_name("value")
        args: tuple[str, ...] = ()
        if arguments is not None:
            args = _split_args(self.text(arguments)[1:-1])
        return Attribute(name=name, args=args, value=_unquote(self.text(value)) if value is not None else None)

    def _visibility(self, node: TSNode) -> Visibility:
        modifier = next((c for c in node.named_children if c.type == "visibility_modifier"), None)
        if modifier is None:
            return Visibility()
        return self._visibility_of(modifier)

    def _visibility_of(self, modifier: TSNode) -> Visibility:
        text = "".join(self.text(modifier).split())
        if text == "pub":
            return Visibility(VisibilityKind.PUBLIC)
        if text in ("pub(crate)", "crate"):
            return Visibility(VisibilityKind.CRATE)
        if text.startswith("pub(in"):
            return Visibility(VisibilityKind.RESTRICTED, text[len("pub(in") : -1].strip())
        if text.startswith("pub(") and text.endswith(")"):
            return Visibility(VisibilityKind.RESTRICTED, text[4:-1])
        return Visibility(VisibilityKind.PUBLIC)

    @staticmethod
    def _has_token(node: TSNode, token: str) -> bool:
        return any(child.type == token for child in node.children)

    # ============================================================
    # Types
    # ============================================================

    def _type(self, node: TSNode | None) -> TypeExpr:
        if node is None:
            return UnsupportedType("")
        kind = node.type
        text = self.text(node)

        if kind in ("type_identifier", "primitive_type", "identifier", "self", "crate", "super"):
            return PathType((PathSegment(text),), False, text)
        if kind in ("scoped_type_identifier", "scoped_identifier", "generic_type"):
            segments, leading_colon = self._path_segments(node)
            return PathType(tuple(segments), leading_colon, text)
        if kind == "reference_type":
            lifetime = next((c for c in node.named_children if c.type == "lifetime"), None)
            return ReferenceType(
                self._type(node.child_by_field_name("type")),
                is_mutable=self._has_token(node, "mutable_specifier"),
                lifetime=self.text(lifetime) if lifetime is not None else None,
                text=text,
            )
        if kind == "pointer_type":
            return PointerType(
                self._type(node.child_by_field_name("type")),
                is_mutable=self._has_token(node, "mutable_specifier"),
                text=text,
            )
        if kind == "array_type":
            element = self._type(node.child_by_field_name("element"))
            length = node.child_by_field_name("length")
            if length is None:
                return SliceType(element, text)
            return ArrayType(element, self.text(length), text)
        if kind == "tuple_type":
            return TupleType(tuple(self._type(c) for c in node.named_children), text)
        if kind == "unit_type":
            return TupleType((), "()")
        if kind == "function_type":
            return self._function_type(node, text)
        if kind == "dynamic_type":
            return TraitObjectType(self._bound_list(node.child_by_field_name("trait")), True, text)
        if kind == "abstract_type":
            return ImplTraitType(self._bound_list(node.child_by_field_name("trait")), text)
        if kind == "bounded_type":
            return TraitObjectType(self._bound_list(node), False, text)
        if kind == "never_type":
            return NeverType()
        if kind == "macro_invocation":
            return MacroType(text)
        if text == "_":
            return InferredType()
        return UnsupportedType(text)

    def _path_segments(self, node: TSNode) -> tuple[list[PathSegment], bool]:
        kind = node.type
        if kind == "generic_type":
            segments, leading_colon = self._path_segments(node.child_by_field_name("type"))
            args, bindings = self._type_arguments(node.child_by_field_name("type_arguments"))
            last = segments[-1]
            segments[-1] = PathSegment(last.name, args, bindings)
            return segments, leading_colon
        if kind in ("scoped_type_identifier", "scoped_identifier"):
            path = node.child_by_field_name("path")
            name = node.child_by_field_name("name")
            if path is None:
                segments, leading_colon = [], True
            else:
                segments, leading_colon = self._path_segments(path)
            segments.append(PathSegment(self.text(name)))
            return segments, leading_colon
        return [PathSegment(self.text(node))], False

    def _type_arguments(self, node: TSNode | None) -> tuple[tuple[TypeExpr, ...], tuple[tuple[str, TypeExpr], ...]]:
        if node is None:
            return (), ()
        args: list[TypeExpr] = []
        bindings: list[tuple[str, TypeExpr]] = []
        for child in node.named_children:
            if child.type == "lifetime":
                continue
            if child.type == "type_binding":
                bindings.append((self.text(child.child_by_field_name("name")), self._type(child.child_by_field_name("type"))))
            elif child.type == "trait_bounds":
                continue
            else:
                args.append(self._type(child))
        return tuple(args), tuple(bindings)

    def _function_type(self, node: TSNode, text: str) -> TypeExpr:
        params: list[TypeExpr] = []
        parameters = node.child_by_field_name("parameters")
        if parameters is not None:
            for child in parameters.named_children:
                if child.type == "parameter":
                    params.append(self._type(child.child_by_field_name("type")))
                elif child.type not in ("attribute_item", "variadic_parameter"):
                    params.append(self._type(child))
        return_node = node.child_by_field_name("return_type")
        output = self._type(return_node) if return_node is not None else None

        trait = node.child_by_field_name("trait")
        if trait is not None:
            # Fn(A, B) -> C is sugar for Fn<(A, B), Output = C>
            bindings = (("Output", output),) if output is not None else ()
            segments, leading_colon = self._path_segments(trait)
            last = segments[-1]
            segments[-1] = PathSegment(last.name, (TupleType(tuple(params)),), bindings)
            return PathType(tuple(segments), leading_colon, text)

        is_unsafe, _, _, abi = self._modifiers(node)
        return FnPointerType(tuple(params), output, is_unsafe, abi, text)

    def _bound_list(self, node: TSNode | None) -> tuple[TypeExpr, ...]:
        if node is None:
            return ()
        if node.type not in ("bounded_type", "trait_bounds"):
            return (self._type(node),)
        bounds: list[TypeExpr] = []
        for child in node.named_children:
            if child.type in ("lifetime", "removed_trait_bound"):
                continue
            if child.type == "higher_ranked_trait_bound":
                child = child.child_by_field_name("type")
            bounds.extend(self._bound_list(child))
        return tuple(bounds)

    def _lifetimes(self, node: TSNode | None) -> tuple[str, ...]:
        if node is None:
            return ()
        return tuple(self.text(c) for c in node.named_children if c.type == "lifetime")

    # ============================================================
    # Generics
    # ============================================================

    def _generics(self, node: TSNode) -> tuple[GenericParamSyntax, ...]:
        params_node = node.child_by_field_name("type_parameters")
        if params_node is None:
            return ()
        params: list[GenericParamSyntax] = []
        for child in params_node.named_children:
            param = self._generic_param(child)
            if param is not None:
                params.append(param)

        where = next((c for c in node.named_children if c.type == "where_clause"), None)
        if where is None:
            return tuple(params)
        extra: dict[str, tuple[tuple[TypeExpr, ...], tuple[str, ...]]] = {}
        for predicate in where.named_children:
            if predicate.type != "where_predicate":
                continue
            left = self.text(predicate.child_by_field_name("left"))
            bounds = predicate.child_by_field_name("bounds")
            types, lifetimes = extra.get(left, ((), ()))
            extra[left] = (types + self._bound_list(bounds), lifetimes + self._lifetimes(bounds))
        return tuple(
            dataclasses.replace(
                p,
                bounds=p.bounds + extra[p.name][0],
                lifetime_bounds=p.lifetime_bounds + extra[p.name][1],
            )
            if p.name in extra
            else p
            for p in params
        )

    def _generic_param(self, node: TSNode) -> GenericParamSyntax | None:
        kind = node.type
        span = self.ast.get_span(node)
        if kind == "type_identifier":
            return GenericParamSyntax(self.text(node), span=span)
        if kind in ("lifetime", "lifetime_parameter"):
            name_node = node.child_by_field_name("name") if kind == "lifetime_parameter" else node
            bounds = node.child_by_field_name("bounds") if kind == "lifetime_parameter" else None
            return GenericParamSyntax(
                self.text(name_node), GenericParamKind.LIFETIME, lifetime_bounds=self._lifetimes(bounds), span=span
            )
        if kind == "const_parameter":
            default = node.child_by_field_name("value")
            return GenericParamSyntax(
                self.text(node.child_by_field_name("name")),
                GenericParamKind.CONST,
                const_type=self._type(node.child_by_field_name("type")),
                default=UnsupportedType(self.text(default)) if default is not None else None,
                span=span,
            )
        if kind == "constrained_type_parameter":
            left = node.child_by_field_name("left")
            bounds = node.child_by_field_name("bounds")
            if left is not None and left.type == "lifetime":
                return GenericParamSyntax(
                    self.text(left), GenericParamKind.LIFETIME, lifetime_bounds=self._lifetimes(bounds), span=span
                )
            return GenericParamSyntax(
                self.text(left),
                bounds=self._bound_list(bounds),
                lifetime_bounds=self._lifetimes(bounds),
                span=span,
            )
        if kind == "optional_type_parameter":
            inner = self._generic_param(node.child_by_field_name("name"))
            default = node.child_by_field_name("default_type")
            if inner is None:
                return None
            return dataclasses.replace(inner, default=self._type(default) if default is not None else None, span=span)
        if kind == "type_parameter":
            bounds = node.child_by_field_name("bounds")
            default = node.child_by_field_name("default_type")
            return GenericParamSyntax(
                self.text(node.child_by_field_name("name")),
                bounds=self._bound_list(bounds),
                lifetime_bounds=self._lifetimes(bounds),
                default=self._type(default) if default is not None else None,
                span=span,
            )
        return None

    # ============================================================
    # Functions
    # ============================================================

    def _modifiers(self, node: TSNode) -> tuple[bool, bool, bool, str | None]:
        """(unsafe, async, const, abi) from a function_modifiers child."""
        modifiers = next((c for c in node.children if c.type == "function_modifiers"), None)
        if modifiers is None:
            return False, False, False, None
        tokens = {c.type for c in modifiers.children}
        abi = None
        extern = next((c for c in modifiers.children if c.type == "extern_modifier"), None)
        if extern is not None:
            literal = next((c for c in extern.named_children if c.type == "string_literal"), None)
            abi = _unquote(self.text(literal)) if literal is not None else "C"
        return "unsafe" in tokens, "async" in tokens, "const" in tokens, abi

    def _param(self, node: TSNode, index: int) -> ParamSyntax | None:
        span = self.ast.get_span(node)
        if node.type == "self_parameter":
            text = "".join(self.text(node).split())
            is_reference = text.startswith("&")
            mutable_ref = is_reference and self._has_token(node, "mutable_specifier")
            param_type: TypeExpr = ReferenceType(SELF_TYPE, mutable_ref, text=text) if is_reference else SELF_TYPE
            return ParamSyntax(
                name="self",
                type=param_type,
                is_self=True,
                is_mutable=not is_reference and self._has_token(node, "mutable_specifier"),
                span=span,
            )
        if node.type != "parameter":
            return None

        pattern = node.child_by_field_name("pattern")
        is_mutable = False
        if pattern is not None and pattern.type == "mut_pattern":
            is_mutable = True
            pattern = pattern.named_children[-1] if pattern.named_children else pattern
        name = self.text(pattern) if pattern is not None else f"arg{index}"
        type_node = node.child_by_field_name("type")
        return ParamSyntax(
            name=name,
            type=self._type(type_node) if type_node is not None else None,
            is_self=name == "self",
            is_mutable=is_mutable,
            span=span,
        )

    def _macro_calls(self, body: TSNode) -> tuple[MacroCallSyntax, ...]:
        """Macro invocations in a function body, excluding nested items."""
        calls: list[MacroCallSyntax] = []
        stack = list(reversed(body.named_children))
        while stack:
            node = stack.pop()
            if node.type in ITEM_NODE_TYPES:
                continue
            if node.type == "macro_invocation":
                calls.append(MacroCallSyntax(self.text(node.child_by_field_name("macro")), self.ast.get_span(node)))
            stack.extend(reversed(node.named_children))
        return tuple(calls)

    def _function(self, node: TSNode, attrs, doc) -> list[Item]:
        is_unsafe, is_async, is_const, abi = self._modifiers(node)
        params = []
        parameters = node.child_by_field_name("parameters")
        if parameters is not None:
            for index, child in enumerate(c for c in parameters.named_children if c.type != "attribute_item"):
                param = self._param(child, index)
                if param is not None:
                    params.append(param)
        return_node = node.child_by_field_name("return_type")
        body = node.child_by_field_name("body")

        return [
            FunctionItem(
                **self._common(node, attrs, doc),
                params=tuple(params),
                output=self._type(return_node) if return_node is not None else None,
                generics=self._generics(node),
                is_unsafe=is_unsafe,
                is_async=is_async,
                is_const=is_const,
                abi=abi,
                has_body=body is not None,
                body_items=tuple(self._items(body, in_body=True)) if body is not None else (),
                macro_calls=self._macro_calls(body) if body is not None else (),
            )
        ]

    def _foreign_mod(self, node: TSNode, attrs, doc) -> list[Item]:
        """extern "C" { ... }: the declarations become module-level items."""
        extern = next((c for c in node.children if c.type == "extern_modifier"), None)
        literal = next((c for c in extern.named_children if c.type == "string_literal"), None) if extern else None
        abi = _unquote(self.text(literal)) if literal is not None else "C"
        body = node.child_by_field_name("body")
        if body is None:
            return []
        items = []
        for item in self._items(body):
            if isinstance(item, FunctionItem):
                item = dataclasses.replace(item, abi=abi, has_body=False)
            items.append(item)
        return items

    # ============================================================
    # Structs, unions, enums
    # ============================================================

    def _named_fields(self, node: TSNode) -> tuple[FieldSyntax, ...]:
        fields: list[FieldSyntax] = []
        attrs: list[Attribute] = []
        docs: list[str] = []
        for child in node.named_children:
            if child.type == "attribute_item":
                attr = self._attribute(child)
                if attr is not None:
                    attrs.append(attr)
                continue
            if child.type in COMMENT_TYPES:
                doc = _doc_text(self.text(child))
                if doc is not None and doc[0] == "outer":
                    docs.append(doc[1])
                continue
            if child.type == "field_declaration":
                fields.append(
                    FieldSyntax(
                        **self._common(child, tuple(attrs), "\n".join(docs) or None),
                        type=self._type(child.child_by_field_name("type")),
                    )
                )
            attrs, docs = [], []
        return tuple(fields)

    def _tuple_fields(self, node: TSNode) -> tuple[FieldSyntax, ...]:
        fields: list[FieldSyntax] = []
        attrs: list[Attribute] = []
        visibility = Visibility()
        for child in node.named_children:
            if child.type == "attribute_item":
                attr = self._attribute(child)
                if attr is not None:
                    attrs.append(attr)
                continue
            if child.type == "visibility_modifier":
                visibility = self._visibility_of(child)
                continue
            if child.type in COMMENT_TYPES:
                continue
            fields.append(
                FieldSyntax(
                    name=str(len(fields)),
                    visibility=visibility,
                    attributes=tuple(attrs),
                    span=self.ast.get_span(child),
                    type=self._type(child),
                )
            )
            attrs, visibility = [], Visibility()
        return tuple(fields)

    def _fields(self, body: TSNode | None) -> tuple[tuple[FieldSyntax, ...], FieldsShape]:
        if body is None:
            return (), FieldsShape.UNIT
        if body.type == "ordered_field_declaration_list":
            return self._tuple_fields(body), FieldsShape.TUPLE
        return self._named_fields(body), FieldsShape.NAMED

    def _struct(self, node: TSNode, attrs, doc) -> list[Item]:
        fields, shape = self._fields(node.child_by_field_name("body"))
        return [StructItem(**self._common(node, attrs, doc), fields=fields, generics=self._generics(node), shape=shape)]

    def _union(self, node: TSNode, attrs, doc) -> list[Item]:
        fields, _ = self._fields(node.child_by_field_name("body"))
        return [UnionItem(**self._common(node, attrs, doc), fields=fields, generics=self._generics(node))]

    def _enum(self, node: TSNode, attrs, doc) -> list[Item]:
        variants: list[VariantSyntax] = []
        body = node.child_by_field_name("body")
        variant_attrs: list[Attribute] = []
        variant_docs: list[str] = []
        for child in body.named_children if body is not None else ():
            if child.type == "attribute_item":
                attr = self._attribute(child)
                if attr is not None:
                    variant_attrs.append(attr)
                continue
            if child.type in COMMENT_TYPES:
                doc_comment = _doc_text(self.text(child))
                if doc_comment is not None and doc_comment[0] == "outer":
                    variant_docs.append(doc_comment[1])
                continue
            if child.type == "enum_variant":
                fields, shape = self._fields(child.child_by_field_name("body"))
                value = child.child_by_field_name("value")
                variants.append(
                    VariantSyntax(
                        **self._common(child, tuple(variant_attrs), "\n".join(variant_docs) or None),
                        fields=fields,
                        shape=shape,
                        discriminant=self.text(value) if value is not None else None,
                    )
                )
            variant_attrs, variant_docs = [], []
        return [EnumItem(**self._common(node, attrs, doc), variants=tuple(variants), generics=self._generics(node))]

    # ============================================================
    # Traits, impls
    # ============================================================

    def _trait(self, node: TSNode, attrs, doc) -> list[Item]:
        body = node.child_by_field_name("body")
        return [
            TraitItem(
                **self._common(node, attrs, doc),
                generics=self._generics(node),
                supertraits=self._bound_list(node.child_by_field_name("bounds")),
                items=tuple(self._items(body)) if body is not None else (),
                is_unsafe=self._has_token(node, "unsafe"),
                is_auto=self._has_token(node, "auto"),
            )
        ]

    def _impl(self, node: TSNode, attrs, doc) -> list[Item]:
        body = node.child_by_field_name("body")
        trait_node = node.child_by_field_name("trait")
        trait = self._type(trait_node) if trait_node is not None else None
        return [
            ImplItem(
                **self._common(node, attrs, doc, name=""),
                self_type=self._type(node.child_by_field_name("type")),
                trait=trait if isinstance(trait, PathType) else None,
                generics=self._generics(node),
                items=tuple(self._items(body)) if body is not None else (),
                is_negative=self._has_token(node, "!"),
                is_unsafe=self._has_token(node, "unsafe"),
            )
        ]

    # ============================================================
    # Modules, imports
    # ============================================================

    def _module(self, node: TSNode, attrs, doc) -> list[Item]:
        body = node.child_by_field_name("body")
        return [ModuleItem(**self._common(node, attrs, doc), items=tuple(self._items(body)) if body is not None else None)]

    def _use_path(self, node: TSNode | None) -> tuple[str, ...]:
        if node is None:
            return ()
        if node.type == "scoped_identifier":
            return (*self._use_path(node.child_by_field_name("path")), self.text(node.child_by_field_name("name")))
        return (self.text(node),)

    def _use_entries(self, node: TSNode, prefix: tuple[str, ...]) -> list[UseEntry]:
        kind = node.type
        span = self.ast.get_span(node)
        if kind == "use_as_clause":
            path = prefix + self._use_path(node.child_by_field_name("path"))
            if len(path) > 1 and path[-1] == "self":
                # use a::b::{self as c}
                path = path[:-1]
            return [UseEntry(path=path, alias=self.text(node.child_by_field_name("alias")), span=span)]
        if kind == "use_list":
            entries: list[UseEntry] = []
            for child in node.named_children:
                if child.type not in COMMENT_TYPES:
                    entries.extend(self._use_entries(child, prefix))
            return entries
        if kind == "scoped_use_list":
            base = prefix + self._use_path(node.child_by_field_name("path"))
            return self._use_entries(node.child_by_field_name("list"), base)
        if kind == "use_wildcard":
            path_node = node.named_children[0] if node.named_children else None
            return [UseEntry(path=prefix + self._use_path(path_node), is_glob=True, span=span)]

        path = prefix + self._use_path(node)
        if len(path) > 1 and path[-1] == "self":
            # use a::b::{self}
            path = path[:-1]
        return [UseEntry(path=path, span=span)]

    def _use(self, node: TSNode, attrs, doc) -> list[Item]:
        argument = node.child_by_field_name("argument")
        entries = self._use_entries(argument, ()) if argument is not None else []
        return [UseItem(**self._common(node, attrs, doc, name="use"), entries=tuple(entries))]

    def _extern_crate(self, node: TSNode, attrs, doc) -> list[Item]:
        alias = node.child_by_field_name("alias")
        return [ExternCrateItem(**self._common(node, attrs, doc), alias=self.text(alias) if alias is not None else None)]

    # ============================================================
    # Aliases, values, macros
    # ============================================================

    def _type_alias(self, node: TSNode, attrs, doc) -> list[Item]:
        type_node = node.child_by_field_name("type")
        return [
            TypeAliasItem(
                **self._common(node, attrs, doc),
                type=self._type(type_node) if type_node is not None else None,
                generics=self._generics(node),
                bounds=self._bound_list(node.child_by_field_name("bounds")),
            )
        ]

    def _value(self, node: TSNode, attrs, doc) -> list[Item]:
        type_node = node.child_by_field_name("type")
        value = node.child_by_field_name("value")
        return [
            ValueItem(
                **self._common(node, attrs, doc),
                kind=ValueKind.STATIC if node.type == "static_item" else ValueKind.CONST,
                type=self._type(type_node) if type_node is not None else None,
                value=self.text(value) if value is not None else None,
                is_mutable=self._has_token(node, "mutable_specifier"),
            )
        ]

    def _macro_rules(self, node: TSNode, attrs, doc) -> list[Item]:
        rules = tuple(
            MacroRuleSyntax(
                pattern=self.text(rule.child_by_field_name("left")),
                expansion=self.text(rule.child_by_field_name("right")),
                span=self.ast.get_span(rule),
            )
            for rule in node.named_children
            if rule.type == "macro_rule"
        )
        return [
            MacroRulesItem(
                **self._common(node, attrs, doc),
                rules=rules,
                is_exported=any(attr.name == "macro_export" for attr in attrs),
            )
        ]

    def _macro_call(self, node: TSNode, attrs, doc) -> list[Item]:
        name = self.text(node.child_by_field_name("macro"))
        return [MacroCallItem(**self._common(node, attrs, doc, name=name))]
