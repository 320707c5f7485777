"""
Tests for per-file AST traversal

Units are built by hand from the syntax dataclasses, so these tests do not
depend on the tree-sitter front-end.
"""

import pytest

from codegraph_rs.builder.traversal import traverse
from codegraph_rs.config import GraphBuildConfig
from codegraph_rs.diagnostics import DiagnosticCode
from codegraph_rs.exceptions import NamespaceExhaustedError, PathCollisionError
from codegraph_rs.ir.ids import Namespace, NodeId, TraitId, TypeId
from codegraph_rs.ir.models import (
    Attribute,
    FieldsShape,
    MacroKind,
    NodeKind,
    TypeResolution,
)
from codegraph_rs.ir.relations import RelationKind, SymbolSpace, Unresolved
from codegraph_rs.syntax.models import (
    EnumItem,
    FieldSyntax,
    FunctionItem,
    GenericParamSyntax,
    ImplItem,
    MacroCallSyntax,
    MacroRuleSyntax,
    MacroRulesItem,
    ModuleItem,
    ParamSyntax,
    ReferenceType,
    SliceType,
    StructItem,
    SyntaxErrorInfo,
    TraitItem,
    TypeAliasItem,
    UseEntry,
    UseItem,
    ValueItem,
    VariantSyntax,
    simple_path,
)


def _node(fragment, path):
    matches = [node for node in fragment.nodes if node.path == path]
    assert len(matches) == 1, f"expected one node at {path}, got {matches}"
    return matches[0]


def _relations(fragment, kind):
    return [relation for relation in fragment.relations if relation.kind == kind]


def _type(fragment, type_id):
    return next(node for node in fragment.types if node.id == type_id)


def _pair():
    return StructItem(
        name="Pair",
        generics=(GenericParamSyntax("T"),),
        fields=(
            FieldSyntax(name="a", type=simple_path("T")),
            FieldSyntax(name="b", type=simple_path("T")),
        ),
    )


class TestStructs:
    """Structs, fields and generics"""

    def test_pair_fields_share_type(self, make_unit, config):
        """Test: struct Pair<T> { a: T, b: T } yields two field relations to one type"""
        fragment = traverse(make_unit("src/lib.rs", _pair()), config)

        pair = _node(fragment, "crate::Pair")
        field_a = _node(fragment, "crate::Pair::a")
        field_b = _node(fragment, "crate::Pair::b")
        fields = _relations(fragment, RelationKind.STRUCT_FIELD)

        assert len(fields) == 2
        assert {relation.source for relation in fields} == {pair.id}
        assert fields[0].target == fields[1].target
        assert {fields[0].via, fields[1].via} == {field_a.id, field_b.id}
        assert pair.fields == (field_a.id, field_b.id)
        assert _type(fragment, fields[0].target).resolution == TypeResolution.GENERIC

    def test_generic_parameter_relation(self, make_unit, config):
        fragment = traverse(make_unit("src/lib.rs", _pair()), config)

        pair = _node(fragment, "crate::Pair")
        param = _node(fragment, "crate::Pair::T")
        generic = _relations(fragment, RelationKind.GENERIC_PARAMETER)

        assert pair.generic_params == (param.id,)
        assert len(generic) == 1
        assert generic[0].source == pair.id
        assert generic[0].via == param.id
        assert generic[0].target == param.type_id

    def test_module_contains_struct(self, make_unit, config):
        fragment = traverse(make_unit("src/lib.rs", _pair()), config)

        root = _node(fragment, "crate")
        pair = _node(fragment, "crate::Pair")

        assert root.is_file_root
        assert root.items == (pair.id,)
        contains = _relations(fragment, RelationKind.CONTAINS)
        assert [(r.source, r.target) for r in contains] == [(root.id, pair.id)]

    def test_nested_file_module_path(self, make_unit, config):
        fragment = traverse(make_unit("src/geo/shapes.rs", StructItem(name="Point")), config)

        assert _node(fragment, "crate::geo::shapes::Point").kind == NodeKind.STRUCT

    def test_enum_variant_fields(self, make_unit, config):
        shape = EnumItem(
            name="Shape",
            variants=(
                VariantSyntax(name="Empty"),
                VariantSyntax(
                    name="Circle",
                    shape=FieldsShape.TUPLE,
                    fields=(FieldSyntax(name="0", type=simple_path("f64")),),
                ),
            ),
        )
        fragment = traverse(make_unit("src/lib.rs", shape), config)

        circle = _node(fragment, "crate::Shape::Circle")
        variant_fields = _relations(fragment, RelationKind.ENUM_VARIANT_FIELD)

        assert circle.shape == FieldsShape.TUPLE
        assert len(variant_fields) == 1
        assert variant_fields[0].source == circle.id
        assert _type(fragment, variant_fields[0].target).display == "f64"
        assert "crate::Shape::Empty" in {entry.path for entry in fragment.symbols}

    def test_self_in_struct_is_the_struct(self, make_unit, config):
        """Test: struct Node { next: Option<Box<Self>>, prev: Option<Box<Node>> } has one field type"""
        node = StructItem(
            name="Node",
            fields=(
                FieldSyntax(name="next", type=simple_path("Option", simple_path("Box", simple_path("Self")))),
                FieldSyntax(name="prev", type=simple_path("Option", simple_path("Box", simple_path("Node")))),
            ),
        )
        fragment = traverse(make_unit("src/lib.rs", node), config)

        struct = _node(fragment, "crate::Node")
        next_field, prev_field = _relations(fragment, RelationKind.STRUCT_FIELD)
        boxed = _type(fragment, _type(fragment, next_field.target).related_types[0])
        inner = _type(fragment, boxed.related_types[0])

        assert next_field.target == prev_field.target
        assert inner.resolution == TypeResolution.DECLARATION
        assert inner.declaration == struct.id
        assert inner.display == "crate::Node"
        assert DiagnosticCode.UNRESOLVED_TYPE not in {d.code for d in fragment.diagnostics}

    def test_self_in_generic_enum_carries_parameters(self, make_unit, config):
        """Test: inside enum List<T>, Self is List<T>"""
        items = EnumItem(
            name="List",
            generics=(GenericParamSyntax("T"),),
            variants=(
                VariantSyntax(
                    name="Cons",
                    shape=FieldsShape.TUPLE,
                    fields=(
                        FieldSyntax(name="0", type=simple_path("T")),
                        FieldSyntax(name="1", type=simple_path("Box", simple_path("Self"))),
                    ),
                ),
                VariantSyntax(
                    name="Link",
                    shape=FieldsShape.TUPLE,
                    fields=(FieldSyntax(name="0", type=simple_path("Box", simple_path("List", simple_path("T")))),),
                ),
            ),
        )
        fragment = traverse(make_unit("src/lib.rs", items), config)

        cons = _node(fragment, "crate::List::Cons")
        link = _node(fragment, "crate::List::Link")
        param = _node(fragment, "crate::List::T")
        variant_fields = _relations(fragment, RelationKind.ENUM_VARIANT_FIELD)
        cons_targets = [r.target for r in variant_fields if r.source == cons.id]
        link_targets = [r.target for r in variant_fields if r.source == link.id]
        inner = _type(fragment, _type(fragment, cons_targets[1]).related_types[0])

        assert cons_targets[1] == link_targets[0]
        assert inner.declaration == _node(fragment, "crate::List").id
        assert inner.related_types == (param.type_id,)
        assert inner.display == "crate::List<T>"

    def test_unused_self_interns_nothing(self, make_unit, config):
        fragment = traverse(make_unit("src/lib.rs", StructItem(name="Unit")), config)

        assert not any(node.path == "crate::Unit" for node in fragment.types)


class TestFunctions:
    """Functions, parameters and return types"""

    def test_parameters_and_return(self, make_unit, config):
        first = FunctionItem(
            name="first",
            generics=(GenericParamSyntax("T", bounds=(simple_path("Clone"),)),),
            params=(ParamSyntax(name="items", type=ReferenceType(SliceType(simple_path("T")))),),
            output=simple_path("T"),
        )
        fragment = traverse(make_unit("src/lib.rs", first), config)

        function = _node(fragment, "crate::first")
        items = _node(fragment, "crate::first::items")
        param_t = _node(fragment, "crate::first::T")
        [parameter] = _relations(fragment, RelationKind.FUNCTION_PARAMETER)
        [returns] = _relations(fragment, RelationKind.FUNCTION_RETURN)

        assert function.parameters == (items.id,)
        assert parameter.via == items.id
        assert _type(fragment, parameter.target).display == "&[T]"
        assert returns.target == param_t.type_id
        assert _type(fragment, param_t.bounds[0]).path == "std::clone::Clone"

    def test_function_has_no_return_relation_for_unit(self, make_unit, config):
        fragment = traverse(make_unit("src/lib.rs", FunctionItem(name="main")), config)

        assert _relations(fragment, RelationKind.FUNCTION_RETURN) == []
        assert _node(fragment, "crate::main").return_type is None

    def test_block_items_are_scoped_to_function(self, make_unit, config):
        run = FunctionItem(name="run", body_items=(StructItem(name="Guard"),))
        fragment = traverse(make_unit("src/lib.rs", run), config)

        function = _node(fragment, "crate::run")
        guard = _node(fragment, "crate::run::{body}::Guard")
        declares = _relations(fragment, RelationKind.DECLARES)

        assert (function.id, guard.id) in {(r.source, r.target) for r in declares}
        assert "crate::run::{body}::Guard" in {entry.path for entry in fragment.symbols}

    def test_block_items_skipped_when_disabled(self, make_unit):
        run = FunctionItem(name="run", body_items=(StructItem(name="Guard"),))
        config = GraphBuildConfig(parallel=False, include_block_items=False)
        fragment = traverse(make_unit("src/lib.rs", run), config)

        assert not any(node.path == "crate::run::{body}::Guard" for node in fragment.nodes)

    def test_block_items_do_not_collide_with_sibling_module(self, make_unit, config):
        """Test: mod f { struct X; } next to fn f() { struct X; }"""
        unit = make_unit(
            "src/lib.rs",
            ModuleItem(name="f", items=(StructItem(name="X"),)),
            FunctionItem(name="f", body_items=(StructItem(name="X"),)),
        )
        fragment = traverse(unit, config)

        module_x = _node(fragment, "crate::f::X")
        block_x = _node(fragment, "crate::f::{body}::X")

        assert module_x.id != block_x.id
        assert {"crate::f::X", "crate::f::{body}::X"} <= {entry.path for entry in fragment.symbols}

    def test_block_module_is_contained_by_function(self, make_unit, config):
        """Test: fn f() { mod inner { struct X; } }"""
        run = FunctionItem(name="f", body_items=(ModuleItem(name="inner", items=(StructItem(name="X"),)),))
        fragment = traverse(make_unit("src/lib.rs", run), config)

        function = _node(fragment, "crate::f")
        inner = _node(fragment, "crate::f::{body}::inner")
        contains = {(r.source, r.target) for r in _relations(fragment, RelationKind.CONTAINS)}

        assert (function.id, inner.id) in contains
        assert (inner.id, _node(fragment, "crate::f::{body}::inner::X").id) in contains
        assert inner.parent == function.id
        assert DiagnosticCode.SCHEMA_VIOLATION not in {d.code for d in fragment.diagnostics}


class TestTraitsAndImpls:
    """Traits, impls and provisional relations"""

    def test_impl_relations(self, make_unit, config):
        unit = make_unit(
            "src/lib.rs",
            TraitItem(name="Shape"),
            StructItem(name="Circle"),
            ImplItem(self_type=simple_path("Circle"), trait=simple_path("Shape")),
        )
        fragment = traverse(unit, config)

        trait = _node(fragment, "crate::Shape")
        impl = _node(fragment, "crate::<impl#0>")
        [implements] = _relations(fragment, RelationKind.IMPLEMENTS_TRAIT)
        [implements_for] = _relations(fragment, RelationKind.IMPLEMENTS_FOR)

        assert isinstance(trait.id, TraitId)
        assert implements.target == trait.id
        assert implements.via == impl.id
        assert implements.source == impl.self_type == implements_for.target
        assert impl.trait_id == trait.id
        assert impl.name == "impl crate::Shape for crate::Circle"

    def test_forward_trait_reference_is_provisional(self, make_unit, config):
        unit = make_unit(
            "src/lib.rs",
            ImplItem(self_type=simple_path("Circle"), trait=simple_path("Shape")),
            TraitItem(name="Shape"),
            StructItem(name="Circle"),
        )
        fragment = traverse(unit, config)

        [implements] = _relations(fragment, RelationKind.IMPLEMENTS_TRAIT)

        assert implements.is_provisional
        assert isinstance(implements.target, Unresolved)
        assert implements.target.expected == Namespace.TRAIT
        assert implements.target.path == "Shape"
        assert _node(fragment, "crate::<impl#0>").trait_id is None
        assert _type(fragment, implements.source).resolution == TypeResolution.UNRESOLVED

    def test_external_trait_has_no_relation(self, make_unit, config):
        unit = make_unit(
            "src/lib.rs",
            StructItem(name="Circle"),
            ImplItem(self_type=simple_path("Circle"), trait=simple_path("Clone")),
        )
        fragment = traverse(unit, config)

        impl = _node(fragment, "crate::<impl#0>")

        assert _relations(fragment, RelationKind.IMPLEMENTS_TRAIT) == []
        assert impl.trait_path == "std::clone::Clone"
        assert len(_relations(fragment, RelationKind.IMPLEMENTS_FOR)) == 1

    def test_negative_impl(self, make_unit, config):
        unit = make_unit(
            "src/lib.rs",
            TraitItem(name="Marker", is_auto=True),
            StructItem(name="Raw"),
            ImplItem(self_type=simple_path("Raw"), trait=simple_path("Marker"), is_negative=True),
        )
        fragment = traverse(unit, config)

        impl = _node(fragment, "crate::<impl#0>")

        assert impl.is_negative
        assert impl.name.startswith("impl !")
        assert _relations(fragment, RelationKind.IMPLEMENTS_TRAIT) == []

    def test_impl_methods_and_self(self, make_unit, config):
        new = FunctionItem(name="new", output=simple_path("Self"))
        area = FunctionItem(
            name="area",
            params=(ParamSyntax(name="self", type=ReferenceType(simple_path("Self")), is_self=True),),
            output=simple_path("f64"),
        )
        unit = make_unit("src/lib.rs", StructItem(name="Circle"), ImplItem(self_type=simple_path("Circle"), items=(new, area)))
        fragment = traverse(unit, config)

        impl = _node(fragment, "crate::<impl#0>")
        new_node = _node(fragment, "crate::<impl#0>::new")

        assert impl.methods == (new_node.id, _node(fragment, "crate::<impl#0>::area").id)
        assert new_node.is_method
        assert new_node.return_type == impl.self_type
        assert _type(fragment, impl.self_type).path == "crate::Circle"
        # methods are reached through the impl, not by path
        assert "crate::<impl#0>::new" not in {entry.path for entry in fragment.symbols}

    def test_impl_counter_per_container(self, make_unit, config):
        unit = make_unit(
            "src/lib.rs",
            StructItem(name="A"),
            ImplItem(self_type=simple_path("A")),
            ImplItem(self_type=simple_path("A")),
        )
        fragment = traverse(unit, config)

        assert _node(fragment, "crate::<impl#1>").kind == NodeKind.IMPL

    def test_supertrait(self, make_unit, config):
        unit = make_unit(
            "src/lib.rs",
            TraitItem(name="Shape"),
            TraitItem(name="Round", supertraits=(simple_path("Shape"), simple_path("Send"))),
        )
        fragment = traverse(unit, config)

        shape = _node(fragment, "crate::Shape")
        round_ = _node(fragment, "crate::Round")
        [inherits] = _relations(fragment, RelationKind.INHERITS)

        assert (inherits.source, inherits.target) == (round_.id, shape.id)
        assert round_.super_traits == (shape.id,)
        assert len(round_.super_trait_types) == 2


class TestModulesAndImports:
    """Modules, use declarations"""

    def test_file_module_declaration_is_provisional(self, make_unit, config):
        fragment = traverse(make_unit("src/lib.rs", ModuleItem(name="net")), config)

        [contains] = _relations(fragment, RelationKind.CONTAINS)

        assert contains.is_provisional
        assert contains.target.path == "self::net"
        assert contains.target.expected == Namespace.NODE

    def test_inline_module(self, make_unit, config):
        unit = make_unit("src/lib.rs", ModuleItem(name="shapes", items=(StructItem(name="Point"),)))
        fragment = traverse(unit, config)

        root = _node(fragment, "crate")
        shapes = _node(fragment, "crate::shapes")
        point = _node(fragment, "crate::shapes::Point")

        assert shapes.parent == root.id
        assert shapes.items == (point.id,)
        edges = {(r.source, r.target) for r in _relations(fragment, RelationKind.CONTAINS)}
        assert edges == {(root.id, shapes.id), (shapes.id, point.id)}

    def test_use_of_later_declaration_is_provisional(self, make_unit, config):
        unit = make_unit("src/a.rs", UseItem(entries=(UseEntry(path=("crate", "b", "B")),)))
        fragment = traverse(unit, config)

        [uses] = _relations(fragment, RelationKind.USES)
        import_node = _node(fragment, "crate::a::B")

        assert uses.source == import_node.id
        assert uses.is_provisional
        assert uses.target.path == "crate::b::B"
        assert uses.target.space is None
        assert fragment.imports[0].name == "B"

    def test_use_of_local_declaration(self, make_unit, config):
        unit = make_unit(
            "src/lib.rs",
            ModuleItem(name="shapes", items=(StructItem(name="Point"),)),
            UseItem(entries=(UseEntry(path=("shapes", "Point"), alias="P"),)),
        )
        fragment = traverse(unit, config)

        [uses] = _relations(fragment, RelationKind.USES)

        assert uses.target == _node(fragment, "crate::shapes::Point").id
        assert _node(fragment, "crate::P").alias == "P"

    def test_external_use_has_no_relation(self, make_unit, config):
        unit = make_unit("src/lib.rs", UseItem(entries=(UseEntry(path=("std", "io"), is_glob=True),)))
        fragment = traverse(unit, config)

        assert _relations(fragment, RelationKind.USES) == []
        assert _node(fragment, "crate::*").source_path == "std::io::*"


class TestMacros:
    """macro_rules!, proc macros and invocations"""

    def test_macro_rules_expansions(self, make_unit, config):
        square = MacroRulesItem(
            name="square",
            rules=(
                MacroRuleSyntax(pattern="($x:expr)", expansion="{ $x * $x }"),
                MacroRuleSyntax(pattern="()", expansion="{ 0 }"),
            ),
        )
        fragment = traverse(make_unit("src/lib.rs", square), config)

        macro = _node(fragment, "crate::square")
        expansions = _relations(fragment, RelationKind.MACRO_EXPANSION)

        assert macro.macro_kind == MacroKind.DECLARATIVE
        assert len(expansions) == 2
        assert [r.target for r in expansions] == list(macro.rules)

    def test_macro_use_from_function(self, make_unit, config):
        square = MacroRulesItem(name="square", rules=(MacroRuleSyntax(pattern="()", expansion="{}"),))
        main = FunctionItem(
            name="main",
            macro_calls=(MacroCallSyntax("square"), MacroCallSyntax("println"), MacroCallSyntax("later")),
        )
        fragment = traverse(make_unit("src/lib.rs", square, main), config)

        uses = _relations(fragment, RelationKind.MACRO_USE)
        main_node = _node(fragment, "crate::main")

        assert main_node.macro_calls == ("square", "println", "later")
        assert len(uses) == 2
        resolved, pending = uses
        assert resolved.target == _node(fragment, "crate::square").id
        assert pending.is_provisional
        assert pending.target.space == SymbolSpace.MACRO

    def test_exported_macro_is_registered_at_crate_root(self, make_unit, config):
        helper = MacroRulesItem(name="helper", is_exported=True)
        fragment = traverse(make_unit("src/util.rs", helper), config)

        paths = {entry.path for entry in fragment.symbols if entry.space == SymbolSpace.MACRO}
        assert paths == {"crate::util::helper", "crate::helper"}

    def test_proc_macro_derive(self, make_unit, config):
        derive = FunctionItem(
            name="derive_shape",
            attributes=(Attribute("proc_macro_derive", ("Shape",)),),
        )
        fragment = traverse(make_unit("src/lib.rs", derive), config)

        macro = _node(fragment, "crate::Shape")

        assert macro.macro_kind == MacroKind.PROC_DERIVE
        assert macro.implementation == _node(fragment, "crate::derive_shape").id


class TestItemsWithTypes:
    def test_type_alias(self, make_unit, config):
        alias = TypeAliasItem(name="Bytes", type=simple_path("Vec", simple_path("u8")))
        fragment = traverse(make_unit("src/lib.rs", alias), config)

        [alias_of] = _relations(fragment, RelationKind.ALIAS_OF)

        assert _type(fragment, alias_of.target).display == "std::vec::Vec<u8>"

    def test_const_value(self, make_unit, config):
        value = ValueItem(name="LIMIT", type=simple_path("usize"), value="16")
        fragment = traverse(make_unit("src/lib.rs", value), config)

        [value_type] = _relations(fragment, RelationKind.VALUE_TYPE)

        assert value_type.source == _node(fragment, "crate::LIMIT").id
        assert isinstance(value_type.target, TypeId)


class TestErrors:
    """Diagnostics and structural errors"""

    def test_cfg_gated_duplicate(self, make_unit, config):
        unit = make_unit(
            "src/lib.rs",
            StructItem(name="Sys", attributes=(Attribute("cfg", ("unix",)),)),
            StructItem(name="Sys", attributes=(Attribute("cfg", ("windows",)),)),
        )
        fragment = traverse(unit, config)

        codes = [d.code for d in fragment.diagnostics]
        assert codes == [DiagnosticCode.CFG_DUPLICATE]
        assert len([e for e in fragment.symbols if e.path == "crate::Sys"]) == 1
        assert _node(fragment, "crate::Sys").attributes == (Attribute("cfg", ("unix",)),)

    def test_cfg_gated_module_duplicate_skips_body(self, make_unit, config):
        """Test: items inside the second cfg variant do not collide with the first"""
        unit = make_unit(
            "src/lib.rs",
            ModuleItem(name="imp", attributes=(Attribute("cfg", ("unix",)),), items=(StructItem(name="Handle"),)),
            ModuleItem(name="imp", attributes=(Attribute("cfg", ("windows",)),), items=(StructItem(name="Handle"),)),
        )
        fragment = traverse(unit, config)

        assert [d.code for d in fragment.diagnostics] == [DiagnosticCode.CFG_DUPLICATE]
        assert _node(fragment, "crate::imp::Handle").kind == NodeKind.STRUCT

    def test_path_collision(self, make_unit, config):
        unit = make_unit("src/lib.rs", StructItem(name="A"), StructItem(name="A"))

        with pytest.raises(PathCollisionError) as exc_info:
            traverse(unit, config)

        assert exc_info.value.file_paths == ("src/lib.rs",)

    def test_parse_errors_become_diagnostics(self, make_unit, config):
        unit = make_unit("src/lib.rs", errors=(SyntaxErrorInfo(3, "missing `;`"),))
        fragment = traverse(unit, config)

        [diagnostic] = fragment.diagnostics
        assert diagnostic.code == DiagnosticCode.PARSE_ERROR
        assert "line 3" in diagnostic.message

    def test_namespace_exhaustion(self, make_unit):
        unit = make_unit("src/lib.rs", *(StructItem(name=f"S{i}") for i in range(5)))

        with pytest.raises(NamespaceExhaustedError):
            traverse(unit, GraphBuildConfig(parallel=False, max_id=3))

    def test_fragment_ids_are_local(self, make_unit, config):
        """Test: every fragment starts its id counters at zero"""
        first = traverse(make_unit("src/a.rs", StructItem(name="A")), config)
        second = traverse(make_unit("src/b.rs", StructItem(name="B")), config)

        assert _node(first, "crate::a").id == _node(second, "crate::b").id == NodeId(0)
