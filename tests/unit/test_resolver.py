"""
Tests for fragment merge and cross-item resolution
"""

import pytest

from codegraph_rs.builder.traversal import traverse
from codegraph_rs.diagnostics import DiagnosticCode
from codegraph_rs.exceptions import ModuleCycleError, PathCollisionError, ResolverStateError
from codegraph_rs.ir.ids import TraitId
from codegraph_rs.ir.models import NodeKind, TypeResolution
from codegraph_rs.ir.relations import RelationKind
from codegraph_rs.resolve.resolver import CrossItemResolver
from codegraph_rs.syntax.models import (
    Attribute,
    FieldSyntax,
    FunctionItem,
    ImplItem,
    MacroCallSyntax,
    MacroRuleSyntax,
    MacroRulesItem,
    ModuleItem,
    StructItem,
    TraitItem,
    UseEntry,
    UseItem,
    simple_path,
)


@pytest.fixture
def shapes_crate(make_unit):
    """lib.rs declares the modules; the impl lives in a file merged before its trait."""
    return [
        make_unit("src/lib.rs", ModuleItem(name="impls"), ModuleItem(name="shapes")),
        make_unit(
            "src/impls.rs",
            ImplItem(self_type=simple_path("crate::shapes::Circle"), trait=simple_path("crate::shapes::Shape")),
        ),
        make_unit(
            "src/shapes.rs",
            TraitItem(name="Shape"),
            StructItem(name="Circle"),
            StructItem(name="Holder", fields=(FieldSyntax(name="inner", type=simple_path("Circle")),)),
        ),
    ]


class TestForwardReferences:
    """Provisional relations become concrete once every unit is known"""

    def test_impl_before_trait(self, build_graph, shapes_crate):
        graph = build_graph(*shapes_crate)

        trait = graph.lookup("crate::shapes::Shape", "trait")
        [impl] = graph.implementations_of(trait.id)

        assert impl.path == "crate::impls::<impl#0>"
        assert impl.trait_id == trait.id
        assert impl.trait_path == "crate::shapes::Shape"
        assert graph.unresolved_relations() == []

    def test_self_type_unified_across_files(self, build_graph, shapes_crate):
        """Test: the impl's self type and Holder's field type are one TypeId"""
        graph = build_graph(*shapes_crate)

        impl = graph.lookup("crate::impls::<impl#0>")
        field = graph.lookup("crate::shapes::Holder::inner")
        circle = graph.lookup("crate::shapes::Circle")
        circle_type = graph.type(field.type_id)

        assert impl.self_type == field.type_id
        assert circle_type.resolution == TypeResolution.DECLARATION
        assert circle_type.declaration == circle.id
        assert circle_type.display == "crate::shapes::Circle"
        assert graph.impls_for(field.type_id) == [impl]

    def test_mutual_use(self, build_graph, make_unit):
        a = make_unit("src/a.rs", StructItem(name="A"), UseItem(entries=(UseEntry(path=("crate", "b", "B")),)))
        b = make_unit("src/b.rs", StructItem(name="B"), UseItem(entries=(UseEntry(path=("crate", "a", "A")),)))
        lib = make_unit("src/lib.rs", ModuleItem(name="a"), ModuleItem(name="b"))

        graph = build_graph(lib, a, b)

        import_b = graph.lookup("crate::a::B", NodeKind.IMPORT)
        [uses] = graph.outgoing(import_b.id, RelationKind.USES)

        assert not uses.unresolved
        assert uses.target == graph.lookup("crate::b::B", NodeKind.STRUCT).id

    def test_file_modules_attach_to_parent(self, build_graph, shapes_crate):
        graph = build_graph(*shapes_crate)

        root = graph.lookup("crate")
        shapes = graph.lookup("crate::shapes")

        assert shapes.parent == root.id
        assert shapes.id in root.items
        assert graph.root_modules() == [root]
        assert shapes in graph.contained_items(root.id)

    def test_block_module_is_not_a_root(self, build_graph, make_unit):
        """Test: fn f() { mod inner { struct X; } } leaves `crate` as the only root"""
        run = FunctionItem(name="f", body_items=(ModuleItem(name="inner", items=(StructItem(name="X"),)),))
        graph = build_graph(make_unit("src/lib.rs", run))

        function = graph.lookup("crate::f")
        inner = graph.lookup("crate::f::{body}::inner")

        assert graph.root_modules() == [graph.lookup("crate")]
        assert inner in graph.contained_items(function.id)
        assert graph.diagnostics_of(DiagnosticCode.SCHEMA_VIOLATION) == []

    def test_exported_macro_used_from_other_file(self, build_graph, make_unit):
        lib = make_unit(
            "src/lib.rs",
            ModuleItem(name="a"),
            MacroRulesItem(
                name="helper",
                is_exported=True,
                rules=(MacroRuleSyntax(pattern="()", expansion="{}"),),
            ),
        )
        a = make_unit("src/a.rs", FunctionItem(name="run", macro_calls=(MacroCallSyntax("helper"),)))

        graph = build_graph(lib, a)

        run = graph.lookup("crate::a::run")
        [macro_use] = graph.outgoing(run.id, RelationKind.MACRO_USE)
        assert macro_use.target == graph.lookup("crate::helper").id


class TestUnresolvable:
    """Targets that are genuinely absent"""

    def test_missing_trait_is_marked_and_reported(self, build_graph, make_unit):
        unit = make_unit(
            "src/lib.rs",
            StructItem(name="Circle"),
            ImplItem(self_type=simple_path("Circle"), trait=simple_path("Drawable")),
        )
        graph = build_graph(unit)

        [relation] = graph.unresolved_relations()
        [diagnostic] = graph.diagnostics_of(DiagnosticCode.UNRESOLVED_TRAIT)

        assert relation.kind == RelationKind.IMPLEMENTS_TRAIT
        assert relation.target.path == "Drawable"
        assert diagnostic.path == "crate::<impl#0>"
        assert diagnostic.relation == relation
        assert graph.lookup("crate::<impl#0>").trait_id is None

    def test_missing_field_type_is_reported(self, build_graph, make_unit):
        unit = make_unit("src/lib.rs", StructItem(name="S", fields=(FieldSyntax(name="x", type=simple_path("Gone")),)))
        graph = build_graph(unit)

        [diagnostic] = graph.diagnostics_of(DiagnosticCode.UNRESOLVED_TYPE)

        assert diagnostic.path == "crate::S"
        assert "Gone" in diagnostic.message

    def test_missing_file_module(self, build_graph, make_unit):
        graph = build_graph(make_unit("src/lib.rs", ModuleItem(name="gone")))

        [diagnostic] = graph.diagnostics_of(DiagnosticCode.UNRESOLVED_MODULE)
        assert diagnostic.path == "crate::gone"


class TestCycles:
    def test_inheritance_cycle_is_diagnosed(self, build_graph, make_unit):
        unit = make_unit(
            "src/lib.rs",
            TraitItem(name="A", supertraits=(simple_path("B"),)),
            TraitItem(name="B", supertraits=(simple_path("A"),)),
        )
        graph = build_graph(unit)

        a = graph.lookup("crate::A")
        b = graph.lookup("crate::B")

        assert len(graph.diagnostics_of(DiagnosticCode.INHERITANCE_CYCLE)) == 1
        assert len(graph.relations_of(RelationKind.INHERITS)) == 1
        assert a.super_traits == (b.id,)
        assert b.super_traits == ()

    def test_module_cycle_raises(self, build_graph, make_unit):
        """Test: a `mod` declaration resolving back to an ancestor module is structural"""
        units = [
            make_unit("src/lib.rs", ModuleItem(name="a")),
            make_unit("src/a.rs", ModuleItem(name="b")),
            make_unit(
                "src/a/b.rs",
                UseItem(entries=(UseEntry(path=("crate", "a"), alias="c"),)),
                ModuleItem(name="c"),
            ),
        ]

        with pytest.raises(ModuleCycleError) as exc_info:
            build_graph(*units)

        assert exc_info.value.file_paths == ("src/a.rs", "src/a/b.rs")
        assert exc_info.value.cycle == ["crate::a", "crate::a::b"]


class TestMerge:
    def test_path_collision_drops_later_unit(self, config, make_unit):
        resolver = CrossItemResolver(config)
        resolver.add_fragment(traverse(make_unit("src/a.rs", StructItem(name="X")), config))
        resolver.add_fragment(
            traverse(make_unit("src/lib.rs", ModuleItem(name="a", items=(StructItem(name="X"),))), config)
        )

        graph = resolver.resolve()

        assert set(resolver.failed_units) == {"src/lib.rs"}
        assert isinstance(resolver.failed_units["src/lib.rs"], PathCollisionError)
        assert graph.lookup("crate::a::X").file_path == "src/a.rs"
        assert graph.lookup("crate") is None
        assert len(graph.diagnostics_of(DiagnosticCode.UNIT_FAILED)) == 1

    def test_cfg_duplicate_keeps_first(self, build_graph, make_unit):
        lib = make_unit(
            "src/lib.rs",
            ModuleItem(name="imp", attributes=(Attribute("cfg", ("unix",)),), items=(StructItem(name="Handle"),)),
            ModuleItem(name="imp", attributes=(Attribute("cfg", ("windows",)),), items=(StructItem(name="Handle"),)),
        )

        graph = build_graph(lib)

        assert len(graph.diagnostics_of(DiagnosticCode.CFG_DUPLICATE)) == 1
        assert len(graph.lookup_all("crate::imp::Handle")) == 1
        assert graph.lookup("crate::imp").attributes == (Attribute("cfg", ("unix",)),)
        assert graph.lookup("crate::imp").has_attribute("cfg")

    def test_ids_do_not_depend_on_input_order(self, build_graph, shapes_crate):
        forward = build_graph(*shapes_crate)
        backward = build_graph(*reversed(shapes_crate))

        assert forward == backward
        assert [n.path for n in forward.nodes.values()] == [n.path for n in backward.nodes.values()]

    def test_trait_ids_are_global(self, build_graph, make_unit):
        graph = build_graph(
            make_unit("src/lib.rs", ModuleItem(name="a"), ModuleItem(name="b")),
            make_unit("src/a.rs", TraitItem(name="T")),
            make_unit("src/b.rs", TraitItem(name="T")),
        )

        assert set(graph.traits) == {TraitId(0), TraitId(1)}


class TestLifecycle:
    def test_resolve_twice_raises(self, config, make_unit):
        resolver = CrossItemResolver(config)
        resolver.add_fragment(traverse(make_unit("src/lib.rs"), config))
        resolver.resolve()

        with pytest.raises(ResolverStateError):
            resolver.resolve()

    def test_add_after_resolve_raises(self, config, make_unit):
        resolver = CrossItemResolver(config)
        resolver.resolve()

        with pytest.raises(ResolverStateError) as exc_info:
            resolver.add_fragment(traverse(make_unit("src/lib.rs"), config))

        assert exc_info.value.state == "resolved"

    def test_same_file_replaces_fragment(self, config, make_unit):
        resolver = CrossItemResolver(config)
        resolver.add_fragment(traverse(make_unit("src/lib.rs", StructItem(name="Old")), config))
        resolver.add_fragment(traverse(make_unit("src/lib.rs", StructItem(name="New")), config))

        graph = resolver.resolve()

        assert graph.lookup("crate::Old") is None
        assert graph.lookup("crate::New") is not None
